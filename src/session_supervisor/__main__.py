"""Allow ``python -m session_supervisor``."""

from session_supervisor.cli import app

if __name__ == "__main__":
    app()
