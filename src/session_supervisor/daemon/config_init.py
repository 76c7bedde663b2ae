"""Configuration initialization helper.

Provides config file generation with defaults and atomic writes.

Config files support documentation comments via ``_``-prefixed or
``$``-prefixed keys (e.g. ``_comment``); they are stripped on load.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..config import DEFAULT_SERVER_EXECUTABLE, DEFAULT_SESSION_ID_VARIABLE
from .paths import get_config_file_path


def generate_default_config(
    multi_session: bool = False,
    server_executable: str = DEFAULT_SERVER_EXECUTABLE,
    log_level: str = "INFO",
) -> dict[str, Any]:
    """Generate default configuration dictionary.

    Args:
        multi_session: Allow several workers per seat/display.
        server_executable: Worker server started for each graphical session.
        log_level: Logging level (default: INFO).

    Returns:
        Configuration dictionary.
    """
    return {
        "_comment": "session-supervisor configuration",
        "service": {
            "multi_session_enabled": multi_session,
            "server_executable": server_executable,
            "server_arguments": [],
            "max_sessions": 100,
            "worker_stop_timeout": 5.0,
            "session_id_variable": DEFAULT_SESSION_ID_VARIABLE,
        },
        "logging": {
            "level": log_level,
            "console": True,
            "file": True,
            "serialize_file": False,
        },
    }


def atomic_write_config(config_path: Path, data: dict) -> None:
    """Atomically write config to prevent mid-write reads.

    Writes to a temp file then renames, which is atomic on most filesystems.

    Args:
        config_path: Target config file path
        data: Config data to write
    """
    config_path = Path(config_path)
    temp_path = config_path.with_suffix(".tmp")

    temp_path.write_text(
        json.dumps(data, indent=2),
        encoding="utf-8"
    )

    temp_path.replace(config_path)


def init_config(
    config_path: Path | None = None,
    force: bool = False,
    multi_session: bool | None = None,
    server_executable: str | None = None,
) -> Path:
    """Write a default config file.

    Args:
        config_path: Target file (default: platform config location).
        force: Overwrite existing config file.
        multi_session: Enable multi-session mode.
        server_executable: Worker server executable path.

    Returns:
        Path to created config file.

    Raises:
        FileExistsError: If config exists and force=False.
    """
    if config_path is None:
        config_path = get_config_file_path()

    if config_path.exists() and not force:
        raise FileExistsError(f"Config already exists: {config_path}")

    config_path.parent.mkdir(parents=True, exist_ok=True)

    config = generate_default_config(
        multi_session=bool(multi_session),
        server_executable=server_executable or DEFAULT_SERVER_EXECUTABLE,
    )
    atomic_write_config(config_path, config)

    return config_path
