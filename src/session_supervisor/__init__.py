"""Session-lifecycle driven worker supervisor for Linux login sessions."""

__version__ = "0.1.0"
