"""Path helpers for session-supervisor.

This module locates configuration and log directories. The supervisor is
normally started as a system service (root), in which case the FHS
locations are used; interactive runs by a regular user fall back to the
XDG base directories.

All functions return Path objects. Directories are NOT created automatically;
callers should call ``path.mkdir(parents=True, exist_ok=True)`` as needed.
"""

import os
from pathlib import Path

from ..config import APP_NAME

SYSTEM_CONFIG_ROOT = Path('/etc')
SYSTEM_LOG_ROOT = Path('/var/log')

__all__ = [
    'APP_NAME',
    'get_config_dir',
    'get_logs_dir',
    'get_worker_logs_dir',
    'get_config_file_path',
    'is_system_service_context',
]


def _get_xdg_path(xdg_var: str, default_subpath: str) -> Path:
    """Get XDG-compliant path with environment variable support.

    Args:
        xdg_var: XDG environment variable name (e.g., 'XDG_CONFIG_HOME')
        default_subpath: Default path relative to home (e.g., '.config')

    Returns:
        Path with APP_NAME appended
    """
    xdg_base = os.environ.get(xdg_var)
    if xdg_base:
        return Path(xdg_base) / APP_NAME
    return Path.home() / default_subpath / APP_NAME


def is_system_service_context() -> bool:
    """Detect if running as the system-wide service (effective uid 0).

    logind only hands out session leader environments to privileged
    readers, so a production supervisor always runs as root.

    Returns:
        True if the effective user is root.
    """
    return os.geteuid() == 0


def get_config_dir() -> Path:
    """Get configuration directory.

    Returns:
        Path to configuration directory (not created automatically)
        - root: /etc/session-supervisor
        - otherwise: XDG_CONFIG_HOME/session-supervisor or ~/.config/session-supervisor
    """
    if is_system_service_context():
        return SYSTEM_CONFIG_ROOT / APP_NAME
    return _get_xdg_path('XDG_CONFIG_HOME', '.config')


def get_logs_dir() -> Path:
    """Get logs directory.

    Returns:
        Path to logs directory (not created automatically)
        - root: /var/log/session-supervisor
        - otherwise: XDG_STATE_HOME/session-supervisor/logs or
          ~/.local/state/session-supervisor/logs
    """
    if is_system_service_context():
        return SYSTEM_LOG_ROOT / APP_NAME
    return _get_xdg_path('XDG_STATE_HOME', '.local/state') / 'logs'


def get_worker_logs_dir() -> Path:
    """Get the directory receiving per-session worker stderr logs."""
    return get_logs_dir() / 'workers'


def get_config_file_path() -> Path:
    """Get configuration file path.

    Returns:
        Path to config.json file (not created automatically).
    """
    return get_config_dir() / 'config.json'
