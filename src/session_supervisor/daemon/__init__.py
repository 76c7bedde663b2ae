"""Daemon infrastructure for session-supervisor.

This package provides the system service that keeps one worker server
running per graphical login session:
- Path management (config, logs directories)
- Logging setup with rotation and async safety
- Graceful shutdown handling
- systemd-logind client and session inspection
- Session environment reconstruction from the process table
- Logical session ids for multi-session mode
- Supervisor core and service wiring

Flat layout with eager imports: every module lives directly in daemon/.
"""

from .config_init import atomic_write_config, generate_default_config, init_config
from .environment import (
    EnvironmentResolver,
    ProcessEntry,
    parse_environment_entry,
    snapshot_process_table,
)
from .events import SessionAdded, SessionEvent, SessionRemoved
from .graceful_shutdown import AsyncShutdownHandler
from .logging_setup import setup_logging
from .login_manager import LoginManagerClient, LoginSession, SessionManagerError
from .paths import (
    APP_NAME,
    get_config_dir,
    get_config_file_path,
    get_logs_dir,
    get_worker_logs_dir,
)
from .service import SupervisorService
from .session_inspector import (
    PropertyValue,
    SessionInspector,
    SessionListingError,
    SessionSeat,
)
from .session_registry import SessionInfo, SessionRegistry
from .supervisor import SupervisorCore, WorkerProcess, spawn_worker

__all__ = [
    # Config
    'atomic_write_config',
    'generate_default_config',
    'init_config',
    # Environment
    'EnvironmentResolver',
    'ProcessEntry',
    'parse_environment_entry',
    'snapshot_process_table',
    # Events
    'SessionAdded',
    'SessionEvent',
    'SessionRemoved',
    # Shutdown
    'AsyncShutdownHandler',
    # Logging
    'setup_logging',
    # Session manager
    'LoginManagerClient',
    'LoginSession',
    'SessionManagerError',
    'PropertyValue',
    'SessionInspector',
    'SessionListingError',
    'SessionSeat',
    # Paths
    'APP_NAME',
    'get_config_dir',
    'get_config_file_path',
    'get_logs_dir',
    'get_worker_logs_dir',
    # Supervisor
    'SessionInfo',
    'SessionRegistry',
    'SupervisorCore',
    'SupervisorService',
    'WorkerProcess',
    'spawn_worker',
]
