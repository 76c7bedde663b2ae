"""Configuration for session-supervisor, built on pydantic-settings.

Values are merged from three places, highest priority first:

1. ``SESSION_SUPERVISOR_<SECTION>__<FIELD>`` environment variables
2. the JSON config file (``config.json`` in the config directory)
3. field defaults

Example: ``SESSION_SUPERVISOR_SERVICE__MULTI_SESSION_ENABLED=true``
"""

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


APP_NAME = "session-supervisor"

DEFAULT_SERVER_EXECUTABLE = "/usr/bin/session-worker"
DEFAULT_SESSION_ID_VARIABLE = "SESSION_SUPERVISOR_SESSION_ID"

ENV_PREFIX = "SESSION_SUPERVISOR_"


def _strip_comment_fields(data: Any) -> Any:
    """Drop ``_``/``$`` prefixed keys (comments, schema refs) at every dict level."""
    if not isinstance(data, dict):
        return data
    return {
        key: _strip_comment_fields(value)
        for key, value in data.items()
        if not key.startswith(("_", "$"))
    }


class JsonConfigSettingsSource(PydanticBaseSettingsSource):
    """Settings source reading one JSON file; a missing file contributes nothing."""

    def __init__(self, settings_cls: type[BaseSettings], json_file: Path):
        super().__init__(settings_cls)
        self.json_file = json_file

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        # Unused: __call__ returns the whole mapping at once.
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        if not self.json_file.is_file():
            return {}
        data = json.loads(self.json_file.read_text(encoding="utf-8"))
        return _strip_comment_fields(data)


class ServiceConfig(BaseModel):
    """What to run for each session and how to treat it."""

    multi_session_enabled: bool = False
    server_executable: str = DEFAULT_SERVER_EXECUTABLE
    server_arguments: list[str] = Field(default_factory=list)
    max_sessions: int = Field(default=100, ge=1, le=65535)
    worker_stop_timeout: float = Field(default=5.0, ge=0)
    session_id_variable: str = DEFAULT_SESSION_ID_VARIABLE

    @field_validator("server_executable", "session_id_variable")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be a non-empty string")
        return v

    def is_multi_session_enabled(self) -> bool:
        return self.multi_session_enabled

    def server_executable_path(self) -> Path:
        return Path(self.server_executable)


class LoggingConfig(BaseModel):
    """Logging configuration section."""

    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    console: bool = True
    file: bool = True
    serialize_file: bool = False


# Set only while get_settings() constructs a Settings instance for a file.
_active_config_file: Path | None = None
_cached_settings: "Settings | None" = None


class Settings(BaseSettings):
    """Root configuration with ``service`` and ``logging`` sections."""

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
    )

    @classmethod
    def from_file(cls, config_path: Path | str) -> "Settings":
        """Build settings from a JSON file only, ignoring the environment.

        A missing file yields the defaults.
        """
        path = Path(config_path)
        if not path.exists():
            return cls()
        return cls(**_strip_comment_fields(json.loads(path.read_text(encoding="utf-8"))))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [env_settings]
        if _active_config_file is not None:
            sources.append(JsonConfigSettingsSource(settings_cls, json_file=_active_config_file))
        sources.append(init_settings)
        return tuple(sources)


def _load(config_path: Path | None) -> Settings:
    global _active_config_file

    _active_config_file = config_path
    try:
        return Settings()
    finally:
        _active_config_file = None


def get_settings(config_path: Path | str | None = None, *, _force_reload: bool = False) -> Settings:
    """Return the process-wide settings.

    Without ``config_path`` the result is cached and reused; pass
    ``_force_reload=True`` to rebuild it. An explicit ``config_path`` always
    loads fresh and leaves the cache untouched.
    """
    global _cached_settings

    if config_path is not None:
        return _load(Path(config_path))

    if _cached_settings is None or _force_reload:
        _cached_settings = _load(None)
    return _cached_settings
