from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from kotoba.domain.constants import (
    DEFAULT_DB_FILENAME,
    DEFAULT_FAIL_RATE_THRESHOLD,
    DEFAULT_HOST,
    DEFAULT_MIN_ATTEMPTS,
    DEFAULT_PORT,
    DEFAULT_SCORE_THRESHOLD,
    DEFAULT_SQLITE_TIMEOUT,
)

CONFIG_FILES = [
    Path.home() / ".config/kotoba/config.toml",
    Path.home() / ".kotoba.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for kotoba.
    Supports loading from:
    1. Environment variables (KOTOBA_*)
    2. Config file (~/.config/kotoba/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="KOTOBA_",
        extra="ignore",
    )

    # Storage
    backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/kotoba" / DEFAULT_DB_FILENAME
    )
    sqlite_timeout: float = Field(default=DEFAULT_SQLITE_TIMEOUT, gt=0)

    # Difficulty Classifier defaults
    score_threshold: int = DEFAULT_SCORE_THRESHOLD
    min_attempts: int = Field(default=DEFAULT_MIN_ATTEMPTS, ge=0)
    fail_rate_threshold: float = Field(default=DEFAULT_FAIL_RATE_THRESHOLD, ge=0.0, le=1.0)

    # Server
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    # Logging
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/kotoba/logs")
    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("db_path", mode="before")
    @classmethod
    def resolve_db_path(cls, v: Any) -> Path:
        if str(v) == ":memory:":
            return Path(":memory:")
        return Path(v).expanduser().resolve()

    @field_validator("log_dir", mode="before")
    @classmethod
    def resolve_log_dir(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/kotoba/config.toml (if exists)
    3. Environment variables (KOTOBA_*)
    4. cli_overrides (passed from Typer / request)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
