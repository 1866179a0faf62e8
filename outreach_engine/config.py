"""Configuration for the outreach workflow engine.

Every field can be overridden with an ``OUTREACH_ENGINE_<FIELD>`` environment
variable (``OUTREACH_ENGINE_VERIFY_ALLOW_LIVE=true``). Lists are comma
separated. A ``.env`` file is honoured by :func:`load_config`.
"""

import os
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

ENV_PREFIX = "OUTREACH_ENGINE_"
_TRUE_VALUES = {"true", "1", "yes", "on"}
_SUPPORTED_DATABASES = ("sqlite", "postgresql", "mysql")


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _parse_env_value(raw: str, default: Any) -> Any:
    """Convert an environment string using the field default as a type hint.

    Numbers are left as strings; pydantic coerces them during validation.
    """
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUE_VALUES
    if isinstance(default, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(default, LogLevel):
        return LogLevel(raw.strip().upper())
    return raw


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Service
    app_name: str = Field(default="Outreach Workflow Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")

    # Persistence
    database_url: str = Field(default="sqlite:///./outreach_engine.db", description="SQLAlchemy database URL")
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Credential vault
    encryption_key: str = Field(
        default="",
        description="Key material for credential encryption; rotating it invalidates stored secrets"
    )

    # Workflow execution
    execution_dry_run: bool = Field(
        default=True,
        description="Simulate provider side effects instead of calling external APIs"
    )
    default_max_actions: int = Field(default=20, description="Action cap applied when a caller does not supply one")
    execution_timeout: float = Field(default=300.0, description="Wall-clock limit for one execution in seconds")

    # WhatsApp Cloud API
    verify_allow_live: bool = Field(default=False, description="Allow live test-sends during verification")
    whatsapp_verification_max_age_days: int = Field(default=30, description="Days a passed live verification stays fresh")
    whatsapp_api_base_url: str = Field(default="https://graph.facebook.com", description="Cloud API base URL")
    whatsapp_api_version: str = Field(default="v20.0", description="Cloud API version path segment")
    whatsapp_default_language: str = Field(default="en_US", description="Default template language code")
    provider_timeout: float = Field(default=15.0, description="Provider HTTP timeout in seconds")

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file: Optional[str] = Field(default=None, description="Rotating log file path")
    log_max_size: int = Field(default=10 * 1024 * 1024, description="Bytes before the log file rotates")
    log_backup_count: int = Field(default=5, description="Rotated log files to keep")
    log_structured: bool = Field(default=False, description="Emit JSON log lines")

    # HTTP surface
    slow_request_threshold: float = Field(default=5.0, description="Seconds before a request is logged as slow")
    cors_origins: List[str] = Field(default=["*"], description="CORS allowed origins")
    cors_methods: List[str] = Field(default=["GET", "POST"], description="CORS allowed methods")

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("Database URL cannot be empty")
        scheme = v.split('://')[0].split('+')[0].lower()
        if scheme not in _SUPPORTED_DATABASES:
            raise ValueError(f"Unsupported database scheme: {scheme}. Supported: {list(_SUPPORTED_DATABASES)}")
        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('default_max_actions', 'whatsapp_verification_max_age_days')
    @classmethod
    def validate_non_negative(cls, v, info: ValidationInfo):
        if v < 0:
            raise ValueError(f"{info.field_name} cannot be negative")
        return v

    @field_validator('execution_timeout', 'provider_timeout', 'slow_request_threshold')
    @classmethod
    def validate_positive_seconds(cls, v, info: ValidationInfo):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator('whatsapp_api_base_url')
    @classmethod
    def validate_base_url(cls, v):
        """Strip trailing slashes so path joins stay predictable."""
        if not v or not v.strip():
            raise ValueError("WhatsApp API base URL cannot be empty")
        return v.strip().rstrip('/')

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.lower().startswith('sqlite')

    @property
    def is_production(self) -> bool:
        return not self.debug and not self.reload

    def get_database_connect_args(self) -> Dict[str, Any]:
        """SQLite connections are shared across the event loop's threads."""
        return {"check_same_thread": False} if self.is_sqlite else {}

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Keyword arguments for ``uvicorn.run``."""
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug,
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Build a config from ``OUTREACH_ENGINE_*`` variables over the field defaults."""
        overrides = {}
        for name, field in cls.model_fields.items():
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                overrides[name] = _parse_env_value(raw, field.default)
        return cls(**overrides)


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, reading the environment on first use."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load ``config_file`` (or ``./.env``) into the environment, then rebuild the config."""
    global _config

    from dotenv import load_dotenv
    env_file = config_file if config_file and os.path.exists(config_file) else '.env'
    if os.path.exists(env_file):
        load_dotenv(env_file)

    _config = AppConfig.from_env()
    return _config


def reset_config():
    """Forget the cached config (mainly for testing)."""
    global _config
    _config = None


def _ensure_parent_dir(path: str, label: str, errors: List[str]) -> None:
    directory = os.path.dirname(path)
    if not directory or os.path.exists(directory):
        return
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as e:
        errors.append(f"Cannot create {label} directory {directory}: {e}")


def validate_config(config: AppConfig) -> None:
    """Check settings that depend on each other or on the host.

    Raises:
        ValueError: listing every problem found
    """
    errors: List[str] = []

    if not config.encryption_key.strip():
        errors.append(f"{ENV_PREFIX}ENCRYPTION_KEY must be set to store provider credentials")
    if config.verify_allow_live and not config.whatsapp_api_base_url.startswith("https://"):
        errors.append("Live verification requires an https WhatsApp API base URL")

    if config.is_sqlite:
        db_path = config.database_url.split("///", 1)[-1]
        if db_path != ":memory:":
            _ensure_parent_dir(db_path, "database", errors)
    if config.log_file:
        _ensure_parent_dir(config.log_file, "log", errors)

    if errors:
        raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")


def get_development_config() -> AppConfig:
    """Local development: debug logging, SQL echo, auto-reload, dry run."""
    return AppConfig(
        debug=True,
        reload=True,
        log_level=LogLevel.DEBUG,
        database_echo=True,
        execution_dry_run=True,
    )


def get_production_config() -> AppConfig:
    """Production: JSON logs and no wildcard CORS. Dry run still defaults on."""
    return AppConfig(
        log_level=LogLevel.INFO,
        log_structured=True,
        cors_origins=[],
    )


def get_testing_config() -> AppConfig:
    """In-memory database with a fixed encryption key."""
    return AppConfig(
        debug=True,
        database_url="sqlite:///:memory:",
        encryption_key="deterministic-test-key",
        log_level=LogLevel.WARNING,
        execution_dry_run=True,
        execution_timeout=30.0,
        provider_timeout=5.0,
    )
