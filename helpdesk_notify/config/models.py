"""Configuration schema models using Pydantic."""

from enum import Enum

from pydantic import BaseModel, Field


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class EmailConfig(BaseModel):
    """Mail transport settings that are not secrets."""

    use_tls: bool = Field(True, description="Upgrade plain SMTP connections with STARTTLS")
    smtp_timeout: float = Field(
        30.0, gt=0, le=300, description="Socket timeout for SMTP connections (seconds)"
    )


class DispatchConfig(BaseModel):
    """Background dispatch settings."""

    max_workers: int = Field(
        4, ge=1, le=64, description="Threads available for concurrent notification jobs"
    )


class LoggingConfig(BaseModel):
    """Logging configuration.

    Defaults are validated too, so both fields always hold plain strings.
    """

    level: LogLevel = Field(LogLevel.INFO, validate_default=True, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE,
        validate_default=True,
        description="Log output format (json or key-value)",
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notification engine.

    Every section has defaults, so an empty document is a valid configuration.
    """

    email: EmailConfig = Field(default_factory=EmailConfig, description="Mail transport settings")
    dispatch: DispatchConfig = Field(
        default_factory=DispatchConfig, description="Background dispatch settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = {"extra": "forbid"}
