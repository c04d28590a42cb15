"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from email_retry.domain.models import EmailType
from email_retry.retry.backoff import BASE_DELAY_SECONDS, JITTER_FACTOR, MAX_DELAY_SECONDS
from email_retry.retry.policy import DEFAULT_LIMIT, DEFAULT_RETRY_LIMITS

from .duration import DurationParseError, parse_duration, validate_duration_range

MIN_RETRY_INTERVAL_SECONDS = 60
MAX_RETRY_INTERVAL_SECONDS = 86400
MAX_RETRY_LIMIT = 20


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


def _default_limits() -> Dict[EmailType, int]:
    return {EmailType(key): value for key, value in DEFAULT_RETRY_LIMITS.items()}


class RetryConfig(BaseModel):
    """Backoff timing, retry budgets and classifier extensions."""

    base_delay_seconds: float = Field(
        BASE_DELAY_SECONDS, ge=0.01, le=60, description="Backoff base delay in seconds"
    )
    max_delay_seconds: float = Field(
        MAX_DELAY_SECONDS, gt=0, le=3600, description="Cap on the exponential backoff"
    )
    jitter_factor: float = Field(
        JITTER_FACTOR, ge=0, le=1, description="Jitter as a fraction of the base delay"
    )
    limits: Dict[EmailType, int] = Field(
        default_factory=_default_limits,
        description="Maximum retries per email type",
    )
    default_limit: int = Field(
        DEFAULT_LIMIT, ge=0, le=MAX_RETRY_LIMIT, description="Budget for unlisted types"
    )
    retry_interval: str = Field("15m", description="How often the batch retry runs")
    email_type: Optional[EmailType] = Field(
        None, description="Only retry failures of this type"
    )
    extra_permanent_patterns: List[str] = Field(default_factory=list)
    extra_transient_patterns: List[str] = Field(default_factory=list)

    # Computed field
    retry_interval_seconds: Optional[int] = None

    @field_validator("limits")
    @classmethod
    def validate_limits(cls, v: Dict[EmailType, int]) -> Dict[EmailType, int]:
        """Merge overrides onto the defaults and bound every budget."""
        merged = _default_limits()
        for email_type, limit in v.items():
            if limit < 0 or limit > MAX_RETRY_LIMIT:
                raise ValueError(
                    f"Retry limit for '{EmailType(email_type).value}' must be between "
                    f"0 and {MAX_RETRY_LIMIT}, got {limit}"
                )
            merged[EmailType(email_type)] = limit
        return merged

    @field_validator("extra_permanent_patterns", "extra_transient_patterns")
    @classmethod
    def normalize_patterns(cls, v: List[str]) -> List[str]:
        """Lowercase, strip and drop empty patterns."""
        return [p.strip().lower() for p in v if p and p.strip()]

    @field_validator("retry_interval")
    @classmethod
    def validate_retry_interval(cls, v: str) -> str:
        try:
            seconds = parse_duration(v)
            validate_duration_range(
                seconds,
                min_seconds=MIN_RETRY_INTERVAL_SECONDS,
                max_seconds=MAX_RETRY_INTERVAL_SECONDS,
            )
            return v
        except DurationParseError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def validate_delays_and_compute_fields(self):
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError(
                f"max_delay_seconds ({self.max_delay_seconds}) must be >= "
                f"base_delay_seconds ({self.base_delay_seconds})"
            )

        self.retry_interval_seconds = parse_duration(self.retry_interval)
        return self


class EmailConfig(BaseModel):
    """SMTP settings used when replaying a failed email."""

    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    sender_email: Optional[str] = Field(
        None, description="From address (defaults to SMTP_USER)"
    )
    timeout_seconds: int = Field(30, ge=1, le=300, description="SMTP socket timeout")

    @field_validator("sender_email")
    @classmethod
    def strip_sender(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )
    environment: str = Field("local", description="Environment label added to records")

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the email retry engine."""

    retry: RetryConfig = Field(default_factory=RetryConfig, description="Retry settings")
    email: EmailConfig = Field(default_factory=EmailConfig, description="Email settings")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    @property
    def retry_interval_seconds(self) -> int:
        return self.retry.retry_interval_seconds
