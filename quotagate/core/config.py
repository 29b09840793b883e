from typing import Literal

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quotagate.exceptions import PolicyError
from quotagate.limiter.models import Algorithm, BackendErrorPolicy, QuotaPolicy


class Settings(BaseSettings):
    """Rate limiter settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    Settings only describe how to build limiters; limiters themselves are
    constructed explicitly and injected into callers.
    """

    # Debug mode - forces DEBUG log level (denials are logged at DEBUG)
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Redis settings (optional; in-memory state when disabled)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "quotagate:"
    redis_socket_timeout: float = 1.0

    # Quota policy
    rate_limit_algorithm: Algorithm = Algorithm.FIXED_WINDOW
    rate_limit_capacity: int = 60
    rate_limit_window_seconds: float = 60.0
    rate_limit_refill_rate: float = 1.0
    rate_limit_refill_interval_seconds: float = 1.0
    rate_limit_leak_rate: float = 1.0
    rate_limit_default_cost: int = 1

    # Facade behaviour
    rate_limit_namespace: str = "ratelimit"
    rate_limit_on_backend_error: Literal["allow", "deny"] = "allow"  # fail open by default
    rate_limit_max_attempts: int = 5  # compare-and-swap attempts per check
    rate_limit_backend_timeout: float = 0.5  # deadline for one check, in seconds
    rate_limit_ttl_multiplier: float = 2.0
    rate_limit_sweep_interval_seconds: float = 60.0

    @field_validator("rate_limit_capacity", "rate_limit_default_cost", "rate_limit_max_attempts")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate counts are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator(
        "rate_limit_window_seconds",
        "rate_limit_refill_rate",
        "rate_limit_refill_interval_seconds",
        "rate_limit_leak_rate",
        "rate_limit_backend_timeout",
        "rate_limit_sweep_interval_seconds",
        "redis_socket_timeout",
    )
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        """Validate durations and rates are positive."""
        if v <= 0:
            raise ValueError("Durations and rates must be positive")
        return v

    @field_validator("rate_limit_ttl_multiplier")
    @classmethod
    def validate_ttl_multiplier(cls, v: float) -> float:
        """State must outlive the period in which it still matters."""
        if v < 1:
            raise ValueError("rate_limit_ttl_multiplier must be at least 1")
        return v

    @property
    def backend_error_policy(self) -> BackendErrorPolicy:
        return BackendErrorPolicy(self.rate_limit_on_backend_error)

    def to_policy(self) -> QuotaPolicy:
        """Build the quota policy described by these settings.

        Raises:
            PolicyError: If the combination of values is not a valid policy.
        """
        try:
            return QuotaPolicy(
                algorithm=self.rate_limit_algorithm,
                capacity=self.rate_limit_capacity,
                window_duration=self.rate_limit_window_seconds,
                refill_rate=self.rate_limit_refill_rate,
                refill_interval=self.rate_limit_refill_interval_seconds,
                leak_rate=self.rate_limit_leak_rate,
                default_cost=self.rate_limit_default_cost,
            )
        except ValidationError as e:
            raise PolicyError(f"Invalid rate limit settings: {e}") from e

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
