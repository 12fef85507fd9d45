# core/config.py
"""
Configuration settings for Tollgate.
"""
import math
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tollgate.errors import ConfigurationError
from tollgate.ratelimit.bucket import TierPolicy
from tollgate.ratelimit.tiers import Tier

MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """
    Centralized application settings for Tollgate.
    Every field can be overridden by an environment variable of the same name.
    """
    # --- Application ---
    APP_NAME: str = "Tollgate"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./tollgate.db"
    ECHO_SQL: bool = False
    AUTO_CREATE_TABLES: bool = True
    STORAGE_TIMEOUT_SECONDS: float = 2.0

    # --- Tokens ---
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRATION_MINUTES: int = 15
    JWT_EXPIRATION_HOURS: Optional[int] = None  # legacy override
    REFRESH_TOKEN_EXPIRATION_DAYS: int = 7

    # --- Login policy ---
    LOCKOUT_THRESHOLD: int = 5
    LOCKOUT_DURATION_MINUTES: int = 15
    REQUIRE_EMAIL_VERIFICATION: bool = False
    PASSWORD_HASH_ROUNDS: int = 12

    # --- Rate limiting ---
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_BACKEND: str = "memory"  # Options: memory, redis
    REDIS_URL: Optional[str] = None
    RATE_LIMIT_INSTANCE_COUNT: int = 1
    RATE_LIMIT_TRUSTED_PROXIES: str = ""

    RATE_LIMIT_IP_PER_MINUTE: int = 60
    RATE_LIMIT_IP_PER_HOUR: int = 1000
    RATE_LIMIT_IP_BURST_SIZE: int = 10

    RATE_LIMIT_USER_PER_MINUTE: int = 120
    RATE_LIMIT_USER_PER_HOUR: int = 2000
    RATE_LIMIT_USER_BURST_SIZE: int = 20

    RATE_LIMIT_AUTH_PER_MINUTE: int = 5
    RATE_LIMIT_AUTH_PER_HOUR: int = 20
    RATE_LIMIT_AUTH_BURST_SIZE: int = 2

    RATE_LIMIT_API_PER_MINUTE: int = 100
    RATE_LIMIT_API_PER_HOUR: int = 1500
    RATE_LIMIT_API_BURST_SIZE: int = 15

    RATE_LIMIT_AI_PER_MINUTE: int = 10
    RATE_LIMIT_AI_PER_HOUR: int = 100
    RATE_LIMIT_AI_BURST_SIZE: int = 3

    # --- Maintenance ---
    SWEEP_INTERVAL_SECONDS: int = 3600

    # --- Server ---
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )

    @field_validator("JWT_SECRET")
    def validate_jwt_secret(cls, v):
        if len(v) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters"
            )
        return v

    @field_validator("RATE_LIMIT_BACKEND")
    def validate_backend(cls, v):
        v = v.lower()
        if v not in ("memory", "redis"):
            raise ValueError("RATE_LIMIT_BACKEND must be 'memory' or 'redis'")
        return v

    @field_validator("RATE_LIMIT_INSTANCE_COUNT")
    def validate_instance_count(cls, v):
        return max(1, v)

    @property
    def access_token_ttl_seconds(self) -> int:
        if self.JWT_EXPIRATION_HOURS:
            return self.JWT_EXPIRATION_HOURS * 3600
        return self.ACCESS_TOKEN_EXPIRATION_MINUTES * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.REFRESH_TOKEN_EXPIRATION_DAYS * 86400

    @property
    def trusted_proxies(self) -> List[str]:
        return [p.strip() for p in self.RATE_LIMIT_TRUSTED_PROXIES.split(",") if p.strip()]

    def tier_policies(self) -> Dict[Tier, TierPolicy]:
        """Build the per-tier bucket policies.

        With per-instance memory buckets every instance enforces its share of
        the budget, so limits are divided by ``RATE_LIMIT_INSTANCE_COUNT``.
        """
        divisor = 1
        if self.RATE_LIMIT_BACKEND == "memory":
            divisor = self.RATE_LIMIT_INSTANCE_COUNT

        def share(value: int) -> int:
            if value <= 0 or divisor == 1:
                return value
            return max(1, math.ceil(value / divisor))

        policies = {}
        for tier in Tier:
            prefix = f"RATE_LIMIT_{tier.name}_"
            policies[tier] = TierPolicy(
                requests_per_minute=share(getattr(self, prefix + "PER_MINUTE")),
                requests_per_hour=share(getattr(self, prefix + "PER_HOUR")),
                burst_size=share(getattr(self, prefix + "BURST_SIZE")),
            )
        return policies


def load_settings(**overrides) -> Settings:
    """Load settings, turning validation failures into a fatal configuration error."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
