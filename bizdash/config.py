"""bizdash backend configuration."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Environment-driven settings for the dashboard backend."""

    environment: str = "development"
    log_level: str = "INFO"

    # Tenant API authentication
    jwt_secret: str = "CHANGE_ME_IN_PRODUCTION_64_CHAR_SECRET"
    jwt_algorithm: str = "HS256"
    token_ttl_seconds: int = 86400

    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Base URL advertised in webhook settings (callback URLs)
    public_base_url: str = "http://localhost:5000"

    # Redis stream mirror of tenant room events (off unless configured)
    redis_url: str = "redis://localhost:6379/0"
    bus_enabled: bool = False

    rate_limit: str = "120/minute"
    rate_limit_enabled: bool = True

    # Per-connection outbound queue for the real-time channel
    event_queue_size: int = Field(default=500, ge=1)

    model_config = {"env_prefix": "BIZDASH_", "env_file": ".env", "extra": "ignore"}

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
