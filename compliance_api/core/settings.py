from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    JWT_SECRET: str | None = None
    LOG_LEVEL: str = "INFO"

    # Application URLs
    APP_BASE_URL: str = "http://localhost:8001"  # Default for development
    FRONTEND_URL: str | None = None

    # Xero OAuth configuration
    XERO_CLIENT_ID: str | None = None
    XERO_CLIENT_SECRET: str | None = None
    XERO_REDIRECT_URI: str | None = None
    XERO_CALLBACK_PATH: str = "/redirecturl"
    XERO_SCOPES: str = (
        "openid profile email offline_access accounting.transactions "
        "accounting.contacts accounting.settings"
    )
    XERO_OAUTH_STATE_TTL_SECONDS: int = 600  # 10 minutes

    # Xero request budgets (seconds). Request and token timeouts must fit
    # inside the live tier budget.
    XERO_REQUEST_TIMEOUT: float = 5.0
    XERO_TOKEN_EXCHANGE_TIMEOUT: float = 5.0
    XERO_LIVE_TIER_TIMEOUT: float = 8.0
    XERO_SECONDARY_TIER_TIMEOUT: float = 5.0

    # In-memory Xero sessions; evicted ones resume from the session store
    XERO_SESSION_CACHE_SIZE: int = 1000

    # Sample dataset service used when the live API is unavailable
    XERO_DEMO_DATA_URL: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def check_xero_timeouts(self) -> "Settings":
        """Reject request timeouts the live tier budget would cut short."""
        for name in ("XERO_REQUEST_TIMEOUT", "XERO_TOKEN_EXCHANGE_TIMEOUT"):
            if getattr(self, name) >= self.XERO_LIVE_TIER_TIMEOUT:
                raise ValueError(
                    f"{name} must be shorter than XERO_LIVE_TIER_TIMEOUT "
                    f"({self.XERO_LIVE_TIER_TIMEOUT}s)"
                )
        return self


settings = Settings()
