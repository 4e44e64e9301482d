"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./outreach.db"

    # Session tokens issued by the hosted auth provider (also signs OAuth state)
    JWT_SECRET: str = "change-this-in-production"

    # Google OAuth (per-user Gmail connection)
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    # Must exactly match the URI registered in Google Cloud Console
    GMAIL_REDIRECT_URI: str = "http://localhost:3000/auth/gmail-callback"

    # Token Encryption (for storing OAuth tokens)
    FERNET_KEY: str = ""  # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"

    # Outreach email
    GMAIL_OUTREACH_CC: str = "recruitment@theitbc.com"
    GMAIL_SUBJECT_PREFIX: str = "ITBC"

    # Timing (seconds)
    GMAIL_EXPIRY_MARGIN_SECONDS: int = 60  # Tokens expiring within this window count as expired
    GMAIL_CONNECTION_CACHE_SECONDS: int = 60
    GMAIL_CONNECT_ATTEMPT_TTL_SECONDS: int = 300
    GMAIL_OAUTH_STATE_MAX_AGE_SECONDS: int = 600

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def gmail_configured(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"


settings = Settings()
