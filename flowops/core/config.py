"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database (SQLite for local dev, PostgreSQL in production)
    DATABASE_URL: str = "sqlite:///./flowops.db"

    # CORS (admin console)
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute on /chat, 0 disables)
    RATE_LIMIT_CHAT: int = 60

    # Operators (JSON list of {id, name, role, token}); empty uses built-in trio
    OPERATORS_JSON: str = ""

    # Refund policy
    REFUND_MAX_AUTO_AMOUNT: float = 100.0
    REFUND_ENTERPRISE_REQUIRES_HUMAN: bool = True

    # Escalation policy
    ESCALATION_CONFIDENCE_THRESHOLD: float = 0.75
    HIGH_RISK_PLANS: str = "enterprise"  # comma-separated

    # Memory window used for continuity + recent-escalation safety net
    HISTORY_WINDOW: int = 5

    # Handoff SLA (pending must be claimed before this many minutes)
    SLA_MINUTES_ENTERPRISE: int = 15
    SLA_MINUTES_PRO: int = 60
    SLA_MINUTES_DEFAULT: int = 240
    SLA_POLL_INTERVAL_SECONDS: int = 10
    SLA_BATCH_SIZE: int = 25
    SLA_BREACH_WEBHOOK_URL: str = ""

    # Outbox dispatcher
    OUTBOX_POLL_INTERVAL_SECONDS: float = 1.0
    OUTBOX_MAX_ATTEMPTS: int = 8
    OUTBOX_BACKOFF_BASE_SECONDS: float = 1.0
    OUTBOX_BACKOFF_CAP_SECONDS: float = 60.0

    # Structured generation (OpenAI Responses API)
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    AI_TIMEOUT_SECONDS: float = 20.0

    # Email transport (Resend); empty key logs instead of sending
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "support@flowops.example"

    # Account/billing fact source; empty uses the static source
    FACTS_API_URL: str = ""
    FACTS_TIMEOUT_SECONDS: float = 5.0

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def high_risk_plans_list(self) -> list[str]:
        """Parse HIGH_RISK_PLANS into lowercase list."""
        return [p.strip().lower() for p in self.HIGH_RISK_PLANS.split(",") if p.strip()]


settings = Settings()
