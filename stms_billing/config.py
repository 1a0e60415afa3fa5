"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./stms_billing.db"

    # External Services
    billing_events_url: str = "http://localhost:8002/billing-events"

    # Service
    service_name: str = "stms-billing"
    log_level: str = "INFO"

    # Billing rules
    credit_enforcement: str = "advisory"  # advisory | strict
    default_credit_days: int = 30
    reconciliation_max_attempts: int = 3

    # HTTP Client
    http_timeout_seconds: float = 5.0
    webhook_max_retries: int = 5
    webhook_backoff_base: float = 1.0  # Exponential backoff base in seconds


settings = Settings()
