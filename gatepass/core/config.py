
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration loaded from environment variables / .env file."""

    app_name: str = "GatePass API"
    app_env: str = "development"
    app_port: int = 8000
    frontend_url: str = "http://localhost:3000"

    # Database (PostgreSQL via asyncpg in production, SQLite for local dev)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./gatepass_dev.db",
        alias="DATABASE_URL",
    )
    auto_create_tables: bool = Field(default=True, alias="AUTO_CREATE_TABLES")

    # QR codes
    qr_code_prefix: str = Field(default="SG_", alias="QR_CODE_PREFIX")
    qr_code_expiry_hours: int = Field(default=24, alias="QR_CODE_EXPIRY_HOURS")

    # Visit lifecycle
    visit_expiry_grace_minutes: int = Field(
        default=120, alias="VISIT_EXPIRY_GRACE_MINUTES",
    )  # pending visits older than expected_start + grace are expired
    scan_max_retries: int = Field(
        default=3, alias="SCAN_MAX_RETRIES",
    )  # optimistic-lock retries before a scan answers "try again"

    # Event notifier (audit log + host notification outbox)
    notifier_max_attempts: int = Field(default=3, alias="NOTIFIER_MAX_ATTEMPTS")
    notifier_retry_delay_seconds: float = Field(
        default=0.5, alias="NOTIFIER_RETRY_DELAY_SECONDS",
    )

    # Background sweeps
    sweep_enabled: bool = Field(default=True, alias="SWEEP_ENABLED")
    visit_sweep_interval_minutes: int = Field(default=5, alias="VISIT_SWEEP_INTERVAL_MINUTES")
    ban_sweep_interval_minutes: int = Field(default=60, alias="BAN_SWEEP_INTERVAL_MINUTES")

    # Phone normalisation
    default_country_code: str = Field(default="+234", alias="DEFAULT_COUNTRY_CODE")

    # Licensing
    default_total_licenses: int = Field(default=250, alias="DEFAULT_TOTAL_LICENSES")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

settings = Settings()
