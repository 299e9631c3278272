from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "bioreport"
    db_username: str = "bioreport"
    db_password: str = "secret"
    db_pool_max_size: int = Field(default=10, ge=1)
    db_auto_migrate: bool = True

    registry_backend: str = "postgres"
    transport_backend: str = "postgres"

    upload_max_retries: int = Field(default=0, ge=0)
    extraction_max_retries: int = Field(default=2, ge=0)
    interpretation_max_retries: int = Field(default=2, ge=0)
    report_max_retries: int = Field(default=2, ge=0)

    upload_deadline_seconds: float = Field(default=600, gt=0)
    extraction_deadline_seconds: float = Field(default=300, gt=0)
    interpretation_deadline_seconds: float = Field(default=600, gt=0)
    report_deadline_seconds: float = Field(default=300, gt=0)

    ingestion_workers: int = Field(default=4, ge=1)
    event_poll_interval_seconds: float = Field(default=1.0, gt=0)
    event_visibility_timeout_seconds: int = Field(default=60, gt=0)
    event_max_deliveries: int = Field(default=10, ge=1)

    supervisor_interval_seconds: float = Field(default=15, gt=0)

    notification_queue_size: int = Field(default=16, ge=1)
    notification_flush_interval_seconds: float = Field(default=0.5, gt=0)
