import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):

    port: int = 8000
    environment: str = "development"

    postgres_user: str = os.getenv("POSTGRES_USER", "user")
    postgres_password: str = os.getenv("POSTGRES_PASSWORD", "password")
    postgres_db: str = os.getenv("POSTGRES_DB", "examica_db")
    postgres_host: str = os.getenv("POSTGRES_HOST", "db")
    postgres_port: int = 5432

    # Full async URL (DATABASE_URL), takes precedence over the postgres_* parts
    database_url: Optional[str] = None

    @property
    def async_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 120

    cors_origins_str: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins_str.split(",")]

    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # "redis" for multi-instance deployments, "memory" for a single process
    store_backend: str = "redis"

    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")

    default_timezone: str = "UTC"
    timezone_display_format: str = "%d.%m.%Y, %H:%M:%S"

    answer_cache_grace_seconds: int = 300
    unlimited_exam_cache_minutes: int = 480
    cache_flush_lead_seconds: int = 120
    reconciliation_max_retries: int = 3

    facial_recognition_enabled: bool = True
    verification_window_minutes: int = 60
    similarity_threshold: float = 80.0
    biometric_timeout_seconds: float = 15.0

    max_session_duration_hours: int = 8
    security_event_cap: int = 1000
    security_event_max_age_hours: int = 24

    aws_region: str = "us-east-1"
    face_reference_bucket: str = "examica-face-references"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
