from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./dashboard.db"
    database_echo: bool = False

    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None

    # S3 / MinIO
    s3_endpoint_url: Optional[str] = "http://localhost:9000"
    s3_access_key: str = "minio"
    s3_secret_key: str = "minio123"
    s3_region: str = "us-east-1"
    s3_bucket: str = "dashboard-files"
    file_url_expiry_seconds: int = 3600

    # Analytics job
    usage_scheduler_enabled: bool = True
    usage_interval_seconds: int = 3600
    retention_days: int = 90
    active_window_hours: int = 24

    api_logging_enabled: bool = True
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
