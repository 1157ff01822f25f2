from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "PlanIt Contracts"
    environment: str = "dev"
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # ─────────── DATABASE ───────────
    database_url: str = "sqlite:///./planit_contracts.db"

    # ─────────── STORAGE ───────────
    storage_backend: str = "local"  # local | s3
    upload_dir: str = "uploads"
    public_base_url: str = "http://localhost:8000/files"
    api_base_url: str = "http://localhost:8000"

    s3_endpoint_url: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_bucket_name: str = "planit-contracts"
    s3_region: str = "auto"
    s3_presigned_url_expiration: int = 3600
    # stable base for stored S3 URLs; defaults to the /assets redirect route
    s3_public_base_url: Optional[str] = None

    # ─────────── CONTRACTS ───────────
    max_contract_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    contract_expiration_days: int = 30

    # ─────────── COLLABORATORS ───────────
    ip_lookup_url: str = "https://api.ipify.org?format=json"
    ip_lookup_timeout_seconds: float = 5.0

    # ─────────── JOBS ───────────
    asset_sweep_interval_hours: int = 24
    orphan_asset_min_age_hours: int = 24


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
