from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "classifieds-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None
    cloudinary_upload_url: str = "https://api.cloudinary.com/v1_1"
    upload_folder: str = "classifieds"
    upload_max_width: int = 1000
    upload_timeout_seconds: float = 30.0
    catalog_default_limit: int = 20
    catalog_max_limit: int = 100
    # When set, approving a previously rejected ad drops the stale rejection reason.
    approve_clears_rejection_reason: bool = False
    otel_enabled: bool = True
    otel_service_name: str = "classifieds-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(env_prefix="CM_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
