from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Bulk Price Editor API"
    env: str = "dev"
    log_level: str = "INFO"
    database_url: str = Field(default="sqlite:///./price_editor.db")
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_enabled: bool = True
    cache_schema_version: str = "1"
    admin_token: str = "dev-admin-token"
    app_url: str = "http://localhost:8000"

    shopify_api_version: str = "2025-10"
    shopify_api_secret: str = "dev-shopify-secret"
    shopify_timeout_seconds: float = 20.0
    shopify_max_retries: int = 2
    shopify_retry_backoff_seconds: float = 0.5
    billing_test_charges: bool = False

    adjustment_lock_ttl_seconds: int = 600
    options_cache_ttl_seconds: int = 300

    default_plan_name: str = "Basic"
    default_plan_price: str = "9.99"
    default_currency: str = "USD"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="PRICE_EDITOR_")


@lru_cache
def get_settings() -> Settings:
    return Settings()
