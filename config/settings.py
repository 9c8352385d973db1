"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )

    # ===================
    # API SECURITY
    # ===================
    api_key: Optional[str] = Field(
        None,
        description="API key required in X-API-Key when set"
    )
    admin_api_key: Optional[str] = Field(
        None,
        description="Key required in X-Admin-Key for admin routes; admin routes are disabled when unset"
    )

    # ===================
    # MARKETPLACE
    # ===================
    marketplace_platform: str = Field(
        default="SHOPIFY",
        pattern="^(MERCHANT_API|SHOPIFY|WOOCOMMERCE|NIC_AND_ZOE)$",
        description="Storefront platform downstream products are synced to"
    )
    client_id: Optional[str] = Field(
        None,
        description="Client identifier tagged on outbound messages"
    )

    # ===================
    # CATALOG SYNC
    # ===================
    generated_sku_prefix: str = Field(
        default="CS-",
        max_length=20,
        description="Prefix for system generated variant SKUs"
    )
    batch_admission_threshold: float = Field(
        default=60.0,
        ge=0,
        le=100,
        description="Minimum percentage of valid products for a batch to proceed"
    )
    unlimited_stock_quantity: int = Field(
        default=1000,
        ge=1,
        description="Quantity used downstream to represent unlimited stock"
    )

    # ===================
    # MESSAGING (SQS)
    # ===================
    sqs_region: Optional[str] = Field(
        None,
        description="AWS region of the pusher queues"
    )
    sqs_access_key_id: Optional[str] = Field(
        None,
        description="AWS access key for the pusher queues"
    )
    sqs_secret_access_key: Optional[str] = Field(
        None,
        description="AWS secret key for the pusher queues"
    )
    sqs_pusher_url: Optional[str] = Field(
        None,
        description="Queue URL for status and image messages"
    )
    sqs_inventory_pusher_url: Optional[str] = Field(
        None,
        description="Queue URL for inventory/price messages (falls back to sqs_pusher_url)"
    )
    notification_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Threads used for fire-and-forget notification dispatch"
    )

    # ===================
    # SUPPLIER PRODUCT CACHE
    # ===================
    supplier_product_cache_url: Optional[str] = Field(
        None,
        description="Base URL of the supplier product cache service"
    )
    service_secret_key: Optional[str] = Field(
        None,
        description="Secret used to sign service-to-service tokens"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def pusher_configured(self) -> bool:
        """Check if the outbound queues are configured."""
        return bool(self.sqs_region and self.sqs_pusher_url)

    @property
    def supplier_product_cache_configured(self) -> bool:
        return bool(self.supplier_product_cache_url and self.service_secret_key)

    def is_among_platforms(self, *platforms: str) -> bool:
        """Check if the configured marketplace platform is one of `platforms`."""
        return self.marketplace_platform in platforms


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
