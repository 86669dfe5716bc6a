"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Settings are validated once at startup and treated as immutable afterwards;
services receive the instance through their constructors.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr, field_validator
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
        extra="ignore",  # Ignore extra env vars
        frozen=True,
    )

    # ===================
    # INVENTORY SYSTEM (M1)
    # ===================
    inventory_base_url: str = Field(
        default="https://api.moysklad.ru/api/remap/1.2",
        description="Inventory system REST API base URL"
    )
    inventory_token: SecretStr = Field(
        ...,
        description="Inventory system bearer token"
    )
    inventory_page_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Rows requested per page from inventory list endpoints"
    )
    inventory_organization_id: Optional[str] = Field(
        None,
        description="Organization attached to created sales documents"
    )
    inventory_counterparty_id: Optional[str] = Field(
        None,
        description="Counterparty (buyer) attached to created sales documents"
    )
    inventory_store_id: Optional[str] = Field(
        None,
        description="Warehouse that reserves stock for created sales documents"
    )
    shipped_state_names: list[str] = Field(
        default_factory=lambda: ["Shipped", "Delivered"],
        description="Inventory order state names that count as shipped"
    )

    # ===================
    # MARKETPLACE (M2)
    # ===================
    marketplace_base_url: str = Field(
        default="https://api.partner.market.yandex.ru",
        description="Marketplace REST API base URL"
    )
    marketplace_token: SecretStr = Field(
        ...,
        description="Marketplace bearer token"
    )
    marketplace_campaign_id: str = Field(
        ...,
        min_length=1,
        description="Marketplace campaign (shop) identifier"
    )
    marketplace_warehouse_id: int = Field(
        default=0,
        ge=0,
        description="Marketplace warehouse the stock figures are pushed to"
    )
    new_order_status: str = Field(
        default="PROCESSING",
        description="Marketplace order status polled for new orders"
    )

    # ===================
    # SCHEDULE
    # ===================
    stock_sync_interval_minutes: int = Field(
        default=10,
        ge=1,
        le=1440,
        description="Minutes between scheduled full stock syncs"
    )
    order_poll_interval_minutes: int = Field(
        default=5,
        ge=1,
        le=1440,
        description="Minutes between marketplace order polls"
    )
    shipment_poll_interval_minutes: Optional[int] = Field(
        None,
        ge=1,
        le=1440,
        description="Minutes between shipment polls (defaults to order poll interval)"
    )
    scheduler_enabled: bool = Field(
        default=True,
        description="Start periodic jobs on application startup"
    )

    # ===================
    # STORAGE
    # ===================
    product_mapping_file: str = Field(
        default="./data/product-mappings.json",
        description="Path of the productId <-> offerId mapping document"
    )
    order_mapping_file: str = Field(
        default="./data/order-mappings.json",
        description="Path of the order mapping document"
    )
    create_missing_mapping_file: bool = Field(
        default=False,
        description="Create an empty mapping document when none exists at startup"
    )

    # ===================
    # HTTP CLIENTS
    # ===================
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout applied to every outbound HTTP call"
    )
    retry_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per outbound call before giving up"
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="First backoff delay; doubles on each retry"
    )
    retry_max_delay_seconds: float = Field(
        default=30.0,
        ge=0,
        le=600,
        description="Upper bound for any single retry delay, Retry-After included"
    )

    # ===================
    # WEBHOOKS & METRICS
    # ===================
    webhook_entity_type: str = Field(
        default="product",
        description="Entity type whose change events trigger a stock resync"
    )
    recent_errors_limit: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Size of the recent mapping error ring buffer"
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
        default=3000,
        ge=1000,
        le=65535,
        description="API port"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        """Accept lowercase level names (info, debug, ...)."""
        return v.upper() if isinstance(v, str) else v

    @field_validator("inventory_base_url", "marketplace_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def effective_shipment_poll_interval_minutes(self) -> int:
        """Shipment poll interval, falling back to the order poll interval."""
        return self.shipment_poll_interval_minutes or self.order_poll_interval_minutes

    def to_safe_dict(self) -> dict:
        """
        Settings as a dict suitable for logging.

        Credentials are replaced with a placeholder.
        """
        data = self.model_dump()
        data["inventory_token"] = "[REDACTED]"
        data["marketplace_token"] = "[REDACTED]"
        return data


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
