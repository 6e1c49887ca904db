"""Configuration from env. Accepts both naming conventions used by the old Node jobs."""

import logging
import sys
from decimal import Decimal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Shopify Admin API
    SHOPIFY_DOMAIN: str = Field("", validation_alias=AliasChoices("SHOPIFY_DOMAIN", "SHOPIFY_STORE_DOMAIN"))
    SHOPIFY_TOKEN: str = Field("", validation_alias=AliasChoices("SHOPIFY_TOKEN", "SHOPIFY_ADMIN_TOKEN"))
    SHOPIFY_API_VERSION: str = "2024-07"

    # SIFAM (proxy first, direct API as fallback)
    PROXY_BASE: str = Field(
        "https://sifam-proxy.onrender.com",
        validation_alias=AliasChoices("PROXY_BASE", "PROXY_URL"),
    )
    SIFAM_API_BASE: str = "http://api.sifam.fr"
    SIFAM_API_KEY: str = ""

    # Run scope
    ONLY_SKU: str = ""
    MAX_UPDATES: int = Field(0, ge=0, validation_alias=AliasChoices("MAX_UPDATES", "MAX_UPLOADS"))
    THROTTLE_SECONDS: float = 0.25
    RETRY_BASE_DELAY: float = 0.8

    # Pricing
    VAT_RATE: Decimal = Decimal("0")
    CURRENCY_DECIMALS: int = Field(2, ge=0, le=4)

    # Files
    CATEGORY_MAP_PATH: str = "./category-map.json"
    UNCATEGORIZED_CSV: str = "./uncategorized.csv"
    MAX_IMAGE_BYTES: int = 20 * 1024 * 1024

    # Proxy service
    CACHE_TTL_SECONDS: float = 300.0
    CORS_ORIGIN_PATTERNS: list[str] = [r"\.myshopify\.com$", r"^https://.*\.onrender\.com$"]
    ORDER_CLIENT_CODE: str = "2"
    ORDER_PREFIX: str = "XXX"
    PORT: int = 3000

    LOG_LEVEL: str = "INFO"

    @property
    def shopify_ok(self) -> bool:
        return bool(self.SHOPIFY_DOMAIN and self.SHOPIFY_TOKEN)

    @property
    def sifam_direct_ok(self) -> bool:
        return bool(self.SIFAM_API_KEY)


def require_shopify(cfg: Settings) -> None:
    """Fail before any loop starts when Shopify credentials are missing."""
    if not cfg.SHOPIFY_DOMAIN:
        raise ConfigurationError("SHOPIFY_DOMAIN / SHOPIFY_STORE_DOMAIN missing")
    if not cfg.SHOPIFY_TOKEN:
        raise ConfigurationError("SHOPIFY_TOKEN / SHOPIFY_ADMIN_TOKEN missing")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


settings = Settings()
