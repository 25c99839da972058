"""Engine configuration loaded from the environment.

All settings can be overridden via environment variables with the prefix
``CHAT_INVOICE_`` (for example ``CHAT_INVOICE_LOG_LEVEL=DEBUG``) or a local
``.env`` file.
"""
from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CHAT_INVOICE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    timezone: str = Field(
        default="Asia/Jakarta",
        description="Timezone used to decide the calendar day of a new invoice",
    )
    currency: str = Field(default="IDR", description="Currency code (ISO 4217)")

    # Numbering
    fallback_business_code: str = Field(
        default="BIZ",
        description="Code used in invoice/order numbers when the business has none",
    )
    derive_code_from_name: bool = Field(
        default=False,
        description="Derive a missing business code from the business name",
    )
    number_max_attempts: int = Field(
        default=100,
        ge=1,
        description="Suffix draws before number generation gives up",
    )

    # Payment schedule defaults
    default_down_payment_percentage: float = Field(default=30, gt=0, le=100)
    down_payment_days: int = Field(default=15, ge=0)
    final_payment_days: int = Field(default=30, ge=0)

    # Catalog
    catalog_fuzzy_matching: bool = Field(
        default=True,
        description="Fall back to similarity matching when no catalog name matches exactly",
    )
    catalog_fuzzy_cutoff: float = Field(default=0.8, ge=0, le=1)
    catalog_auto_learning: bool = Field(
        default=False,
        description="Unsupported: product names and the catalog are never rewritten",
    )
    catalog_path: Optional[Path] = Field(default=None, description="JSON catalog file")

    record_store_path: Optional[Path] = Field(
        default=None,
        description="JSON file backing the record store; in-memory when unset",
    )


def get_settings() -> Settings:
    return Settings()
