"""
Configuration models for the commerce core service.

These models define the structure and validation for the config.json file.
Every section has defaults so an empty file produces a working setup.
"""

import json
import logging
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class DatabaseSettings(BaseModel):
    """Configuration for the SQLite database."""

    url: str = Field(
        "sqlite+aiosqlite:///data/commerce.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(False, description="Log every SQL statement")

    @field_validator("url")
    @classmethod
    def validate_async_driver(cls, v: str) -> str:
        if not v.startswith("sqlite+aiosqlite://"):
            raise ValueError("Database URL must use the sqlite+aiosqlite driver")
        return v


class PricingSettings(BaseModel):
    """Configuration for order totals and currency conversion."""

    bank_transfer_surcharge_rate: Decimal = Field(
        Decimal("0.04"),
        ge=0,
        le=1,
        description="Fraction of the subtotal added when paying by bank transfer",
    )
    default_exchange_rate: Decimal = Field(
        Decimal("1000"),
        gt=0,
        description="USD to ARS rate used when no live source is configured",
    )
    exchange_rate_url: str | None = Field(
        None,
        description="HTTP endpoint returning the current USD to ARS rate as JSON",
    )
    exchange_rate_field: str = Field(
        "venta", description="JSON field holding the rate in the HTTP response"
    )
    exchange_rate_cache_seconds: int = Field(
        300, gt=0, description="How long a fetched exchange rate is reused"
    )


class RoomSettings(BaseModel):
    """Configuration for job progress rooms."""

    max_members: int = Field(5, gt=0, description="Maximum connections per room")
    ttl_seconds: int = Field(1800, gt=0, description="Room lifetime in seconds")
    join_rate_limit: int = Field(
        10, gt=0, description="Join attempts allowed per connection per window"
    )
    join_rate_window_seconds: int = Field(
        60, gt=0, description="Rate limit window in seconds"
    )
    sweep_interval_seconds: int = Field(
        300, gt=0, description="Interval between expired room sweeps"
    )


class CatalogSettings(BaseModel):
    """Configuration for catalog generation."""

    output_dir: str = Field(
        "uploads/catalogs", description="Directory where catalog artifacts are saved"
    )
    title: str = Field("Product Catalog", description="Catalog document title")
    description: str = Field("", description="Catalog subtitle or description")
    client_name: str = Field("", description="Store name printed on the catalog")
    default_logo_url: str | None = Field(
        None, description="Logo used when the request does not provide one"
    )
    image_base_url: str = Field(
        "", description="Prefix applied to relative image paths"
    )
    placeholder_image: str = Field(
        "/images/placeholder.png", description="Image used when none is set"
    )
    timezone: str = Field(
        "America/Argentina/Buenos_Aires",
        description="Time zone used for the generated-at timestamp",
    )

    @field_validator("output_dir")
    @classmethod
    def validate_non_empty_paths(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Paths cannot be empty")
        return v.strip()


class AppConfig(BaseModel):
    """Main configuration model for the commerce core service."""

    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings, description="Database configuration"
    )
    pricing: PricingSettings = Field(
        default_factory=PricingSettings, description="Totals and currency settings"
    )
    rooms: RoomSettings = Field(
        default_factory=RoomSettings, description="Progress room settings"
    )
    catalog: CatalogSettings = Field(
        default_factory=CatalogSettings, description="Catalog generation settings"
    )
    api_key: str | None = Field(
        None, description="Bearer token required on mutating endpoints when set"
    )
    log_level: str = Field("INFO", description="Root log level")

    @classmethod
    def from_file(cls, file_path: str | Path) -> "AppConfig":
        """
        Load configuration from a JSON file.

        Args:
            file_path: Path to the configuration JSON file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the JSON is invalid or doesn't match the schema
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        try:
            with path.open("r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")

        return cls(**data)

    def to_file(self, file_path: str | Path) -> None:
        """
        Save configuration to a JSON file.

        Args:
            file_path: Path where to save the configuration file
        """
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)
