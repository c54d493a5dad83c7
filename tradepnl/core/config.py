"""Configuration management for the trade P&L service."""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_default_private_key() -> str:
    default_path = Path(__file__).resolve().parent / "../.." / "configs" / "dev-jwt.pem"
    if default_path.exists():
        return default_path.read_text(encoding="utf-8")
    raise FileNotFoundError("Default JWT private key not found. Provide JWT_PRIVATE_KEY environment variable.")


class Settings(BaseSettings):
    app_name: str = Field(default="Trade P&L Service")
    version: str = Field(default="0.1.0")
    docs_url: str | None = Field(default="/docs")
    redoc_url: str | None = Field(default="/redoc")
    openapi_url: str = Field(default="/openapi.json")

    database_url: str = Field(default="postgresql+psycopg://tradepnl:tradepnl@db:5432/tradepnl")

    aws_region: str = Field(default="us-east-1")
    s3_endpoint_url: str | None = Field(default=None)
    audit_log_bucket: str = Field(default="tradepnl-audit-logs")
    audit_log_prefix: str = Field(default="audit/records")
    audit_log_sample_rate: float = Field(default=1.0)

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=True)
    otel_exporter_endpoint: str | None = Field(default=None)

    jwt_algorithm: str = Field(default="RS256")
    jwt_private_key: str = Field(default_factory=_load_default_private_key)
    access_token_expire_minutes: int = Field(default=15)
    default_tenant_id: str = Field(default="tenant-demo")

    pnl_sales_to_spend_ratio: Decimal = Field(default=Decimal("4"), gt=Decimal("0"))
    pnl_cogs_ratio: Decimal = Field(default=Decimal("0.6"), ge=Decimal("0"))
    pnl_default_currency: str = Field(default="ZAR", min_length=3, max_length=3)
    pnl_generation_lease_seconds: int = Field(default=300, gt=0)
    pnl_enrichment_batch_size: int = Field(default=500, gt=0)
    pnl_list_default_limit: int = Field(default=50, gt=0)
    pnl_list_max_limit: int = Field(default=500, gt=0)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
