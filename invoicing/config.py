from functools import lru_cache
from typing import List, Literal

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Invoicing Service")
    cors_origins: List[AnyHttpUrl] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )

    records_service_url: AnyHttpUrl | None = Field(default=None)
    payment_service_url: str = Field(default="http://localhost:3006")
    contact_service_url: AnyHttpUrl | None = Field(default=None)
    image_service_url: str = Field(default="http://localhost:3004")
    frontend_url: str = Field(default="http://localhost:3000")
    invoice_service_url: str = Field(default="http://localhost:8000")
    service_timeout: float = Field(default=10.0)
    use_mock_data: bool = Field(default=True)

    api_key: str | None = Field(default=None)
    service_name: str = Field(default="invoice-service")
    default_email_credential_id: str | None = Field(default=None)
    default_email_credential_key: str | None = Field(default=None)

    render_max_attempts: int = Field(default=3, ge=1)
    render_retry_delay: float = Field(default=1.0, ge=0.0)
    render_timeout: float = Field(default=30.0, gt=0.0)
    render_source: Literal["markup", "url"] = Field(default="markup")

    notify_on_create: bool = Field(default=True)
    two_phase_send: bool = Field(default=False)
    default_currency: str = Field(default="GBP")
    payment_terms_days: int = Field(default=30, ge=0)
    reference_max_attempts: int = Field(default=5, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="INVOICING_", env_file=".env", case_sensitive=False
    )

    @field_validator("cors_origins", mode="before")
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator(
        "payment_service_url",
        "image_service_url",
        "frontend_url",
        "invoice_service_url",
    )
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
