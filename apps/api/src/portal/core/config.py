"""
Application Configuration

Settings are loaded from environment variables (or a .env file) using
pydantic-settings. Values that are lists may be given as comma-separated
strings in the environment.
"""

from datetime import date
from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(value: str | list[str] | None) -> list[str] | None:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    """Benefits portal settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
    )

    python_env: str = Field(default="development")
    api_v1_prefix: str = Field(default="/api/v1")

    # Redis (session store)
    redis_url: str = Field(default="redis://localhost:6379/0")

    # CORS
    cors_origins: str = Field(default="http://localhost:3000")

    # Browser session
    session_cookie_name: str = Field(default="portal_session")
    session_cookie_secure: bool = Field(default=False)
    session_ttl_seconds: int = Field(default=3600, ge=60)
    csrf_header_name: str = Field(default="X-CSRF-Token")

    # Flow state
    flow_state_ttl_minutes: int = Field(default=20, ge=1)

    # Recovery pages (where stale or expired flows are sent)
    apply_url_en: str = Field(
        default="https://www.canada.ca/en/services/benefits/dental/dental-care-plan/apply.html"
    )
    apply_url_fr: str = Field(
        default="https://www.canada.ca/fr/services/prestations/dentaire/regime-soins-dentaires/demande.html"
    )
    protected_apply_url_en: str = Field(default="/en/protected/apply")
    protected_apply_url_fr: str = Field(default="/fr/protege/demander")

    # Reference codes
    marital_status_codes_with_partner: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["married", "commonlaw"]
    )
    communication_method_email_ids: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["email", "gc-digital"]
    )

    # Renewal period (inclusive); renewal context is never selected when unset
    renewal_period_start_date: date | None = None
    renewal_period_end_date: date | None = None

    # Application year reference data
    application_year_id: str = Field(default="2025-2026")
    tax_year: str = Field(default="2024")
    coverage_start_date: date = Field(default=date(2025, 7, 1))
    dependent_eligibility_end_date: date | None = None

    @field_validator(
        "marital_status_codes_with_partner",
        "communication_method_email_ids",
        mode="before",
    )
    @classmethod
    def split_comma_separated(cls, v: str | list[str] | None) -> list[str] | None:
        """Accept comma-separated strings from the environment."""
        return _split_csv(v)

    @property
    def is_production(self) -> bool:
        return self.python_env == "production"

    @property
    def is_development(self) -> bool:
        return self.python_env == "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
