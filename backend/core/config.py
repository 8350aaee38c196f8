from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    frontend_origin: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("frontend_origin", "FRONTEND_ORIGIN"),
    )
    auto_create_schema: bool = Field(
        default=False,
        validation_alias=AliasChoices("auto_create_schema", "AUTO_CREATE_SCHEMA"),
    )

    # Cron trigger
    # Unset in production means the cron endpoint refuses every call.
    cron_secret: str | None = Field(default=None, validation_alias=AliasChoices("cron_secret", "CRON_SECRET"))
    cron_max_duration_seconds: float = Field(
        default=270.0,
        validation_alias=AliasChoices("cron_max_duration_seconds", "CRON_MAX_DURATION_SECONDS"),
    )
    # Overrides generationMonths * 30 for every series when set.
    default_lead_days: int | None = Field(
        default=None,
        validation_alias=AliasChoices("default_lead_days", "DEFAULT_LEAD_DAYS"),
    )

    # Class types whose series are scheduled one-off and never generated.
    special_class_type_name: str = Field(
        default="特別授業",
        validation_alias=AliasChoices("special_class_type_name", "SPECIAL_CLASS_TYPE_NAME"),
    )
    class_type_max_depth: int = Field(
        default=10,
        validation_alias=AliasChoices("class_type_max_depth", "CLASS_TYPE_MAX_DEPTH"),
    )

    @field_validator("frontend_origin")
    @classmethod
    def _normalize_frontend_origin(cls, v: str) -> str:
        # Starlette CORS expects the Origin to match exactly (no trailing slash).
        return v.strip().rstrip("/")

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()

    @field_validator("cron_secret")
    @classmethod
    def _normalize_cron_secret(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("default_lead_days")
    @classmethod
    def _validate_default_lead_days(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("DEFAULT_LEAD_DAYS must be >= 1")
        return v

    @field_validator("class_type_max_depth")
    @classmethod
    def _validate_class_type_max_depth(cls, v: int) -> int:
        if v < 1:
            raise ValueError("CLASS_TYPE_MAX_DEPTH must be >= 1")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
