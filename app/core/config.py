from functools import lru_cache
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

ALLOWED_ENV_FIELD_NAMES = frozenset(
    {
        "app_name",
        "app_env",
        "app_version",
        "api_prefix",
        "allowed_origins",
        "marketplace_api_url",
        "marketplace_api_timeout_seconds",
        "marketplace_api_user_agent",
        "local_timezone",
        "default_horizon_days",
        "max_horizon_days",
        "booking_match_tolerance_seconds",
        "min_booking_duration_minutes",
        "max_booking_duration_minutes",
        "cancellation_notice_hours",
    },
)


class Settings(BaseSettings):
    app_name: str = "Mentor Scheduling API"
    app_env: str = "development"
    app_version: str = "0.1.0"
    api_prefix: str = "/api"
    allowed_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]
    marketplace_api_url: str = "http://localhost:8080/api"
    marketplace_api_timeout_seconds: float = 10.0
    marketplace_api_user_agent: str = "MentorSchedulingBackend/1.0"
    local_timezone: str = "UTC"
    default_horizon_days: int = 14
    max_horizon_days: int = 60
    booking_match_tolerance_seconds: float = 1.0
    min_booking_duration_minutes: int = 30
    max_booking_duration_minutes: int = 180
    cancellation_notice_hours: float = 2.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def _filter_allowed_env_fields(source):
            return {
                field_name: raw_value
                for field_name, raw_value in source().items()
                if field_name in ALLOWED_ENV_FIELD_NAMES
            }

        return (
            init_settings,
            lambda: _filter_allowed_env_fields(env_settings),
            lambda: _filter_allowed_env_fields(dotenv_settings),
            file_secret_settings,
        )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("marketplace_api_url", mode="before")
    @classmethod
    def normalize_marketplace_api_url(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("local_timezone", mode="before")
    @classmethod
    def normalize_local_timezone(cls, value: str | None) -> str:
        cleaned = (value or "").strip()
        return cleaned or "UTC"

    @field_validator("marketplace_api_timeout_seconds", mode="before")
    @classmethod
    def normalize_marketplace_timeout(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value <= 0:
            return 10.0
        return parsed_value

    @field_validator("default_horizon_days", mode="before")
    @classmethod
    def normalize_default_horizon(cls, value: int | str) -> int:
        parsed_value = int(value)
        if parsed_value <= 0:
            return 14
        return parsed_value

    @field_validator("max_horizon_days", mode="before")
    @classmethod
    def normalize_max_horizon(cls, value: int | str) -> int:
        parsed_value = int(value)
        if parsed_value <= 0:
            return 60
        return parsed_value

    @field_validator("booking_match_tolerance_seconds", mode="before")
    @classmethod
    def normalize_match_tolerance(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value < 0:
            return 1.0
        return min(parsed_value, 60.0)


@lru_cache
def get_settings() -> Settings:
    return Settings()
