"""Settings for the coursedesk admin consoles."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    api_base_url: str = _env_field("http://localhost:5000/api", "COURSEDESK_API_URL", "API_URL")
    api_token: Optional[str] = _env_field(None, "COURSEDESK_API_TOKEN", "API_TOKEN")
    api_timeout_seconds: float = _env_field(10.0, "API_TIMEOUT_SECONDS")

    # Undo affordances stay live for this long after a successful transition
    undo_window_seconds: float = _env_field(5.0, "UNDO_WINDOW_SECONDS")
    default_page_size: int = _env_field(20, "DEFAULT_PAGE_SIZE")
    max_page_size: int = _env_field(100, "MAX_PAGE_SIZE")
    page_size_choices: Any = _env_field((10, 20, 50, 100), "PAGE_SIZE_CHOICES")

    dashboard_refresh_seconds: float = _env_field(300.0, "DASHBOARD_REFRESH_SECONDS")
    activities_limit: int = _env_field(5, "ACTIVITIES_LIMIT")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    service_name: str = _env_field("coursedesk-admin", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development")

    @field_validator("api_base_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("page_size_choices", mode="before")
    @classmethod
    def _split_page_sizes(cls, value):
        """Accept ``"10,20,50"`` from the environment as well as sequences."""
        if value in (None, ""):
            return (10, 20, 50, 100)
        if isinstance(value, str):
            return tuple(int(part) for part in value.split(",") if part.strip())
        return tuple(int(item) for item in value)

    def clamp_page_size(self, page_size: int) -> int:
        if page_size <= 0:
            return 1
        return min(page_size, self.max_page_size)


settings = Settings()
