"""Service configuration, read from `IPLOCATE_*` environment variables and `.env`."""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BehaviorSettings(BaseModel):
    """Visitor behavior tracking."""

    # Seconds between two public requests after which a visit counts as a new one.
    time: int = Field(default=60, ge=0)


class Settings(BaseSettings):
    """Central configuration for provider selection and the IP cache."""

    model_config = SettingsConfigDict(
        env_prefix="IPLOCATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider name -> API key, or a bool to select/deselect a provider without a key.
    # Example: IPLOCATE_PROVIDERS='{"ipinfo.io": "token", "GeoIPLookup": false}'
    providers: dict[str, str | bool] = Field(default_factory=dict)
    restrict_api: bool = False
    randomize_providers: bool = True
    timeout_seconds: float = Field(default=5.0, gt=0)

    # IP cache
    cache_hold: bool = True
    cache_time: int = Field(default=3600, ge=0)
    cache_database_url: str | None = None
    save_statistics: bool = True
    behavior: BehaviorSettings = Field(default_factory=BehaviorSettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()
