"""Engine configuration - environment-driven settings via pydantic-settings.

All settings can be overridden with VESTING_* environment variables or a
.env file, e.g. VESTING_DEFAULT_CLIFF_MONTHS=6 or VESTING_LOG_FORMAT=text.
get_settings() is cached: one instance per process.
"""

from functools import lru_cache
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas.base import VestingFrequency, DistributionMode, ScheduleKind


class VestingSettings(BaseSettings):
    """Settings for the vesting engine and its reference stores."""

    model_config = SettingsConfigDict(
        env_prefix="VESTING_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # Resolver tier 5 (hard defaults)
    default_duration_months: int = Field(default=48, gt=0)
    default_cliff_months: int = Field(default=12, ge=0)
    default_frequency: VestingFrequency = "annually"
    default_distribution_mode: DistributionMode = "percentage"
    default_schedule_kind: ScheduleKind = "time_based"

    # Batch regeneration
    batch_max_workers: int = Field(default=4, ge=1)

    # Reporting
    upcoming_window_days: int = Field(default=30, ge=0)

    # Storage
    database_url: str = "sqlite:///vesting.db"
    database_echo: bool = False

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    @model_validator(mode="after")
    def validate_default_cliff(self):
        if self.default_cliff_months > self.default_duration_months:
            raise ValueError("default_cliff_months cannot exceed default_duration_months")
        return self


@lru_cache
def get_settings() -> VestingSettings:
    return VestingSettings()
