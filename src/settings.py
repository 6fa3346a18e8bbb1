"""
Settings module for the Work Allocation & Scoring Engine.

Environment-based configuration with sensible defaults.
Every setting can be overridden with a ``WORKTRACK_``-prefixed environment
variable (e.g. ``WORKTRACK_BM_REWORK=8``) or a local ``.env`` file.

The scoring knobs here are only *defaults*: values stored through the
config endpoint take precedence at runtime (see PolicyConfig.resolve).
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from model import PolicyConfig
from scope import MalformedScopePolicy, OverlapGranularity


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # Environment
    environment: str = Field(
        default="development",
        description="Environment name (development, staging, production)"
    )
    app_name: str = Field(
        default="Work Allocation & Scoring Engine",
        description="Title shown in the OpenAPI docs"
    )

    # API Configuration
    api_host: str = Field(default="127.0.0.1", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    api_reload: bool = Field(default=False, description="Auto-reload on code changes")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by the CORS middleware"
    )

    # Scoring policy defaults
    bonus_on_time: float = Field(default=3, ge=0, description="Bonus for finishing on or before the ETA")
    bonus_star_3: float = Field(default=1, ge=0, description="Bonus for a 3-star rating")
    bonus_star_4: float = Field(default=2, ge=0, description="Bonus for a 4-star rating")
    bonus_star_5: float = Field(default=3, ge=0, description="Bonus for a 5-star rating")
    bm_delay_per_hr: float = Field(default=1, ge=0, description="Blackmarks per whole hour late (after the first)")
    bm_rework: float = Field(default=5, ge=0, description="Flat blackmark penalty per rework culprit")
    allow_time_edit: int = Field(
        default=0, ge=0, le=1,
        description="1 lets members submit a custom completion time"
    )

    # Rework culprit matching
    rework_overlap_granularity: OverlapGranularity = Field(
        default=OverlapGranularity.DIVISION_PART,
        description="division_part (work type ignored) or unit (full triple)"
    )
    malformed_scope_policy: MalformedScopePolicy = Field(
        default=MalformedScopePolicy.FAIL_CLOSED,
        description="fail_closed raises on unparsable historical scopes; fail_open skips them"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON log lines instead of readable ones")

    model_config = SettingsConfigDict(
        env_prefix="WORKTRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def policy_defaults(self) -> PolicyConfig:
        """Scoring defaults that stored config overrides are merged over."""
        return PolicyConfig(
            bonus_on_time=self.bonus_on_time,
            bonus_star_3=self.bonus_star_3,
            bonus_star_4=self.bonus_star_4,
            bonus_star_5=self.bonus_star_5,
            bm_delay_per_hr=self.bm_delay_per_hr,
            bm_rework=self.bm_rework,
            allow_time_edit=self.allow_time_edit,
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    To reload after changing the environment, call
    ``get_settings.cache_clear()``.
    """
    return Settings()
