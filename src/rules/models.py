from pydantic import BaseModel, Field, field_validator

from src.core.services.analytics_dedupe import (
    DEFAULT_WINDOW_SECONDS,
    clamp_window_seconds,
)


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class TrackingRules(BaseModel):
    token_lifetime_days: int = Field(default=14, ge=1, le=365)
    dedup_window_seconds: int = DEFAULT_WINDOW_SECONDS
    max_time_spent_seconds: int = Field(default=86400, ge=1)

    # Out-of-range windows are clamped, not rejected
    @field_validator("dedup_window_seconds")
    @classmethod
    def _clamp_window(cls, value: int) -> int:
        return clamp_window_seconds(value)


class AnalyticsRules(BaseModel):
    view_event_types: list[str] = Field(default_factory=lambda: ["page_view"])
    min_time_spent_seconds: float = Field(default=1, ge=0)


class OpsRules(BaseModel):
    data_dir_required: bool = False
    required_env: list[str] = Field(default_factory=lambda: ["TRACKING_TOKEN_SECRET"])


class Rules(BaseModel):
    project: ProjectRules | None = None
    tracking: TrackingRules = Field(default_factory=TrackingRules)
    analytics: AnalyticsRules = Field(default_factory=AnalyticsRules)
    ops: OpsRules = Field(default_factory=OpsRules)
