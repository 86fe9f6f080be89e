"""
Value objects passed between the resolver, aggregator, score engine and
decision engine. All are immutable; JSON uses camelCase field names.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ghoste_manager.models import (
    AutomationMode, Confidence, EntityType, Grade, ManagerAction,
)

REQUIRED_ASSETS = ("adAccountId", "pageId")


class ValueObject(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        use_enum_values=True,
    )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ── Connection ───────────────────────────────────────────────────────
class ConnectionStatus(ValueObject):
    connected: bool = False
    assets_configured: bool = False
    ad_account_id: Optional[str] = None
    page_id: Optional[str] = None
    pixel_id: Optional[str] = None
    instagram_actor_id: Optional[str] = None
    missing_assets: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    has_token: bool = False
    token_expired: bool = False

    @model_validator(mode="after")
    def _check_invariants(self) -> "ConnectionStatus":
        ids = (self.ad_account_id, self.page_id, self.pixel_id, self.instagram_actor_id)
        if not self.connected and any(i is not None for i in ids):
            raise ValueError("A disconnected status cannot carry asset ids")
        if self.assets_configured and (self.ad_account_id is None or self.page_id is None):
            raise ValueError("assetsConfigured requires adAccountId and pageId")
        if self.assets_configured and self.missing_assets:
            raise ValueError("assetsConfigured cannot list missing assets")
        if self.connected and not self.assets_configured and not self.missing_assets:
            raise ValueError("A connection without configured assets must name the missing ones")
        return self

    @classmethod
    def not_connected(cls, error: Optional[str] = None) -> "ConnectionStatus":
        return cls(connected=False, error=error)


# ── Context pieces ───────────────────────────────────────────────────
class LinkSummary(ValueObject):
    id: str
    slug: str
    title: Optional[str] = None
    destination_url: Optional[str] = None
    link_type: str = "smart"
    created_at: Optional[datetime] = None


class CampaignSummary(ValueObject):
    id: str
    name: str
    status: str
    goal: Optional[str] = None
    optimization_event: Optional[str] = None
    automation_mode: AutomationMode = AutomationMode.MANUAL
    daily_budget: float = 0.0
    max_daily_budget: Optional[float] = None
    total_spend: float = 0.0
    smart_link_id: Optional[str] = None
    latest_score: Optional[int] = None
    latest_grade: Optional[Grade] = None
    latest_confidence: Optional[Confidence] = None
    created_at: Optional[datetime] = None


class CreativeRef(ValueObject):
    id: str
    url: str
    platform_ready: bool = False
    media_type: Optional[str] = None


class PlatformClicks(ValueObject):
    platform: str
    clicks: int


class LinkClicks(ValueObject):
    link_id: str
    slug: Optional[str] = None
    clicks: int


class TrackingSignals(ValueObject):
    total_clicks: int = 0
    platform_clicks: int = 0
    one_click_rate: float = 0.0
    window_start: datetime
    window_end: datetime
    top_platforms: list[PlatformClicks] = Field(default_factory=list)
    top_links: list[LinkClicks] = Field(default_factory=list)


class ContextSummary(ValueObject):
    active_campaigns: int = 0
    total_spend: float = 0.0
    total_clicks: int = 0
    platform_ready_creatives: int = 0
    opportunities: list[str] = Field(default_factory=list)


class ManagerContext(ValueObject):
    owner_id: str
    connection: ConnectionStatus
    smart_links: list[LinkSummary] = Field(default_factory=list)
    campaigns: list[CampaignSummary] = Field(default_factory=list)
    uploaded_creatives: list[CreativeRef] = Field(default_factory=list)
    tracking_signals: TrackingSignals
    summary: ContextSummary = Field(default_factory=ContextSummary)
    errors: list[str] = Field(default_factory=list)
    generated_at: datetime


# ── Scoring ──────────────────────────────────────────────────────────
class Score(ValueObject):
    entity_type: EntityType
    entity_id: str
    score: int = Field(ge=1, le=100)
    grade: Grade
    confidence: Confidence
    reasons: list[str] = Field(default_factory=list)
    window_start: datetime
    window_end: datetime
    platform: Optional[str] = None


# ── Decisions ────────────────────────────────────────────────────────
class CampaignState(ValueObject):
    """Account-side inputs to the decision engine. Budgets are currency units."""

    campaign_id: str
    automation_mode: AutomationMode
    current_budget: float = Field(ge=0)
    max_budget: float = Field(ge=0)
    campaign_age_days: float = Field(ge=0)
    killswitch_active: bool = False
    # False when no unused platform-ready creative exists to rotate in
    has_alternate_creative: bool = True
    # None when the campaign goal places no restriction on actions
    allowed_actions: Optional[list[ManagerAction]] = None


class Decision(ValueObject):
    action: ManagerAction
    reason: str
    score_used: Optional[int] = None
    confidence_used: Optional[Confidence] = None
    recommended_budget: Optional[float] = None
    guardrails: list[str] = Field(default_factory=list)
    requires_approval: bool = True
    auto_apply_allowed: bool = False
    campaign_id: Optional[str] = None


class DecisionRecord(ValueObject):
    """A logged decision as stored in the operation history."""

    id: str
    campaign_id: str
    action: ManagerAction
    reason: str
    score_used: Optional[int] = None
    confidence_used: Optional[Confidence] = None
    recommended_budget: Optional[float] = None
    guardrails: list[str] = Field(default_factory=list)
    automation_mode: Optional[AutomationMode] = None
    requires_approval: bool = True
    created_at: Optional[datetime] = None
