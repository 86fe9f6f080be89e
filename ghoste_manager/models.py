"""
Ghoste Manager — Database Models
Tables shared with the Supabase project. This service reads credentials,
links, clicks, campaigns and creatives, and only ever inserts scores and
decisions (plus the cached latest-score columns on campaigns).
"""

import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, Float, Integer, Boolean, DateTime,
    JSON, ForeignKey, Index,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID
from ghoste_manager.database import Base


def _utcnow() -> datetime:
    """Naive UTC now — matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class EntityType(str, enum.Enum):
    CAMPAIGN = "campaign"
    ADSET = "adset"
    LINK = "link"
    ARTIST = "artist"
    CREATIVE = "creative"


class Grade(str, enum.Enum):
    FAIL = "fail"
    WEAK = "weak"
    PASS = "pass"
    STRONG = "strong"


class Confidence(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ManagerAction(str, enum.Enum):
    SCALE_UP = "scale_up"
    MAINTAIN = "maintain"
    ROTATE_CREATIVE = "rotate_creative"
    TIGHTEN_AUDIENCE = "tighten_audience"
    PAUSE = "pause"
    TEST_VARIATION = "test_variation"


class AutomationMode(str, enum.Enum):
    MANUAL = "manual"
    GUIDED = "guided"
    AUTONOMOUS = "autonomous"


class LinkType(str, enum.Enum):
    SMART = "smart"
    ONE_CLICK = "one_click"


# ══════════════════════════════════════════════════════════════════════
#  META CREDENTIALS: the canonical connection store (one row per owner)
# ══════════════════════════════════════════════════════════════════════

class MetaCredential(Base):
    """Meta connection + selected assets. The only source for "is Meta connected"."""
    __tablename__ = "meta_credentials"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, unique=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    ad_account_id: Mapped[str] = mapped_column(String(255), nullable=True)
    page_id: Mapped[str] = mapped_column(String(255), nullable=True)
    pixel_id: Mapped[str] = mapped_column(String(255), nullable=True)
    instagram_actor_id: Mapped[str] = mapped_column(String(255), nullable=True)
    business_id: Mapped[str] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


# ══════════════════════════════════════════════════════════════════════
#  SMART LINKS + CLICK EVENTS: first-party signals
# ══════════════════════════════════════════════════════════════════════

class SmartLink(Base):
    """Smart links and one-click links owned by an artist."""
    __tablename__ = "smart_links"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    destination_url: Mapped[str] = mapped_column(Text, nullable=True)
    link_type: Mapped[str] = mapped_column(String(20), default=LinkType.SMART.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_smart_links_owner_user_id", "owner_user_id"),
        Index("ix_smart_links_slug", "slug"),
    )


class LinkClickEvent(Base):
    """Click/redirect events recorded by the link resolver."""
    __tablename__ = "link_click_events"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    link_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("smart_links.id", ondelete="SET NULL"), nullable=True)
    platform: Mapped[str] = mapped_column(String(50), nullable=True)  # spotify, applemusic, youtube, ...
    event_name: Mapped[str] = mapped_column(String(100), nullable=True)  # smartlink_click, oneclick_spotify, ...
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_link_click_events_owner_created", "owner_user_id", "created_at"),
        Index("ix_link_click_events_link_id", "link_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGNS: Ghoste campaign records (written by the Apply step)
# ══════════════════════════════════════════════════════════════════════

class GhosteCampaign(Base):
    """
    Campaign record. Budget and status belong to the Apply step; this service
    only writes the latest_* score cache columns.
    """
    __tablename__ = "ghoste_campaigns"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    campaign_name: Mapped[str] = mapped_column(String(512), nullable=False)
    campaign_type: Mapped[str] = mapped_column(String(50), nullable=True)  # goal: streams, traffic, ...
    status: Mapped[str] = mapped_column(String(50), default="draft")
    meta_campaign_id: Mapped[str] = mapped_column(String(255), nullable=True)
    meta_adset_id: Mapped[str] = mapped_column(String(255), nullable=True)
    smart_link_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=True)
    creative_ids: Mapped[list] = mapped_column(JSON, nullable=True)
    daily_budget_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_daily_budget_cents: Mapped[int] = mapped_column(Integer, nullable=True)
    total_spend_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    automation_mode: Mapped[str] = mapped_column(String(20), default=AutomationMode.MANUAL.value)
    latest_score: Mapped[int] = mapped_column(Integer, nullable=True)
    latest_grade: Mapped[str] = mapped_column(String(20), nullable=True)
    latest_confidence: Mapped[str] = mapped_column(String(20), nullable=True)
    latest_score_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_ghoste_campaigns_owner_user_id", "owner_user_id"),
        Index("ix_ghoste_campaigns_meta_adset_id", "meta_adset_id"),
        Index("ix_ghoste_campaigns_status", "status"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CREATIVES: uploaded media references
# ══════════════════════════════════════════════════════════════════════

class CreativeAsset(Base):
    """Uploaded media asset. platform_ready = usable by the ad platform as-is."""
    __tablename__ = "creative_assets"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    file_url: Mapped[str] = mapped_column(Text, nullable=True)
    public_url: Mapped[str] = mapped_column(Text, nullable=True)
    media_type: Mapped[str] = mapped_column(String(20), nullable=True)  # video / image
    platform_ready: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_creative_assets_owner_user_id", "owner_user_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  SCORES + DECISIONS: append-only
# ══════════════════════════════════════════════════════════════════════

class PerformanceScore(Base):
    """Immutable score record. Holds no raw third-party metric values."""
    __tablename__ = "performance_scores"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    grade: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence: Mapped[str] = mapped_column(String(20), nullable=False)
    reasons: Mapped[list] = mapped_column(JSON, nullable=True)
    window_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    window_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_performance_scores_entity", "owner_user_id", "entity_type", "entity_id", "created_at"),
    )


class ManagerDecision(Base):
    """Operation log of every recommended action (sanitized fields only)."""
    __tablename__ = "manager_decisions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    campaign_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    score_used: Mapped[int] = mapped_column(Integer, nullable=True)
    confidence_used: Mapped[str] = mapped_column(String(20), nullable=True)
    recommended_budget: Mapped[float] = mapped_column(Float, nullable=True)
    guardrails: Mapped[list] = mapped_column(JSON, nullable=True)
    automation_mode: Mapped[str] = mapped_column(String(20), nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_manager_decisions_campaign", "owner_user_id", "campaign_id", "created_at"),
    )


class ManagerKillswitch(Base):
    """Global switch that disables automated spend increases."""
    __tablename__ = "manager_killswitch"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    disable_ai_actions: Mapped[bool] = mapped_column(Boolean, default=False)
    pause_all_ads: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)
