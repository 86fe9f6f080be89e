"""
Store layer — the only code in this service that talks to Postgres.

`ManagerStore` wraps the process-wide `async_session` factory. Each method
opens its own short-lived session so independent reads can run concurrently
(an AsyncSession must never be shared between concurrent tasks). Reads return
plain dicts; callers validate the shape. The only writes are score/decision
inserts and the cached latest-score columns on a campaign.
"""

import logging
from datetime import datetime
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ghoste_manager.models import (
    MetaCredential, SmartLink, LinkClickEvent, GhosteCampaign, CreativeAsset,
    PerformanceScore, ManagerDecision, ManagerKillswitch,
)
from ghoste_manager.utils import parse_uuid, utcnow

logger = logging.getLogger(__name__)


def _row_to_dict(row, columns: tuple[str, ...]) -> dict:
    out = {}
    for col in columns:
        value = getattr(row, col, None)
        # UUIDs go out as strings so value objects stay JSON-friendly
        if value is not None and col.endswith("id") and not isinstance(value, (str, int)):
            value = str(value)
        out[col] = value
    return out


CREDENTIAL_COLUMNS = (
    "owner_user_id", "access_token", "expires_at", "ad_account_id", "page_id",
    "pixel_id", "instagram_actor_id", "business_id", "updated_at",
)
LINK_COLUMNS = ("id", "owner_user_id", "title", "slug", "destination_url", "link_type", "created_at")
CLICK_COLUMNS = ("id", "link_id", "platform", "event_name", "created_at")
CAMPAIGN_COLUMNS = (
    "id", "owner_user_id", "campaign_name", "campaign_type", "status",
    "meta_campaign_id", "meta_adset_id", "smart_link_id", "creative_ids",
    "daily_budget_cents", "max_daily_budget_cents", "total_spend_cents",
    "automation_mode", "latest_score", "latest_grade", "latest_confidence",
    "latest_score_at", "created_at",
)
CREATIVE_COLUMNS = ("id", "owner_user_id", "file_url", "public_url", "media_type", "platform_ready", "created_at")
SCORE_COLUMNS = (
    "id", "entity_type", "entity_id", "platform", "score", "grade", "confidence",
    "reasons", "window_start", "window_end", "created_at",
)
DECISION_COLUMNS = (
    "id", "campaign_id", "action", "reason", "score_used", "confidence_used",
    "recommended_budget", "guardrails", "automation_mode", "requires_approval", "created_at",
)


class ManagerStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ── Credentials (canonical: meta_credentials only) ──────────────
    async def get_credential_row(self, owner_id: str) -> Optional[dict]:
        owner = parse_uuid(owner_id, "owner_id")
        if owner is None:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                select(MetaCredential).where(MetaCredential.owner_user_id == owner)
            )
            row = result.scalar_one_or_none()
            return _row_to_dict(row, CREDENTIAL_COLUMNS) if row else None

    # ── Clicks ──────────────────────────────────────────────────────
    async def list_click_events(
        self,
        owner_id: str,
        window_start: datetime,
        window_end: datetime,
        link_ids: Optional[list[str]] = None,
    ) -> list[dict]:
        owner = parse_uuid(owner_id, "owner_id")
        if owner is None:
            return []
        query = select(LinkClickEvent).where(
            LinkClickEvent.owner_user_id == owner,
            LinkClickEvent.created_at >= window_start,
            LinkClickEvent.created_at <= window_end,
        )
        if link_ids is not None:
            parsed = [u for u in (parse_uuid(i, "link_id") for i in link_ids) if u is not None]
            if not parsed:
                return []
            query = query.where(LinkClickEvent.link_id.in_(parsed))
        async with self._session_factory() as session:
            result = await session.execute(query.order_by(LinkClickEvent.created_at))
            return [_row_to_dict(r, CLICK_COLUMNS) for r in result.scalars().all()]

    # ── Links ───────────────────────────────────────────────────────
    async def list_smart_links(self, owner_id: str, limit: int = 50) -> list[dict]:
        owner = parse_uuid(owner_id, "owner_id")
        if owner is None:
            return []
        async with self._session_factory() as session:
            result = await session.execute(
                select(SmartLink)
                .where(SmartLink.owner_user_id == owner)
                .order_by(SmartLink.created_at.desc(), SmartLink.id)
                .limit(limit)
            )
            return [_row_to_dict(r, LINK_COLUMNS) for r in result.scalars().all()]

    async def get_smart_link(self, owner_id: str, link_id: str) -> Optional[dict]:
        owner, link = parse_uuid(owner_id, "owner_id"), parse_uuid(link_id, "link_id")
        if owner is None or link is None:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                select(SmartLink).where(SmartLink.id == link, SmartLink.owner_user_id == owner)
            )
            row = result.scalar_one_or_none()
            return _row_to_dict(row, LINK_COLUMNS) if row else None

    # ── Campaigns ───────────────────────────────────────────────────
    async def list_campaigns(self, owner_id: str, limit: int = 50) -> list[dict]:
        owner = parse_uuid(owner_id, "owner_id")
        if owner is None:
            return []
        async with self._session_factory() as session:
            result = await session.execute(
                select(GhosteCampaign)
                .where(GhosteCampaign.owner_user_id == owner)
                .order_by(GhosteCampaign.created_at.desc(), GhosteCampaign.id)
                .limit(limit)
            )
            return [_row_to_dict(r, CAMPAIGN_COLUMNS) for r in result.scalars().all()]

    async def get_campaign(self, owner_id: str, campaign_id: str) -> Optional[dict]:
        owner, cid = parse_uuid(owner_id, "owner_id"), parse_uuid(campaign_id, "campaign_id")
        if owner is None or cid is None:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                select(GhosteCampaign).where(GhosteCampaign.id == cid, GhosteCampaign.owner_user_id == owner)
            )
            row = result.scalar_one_or_none()
            return _row_to_dict(row, CAMPAIGN_COLUMNS) if row else None

    async def find_campaign_by_adset(self, owner_id: str, adset_id: str) -> Optional[dict]:
        owner = parse_uuid(owner_id, "owner_id")
        if owner is None or not adset_id:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                select(GhosteCampaign)
                .where(GhosteCampaign.owner_user_id == owner, GhosteCampaign.meta_adset_id == str(adset_id))
                .order_by(GhosteCampaign.created_at.desc())
                .limit(1)
            )
            row = result.scalars().first()
            return _row_to_dict(row, CAMPAIGN_COLUMNS) if row else None

    async def update_campaign_latest_score(
        self, owner_id: str, campaign_id: str, score: int, grade: str, confidence: str,
    ) -> None:
        """Cache the latest score on the campaign. Never touches budget or status."""
        owner, cid = parse_uuid(owner_id, "owner_id"), parse_uuid(campaign_id, "campaign_id")
        if owner is None or cid is None:
            return
        async with self._session_factory() as session:
            await session.execute(
                update(GhosteCampaign)
                .where(GhosteCampaign.id == cid, GhosteCampaign.owner_user_id == owner)
                .values(
                    latest_score=score,
                    latest_grade=grade,
                    latest_confidence=confidence,
                    latest_score_at=utcnow(),
                )
            )
            await session.commit()

    # ── Creatives ───────────────────────────────────────────────────
    async def list_creatives(self, owner_id: str, limit: int = 50) -> list[dict]:
        owner = parse_uuid(owner_id, "owner_id")
        if owner is None:
            return []
        async with self._session_factory() as session:
            result = await session.execute(
                select(CreativeAsset)
                .where(CreativeAsset.owner_user_id == owner)
                .order_by(CreativeAsset.created_at.desc(), CreativeAsset.id)
                .limit(limit)
            )
            return [_row_to_dict(r, CREATIVE_COLUMNS) for r in result.scalars().all()]

    async def get_creative(self, owner_id: str, creative_id: str) -> Optional[dict]:
        owner, asset = parse_uuid(owner_id, "owner_id"), parse_uuid(creative_id, "creative_id")
        if owner is None or asset is None:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                select(CreativeAsset).where(CreativeAsset.id == asset, CreativeAsset.owner_user_id == owner)
            )
            row = result.scalar_one_or_none()
            return _row_to_dict(row, CREATIVE_COLUMNS) if row else None

    # ── Scores (append-only) ────────────────────────────────────────
    async def insert_score(self, owner_id: str, record: dict) -> str:
        async with self._session_factory() as session:
            row = PerformanceScore(owner_user_id=parse_uuid(owner_id, "owner_id"), **record)
            session.add(row)
            await session.commit()
            return str(row.id)

    async def get_latest_score(self, owner_id: str, entity_type: str, entity_id: str) -> Optional[dict]:
        owner = parse_uuid(owner_id, "owner_id")
        if owner is None:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                select(PerformanceScore)
                .where(
                    PerformanceScore.owner_user_id == owner,
                    PerformanceScore.entity_type == entity_type,
                    PerformanceScore.entity_id == str(entity_id),
                )
                .order_by(PerformanceScore.created_at.desc())
                .limit(1)
            )
            row = result.scalars().first()
            return _row_to_dict(row, SCORE_COLUMNS) if row else None

    # ── Decisions (append-only operation log) ───────────────────────
    async def insert_decision(self, owner_id: str, record: dict) -> str:
        fields = dict(record)
        campaign_id = parse_uuid(fields.pop("campaign_id"), "campaign_id")
        async with self._session_factory() as session:
            row = ManagerDecision(
                owner_user_id=parse_uuid(owner_id, "owner_id"),
                campaign_id=campaign_id,
                **fields,
            )
            session.add(row)
            await session.commit()
            return str(row.id)

    async def list_decisions(self, owner_id: str, campaign_id: Optional[str] = None, limit: int = 50) -> list[dict]:
        owner = parse_uuid(owner_id, "owner_id")
        if owner is None:
            return []
        query = select(ManagerDecision).where(ManagerDecision.owner_user_id == owner)
        if campaign_id:
            cid = parse_uuid(campaign_id, "campaign_id")
            if cid is None:
                return []
            query = query.where(ManagerDecision.campaign_id == cid)
        async with self._session_factory() as session:
            result = await session.execute(query.order_by(ManagerDecision.created_at.desc()).limit(limit))
            return [_row_to_dict(r, DECISION_COLUMNS) for r in result.scalars().all()]

    # ── Killswitch ──────────────────────────────────────────────────
    async def get_killswitch(self) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(select(ManagerKillswitch).limit(1))
            row = result.scalars().first()
            if not row:
                return False
            return bool(row.disable_ai_actions or row.pause_all_ads)
