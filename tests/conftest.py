"""
Shared fixtures: an in-memory store with the ManagerStore surface, a fake
analytics source and row builders.
"""

import asyncio
import uuid
from collections import Counter
from datetime import timedelta
from typing import Optional

import pytest

from ghoste_manager.config import Settings
from ghoste_manager.services.analytics_source import AnalyticsSource
from ghoste_manager.utils import utcnow

OWNER_ID = "11111111-1111-4111-8111-111111111111"
OTHER_OWNER_ID = "22222222-2222-4222-8222-222222222222"


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeStore:
    """In-memory stand-in for ManagerStore. `failing` / `delays` are keyed by method name."""

    def __init__(self):
        self.credentials: dict[str, dict] = {}
        self.links: list[dict] = []
        self.clicks: list[dict] = []
        self.campaigns: list[dict] = []
        self.creatives: list[dict] = []
        self.scores: list[dict] = []
        self.decisions: list[dict] = []
        self.killswitch = False
        self.failing: set[str] = set()
        self.delays: dict[str, float] = {}
        self.calls: Counter = Counter()

    async def _enter(self, name: str) -> None:
        self.calls[name] += 1
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.failing:
            raise RuntimeError(f"{name} failed: connection reset (access_token=EAABsecretsecretsecretsecret)")

    @staticmethod
    def _owned(rows: list[dict], owner_id: str) -> list[dict]:
        return [dict(r) for r in rows if r.get("owner_user_id") == owner_id]

    @staticmethod
    def _newest_first(rows: list[dict]) -> list[dict]:
        return sorted(rows, key=lambda r: (r.get("created_at") or utcnow(), r["id"]), reverse=True)

    async def get_credential_row(self, owner_id: str) -> Optional[dict]:
        await self._enter("get_credential_row")
        row = self.credentials.get(owner_id)
        return dict(row) if row else None

    async def list_click_events(self, owner_id, window_start, window_end, link_ids=None) -> list[dict]:
        await self._enter("list_click_events")
        rows = [
            r for r in self._owned(self.clicks, owner_id)
            if window_start <= r["created_at"] <= window_end
        ]
        if link_ids is not None:
            rows = [r for r in rows if r.get("link_id") in set(link_ids)]
        return sorted(rows, key=lambda r: r["created_at"])

    async def list_smart_links(self, owner_id, limit=50) -> list[dict]:
        await self._enter("list_smart_links")
        return self._newest_first(self._owned(self.links, owner_id))[:limit]

    async def get_smart_link(self, owner_id, link_id) -> Optional[dict]:
        await self._enter("get_smart_link")
        return next((r for r in self._owned(self.links, owner_id) if r["id"] == link_id), None)

    async def list_campaigns(self, owner_id, limit=50) -> list[dict]:
        await self._enter("list_campaigns")
        return self._newest_first(self._owned(self.campaigns, owner_id))[:limit]

    async def get_campaign(self, owner_id, campaign_id) -> Optional[dict]:
        await self._enter("get_campaign")
        return next((r for r in self._owned(self.campaigns, owner_id) if r["id"] == campaign_id), None)

    async def find_campaign_by_adset(self, owner_id, adset_id) -> Optional[dict]:
        await self._enter("find_campaign_by_adset")
        return next((r for r in self._owned(self.campaigns, owner_id) if r.get("meta_adset_id") == adset_id), None)

    async def update_campaign_latest_score(self, owner_id, campaign_id, score, grade, confidence) -> None:
        await self._enter("update_campaign_latest_score")
        for row in self.campaigns:
            if row["id"] == campaign_id and row["owner_user_id"] == owner_id:
                row.update(latest_score=score, latest_grade=grade, latest_confidence=confidence)

    async def list_creatives(self, owner_id, limit=50) -> list[dict]:
        await self._enter("list_creatives")
        return self._newest_first(self._owned(self.creatives, owner_id))[:limit]

    async def get_creative(self, owner_id, creative_id) -> Optional[dict]:
        await self._enter("get_creative")
        return next((r for r in self._owned(self.creatives, owner_id) if r["id"] == creative_id), None)

    async def insert_score(self, owner_id, record) -> str:
        await self._enter("insert_score")
        row = {"id": str(uuid.uuid4()), "owner_user_id": owner_id, "created_at": utcnow(), **record}
        self.scores.append(row)
        return row["id"]

    async def get_latest_score(self, owner_id, entity_type, entity_id) -> Optional[dict]:
        await self._enter("get_latest_score")
        matches = [
            r for r in self.scores
            if r["owner_user_id"] == owner_id and r["entity_type"] == entity_type and r["entity_id"] == str(entity_id)
        ]
        return dict(matches[-1]) if matches else None

    async def insert_decision(self, owner_id, record) -> str:
        await self._enter("insert_decision")
        row = {"id": str(uuid.uuid4()), "owner_user_id": owner_id, "created_at": utcnow(), **record}
        self.decisions.append(row)
        return row["id"]

    async def list_decisions(self, owner_id, campaign_id=None, limit=50) -> list[dict]:
        await self._enter("list_decisions")
        rows = [r for r in self.decisions if r["owner_user_id"] == owner_id]
        if campaign_id:
            rows = [r for r in rows if r["campaign_id"] == campaign_id]
        return list(reversed(rows))[:limit]

    async def get_killswitch(self) -> bool:
        await self._enter("get_killswitch")
        return self.killswitch


class FakeAnalytics(AnalyticsSource):
    def __init__(self, lift: Optional[float] = None):
        self.lift = lift
        self.calls = 0

    async def read_lift(self, entity_type, entity_id, platform, window_start, window_end):
        self.calls += 1
        return self.lift


# ── Row builders ──────────────────────────────────────────────────────

def new_id() -> str:
    return str(uuid.uuid4())


def make_link(owner_id=OWNER_ID, **overrides) -> dict:
    row = {
        "id": new_id(),
        "owner_user_id": owner_id,
        "title": "Midnight Drive",
        "slug": "midnight-drive",
        "destination_url": "https://open.spotify.com/track/abc",
        "link_type": "smart",
        "created_at": utcnow() - timedelta(days=5),
    }
    row.update(overrides)
    return row


def make_campaign(owner_id=OWNER_ID, **overrides) -> dict:
    row = {
        "id": new_id(),
        "owner_user_id": owner_id,
        "campaign_name": "Midnight Drive - Streams",
        "campaign_type": "streams",
        "status": "active",
        "meta_campaign_id": "120200000000001",
        "meta_adset_id": "120200000000002",
        "smart_link_id": None,
        "creative_ids": [],
        "daily_budget_cents": 5000,
        "max_daily_budget_cents": 20000,
        "total_spend_cents": 0,
        "automation_mode": "autonomous",
        "latest_score": None,
        "latest_grade": None,
        "latest_confidence": None,
        "latest_score_at": None,
        "created_at": utcnow() - timedelta(days=10),
    }
    row.update(overrides)
    return row


def make_creative(owner_id=OWNER_ID, **overrides) -> dict:
    row = {
        "id": new_id(),
        "owner_user_id": owner_id,
        "file_url": "https://cdn.ghoste.one/uploads/clip.mp4",
        "public_url": "https://cdn.ghoste.one/public/clip.mp4",
        "media_type": "video",
        "platform_ready": True,
        "created_at": utcnow() - timedelta(days=2),
    }
    row.update(overrides)
    return row


def make_click(owner_id=OWNER_ID, link_id=None, platform="spotify", event_name="smartlink_click", hours_ago=1.0) -> dict:
    return {
        "id": new_id(),
        "owner_user_id": owner_id,
        "link_id": link_id,
        "platform": platform,
        "event_name": event_name,
        "created_at": utcnow() - timedelta(hours=hours_ago),
    }


def make_credentials(owner_id=OWNER_ID, **overrides) -> dict:
    row = {
        "owner_user_id": owner_id,
        "access_token": "EAABwzLixnjYBO1234567890abcdefghij",
        "expires_at": utcnow() + timedelta(days=30),
        "ad_account_id": "act_1234567890",
        "page_id": "1029384756",
        "pixel_id": None,
        "instagram_actor_id": None,
        "business_id": None,
        "updated_at": utcnow(),
    }
    row.update(overrides)
    return row


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="development",
        database_url="postgresql+asyncpg://localhost/test",
        supabase_jwt_secret="",
        analytics_api_url="",
        openai_api_key="",
        anthropic_api_key="",
        store_read_timeout_seconds=1.0,
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
