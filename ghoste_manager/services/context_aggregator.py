"""
Context Aggregator — builds the per-request ManagerContext snapshot.

Connection status comes from the CredentialResolver only. Links, campaigns,
creatives and clicks are read concurrently; each read is isolated so one
failure adds a line to `errors` and leaves an empty collection instead of
failing the whole context. No caching happens here.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from ghoste_manager.config import Settings
from ghoste_manager.errors import ReadResult, guarded_read
from ghoste_manager.schemas import (
    CampaignSummary, ConnectionStatus, ContextSummary, CreativeRef, LinkClicks,
    LinkSummary, ManagerContext, PlatformClicks, TrackingSignals,
)
from ghoste_manager.services.credential_resolver import CredentialResolver
from ghoste_manager.services.signals import tally_clicks, top_n
from ghoste_manager.stores import ManagerStore
from ghoste_manager.utils import as_naive_utc, cents_to_amount, utcnow

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = {"active", "running", "published"}


def _to_link(row: dict) -> LinkSummary:
    return LinkSummary(
        id=str(row["id"]),
        slug=row.get("slug"),
        title=row.get("title"),
        destination_url=row.get("destination_url"),
        link_type=row.get("link_type") or "smart",
        created_at=as_naive_utc(row.get("created_at")),
    )


def _to_creative(row: dict) -> Optional[CreativeRef]:
    url = row.get("public_url") or row.get("file_url")
    if not url:
        return None
    return CreativeRef(
        id=str(row["id"]),
        url=url,
        platform_ready=bool(row.get("platform_ready")),
        media_type=row.get("media_type"),
    )


class ContextAggregator:
    def __init__(self, resolver: CredentialResolver, store: ManagerStore, settings: Settings):
        self.resolver = resolver
        self.store = store
        self.settings = settings

    def _to_campaign(self, row: dict) -> CampaignSummary:
        goal = row.get("campaign_type")
        return CampaignSummary(
            id=str(row["id"]),
            name=row.get("campaign_name") or "Unnamed Campaign",
            status=(row.get("status") or "draft").lower(),
            goal=goal,
            optimization_event=self.settings.optimization_event_for(goal),
            automation_mode=row.get("automation_mode") or "manual",
            daily_budget=cents_to_amount(row.get("daily_budget_cents")) or 0.0,
            max_daily_budget=cents_to_amount(row.get("max_daily_budget_cents")),
            total_spend=cents_to_amount(row.get("total_spend_cents")) or 0.0,
            smart_link_id=str(row["smart_link_id"]) if row.get("smart_link_id") else None,
            latest_score=row.get("latest_score"),
            latest_grade=row.get("latest_grade"),
            latest_confidence=row.get("latest_confidence"),
            created_at=as_naive_utc(row.get("created_at")),
        )

    async def build_manager_context(self, owner_id: str) -> ManagerContext:
        window_end = utcnow()
        window_start = window_end - timedelta(days=self.settings.click_window_days)
        limit = self.settings.context_list_limit
        timeout = self.settings.store_read_timeout_seconds

        connection, links, campaigns, creatives, clicks = await asyncio.gather(
            self.resolver.resolve_connection_status(owner_id),
            guarded_read(
                "Smart links read",
                lambda: self.store.list_smart_links(owner_id, limit=limit),
                timeout=timeout,
                transform=lambda rows: [_to_link(r) for r in rows],
            ),
            guarded_read(
                "Campaigns read",
                lambda: self.store.list_campaigns(owner_id, limit=limit),
                timeout=timeout,
                transform=lambda rows: [self._to_campaign(r) for r in rows],
            ),
            guarded_read(
                "Creatives read",
                lambda: self.store.list_creatives(owner_id, limit=limit),
                timeout=timeout,
                transform=lambda rows: [c for c in (_to_creative(r) for r in rows) if c is not None],
            ),
            guarded_read(
                "Click history read",
                lambda: self.store.list_click_events(owner_id, window_start, window_end),
                timeout=timeout,
                transform=list,
            ),
        )

        errors: list[str] = []
        if connection.error:
            errors.append(connection.error)
        smart_links = self._collect(links, errors)
        campaign_list = self._collect(campaigns, errors)
        creative_list = self._collect(creatives, errors)
        click_events = self._collect(clicks, errors)

        tracking = self._tracking_signals(click_events, smart_links, window_start, window_end)
        summary = self._summary(connection, smart_links, campaign_list, creative_list, tracking)

        if errors:
            logger.warning(f"Manager context built with {len(errors)} partial read failure(s)")

        return ManagerContext(
            owner_id=str(owner_id),
            connection=connection,
            smart_links=smart_links,
            campaigns=campaign_list,
            uploaded_creatives=creative_list,
            tracking_signals=tracking,
            summary=summary,
            errors=errors,
            generated_at=window_end,
        )

    @staticmethod
    def _collect(result: ReadResult, errors: list[str]) -> list:
        if result.ok:
            return result.data or []
        errors.append(result.error)
        return []

    @staticmethod
    def _tracking_signals(events, smart_links, window_start, window_end) -> TrackingSignals:
        tally = tally_clicks(events)
        slugs = {link.id: link.slug for link in smart_links}
        return TrackingSignals(
            total_clicks=tally.total_clicks,
            platform_clicks=tally.platform_clicks,
            one_click_rate=round(tally.intent_depth, 4),
            window_start=window_start,
            window_end=window_end,
            top_platforms=[PlatformClicks(platform=p, clicks=c) for p, c in top_n(tally.by_platform)],
            top_links=[LinkClicks(link_id=l, slug=slugs.get(l), clicks=c) for l, c in top_n(tally.by_link)],
        )

    @staticmethod
    def _summary(connection: ConnectionStatus, smart_links, campaigns, creatives, tracking) -> ContextSummary:
        opportunities = []
        if not connection.connected:
            opportunities.append("Connect Meta Ads to track campaign performance")
        elif connection.token_expired:
            opportunities.append("Reconnect Meta Ads: the access token has expired")
        elif not connection.assets_configured:
            opportunities.append(f"Finish Meta setup: missing {', '.join(connection.missing_assets)}")
        elif not campaigns:
            opportunities.append("Launch your first Meta ad campaign")

        if not smart_links:
            opportunities.append("Create your first smart link to track your music")
        elif tracking.top_links and tracking.top_links[0].slug and campaigns:
            opportunities.append(f'Promote top smart link "{tracking.top_links[0].slug}" with ads')

        ready = sum(1 for c in creatives if c.platform_ready)
        if campaigns and ready == 0:
            opportunities.append("Upload a platform-ready video so campaigns can rotate creatives")

        return ContextSummary(
            active_campaigns=sum(1 for c in campaigns if c.status in ACTIVE_STATUSES),
            total_spend=round(sum(c.total_spend for c in campaigns), 2),
            total_clicks=tracking.total_clicks,
            platform_ready_creatives=ready,
            opportunities=opportunities,
        )


def format_context_for_ai(context: ManagerContext) -> str:
    """Plain-text sections the AI manager reads. Connection facts come only from `context.connection`."""
    conn = context.connection
    sections = ["=== META ADS STATUS ==="]
    if conn.connected:
        sections.append("Connected: YES")
        if conn.token_expired:
            sections.append("Token: EXPIRED (user must reconnect before publishing)")
        if conn.assets_configured:
            sections.append(f"Ad account: {conn.ad_account_id} | Page: {conn.page_id}")
        else:
            sections.append(f"Assets incomplete, missing: {', '.join(conn.missing_assets)}")
        sections.append(f"Pixel: {conn.pixel_id or 'not set'} | Instagram: {conn.instagram_actor_id or 'not set'}")
    else:
        sections.append("Connected: NO")
        sections.append("User needs to connect Meta Ads in Profile → Connected Accounts.")

    sections.append("\n=== CAMPAIGNS ===")
    if context.campaigns:
        for c in context.campaigns[:10]:
            score = f", score {c.latest_score} ({c.latest_grade})" if c.latest_score is not None else ""
            sections.append(
                f'- "{c.name}" [{c.status}, {c.automation_mode}] goal={c.goal or "n/a"} '
                f"budget ${c.daily_budget:.2f}/day{score}"
            )
    else:
        sections.append("No campaigns yet.")

    sections.append("\n=== SMART LINKS ===")
    sections.append(f"Total smart links: {len(context.smart_links)}")
    for link in context.smart_links[:5]:
        sections.append(f'- "{link.title or "Untitled"}" → ghoste.one/s/{link.slug}')

    sections.append("\n=== CREATIVES ===")
    sections.append(
        f"{len(context.uploaded_creatives)} uploaded, "
        f"{context.summary.platform_ready_creatives} platform-ready"
    )

    t = context.tracking_signals
    sections.append("\n=== LINK CLICKS & TRACKING ===")
    sections.append(f"{t.total_clicks} clicks, {t.platform_clicks} to streaming platforms")
    if t.top_platforms:
        sections.append("Top platforms: " + ", ".join(f"{p.platform} ({p.clicks})" for p in t.top_platforms))
    if t.top_links:
        sections.append("Top links: " + ", ".join(f"{l.slug or l.link_id} ({l.clicks})" for l in t.top_links))

    if context.summary.opportunities:
        sections.append("\n=== OPPORTUNITIES ===")
        sections.extend(f"- {o}" for o in context.summary.opportunities)

    if context.errors:
        sections.append("\n=== DATA GAPS ===")
        sections.extend(f"- {e}" for e in context.errors)

    return "\n".join(sections)
