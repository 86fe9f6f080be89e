"""
Score Engine — bounded 1..100 performance score for one owned entity.

First-party click signals are combined with an ephemeral lift reading from
the third-party analytics source. Only the lift's score contribution survives
`compute_score`; the lift itself is never persisted, logged or returned.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ghoste_manager.config import Settings
from ghoste_manager.errors import ErrorKind, InvalidEntityError, ManagerError, guarded_read, required_read
from ghoste_manager.models import Confidence, EntityType, Grade
from ghoste_manager.schemas import Score
from ghoste_manager.services.analytics_source import AnalyticsSource
from ghoste_manager.services.signals import bucket_counts, tally_clicks
from ghoste_manager.stores import ManagerStore
from ghoste_manager.utils import cents_to_amount, utcnow

logger = logging.getLogger(__name__)

MAX_WINDOW_HOURS = 24 * 90

# Fixed reason vocabulary. Reasons are picked from here only, never formatted.
REASON_INTENT_STRONG = "Intent signals strong"
REASON_INTENT_WEAK = "Intent signals weak"
REASON_RESPONSE_UP = "Downstream response improved during window"
REASON_RESPONSE_DOWN = "Downstream response below baseline"
REASON_RESPONSE_FLAT = "Downstream response stable"
REASON_STABLE = "Performance stable and consistent"
REASON_UNSTABLE = "Results unstable; waiting for confirmation"
REASON_COST = "Cost efficiency could be improved"
REASON_LOW_SAMPLE = "Small sample size; confidence low"
REASON_DEFAULT = "Performance within expected range"

REASON_VOCABULARY = (
    REASON_INTENT_STRONG, REASON_INTENT_WEAK, REASON_RESPONSE_UP, REASON_RESPONSE_DOWN,
    REASON_RESPONSE_FLAT, REASON_STABLE, REASON_UNSTABLE, REASON_COST, REASON_LOW_SAMPLE,
    REASON_DEFAULT,
)

# (minimum lift fraction, response score), checked top-down
RESPONSE_BANDS = (
    (0.50, 100),
    (0.30, 90),
    (0.20, 80),
    (0.10, 70),
    (0.05, 60),
    (0.0, 50),
)

# (maximum relative deviation from the historical average, stability score)
STABILITY_BANDS = (
    (0.10, 100),
    (0.20, 85),
    (0.30, 70),
    (0.50, 50),
)

NEUTRAL_SUBSCORE = 50.0


@dataclass(frozen=True)
class FirstPartySignals:
    total_clicks: int
    platform_clicks: int
    intent_depth: float
    spend: Optional[float] = None

    @property
    def cost_per_click(self) -> float:
        if not self.spend or self.total_clicks <= 0:
            return 0.0
        return self.spend / self.total_clicks


@dataclass(frozen=True)
class ScoreBreakdown:
    score: int
    grade: Grade
    confidence: Confidence
    reasons: list[str]
    intent: float
    response: float
    stability: float


# ── Pure scoring functions ───────────────────────────────────────────

def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def compute_intent_score(signals: FirstPartySignals) -> float:
    click_efficiency = 0.0
    if signals.total_clicks > 0:
        click_efficiency = 100.0 * signals.platform_clicks / signals.total_clicks
    cost_efficiency = 0.0
    if signals.spend and signals.spend > 0:
        cost_efficiency = min(100.0, (signals.platform_clicks / signals.spend) * 10)
    depth = signals.intent_depth * 100.0
    return _clamp(0.4 * click_efficiency + 0.3 * cost_efficiency + 0.3 * depth)


def compute_response_score(lift: Optional[float]) -> float:
    """Lift is a fraction (0.35 == 35%). None means no third-party signal."""
    if lift is None:
        return NEUTRAL_SUBSCORE
    for minimum, score in RESPONSE_BANDS:
        if lift >= minimum:
            return float(score)
    # Negative lift maps linearly into [10, 40]; -100% or worse floors at 10.
    return float(max(10, min(40, round(40 + 30 * lift))))


def compute_stability_score(current_clicks: int, history: list[int]) -> float:
    if len(history) < 2:
        return NEUTRAL_SUBSCORE
    average = sum(history) / len(history)
    if average == 0:
        return NEUTRAL_SUBSCORE
    deviation = abs((current_clicks - average) / average)
    for maximum, score in STABILITY_BANDS:
        if deviation <= maximum:
            return float(score)
    return 30.0


def compute_confidence(
    total_clicks: int, stability: float, has_third_party: bool, min_clicks: int = 100,
) -> Confidence:
    large_sample = total_clicks >= min_clicks
    if large_sample and stability >= 70 and has_third_party:
        return Confidence.HIGH
    if not large_sample or stability < 50:
        return Confidence.LOW
    return Confidence.MEDIUM


def grade_for_score(score: int) -> Grade:
    if score >= 80:
        return Grade.STRONG
    if score >= 60:
        return Grade.PASS
    if score >= 40:
        return Grade.WEAK
    return Grade.FAIL


def select_reasons(
    intent: float, response: float, stability: float, cost_per_click: float, confidence: Confidence,
) -> list[str]:
    reasons = []
    if intent >= 70:
        reasons.append(REASON_INTENT_STRONG)
    elif intent < 40:
        reasons.append(REASON_INTENT_WEAK)

    if response >= 70:
        reasons.append(REASON_RESPONSE_UP)
    elif response < 50:
        reasons.append(REASON_RESPONSE_DOWN)
    else:
        reasons.append(REASON_RESPONSE_FLAT)

    if stability >= 70:
        reasons.append(REASON_STABLE)
    elif stability < 50:
        reasons.append(REASON_UNSTABLE)

    if cost_per_click > 1.0:
        reasons.append(REASON_COST)
    if confidence == Confidence.LOW:
        reasons.append(REASON_LOW_SAMPLE)
    return reasons or [REASON_DEFAULT]


def combine_scores(
    intent: float,
    response: float,
    stability: float,
    weights: tuple[float, float, float] = (0.5, 0.3, 0.2),
) -> int:
    w_intent, w_response, w_stability = weights
    raw = round(w_intent * intent + w_response * response + w_stability * stability)
    return int(max(1, min(100, raw)))


def compute_final_score(
    signals: FirstPartySignals,
    lift: Optional[float],
    history: list[int],
    weights: tuple[float, float, float] = (0.5, 0.3, 0.2),
    min_clicks: int = 100,
) -> ScoreBreakdown:
    intent = compute_intent_score(signals)
    response = compute_response_score(lift)
    stability = compute_stability_score(signals.total_clicks, history)
    score = combine_scores(intent, response, stability, weights)
    confidence = compute_confidence(signals.total_clicks, stability, lift is not None, min_clicks)
    return ScoreBreakdown(
        score=score,
        grade=grade_for_score(score),
        confidence=confidence,
        reasons=select_reasons(intent, response, stability, signals.cost_per_click, confidence),
        intent=intent,
        response=response,
        stability=stability,
    )


# ── Service ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class _ResolvedEntity:
    link_ids: Optional[list[str]]
    spend: Optional[float]
    campaign_id: Optional[str] = None


class ScoreEngine:
    def __init__(self, store: ManagerStore, analytics: AnalyticsSource, settings: Settings):
        self.store = store
        self.analytics = analytics
        self.settings = settings

    @property
    def weights(self) -> tuple[float, float, float]:
        s = self.settings
        return (s.score_weight_intent, s.score_weight_response, s.score_weight_stability)

    async def _owned_read(self, label, read):
        return await required_read(label, read, timeout=self.settings.store_read_timeout_seconds)

    async def _resolve_entity(self, owner_id: str, entity_type: EntityType, entity_id: str) -> _ResolvedEntity:
        """
        Ownership check. Anything not owned by the caller is InvalidEntity; a
        store failure raises StoreUnavailableError with a sanitized message.
        """
        not_found = InvalidEntityError(f"{entity_type.value} not found")

        if entity_type == EntityType.ARTIST:
            if str(entity_id) != str(owner_id):
                raise not_found
            return _ResolvedEntity(link_ids=None, spend=None)

        if entity_type == EntityType.LINK:
            link = await self._owned_read("Smart link read", lambda: self.store.get_smart_link(owner_id, entity_id))
            if not link:
                raise not_found
            return _ResolvedEntity(link_ids=[str(link["id"])], spend=None)

        if entity_type == EntityType.CREATIVE:
            if not await self._owned_read("Creative read", lambda: self.store.get_creative(owner_id, entity_id)):
                raise not_found
            return _ResolvedEntity(link_ids=None, spend=None)

        if entity_type == EntityType.CAMPAIGN:
            campaign = await self._owned_read("Campaign read", lambda: self.store.get_campaign(owner_id, entity_id))
        else:
            campaign = await self._owned_read(
                "Campaign read", lambda: self.store.find_campaign_by_adset(owner_id, entity_id),
            )
        if not campaign:
            raise not_found
        link_id = campaign.get("smart_link_id")
        return _ResolvedEntity(
            link_ids=[str(link_id)] if link_id else None,
            spend=cents_to_amount(campaign.get("total_spend_cents")),
            campaign_id=str(campaign["id"]),
        )

    async def compute_score(
        self,
        owner_id: str,
        entity_type: str,
        entity_id: str,
        window_hours: float,
        platform: Optional[str] = None,
    ) -> Score:
        try:
            etype = EntityType(entity_type)
        except ValueError:
            raise InvalidEntityError(f"Unsupported entity type: {entity_type}")
        if window_hours is None or not 1 <= window_hours <= MAX_WINDOW_HOURS:
            raise ManagerError(
                f"windowHours must be between 1 and {MAX_WINDOW_HOURS}",
                kind=ErrorKind.VALIDATION_ERROR,
                status_code=422,
            )

        entity = await self._resolve_entity(owner_id, etype, entity_id)

        window_end = utcnow()
        window = timedelta(hours=window_hours)
        window_start = window_end - window
        history_windows = self.settings.stability_history_windows
        history_start = window_start - window * history_windows

        clicks = await guarded_read(
            "Click history read",
            lambda: self.store.list_click_events(owner_id, history_start, window_end, link_ids=entity.link_ids),
            timeout=self.settings.store_read_timeout_seconds,
            transform=list,
        )
        events = clicks.data if clicks.ok else []
        if not clicks.ok:
            logger.warning(f"Scoring {etype.value} without click history: {clicks.error}")

        current = [e for e in events if isinstance(e.get("created_at"), datetime) and e["created_at"] >= window_start]
        history = bucket_counts(events, history_start, window, history_windows)
        tally = tally_clicks(current, platform)
        signals = FirstPartySignals(
            total_clicks=tally.total_clicks,
            platform_clicks=tally.platform_clicks,
            intent_depth=tally.intent_depth,
            spend=entity.spend,
        )

        # Ephemeral: the lift lives only inside this call.
        lift = await self.analytics.read_lift(etype.value, str(entity_id), platform, window_start, window_end)
        breakdown = compute_final_score(
            signals, lift, history,
            weights=self.weights,
            min_clicks=self.settings.high_confidence_min_clicks,
        )

        score = Score(
            entity_type=etype,
            entity_id=str(entity_id),
            score=breakdown.score,
            grade=breakdown.grade,
            confidence=breakdown.confidence,
            reasons=breakdown.reasons,
            window_start=window_start,
            window_end=window_end,
            platform=platform,
        )
        await self._persist(owner_id, score, entity.campaign_id if etype == EntityType.CAMPAIGN else None)
        logger.info(
            f"Scored {etype.value} {entity_id}: {score.score} ({score.grade}, {score.confidence} confidence)"
        )
        return score

    async def _persist(self, owner_id: str, score: Score, campaign_id: Optional[str]) -> None:
        record = {
            "entity_type": score.entity_type,
            "entity_id": score.entity_id,
            "platform": score.platform,
            "score": score.score,
            "grade": score.grade,
            "confidence": score.confidence,
            "reasons": list(score.reasons),
            "window_start": score.window_start,
            "window_end": score.window_end,
        }
        try:
            await self.store.insert_score(owner_id, record)
        except Exception as e:
            logger.error(f"Failed to persist score for {score.entity_type} {score.entity_id}: {type(e).__name__}")
            return
        if campaign_id:
            try:
                await self.store.update_campaign_latest_score(
                    owner_id, campaign_id, score.score, score.grade, score.confidence,
                )
            except Exception as e:
                logger.warning(f"Failed to cache latest score on campaign {campaign_id}: {type(e).__name__}")

    async def get_latest_score(self, owner_id: str, entity_type: str, entity_id: str) -> Optional[Score]:
        """Most recent persisted score, or None. Read failures surface as None."""
        try:
            etype = EntityType(entity_type)
        except ValueError:
            raise InvalidEntityError(f"Unsupported entity type: {entity_type}")
        result = await guarded_read(
            "Score history read",
            lambda: self.store.get_latest_score(owner_id, etype.value, entity_id),
            timeout=self.settings.store_read_timeout_seconds,
            transform=lambda row: Score.model_validate(row) if row else None,
        )
        if not result.ok:
            logger.warning(f"Latest score unavailable for {etype.value} {entity_id}: {result.error}")
            return None
        return result.data
