"""
Decision Engine — one recommended action per campaign, with guardrails.

`recommend()` is pure: score band first, then guardrails, and any blocked
candidate downgrades to MAINTAIN with the blocking note recorded. A campaign
goal can restrict the allowed actions (`Settings.goal_allowed_actions`). PAUSE
is never blocked. The engine only recommends; applying a decision is a separate,
separately-authorized step that reads `requires_approval`/`auto_apply_allowed`.
"""

import logging
from typing import Optional

from ghoste_manager.config import Settings
from ghoste_manager.errors import InvalidEntityError, guarded_read, required_read
from ghoste_manager.models import AutomationMode, Confidence, EntityType, ManagerAction
from ghoste_manager.schemas import CampaignState, Decision, DecisionRecord, Score
from ghoste_manager.services.score_engine import ScoreEngine
from ghoste_manager.stores import ManagerStore
from ghoste_manager.utils import as_naive_utc, cents_to_amount, utcnow

logger = logging.getLogger(__name__)

GUARD_LOW_CONFIDENCE = "Low confidence — waiting for more data before major changes."
GUARD_LEARNING_PHASE = "Campaign too new — learning phase active."
GUARD_AT_CAP = "Already at max budget cap."
GUARD_KILLSWITCH = "Global killswitch active — automated changes disabled."
GUARD_INSUFFICIENT_DATA = "insufficient data"
GUARD_NO_BUDGET = "No current budget to scale from."
GUARD_NO_INCREASE = "Budget increase too small to apply."
GUARD_GOAL_ACTION = "{action} is not allowed for this campaign goal."
GUARD_APPROVAL = "{mode} mode requires explicit user approval before applying this change."

# Actions that change spend or delivery on the live campaign
SPEND_CHANGING = {ManagerAction.SCALE_UP, ManagerAction.PAUSE}


def _budget_cap_note(max_budget: float) -> str:
    return f"Budget increase capped at {max_budget:.2f}."


def _goal_allows(state: CampaignState, action: ManagerAction) -> bool:
    if action in (ManagerAction.PAUSE, ManagerAction.MAINTAIN) or state.allowed_actions is None:
        return True
    return action in state.allowed_actions


def insufficient_data(campaign_id: Optional[str] = None, score: Optional[Score] = None) -> Decision:
    return Decision(
        action=ManagerAction.MAINTAIN,
        reason="Not enough data to recommend a change; holding steady.",
        score_used=score.score if score else None,
        confidence_used=score.confidence if score else None,
        guardrails=[GUARD_INSUFFICIENT_DATA],
        requires_approval=False,
        auto_apply_allowed=False,
        campaign_id=campaign_id,
    )


def recommend(
    state: Optional[CampaignState],
    score: Optional[Score],
    learning_phase_days: int = 3,
    scale_factor_high: float = 1.25,
    scale_factor_default: float = 1.15,
) -> Decision:
    """Never raises. Unusable input degrades to MAINTAIN with an insufficient-data note."""
    if not isinstance(state, CampaignState) or not isinstance(score, Score):
        return insufficient_data(getattr(state, "campaign_id", None), score if isinstance(score, Score) else None)
    try:
        return _recommend(state, score, learning_phase_days, scale_factor_high, scale_factor_default)
    except (ValueError, TypeError, ArithmeticError) as e:
        logger.warning(f"Decision for campaign {state.campaign_id} fell back to maintain: {type(e).__name__}")
        return insufficient_data(state.campaign_id, score)


def _recommend(
    state: CampaignState,
    score: Score,
    learning_phase_days: int,
    scale_factor_high: float,
    scale_factor_default: float,
) -> Decision:
    mode = AutomationMode(state.automation_mode)
    confidence = Confidence(score.confidence)
    in_learning_phase = state.campaign_age_days < learning_phase_days
    guardrails: list[str] = []
    recommended_budget: Optional[float] = None
    blocked = False

    if score.score < 40:
        action = ManagerAction.PAUSE
        reason = "Performance is failing; pause to stop spend until the setup is fixed."

    elif score.score < 60:
        # Prefer a creative swap; fall back to the audience when the goal or the library rules it out
        if state.has_alternate_creative and (
            _goal_allows(state, ManagerAction.ROTATE_CREATIVE)
            or not _goal_allows(state, ManagerAction.TIGHTEN_AUDIENCE)
        ):
            action = ManagerAction.ROTATE_CREATIVE
            reason = "Performance is weak; rotate in a fresh creative."
        else:
            action = ManagerAction.TIGHTEN_AUDIENCE
            reason = "Performance is weak and no fresh creative is ready; tighten the audience."
        if in_learning_phase:
            guardrails.append(GUARD_LEARNING_PHASE)
            blocked = True

    elif score.score < 80:
        action = ManagerAction.TEST_VARIATION
        reason = "Performance is solid; test a variation without changing spend."

    else:
        action = ManagerAction.SCALE_UP
        reason = "Performance is strong; increase the daily budget."
        if confidence == Confidence.LOW:
            guardrails.append(GUARD_LOW_CONFIDENCE)
        if in_learning_phase:
            guardrails.append(GUARD_LEARNING_PHASE)
        if state.current_budget <= 0:
            guardrails.append(GUARD_NO_BUDGET)
        if state.current_budget >= state.max_budget:
            guardrails.append(GUARD_AT_CAP)
        if state.killswitch_active:
            guardrails.append(GUARD_KILLSWITCH)

        if not guardrails:
            factor = scale_factor_high if confidence == Confidence.HIGH else scale_factor_default
            target = round(state.current_budget * factor, 2)
            if target > state.max_budget:
                target = state.max_budget
                guardrails.append(_budget_cap_note(state.max_budget))
            if target <= state.current_budget:
                guardrails.append(GUARD_NO_INCREASE)
            else:
                recommended_budget = target
        blocked = recommended_budget is None

    if not _goal_allows(state, action):
        guardrails.append(GUARD_GOAL_ACTION.format(action=action.value))
        blocked = True
        recommended_budget = None

    if blocked:
        reason = f"Holding steady instead of {action.value.replace('_', ' ')}: guardrail active."
        action = ManagerAction.MAINTAIN

    auto_apply_allowed = (
        mode == AutomationMode.AUTONOMOUS
        and action != ManagerAction.MAINTAIN
        and not state.killswitch_active
    )
    if mode != AutomationMode.AUTONOMOUS and action in SPEND_CHANGING:
        guardrails.append(GUARD_APPROVAL.format(mode=mode.value.capitalize()))

    return Decision(
        action=action,
        reason=reason,
        score_used=score.score,
        confidence_used=confidence,
        recommended_budget=recommended_budget,
        guardrails=guardrails,
        requires_approval=action != ManagerAction.MAINTAIN and not auto_apply_allowed,
        auto_apply_allowed=auto_apply_allowed,
        campaign_id=state.campaign_id,
    )


class DecisionService:
    """Loads campaign state and the latest score, runs `recommend`, logs the result."""

    def __init__(self, store: ManagerStore, score_engine: ScoreEngine, settings: Settings):
        self.store = store
        self.score_engine = score_engine
        self.settings = settings

    async def _killswitch_active(self) -> bool:
        result = await guarded_read(
            "Killswitch read",
            self.store.get_killswitch,
            timeout=self.settings.store_read_timeout_seconds,
        )
        if not result.ok:
            # Unknown state blocks automated changes
            logger.warning(f"{result.error}; treating killswitch as active")
            return True
        return bool(result.data)

    async def _has_alternate_creative(self, owner_id: str, campaign: dict) -> bool:
        result = await guarded_read(
            "Creatives read",
            lambda: self.store.list_creatives(owner_id, limit=self.settings.context_list_limit),
            timeout=self.settings.store_read_timeout_seconds,
        )
        if not result.ok:
            return True
        in_use = {str(c) for c in (campaign.get("creative_ids") or [])}
        return any(c.get("platform_ready") and str(c["id"]) not in in_use for c in result.data)

    async def build_campaign_state(self, owner_id: str, campaign: dict) -> Optional[CampaignState]:
        created_at = as_naive_utc(campaign.get("created_at"))
        age_days = (utcnow() - created_at).total_seconds() / 86400 if created_at else 0.0
        current = cents_to_amount(campaign.get("daily_budget_cents")) or 0.0
        maximum = cents_to_amount(campaign.get("max_daily_budget_cents"))
        try:
            return CampaignState(
                campaign_id=str(campaign["id"]),
                automation_mode=campaign.get("automation_mode") or AutomationMode.MANUAL,
                current_budget=current,
                # No cap configured means no headroom to scale into
                max_budget=maximum if maximum is not None else current,
                campaign_age_days=max(0.0, age_days),
                killswitch_active=await self._killswitch_active(),
                has_alternate_creative=await self._has_alternate_creative(owner_id, campaign),
                allowed_actions=self.settings.allowed_actions_for(campaign.get("campaign_type")),
            )
        except ValueError as e:
            logger.warning(f"Campaign {campaign.get('id')} has unusable state: {type(e).__name__}")
            return None

    async def recommend_for_campaign(self, owner_id: str, campaign_id: str) -> Decision:
        campaign = await required_read(
            "Campaign read",
            lambda: self.store.get_campaign(owner_id, campaign_id),
            timeout=self.settings.store_read_timeout_seconds,
        )
        if not campaign:
            raise InvalidEntityError("campaign not found")

        score = await self.score_engine.get_latest_score(owner_id, EntityType.CAMPAIGN.value, campaign_id)
        if score is None:
            score = await self.score_engine.compute_score(
                owner_id, EntityType.CAMPAIGN.value, campaign_id, window_hours=24 * self.settings.click_window_days,
            )

        state = await self.build_campaign_state(owner_id, campaign)
        decision = recommend(
            state,
            score,
            learning_phase_days=self.settings.learning_phase_days,
            scale_factor_high=self.settings.scale_factor_high,
            scale_factor_default=self.settings.scale_factor_default,
        )
        if decision.campaign_id is None:
            decision = decision.model_copy(update={"campaign_id": str(campaign["id"])})

        await self._log_decision(owner_id, decision, state)
        logger.info(f"Decision for campaign {campaign_id}: {decision.action} (guardrails: {len(decision.guardrails)})")
        return decision

    async def _log_decision(self, owner_id: str, decision: Decision, state: Optional[CampaignState]) -> None:
        record = {
            "campaign_id": decision.campaign_id,
            "action": decision.action,
            "reason": decision.reason,
            "score_used": decision.score_used,
            "confidence_used": decision.confidence_used,
            "recommended_budget": decision.recommended_budget,
            "guardrails": list(decision.guardrails),
            "automation_mode": state.automation_mode if state else None,
            "requires_approval": decision.requires_approval,
        }
        try:
            await self.store.insert_decision(owner_id, record)
        except Exception as e:
            logger.error(f"Failed to log decision for campaign {decision.campaign_id}: {type(e).__name__}")

    async def list_decisions(
        self, owner_id: str, campaign_id: Optional[str] = None, limit: int = 50,
    ) -> list[DecisionRecord]:
        result = await guarded_read(
            "Decision history read",
            lambda: self.store.list_decisions(owner_id, campaign_id=campaign_id, limit=limit),
            timeout=self.settings.store_read_timeout_seconds,
            transform=lambda rows: [DecisionRecord.model_validate(r) for r in rows],
        )
        if not result.ok:
            logger.warning(result.error)
            return []
        return result.data
