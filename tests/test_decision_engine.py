"""
Tests for campaign recommendations: score bands, guardrails, approval flags
and the logged decision flow.
"""

import random
from datetime import timedelta

import pytest

from ghoste_manager.errors import ErrorKind, InvalidEntityError, StoreUnavailableError
from ghoste_manager.models import AutomationMode, Confidence
from ghoste_manager.schemas import CampaignState, Score
from ghoste_manager.services.decision_engine import (
    GUARD_AT_CAP, GUARD_INSUFFICIENT_DATA, GUARD_KILLSWITCH, GUARD_LEARNING_PHASE, GUARD_LOW_CONFIDENCE,
    GUARD_NO_BUDGET, GUARD_NO_INCREASE,
    DecisionService, recommend,
)
from ghoste_manager.services.score_engine import ScoreEngine, grade_for_score
from ghoste_manager.utils import utcnow
from conftest import OWNER_ID, OTHER_OWNER_ID, FakeAnalytics, make_campaign, make_creative


def _state(**overrides) -> CampaignState:
    values = dict(
        campaign_id="c-1",
        automation_mode=AutomationMode.AUTONOMOUS,
        current_budget=50.0,
        max_budget=200.0,
        campaign_age_days=10,
        killswitch_active=False,
    )
    values.update(overrides)
    return CampaignState(**values)


def _score(value: int, confidence=Confidence.HIGH) -> Score:
    now = utcnow()
    return Score(
        entity_type="campaign",
        entity_id="c-1",
        score=value,
        grade=grade_for_score(value),
        confidence=confidence,
        reasons=["Intent signals strong"],
        window_start=now - timedelta(days=7),
        window_end=now,
    )


def _random_state(rng: random.Random) -> CampaignState:
    return _state(
        automation_mode=rng.choice(list(AutomationMode)),
        current_budget=rng.uniform(0, 500),
        max_budget=rng.uniform(0, 500),
        campaign_age_days=rng.uniform(0, 60),
        killswitch_active=rng.random() < 0.3,
        has_alternate_creative=rng.random() < 0.5,
    )


# ── Laws ──────────────────────────────────────────────────────────────

def test_low_confidence_never_scales():
    rng = random.Random(42)
    for _ in range(1000):
        decision = recommend(_random_state(rng), _score(rng.randint(1, 100), Confidence.LOW))
        assert decision.action != "scale_up"


def test_failing_score_always_pauses():
    rng = random.Random(43)
    for _ in range(1000):
        confidence = rng.choice(list(Confidence))
        decision = recommend(_random_state(rng), _score(rng.randint(1, 39), confidence))
        assert decision.action == "pause"


def test_recommended_budget_never_exceeds_cap():
    rng = random.Random(44)
    for _ in range(1000):
        state = _random_state(rng)
        decision = recommend(state, _score(rng.randint(80, 100), rng.choice(list(Confidence))))
        if decision.recommended_budget is not None:
            assert decision.recommended_budget <= state.max_budget
            assert decision.action == "scale_up"


def test_scale_up_always_raises_the_budget():
    rng = random.Random(45)
    for _ in range(1000):
        state = _random_state(rng)
        if rng.random() < 0.2:
            state = state.model_copy(update={"current_budget": rng.choice([0.0, 0.01])})
        decision = recommend(state, _score(rng.randint(80, 100), rng.choice(list(Confidence))))
        if decision.action == "scale_up":
            assert decision.recommended_budget > state.current_budget


# ── Bands ─────────────────────────────────────────────────────────────

def test_manual_strong_campaign_scale_up_is_only_a_recommendation():
    decision = recommend(
        _state(automation_mode=AutomationMode.MANUAL, current_budget=50, max_budget=200),
        _score(90, Confidence.HIGH),
    )

    assert decision.action == "scale_up"
    assert decision.recommended_budget == 62.5
    assert any("Manual mode requires explicit user approval" in g for g in decision.guardrails)
    assert decision.requires_approval is True
    assert decision.auto_apply_allowed is False


def test_autonomous_strong_high_confidence_scales_by_quarter():
    decision = recommend(_state(), _score(90, Confidence.HIGH))

    assert decision.action == "scale_up"
    assert decision.recommended_budget == 62.5
    assert decision.guardrails == []
    assert decision.auto_apply_allowed is True
    assert decision.requires_approval is False


def test_medium_confidence_uses_smaller_step():
    decision = recommend(_state(), _score(85, Confidence.MEDIUM))
    assert decision.recommended_budget == 57.5


def test_increase_is_clamped_to_cap():
    decision = recommend(_state(current_budget=180, max_budget=200), _score(95))

    assert decision.action == "scale_up"
    assert decision.recommended_budget == 200
    assert "Budget increase capped at 200.00." in decision.guardrails


def test_zero_budget_has_nothing_to_scale():
    decision = recommend(_state(current_budget=0, max_budget=200), _score(90, Confidence.HIGH))

    assert decision.action == "maintain"
    assert GUARD_NO_BUDGET in decision.guardrails
    assert decision.recommended_budget is None
    assert decision.auto_apply_allowed is False


def test_increase_that_rounds_away_is_not_a_scale_up():
    decision = recommend(_state(current_budget=0.01, max_budget=200), _score(90, Confidence.MEDIUM))

    assert decision.action == "maintain"
    assert decision.guardrails == [GUARD_NO_INCREASE]
    assert decision.recommended_budget is None


@pytest.mark.parametrize("overrides, score, guardrail", [
    ({}, _score(90, Confidence.LOW), GUARD_LOW_CONFIDENCE),
    ({"campaign_age_days": 1}, _score(90), GUARD_LEARNING_PHASE),
    ({"current_budget": 200, "max_budget": 200}, _score(90), GUARD_AT_CAP),
    ({"killswitch_active": True}, _score(90), GUARD_KILLSWITCH),
])
def test_blocked_scale_up_downgrades_to_maintain(overrides, score, guardrail):
    decision = recommend(_state(**overrides), score)

    assert decision.action == "maintain"
    assert guardrail in decision.guardrails
    assert decision.recommended_budget is None
    assert decision.auto_apply_allowed is False


def test_pass_band_tests_a_variation():
    decision = recommend(_state(), _score(70))
    assert decision.action == "test_variation"
    assert decision.recommended_budget is None
    assert decision.guardrails == []


def test_weak_band_rotates_creative():
    assert recommend(_state(), _score(50)).action == "rotate_creative"


def test_weak_band_without_fresh_creative_tightens_audience():
    assert recommend(_state(has_alternate_creative=False), _score(50)).action == "tighten_audience"


def test_weak_band_waits_out_learning_phase():
    decision = recommend(_state(campaign_age_days=2), _score(50))
    assert decision.action == "maintain"
    assert decision.guardrails == [GUARD_LEARNING_PHASE]


def test_pause_ignores_killswitch_and_learning_phase():
    decision = recommend(_state(killswitch_active=True, campaign_age_days=0), _score(20))

    assert decision.action == "pause"
    assert decision.auto_apply_allowed is False
    assert decision.requires_approval is True


def test_guided_pause_needs_approval():
    decision = recommend(_state(automation_mode=AutomationMode.GUIDED), _score(12))
    assert decision.action == "pause"
    assert any(g.startswith("Guided mode requires explicit user approval") for g in decision.guardrails)


@pytest.mark.parametrize("state, score", [
    (None, None),
    (None, _score(90)),
    ("campaign", 90),
    (_state(), None),
    (_state(), {"score": 90}),
])
def test_unusable_input_holds_steady(state, score):
    decision = recommend(state, score)

    assert decision.action == "maintain"
    assert decision.guardrails == [GUARD_INSUFFICIENT_DATA]



# ── Goal allowed actions ──────────────────────────────────────────────

def test_goal_blocks_actions_it_does_not_allow():
    one_click_sound = ["scale_up", "maintain", "test_variation", "pause"]
    decision = recommend(_state(allowed_actions=one_click_sound), _score(50))

    assert decision.action == "maintain"
    assert "rotate_creative is not allowed for this campaign goal." in decision.guardrails
    assert decision.auto_apply_allowed is False


def test_weak_band_falls_back_to_the_action_the_goal_allows():
    follower_growth = ["scale_up", "maintain", "tighten_audience", "pause"]
    decision = recommend(_state(allowed_actions=follower_growth, has_alternate_creative=True), _score(50))

    assert decision.action == "tighten_audience"
    assert decision.guardrails == []


def test_goal_restrictions_never_block_pause():
    decision = recommend(_state(allowed_actions=["maintain"]), _score(15))
    assert decision.action == "pause"


def test_goal_restrictions_apply_across_bands():
    rng = random.Random(46)
    for _ in range(500):
        allowed = rng.sample(["scale_up", "maintain", "rotate_creative", "test_variation", "tighten_audience"], 2)
        state = _random_state(rng).model_copy(update={"allowed_actions": allowed})
        decision = recommend(state, _score(rng.randint(1, 100), rng.choice(list(Confidence))))
        assert decision.action in set(allowed) | {"pause", "maintain"}


def test_manual_maintain_needs_no_approval():
    decision = recommend(_state(automation_mode=AutomationMode.MANUAL, campaign_age_days=1), _score(90))

    assert decision.action == "maintain"
    assert decision.requires_approval is False
    assert decision.auto_apply_allowed is False

# ── DecisionService ───────────────────────────────────────────────────

def _service(store, settings, lift=None) -> DecisionService:
    return DecisionService(store, ScoreEngine(store, FakeAnalytics(lift=lift), settings), settings)


def _persisted_score(campaign_id: str, value: int, confidence: str) -> dict:
    now = utcnow()
    return {
        "id": "s-1",
        "owner_user_id": OWNER_ID,
        "entity_type": "campaign",
        "entity_id": campaign_id,
        "platform": None,
        "score": value,
        "grade": grade_for_score(value).value,
        "confidence": confidence,
        "reasons": ["Intent signals strong"],
        "window_start": now - timedelta(days=7),
        "window_end": now,
        "created_at": now,
    }


@pytest.mark.anyio
async def test_service_uses_latest_score_and_logs_decision(store, settings):
    campaign = make_campaign()
    store.campaigns.append(campaign)
    store.scores.append(_persisted_score(campaign["id"], 90, "high"))

    decision = await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])

    assert decision.action == "scale_up"
    assert decision.score_used == 90
    assert decision.recommended_budget == 62.5
    assert decision.campaign_id == campaign["id"]
    assert len(store.scores) == 1
    assert len(store.decisions) == 1
    logged = store.decisions[0]
    assert logged["action"] == "scale_up"
    assert logged["automation_mode"] == "autonomous"
    assert not any("token" in key for key in logged)


@pytest.mark.anyio
async def test_service_computes_score_when_none_exists(store, settings):
    campaign = make_campaign()
    store.campaigns.append(campaign)

    decision = await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])

    assert len(store.scores) == 1
    assert decision.score_used == store.scores[0]["score"]


@pytest.mark.anyio
async def test_service_rejects_other_owners_campaign(store, settings):
    campaign = make_campaign(owner_id=OTHER_OWNER_ID)
    store.campaigns.append(campaign)

    with pytest.raises(InvalidEntityError):
        await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])
    assert store.decisions == []


@pytest.mark.anyio
async def test_campaign_read_failure_is_store_unavailable(store, settings):
    campaign = make_campaign()
    store.campaigns.append(campaign)
    store.failing.add("get_campaign")

    with pytest.raises(StoreUnavailableError) as exc:
        await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])

    assert exc.value.kind == ErrorKind.PARTIAL_READ_FAILURE
    assert exc.value.message == "Campaign read failed"
    assert store.decisions == []


@pytest.mark.anyio
async def test_campaign_goal_restricts_the_recommendation(store, settings):
    campaign = make_campaign(campaign_type="one_click_sound")
    store.campaigns.append(campaign)
    store.creatives.append(make_creative())
    store.scores.append(_persisted_score(campaign["id"], 50, "medium"))

    decision = await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])

    assert decision.action == "maintain"
    assert "rotate_creative is not allowed for this campaign goal." in decision.guardrails

    unrestricted = settings.model_copy(update={"goal_allowed_actions": {}})
    decision = await _service(store, unrestricted).recommend_for_campaign(OWNER_ID, campaign["id"])
    assert decision.action == "rotate_creative"


@pytest.mark.anyio
async def test_killswitch_read_failure_blocks_scaling(store, settings):
    campaign = make_campaign()
    store.campaigns.append(campaign)
    store.scores.append(_persisted_score(campaign["id"], 92, "high"))
    store.failing.add("get_killswitch")

    decision = await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])

    assert decision.action == "maintain"
    assert GUARD_KILLSWITCH in decision.guardrails


@pytest.mark.anyio
async def test_new_campaign_is_in_learning_phase(store, settings):
    campaign = make_campaign(created_at=utcnow() - timedelta(hours=20))
    store.campaigns.append(campaign)
    store.scores.append(_persisted_score(campaign["id"], 92, "high"))

    decision = await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])

    assert decision.action == "maintain"
    assert GUARD_LEARNING_PHASE in decision.guardrails


@pytest.mark.anyio
async def test_missing_budget_cap_means_no_headroom(store, settings):
    campaign = make_campaign(max_daily_budget_cents=None)
    store.campaigns.append(campaign)
    store.scores.append(_persisted_score(campaign["id"], 92, "high"))

    decision = await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])

    assert decision.action == "maintain"
    assert GUARD_AT_CAP in decision.guardrails


@pytest.mark.anyio
async def test_weak_campaign_with_unused_creative_rotates(store, settings):
    in_use = make_creative()
    spare = make_creative()
    campaign = make_campaign(creative_ids=[in_use["id"]])
    store.creatives.extend([in_use, spare])
    store.campaigns.append(campaign)
    store.scores.append(_persisted_score(campaign["id"], 50, "medium"))

    service = _service(store, settings)
    assert (await service.recommend_for_campaign(OWNER_ID, campaign["id"])).action == "rotate_creative"

    store.creatives.remove(spare)
    assert (await service.recommend_for_campaign(OWNER_ID, campaign["id"])).action == "tighten_audience"


@pytest.mark.anyio
async def test_unusable_campaign_state_holds_steady(store, settings):
    campaign = make_campaign(automation_mode="yolo")
    store.campaigns.append(campaign)
    store.scores.append(_persisted_score(campaign["id"], 92, "high"))

    decision = await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])

    assert decision.action == "maintain"
    assert decision.guardrails == [GUARD_INSUFFICIENT_DATA]
    assert decision.campaign_id == campaign["id"]


@pytest.mark.anyio
async def test_decision_log_failure_still_returns_decision(store, settings):
    campaign = make_campaign()
    store.campaigns.append(campaign)
    store.scores.append(_persisted_score(campaign["id"], 20, "medium"))
    store.failing.add("insert_decision")

    decision = await _service(store, settings).recommend_for_campaign(OWNER_ID, campaign["id"])

    assert decision.action == "pause"
    assert store.decisions == []


@pytest.mark.anyio
async def test_decision_history(store, settings):
    campaign = make_campaign()
    store.campaigns.append(campaign)
    store.scores.append(_persisted_score(campaign["id"], 70, "medium"))
    service = _service(store, settings)

    await service.recommend_for_campaign(OWNER_ID, campaign["id"])
    await service.recommend_for_campaign(OWNER_ID, campaign["id"])

    history = await service.list_decisions(OWNER_ID, campaign_id=campaign["id"])
    assert len(history) == 2
    assert history[0].action == "test_variation"
    assert history[0].to_json()["campaignId"] == campaign["id"]
    assert await service.list_decisions(OTHER_OWNER_ID) == []
