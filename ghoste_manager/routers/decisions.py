"""
Decisions Router — recommended action per campaign plus the decision history.
Recommendations only; applying them is a separate, approved step.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ghoste_manager.auth import get_owner_id
from ghoste_manager.dependencies import get_decision_service
from ghoste_manager.services.decision_engine import DecisionService

router = APIRouter()


# ── Request Models ────────────────────────────────────────────────────

class RecommendRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    campaign_id: str = Field(min_length=1, max_length=64)


# ── Endpoints ─────────────────────────────────────────────────────────

@router.post("/decisions")
async def recommend(
    payload: RecommendRequest,
    owner_id: str = Depends(get_owner_id),
    service: DecisionService = Depends(get_decision_service),
):
    decision = await service.recommend_for_campaign(owner_id, payload.campaign_id)
    return {"ok": True, "decision": decision.to_json()}


@router.get("/decisions")
async def list_decisions(
    campaign_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    owner_id: str = Depends(get_owner_id),
    service: DecisionService = Depends(get_decision_service),
):
    records = await service.list_decisions(owner_id, campaign_id=campaign_id, limit=limit)
    return {"ok": True, "decisions": [r.to_json() for r in records]}
