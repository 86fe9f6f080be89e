"""
Scores Router — compute and read performance scores for owned entities.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ghoste_manager.auth import get_owner_id
from ghoste_manager.dependencies import get_score_engine
from ghoste_manager.models import EntityType
from ghoste_manager.services.score_engine import MAX_WINDOW_HOURS, ScoreEngine

router = APIRouter()


# ── Request Models ────────────────────────────────────────────────────

class ComputeScoreRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    entity_type: EntityType
    entity_id: str = Field(min_length=1, max_length=255)
    window_hours: float = Field(default=168, ge=1, le=MAX_WINDOW_HOURS)
    platform: Optional[str] = Field(default=None, max_length=50)


# ── Endpoints ─────────────────────────────────────────────────────────

@router.post("/scores")
async def compute_score(
    payload: ComputeScoreRequest,
    owner_id: str = Depends(get_owner_id),
    engine: ScoreEngine = Depends(get_score_engine),
):
    score = await engine.compute_score(
        owner_id,
        payload.entity_type.value,
        payload.entity_id,
        payload.window_hours,
        platform=payload.platform,
    )
    return {"ok": True, "score": score.to_json()}


@router.get("/scores/latest")
async def get_latest_score(
    entity_type: EntityType = Query(...),
    entity_id: str = Query(..., min_length=1),
    owner_id: str = Depends(get_owner_id),
    engine: ScoreEngine = Depends(get_score_engine),
):
    score = await engine.get_latest_score(owner_id, entity_type.value, entity_id)
    return {"ok": True, "score": score.to_json() if score else None}
