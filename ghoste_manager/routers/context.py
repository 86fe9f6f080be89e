"""
Context Router — the reconciled manager context and an AI narrative over it.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ghoste_manager.auth import get_owner_id
from ghoste_manager.config import Settings, get_settings
from ghoste_manager.dependencies import get_context_aggregator
from ghoste_manager.errors import ErrorKind, ManagerError
from ghoste_manager.services.ai_service import create_ai_service
from ghoste_manager.services.context_aggregator import ContextAggregator

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request Models ────────────────────────────────────────────────────

class InsightsRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question: Optional[str] = None
    model_id: Optional[str] = None  # "provider:model", e.g. "anthropic:claude-sonnet-4-20250514"


# ── Endpoints ─────────────────────────────────────────────────────────

@router.get("/context")
async def get_manager_context(
    owner_id: str = Depends(get_owner_id),
    aggregator: ContextAggregator = Depends(get_context_aggregator),
):
    context = await aggregator.build_manager_context(owner_id)
    return {"ok": True, "context": context.to_json()}


@router.post("/context/insights")
async def get_context_insights(
    payload: Optional[InsightsRequest] = None,
    owner_id: str = Depends(get_owner_id),
    aggregator: ContextAggregator = Depends(get_context_aggregator),
    settings: Settings = Depends(get_settings),
):
    """AI narrative over the current context. Requires an OpenAI or Anthropic key."""
    payload = payload or InsightsRequest()
    ai = create_ai_service(settings, model_id=payload.model_id)
    context = await aggregator.build_manager_context(owner_id)
    try:
        insights = await ai.summarize_context(context, question=payload.question)
    except Exception:
        raise ManagerError(
            "AI provider is unavailable. Please try again shortly.",
            kind=ErrorKind.THIRD_PARTY_UNAVAILABLE,
            status_code=502,
        )
    return {"ok": True, "insights": insights, "errors": context.errors}
