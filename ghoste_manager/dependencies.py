"""
FastAPI dependency providers.

The store wraps the single process-wide `async_session` factory; services are
cheap request-scoped wrappers around it. Tests swap `get_store` and
`get_analytics_source` through `app.dependency_overrides`.
"""

from functools import lru_cache
from fastapi import Depends

from ghoste_manager.config import Settings, get_settings
from ghoste_manager.database import async_session
from ghoste_manager.services.analytics_source import AnalyticsSource, build_analytics_source
from ghoste_manager.services.context_aggregator import ContextAggregator
from ghoste_manager.services.credential_resolver import CredentialResolver
from ghoste_manager.services.decision_engine import DecisionService
from ghoste_manager.services.score_engine import ScoreEngine
from ghoste_manager.stores import ManagerStore


@lru_cache
def get_store() -> ManagerStore:
    return ManagerStore(async_session)


def get_analytics_source(settings: Settings = Depends(get_settings)) -> AnalyticsSource:
    return build_analytics_source(settings)


def get_credential_resolver(
    store: ManagerStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> CredentialResolver:
    return CredentialResolver(store, read_timeout=settings.store_read_timeout_seconds)


def get_context_aggregator(
    resolver: CredentialResolver = Depends(get_credential_resolver),
    store: ManagerStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> ContextAggregator:
    return ContextAggregator(resolver, store, settings)


def get_score_engine(
    store: ManagerStore = Depends(get_store),
    analytics: AnalyticsSource = Depends(get_analytics_source),
    settings: Settings = Depends(get_settings),
) -> ScoreEngine:
    return ScoreEngine(store, analytics, settings)


def get_decision_service(
    store: ManagerStore = Depends(get_store),
    score_engine: ScoreEngine = Depends(get_score_engine),
    settings: Settings = Depends(get_settings),
) -> DecisionService:
    return DecisionService(store, score_engine, settings)
