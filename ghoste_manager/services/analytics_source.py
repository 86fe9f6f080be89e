"""
Third-party analytics — ephemeral reads only.

The raw baseline/window metrics exist only inside `_fetch_lift`; the only
value that leaves this module is the lift fraction, and callers only keep its
score contribution. Raw values are never logged, persisted or returned.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional
import httpx

from ghoste_manager.config import Settings

logger = logging.getLogger(__name__)


class AnalyticsSource:
    """Interface: returns the lift fraction for a window, or None if unavailable."""

    async def read_lift(
        self,
        entity_type: str,
        entity_id: str,
        platform: Optional[str],
        window_start: datetime,
        window_end: datetime,
    ) -> Optional[float]:
        raise NotImplementedError


class UnconfiguredAnalyticsSource(AnalyticsSource):
    async def read_lift(self, entity_type, entity_id, platform, window_start, window_end) -> Optional[float]:
        return None


class HttpAnalyticsSource(AnalyticsSource):
    """
    Reads one metric for the scoring window and for the equally long window
    right before it, then reduces both to a lift fraction.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 4.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def read_lift(self, entity_type, entity_id, platform, window_start, window_end) -> Optional[float]:
        try:
            return await asyncio.wait_for(
                self._fetch_lift(entity_type, entity_id, platform, window_start, window_end),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Analytics read timed out for {entity_type} (treated as unavailable)")
            return None
        except httpx.HTTPStatusError as e:
            logger.warning(f"Analytics read failed for {entity_type}: HTTP {e.response.status_code}")
            return None
        except Exception as e:
            # Exception text could echo response bodies; log the type only.
            logger.warning(f"Analytics read failed for {entity_type}: {type(e).__name__}")
            return None

    async def _fetch_lift(self, entity_type, entity_id, platform, window_start, window_end) -> Optional[float]:
        duration = window_end - window_start
        baseline_start = window_start - duration
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        async with httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout) as client:
            window_metric = await self._metric(client, entity_type, entity_id, platform, window_start, window_end)
            baseline_metric = await self._metric(client, entity_type, entity_id, platform, baseline_start, window_start)

        if window_metric is None or baseline_metric is None or baseline_metric <= 0:
            return None
        return (window_metric - baseline_metric) / baseline_metric

    @staticmethod
    async def _metric(client: httpx.AsyncClient, entity_type, entity_id, platform, start, end) -> Optional[float]:
        params = {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "start": start.isoformat(),
            "end": end.isoformat(),
        }
        if platform:
            params["platform"] = platform
        response = await client.get("/metrics", params=params)
        response.raise_for_status()
        data = response.json()
        value = data.get("value") if isinstance(data, dict) else None
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None


def build_analytics_source(settings: Settings) -> AnalyticsSource:
    if not settings.analytics_configured:
        return UnconfiguredAnalyticsSource()
    return HttpAnalyticsSource(
        base_url=settings.analytics_api_url,
        api_key=settings.analytics_api_key,
        timeout=settings.analytics_timeout_seconds,
    )
