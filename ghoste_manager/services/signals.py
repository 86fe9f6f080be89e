"""
First-party click signal helpers shared by the context aggregator and the
score engine, so both count clicks the same way.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

# Clicks that stayed on the landing page or could not be attributed to a DSP
NON_PLATFORM_VALUES = {"", "web", "other", "unknown", "landing"}


def is_platform_click(event: dict) -> bool:
    platform = (event.get("platform") or "").strip().lower()
    return platform not in NON_PLATFORM_VALUES


def is_one_click(event: dict) -> bool:
    name = (event.get("event_name") or "").strip().lower()
    return name.startswith("oneclick") or name.startswith("one_click")


@dataclass
class ClickTally:
    total_clicks: int = 0
    platform_clicks: int = 0
    one_click_count: int = 0
    by_platform: Counter = field(default_factory=Counter)
    by_link: Counter = field(default_factory=Counter)

    @property
    def intent_depth(self) -> float:
        return self.one_click_count / self.total_clicks if self.total_clicks else 0.0


def tally_clicks(events: Iterable[dict], platform: Optional[str] = None) -> ClickTally:
    """
    Count clicks. With `platform` set, only clicks to that platform count as
    platform clicks; otherwise any click out to a streaming/store platform does.
    """
    tally = ClickTally()
    wanted = platform.strip().lower() if platform else None
    for event in events:
        tally.total_clicks += 1
        event_platform = (event.get("platform") or "").strip().lower()
        if wanted is not None:
            if event_platform == wanted:
                tally.platform_clicks += 1
        elif is_platform_click(event):
            tally.platform_clicks += 1
        if is_one_click(event):
            tally.one_click_count += 1
        if event_platform:
            tally.by_platform[event_platform] += 1
        if event.get("link_id"):
            tally.by_link[str(event["link_id"])] += 1
    return tally


def bucket_counts(events: Iterable[dict], start: datetime, bucket_size, buckets: int) -> list[int]:
    """Click counts per consecutive bucket of `bucket_size` starting at `start`."""
    counts = [0] * buckets
    for event in events:
        created = event.get("created_at")
        if not isinstance(created, datetime) or created < start:
            continue
        index = int((created - start) / bucket_size)
        if 0 <= index < buckets:
            counts[index] += 1
    return counts


def top_n(counter: Counter, n: int = 5) -> list[tuple[str, int]]:
    """Most common entries, ties broken by key so output is deterministic."""
    return sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))[:n]
