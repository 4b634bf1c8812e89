"""
Filtering of canonical usage events.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

from usage_unifier.storage.models import Tool, UsageEvent


class SharedSessionFilter(Enum):
    """Which events to keep with respect to shared sessions."""
    ALL = "all"
    SHARED_ONLY = "shared-only"
    NON_SHARED_ONLY = "non-shared-only"


@dataclass
class FilterState:
    """Active filters; empty lists and dates mean no restriction."""
    date_start: str = ""
    date_end: str = ""
    tools: List[Tool] = field(default_factory=list)
    models: List[str] = field(default_factory=list)
    profiles: List[str] = field(default_factory=list)
    shared_sessions: SharedSessionFilter = SharedSessionFilter.ALL


@dataclass
class FilterOptions:
    """Values available for filtering a set of events."""
    tools: List[Tool]
    models: List[str]
    profiles: List[str]
    min_date: str
    max_date: str


def extract_filter_options(events: Sequence[UsageEvent]) -> FilterOptions:
    """Collect the distinct tools, models, profiles and the date range."""
    dates = [e.date_local for e in events]
    return FilterOptions(
        tools=sorted({e.tool for e in events}, key=lambda t: t.value),
        models=sorted({e.model for e in events if e.model}),
        profiles=sorted({e.profile_id for e in events}),
        min_date=min(dates) if dates else "",
        max_date=max(dates) if dates else "",
    )


def _matches(event: UsageEvent, state: FilterState) -> bool:
    if state.date_start and event.date_local < state.date_start:
        return False
    if state.date_end and event.date_local > state.date_end:
        return False
    if state.tools and event.tool not in state.tools:
        return False
    if state.models and event.model not in state.models:
        return False
    if state.profiles and event.profile_id not in state.profiles:
        return False
    if state.shared_sessions == SharedSessionFilter.SHARED_ONLY and not event.is_shared_session:
        return False
    if state.shared_sessions == SharedSessionFilter.NON_SHARED_ONLY and event.is_shared_session:
        return False
    return True


def apply_filters(events: Sequence[UsageEvent], state: FilterState) -> List[UsageEvent]:
    """Events matching every active filter, in input order."""
    return [e for e in events if _matches(e, state)]
