"""
Aggregation of canonical usage events.

Rollups by day and profile, by profile, by tool and by time bucket. Every
rollup is a plain sum over events, so per-field totals across the rows of
any rollup equal the totals over the input events.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Dict, List, Sequence, Set, Tuple

from usage_unifier.storage.models import Tool, UsageEvent


class TimeBucket(Enum):
    """Granularity of a time series."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass
class DailyProfileRow:
    """Usage of one profile on one local date."""
    date_local: str
    tool: Tool
    profile_id: str
    profile_name: str
    input_tokens: int = 0
    cached_input_tokens: int = 0
    output_tokens: int = 0
    reasoning_output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    total_tokens: int = 0
    observed_cost_usd: float = 0.0
    calculated_cost_usd: float = 0.0
    effective_cost_usd: float = 0.0
    sessions_count: int = 0
    models_used: List[str] = field(default_factory=list)


@dataclass
class ProfileSummary:
    """Lifetime usage of one profile."""
    tool: Tool
    profile_id: str
    profile_name: str
    first_seen: str
    last_seen: str
    total_tokens: int
    total_cost: float
    avg_daily_cost: float
    top_models: List[str]
    source_roots: List[str]


@dataclass
class ToolSummary:
    """Usage of one tool across all profiles."""
    tool: Tool
    total_tokens: int = 0
    observed_cost_usd: float = 0.0
    calculated_cost_usd: float = 0.0
    total_cost_usd: float = 0.0
    active_profiles: int = 0


@dataclass(frozen=True)
class OverallTotals:
    """Grand totals over a set of events."""
    total_tokens: int
    total_cost_usd: float
    observed_cost_usd: float
    calculated_cost_usd: float
    window_start: str
    window_end: str


@dataclass(frozen=True)
class TimeSeriesPoint:
    """Effective cost per series key within one bucket."""
    date: str
    values: Dict[str, float]


def aggregate_daily_profile(events: Sequence[UsageEvent]) -> List[DailyProfileRow]:
    """Rows per (local date, tool, profile), newest date first."""
    rows: Dict[Tuple[str, Tool, str], DailyProfileRow] = {}
    sessions: Dict[Tuple[str, Tool, str], Set[str]] = {}
    models: Dict[Tuple[str, Tool, str], Set[str]] = {}

    for e in events:
        key = (e.date_local, e.tool, e.profile_id)
        row = rows.get(key)
        if row is None:
            row = rows[key] = DailyProfileRow(
                date_local=e.date_local,
                tool=e.tool,
                profile_id=e.profile_id,
                profile_name=e.profile_name,
            )
            sessions[key] = set()
            models[key] = set()

        row.input_tokens += e.input_tokens
        row.cached_input_tokens += e.cached_input_tokens
        row.output_tokens += e.output_tokens
        row.reasoning_output_tokens += e.reasoning_output_tokens
        row.cache_creation_tokens += e.cache_creation_tokens
        row.cache_read_tokens += e.cache_read_tokens
        row.total_tokens += e.normalized_total_tokens
        row.observed_cost_usd += e.observed_cost_usd
        row.calculated_cost_usd += e.calculated_cost_usd
        row.effective_cost_usd += e.effective_cost_usd
        if e.session_id:
            sessions[key].add(e.session_id)
        if e.model:
            models[key].add(e.model)

    for key, row in rows.items():
        row.sessions_count = len(sessions[key])
        row.models_used = sorted(models[key])

    # Two stable sorts: profile ascending, then date descending
    out = sorted(rows.values(), key=lambda r: r.profile_id)
    return sorted(out, key=lambda r: r.date_local, reverse=True)


def aggregate_profile_summary(events: Sequence[UsageEvent]) -> List[ProfileSummary]:
    """One summary per (tool, profile), most expensive first."""
    groups: Dict[Tuple[Tool, str], List[UsageEvent]] = {}
    for e in events:
        groups.setdefault((e.tool, e.profile_id), []).append(e)

    summaries = []
    for (tool, profile_id), group in groups.items():
        total_cost = sum(e.effective_cost_usd for e in group)
        days = {e.date_local for e in group}
        model_costs: Dict[str, float] = {}
        for e in group:
            if e.model:
                model_costs[e.model] = model_costs.get(e.model, 0.0) + e.effective_cost_usd
        top_models = sorted(model_costs.items(), key=lambda item: item[1], reverse=True)[:5]

        summaries.append(ProfileSummary(
            tool=tool,
            profile_id=profile_id,
            profile_name=group[0].profile_name,
            first_seen=min(e.timestamp_utc for e in group),
            last_seen=max(e.timestamp_utc for e in group),
            total_tokens=sum(e.normalized_total_tokens for e in group),
            total_cost=total_cost,
            avg_daily_cost=total_cost / max(1, len(days)),
            top_models=[model for model, _ in top_models],
            source_roots=sorted({e.source_root for e in group}),
        ))

    return sorted(summaries, key=lambda s: s.total_cost, reverse=True)


def aggregate_tool_summary(events: Sequence[UsageEvent]) -> List[ToolSummary]:
    """Totals per tool, in order of first appearance."""
    rows: Dict[Tool, ToolSummary] = {}
    profiles: Dict[Tool, Set[str]] = {}
    for e in events:
        if e.tool not in rows:
            rows[e.tool] = ToolSummary(tool=e.tool)
            profiles[e.tool] = set()
        row = rows[e.tool]
        row.total_tokens += e.normalized_total_tokens
        row.observed_cost_usd += e.observed_cost_usd
        row.calculated_cost_usd += e.calculated_cost_usd
        row.total_cost_usd += e.effective_cost_usd
        profiles[e.tool].add(e.profile_id)

    for tool, row in rows.items():
        row.active_profiles = len(profiles[tool])
    return list(rows.values())


def overall_totals(events: Sequence[UsageEvent]) -> OverallTotals:
    """Grand totals and the UTC time window covered by events."""
    if not events:
        return OverallTotals(0, 0.0, 0.0, 0.0, "", "")
    timestamps = sorted(e.timestamp_utc for e in events)
    return OverallTotals(
        total_tokens=sum(e.normalized_total_tokens for e in events),
        total_cost_usd=sum(e.effective_cost_usd for e in events),
        observed_cost_usd=sum(e.observed_cost_usd for e in events),
        calculated_cost_usd=sum(e.calculated_cost_usd for e in events),
        window_start=timestamps[0],
        window_end=timestamps[-1],
    )


def bucket_start(date_local: str, bucket: TimeBucket) -> str:
    """First local date of the bucket holding date_local."""
    if bucket == TimeBucket.DAILY:
        return date_local
    try:
        day = date.fromisoformat(date_local[:10])
    except ValueError:
        return date_local
    if bucket == TimeBucket.WEEKLY:
        return (day - timedelta(days=day.weekday())).isoformat()
    return day.replace(day=1).isoformat()


def _series_key(event: UsageEvent, key: str) -> str:
    if key == "tool":
        return event.tool.value
    if key == "profile":
        return event.profile_id
    if key == "model":
        return event.model or "unknown"
    raise ValueError(f"Unsupported series key: {key}")


def aggregate_by_bucket(
    events: Sequence[UsageEvent],
    bucket: TimeBucket = TimeBucket.DAILY,
    key: str = "tool",
) -> List[TimeSeriesPoint]:
    """Effective cost per series key per bucket, oldest bucket first.

    Args:
        events: Events to roll up
        bucket: Daily, weekly (weeks start on Monday) or monthly buckets
        key: Series key, one of "tool", "profile" or "model"

    Raises:
        ValueError: If key is not supported
    """
    points: Dict[str, Dict[str, float]] = {}
    for e in events:
        values = points.setdefault(bucket_start(e.date_local, bucket), {})
        series = _series_key(e, key)
        values[series] = values.get(series, 0.0) + e.effective_cost_usd
    return [TimeSeriesPoint(date=d, values=points[d]) for d in sorted(points)]
