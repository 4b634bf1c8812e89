"""
Claude log normalization.

Every entry of a Claude project log is an independent request/response
record. Entries are normalized one at a time; the only state carried across
a file is the set of request keys already seen.
"""

import logging
from typing import List, Optional, Sequence, Set

from .extraction import (
    RawEntry,
    get_mapping,
    get_number,
    get_string,
    now_utc,
    parent_dir_name,
    project_from_path,
    session_from_file,
    to_local_date,
    to_token_count,
    to_utc_timestamp,
)
from .options import ParseOptions, event_id
from .pricing import calculate_cost_from_tokens, resolve_pricing
from .profilex import ProfileResolution
from .token_counter import TokenUsage
from usage_unifier.storage.models import CostMode, Tool, UsageEvent

logger = logging.getLogger(__name__)

USAGE_PATHS = (
    ("message", "usage"),
    ("usage",),
    ("result", "usage"),
    ("response", "usage"),
    ("message", "response", "usage"),
)
MESSAGE_ID_PATHS = (("message", "id"), ("messageId",))
REQUEST_ID_PATHS = (("requestId",), ("request_id",), ("message", "requestId"))
MODEL_PATHS = (("message", "model"), ("model",), ("response", "model"))
TIMESTAMP_PATHS = (("timestamp",), ("message", "timestamp"))
SESSION_PATHS = (("sessionId",), ("session_id",))
COST_PATHS = (("costUSD",), ("cost_usd",), ("message", "costUSD"))
CWD_PATHS = (("cwd",),)


def dedupe_key(data: dict) -> Optional[str]:
    """Request-level key used to drop repeated records."""
    message_id = get_string(data, MESSAGE_ID_PATHS)
    request_id = get_string(data, REQUEST_ID_PATHS)
    if message_id and request_id:
        return f"mid:{message_id}:rid:{request_id}"
    if request_id:
        return f"rid:{request_id}"
    return None


def extract_claude_usage(data: dict) -> TokenUsage:
    """Token counts from the first usage object found on the entry."""
    usage = get_mapping(data, USAGE_PATHS) or {}
    return TokenUsage(
        input_tokens=to_token_count(usage.get("input_tokens")),
        output_tokens=to_token_count(usage.get("output_tokens")),
        cache_creation_tokens=to_token_count(usage.get("cache_creation_input_tokens")),
        cache_read_tokens=to_token_count(usage.get("cache_read_input_tokens")),
    )


def effective_cost(cost_mode: CostMode, observed: float, calculated: float) -> float:
    """Pick the cost used downstream according to the cost mode."""
    if cost_mode == CostMode.DISPLAY:
        return observed
    if cost_mode == CostMode.CALCULATE:
        return calculated
    return observed if observed > 0 else calculated


class ClaudeNormalizer:
    """Normalizes the entries of one Claude log file."""

    def __init__(self, source_file: str, source_root: str, options: ParseOptions):
        self.source_file = source_file
        self.source_root = source_root
        self.options = options
        self.seen: Set[str] = set()
        self._profile: Optional[ProfileResolution] = None

    @property
    def profile(self) -> ProfileResolution:
        """Profile of the file, resolved on first use."""
        if self._profile is None:
            self._profile = self.options.profile_resolver.resolve(Tool.CLAUDE, self.source_root)
        return self._profile

    def normalize(self, entry: RawEntry) -> Optional[UsageEvent]:
        """Convert one entry into zero or one event."""
        data = entry.data

        key = dedupe_key(data)
        if key is not None:
            if key in self.seen:
                logger.debug("Skipping duplicate request %s in %s", key, self.source_file)
                return None
            self.seen.add(key)

        usage = extract_claude_usage(data)
        total_tokens = (
            usage.input_tokens
            + usage.output_tokens
            + usage.cache_creation_tokens
            + usage.cache_read_tokens
        )
        observed_cost = max(get_number(data, COST_PATHS), 0.0)
        if total_tokens <= 0 and observed_cost == 0:
            return None

        model = get_string(data, MODEL_PATHS)
        pricing = resolve_pricing(self.options.pricing_catalog, model, Tool.CLAUDE)
        calculated_cost = calculate_cost_from_tokens(Tool.CLAUDE, pricing, usage)

        raw_timestamp = get_string(data, TIMESTAMP_PATHS)
        timestamp = to_utc_timestamp(raw_timestamp) if raw_timestamp else now_utc()

        project = project_from_path(get_string(data, CWD_PATHS)) or parent_dir_name(self.source_file)

        return UsageEvent(
            id=event_id(Tool.CLAUDE, self.source_file, entry),
            timestamp_utc=timestamp,
            date_local=to_local_date(timestamp, self.options.timezone),
            tool=Tool.CLAUDE,
            profile_id=self.profile.profile_id,
            profile_name=self.profile.profile_name,
            is_profilex_managed=self.profile.is_profilex_managed,
            source_root=self.source_root,
            source_file=self.source_file,
            session_id=get_string(data, SESSION_PATHS) or session_from_file(self.source_file),
            project=project,
            model=model,
            is_fallback_model=False,
            input_tokens=usage.input_tokens,
            cached_input_tokens=0,
            output_tokens=usage.output_tokens,
            reasoning_output_tokens=0,
            cache_creation_tokens=usage.cache_creation_tokens,
            cache_read_tokens=usage.cache_read_tokens,
            raw_total_tokens=total_tokens,
            normalized_total_tokens=total_tokens,
            observed_cost_usd=observed_cost,
            calculated_cost_usd=calculated_cost,
            effective_cost_usd=effective_cost(self.options.cost_mode, observed_cost, calculated_cost),
            cost_mode_used=self.options.cost_mode,
        )


def normalize_claude_entries(
    entries: Sequence[RawEntry],
    source_file: str,
    source_root: str,
    options: ParseOptions,
) -> List[UsageEvent]:
    """Normalize every entry of a Claude log file, in order."""
    normalizer = ClaudeNormalizer(source_file, source_root, options)
    events = []
    for entry in entries:
        event = normalizer.normalize(entry)
        if event is not None:
            events.append(event)
    return events
