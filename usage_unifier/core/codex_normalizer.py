"""
Codex log normalization.

Codex session logs are a stream: token_count events carry either a per-turn
delta (last_token_usage) or a cumulative snapshot (total_token_usage), and
the active model is announced by separate context records. A file is
normalized as a fold over its entries with an explicit CodexStreamState
accumulator, so each step can be tested on its own.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from .extraction import (
    RawEntry,
    get_mapping,
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

FALLBACK_MODEL = "gpt-5"

CONTEXT_RECORD_TYPES = {"turn_context", "session_meta", "response_item"}
CONTEXT_MODEL_PATHS = (("payload", "model"), ("payload", "settings", "model"), ("model",))
CONTEXT_CWD_PATHS = (("payload", "cwd"),)
EVENT_MODEL_PATHS = (
    ("payload", "model"),
    ("payload", "info", "model"),
    ("payload", "info", "metadata", "model"),
)
TIMESTAMP_PATHS = (("timestamp",), ("payload", "timestamp"))


@dataclass(frozen=True)
class CodexStreamState:
    """Accumulator threaded through a Codex log.

    previous_totals is the last cumulative snapshot seen. current_model is
    the model events are attributed to when they do not name one, and
    current_model_is_fallback stays True until a real model string shows up.
    """
    previous_totals: Optional[TokenUsage] = None
    current_model: Optional[str] = None
    current_model_is_fallback: bool = False
    project: str = ""


@dataclass(frozen=True)
class CodexFileContext:
    """Per-file values that do not change while folding."""
    source_file: str
    source_root: str
    session_id: str
    profile: ProfileResolution
    options: ParseOptions


def extract_codex_usage(value) -> Optional[TokenUsage]:
    """Token counts from a Codex usage object, None when it carries nothing."""
    if not isinstance(value, dict):
        return None
    input_tokens = to_token_count(value.get("input_tokens"))
    cached = value.get("cached_input_tokens")
    if cached is None:
        cached = value.get("cache_read_input_tokens")
    usage = TokenUsage(
        input_tokens=input_tokens,
        cached_input_tokens=to_token_count(cached),
        output_tokens=to_token_count(value.get("output_tokens")),
        reasoning_output_tokens=to_token_count(value.get("reasoning_output_tokens")),
        reported_total_tokens=to_token_count(value.get("total_tokens")),
    )
    if usage.is_empty and usage.reported_total_tokens == 0:
        return None
    return usage


def _observe_context(state: CodexStreamState, data: dict) -> CodexStreamState:
    model = get_string(data, CONTEXT_MODEL_PATHS)
    cwd = get_string(data, CONTEXT_CWD_PATHS)
    if model:
        state = replace(state, current_model=model, current_model_is_fallback=False)
    if cwd:
        state = replace(state, project=project_from_path(cwd))
    return state


def _resolve_model(state: CodexStreamState, data: dict) -> Tuple[str, bool]:
    model = get_string(data, EVENT_MODEL_PATHS)
    if model:
        return model, False
    if state.current_model:
        return state.current_model, state.current_model_is_fallback
    return FALLBACK_MODEL, True


def step(
    state: CodexStreamState,
    entry: RawEntry,
    context: CodexFileContext,
) -> Tuple[CodexStreamState, Optional[UsageEvent]]:
    """Fold one entry into the stream state, possibly emitting an event."""
    data = entry.data
    record_type = get_string(data, [("type",)])

    if record_type in CONTEXT_RECORD_TYPES:
        return _observe_context(state, data), None

    if record_type != "event_msg" or get_string(data, [("payload", "type")]) != "token_count":
        return state, None

    info = get_mapping(data, [("payload", "info")]) or {}
    last = extract_codex_usage(info.get("last_token_usage"))
    total = extract_codex_usage(info.get("total_token_usage"))

    if last is not None:
        usage = last
    elif total is not None:
        usage = total.minus(state.previous_totals)
    else:
        return state, None
    if total is not None:
        state = replace(state, previous_totals=total)

    if usage.is_empty:
        return state, None

    model, is_fallback = _resolve_model(state, data)
    state = replace(state, current_model=model, current_model_is_fallback=is_fallback)

    input_tokens = usage.input_tokens
    cached_input_tokens = min(usage.cached_input_tokens, input_tokens)
    usage = replace(usage, cached_input_tokens=cached_input_tokens)

    options = context.options
    pricing = resolve_pricing(options.pricing_catalog, model, Tool.CODEX)
    calculated_cost = calculate_cost_from_tokens(Tool.CODEX, pricing, usage)

    raw_timestamp = get_string(data, TIMESTAMP_PATHS)
    timestamp = to_utc_timestamp(raw_timestamp) if raw_timestamp else now_utc()

    event = UsageEvent(
        id=event_id(Tool.CODEX, context.source_file, entry),
        timestamp_utc=timestamp,
        date_local=to_local_date(timestamp, options.timezone),
        tool=Tool.CODEX,
        profile_id=context.profile.profile_id,
        profile_name=context.profile.profile_name,
        is_profilex_managed=context.profile.is_profilex_managed,
        source_root=context.source_root,
        source_file=context.source_file,
        session_id=context.session_id,
        project=state.project or parent_dir_name(context.source_file),
        model=model,
        is_fallback_model=is_fallback,
        input_tokens=input_tokens,
        cached_input_tokens=cached_input_tokens,
        output_tokens=usage.output_tokens,
        reasoning_output_tokens=usage.reasoning_output_tokens,
        cache_creation_tokens=0,
        cache_read_tokens=0,
        raw_total_tokens=usage.reported_total_tokens,
        normalized_total_tokens=usage.total_tokens,
        observed_cost_usd=0.0,
        calculated_cost_usd=calculated_cost,
        effective_cost_usd=0.0 if options.cost_mode == CostMode.DISPLAY else calculated_cost,
        cost_mode_used=options.cost_mode,
    )
    return state, event


def normalize_codex_entries(
    entries: Sequence[RawEntry],
    source_file: str,
    source_root: str,
    options: ParseOptions,
) -> List[UsageEvent]:
    """Normalize a Codex log file in entry order, starting from a fresh state."""
    if not entries:
        return []
    context = CodexFileContext(
        source_file=source_file,
        source_root=source_root,
        session_id=session_from_file(source_file),
        profile=options.profile_resolver.resolve(Tool.CODEX, source_root),
        options=options,
    )
    state = CodexStreamState()
    events = []
    for entry in entries:
        state, event = step(state, entry, context)
        if event is not None:
            events.append(event)
    if state.current_model_is_fallback:
        logger.debug("No model recorded in %s, attributed to %s", source_file, FALLBACK_MODEL)
    return events
