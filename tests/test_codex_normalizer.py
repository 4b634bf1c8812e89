"""
Unit tests for Codex stream normalization.

Tests cumulative deltas, model attribution and the fold step.
"""

import pytest

from usage_unifier.core.codex_normalizer import (
    FALLBACK_MODEL,
    CodexFileContext,
    CodexStreamState,
    extract_codex_usage,
    normalize_codex_entries,
    step,
)
from usage_unifier.core.extraction import RawEntry
from usage_unifier.core.options import ParseOptions
from usage_unifier.core.profilex import ProfileResolution, ProfileResolver
from usage_unifier.core.token_counter import TokenUsage
from usage_unifier.storage.models import CostMode, Tool

SOURCE_FILE = "/home/me/.codex/sessions/2025/06/01/rollout-abc.jsonl"
SOURCE_ROOT = "/home/me/.codex"

CATALOG = {
    "gpt-5": {
        "input_cost_per_token": 0.00000125,
        "output_cost_per_token": 0.00001,
        "cache_read_input_token_cost": 0.000000125,
    },
}


def _token_count(total=None, last=None, model=None, timestamp="2025-06-01T10:00:00.000Z"):
    info = {}
    if total is not None:
        info["total_token_usage"] = total
    if last is not None:
        info["last_token_usage"] = last
    payload = {"type": "token_count", "info": info}
    if model is not None:
        payload["model"] = model
    return {"timestamp": timestamp, "type": "event_msg", "payload": payload}


def _usage(input_tokens=0, output_tokens=0, cached=0, reasoning=0, total=None):
    usage = {
        "input_tokens": input_tokens,
        "cached_input_tokens": cached,
        "output_tokens": output_tokens,
        "reasoning_output_tokens": reasoning,
    }
    if total is not None:
        usage["total_tokens"] = total
    return usage


def _context(model="gpt-5", cwd=None, record_type="turn_context"):
    payload = {}
    if model is not None:
        payload["model"] = model
    if cwd is not None:
        payload["cwd"] = cwd
    return {"type": record_type, "payload": payload}


def _entries(*records):
    return [RawEntry(i, None, r) for i, r in enumerate(records)]


def _options(cost_mode=CostMode.AUTO):
    return ParseOptions(
        timezone="UTC",
        cost_mode=cost_mode,
        pricing_catalog=CATALOG,
        profile_resolver=ProfileResolver(None),
    )


def _normalize(*records, cost_mode=CostMode.AUTO):
    return normalize_codex_entries(_entries(*records), SOURCE_FILE, SOURCE_ROOT, _options(cost_mode))


class TestExtractCodexUsage:
    """Test usage object parsing."""

    def test_all_zero_is_none(self):
        """Verify empty usage objects carry nothing."""
        assert extract_codex_usage(_usage()) is None
        assert extract_codex_usage(None) is None
        assert extract_codex_usage("x") is None

    def test_cache_read_alias(self):
        """Verify cache_read_input_tokens stands in for cached input."""
        usage = extract_codex_usage({"input_tokens": 10, "cache_read_input_tokens": 4})
        assert usage.cached_input_tokens == 4


class TestCumulativeTotals:
    """Test delta computation from cumulative snapshots."""

    def test_monotonic_totals_become_deltas(self):
        """Verify snapshots 100, 250, 400 yield deltas 100, 150, 150."""
        events = _normalize(
            _token_count(total=_usage(input_tokens=100)),
            _token_count(total=_usage(input_tokens=250)),
            _token_count(total=_usage(input_tokens=400)),
        )
        assert [e.input_tokens for e in events] == [100, 150, 150]

    def test_regression_clamps_to_zero_and_drops(self):
        """Verify a counter reset never produces negative usage."""
        events = _normalize(
            _token_count(total=_usage(input_tokens=300, output_tokens=30)),
            _token_count(total=_usage(input_tokens=100, output_tokens=10)),
            _token_count(total=_usage(input_tokens=150, output_tokens=10)),
        )
        assert [e.input_tokens for e in events] == [300, 50]
        assert all(e.input_tokens >= 0 and e.output_tokens >= 0 for e in events)

    def test_repeated_snapshot_emits_nothing(self):
        """Verify an unchanged snapshot has no delta."""
        snapshot = _usage(input_tokens=100, output_tokens=10)
        events = _normalize(_token_count(total=snapshot), _token_count(total=snapshot))
        assert len(events) == 1

    def test_last_usage_takes_precedence(self):
        """Verify per-turn usage wins over the snapshot delta."""
        events = _normalize(
            _token_count(total=_usage(input_tokens=100), last=_usage(input_tokens=100)),
            _token_count(total=_usage(input_tokens=300), last=_usage(input_tokens=7)),
        )
        assert [e.input_tokens for e in events] == [100, 7]

    def test_snapshot_tracked_while_last_usage_used(self):
        """Verify later snapshot-only events diff against the latest snapshot."""
        events = _normalize(
            _token_count(total=_usage(input_tokens=500), last=_usage(input_tokens=20)),
            _token_count(total=_usage(input_tokens=600)),
        )
        assert [e.input_tokens for e in events] == [20, 100]

    def test_token_count_without_info_is_ignored(self):
        """Verify token_count events without usage emit nothing."""
        events = _normalize({"type": "event_msg", "payload": {"type": "token_count", "info": None}})
        assert events == []


class TestModelAttribution:
    """Test model tracking across the stream."""

    def test_context_model_no_fallback(self):
        """Verify a model announced by context is a real attribution."""
        events = _normalize(_context("gpt-5-codex"), _token_count(last=_usage(input_tokens=1)))
        assert events[0].model == "gpt-5-codex"
        assert not events[0].is_fallback_model

    def test_fallback_model_when_none_seen(self):
        """Verify the fallback model is used and flagged."""
        events = _normalize(_token_count(last=_usage(input_tokens=1)))
        assert events[0].model == FALLBACK_MODEL
        assert events[0].is_fallback_model

    def test_fallback_persists_until_real_model(self):
        """Verify fallback status sticks until a context names a model."""
        events = _normalize(
            _token_count(last=_usage(input_tokens=1)),
            _token_count(last=_usage(input_tokens=2)),
            _context("o3"),
            _token_count(last=_usage(input_tokens=3)),
        )
        assert [e.is_fallback_model for e in events] == [True, True, False]
        assert [e.model for e in events] == [FALLBACK_MODEL, FALLBACK_MODEL, "o3"]

    def test_event_model_overrides_context(self):
        """Verify a model on the event itself wins."""
        events = _normalize(
            _context("gpt-5"),
            _token_count(last=_usage(input_tokens=1), model="gpt-4.1"),
            _token_count(last=_usage(input_tokens=1)),
        )
        assert [e.model for e in events] == ["gpt-4.1", "gpt-4.1"]

    def test_context_without_model_keeps_current(self):
        """Verify context records lacking a model change nothing."""
        events = _normalize(
            _context("o3"),
            _context(None, record_type="response_item"),
            _token_count(last=_usage(input_tokens=1)),
        )
        assert events[0].model == "o3"


class TestCodexEventFields:
    """Test emitted event contents."""

    def test_labels_and_totals(self):
        """Verify session, project, profile and totals."""
        events = _normalize(
            _context("gpt-5", cwd="/home/me/work/api", record_type="session_meta"),
            _token_count(last=_usage(input_tokens=100, output_tokens=20, reasoning=5, total=125)),
        )
        event = events[0]
        assert event.tool == Tool.CODEX
        assert event.session_id == "rollout-abc"
        assert event.project == "api"
        assert event.profile_id == "codex/default-1"
        assert event.reasoning_output_tokens == 5
        assert event.raw_total_tokens == 125
        assert event.normalized_total_tokens == 125
        assert event.observed_cost_usd == 0

    def test_project_falls_back_to_parent_dir(self):
        """Verify the parent directory labels the project without a cwd."""
        events = _normalize(_token_count(last=_usage(input_tokens=1)))
        assert events[0].project == "01"

    def test_normalized_total_without_reported_total(self):
        """Verify input plus output when no total is reported."""
        events = _normalize(_token_count(last=_usage(input_tokens=10, output_tokens=4)))
        assert events[0].normalized_total_tokens == 14
        assert events[0].raw_total_tokens == 0

    def test_cached_input_clamped_to_input(self):
        """Verify cached input never exceeds input."""
        events = _normalize(_token_count(last=_usage(input_tokens=10, cached=50)))
        assert events[0].cached_input_tokens == 10

    def test_calculated_cost(self):
        """Verify cached input is charged at the cache-read rate."""
        events = _normalize(
            _context("gpt-5"),
            _token_count(last=_usage(input_tokens=1000, cached=400, output_tokens=100)),
        )
        assert events[0].calculated_cost_usd == pytest.approx(0.0018)
        assert events[0].effective_cost_usd == pytest.approx(0.0018)

    @pytest.mark.parametrize("mode", [CostMode.AUTO, CostMode.CALCULATE])
    def test_non_display_modes_use_calculated_cost(self, mode):
        """Verify auto and calculate both use the estimate."""
        events = _normalize(_token_count(last=_usage(input_tokens=1000)), cost_mode=mode)
        assert events[0].effective_cost_usd == events[0].calculated_cost_usd > 0

    def test_display_mode_is_zero(self):
        """Verify display mode reports zero cost for Codex."""
        events = _normalize(_token_count(last=_usage(input_tokens=1000)), cost_mode=CostMode.DISPLAY)
        assert events[0].effective_cost_usd == 0
        assert events[0].calculated_cost_usd > 0

    def test_empty_entries(self):
        """Verify no entries means no events and no profile."""
        options = _options()
        assert normalize_codex_entries([], SOURCE_FILE, SOURCE_ROOT, options) == []
        assert options.profile_resolver.resolve(Tool.CODEX, "/x").profile_name == "default-1"


class TestStep:
    """Test the fold step in isolation."""

    context = CodexFileContext(
        source_file=SOURCE_FILE,
        source_root=SOURCE_ROOT,
        session_id="rollout-abc",
        profile=ProfileResolution("codex/work", "work", True),
        options=_options(),
    )

    def test_context_record_updates_model(self):
        """Verify context records update state without emitting."""
        state, event = step(CodexStreamState(), RawEntry(0, None, _context("o3")), self.context)
        assert event is None
        assert state.current_model == "o3"
        assert not state.current_model_is_fallback

    def test_unrelated_record_is_noop(self):
        """Verify other records leave state untouched."""
        initial = CodexStreamState(current_model="o3")
        entry = RawEntry(0, None, {"type": "event_msg", "payload": {"type": "agent_message"}})
        state, event = step(initial, entry, self.context)
        assert state is initial
        assert event is None

    def test_snapshot_updates_previous_totals(self):
        """Verify the state records the latest snapshot."""
        entry = RawEntry(3, None, _token_count(total=_usage(input_tokens=40)))
        state, event = step(CodexStreamState(), entry, self.context)
        assert state.previous_totals == TokenUsage(input_tokens=40)
        assert event.input_tokens == 40
        assert event.profile_id == "codex/work"
        assert event.is_profilex_managed

    def test_delta_against_state(self):
        """Verify the delta is taken from the carried snapshot."""
        initial = CodexStreamState(previous_totals=TokenUsage(input_tokens=40), current_model="gpt-5")
        entry = RawEntry(4, None, _token_count(total=_usage(input_tokens=90)))
        _, event = step(initial, entry, self.context)
        assert event.input_tokens == 50
        assert not event.is_fallback_model
