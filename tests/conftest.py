"""
Shared fixtures for usage_unifier tests.
"""

import pytest

from usage_unifier.storage.models import CostMode, Tool, UsageEvent


@pytest.fixture
def make_event():
    """Factory for UsageEvent records with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = dict(
            id=f"claude-deadbeef-{counter['n']}",
            timestamp_utc="2025-06-02T10:00:00.000Z",
            date_local="2025-06-02",
            tool=Tool.CLAUDE,
            profile_id="claude/work",
            profile_name="work",
            is_profilex_managed=True,
            source_root="/home/me/.claude-work",
            source_file="/home/me/.claude-work/projects/app/s1.jsonl",
            session_id="s1",
            project="app",
            model="claude-sonnet-4",
            is_fallback_model=False,
            input_tokens=100,
            cached_input_tokens=0,
            output_tokens=50,
            reasoning_output_tokens=0,
            cache_creation_tokens=0,
            cache_read_tokens=0,
            raw_total_tokens=150,
            normalized_total_tokens=150,
            observed_cost_usd=0.0,
            calculated_cost_usd=1.0,
            effective_cost_usd=1.0,
            cost_mode_used=CostMode.AUTO,
        )
        values.update(overrides)
        return UsageEvent(**values)

    return _make
