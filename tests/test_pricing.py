"""
Unit tests for pricing resolution and cost calculations.

Tests candidate expansion, rate fallbacks, tiering and catalog fetching.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import httpx
import pytest

from usage_unifier.core.pricing import (
    PricingRecord,
    PricingUnavailableError,
    calculate_cost_from_tokens,
    load_pricing_catalog,
    pricing_candidates,
    resolve_pricing,
)
from usage_unifier.core.token_counter import TokenUsage
from usage_unifier.storage.models import Tool

CATALOG = {
    "anthropic/claude-3-5-x": {
        "input_cost_per_token": 0.000003,
        "output_cost_per_token": 0.000015,
        "cache_creation_input_token_cost": 0.00000375,
        "cache_read_input_token_cost": 0.0000003,
    },
    "gpt-5": {
        "input_cost_per_token": 0.00000125,
        "output_cost_per_token": 0.00001,
        "cache_read_input_token_cost": 0.000000125,
    },
    "azure/gpt-4o": {"input_cost_per_token": 0.0000025, "output_cost_per_token": 0.00001},
}


class TestTokenUsage:
    """Test TokenUsage arithmetic."""

    def test_total_prefers_reported(self):
        """Verify reported total wins over input + output."""
        assert TokenUsage(input_tokens=10, output_tokens=5, reported_total_tokens=20).total_tokens == 20
        assert TokenUsage(input_tokens=10, output_tokens=5).total_tokens == 15

    def test_minus_clamps_at_zero(self):
        """Verify deltas never go negative."""
        newer = TokenUsage(input_tokens=50, output_tokens=10)
        older = TokenUsage(input_tokens=80, output_tokens=4)
        delta = newer.minus(older)
        assert delta.input_tokens == 0
        assert delta.output_tokens == 6

    def test_minus_none_returns_self(self):
        """Verify subtracting nothing keeps the snapshot."""
        usage = TokenUsage(input_tokens=1)
        assert usage.minus(None) is usage


class TestPricingCandidates:
    """Test candidate key expansion."""

    def test_claude_prefixes(self):
        """Verify raw name first, then provider prefixes."""
        keys = pricing_candidates("claude-3-5-x", Tool.CLAUDE)
        assert keys[0] == "claude-3-5-x"
        assert keys[1] == "anthropic/claude-3-5-x"
        assert "openrouter/anthropic/claude-3-5-x" in keys

    def test_codex_alias_expansion(self):
        """Verify aliases are tried bare and prefixed."""
        keys = pricing_candidates("gpt-5-codex", Tool.CODEX)
        assert keys[:2] == ["gpt-5-codex", "gpt-5"]
        assert "openai/gpt-5" in keys
        assert "azure/gpt-5-codex" in keys

    def test_no_duplicates(self):
        """Verify each candidate appears once."""
        keys = pricing_candidates("gpt-4o", Tool.CODEX)
        assert len(keys) == len(set(keys))

    def test_unknown_tool_uses_raw_name_only(self):
        """Verify unknown tools get no prefix expansion."""
        assert pricing_candidates(" gpt-4o ", Tool.UNKNOWN) == ["gpt-4o"]


class TestResolvePricing:
    """Test catalog lookups."""

    def test_prefix_expansion_finds_qualified_key(self):
        """Verify a bare model resolves to its anthropic/ qualified row."""
        record = resolve_pricing(CATALOG, "claude-3-5-x", Tool.CLAUDE)
        assert record is not None
        assert record.input_cost_per_token == Decimal("0.000003")

    def test_alias_resolution(self):
        """Verify gpt-5-codex resolves through the gpt-5 alias."""
        record = resolve_pricing(CATALOG, "gpt-5-codex", Tool.CODEX)
        assert record.output_cost_per_token == Decimal("0.00001")

    def test_azure_prefix(self):
        """Verify azure/ prefixes are attempted for Codex."""
        assert resolve_pricing(CATALOG, "gpt-4o", Tool.CODEX) is not None

    def test_missing_model_or_catalog(self):
        """Verify None for unknown models, empty names and no catalog."""
        assert resolve_pricing(CATALOG, "mystery", Tool.CLAUDE) is None
        assert resolve_pricing(CATALOG, "", Tool.CLAUDE) is None
        assert resolve_pricing(None, "gpt-5", Tool.CODEX) is None

    def test_cache_rates_fall_back_to_input(self):
        """Verify missing cache rates use the input rate."""
        record = PricingRecord.from_mapping(CATALOG["azure/gpt-4o"])
        assert record.cache_creation_cost_per_token == record.input_cost_per_token
        assert record.cache_read_cost_per_token == record.input_cost_per_token

    def test_explicit_zero_cache_rate_is_kept(self):
        """Verify a catalog rate of 0 means free cache reads, not the input rate."""
        record = PricingRecord.from_mapping({
            "input_cost_per_token": 0.000003,
            "cache_read_input_token_cost": 0,
            "cache_creation_input_token_cost": 0.0,
        })
        assert record.cache_read_cost_per_token == Decimal("0")
        assert record.cache_creation_cost_per_token == Decimal("0")
        usage = TokenUsage(cache_read_tokens=1000, cache_creation_tokens=1000)
        assert calculate_cost_from_tokens(Tool.CLAUDE, record, usage) == 0.0


class TestCostCalculation:
    """Test cost estimates."""

    def test_no_pricing_costs_nothing(self):
        """Verify None pricing yields zero cost."""
        usage = TokenUsage(input_tokens=1000, output_tokens=1000)
        assert calculate_cost_from_tokens(Tool.CLAUDE, None, usage) == 0.0

    def test_claude_cost(self):
        """Verify each Claude token class uses its own rate."""
        record = resolve_pricing(CATALOG, "claude-3-5-x", Tool.CLAUDE)
        usage = TokenUsage(
            input_tokens=1000,
            output_tokens=1000,
            cache_creation_tokens=1000,
            cache_read_tokens=1000,
        )
        # 0.003 + 0.015 + 0.00375 + 0.0003
        assert calculate_cost_from_tokens(Tool.CLAUDE, record, usage) == pytest.approx(0.02205)

    def test_codex_cached_input_uses_cache_read_rate(self):
        """Verify cached input is split off the standard input charge."""
        record = resolve_pricing(CATALOG, "gpt-5", Tool.CODEX)
        usage = TokenUsage(input_tokens=1000, cached_input_tokens=400, output_tokens=100)
        # 600 * 1.25e-6 + 400 * 1.25e-7 + 100 * 1e-5
        assert calculate_cost_from_tokens(Tool.CODEX, record, usage) == pytest.approx(0.0018)

    def test_codex_cached_input_capped_at_input(self):
        """Verify cached input larger than input is clamped."""
        record = resolve_pricing(CATALOG, "gpt-5", Tool.CODEX)
        usage = TokenUsage(input_tokens=100, cached_input_tokens=500)
        assert calculate_cost_from_tokens(Tool.CODEX, record, usage) == pytest.approx(100 * 0.000000125)

    def test_tiered_rate_above_threshold(self):
        """Verify tokens beyond 200k use the tier rate when present."""
        record = PricingRecord.from_mapping({
            "input_cost_per_token": 0.000003,
            "output_cost_per_token": 0.000015,
            "input_cost_per_token_above_200k_tokens": 0.000006,
        })
        usage = TokenUsage(input_tokens=300_000)
        expected = 200_000 * 0.000003 + 100_000 * 0.000006
        assert calculate_cost_from_tokens(Tool.CLAUDE, record, usage) == pytest.approx(expected)

    def test_no_tier_rate_means_flat_pricing(self):
        """Verify flat pricing when no tier rate exists."""
        record = PricingRecord.from_mapping({"input_cost_per_token": 0.000001})
        usage = TokenUsage(input_tokens=300_000)
        assert calculate_cost_from_tokens(Tool.CLAUDE, record, usage) == pytest.approx(0.3)


class TestLoadPricingCatalog:
    """Test catalog fetching."""

    def _response(self, status_code=200, payload=None):
        request = httpx.Request("GET", "https://example.test/prices.json")
        return httpx.Response(status_code, json=payload, request=request)

    def test_successful_fetch(self):
        """Verify a JSON object body is returned as the catalog."""
        with patch("usage_unifier.core.pricing.httpx.get", return_value=self._response(payload=CATALOG)):
            assert load_pricing_catalog("https://example.test/prices.json") == CATALOG

    def test_http_error_status(self):
        """Verify non-2xx responses raise a descriptive error."""
        with patch("usage_unifier.core.pricing.httpx.get", return_value=self._response(503, {})):
            with pytest.raises(PricingUnavailableError, match="503"):
                load_pricing_catalog("https://example.test/prices.json")

    def test_transport_error(self):
        """Verify connection failures are wrapped."""
        error = httpx.ConnectError("boom")
        with patch("usage_unifier.core.pricing.httpx.get", side_effect=error):
            with pytest.raises(PricingUnavailableError, match="boom"):
                load_pricing_catalog("https://example.test/prices.json")

    def test_non_object_body(self):
        """Verify a JSON array body is rejected."""
        with patch("usage_unifier.core.pricing.httpx.get", return_value=self._response(payload=[1, 2])):
            with pytest.raises(PricingUnavailableError, match="JSON object"):
                load_pricing_catalog("https://example.test/prices.json")

    def test_invalid_json_body(self):
        """Verify undecodable bodies are wrapped."""
        response = MagicMock()
        response.raise_for_status.return_value = None
        response.json.side_effect = ValueError("bad json")
        with patch("usage_unifier.core.pricing.httpx.get", return_value=response):
            with pytest.raises(PricingUnavailableError, match="not valid JSON"):
                load_pricing_catalog("https://example.test/prices.json")
