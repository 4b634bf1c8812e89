"""
Pricing resolution and cost calculations.

Maps a model name to a row of the pricing catalog and computes cost
estimates from token counts. The catalog follows the LiteLLM
model_prices_and_context_window.json layout: provider-qualified keys mapping
to records with *_cost_per_token fields.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .extraction import to_number
from .token_counter import TokenUsage
from usage_unifier.storage.models import Tool

logger = logging.getLogger(__name__)

LITELLM_PRICING_URL = (
    "https://raw.githubusercontent.com/BerriAI/litellm/main/"
    "model_prices_and_context_window.json"
)

# Token count above which *_above_200k_tokens rates apply
TIER_THRESHOLD = 200_000

CLAUDE_PREFIXES = (
    "anthropic/",
    "claude-3-5-",
    "claude-3-",
    "claude-",
    "openrouter/anthropic/",
)
CODEX_PREFIXES = ("openai/", "azure/", "openrouter/openai/")
CODEX_ALIASES = {"gpt-5-codex": "gpt-5"}

PricingCatalog = Mapping[str, Mapping[str, Any]]


class PricingUnavailableError(Exception):
    """Raised when the pricing catalog cannot be fetched or decoded."""


def _rate(record: Mapping[str, Any], key: str) -> Optional[Decimal]:
    value = record.get(key)
    if value is None or isinstance(value, bool):
        return None
    number = to_number(value)
    return Decimal(str(number))


@dataclass(frozen=True)
class PricingRecord:
    """Per-token rates for one model.

    Cache rates fall back to the input rate when the catalog row omits them.
    Tier rates are None when the model has no long-context pricing.
    """
    input_cost_per_token: Decimal
    output_cost_per_token: Decimal
    cache_creation_cost_per_token: Decimal
    cache_read_cost_per_token: Decimal
    input_cost_above_200k: Optional[Decimal] = None
    output_cost_above_200k: Optional[Decimal] = None
    cache_creation_cost_above_200k: Optional[Decimal] = None
    cache_read_cost_above_200k: Optional[Decimal] = None

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "PricingRecord":
        """Build a record from a raw catalog row."""
        input_rate = _rate(record, "input_cost_per_token") or Decimal("0")
        output_rate = _rate(record, "output_cost_per_token") or Decimal("0")
        cache_creation = _rate(record, "cache_creation_input_token_cost")
        cache_read = _rate(record, "cache_read_input_token_cost")
        return cls(
            input_cost_per_token=input_rate,
            output_cost_per_token=output_rate,
            cache_creation_cost_per_token=input_rate if cache_creation is None else cache_creation,
            cache_read_cost_per_token=input_rate if cache_read is None else cache_read,
            input_cost_above_200k=_rate(record, "input_cost_per_token_above_200k_tokens"),
            output_cost_above_200k=_rate(record, "output_cost_per_token_above_200k_tokens"),
            cache_creation_cost_above_200k=_rate(
                record, "cache_creation_input_token_cost_above_200k_tokens"
            ),
            cache_read_cost_above_200k=_rate(
                record, "cache_read_input_token_cost_above_200k_tokens"
            ),
        )


def pricing_candidates(model: str, tool: Tool) -> List[str]:
    """Ordered catalog keys to try for a model name."""
    base = model.strip()
    names = [base] if base else []
    if tool == Tool.CODEX and base in CODEX_ALIASES:
        names.append(CODEX_ALIASES[base])

    if tool == Tool.CLAUDE:
        prefixes = CLAUDE_PREFIXES
    elif tool == Tool.CODEX:
        prefixes = CODEX_PREFIXES
    else:
        prefixes = ()

    out = list(names)
    for prefix in prefixes:
        for name in names:
            out.append(f"{prefix}{name}")
    # dict preserves first-seen order
    return list(dict.fromkeys(out))


def resolve_pricing(
    catalog: Optional[PricingCatalog],
    model: str,
    tool: Tool,
) -> Optional[PricingRecord]:
    """Find the best-matching catalog row for a model.

    Args:
        catalog: Pricing catalog, or None when pricing is unavailable
        model: Model name as it appears in the log
        tool: CLI family, selects the alias and prefix expansion

    Returns:
        PricingRecord for the first matching candidate key, else None
    """
    if not catalog or not model:
        return None
    for key in pricing_candidates(model, tool):
        row = catalog.get(key)
        if isinstance(row, Mapping):
            return PricingRecord.from_mapping(row)
    return None


def _charge(tokens: int, rate: Decimal, tier_rate: Optional[Decimal]) -> Decimal:
    count = max(tokens, 0)
    if tier_rate is None or count <= TIER_THRESHOLD:
        return Decimal(count) * rate
    return Decimal(TIER_THRESHOLD) * rate + Decimal(count - TIER_THRESHOLD) * tier_rate


def calculate_cost_from_tokens(
    tool: Tool,
    pricing: Optional[PricingRecord],
    usage: TokenUsage,
) -> float:
    """Estimate the cost of one event.

    Codex input is split into cached input (charged at the cache-read rate)
    and the non-cached remainder. Claude reports cache creation and cache
    reads separately from input, each charged at its own rate.

    Args:
        tool: CLI family of the event
        pricing: Resolved pricing, or None
        usage: Token counts of the event

    Returns:
        Cost estimate in USD, 0 when pricing is None
    """
    if pricing is None:
        return 0.0

    input_tokens = max(usage.input_tokens, 0)
    output_cost = _charge(usage.output_tokens, pricing.output_cost_per_token,
                          pricing.output_cost_above_200k)

    if tool == Tool.CODEX:
        cached = min(max(usage.cached_input_tokens, 0), input_tokens)
        non_cached = max(input_tokens - cached, 0)
        total = (
            _charge(non_cached, pricing.input_cost_per_token, pricing.input_cost_above_200k)
            + _charge(cached, pricing.cache_read_cost_per_token, pricing.cache_read_cost_above_200k)
            + output_cost
        )
        return float(total)

    total = (
        _charge(input_tokens, pricing.input_cost_per_token, pricing.input_cost_above_200k)
        + output_cost
        + _charge(usage.cache_creation_tokens, pricing.cache_creation_cost_per_token,
                  pricing.cache_creation_cost_above_200k)
        + _charge(usage.cache_read_tokens, pricing.cache_read_cost_per_token,
                  pricing.cache_read_cost_above_200k)
    )
    return float(total)


def load_pricing_catalog(url: str = LITELLM_PRICING_URL, timeout: float = 30.0) -> Dict[str, Any]:
    """Fetch the pricing catalog.

    Raises:
        PricingUnavailableError: On transport errors, non-2xx responses or a
            body that is not a JSON object
    """
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
        catalog = response.json()
    except httpx.HTTPStatusError as e:
        raise PricingUnavailableError(
            f"Failed to fetch pricing ({e.response.status_code})"
        ) from e
    except httpx.HTTPError as e:
        raise PricingUnavailableError(f"Failed to fetch pricing: {e}") from e
    except ValueError as e:
        raise PricingUnavailableError(f"Pricing catalog is not valid JSON: {e}") from e

    if not isinstance(catalog, dict):
        raise PricingUnavailableError("Pricing catalog must be a JSON object")
    logger.info("Loaded pricing catalog with %d rows", len(catalog))
    return catalog
