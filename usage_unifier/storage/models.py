"""
Data models for the canonical usage stream.

Defines the normalized event record and the enums shared by every layer.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List


class Tool(Enum):
    """CLI family that produced a log file."""
    CLAUDE = "claude"
    CODEX = "codex"
    UNKNOWN = "unknown"


class CostMode(Enum):
    """Policy for choosing the effective cost of an event."""
    AUTO = "auto"          # Observed cost when positive, else calculated
    CALCULATE = "calculate"  # Always the pricing-table estimate
    DISPLAY = "display"    # Always the provider-reported figure


TOKEN_FIELDS = (
    "input_tokens",
    "cached_input_tokens",
    "output_tokens",
    "reasoning_output_tokens",
    "cache_creation_tokens",
    "cache_read_tokens",
)

COST_FIELDS = (
    "observed_cost_usd",
    "calculated_cost_usd",
    "effective_cost_usd",
)


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one usage occurrence.

    Created by exactly one normalizer call per raw entry (or per reconstructed
    delta) and never modified afterwards. Cross-file passes such as shared
    session marking produce replaced copies.
    """
    id: str
    timestamp_utc: str
    date_local: str
    tool: Tool
    profile_id: str
    profile_name: str
    is_profilex_managed: bool
    source_root: str
    source_file: str
    session_id: str
    project: str
    model: str
    is_fallback_model: bool
    input_tokens: int
    cached_input_tokens: int
    output_tokens: int
    reasoning_output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    raw_total_tokens: int
    normalized_total_tokens: int
    observed_cost_usd: float
    calculated_cost_usd: float
    effective_cost_usd: float
    cost_mode_used: CostMode
    is_shared_session: bool = False
    shared_session_profile_ids: List[str] = field(default_factory=list)
    shared_session_profile_names: List[str] = field(default_factory=list)
    shared_session_sources: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate token counts are never negative."""
        for name in TOKEN_FIELDS + ("normalized_total_tokens",):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON shape used by the bundle."""
        data = asdict(self)
        data["tool"] = self.tool.value
        data["cost_mode_used"] = self.cost_mode_used.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageEvent":
        """Rebuild an event from its bundle representation."""
        values = dict(data)
        values["tool"] = Tool(values["tool"])
        values["cost_mode_used"] = CostMode(values["cost_mode_used"])
        return cls(**values)
