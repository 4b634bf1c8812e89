"""
Token counting and usage tracking.

Holds per-event token counts and the delta arithmetic used for cumulative
counter streams.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TokenUsage:
    """Token counts for one usage occurrence.

    All counts are clamped to be non-negative at construction time by the
    extraction helpers; arithmetic here keeps that guarantee.
    """
    input_tokens: int = 0
    cached_input_tokens: int = 0
    output_tokens: int = 0
    reasoning_output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    reported_total_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Reported total when present, else input + output."""
        if self.reported_total_tokens > 0:
            return self.reported_total_tokens
        return self.input_tokens + self.output_tokens

    @property
    def is_empty(self) -> bool:
        """True when none of the counters carry a signal."""
        return (
            self.input_tokens == 0
            and self.cached_input_tokens == 0
            and self.output_tokens == 0
            and self.reasoning_output_tokens == 0
        )

    def minus(self, previous: Optional["TokenUsage"]) -> "TokenUsage":
        """Per-field difference against an earlier snapshot, floored at zero."""
        if previous is None:
            return self
        return TokenUsage(
            input_tokens=max(self.input_tokens - previous.input_tokens, 0),
            cached_input_tokens=max(self.cached_input_tokens - previous.cached_input_tokens, 0),
            output_tokens=max(self.output_tokens - previous.output_tokens, 0),
            reasoning_output_tokens=max(
                self.reasoning_output_tokens - previous.reasoning_output_tokens, 0
            ),
            cache_creation_tokens=max(self.cache_creation_tokens - previous.cache_creation_tokens, 0),
            cache_read_tokens=max(self.cache_read_tokens - previous.cache_read_tokens, 0),
            reported_total_tokens=max(self.reported_total_tokens - previous.reported_total_tokens, 0),
        )
