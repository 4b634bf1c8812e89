"""
Normalization options shared by the engine and both normalizers.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Optional

from .extraction import RawEntry
from .pricing import PricingCatalog
from .profilex import ProfileResolver
from usage_unifier.storage.models import CostMode, Tool


@dataclass
class ParseOptions:
    """Per-run settings handed to every file normalization.

    profile_resolver is the one piece of shared mutable state; pass the same
    instance for every file of a run.
    """
    timezone: str = "UTC"
    cost_mode: CostMode = CostMode.AUTO
    tool_hint: Optional[Tool] = None
    pricing_catalog: Optional[PricingCatalog] = None
    profile_resolver: ProfileResolver = field(default_factory=ProfileResolver)


def event_id(tool: Tool, file_path: str, entry: RawEntry) -> str:
    """Stable event id from the file path and the entry's position."""
    digest = hashlib.sha1(file_path.encode("utf-8")).hexdigest()[:8]
    base = f"{tool.value}-{digest}-{entry.line_index}"
    if entry.item_index is not None:
        return f"{base}.{entry.item_index}"
    return base
