"""
Canonical bundle persistence.

The bundle is the JSON artifact handed to dashboards: run metadata, the
ProfileX state, every event sorted by UTC timestamp, provenance and notes.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .models import CostMode, UsageEvent

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class SourceSummary:
    """Where the events of a bundle came from."""
    profilex_state_path: Optional[str] = None
    usage_roots: List[str] = field(default_factory=list)
    usage_files: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class UsageBundle:
    """Complete output of one generation run."""
    generated_at_utc: str
    timezone: str
    cost_mode: CostMode
    pricing_loaded: bool
    profilex_state: Optional[Dict[str, Any]]
    events: List[UsageEvent]
    source: SourceSummary
    notes: List[str] = field(default_factory=list)
    schema_version: int = SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the bundle JSON layout."""
        return {
            "schema_version": self.schema_version,
            "generated_at_utc": self.generated_at_utc,
            "timezone": self.timezone,
            "cost_mode": self.cost_mode.value,
            "pricing_loaded": self.pricing_loaded,
            "profilex_state": self.profilex_state,
            "events": [e.to_dict() for e in self.events],
            "source": {
                "profilex_state_path": self.source.profilex_state_path,
                "usage_roots": list(self.source.usage_roots),
                "usage_files": list(self.source.usage_files),
            },
            "notes": list(self.notes),
        }


def build_bundle(
    events: Sequence[UsageEvent],
    timezone_name: str,
    cost_mode: CostMode,
    pricing_loaded: bool,
    profilex_state: Optional[Dict[str, Any]],
    source: SourceSummary,
    notes: Sequence[str] = (),
    generated_at: Optional[datetime] = None,
) -> UsageBundle:
    """Assemble a bundle, sorting events by UTC timestamp."""
    moment = generated_at or datetime.now(timezone.utc)
    return UsageBundle(
        generated_at_utc=moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
        timezone=timezone_name,
        cost_mode=cost_mode,
        pricing_loaded=pricing_loaded,
        profilex_state=profilex_state,
        events=sorted(events, key=lambda e: e.timestamp_utc),
        source=source,
        notes=list(notes),
    )


def write_bundle(bundle: UsageBundle, path: str) -> Path:
    """Write a bundle as pretty-printed JSON, creating parent directories."""
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, 'w', encoding='utf-8') as f:
        json.dump(bundle.to_dict(), f, indent=2)
        f.write("\n")
    return out_path


def read_bundle(path: str) -> UsageBundle:
    """Load a bundle written by write_bundle.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a bundle of a supported schema version
    """
    bundle_path = Path(path)
    if not bundle_path.exists():
        raise FileNotFoundError(f"Bundle file not found: {path}")

    with open(bundle_path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except ValueError as e:
            raise ValueError(f"Invalid JSON in bundle {path}: {e}")

    if not isinstance(data, dict):
        raise ValueError("Bundle must be a JSON object")
    if data.get("schema_version") != SCHEMA_VERSION:
        raise ValueError(f"Unsupported bundle schema version: {data.get('schema_version')}")
    if not isinstance(data.get("events"), list):
        raise ValueError("Bundle 'events' must be a list")

    source = data.get("source") or {}
    return UsageBundle(
        generated_at_utc=data.get("generated_at_utc", ""),
        timezone=data.get("timezone", "UTC"),
        cost_mode=CostMode(data.get("cost_mode", CostMode.AUTO.value)),
        pricing_loaded=bool(data.get("pricing_loaded")),
        profilex_state=data.get("profilex_state"),
        events=[UsageEvent.from_dict(e) for e in data["events"]],
        source=SourceSummary(
            profilex_state_path=source.get("profilex_state_path"),
            usage_roots=list(source.get("usage_roots", [])),
            usage_files=list(source.get("usage_files", [])),
        ),
        notes=list(data.get("notes", [])),
    )
