"""
Cross-profile session correlation.

A session id that shows up under more than one profile (for example the same
log synced into two profile directories) is marked as shared on every event
that carries it.
"""

from dataclasses import replace
from typing import Dict, List, Sequence, Set, Tuple

from usage_unifier.storage.models import Tool, UsageEvent


def mark_shared_sessions(events: Sequence[UsageEvent]) -> List[UsageEvent]:
    """Return events with shared-session markers filled in.

    Events are immutable, so marked events are replaced copies. Events
    without a session id and sessions seen under a single profile are
    returned unchanged. Order is preserved.
    """
    profiles: Dict[Tuple[Tool, str], Dict[str, str]] = {}
    sources: Dict[Tuple[Tool, str], Set[str]] = {}
    for e in events:
        if not e.session_id:
            continue
        key = (e.tool, e.session_id)
        profiles.setdefault(key, {})[e.profile_id] = e.profile_name
        sources.setdefault(key, set()).add(e.source_file)

    out = []
    for e in events:
        key = (e.tool, e.session_id)
        members = profiles.get(key) if e.session_id else None
        if not members or len(members) < 2:
            out.append(e)
            continue
        profile_ids = sorted(members)
        out.append(replace(
            e,
            is_shared_session=True,
            shared_session_profile_ids=profile_ids,
            shared_session_profile_names=[members[p] for p in profile_ids],
            shared_session_sources=sorted(sources[key]),
        ))
    return out
