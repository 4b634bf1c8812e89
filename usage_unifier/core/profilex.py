"""
Profile identity resolution.

Maps a (tool, filesystem root) pair to a logical profile: either one declared
in a ProfileX state file or a synthetic default-<n> identity.
"""

import json
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from usage_unifier.storage.models import Tool


@dataclass(frozen=True)
class ProfilexProfile:
    """A declared profile binding a tool to a directory."""
    tool: str
    name: str
    dir: str
    created_at: Optional[str] = None


@dataclass(frozen=True)
class ProfilexState:
    """Parsed ProfileX state file."""
    profiles: List[ProfilexProfile]
    version: Optional[int] = None
    defaults: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the state file layout."""
        data: Dict[str, Any] = {
            "profiles": [
                {k: v for k, v in vars(p).items() if v is not None}
                for p in self.profiles
            ],
        }
        if self.version is not None:
            data["version"] = self.version
        if self.defaults:
            data["defaults"] = dict(self.defaults)
        return data


@dataclass(frozen=True)
class ProfileResolution:
    """Resolved profile identity for one source root."""
    profile_id: str
    profile_name: str
    is_profilex_managed: bool


def parse_profilex_state(raw: str) -> ProfilexState:
    """Parse and validate ProfileX state JSON.

    Args:
        raw: Contents of a state.json file

    Returns:
        Validated ProfilexState

    Raises:
        ValueError: If the document is not valid JSON or lacks a profiles list
    """
    try:
        data = json.loads(raw.lstrip("\ufeff"))
    except ValueError as e:
        raise ValueError(f"Invalid ProfileX state: not valid JSON ({e})")

    if not isinstance(data, dict) or not isinstance(data.get("profiles"), list):
        raise ValueError("Invalid ProfileX state: expected { profiles: [] }")

    profiles = []
    for index, item in enumerate(data["profiles"]):
        if not isinstance(item, dict):
            raise ValueError(f"Invalid ProfileX state: profiles[{index}] must be an object")
        for key in ("tool", "name", "dir"):
            if not isinstance(item.get(key), str) or not item[key]:
                raise ValueError(
                    f"Invalid ProfileX state: profiles[{index}].{key} must be a non-empty string"
                )
        created_at = item.get("created_at")
        profiles.append(ProfilexProfile(
            tool=item["tool"],
            name=item["name"],
            dir=item["dir"],
            created_at=created_at if isinstance(created_at, str) else None,
        ))

    version = data.get("version")
    defaults = data.get("defaults")
    return ProfilexState(
        profiles=profiles,
        version=version if isinstance(version, int) and not isinstance(version, bool) else None,
        defaults=dict(defaults) if isinstance(defaults, dict) else {},
    )


def normalize_path(path: str) -> str:
    """Forward slashes, no repeated slashes, no trailing slash."""
    return re.sub(r"/+", "/", path.replace("\\", "/")).rstrip("/")


class ProfileResolver:
    """Resolves source roots to profiles.

    One instance is shared by every file of a run so synthetic numbering stays
    consistent. Mutation of the memo and counters happens under a lock.
    """

    def __init__(self, state: Optional[ProfilexState] = None):
        self.state = state
        self._synthetic: Dict[str, str] = {}
        self._counters: Dict[Tool, int] = {tool: 0 for tool in Tool}
        self._lock = threading.Lock()

    def _match_profile(self, tool: Tool, root: str) -> Optional[ProfilexProfile]:
        if self.state is None:
            return None
        normalized_root = normalize_path(root).lower()

        for profile in self.state.profiles:
            if profile.tool != tool.value:
                continue
            profile_dir = normalize_path(profile.dir).lower()
            if not profile_dir:
                continue
            if normalized_root and (
                profile_dir in normalized_root or normalized_root in profile_dir
            ):
                return profile
            marker = f"/profiles/{profile.tool}/{profile.name}".lower()
            if marker in normalized_root:
                return profile
        return None

    def resolve(self, tool: Tool, root: str) -> ProfileResolution:
        """Resolve a root to a profile, minting a synthetic one if needed."""
        matched = self._match_profile(tool, root)
        if matched is not None:
            return ProfileResolution(
                profile_id=f"{matched.tool}/{matched.name}",
                profile_name=matched.name,
                is_profilex_managed=True,
            )

        key = f"{tool.value}:{normalize_path(root).lower()}"
        with self._lock:
            name = self._synthetic.get(key)
            if name is None:
                self._counters[tool] += 1
                name = f"default-{self._counters[tool]}"
                self._synthetic[key] = name

        return ProfileResolution(
            profile_id=f"{tool.value}/{name}",
            profile_name=name,
            is_profilex_managed=False,
        )
