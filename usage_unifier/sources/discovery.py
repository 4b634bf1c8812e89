"""
Usage source discovery.

Locates the ProfileX state file, the usage roots of both CLIs and the
.jsonl files below them.
"""

import logging
import os
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from usage_unifier.core.profilex import ProfilexState, normalize_path, parse_profilex_state

logger = logging.getLogger(__name__)

SKIP_DIR_NAMES = {
    '.git', '.hg', '.svn', 'node_modules', 'dist', 'build', '.next',
    '.cache', 'cache', 'tmp', 'temp', 'library', 'appdata',
}
LIKELY_USAGE_MARKERS = ('/projects/', '/sessions/', '/claude/', '/codex/')


def _home(home: Optional[str]) -> str:
    return home if home is not None else str(Path.home())


def expand_home(path: str, home: Optional[str] = None) -> str:
    """Expand a leading ~ to the home directory."""
    if not path:
        return path
    if path == "~":
        return _home(home)
    if not path.startswith(("~/", "~\\")):
        return path
    return os.path.join(_home(home), path[2:])


def to_posix_absolute(path: str, home: Optional[str] = None) -> str:
    """Absolute path with forward slashes."""
    return normalize_path(os.path.abspath(expand_home(path, home)))


def parse_path_list(value: Optional[str], home: Optional[str] = None) -> List[str]:
    """Split a comma separated path list, expanding ~."""
    if not value:
        return []
    return [expand_home(part.strip(), home) for part in value.split(",") if part.strip()]


def ensure_leaf(base: str, leaf: str) -> str:
    """Append leaf to base unless base already ends with it."""
    if normalize_path(base).lower().endswith(f"/{leaf}"):
        return base
    return os.path.join(base, leaf)


def find_profilex_state(
    notes: List[str],
    env: Optional[Mapping[str, str]] = None,
    home: Optional[str] = None,
) -> Tuple[Optional[ProfilexState], Optional[str]]:
    """Load the first ProfileX state file that parses.

    Parse failures and absence are recorded in notes; they never raise.

    Returns:
        (state, posix path of the state file), or (None, None)
    """
    env = os.environ if env is None else env
    base = _home(home)
    candidates = []
    if env.get("PROFILEX_HOME"):
        candidates.append(os.path.join(expand_home(env["PROFILEX_HOME"], home), "state.json"))
    candidates.append(os.path.join(base, ".profilex", "state.json"))
    candidates.append(os.path.join(base, ".config", "profilex", "state.json"))

    for candidate in candidates:
        if not os.path.isfile(candidate):
            continue
        posix = to_posix_absolute(candidate, home)
        try:
            with open(candidate, 'r', encoding='utf-8') as f:
                state = parse_profilex_state(f.read())
            logger.info("Loaded ProfileX state from %s (%d profiles)", posix, len(state.profiles))
            return state, posix
        except (OSError, ValueError) as e:
            logger.warning("Failed to parse ProfileX state at %s: %s", posix, e)
            notes.append(f"Failed to parse state at {posix}: {e}")

    notes.append("ProfileX state.json was not found in common locations")
    return None, None


def usage_roots(
    state: Optional[ProfilexState],
    env: Optional[Mapping[str, str]] = None,
    home: Optional[str] = None,
) -> List[str]:
    """Candidate usage roots of both CLIs, de-duplicated in discovery order."""
    env = os.environ if env is None else env
    base = _home(home)
    roots: List[str] = []

    def add(path: str) -> None:
        if path:
            posix = to_posix_absolute(path, home)
            if posix not in roots:
                roots.append(posix)

    add(os.path.join(base, ".config", "claude", "projects"))
    add(os.path.join(base, ".claude", "projects"))
    for path in parse_path_list(env.get("CLAUDE_CONFIG_DIR"), home):
        add(ensure_leaf(path, "projects"))

    add(os.path.join(base, ".codex", "sessions"))
    for path in parse_path_list(env.get("CODEX_HOME"), home):
        add(ensure_leaf(path, "sessions"))

    if state is not None:
        for profile in state.profiles:
            leaf = "projects" if profile.tool == "claude" else "sessions"
            add(ensure_leaf(expand_home(profile.dir, home), leaf))

    return roots


def existing_roots(candidates: List[str]) -> List[str]:
    """Candidates that exist on disk."""
    return [root for root in candidates if os.path.exists(root)]


def is_likely_usage_path(posix_path: str) -> bool:
    """True for paths that look like CLI usage logs."""
    path = posix_path.lower()
    return any(marker in path for marker in LIKELY_USAGE_MARKERS)


def collect_jsonl_files(root: str, only_likely_paths: bool = False, max_files: int = 5000) -> List[str]:
    """Walk root iteratively for .jsonl files.

    Symlinks and well-known noise directories are skipped. Unreadable
    directories are ignored. At most max_files paths are returned.
    """
    out: List[str] = []
    stack = [root]

    while stack and len(out) < max_files:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError as e:
            logger.debug("Skipping unreadable directory %s: %s", current, e)
            continue

        for entry in entries:
            if len(out) >= max_files:
                break
            name = entry.name.lower()
            if entry.is_symlink():
                continue
            if entry.is_dir(follow_symlinks=False):
                if name not in SKIP_DIR_NAMES:
                    stack.append(entry.path)
                continue
            if not entry.is_file(follow_symlinks=False) or not name.endswith(".jsonl"):
                continue
            posix = to_posix_absolute(entry.path)
            if only_likely_paths and not is_likely_usage_path(posix):
                continue
            out.append(posix)

    return out
