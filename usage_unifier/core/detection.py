"""
Log format detection.

Decides which CLI produced a file from the structure of its entries, with a
path-based heuristic as a fallback.
"""

from typing import Iterable, Sequence, Union

from .extraction import RawEntry, get_path, get_string
from .profilex import normalize_path
from usage_unifier.storage.models import Tool

DETECTION_SAMPLE_SIZE = 300

CODEX_RECORD_TYPES = {"session_meta", "turn_context", "response_item"}
CODEX_EVENT_PAYLOAD_TYPES = {"token_count", "user_message", "agent_message", "agent_reasoning"}
CLAUDE_TOP_LEVEL_MARKERS = ("requestId", "costUSD", "sessionId")


def detect_entry_tool(data: dict) -> Tool:
    """Classify a single entry by its structural markers."""
    record_type = get_string(data, [("type",)])
    if record_type in CODEX_RECORD_TYPES:
        return Tool.CODEX
    if record_type == "event_msg":
        if get_string(data, [("payload", "type")]) in CODEX_EVENT_PAYLOAD_TYPES:
            return Tool.CODEX

    info = get_path(data, ("payload", "info"))
    if isinstance(info, dict) and (info.get("total_token_usage") or info.get("last_token_usage")):
        return Tool.CODEX

    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("usage"), dict):
        return Tool.CLAUDE
    if any(data.get(marker) for marker in CLAUDE_TOP_LEVEL_MARKERS):
        return Tool.CLAUDE
    return Tool.UNKNOWN


def detect_tool(entries: Sequence[RawEntry], sample_size: int = DETECTION_SAMPLE_SIZE) -> Tool:
    """Vote over the first entries of a file.

    Ties go to Claude, which is also the default normalizer path.
    """
    votes = {Tool.CLAUDE: 0, Tool.CODEX: 0}
    for entry in entries[:sample_size]:
        detected = detect_entry_tool(entry.data)
        if detected in votes:
            votes[detected] += 1

    if votes[Tool.CLAUDE] == 0 and votes[Tool.CODEX] == 0:
        return Tool.UNKNOWN
    return Tool.CODEX if votes[Tool.CODEX] > votes[Tool.CLAUDE] else Tool.CLAUDE


def infer_tool_from_path(file_path: str) -> Tool:
    """Guess the tool from well-known directory names."""
    path = normalize_path(file_path).lower()
    if "/projects/" in path:
        return Tool.CLAUDE
    if "/sessions/" in path:
        return Tool.CODEX
    if "token_count" in path or "codex" in path:
        return Tool.CODEX
    if "claude" in path:
        return Tool.CLAUDE
    return Tool.UNKNOWN


def resolve_tool(
    entries: Sequence[RawEntry],
    file_path: str,
    tool_hint: Union[Tool, str, None] = None,
) -> Tool:
    """Pick the tool for a file.

    Precedence: explicit hint, then content vote, then path heuristic.
    A hint of "auto" (or None) means no hint.
    """
    if isinstance(tool_hint, str):
        tool_hint = None if tool_hint == "auto" else Tool(tool_hint)
    if tool_hint is not None:
        return tool_hint

    detected = detect_tool(entries)
    if detected != Tool.UNKNOWN:
        return detected
    return infer_tool_from_path(file_path)


def extract_root_from_file(file_path: str, tool: Tool) -> str:
    """Source root of a log file: the directory above projects/ or sessions/."""
    path = normalize_path(file_path)
    markers: Iterable[str] = ()
    if tool == Tool.CLAUDE:
        markers = ("/projects/",)
    elif tool == Tool.CODEX:
        markers = ("/sessions/",)

    for marker in markers:
        index = path.find(marker)
        if index >= 0:
            return path[:index]
    return path[: path.rfind("/")] if "/" in path else "uploaded"
