"""
Usage event normalization engine.

Entry point that turns the text of one log file into canonical usage
events: flatten, detect the producing tool, pick its normalizer.
"""

import logging
from typing import List

from .claude_normalizer import normalize_claude_entries
from .codex_normalizer import normalize_codex_entries
from .detection import extract_root_from_file, resolve_tool
from .extraction import flatten_entries
from .options import ParseOptions
from usage_unifier.storage.models import Tool, UsageEvent

logger = logging.getLogger(__name__)


def parse_usage_file(file_text: str, file_path: str, options: ParseOptions) -> List[UsageEvent]:
    """Normalize the contents of one log file.

    Unknown formats go through the Claude normalizer, which emits nothing
    for entries without usage data. "No data" is never an error.

    Args:
        file_text: Full text of the file
        file_path: Path of the file, used for detection, ids and labels
        options: Run options; the profile resolver inside is shared state

    Returns:
        Events in entry order
    """
    entries = flatten_entries(file_text)
    if not entries:
        return []

    tool = resolve_tool(entries, file_path, options.tool_hint)
    root = extract_root_from_file(file_path, tool)
    logger.debug("Parsing %s as %s (%d entries, root %s)", file_path, tool.value, len(entries), root)

    if tool == Tool.CODEX:
        return normalize_codex_entries(entries, file_path, root, options)
    return normalize_claude_entries(entries, file_path, root, options)
