"""
Usage source discovery for Usage Unifier.

Finds ProfileX state, usage roots and log files on the local machine.
"""

from .discovery import (
    collect_jsonl_files,
    existing_roots,
    find_profilex_state,
    usage_roots,
)

__all__ = ["collect_jsonl_files", "existing_roots", "find_profilex_state", "usage_roots"]
