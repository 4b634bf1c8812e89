"""
Usage Unifier.

Normalizes Claude and Codex CLI session logs into one stream of canonical
usage events with token counts, cost estimates and profile identity.
"""

__version__ = "0.1.0"
