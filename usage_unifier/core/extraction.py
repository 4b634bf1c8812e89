"""
Flattening and field extraction for untyped JSON log entries.

Log schemas drift between CLI releases, so attributes are looked up through
ordered lists of candidate paths. Each lookup returns the first path that
yields a usable value.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

JsonObject = Dict[str, Any]
FieldPath = Tuple[str, ...]

BOM = "\ufeff"
LINE_BREAK = re.compile(r"\r?\n")


@dataclass(frozen=True)
class RawEntry:
    """One JSON object read from a log file.

    item_index is the position inside a JSON array line, or None when the
    line held a single object.
    """
    line_index: int
    item_index: Optional[int]
    data: JsonObject


def _parse_line(line: str) -> Any:
    text = line.strip().lstrip(BOM).strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def flatten_entries(file_text: str) -> List[RawEntry]:
    """Split file text into JSON object entries.

    Each physical line may hold one object or an array of objects. Lines that
    fail to parse, scalars and nulls produce no entries. Only LF and CRLF end
    a line, since U+0085, U+2028 and U+2029 may appear raw inside JSON strings.
    """
    entries = []
    for line_index, line in enumerate(LINE_BREAK.split(file_text)):
        parsed = _parse_line(line)
        if isinstance(parsed, dict):
            entries.append(RawEntry(line_index, None, parsed))
        elif isinstance(parsed, list):
            for item_index, item in enumerate(parsed):
                if isinstance(item, dict):
                    entries.append(RawEntry(line_index, item_index, item))
    return entries


def get_path(obj: Any, path: FieldPath) -> Any:
    """Walk nested mappings along path, returning None on any missing hop."""
    current = obj
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def get_mapping(obj: Any, paths: Sequence[FieldPath]) -> Optional[JsonObject]:
    """First path that yields a JSON object."""
    for path in paths:
        value = get_path(obj, path)
        if isinstance(value, dict):
            return value
    return None


def get_string(obj: Any, paths: Sequence[FieldPath]) -> str:
    """First path that yields a non-empty string, else an empty string."""
    for path in paths:
        value = get_path(obj, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "").replace("_", "")
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def to_number(value: Any) -> float:
    """Coerce a JSON value to a float; missing or invalid values give 0."""
    number = _coerce_number(value)
    return 0.0 if number is None else number


def to_token_count(value: Any) -> int:
    """Coerce a JSON value to a non-negative integer token count."""
    return max(int(to_number(value)), 0)


def get_number(obj: Any, paths: Sequence[FieldPath]) -> float:
    """First path that yields a numeric value, else 0."""
    for path in paths:
        number = _coerce_number(get_path(obj, path))
        if number is not None:
            return number
    return 0.0


def _segments(path: str) -> List[str]:
    return [part for part in path.replace("\\", "/").split("/") if part]


def project_from_path(path: Any) -> str:
    """Last segment of a filesystem path, ignoring a trailing slash."""
    if not isinstance(path, str):
        return ""
    parts = _segments(path)
    return parts[-1] if parts else ""


def parent_dir_name(file_path: str) -> str:
    """Name of the directory holding file_path."""
    parts = _segments(file_path)
    return parts[-2] if len(parts) >= 2 else ""


def session_from_file(file_path: str) -> str:
    """Session identifier derived from a log file name."""
    name = project_from_path(file_path)
    for suffix in (".jsonl", ".json"):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return name


def _parse_timestamp(raw: str) -> Optional[datetime]:
    text = raw.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _format_utc(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def now_utc() -> str:
    """Current time in the canonical UTC timestamp format."""
    return _format_utc(datetime.now(timezone.utc))


def to_utc_timestamp(raw: str) -> str:
    """Canonical UTC form of an ISO timestamp; unparseable input is kept as-is."""
    parsed = _parse_timestamp(raw)
    return _format_utc(parsed) if parsed else raw


@lru_cache(maxsize=None)
def _zone(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return timezone.utc


def to_local_date(timestamp: str, tz_name: str) -> str:
    """Calendar date (YYYY-MM-DD) of timestamp in the given time zone."""
    parsed = _parse_timestamp(timestamp)
    if parsed is None:
        return timestamp[:10]
    return parsed.astimezone(_zone(tz_name)).strftime("%Y-%m-%d")
