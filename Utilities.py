"""
Utility functions for the QuantMind analysis dashboard.
Contains SHARED helper functions used across multiple modules.
"""

import base64
import json
import logging
import mimetypes
import re
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:[^;,]*(;base64)?,", re.IGNORECASE)
_FENCE_OPEN_RE = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


###############################################################################
# Serialization Utilities (SHARED - used by multiple modules)
###############################################################################


def safe_json_serialize(obj: Any, indent: int = 2) -> str:
    """
    Safely serialize an object to JSON, handling pydantic models and special values.

    Used by: main (CLI output), streamlit_app (raw payload view)
    """

    def serializer(o: Any) -> Any:
        if hasattr(o, "model_dump"):
            return o.model_dump()
        if hasattr(o, "isoformat"):
            return o.isoformat()
        if isinstance(o, (set, frozenset)):
            return list(o)
        return str(o)

    return json.dumps(obj, default=serializer, indent=indent, ensure_ascii=False)


def extract_json_text(text: str) -> str:
    """
    Isolate the JSON object in a model reply.

    Strips markdown code fences and any prose before the first brace or after
    the last one. Does not repair the JSON itself: truncated output stays
    truncated and fails to parse.
    """
    clean = (text or "").strip()
    clean = _FENCE_OPEN_RE.sub("", clean)
    clean = _FENCE_CLOSE_RE.sub("", clean)

    first = clean.find("{")
    last = clean.rfind("}")
    if first != -1 and last > first:
        clean = clean[first : last + 1]
    return clean.strip()


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse a model reply into a JSON object.

    Raises:
        json.JSONDecodeError: text is not valid JSON
        TypeError: top-level JSON value is not an object
    """
    data = json.loads(extract_json_text(text))
    if not isinstance(data, dict):
        raise TypeError(f"Expected a JSON object, got {type(data).__name__}")
    return data


###############################################################################
# Grounding Utilities
###############################################################################


def dedupe_citations(
    citations: Iterable[Dict[str, Optional[str]]],
) -> List[Dict[str, Optional[str]]]:
    """Drop entries without a URI and keep the first entry per URI, in order."""
    seen = set()
    unique: List[Dict[str, Optional[str]]] = []
    for item in citations:
        uri = (item.get("uri") or "").strip()
        if not uri or uri in seen:
            continue
        seen.add(uri)
        title = (item.get("title") or "").strip() or None
        unique.append({"uri": uri, "title": title})
    return unique


###############################################################################
# Image Utilities
###############################################################################


def strip_data_uri(value: str) -> str:
    """Remove a leading 'data:<mime>;base64,' prefix if present."""
    return _DATA_URI_RE.sub("", value.strip(), count=1)


def encode_image_bytes(raw: bytes) -> str:
    """Base64 encode raw image bytes without a data-URI prefix."""
    return base64.b64encode(raw).decode("ascii")


def guess_image_mime(filename: str, default: str = "image/jpeg") -> str:
    """Guess an image MIME type from a file name."""
    mime, _ = mimetypes.guess_type(filename)
    if mime and mime.startswith("image/"):
        return mime
    return default


###############################################################################
# Time Utilities
###############################################################################


def now_ms() -> int:
    """Wall-clock epoch milliseconds for result timestamps."""
    return int(time.time() * 1000)


def market_now(timezone: str, now: Optional[datetime] = None) -> datetime:
    """Current time in a market's local timezone."""
    tz = ZoneInfo(timezone)
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=ZoneInfo("UTC"))
    return now.astimezone(tz)


def format_time_context(moment: datetime) -> str:
    """Human readable time context line, e.g. 'Friday 2026-10-16 14:05 (Asia/Shanghai)'."""
    return f"{moment:%A %Y-%m-%d %H:%M} ({moment.tzinfo})"
