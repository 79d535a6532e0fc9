"""
Tolerant JSON extraction for generative-model responses.
"""
import json
import re
from typing import Any, Dict, Optional

_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    cleaned = (text or "").strip()
    cleaned = _FENCE_START.sub("", cleaned)
    cleaned = _FENCE_END.sub("", cleaned)
    return cleaned.strip()


def slice_json_object(text: str) -> str:
    """Return the span between the first '{' and the last '}', or the text itself."""
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start:end + 1]
    return text


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Best-effort parse of a JSON object embedded in model output.

    Returns None when nothing parseable is found; callers treat that as
    an empty, low-confidence answer.
    """
    candidate = slice_json_object(strip_code_fences(text))
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None
