"""Recover a JSON array of products from a free-form model response."""

from __future__ import annotations

import json
import re
from typing import Any, List, Optional, Tuple

from ..logging import get_logger
from .constants import RESPONSE_PREVIEW_CHARS
from .errors import AIError, AIErrorKind


LOG = get_logger("json-recovery")

# Tried in order; the first pattern with any match decides the candidate.
ARRAY_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("object-array", re.compile(r"\[\s*\{[\s\S]*?\}\s*\]")),
    ("json-fence", re.compile(r"```json\s*(\[[\s\S]*?\])\s*```")),
    ("generic-fence", re.compile(r"```\s*(\[[\s\S]*?\])\s*```")),
    ("any-array", re.compile(r"(\[[\s\S]*?\])")),
)
SINGLE_OBJECT = re.compile(r"\{[\s\S]*?\}")

_SMART_DOUBLE = re.compile("[\u201c\u201d]")
_SMART_SINGLE = re.compile("[\u2018\u2019]")


def _longest(pattern: "re.Pattern[str]", content: str) -> Optional[str]:
    best: Optional[str] = None
    for m in pattern.finditer(content):
        candidate = m.group(1) if pattern.groups else m.group(0)
        if best is None or len(candidate) > len(best):
            best = candidate
    return best


def find_json_candidate(content: str) -> Optional[str]:
    """Return the JSON array text found in `content`, or None.

    A bare object is wrapped into a one-element array.
    """
    for label, pattern in ARRAY_PATTERNS:
        found = _longest(pattern, content)
        if found is not None:
            LOG.debug("JSON candidate found by %s pattern (%d chars)", label, len(found))
            return found
    obj = SINGLE_OBJECT.search(content)
    if obj:
        LOG.debug("Single JSON object found; wrapping in an array")
        return f"[{obj.group(0)}]"
    return None


def clean_json_candidate(candidate: str) -> str:
    """Strip code-fence markers and replace smart quotes with ASCII quotes."""
    cleaned = candidate.replace("```json", "").replace("```", "")
    cleaned = _SMART_DOUBLE.sub('"', cleaned)
    cleaned = _SMART_SINGLE.sub("'", cleaned)
    return cleaned.strip()


def _as_array(parsed: Any) -> Optional[List[Any]]:
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        return [parsed]
    return None


def recover_json_array(content: str) -> List[Any]:
    """Parse the product array out of a model response.

    Clean JSON is accepted as-is; otherwise the ordered patterns above pick
    the candidate, which is cleaned and parsed. Raises AIError(MALFORMED_JSON).
    """
    stripped = (content or "").strip()
    try:
        direct = _as_array(json.loads(stripped))
    except ValueError:
        direct = None
    if direct is not None:
        return direct

    candidate = find_json_candidate(stripped)
    if candidate is None:
        LOG.error("No JSON array or object found in response; first 500 chars: %r", stripped[:500])
        raise AIError(
            AIErrorKind.MALFORMED_JSON,
            "No JSON array found in the AI response",
            debug={"ai_response": stripped[:RESPONSE_PREVIEW_CHARS]},
        )

    cleaned = clean_json_candidate(candidate)
    try:
        parsed = json.loads(cleaned)
    except ValueError as exc:
        LOG.error("JSON parse failed: %s; cleaned candidate: %r", exc, cleaned[:500])
        raise AIError(
            AIErrorKind.MALFORMED_JSON,
            f"AI response is not valid JSON: {exc}",
            debug={"cleaned": cleaned, "ai_response": stripped[:RESPONSE_PREVIEW_CHARS]},
        ) from exc

    array = _as_array(parsed)
    if array is None:
        raise AIError(
            AIErrorKind.MALFORMED_JSON,
            "AI response JSON is neither an array nor an object",
            debug={"cleaned": cleaned, "ai_response": stripped[:RESPONSE_PREVIEW_CHARS]},
        )
    return array
