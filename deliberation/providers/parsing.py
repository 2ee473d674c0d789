"""Extract a structured Judgment from raw model text."""

import json
import logging
import re
from typing import Any

from deliberation.errors import InferenceError
from deliberation.models import Judgment

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_TRUTHY = {"true", "yes", "agree", "agrees", "1"}


def _extract_object(text: str) -> dict[str, Any] | None:
    """Find the first JSON object in text, fenced or bare."""
    match = _FENCE_RE.search(text)
    candidates = [match.group(1)] if match else []
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [str(v) for v in value if str(v).strip()]


def _confidence(value: Any) -> float:
    try:
        conf = float(value)
    except (TypeError, ValueError):
        return 0.0
    # Some models answer in percent
    if 1.0 < conf <= 100.0:
        conf /= 100.0
    return max(0.0, min(1.0, conf))


def _bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def parse_judgment(text: str, source: str) -> Judgment:
    """Parse a model reply into a Judgment.

    Raises:
        InferenceError: If no JSON object with a non-empty stance is found.
    """
    data = _extract_object(text)
    if data is None:
        raise InferenceError(source, "Malformed judgment: no JSON object in response")

    stance = str(data.get("stance", "")).strip()
    if not stance:
        raise InferenceError(source, "Malformed judgment: missing stance")

    agrees = data.get("agrees")
    judgment = Judgment(
        text=text,
        stance=stance,
        arguments=_str_list(data.get("arguments")),
        evidence=_str_list(data.get("evidence")),
        confidence=_confidence(data.get("confidence", 0.0)),
        should_escalate=_bool(data.get("should_escalate", False)),
        next_actions=_str_list(data.get("next_actions")),
        agrees=None if agrees is None else _bool(agrees),
    )
    logger.debug("Parsed judgment from %s: %s (%.2f)", source, stance, judgment.confidence)
    return judgment
