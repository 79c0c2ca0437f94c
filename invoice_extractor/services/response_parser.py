import json
import re
from typing import Any, Dict, Optional

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```$")


def _reject_constant(name: str) -> Any:
    # NaN / Infinity are not JSON
    raise ValueError(f"Invalid JSON constant: {name}")


def parse_json_response(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Extract the JSON object from free-form model output.

    Strips surrounding whitespace and a ```json fence, then parses the span
    from the first "{" to the last "}". Returns None (never raises) when
    there is no such span or it is not valid JSON; callers treat None as
    "needs repair".
    """
    if not text:
        return None

    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None

    try:
        parsed = json.loads(cleaned[start:end + 1], parse_constant=_reject_constant)
    except ValueError:
        return None

    return parsed if isinstance(parsed, dict) else None
