from __future__ import annotations

import json
import math
from typing import Any

# Priority order matters: the combined code is rebuilt from whichever field
# wins here, so this list must not be reordered.
CODE_FIELDS = ("code", "secret", "data", "part1", "part2")


def extract_code(payload: Any) -> str:
    """Normalize an external payload (text, JSON text or object) into a code.

    Lossy on purpose: every unmatched shape yields an empty string.
    """
    if not is_truthy(payload):
        return ""

    if isinstance(payload, str):
        try:
            parsed = json.loads(payload)
        except ValueError:
            return payload
        if isinstance(parsed, str):
            return parsed
        if isinstance(parsed, dict):
            return _first_code_field(parsed)
        if parsed is None:
            # JSON `null` counts as unparseable text.
            return payload
        return ""

    if isinstance(payload, dict):
        return _first_code_field(payload)

    return ""


def _first_code_field(obj: dict[str, Any]) -> str:
    for field in CODE_FIELDS:
        value = obj.get(field)
        if is_truthy(value):
            return _as_code_text(value)
    return ""


def is_truthy(value: Any) -> bool:
    """Truthiness as the upstream payload producers understand it.

    Empty containers still count as present; only null, false, zero, NaN and
    the empty string are treated as missing.
    """
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def _as_code_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        # Elements join with commas and nulls render empty, so [] yields an empty code.
        return ",".join("" if item is None else _as_code_text(item) for item in value)
    return json.dumps(value, separators=(",", ":"))
