"""
Loose comparison of extracted values against configured targets.

Both sides are compared as numbers when both parse as numbers, otherwise as
strings. Booleans and null render the way they appear in JSON ("true",
"null"). An unknown operator evaluates to False.
"""

import json
import math
import operator
from typing import Any, Callable, Dict, Optional

from topicLoom.common.constants import ComparisonConstants

OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ComparisonConstants.EQ: operator.eq,
    ComparisonConstants.NE: operator.ne,
    ComparisonConstants.LT: operator.lt,
    ComparisonConstants.LTE: operator.le,
    ComparisonConstants.GT: operator.gt,
    ComparisonConstants.GTE: operator.ge,
}


def as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None:
        return json.dumps(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def as_number(value: Any) -> Optional[float]:
    """Numeric reading of ``value``, or None when it is not a finite number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def compare(value: Any, target: Any, comparison: str) -> bool:
    op = OPERATORS.get(comparison)
    if op is None:
        return False

    left, right = as_number(value), as_number(target)
    if left is not None and right is not None:
        return bool(op(left, right))
    return bool(op(as_text(value), as_text(target)))
