"""Simulated KPI value functions.

A bulk-data profile parameter may carry a ValueFunction expression telling
the simulator how the KPI evolves between reports, e.g.::

    v.increasingVal(<lastval>,5)
    v.randomVal(10,20)
    v.stableVal(42)

Expressions are parsed with a fixed grammar ``v.<name>(<arg>,<arg>...)`` and
dispatched through VALUE_FUNCTIONS; nothing is evaluated as code. The
``<lastval>`` token is replaced by the value currently stored for the KPI.
"""

import logging
import math
import random
import re
from typing import Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Number = Union[int, float]

LASTVAL_TOKEN = "<lastval>"

_EXPRESSION = re.compile(r"^v\.(\w+)\((.*)\)$", re.DOTALL)


def _number(arg: Optional[str]) -> Optional[Number]:
    """Parse a numeric argument, None when missing or not a number."""
    if arg is None:
        return None
    text = arg.strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return int(value) if value.is_integer() else value


def format_value(value: Number) -> str:
    """Render a result the way it is stored in the data model."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


# =============================================================================
# Value Functions
# =============================================================================


def stable_val(value: Optional[str] = None, *_: str) -> Number:
    """Always the given value; 0 when missing or not numeric."""
    number = _number(value)
    return 0 if number is None else number


def random_val(low: Optional[str] = None, high: Optional[str] = None, *_: str) -> Number:
    """Uniform integer between low and high inclusive.

    Returns 0 when either bound is missing or not numeric. Zero is a valid
    bound.
    """
    lo = _number(low)
    hi = _number(high)
    if lo is None or hi is None:
        return 0
    result = random.random() * (float(hi) - float(lo) + 1) + lo
    if not math.isfinite(result):
        return 0
    return math.floor(result)


def increasing_val(start: Optional[str] = None, increment: Optional[str] = None, *_: str) -> Number:
    """start + increment, with start defaulting to 0 and increment to 1."""
    base = _number(start)
    step = _number(increment)
    return (0 if base is None else base) + (1 if step is None else step)


VALUE_FUNCTIONS: Dict[str, Callable[..., Number]] = {
    "stableVal": stable_val,
    "randomVal": random_val,
    "increasingVal": increasing_val,
}


# =============================================================================
# Expression Evaluation
# =============================================================================


def split_arguments(text: str) -> List[str]:
    """Split a comma-separated argument list; an empty list gives no args."""
    if not text.strip():
        return []
    return [arg.strip() for arg in text.split(",")]


def evaluate(expression: str, last_value: str = "") -> Optional[str]:
    """Compute the next KPI value from a ValueFunction expression.

    Args:
        expression: Expression such as ``v.increasingVal(<lastval>,1)``.
        last_value: Value currently stored for the KPI.

    Returns:
        The new value as text, or None when the expression is not a
        recognised ``v.<name>(...)`` call and the KPI should be skipped.

    Example:
        >>> evaluate("v.increasingVal(<lastval>,1)", "1")
        '2'
        >>> evaluate("stableVal(15)", "0") is None
        True
    """
    match = _EXPRESSION.match(expression.strip())
    if match is None:
        return None

    name, arg_text = match.groups()
    function = VALUE_FUNCTIONS.get(name)
    if function is None:
        logger.warning(f"Unknown value function: {name}")
        return None

    args = split_arguments(arg_text.replace(LASTVAL_TOKEN, last_value))
    return format_value(function(*args))
