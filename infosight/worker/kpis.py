"""
Parsing of free-text "Metric Name: Value" KPI strings.
"""

import re
from typing import NamedTuple, Optional

_NUMBER = re.compile(r"-?\d[\d,]*\.?\d*")


class ParsedKPI(NamedTuple):
    name: str
    value: str
    numeric_value: Optional[float]


def parse_kpi(kpi: str) -> Optional[ParsedKPI]:
    """
    Split a KPI string on its first colon.

    The numeric value is the first number in the value part with thousands
    separators removed, or None when the value has no number.

    >>> parse_kpi("Revenue Growth: 1,250.5 USD")
    ParsedKPI(name='Revenue Growth', value='1,250.5 USD', numeric_value=1250.5)
    """
    if not kpi or ":" not in kpi:
        return None
    name, _, value = kpi.partition(":")
    name, value = name.strip(), value.strip()
    if not name:
        return None

    numeric = None
    match = _NUMBER.search(value)
    if match:
        try:
            numeric = float(match.group(0).replace(",", "").rstrip("."))
        except ValueError:
            numeric = None
    return ParsedKPI(name=name, value=value, numeric_value=numeric)


def guess_unit(value: str) -> Optional[str]:
    """Best-effort unit from a KPI value ("28%" -> "%", "7.2 minutes" -> "minutes")."""
    value = value.strip()
    if "%" in value:
        return "%"
    if value.startswith("$"):
        return "$"
    match = re.search(r"\d[\d,.]*\s*(/\s*\d+|[a-zA-Z]+)", value)
    if match:
        return match.group(1).replace(" ", "")
    return None
