# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Display formatting of rendered amounts.

Supported kinds and their defaults:

    currency  0 decimals, thousands separators, prefix '€ '   -> "€ 1,234"
    percent   1 decimal,  no separators,        suffix '%'    -> "12.5%"
    integer   0 decimals, thousands separators                -> "1,234"
    decimal   2 decimals, thousands separators                -> "1,234.50"

Percent values are already percentages (12.5 means 12.5%).

Defaults can be overridden per report (a ``formatting`` mapping of kind ->
options) and per row (a format spec given as a mapping with a ``type`` key,
e.g. ``{"type": "currency", "decimals": 2}``). Row options win over report
options, which win over the built-in defaults.
"""

from collections.abc import Mapping
from typing import Any, Optional, Union

FORMAT_KINDS = ("currency", "percent", "integer", "decimal")
DEFAULT_FORMAT = "decimal"


def format_number(value: float, decimals: int, thousands: bool) -> str:
    """Round ``value`` to ``decimals`` places with optional ',' grouping."""
    pattern = f"{{:{',' if thousands else ''}.{int(decimals)}f}}"
    formatted = pattern.format(abs(value))
    # Values that round to zero are shown unsigned.
    if value < 0 and any(ch not in "0.," for ch in formatted):
        return "-" + formatted
    return formatted


def _option(options: Mapping[str, Any], key: str, default: Any) -> Any:
    value = options.get(key)
    return default if value is None else value


def format_value(
    value: Optional[float],
    format_spec: Union[str, Mapping[str, Any], None] = DEFAULT_FORMAT,
    rules: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> str:
    """Format a value for display.

    Args:
        value: Number to format. None yields an empty string.
        format_spec: Format kind name, or a mapping with a ``type`` key plus
            option overrides (``decimals``, ``thousands``, ``symbol``).
        rules: Report-level options per format kind.

    Returns:
        The formatted string.
    """
    if value is None:
        return ""

    if isinstance(format_spec, Mapping):
        kind = format_spec.get("type") or DEFAULT_FORMAT
        overrides = {k: v for k, v in format_spec.items() if k != "type"}
    else:
        kind = format_spec or DEFAULT_FORMAT
        overrides = {}

    defaults = (rules or {}).get(kind) or {}
    options = {**defaults, **overrides}
    value = float(value)

    if kind == "currency":
        symbol = _option(options, "symbol", "€")
        number = format_number(
            value, _option(options, "decimals", 0), _option(options, "thousands", True)
        )
        return f"{symbol} {number}"

    if kind == "percent":
        symbol = _option(options, "symbol", "%")
        number = format_number(
            value, _option(options, "decimals", 1), _option(options, "thousands", False)
        )
        return f"{number}{symbol}"

    if kind == "integer":
        return format_number(value, 0, _option(options, "thousands", True))

    if kind == "decimal":
        return format_number(
            value, _option(options, "decimals", 2), _option(options, "thousands", True)
        )

    return format_number(value, 2, True)
