# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Declarative row filters.

A filter spec is a mapping from attribute name to either:
- a scalar: the row attribute must be equal to it,
- a list / tuple / set of scalars: the row attribute must be one of them.

All entries are combined with AND. An empty spec matches every row.

Example:
    {"code1": "REV", "code2": ["R10", "R20"]}

Report definitions may only filter on ``FILTER_FIELDS``.

Cells holding text are compared against the text form of the filter value,
so ``{"code1": 700}`` selects rows whose ``code1`` is ``"700"``. Other cells
are compared as-is.

Two flavours are provided:
- ``matches(row, spec)`` evaluates a single mapping (dict, pandas Series),
- ``build_mask`` / ``apply_filter`` evaluate a whole fact DataFrame at once.
Both give the same answer for the same row. A row lacking a filtered
attribute does not match.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Optional

import pandas as pd

from .errors import FilterError

FILTER_FIELDS = (
    "code1",
    "code2",
    "code3",
    "name1",
    "name2",
    "name3",
    "statement_type",
    "account_code",
)

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def _as_text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _candidates(expected: Any) -> list:
    if isinstance(expected, _SEQUENCE_TYPES):
        return list(expected)
    return [expected]


def _text_candidates(candidates: Iterable[Any]) -> set[str]:
    return {_as_text(value) for value in candidates if value is not None}


def validate_filter(
    filter_spec: Any, fields: Optional[Iterable[str]] = FILTER_FIELDS
) -> list[str]:
    """Return a list of problems found in a filter spec (empty when valid).

    ``fields`` restricts the allowed keys; pass None to accept any key.
    """
    if not isinstance(filter_spec, Mapping):
        return ["Filter must be a mapping of attribute -> value(s)"]

    allowed = tuple(fields) if fields is not None else None
    errors: list[str] = []
    for key, expected in filter_spec.items():
        if not isinstance(key, str) or not key.strip():
            errors.append(f"Filter key must be a non-empty string, got {key!r}")
            continue
        if allowed is not None and key not in allowed:
            errors.append(
                f"Invalid filter field: {key}. Valid fields are: {', '.join(allowed)}"
            )
            continue
        if isinstance(expected, _SEQUENCE_TYPES):
            if not expected:
                errors.append(f"Filter values for '{key}' must not be empty")
            elif not all(_is_scalar(v) for v in expected):
                errors.append(f"Filter values for '{key}' must be scalars")
        elif not _is_scalar(expected):
            errors.append(
                f"Filter value for '{key}' must be a scalar or a list of scalars"
            )
    return errors


def missing_columns(facts: pd.DataFrame, filter_spec: Mapping[str, Any]) -> list[str]:
    """Filter keys that are not columns of ``facts``, in spec order."""
    return [key for key in filter_spec if key not in facts.columns]


def matches(row: Mapping[str, Any], filter_spec: Mapping[str, Any]) -> bool:
    """Return True when ``row`` satisfies every entry of ``filter_spec``."""
    for key, expected in filter_spec.items():
        if key not in row:
            return False
        actual = row[key]
        candidates = _candidates(expected)
        if isinstance(actual, str):
            if actual not in _text_candidates(candidates):
                return False
        elif actual not in candidates:
            return False
    return True


def build_mask(facts: pd.DataFrame, filter_spec: Mapping[str, Any]) -> pd.Series:
    """Build a boolean mask over ``facts`` for the given filter spec.

    Raises:
        FilterError: if the filter spec is malformed.
    """
    problems = validate_filter(filter_spec, fields=None)
    if problems:
        raise FilterError("; ".join(problems), context={"filter": filter_spec})

    mask = pd.Series(True, index=facts.index)
    for key, expected in filter_spec.items():
        if key not in facts.columns:
            return pd.Series(False, index=facts.index)
        column = facts[key]
        candidates = _candidates(expected)
        is_text = column.map(lambda value: isinstance(value, str)).astype(bool)
        text_match = column.isin(list(_text_candidates(candidates)))
        mask &= (is_text & text_match) | (~is_text & column.isin(candidates))
    return mask


def apply_filter(facts: pd.DataFrame, filter_spec: Mapping[str, Any]) -> pd.DataFrame:
    """Return the rows of ``facts`` matching ``filter_spec``, in original order."""
    if not filter_spec:
        return facts
    return facts.loc[build_mask(facts, filter_spec)]
