# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Aggregation specs: which output columns to compute and how.

A ``RollupSpec`` is an immutable, ordered mapping of output column name to
an aggregation expression. Specs are plain data (built from frozen
dataclasses), so two specs built from the same input compare equal and can
be inspected in tests. They are turned into numbers by ``execute_rollup``,
which evaluates each expression over a pandas DataFrame (optionally per
group).

Expressions
-----------
- ``Sum(source, multiplier)``:
      sum(source * multiplier)
- ``ConditionalSum(source, multiplier, year, periods)``:
      same, restricted to rows of ``year`` (and ``periods`` when given)
- ``VarianceAmount(prior, current)``:
      sum(current) - sum(prior)
- ``VariancePercent(prior, current)``:
      (sum(current) - sum(prior)) / |sum(prior)| * 100, 0 when prior is 0

Builders
--------
- ``build_normal_mode``:    amount_<prior>, amount_<current>
- ``build_year_columns``:   amount_<year> for any number of years
- ``build_ltm_mode``:       month_1 .. month_N (+ ltm_total for income)
- ``build_category_totals`` / ``build_ltm_category_totals``:
      re-aggregate already rolled-up rows into category totals
"""

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Optional, Union

import pandas as pd

from .definitions import StatementType
from .ltm import LTMRange
from .variance import variance_percent

LTM_TOTAL_COLUMN = "ltm_total"
VARIANCE_AMOUNT_COLUMN = "variance_amount"
VARIANCE_PERCENT_COLUMN = "variance_percent"


def amount_column(year: int) -> str:
    return f"amount_{year}"


def month_column(index: int) -> str:
    return f"month_{index}"


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Sum:
    source: str
    multiplier: float = 1


@dataclass(frozen=True)
class ConditionalSum:
    source: str
    multiplier: float = 1
    year: Optional[int] = None
    periods: Optional[tuple[int, ...]] = None


@dataclass(frozen=True)
class VarianceAmount:
    prior: str
    current: str


@dataclass(frozen=True)
class VariancePercent:
    prior: str
    current: str


RollupExpression = Union[Sum, ConditionalSum, VarianceAmount, VariancePercent]


@dataclass(frozen=True)
class RollupSpec:
    """Ordered, immutable column -> expression mapping."""

    entries: tuple[tuple[str, RollupExpression], ...] = ()

    @property
    def columns(self) -> list[str]:
        return [name for name, _ in self.entries]

    def items(self) -> Iterator[tuple[str, RollupExpression]]:
        return iter(self.entries)

    def __getitem__(self, column: str) -> RollupExpression:
        for name, expression in self.entries:
            if name == column:
                return expression
        raise KeyError(column)

    def __contains__(self, column: object) -> bool:
        return any(name == column for name, _ in self.entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.entries)


def empty_spec() -> RollupSpec:
    return RollupSpec()


def add_column(
    spec: RollupSpec, column: str, expression: RollupExpression
) -> RollupSpec:
    """Return a new spec with ``column`` set to ``expression``.

    Re-adding an existing column replaces its expression in place.
    """
    if column in spec:
        entries = tuple(
            (name, expression if name == column else existing)
            for name, existing in spec.entries
        )
    else:
        entries = spec.entries + ((column, expression),)
    return RollupSpec(entries)


def add_sum(spec: RollupSpec, column: str, source: str) -> RollupSpec:
    return add_column(spec, column, Sum(source))


def add_sum_with_multiplier(
    spec: RollupSpec, column: str, source: str, multiplier: float
) -> RollupSpec:
    return add_column(spec, column, Sum(source, multiplier))


def add_conditional_sum(
    spec: RollupSpec,
    column: str,
    year: int,
    periods: Optional[Iterable[int]] = None,
    source: str = "amount",
    multiplier: float = 1,
) -> RollupSpec:
    period_tuple = tuple(periods) if periods is not None else None
    return add_column(
        spec,
        column,
        ConditionalSum(source, multiplier, year=year, periods=period_tuple),
    )


# ---------------------------------------------------------------------------
# Composite builders
# ---------------------------------------------------------------------------


def build_year_columns(
    years: Iterable[int],
    sign_multiplier: float = 1,
    source: str = "amount",
    periods: Optional[Iterable[int]] = None,
) -> RollupSpec:
    """One ``amount_<year>`` column per year, summing ``source * sign``."""
    period_tuple = tuple(periods) if periods is not None else None
    spec = empty_spec()
    for year in years:
        spec = add_conditional_sum(
            spec, amount_column(year), year, period_tuple, source, sign_multiplier
        )
    return spec


def build_normal_mode(
    prior_year: int,
    current_year: int,
    sign_multiplier: float = 1,
    source: str = "amount",
    periods: Optional[Iterable[int]] = None,
) -> RollupSpec:
    """Two-period comparison spec: amount_<prior_year>, amount_<current_year>."""
    return build_year_columns(
        (prior_year, current_year), sign_multiplier, source, periods
    )


def build_ltm_mode(
    ranges: Sequence[LTMRange],
    sign_multiplier: float = 1,
    statement_type: Optional[Union[StatementType, str]] = None,
    source: str = "amount",
) -> RollupSpec:
    """Rolling-window spec with one column per month, oldest first.

    Income statements also get an ``ltm_total`` column summing the whole
    window; the input frame is expected to be restricted to the window.
    """
    spec = empty_spec()
    index = 1
    for ltm_range in ranges:
        for period in range(ltm_range.start_period, ltm_range.end_period + 1):
            spec = add_conditional_sum(
                spec, month_column(index), ltm_range.year, (period,), source,
                sign_multiplier,
            )
            index += 1

    if StatementType.is_income(statement_type):
        spec = add_sum_with_multiplier(spec, LTM_TOTAL_COLUMN, source, sign_multiplier)

    return spec


def build_category_totals(prior_year: int, current_year: int) -> RollupSpec:
    """Re-aggregate rendered rows of a category into a totals row."""
    prior = amount_column(prior_year)
    current = amount_column(current_year)
    spec = add_sum(empty_spec(), prior, prior)
    spec = add_sum(spec, current, current)
    spec = add_column(spec, VARIANCE_AMOUNT_COLUMN, VarianceAmount(prior, current))
    return add_column(spec, VARIANCE_PERCENT_COLUMN, VariancePercent(prior, current))


def build_ltm_category_totals(
    ranges: Sequence[LTMRange],
    statement_type: Optional[Union[StatementType, str]] = None,
) -> RollupSpec:
    spec = empty_spec()
    months = sum(r.months for r in ranges)
    for index in range(1, months + 1):
        spec = add_sum(spec, month_column(index), month_column(index))
    if StatementType.is_income(statement_type):
        spec = add_sum(spec, LTM_TOTAL_COLUMN, LTM_TOTAL_COLUMN)
    return spec


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def _column_sum(frame: pd.DataFrame, column: str) -> float:
    if column not in frame.columns:
        raise KeyError(f"Rollup source column '{column}' not found")
    return float(frame[column].fillna(0).sum())


def evaluate_expression(expression: RollupExpression, frame: pd.DataFrame) -> float:
    """Evaluate one aggregation expression over ``frame``."""
    if isinstance(expression, Sum):
        return _column_sum(frame, expression.source) * expression.multiplier

    if isinstance(expression, ConditionalSum):
        selected = frame
        if expression.year is not None:
            selected = selected.loc[selected["year"] == expression.year]
        if expression.periods is not None:
            selected = selected.loc[selected["period"].isin(expression.periods)]
        return _column_sum(selected, expression.source) * expression.multiplier

    if isinstance(expression, VarianceAmount):
        return _column_sum(frame, expression.current) - _column_sum(
            frame, expression.prior
        )

    if isinstance(expression, VariancePercent):
        return variance_percent(
            _column_sum(frame, expression.current),
            _column_sum(frame, expression.prior),
        )

    raise TypeError(f"Unknown rollup expression: {type(expression).__name__}")


def execute_rollup(
    frame: pd.DataFrame,
    spec: RollupSpec,
    by: Optional[Union[str, Sequence[str]]] = None,
) -> pd.DataFrame:
    """Evaluate ``spec`` over ``frame``.

    Without ``by`` the result has exactly one row (zeros for an empty
    frame). With ``by`` there is one row per group, in first-seen order,
    with the grouping keys as leading columns.
    """
    if by is None:
        row = {column: evaluate_expression(expr, frame) for column, expr in spec.items()}
        return pd.DataFrame([row], columns=spec.columns)

    keys = [by] if isinstance(by, str) else list(by)
    records = []
    for group_key, group in frame.groupby(keys, sort=False, dropna=False):
        if not isinstance(group_key, tuple):
            group_key = (group_key,)
        record = dict(zip(keys, group_key))
        for column, expr in spec.items():
            record[column] = evaluate_expression(expr, group)
        records.append(record)
    return pd.DataFrame(records, columns=keys + spec.columns)
