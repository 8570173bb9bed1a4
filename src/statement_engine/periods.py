# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period selection for statement rendering.

A PeriodOptions value tells the engine which part of the fact table a
statement covers and which amount columns it produces:

- normal mode: a list of years (usually prior and current) and either all
  periods or an explicit subset of periods 1-12. Columns: amount_<year>.
- LTM mode: a list of LTM ranges. Columns: month_1 .. month_N, plus
  ltm_total for income statements.

In their mapping form, ``periods`` may also be a period selector:

    "All"        every period (1..12)
    "P<n>"       year to date up to period n (1..12)
    "Q<n>"       year to date up to the end of quarter n (1..4)
    "<n>"        same as "P<n>"
    "LTM"        the rolling window ending at ``endPeriod`` of the latest year
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

import pandas as pd

from .definitions import StatementType
from .ltm import (
    DEFAULT_LTM_WINDOW,
    LTMRange,
    calculate_ltm_range,
    filter_movements_for_ltm,
    get_required_years,
    is_valid_range,
)
from .rollup import LTM_TOTAL_COLUMN, amount_column, month_column

ALL_PERIODS = "all"
LTM_PERIOD = "LTM"
MAX_PERIOD = 12


def parse_period(value: Union[str, int, None]) -> Union[int, str]:
    """Parse a period selector into its last period (1..12) or ``"LTM"``.

    >>> parse_period("Q2")
    6
    >>> parse_period("P6")
    6
    >>> parse_period("All")
    12

    Raises:
        ValueError: on an unknown selector or a period outside 1..12.
    """
    if value is None or value == "":
        return MAX_PERIOD
    if isinstance(value, bool):
        raise ValueError(f"Invalid period selector {value!r}")
    if isinstance(value, int):
        period = value
    else:
        text = str(value).strip()
        if text.lower() == ALL_PERIODS:
            return MAX_PERIOD
        if text.upper() == LTM_PERIOD:
            return LTM_PERIOD
        prefix = text[:1].upper()
        number_text = text[1:] if prefix in ("P", "Q") else text
        try:
            number = int(number_text)
        except ValueError as exc:
            raise ValueError(f"Invalid period selector {value!r}") from exc
        if prefix == "Q":
            if not 1 <= number <= 4:
                raise ValueError(f"Invalid quarter {value!r}: expected Q1..Q4")
            return quarter_to_period(number)
        period = number

    if not 1 <= period <= MAX_PERIOD:
        raise ValueError(f"Invalid period {value!r}: expected 1..{MAX_PERIOD}")
    return period


def is_ltm_period(value: Any) -> bool:
    return isinstance(value, str) and value.strip().upper() == LTM_PERIOD


def get_max_period(value: Union[str, int, None]) -> int:
    """Last period covered by a selector; LTM covers a full year."""
    parsed = parse_period(value)
    return parsed if isinstance(parsed, int) else MAX_PERIOD


def quarter_to_period(quarter: int) -> int:
    return quarter * 3


def period_to_quarter(period: int) -> int:
    return (period + 2) // 3


def to_period_string(period: int) -> str:
    if not isinstance(period, int) or not 1 <= period <= MAX_PERIOD:
        raise ValueError(f"Invalid period {period!r}: expected 1..{MAX_PERIOD}")
    return f"P{period}"


@dataclass(frozen=True)
class PeriodOptions:
    """Years / periods (or LTM ranges) a statement is computed over."""

    years: tuple[int, ...]
    periods: Union[str, tuple[int, ...]] = ALL_PERIODS
    ltm_ranges: tuple[LTMRange, ...] = ()

    def __post_init__(self) -> None:
        if not self.years:
            raise ValueError("PeriodOptions requires at least one year")
        if self.periods != ALL_PERIODS:
            if not isinstance(self.periods, tuple) or not self.periods:
                raise ValueError("periods must be 'all' or a non-empty list")
            for p in self.periods:
                if not isinstance(p, int) or not 1 <= p <= 12:
                    raise ValueError(f"Invalid period {p!r}: expected 1..12")
        for r in self.ltm_ranges:
            if not is_valid_range(r):
                raise ValueError(f"Invalid LTM range: {r}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PeriodOptions":
        """Build options from a JSON-shaped mapping.

        Accepted keys: ``years`` (list of ints), ``periods`` ("all", a list of
        ints or a period selector such as "P6", "Q2" or "LTM") and ``ltm``
        (list of {year, startPeriod, endPeriod}). With ``periods: "LTM"`` the
        window ends at ``endPeriod`` (default 12) of the latest year and spans
        ``window`` months (default 12).
        """
        if isinstance(data, PeriodOptions):
            return data
        if not isinstance(data, Mapping):
            raise ValueError("Period options must be a mapping")

        raw_ltm = data.get("ltm") or []
        try:
            ranges = tuple(
                LTMRange(
                    year=int(item["year"]),
                    start_period=int(item["startPeriod"]),
                    end_period=int(item["endPeriod"]),
                )
                for item in raw_ltm
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid 'ltm' period options: {raw_ltm!r}") from exc

        if ranges:
            return cls.for_ltm(ranges)

        years = data.get("years")
        if not years:
            raise ValueError("Period options must define 'years'")
        try:
            year_tuple = tuple(sorted(int(y) for y in years))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid 'years' period options: {years!r}") from exc

        periods = data.get("periods", ALL_PERIODS)
        if is_ltm_period(periods):
            return cls.for_ltm(_ltm_ranges_ending_at(year_tuple[-1], data))
        if periods is None or (
            isinstance(periods, str) and periods.strip().lower() in (ALL_PERIODS, "")
        ):
            periods = ALL_PERIODS
        elif isinstance(periods, (str, int)):
            periods = tuple(range(1, get_max_period(periods) + 1))
        elif isinstance(periods, bytes) or not isinstance(periods, Iterable):
            raise ValueError(f"Invalid 'periods' period options: {periods!r}")
        else:
            periods = tuple(periods)

        return cls(years=year_tuple, periods=periods)

    @classmethod
    def for_ltm(cls, ranges: Iterable[LTMRange]) -> "PeriodOptions":
        range_tuple = tuple(ranges)
        if not range_tuple:
            raise ValueError("LTM period options require at least one range")
        return cls(
            years=tuple(get_required_years(range_tuple)),
            periods=ALL_PERIODS,
            ltm_ranges=range_tuple,
        )

    @property
    def mode(self) -> str:
        return "ltm" if self.ltm_ranges else "normal"

    @property
    def is_ltm(self) -> bool:
        return bool(self.ltm_ranges)

    @property
    def prior_year(self) -> int:
        return self.years[0]

    @property
    def current_year(self) -> int:
        return self.years[-1]

    @property
    def period_filter(self) -> Optional[tuple[int, ...]]:
        return None if self.periods == ALL_PERIODS else self.periods

    def amount_columns(
        self, statement_type: Optional[Union[StatementType, str]] = None
    ) -> list[str]:
        """Ordered names of the amount columns produced in this mode."""
        if self.is_ltm:
            months = sum(r.months for r in self.ltm_ranges)
            columns = [month_column(i) for i in range(1, months + 1)]
            if StatementType.is_income(statement_type):
                columns.append(LTM_TOTAL_COLUMN)
            return columns
        return [amount_column(y) for y in self.years]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "years": list(self.years),
            "periods": (
                ALL_PERIODS if self.periods == ALL_PERIODS else list(self.periods)
            ),
        }
        if self.ltm_ranges:
            data["ltm"] = [r.to_dict() for r in self.ltm_ranges]
        return data


def _ltm_ranges_ending_at(year: int, data: Mapping[str, Any]) -> list[LTMRange]:
    try:
        end_period = int(data.get("endPeriod", MAX_PERIOD))
        window = int(data.get("window", DEFAULT_LTM_WINDOW))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Invalid LTM period options: endPeriod={data.get('endPeriod')!r}, "
            f"window={data.get('window')!r}"
        ) from exc
    ranges = calculate_ltm_range(year, end_period, window)
    if not ranges:
        raise ValueError(
            f"Invalid LTM period options: year={year}, endPeriod={end_period}, "
            f"window={window}"
        )
    return ranges


def filter_facts_by_period_options(
    facts: pd.DataFrame, options: PeriodOptions
) -> pd.DataFrame:
    """Restrict the fact table to the rows covered by ``options``.

    Row order is preserved.
    """
    if options.is_ltm:
        return filter_movements_for_ltm(facts, options.ltm_ranges)

    mask = facts["year"].isin(options.years)
    if options.period_filter is not None:
        mask &= facts["period"].isin(options.period_filter)
    return facts.loc[mask]
