# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Last-twelve-months (LTM) window helpers.

An LTM window covers the ``window`` most recent months ending at a given
(year, period). Because facts are keyed by calendar year and period (1-12),
a window usually spans two years and is expressed as a chronological list
of per-year ranges:

    calculate_ltm_range(2025, 6, 12)
    -> [LTMRange(2024, 7, 12), LTMRange(2025, 1, 6)]

Ranges never overlap and their month counts add up to the window length.

This module also provides availability checks (are all required years
present?), display labels and a helper that restricts a fact table to the
months of a window.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_LTM_WINDOW = 12


@dataclass(frozen=True)
class LTMRange:
    """Contiguous run of periods inside a single year (bounds inclusive)."""

    year: int
    start_period: int
    end_period: int

    @property
    def months(self) -> int:
        return self.end_period - self.start_period + 1

    def to_dict(self) -> dict[str, int]:
        return {
            "year": self.year,
            "startPeriod": self.start_period,
            "endPeriod": self.end_period,
        }


@dataclass(frozen=True)
class LatestPeriod:
    year: int
    period: int


@dataclass(frozen=True)
class DataAvailability:
    complete: bool
    actual_months: int
    expected_months: int
    message: str

    def to_dict(self) -> dict[str, object]:
        return {
            "complete": self.complete,
            "actualMonths": self.actual_months,
            "expectedMonths": self.expected_months,
            "message": self.message,
        }


@dataclass(frozen=True)
class LTMInfo:
    """Everything needed to render a statement over the latest LTM window."""

    ranges: tuple[LTMRange, ...]
    label: str
    filtered_data: pd.DataFrame = field(compare=False, repr=False)
    latest: Optional[LatestPeriod]
    availability: DataAvailability

    @property
    def has_complete_data(self) -> bool:
        return self.availability.complete


# ---------------------------------------------------------------------------
# Window computation
# ---------------------------------------------------------------------------


def get_latest_available_period(facts: pd.DataFrame) -> Optional[LatestPeriod]:
    """Return the most recent (year, period) present in the fact table.

    Returns None for an empty table or when the latest year is 0.
    """
    if facts is None or facts.empty:
        return None

    max_year = int(facts["year"].max())
    if max_year == 0:
        return None

    max_period = int(facts.loc[facts["year"] == max_year, "period"].max())
    return LatestPeriod(year=max_year, period=max_period)


def is_valid_ltm_params(year: int, period: int, window: int) -> bool:
    return year > 0 and 1 <= period <= 12 and window > 0


def calculate_ltm_range(
    year: int, period: int, window: int = DEFAULT_LTM_WINDOW
) -> list[LTMRange]:
    """Split a rolling window ending at (year, period) into per-year ranges.

    The result is in chronological order. Invalid input (year <= 0, period
    outside 1..12, window <= 0) yields an empty list.
    """
    if not is_valid_ltm_params(year, period, window):
        return []

    ranges: list[LTMRange] = []
    remaining = window
    current_year = year
    current_period = period

    while remaining > 0:
        start = max(1, current_period - remaining + 1)
        ranges.insert(0, LTMRange(current_year, start, current_period))
        remaining -= current_period - start + 1
        current_year -= 1
        current_period = 12

    return ranges


def get_total_months(ranges: Iterable[LTMRange]) -> int:
    return sum(r.months for r in ranges)


def get_required_years(ranges: Iterable[LTMRange]) -> list[int]:
    """Distinct years covered by the ranges, in first-seen order."""
    return list(dict.fromkeys(r.year for r in ranges))


def month_sequence(ranges: Iterable[LTMRange]) -> list[tuple[int, int]]:
    """Expand ranges into the chronological list of (year, period) months."""
    return [
        (r.year, p) for r in ranges for p in range(r.start_period, r.end_period + 1)
    ]


def is_valid_range(ltm_range: LTMRange) -> bool:
    return (
        ltm_range.year > 0
        and 1 <= ltm_range.start_period <= 12
        and 1 <= ltm_range.end_period <= 12
        and ltm_range.start_period <= ltm_range.end_period
    )


def are_valid_ranges(ranges: Sequence[LTMRange]) -> bool:
    return len(ranges) > 0 and all(is_valid_range(r) for r in ranges)


# ---------------------------------------------------------------------------
# Availability & labels
# ---------------------------------------------------------------------------


def check_data_availability(
    ranges: Sequence[LTMRange],
    available_years: Iterable[int],
    expected_months: int = DEFAULT_LTM_WINDOW,
) -> DataAvailability:
    """Check whether the facts cover every month of the window."""
    if not ranges:
        return DataAvailability(
            complete=False,
            actual_months=0,
            expected_months=expected_months,
            message="No LTM data available",
        )

    total = get_total_months(ranges)
    available = set(available_years)
    missing = [y for y in get_required_years(ranges) if y not in available]

    if missing:
        return DataAvailability(
            complete=False,
            actual_months=total,
            expected_months=expected_months,
            message="Missing data for year(s): " + ", ".join(str(y) for y in missing),
        )

    if total >= expected_months:
        message = "Complete LTM data available"
    else:
        unit = "month" if total == 1 else "months"
        message = f"Only {total} {unit} available (need {expected_months})"

    return DataAvailability(
        complete=total >= expected_months,
        actual_months=total,
        expected_months=expected_months,
        message=message,
    )


def generate_ltm_label(ranges: Sequence[LTMRange]) -> str:
    """Long label, e.g. 'LTM (2024 P7 - 2025 P6)'."""
    if not ranges:
        return "LTM (No Data)"
    first, last = ranges[0], ranges[-1]
    return f"LTM ({first.year} P{first.start_period} - {last.year} P{last.end_period})"


def generate_short_label(ranges: Sequence[LTMRange]) -> str:
    """Short label, e.g. 'LTM 2025 P6'."""
    if not ranges:
        return "LTM"
    last = ranges[-1]
    return f"LTM {last.year} P{last.end_period}"


# ---------------------------------------------------------------------------
# Fact filtering
# ---------------------------------------------------------------------------


def ltm_mask(facts: pd.DataFrame, ranges: Iterable[LTMRange]) -> pd.Series:
    mask = pd.Series(False, index=facts.index)
    for r in ranges:
        mask |= (
            (facts["year"] == r.year)
            & (facts["period"] >= r.start_period)
            & (facts["period"] <= r.end_period)
        )
    return mask


def filter_movements_for_ltm(
    facts: pd.DataFrame, ranges: Sequence[LTMRange]
) -> pd.DataFrame:
    """Keep the fact rows falling inside any of the ranges.

    Row order of the input table is preserved.
    """
    if facts is None or not ranges:
        columns = facts.columns if facts is not None else None
        return pd.DataFrame(columns=columns)
    return facts.loc[ltm_mask(facts, ranges)]


def calculate_ltm_info(
    facts: pd.DataFrame,
    available_years: Optional[Iterable[int]] = None,
    window: int = DEFAULT_LTM_WINDOW,
) -> LTMInfo:
    """Compute the latest LTM window of a fact table in one call.

    Args:
        facts: Fact table with at least 'year' and 'period' columns.
        available_years: Years known to be loaded. Defaults to the distinct
            years found in ``facts``.
        window: Window length in months.
    """
    latest = get_latest_available_period(facts)

    if latest is None:
        return LTMInfo(
            ranges=(),
            label=generate_ltm_label(()),
            filtered_data=filter_movements_for_ltm(facts, ()),
            latest=None,
            availability=DataAvailability(
                complete=False,
                actual_months=0,
                expected_months=window,
                message="No data available",
            ),
        )

    if available_years is None:
        available_years = [int(y) for y in facts["year"].unique()]

    ranges = tuple(calculate_ltm_range(latest.year, latest.period, window))
    availability = check_data_availability(ranges, available_years, window)

    logger.debug(
        "LTM window ending %s P%s: %s (%s)",
        latest.year,
        latest.period,
        generate_ltm_label(ranges),
        availability.message,
    )

    return LTMInfo(
        ranges=ranges,
        label=generate_ltm_label(ranges),
        filtered_data=filter_movements_for_ltm(facts, ranges),
        latest=latest,
        availability=availability,
    )
