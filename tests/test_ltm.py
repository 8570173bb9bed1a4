import pandas as pd
import pytest

from statement_engine.ltm import (
    LatestPeriod,
    LTMRange,
    are_valid_ranges,
    calculate_ltm_info,
    calculate_ltm_range,
    check_data_availability,
    filter_movements_for_ltm,
    generate_ltm_label,
    generate_short_label,
    get_latest_available_period,
    get_required_years,
    get_total_months,
    is_valid_range,
    month_sequence,
)


def _monthly_facts(start_year: int, end_year: int, last_period: int) -> pd.DataFrame:
    """One fact row per month, amount = period number."""
    rows = []
    for year in range(start_year, end_year + 1):
        periods = range(1, (last_period if year == end_year else 12) + 1)
        for period in periods:
            rows.append(
                {"year": year, "period": period, "code1": "REV", "amount": float(period)}
            )
    return pd.DataFrame(rows)


def test_range_spanning_two_years() -> None:
    ranges = calculate_ltm_range(2025, 6, 12)

    assert ranges == [LTMRange(2024, 7, 12), LTMRange(2025, 1, 6)]
    assert get_total_months(ranges) == 12


def test_range_at_year_end_stays_in_one_year() -> None:
    assert calculate_ltm_range(2025, 12, 12) == [LTMRange(2025, 1, 12)]


def test_longer_window_spans_three_years() -> None:
    ranges = calculate_ltm_range(2025, 3, 24)

    assert ranges == [
        LTMRange(2023, 4, 12),
        LTMRange(2024, 1, 12),
        LTMRange(2025, 1, 3),
    ]
    assert get_total_months(ranges) == 24


@pytest.mark.parametrize("window", [1, 3, 6, 12, 18, 36])
def test_total_months_equals_window(window) -> None:
    ranges = calculate_ltm_range(2025, 4, window)

    assert get_total_months(ranges) == window
    assert are_valid_ranges(ranges)
    months = month_sequence(ranges)
    assert len(set(months)) == window
    assert months == sorted(months)
    assert months[-1] == (2025, 4)


@pytest.mark.parametrize(
    "year, period, window",
    [(0, 6, 12), (2025, 0, 12), (2025, 13, 12), (2025, 6, 0), (2025, 6, -3)],
)
def test_invalid_input_gives_no_ranges(year, period, window) -> None:
    assert calculate_ltm_range(year, period, window) == []


def test_required_years_in_chronological_order() -> None:
    assert get_required_years(calculate_ltm_range(2025, 6, 12)) == [2024, 2025]


def test_labels() -> None:
    ranges = calculate_ltm_range(2025, 6, 12)

    assert generate_ltm_label(ranges) == "LTM (2024 P7 - 2025 P6)"
    assert generate_short_label(ranges) == "LTM 2025 P6"
    assert generate_ltm_label([]) == "LTM (No Data)"
    assert generate_short_label([]) == "LTM"


def test_availability_complete() -> None:
    ranges = calculate_ltm_range(2025, 6, 12)
    availability = check_data_availability(ranges, [2024, 2025])

    assert availability.complete
    assert availability.actual_months == 12
    assert availability.message == "Complete LTM data available"


def test_availability_missing_year() -> None:
    ranges = calculate_ltm_range(2025, 6, 12)
    availability = check_data_availability(ranges, [2025])

    assert not availability.complete
    assert availability.message == "Missing data for year(s): 2024"


def test_availability_too_few_months() -> None:
    ranges = [LTMRange(2025, 6, 6)]

    availability = check_data_availability(ranges, [2025], expected_months=12)

    assert not availability.complete
    assert availability.message == "Only 1 month available (need 12)"

    availability = check_data_availability(
        [LTMRange(2025, 1, 6)], [2025], expected_months=12
    )
    assert availability.message == "Only 6 months available (need 12)"


def test_availability_without_ranges() -> None:
    availability = check_data_availability([], [2025])

    assert not availability.complete
    assert availability.actual_months == 0
    assert availability.message == "No LTM data available"


def test_latest_available_period() -> None:
    facts = _monthly_facts(2024, 2025, 6)

    assert get_latest_available_period(facts) == LatestPeriod(2025, 6)
    assert get_latest_available_period(facts.iloc[0:0]) is None


def test_latest_period_ignores_year_zero() -> None:
    facts = pd.DataFrame([{"year": 0, "period": 5, "amount": 1.0}])
    assert get_latest_available_period(facts) is None


def test_filter_movements_keeps_window_rows_in_order() -> None:
    facts = _monthly_facts(2023, 2025, 6)
    ranges = calculate_ltm_range(2025, 6, 12)

    out = filter_movements_for_ltm(facts, ranges)

    assert len(out) == 12
    assert list(out.index) == sorted(out.index)
    assert list(zip(out["year"], out["period"])) == month_sequence(ranges)


def test_filter_movements_without_ranges_is_empty() -> None:
    out = filter_movements_for_ltm(_monthly_facts(2025, 2025, 3), [])
    assert out.empty


def test_calculate_ltm_info() -> None:
    facts = _monthly_facts(2024, 2025, 6)

    info = calculate_ltm_info(facts)

    assert info.latest == LatestPeriod(2025, 6)
    assert info.label == "LTM (2024 P7 - 2025 P6)"
    assert info.has_complete_data
    assert len(info.filtered_data) == 12


def test_calculate_ltm_info_with_missing_year() -> None:
    facts = _monthly_facts(2025, 2025, 6)

    info = calculate_ltm_info(facts)

    assert not info.has_complete_data
    assert info.availability.message == "Missing data for year(s): 2024"


def test_calculate_ltm_info_on_empty_table() -> None:
    facts = pd.DataFrame(columns=["year", "period", "amount"])

    info = calculate_ltm_info(facts)

    assert info.ranges == ()
    assert info.latest is None
    assert info.label == "LTM (No Data)"
    assert info.availability.message == "No data available"


@pytest.mark.parametrize(
    "ltm_range, valid",
    [
        (LTMRange(2025, 1, 6), True),
        (LTMRange(2025, 7, 6), False),
        (LTMRange(2025, 0, 6), False),
        (LTMRange(2025, 1, 13), False),
        (LTMRange(0, 1, 6), False),
    ],
)
def test_is_valid_range(ltm_range, valid) -> None:
    assert is_valid_range(ltm_range) is valid


def test_are_valid_ranges_requires_at_least_one() -> None:
    assert not are_valid_ranges([])
