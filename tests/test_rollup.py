import pandas as pd
import pytest

from statement_engine.ltm import calculate_ltm_range
from statement_engine.rollup import (
    ConditionalSum,
    Sum,
    VarianceAmount,
    VariancePercent,
    add_column,
    add_sum,
    build_category_totals,
    build_ltm_category_totals,
    build_ltm_mode,
    build_normal_mode,
    empty_spec,
    execute_rollup,
)


def _facts() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"year": 2024, "period": 1, "code1": "REV", "amount": 100.0},
            {"year": 2024, "period": 7, "code1": "REV", "amount": 70.0},
            {"year": 2024, "period": 12, "code1": "OPEX", "amount": -20.0},
            {"year": 2025, "period": 1, "code1": "REV", "amount": 150.0},
            {"year": 2025, "period": 6, "code1": "OPEX", "amount": -30.0},
        ]
    )


def test_builders_return_new_specs() -> None:
    base = empty_spec()
    extended = add_sum(base, "total", "amount")

    assert len(base) == 0
    assert extended.columns == ["total"]
    assert extended["total"] == Sum("amount")


def test_add_column_replaces_in_place() -> None:
    spec = add_sum(add_sum(empty_spec(), "a", "amount"), "b", "amount")
    spec = add_column(spec, "a", Sum("amount", -1))

    assert spec.columns == ["a", "b"]
    assert spec["a"] == Sum("amount", -1)


def test_normal_mode_columns() -> None:
    spec = build_normal_mode(2024, 2025, sign_multiplier=-1)

    assert spec.columns == ["amount_2024", "amount_2025"]
    assert spec["amount_2024"] == ConditionalSum("amount", -1, year=2024)
    assert spec["amount_2025"] == ConditionalSum("amount", -1, year=2025)


def test_normal_mode_execution() -> None:
    out = execute_rollup(_facts(), build_normal_mode(2024, 2025))

    assert out.shape == (1, 2)
    assert out.at[0, "amount_2024"] == pytest.approx(150.0)
    assert out.at[0, "amount_2025"] == pytest.approx(120.0)


def test_normal_mode_with_explicit_periods() -> None:
    out = execute_rollup(_facts(), build_normal_mode(2024, 2025, periods=[1]))

    assert out.at[0, "amount_2024"] == pytest.approx(100.0)
    assert out.at[0, "amount_2025"] == pytest.approx(150.0)


def test_ltm_mode_months_in_chronological_order() -> None:
    ranges = calculate_ltm_range(2025, 6, 12)
    spec = build_ltm_mode(ranges)

    assert spec.columns == [f"month_{i}" for i in range(1, 13)]
    assert spec["month_1"] == ConditionalSum("amount", 1, year=2024, periods=(7,))
    assert spec["month_12"] == ConditionalSum("amount", 1, year=2025, periods=(6,))


def test_ltm_total_only_for_income_statements() -> None:
    ranges = calculate_ltm_range(2025, 6, 12)

    assert "ltm_total" in build_ltm_mode(ranges, statement_type="income")
    assert "ltm_total" in build_ltm_mode(ranges, statement_type="IS")
    assert "ltm_total" not in build_ltm_mode(ranges, statement_type="balance")
    assert "ltm_total" not in build_ltm_mode(ranges)


def test_ltm_mode_is_deterministic() -> None:
    ranges = calculate_ltm_range(2025, 6, 12)

    assert build_ltm_mode(ranges, -1, "income") == build_ltm_mode(ranges, -1, "income")


def test_ltm_mode_execution() -> None:
    ranges = calculate_ltm_range(2025, 6, 12)
    window = _facts().iloc[1:]

    out = execute_rollup(window, build_ltm_mode(ranges, statement_type="income"))

    assert out.at[0, "month_1"] == pytest.approx(70.0)
    assert out.at[0, "month_6"] == pytest.approx(-20.0)
    assert out.at[0, "month_7"] == pytest.approx(150.0)
    assert out.at[0, "month_12"] == pytest.approx(-30.0)
    assert out.at[0, "month_2"] == 0.0
    assert out.at[0, "ltm_total"] == pytest.approx(170.0)


def test_execute_rollup_on_empty_frame_gives_zeros() -> None:
    out = execute_rollup(_facts().iloc[0:0], build_normal_mode(2024, 2025))

    assert list(out.iloc[0]) == [0.0, 0.0]


def test_execute_rollup_grouped() -> None:
    out = execute_rollup(_facts(), build_normal_mode(2024, 2025), by="code1")

    assert list(out.columns) == ["code1", "amount_2024", "amount_2025"]
    assert list(out["code1"]) == ["REV", "OPEX"]
    rev = out.loc[out["code1"] == "REV"].iloc[0]
    assert rev["amount_2024"] == pytest.approx(170.0)
    assert rev["amount_2025"] == pytest.approx(150.0)


def test_category_totals() -> None:
    rows = pd.DataFrame(
        [
            {"amount_2024": 100.0, "amount_2025": 150.0},
            {"amount_2024": -40.0, "amount_2025": -60.0},
        ]
    )
    spec = build_category_totals(2024, 2025)

    assert spec.columns == [
        "amount_2024",
        "amount_2025",
        "variance_amount",
        "variance_percent",
    ]
    assert spec["variance_amount"] == VarianceAmount("amount_2024", "amount_2025")
    assert spec["variance_percent"] == VariancePercent("amount_2024", "amount_2025")

    out = execute_rollup(rows, spec)
    assert out.at[0, "amount_2024"] == pytest.approx(60.0)
    assert out.at[0, "amount_2025"] == pytest.approx(90.0)
    assert out.at[0, "variance_amount"] == pytest.approx(30.0)
    assert out.at[0, "variance_percent"] == pytest.approx(50.0)


def test_category_totals_with_zero_prior() -> None:
    rows = pd.DataFrame([{"amount_2024": 0.0, "amount_2025": 10.0}])

    out = execute_rollup(rows, build_category_totals(2024, 2025))

    assert out.at[0, "variance_percent"] == 0.0


def test_ltm_category_totals() -> None:
    ranges = calculate_ltm_range(2025, 6, 12)

    spec = build_ltm_category_totals(ranges, "income")

    assert spec.columns == [f"month_{i}" for i in range(1, 13)] + ["ltm_total"]
    assert spec["month_3"] == Sum("month_3")
    assert "ltm_total" not in build_ltm_category_totals(ranges, "balance")
