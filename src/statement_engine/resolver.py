# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Variable resolution.

Resolving a variable means:
1. selecting the fact rows matching its filter (``filters.apply_filter``),
2. restricting them to the period window of the statement,
3. summing ``amount * sign`` into one value per amount column, by compiling
   an aggregation spec (``rollup.py``) and executing it.

Normal mode produces ``amount_<year>`` columns, LTM mode produces
``month_1`` .. ``month_N`` (plus ``ltm_total`` for income statements).
A variable matching no rows resolves to 0.0 in every column; this is not an
error.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

import pandas as pd

from .definitions import (
    StatementType,
    VariableDefinition,
    variable_definition_errors,
)
from .errors import FilterError, VariableResolutionError
from .filters import apply_filter, missing_columns
from .periods import PeriodOptions, filter_facts_by_period_options
from .rollup import RollupSpec, build_ltm_mode, build_year_columns, execute_rollup

logger = logging.getLogger(__name__)

REQUIRED_FACT_COLUMNS = ("year", "period", "amount")


def validate_variable(definition: Any) -> list[str]:
    """Return the problems of a variable definition (empty when valid)."""
    return variable_definition_errors(definition)


def _as_definition(definition: Any) -> VariableDefinition:
    if isinstance(definition, VariableDefinition):
        return definition
    return VariableDefinition.from_mapping(definition)


def _check_facts(facts: Any) -> None:
    if not isinstance(facts, pd.DataFrame):
        raise TypeError("facts must be a pandas DataFrame")
    missing = [c for c in REQUIRED_FACT_COLUMNS if c not in facts.columns]
    if missing:
        raise KeyError(
            f"Fact table is missing required column(s): {', '.join(missing)}. "
            f"Available columns: {', '.join(map(str, facts.columns))}"
        )


def _check_filter_columns(
    name: str,
    definition: VariableDefinition,
    facts: pd.DataFrame,
    report_id: Optional[str] = None,
) -> None:
    missing = missing_columns(facts, definition.filter)
    if missing:
        raise VariableResolutionError(
            name,
            f"Filter references unknown column(s): {', '.join(missing)}",
            report_id,
        )


def compile_variable_spec(
    definition: VariableDefinition,
    period_options: PeriodOptions,
    statement_type: Optional[Union[StatementType, str]] = None,
) -> RollupSpec:
    """Aggregation spec producing the amount columns of one variable."""
    if period_options.is_ltm:
        return build_ltm_mode(
            period_options.ltm_ranges, definition.sign, statement_type
        )
    return build_year_columns(
        period_options.years, definition.sign, periods=period_options.period_filter
    )


def _resolve_windowed(
    name: str,
    definition: VariableDefinition,
    window: pd.DataFrame,
    period_options: PeriodOptions,
    statement_type: Optional[Union[StatementType, str]],
) -> dict[str, float]:
    matched = apply_filter(window, definition.filter)
    if matched.empty:
        logger.warning(
            "No data found matching filter %s for variable '%s'; "
            "variable will have zero values",
            dict(definition.filter),
            name,
        )

    spec = compile_variable_spec(definition, period_options, statement_type)
    result = execute_rollup(matched, spec)
    return {column: float(result.at[0, column]) for column in spec.columns}


def resolve_variable(
    definition: Union[VariableDefinition, Mapping[str, Any]],
    facts: pd.DataFrame,
    period_options: Union[PeriodOptions, Mapping[str, Any]],
    statement_type: Optional[Union[StatementType, str]] = None,
    name: str = "<anonymous>",
) -> dict[str, float]:
    """Resolve a single variable to a column -> amount mapping.

    Raises:
        VariableResolutionError: if the definition is invalid or the filter
            or aggregation cannot be applied to the fact table.
    """
    problems = validate_variable(definition)
    if problems:
        raise VariableResolutionError(
            name, "Invalid variable definition: " + ", ".join(problems)
        )

    definition = _as_definition(definition)
    try:
        options = PeriodOptions.from_mapping(period_options)
        _check_facts(facts)
    except (KeyError, TypeError, ValueError) as exc:
        raise VariableResolutionError(name, str(exc)) from exc
    _check_filter_columns(name, definition, facts)

    try:
        window = filter_facts_by_period_options(facts, options)
        return _resolve_windowed(name, definition, window, options, statement_type)
    except (FilterError, KeyError, TypeError, ValueError) as exc:
        raise VariableResolutionError(name, str(exc)) from exc


def resolve_variables(
    variables: Mapping[str, Union[VariableDefinition, Mapping[str, Any]]],
    facts: pd.DataFrame,
    period_options: Union[PeriodOptions, Mapping[str, Any]],
    statement_type: Optional[Union[StatementType, str]] = None,
    report_id: Optional[str] = None,
) -> dict[str, dict[str, float]]:
    """Resolve every variable of a report.

    The fact table is restricted to the period window once and shared by all
    variables.

    Returns:
        Mapping of variable name -> {amount column -> value}.

    Raises:
        VariableResolutionError: attributed to the failing variable name and
            the report id.
    """
    if not isinstance(variables, Mapping):
        raise VariableResolutionError(
            "<variables>", "Variables must be a mapping", report_id
        )

    try:
        options = PeriodOptions.from_mapping(period_options)
        _check_facts(facts)
        window = filter_facts_by_period_options(facts, options)
    except (KeyError, TypeError, ValueError) as exc:
        raise VariableResolutionError("<facts>", str(exc), report_id) from exc

    logger.debug(
        "Resolving %d variable(s) over %d fact row(s) (%s mode)",
        len(variables),
        len(window),
        options.mode,
    )

    definitions: dict[str, VariableDefinition] = {}
    for name, definition in variables.items():
        problems = validate_variable(definition)
        if problems:
            raise VariableResolutionError(
                name, "Invalid variable definition: " + ", ".join(problems), report_id
            )
        definitions[name] = _as_definition(definition)
        _check_filter_columns(name, definitions[name], facts, report_id)

    resolved: dict[str, dict[str, float]] = {}
    for name, definition in definitions.items():
        try:
            resolved[name] = _resolve_windowed(
                name, definition, window, options, statement_type
            )
        except (FilterError, KeyError, TypeError, ValueError) as exc:
            raise VariableResolutionError(name, str(exc), report_id) from exc

    return resolved
