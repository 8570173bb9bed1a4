# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Statement rendering.

Turns a report definition plus a fact table into the rows of a financial
statement:

1. the definition is validated (``InvalidReportDefinitionError``),
2. the @order references of calculated rows are checked: a reference to the
   same or a later row, or a loop of references, raises
   ``CircularDependencyError`` before any aggregation runs,
3. every variable is resolved once (``resolver.resolve_variables``),
4. rows are evaluated in dependency order. Variable rows read resolved
   values; calculated rows evaluate their formula against the variables and
   the ``@<order>`` amounts of rows already rendered. Spacer and header rows
   carry no amounts and count as 0 when referenced,
5. prior/current variance is computed per row (normal mode only),
6. amounts are formatted per the row's format and the formatting rules.

Any resolution or evaluation failure aborts the render: a statement is
never returned partially computed.

Output
------
``RenderedStatement.rows`` holds one ``RenderedRow`` per layout item in
order. ``RenderedRow.to_dict()`` gives the flat record used by grids and
exports:

    {"order": 10, "label": "Revenue", "type": "variable", ...,
     "amount_2024": 1000.0, "amount_2025": 1200.0,
     "variance_amount": 200.0, "variance_percent": 20.0,
     "formatted_amount_2024": "€ 1,000", ..., "_metadata": {...}}
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

import networkx as nx
import pandas as pd

from .config import EngineConfig
from .definitions import (
    CalculatedRow,
    LayoutItem,
    ReportDefinition,
    VariableRow,
    parse_report_definition,
)
from .errors import (
    CircularDependencyError,
    ExpressionEvaluationError,
    ReportGenerationError,
)
from .expressions import (
    ExpressionCache,
    ExpressionFailure,
    dependencies_of,
    evaluate_ast,
    is_order_reference,
)
from .formatting import format_value
from .ltm import calculate_ltm_info, generate_short_label
from .periods import PeriodOptions
from .resolver import resolve_variables
from .rollup import VARIANCE_AMOUNT_COLUMN, VARIANCE_PERCENT_COLUMN
from .variance import calculate_variance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedRow:
    order: int
    label: str
    type: str
    style: str
    indent: int
    format: Union[str, Mapping[str, Any]]
    amounts: Mapping[str, Optional[float]]
    variance_amount: Optional[float] = None
    variance_percent: Optional[float] = None
    formatted: Mapping[str, str] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Flatten the row into a single record."""
        record: dict[str, Any] = {
            "order": self.order,
            "label": self.label,
            "type": self.type,
            "style": self.style,
            "indent": self.indent,
            "format": self.format,
        }
        record.update(self.amounts)
        record[VARIANCE_AMOUNT_COLUMN] = self.variance_amount
        record[VARIANCE_PERCENT_COLUMN] = self.variance_percent
        for column, text in self.formatted.items():
            record[f"formatted_{column}"] = text
        record["_metadata"] = dict(self.metadata)
        return record


@dataclass(frozen=True)
class RenderedStatement:
    rows: tuple[RenderedRow, ...]
    metadata: Mapping[str, Any]

    def row(self, order: int) -> RenderedRow:
        for row in self.rows:
            if row.order == order:
                return row
        raise KeyError(order)

    def to_records(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self.rows]

    def to_frame(self) -> pd.DataFrame:
        """Rows as a DataFrame, one column per record key."""
        return pd.DataFrame(self.to_records())


# ---------------------------------------------------------------------------
# Dependency graph
# ---------------------------------------------------------------------------


def build_dependency_graph(
    report_def: Union[ReportDefinition, Mapping[str, Any]],
    cache: Optional[ExpressionCache] = None,
) -> nx.DiGraph:
    """Dependency graph of the layout, one node per order.

    An edge ``dep -> order`` means the formula of ``order`` references
    ``@dep``. Rows that are not calculated have no incoming edges.
    """
    definition = parse_report_definition(report_def)
    cache = cache if cache is not None else ExpressionCache()

    graph = nx.DiGraph()
    graph.add_nodes_from(item.order for item in definition.sorted_layout())
    for item in definition.sorted_layout():
        if not isinstance(item, CalculatedRow):
            continue
        names = dependencies_of(cache.get_or_parse(item.expression))
        graph.add_edges_from(
            (int(name[1:]), item.order)
            for name in sorted(names)
            if is_order_reference(name)
        )
    return graph


def _check_graph(graph: nx.DiGraph, report_id: str) -> list[int]:
    try:
        cycle = nx.find_cycle(graph)
        # Edges point from a referenced row to the row referencing it.
        nodes = [source for source, _ in cycle] + [cycle[0][0]]
        raise CircularDependencyError(
            [f"@{order}" for order in reversed(nodes)], report_id
        )
    except nx.NetworkXNoCycle:
        logger.debug("Layout of report '%s' has no reference cycle", report_id)

    for order in sorted(graph.nodes):
        ahead = sorted(dep for dep in graph.predecessors(order) if dep >= order)
        if ahead:
            raise CircularDependencyError([f"@{order}", f"@{ahead[0]}"], report_id)

    return list(nx.lexicographical_topological_sort(graph))


def evaluation_order(
    report_def: Union[ReportDefinition, Mapping[str, Any]],
    cache: Optional[ExpressionCache] = None,
) -> list[int]:
    """Layout orders in an order where every row follows its dependencies.

    Raises:
        CircularDependencyError: on a loop of references or a reference to
            the same or a later row.
    """
    definition = parse_report_definition(report_def)
    graph = build_dependency_graph(definition, cache)
    return _check_graph(graph, definition.report_id)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class ReportRenderer:
    """Renders report definitions against a fact table.

    The renderer owns an expression cache, so formulas shared by several
    rows, columns or reports are parsed once.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        cache: Optional[ExpressionCache] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.cache = (
            cache
            if cache is not None
            else ExpressionCache(enabled=self.config.cache_expressions)
        )

    def build_dependency_graph(self, report_def) -> nx.DiGraph:
        return build_dependency_graph(report_def, self.cache)

    def evaluation_order(self, report_def) -> list[int]:
        return evaluation_order(report_def, self.cache)

    # -- public API ---------------------------------------------------------

    def render_statement(
        self,
        report_def: Union[ReportDefinition, Mapping[str, Any]],
        facts: pd.DataFrame,
        period_options: Union[PeriodOptions, Mapping[str, Any]],
    ) -> RenderedStatement:
        """Render one statement.

        Args:
            report_def: ReportDefinition or its JSON-shaped mapping.
            facts: Fact table with 'year', 'period', 'amount' columns.
            period_options: PeriodOptions or its mapping form.

        Raises:
            InvalidReportDefinitionError: structural problems in report_def.
            CircularDependencyError: forward or cyclic @order references.
            VariableResolutionError: a variable could not be aggregated.
            ExpressionEvaluationError: a calculated row failed to evaluate.
        """
        definition = parse_report_definition(report_def)
        try:
            options = PeriodOptions.from_mapping(period_options)
        except ValueError as exc:
            raise ReportGenerationError(
                f"Invalid period options: {exc}",
                context={"reportId": definition.report_id},
            ) from exc

        ordered = self.evaluation_order(definition)

        logger.debug(
            "Rendering report '%s' (%s mode, %d layout item(s))",
            definition.report_id,
            options.mode,
            len(definition.layout),
        )

        resolved = resolve_variables(
            definition.variables,
            facts,
            options,
            statement_type=definition.statement_type,
            report_id=definition.report_id,
        )
        columns = options.amount_columns(definition.statement_type)

        amounts = self._evaluate_rows(definition, ordered, resolved, columns)
        rules = self._formatting_rules(definition)

        rows = tuple(
            self._build_row(item, amounts[item.order], columns, options, rules)
            for item in definition.sorted_layout()
        )

        metadata = {
            "reportId": definition.report_id,
            "reportName": definition.name,
            "reportVersion": definition.version,
            "statementType": definition.statement_type.value,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "periodOptions": options.to_dict(),
            "mode": options.mode,
            "columns": list(columns),
            "variableCount": len(definition.variables),
            "layoutItemCount": len(definition.layout),
        }
        return RenderedStatement(rows=rows, metadata=metadata)

    def render_ltm_statement(
        self,
        report_def: Union[ReportDefinition, Mapping[str, Any]],
        facts: pd.DataFrame,
        window: Optional[int] = None,
    ) -> RenderedStatement:
        """Render a statement over the latest LTM window found in ``facts``.

        The window label and data availability are added to the metadata.
        """
        definition = parse_report_definition(report_def)
        window = window if window is not None else self.config.ltm_window

        info = calculate_ltm_info(facts, window=window)
        if not info.ranges:
            raise ReportGenerationError(
                "No data available for LTM statement",
                user_message="No data is available to compute the LTM statement.",
                context={"reportId": definition.report_id, "window": window},
            )

        if not info.availability.complete:
            logger.warning(
                "Incomplete LTM data for report '%s': %s",
                definition.report_id,
                info.availability.message,
            )

        statement = self.render_statement(
            definition, facts, PeriodOptions.for_ltm(info.ranges)
        )
        metadata = dict(statement.metadata)
        metadata["ltmLabel"] = info.label
        metadata["ltmShortLabel"] = generate_short_label(info.ranges)
        metadata["ltmAvailability"] = info.availability.to_dict()
        return RenderedStatement(rows=statement.rows, metadata=metadata)

    def render_statements(
        self,
        report_defs: Union[
            Mapping[str, Union[ReportDefinition, Mapping[str, Any]]],
            Iterable[Union[ReportDefinition, Mapping[str, Any]]],
        ],
        facts: pd.DataFrame,
        period_options: Union[PeriodOptions, Mapping[str, Any]],
    ) -> dict[str, RenderedStatement]:
        """Render several statements over the same facts and periods.

        Returns:
            Mapping of report id -> RenderedStatement, in input order.
        """
        if isinstance(report_defs, Mapping):
            report_defs = report_defs.values()

        results: dict[str, RenderedStatement] = {}
        for report_def in report_defs:
            definition = parse_report_definition(report_def)
            results[definition.report_id] = self.render_statement(
                definition, facts, period_options
            )
        return results

    # -- internals ----------------------------------------------------------

    def _evaluate_rows(
        self,
        definition: ReportDefinition,
        ordered: list[int],
        resolved: Mapping[str, Mapping[str, float]],
        columns: list[str],
    ) -> dict[int, dict[str, Optional[float]]]:
        by_order = {item.order: item for item in definition.layout}
        amounts: dict[int, dict[str, Optional[float]]] = {}

        for order in ordered:
            item = by_order[order]
            if isinstance(item, VariableRow):
                values = resolved[item.variable]
                amounts[order] = {col: values[col] for col in columns}
            elif isinstance(item, CalculatedRow):
                amounts[order] = self._evaluate_calculated(
                    item, definition.report_id, resolved, amounts, columns
                )
            else:
                amounts[order] = {col: None for col in columns}

        return amounts

    def _evaluate_calculated(
        self,
        item: CalculatedRow,
        report_id: str,
        resolved: Mapping[str, Mapping[str, float]],
        rendered: Mapping[int, Mapping[str, Optional[float]]],
        columns: list[str],
    ) -> dict[str, Optional[float]]:
        node = self.cache.get_or_parse(item.expression)
        names = dependencies_of(node)

        values: dict[str, Optional[float]] = {}
        for column in columns:
            context: dict[str, float] = {}
            for name in names:
                if is_order_reference(name):
                    row = rendered.get(int(name[1:]))
                    if row is not None:
                        context[name] = row[column] or 0.0
                elif name in resolved:
                    context[name] = resolved[name][column]

            result = evaluate_ast(node, context)
            if isinstance(result, ExpressionFailure):
                raise ExpressionEvaluationError(
                    item.expression,
                    f"{result.message} (column {column})",
                    order=item.order,
                    report_id=report_id,
                    kind=result.kind.value,
                )
            values[column] = result
        return values

    def _formatting_rules(self, definition: ReportDefinition) -> dict[str, dict]:
        rules = {kind: dict(opts) for kind, opts in self.config.formatting.items()}
        for kind, options in definition.formatting_rules().items():
            rules.setdefault(kind, {}).update(options)
        return rules

    def _build_row(
        self,
        item: LayoutItem,
        amounts: Mapping[str, Optional[float]],
        columns: list[str],
        options: PeriodOptions,
        rules: Mapping[str, Mapping[str, Any]],
    ) -> RenderedRow:
        fmt = item.format or self.config.default_format

        variance_amount = variance_percent = None
        has_amounts = isinstance(item, (VariableRow, CalculatedRow))
        if has_amounts and not options.is_ltm and len(columns) > 1:
            variance_amount, variance_percent = calculate_variance(
                amounts[columns[-1]], amounts[columns[0]]
            )

        formatted = {col: format_value(amounts[col], fmt, rules) for col in columns}
        formatted[VARIANCE_AMOUNT_COLUMN] = format_value(variance_amount, fmt, rules)
        formatted[VARIANCE_PERCENT_COLUMN] = format_value(
            variance_percent, "percent", rules
        )

        if isinstance(item, VariableRow):
            metadata: dict[str, Any] = {"variable": item.variable}
        elif isinstance(item, CalculatedRow):
            metadata = {
                "expression": item.expression,
                "dependencies": sorted(
                    dependencies_of(self.cache.get_or_parse(item.expression))
                ),
            }
        else:
            metadata = {}

        return RenderedRow(
            order=item.order,
            label=item.label,
            type=item.type,
            style=item.style,
            indent=item.indent,
            format=fmt,
            amounts=dict(amounts),
            variance_amount=variance_amount,
            variance_percent=variance_percent,
            formatted=formatted,
            metadata=metadata,
        )
