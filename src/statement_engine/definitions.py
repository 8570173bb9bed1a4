# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Report definitions.

A report definition describes one financial statement declaratively:

- ``variables``: named aggregations over the fact table, each with a filter
  (see ``filters.py``) and an aggregate (only "sum" is supported),
- ``layout``: the ordered rows of the statement. Each row is one of:
    * ``variable``   - shows the value of a variable,
    * ``calculated`` - evaluates a formula over variables and earlier rows
                       (``@<order>``),
    * ``spacer``     - an empty line,
    * ``header``     - a title line without amounts,
- ``formatting``: report-level display options per format kind.

Definitions are usually stored as JSON:

    {
      "reportId": "income_statement",
      "name": "Income statement",
      "version": "1.0.0",
      "statementType": "income",
      "variables": {
        "revenue": {"filter": {"code1": "REV"}, "aggregate": "sum"},
        "cogs":    {"filter": {"code1": "COGS"}, "aggregate": "sum", "sign": -1}
      },
      "layout": [
        {"order": 10, "type": "variable", "variable": "revenue", "label": "Revenue"},
        {"order": 20, "type": "variable", "variable": "cogs", "label": "COGS"},
        {"order": 30, "type": "calculated", "expression": "@10 + @20",
         "label": "Gross profit", "style": "subtotal"}
      ]
    }

``parse_report_definition`` validates the whole mapping up front and raises
``InvalidReportDefinitionError`` with every problem found, so that nothing
is aggregated for a definition that cannot be rendered.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from .errors import ExpressionSyntaxError, InvalidReportDefinitionError
from .expressions import get_dependencies, is_order_reference
from .filters import validate_filter

LAYOUT_TYPES = ("variable", "calculated", "spacer", "header")
FORMAT_TYPES = ("currency", "percent", "integer", "decimal")
STYLE_TYPES = ("normal", "metric", "subtotal", "total", "spacer", "header")
AGGREGATES = ("sum",)


class StatementType(str, Enum):
    BALANCE = "balance"
    INCOME = "income"
    CASHFLOW = "cashflow"

    @classmethod
    def parse(cls, value: Union["StatementType", str]) -> "StatementType":
        """Parse a statement type, accepting short and UI aliases.

        Raises:
            ValueError: if the value is not a known statement type.
        """
        if isinstance(value, StatementType):
            return value
        key = str(value).strip().lower()
        if key in _STATEMENT_ALIASES:
            return _STATEMENT_ALIASES[key]
        raise ValueError(
            f"Unknown statement type {value!r}: expected one of "
            f"{', '.join(t.value for t in cls)}"
        )

    @classmethod
    def is_income(cls, value: Optional[Union["StatementType", str]]) -> bool:
        if value is None:
            return False
        try:
            return cls.parse(value) is cls.INCOME
        except ValueError:
            return False


_STATEMENT_ALIASES = {
    "balance": StatementType.BALANCE,
    "bs": StatementType.BALANCE,
    "balance-sheet": StatementType.BALANCE,
    "income": StatementType.INCOME,
    "is": StatementType.INCOME,
    "income-statement": StatementType.INCOME,
    "cashflow": StatementType.CASHFLOW,
    "cf": StatementType.CASHFLOW,
    "cash-flow": StatementType.CASHFLOW,
}


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VariableDefinition:
    """Named aggregation over the fact rows matching ``filter``."""

    filter: Mapping[str, Any]
    aggregate: str = "sum"
    sign: int = 1
    description: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "VariableDefinition":
        return cls(
            filter=dict(data.get("filter") or {}),
            aggregate=data.get("aggregate", "sum"),
            sign=data.get("sign", 1),
            description=data.get("description"),
        )


def variable_definition_errors(definition: Any, prefix: str = "variable") -> list[str]:
    """Return the problems of a variable definition (mapping or dataclass)."""
    if isinstance(definition, VariableDefinition):
        filter_spec = definition.filter
        aggregate = definition.aggregate
        sign = definition.sign
    elif isinstance(definition, Mapping):
        if "filter" not in definition:
            return [f"{prefix}.filter: filter is required"]
        filter_spec = definition.get("filter")
        aggregate = definition.get("aggregate", "sum")
        sign = definition.get("sign", 1)
    else:
        return [f"{prefix}: variable definition must be an object"]

    errors = [f"{prefix}.filter: {msg}" for msg in validate_filter(filter_spec)]
    if aggregate not in AGGREGATES:
        errors.append(
            f"{prefix}.aggregate: aggregate must be one of: {', '.join(AGGREGATES)}"
        )
    if isinstance(sign, bool) or sign not in (1, -1):
        errors.append(f"{prefix}.sign: sign must be 1 or -1")
    return errors


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

FormatSpec = Union[str, Mapping[str, Any]]


@dataclass(frozen=True)
class VariableRow:
    type: ClassVar[str] = "variable"

    order: int
    variable: str
    label: str = ""
    format: Optional[FormatSpec] = None
    style: str = "normal"
    indent: int = 0


@dataclass(frozen=True)
class CalculatedRow:
    type: ClassVar[str] = "calculated"

    order: int
    expression: str
    label: str = ""
    format: Optional[FormatSpec] = None
    style: str = "normal"
    indent: int = 0


@dataclass(frozen=True)
class SpacerRow:
    type: ClassVar[str] = "spacer"

    order: int
    label: str = ""
    format: Optional[FormatSpec] = None
    style: str = "spacer"
    indent: int = 0


@dataclass(frozen=True)
class HeaderRow:
    type: ClassVar[str] = "header"

    order: int
    label: str = ""
    format: Optional[FormatSpec] = None
    style: str = "header"
    indent: int = 0


LayoutItem = Union[VariableRow, CalculatedRow, SpacerRow, HeaderRow]


@dataclass(frozen=True)
class FormatRule:
    decimals: Optional[int] = None
    thousands: Optional[bool] = None
    symbol: Optional[str] = None

    def to_options(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in (
                ("decimals", self.decimals),
                ("thousands", self.thousands),
                ("symbol", self.symbol),
            )
            if value is not None
        }


@dataclass(frozen=True)
class ReportDefinition:
    report_id: str
    name: str
    version: str
    statement_type: StatementType
    variables: Mapping[str, VariableDefinition]
    layout: tuple[LayoutItem, ...]
    formatting: Mapping[str, FormatRule] = field(default_factory=dict)

    def sorted_layout(self) -> list[LayoutItem]:
        return sorted(self.layout, key=lambda item: item.order)

    def item_by_order(self, order: int) -> Optional[LayoutItem]:
        for item in self.layout:
            if item.order == order:
                return item
        return None

    def formatting_rules(self) -> dict[str, dict[str, Any]]:
        return {kind: rule.to_options() for kind, rule in self.formatting.items()}


# ---------------------------------------------------------------------------
# Validation & parsing
# ---------------------------------------------------------------------------


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_format(fmt: Any, prefix: str) -> list[str]:
    kind = fmt.get("type") if isinstance(fmt, Mapping) else fmt
    if kind not in FORMAT_TYPES:
        return [f"{prefix}.format: format must be one of: {', '.join(FORMAT_TYPES)}"]
    return []


def _validate_layout_item(item: Any, index: int, variables: Mapping) -> list[str]:
    prefix = f"layout[{index}]"
    if not isinstance(item, Mapping):
        return [f"{prefix}: layout item must be an object"]

    errors: list[str] = []
    order = item.get("order")
    if not _is_int(order):
        errors.append(f"{prefix}.order: order must be an integer")
    elif order < 0:
        errors.append(f"{prefix}.order: order must be >= 0")

    item_type = item.get("type")
    if item_type not in LAYOUT_TYPES:
        errors.append(f"{prefix}.type: type must be one of: {', '.join(LAYOUT_TYPES)}")

    if item_type == "variable":
        name = item.get("variable")
        if not isinstance(name, str) or not name:
            errors.append(
                f'{prefix}.variable: variable field is required for type="variable"'
            )
        elif name not in variables:
            errors.append(
                f"{prefix}.variable: Variable '{name}' is not defined in variables "
                "section"
            )

    if item_type == "calculated":
        expression = item.get("expression")
        if not isinstance(expression, str) or not expression.strip():
            errors.append(
                f'{prefix}.expression: expression field is required for '
                'type="calculated"'
            )

    if "format" in item:
        errors.extend(_validate_format(item["format"], prefix))

    if "style" in item and item["style"] not in STYLE_TYPES:
        errors.append(f"{prefix}.style: style must be one of: {', '.join(STYLE_TYPES)}")

    if "indent" in item:
        indent = item["indent"]
        if not _is_int(indent) or indent < 0:
            errors.append(f"{prefix}.indent: indent must be a non-negative integer")

    return errors


def _validate_references(layout: list, variables: Mapping) -> list[str]:
    """Check calculated rows: syntax, variable names and @order targets."""
    orders = {item.get("order") for item in layout if isinstance(item, Mapping)}
    errors: list[str] = []

    for index, item in enumerate(layout):
        if not isinstance(item, Mapping) or item.get("type") != "calculated":
            continue
        expression = item.get("expression")
        if not isinstance(expression, str) or not expression.strip():
            continue

        prefix = f"layout[{index}].expression"
        try:
            names = get_dependencies(expression)
        except ExpressionSyntaxError as exc:
            errors.append(f"{prefix}: {exc.message}")
            continue

        for name in sorted(names):
            if is_order_reference(name):
                if int(name[1:]) not in orders:
                    errors.append(f"{prefix}: Order reference {name} does not exist")
            elif name not in variables:
                errors.append(
                    f"{prefix}: Variable '{name}' is not defined in variables section"
                )
    return errors


def _validate_formatting(formatting: Any) -> list[str]:
    if not isinstance(formatting, Mapping):
        return ["formatting: Formatting must be an object"]
    errors: list[str] = []
    for kind, rule in formatting.items():
        prefix = f"formatting.{kind}"
        if kind not in FORMAT_TYPES:
            errors.append(f"{prefix}: unknown format kind")
            continue
        if not isinstance(rule, Mapping):
            errors.append(f"{prefix}: format rule must be an object")
            continue
        decimals = rule.get("decimals")
        if decimals is not None and (not _is_int(decimals) or not 0 <= decimals <= 4):
            errors.append(f"{prefix}.decimals: decimals must be an integer between 0 and 4")
        thousands = rule.get("thousands")
        if thousands is not None and not isinstance(thousands, bool):
            errors.append(f"{prefix}.thousands: thousands must be a boolean")
        symbol = rule.get("symbol")
        if symbol is not None and (not isinstance(symbol, str) or len(symbol) > 5):
            errors.append(f"{prefix}.symbol: symbol must be a string with max length 5")
    return errors


def validate_report_definition(data: Any) -> list[str]:
    """Return every structural problem of a JSON-shaped report definition."""
    if not isinstance(data, Mapping):
        return ["reportDef: Report definition must be an object"]

    errors: list[str] = []

    report_id = data.get("reportId")
    if not isinstance(report_id, str) or not report_id.strip():
        errors.append("reportId: Required field 'reportId' is missing")

    if "statementType" not in data:
        errors.append("statementType: Required field 'statementType' is missing")
    else:
        try:
            StatementType.parse(data["statementType"])
        except ValueError as exc:
            errors.append(f"statementType: {exc}")

    variables = data.get("variables", {})
    if not isinstance(variables, Mapping):
        errors.append("variables: variables must be an object")
        variables = {}
    for name, definition in variables.items():
        errors.extend(variable_definition_errors(definition, f"variables.{name}"))

    layout = data.get("layout")
    if not isinstance(layout, list):
        errors.append("layout: layout must be an array")
        layout = []
    elif not layout:
        errors.append("layout: layout must contain at least one item")

    for index, item in enumerate(layout):
        errors.extend(_validate_layout_item(item, index, variables))

    seen: set[int] = set()
    duplicates: list[int] = []
    for item in layout:
        if isinstance(item, Mapping) and _is_int(item.get("order")):
            if item["order"] in seen and item["order"] not in duplicates:
                duplicates.append(item["order"])
            seen.add(item["order"])
    if duplicates:
        errors.append(
            "layout: Duplicate order numbers found: "
            + ", ".join(str(o) for o in duplicates)
        )

    errors.extend(_validate_references(layout, variables))

    if "formatting" in data:
        errors.extend(_validate_formatting(data["formatting"]))

    return errors


def _build_layout_item(item: Mapping[str, Any]) -> LayoutItem:
    common = {
        "order": item["order"],
        "label": item.get("label", ""),
        "format": item.get("format"),
        "indent": item.get("indent", 0),
    }
    if "style" in item:
        common["style"] = item["style"]

    item_type = item["type"]
    if item_type == "variable":
        return VariableRow(variable=item["variable"], **common)
    if item_type == "calculated":
        return CalculatedRow(expression=item["expression"], **common)
    if item_type == "spacer":
        return SpacerRow(**common)
    if item_type == "header":
        return HeaderRow(**common)
    raise ValueError(f"Unknown layout item type: {item_type!r}")


def parse_report_definition(data: Any) -> ReportDefinition:
    """Validate and convert a JSON-shaped mapping into a ReportDefinition.

    A ReportDefinition instance is returned unchanged.

    Raises:
        InvalidReportDefinitionError: listing every problem found.
    """
    if isinstance(data, ReportDefinition):
        return data

    errors = validate_report_definition(data)
    if errors:
        report_id = data.get("reportId") if isinstance(data, Mapping) else None
        raise InvalidReportDefinitionError(str(report_id or "<unknown>"), errors)

    report_id = data["reportId"]
    variables = {
        name: VariableDefinition.from_mapping(definition)
        for name, definition in (data.get("variables") or {}).items()
    }
    formatting = {
        kind: FormatRule(
            decimals=rule.get("decimals"),
            thousands=rule.get("thousands"),
            symbol=rule.get("symbol"),
        )
        for kind, rule in (data.get("formatting") or {}).items()
    }

    return ReportDefinition(
        report_id=report_id,
        name=data.get("name") or report_id,
        version=str(data.get("version") or "1.0.0"),
        statement_type=StatementType.parse(data["statementType"]),
        variables=variables,
        layout=tuple(_build_layout_item(item) for item in data["layout"]),
        formatting=formatting,
    )
