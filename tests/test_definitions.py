import copy

import pytest

from statement_engine.definitions import (
    CalculatedRow,
    FormatRule,
    HeaderRow,
    SpacerRow,
    StatementType,
    VariableDefinition,
    VariableRow,
    parse_report_definition,
    validate_report_definition,
)
from statement_engine.errors import InvalidReportDefinitionError

REPORT = {
    "reportId": "income_simple",
    "name": "Simple income statement",
    "version": "1.2.0",
    "statementType": "income",
    "variables": {
        "revenue": {"filter": {"code1": "REV"}, "aggregate": "sum"},
        "cogs": {"filter": {"code1": "COGS"}, "aggregate": "sum", "sign": -1},
    },
    "layout": [
        {"order": 5, "type": "header", "label": "Operations"},
        {"order": 10, "type": "variable", "variable": "revenue", "label": "Revenue",
         "format": "currency"},
        {"order": 20, "type": "variable", "variable": "cogs", "label": "COGS",
         "indent": 1},
        {"order": 25, "type": "spacer"},
        {"order": 30, "type": "calculated", "expression": "@10 + @20",
         "label": "Gross profit", "style": "subtotal"},
    ],
    "formatting": {"currency": {"symbol": "$", "decimals": 2}},
}


def _report(**changes):
    data = copy.deepcopy(REPORT)
    data.update(changes)
    return data


def test_parse_valid_definition() -> None:
    definition = parse_report_definition(REPORT)

    assert definition.report_id == "income_simple"
    assert definition.name == "Simple income statement"
    assert definition.version == "1.2.0"
    assert definition.statement_type is StatementType.INCOME
    assert definition.variables["cogs"] == VariableDefinition(
        filter={"code1": "COGS"}, aggregate="sum", sign=-1
    )
    assert [type(item) for item in definition.layout] == [
        HeaderRow,
        VariableRow,
        VariableRow,
        SpacerRow,
        CalculatedRow,
    ]
    assert definition.layout[1].format == "currency"
    assert definition.layout[2].indent == 1
    assert definition.layout[4].style == "subtotal"
    assert definition.formatting["currency"] == FormatRule(decimals=2, symbol="$")
    assert definition.formatting_rules() == {"currency": {"decimals": 2, "symbol": "$"}}


def test_defaults_for_optional_fields() -> None:
    data = _report()
    del data["name"]
    del data["version"]
    del data["formatting"]

    definition = parse_report_definition(data)

    assert definition.name == "income_simple"
    assert definition.version == "1.0.0"
    assert definition.formatting == {}
    assert definition.layout[0].style == "header"
    assert definition.layout[3].style == "spacer"
    assert definition.layout[2].format is None


def test_parsed_definition_is_returned_unchanged() -> None:
    definition = parse_report_definition(REPORT)
    assert parse_report_definition(definition) is definition


@pytest.mark.parametrize(
    "value, expected",
    [
        ("balance", StatementType.BALANCE),
        ("BS", StatementType.BALANCE),
        ("income-statement", StatementType.INCOME),
        ("IS", StatementType.INCOME),
        ("cash-flow", StatementType.CASHFLOW),
        ("cashflow", StatementType.CASHFLOW),
    ],
)
def test_statement_type_aliases(value, expected) -> None:
    assert StatementType.parse(value) is expected


def test_unknown_statement_type() -> None:
    with pytest.raises(ValueError):
        StatementType.parse("equity")
    assert not StatementType.is_income("equity")
    assert not StatementType.is_income(None)


def test_missing_report_id() -> None:
    data = _report()
    del data["reportId"]

    with pytest.raises(InvalidReportDefinitionError) as excinfo:
        parse_report_definition(data)

    assert excinfo.value.report_id == "<unknown>"
    assert any("reportId" in e for e in excinfo.value.errors)


def test_duplicate_orders() -> None:
    data = _report()
    data["layout"].append({"order": 10, "type": "spacer"})

    errors = validate_report_definition(data)

    assert "layout: Duplicate order numbers found: 10" in errors


def test_undefined_variable_reference() -> None:
    data = _report()
    data["layout"].append({"order": 40, "type": "variable", "variable": "opex"})

    with pytest.raises(InvalidReportDefinitionError) as excinfo:
        parse_report_definition(data)

    assert excinfo.value.report_id == "income_simple"
    assert any("'opex'" in e for e in excinfo.value.errors)


def test_undefined_name_in_expression() -> None:
    data = _report()
    data["layout"].append(
        {"order": 40, "type": "calculated", "expression": "@30 - opex"}
    )

    errors = validate_report_definition(data)

    assert any("Variable 'opex' is not defined" in e for e in errors)


def test_unknown_order_reference() -> None:
    data = _report()
    data["layout"].append({"order": 40, "type": "calculated", "expression": "@99 * 2"})

    errors = validate_report_definition(data)

    assert any("Order reference @99 does not exist" in e for e in errors)


def test_expression_syntax_error() -> None:
    data = _report()
    data["layout"].append({"order": 40, "type": "calculated", "expression": "(@30 +"})

    errors = validate_report_definition(data)

    assert len(errors) == 1
    assert errors[0].startswith("layout[5].expression:")


def test_unknown_filter_field() -> None:
    data = _report()
    data["variables"]["revenue"]["filter"] = {"region": "EU"}

    errors = validate_report_definition(data)

    assert len(errors) == 1
    assert errors[0].startswith("variables.revenue.filter: Invalid filter field: region")


@pytest.mark.parametrize("expression", ["@²", "@1² + 1", "revenue٣"])
def test_non_ascii_digits_are_syntax_errors(expression) -> None:
    data = _report()
    data["layout"].append({"order": 40, "type": "calculated", "expression": expression})

    with pytest.raises(InvalidReportDefinitionError) as excinfo:
        parse_report_definition(data)

    assert len(excinfo.value.errors) == 1
    assert excinfo.value.errors[0].startswith("layout[5].expression:")


@pytest.mark.parametrize(
    "item",
    [
        {"order": 40, "type": "category"},
        {"order": 40, "type": "calculated"},
        {"order": 40, "type": "variable"},
        {"order": -1, "type": "spacer"},
        {"order": "40", "type": "spacer"},
        {"order": 40, "type": "spacer", "indent": -1},
        {"order": 40, "type": "spacer", "indent": 1.5},
        {"order": 40, "type": "spacer", "format": "money"},
        {"order": 40, "type": "spacer", "style": "bold"},
    ],
)
def test_invalid_layout_items(item) -> None:
    data = _report()
    data["layout"].append(item)

    assert len(validate_report_definition(data)) == 1


def test_empty_layout() -> None:
    assert validate_report_definition(_report(layout=[])) == [
        "layout: layout must contain at least one item"
    ]


def test_invalid_formatting_rules() -> None:
    errors = validate_report_definition(
        _report(formatting={"currency": {"decimals": 9, "thousands": "yes"}})
    )
    assert len(errors) == 2


def test_errors_are_collected_together() -> None:
    data = _report(statementType="equity")
    data["layout"].append({"order": 10, "type": "variable", "variable": "opex"})

    with pytest.raises(InvalidReportDefinitionError) as excinfo:
        parse_report_definition(data)

    assert len(excinfo.value.errors) == 3
    assert excinfo.value.code == "RPT_INVALID_DEFINITION"
