# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Statement Engine
----------------

A declarative calculation engine producing financial statements (balance
sheet, income statement, cash flow) from a table of accounting movements
and a JSON report definition.

Main capabilities:
- a small formula language for calculated rows (variables, @order
  references, + - * / and parentheses), with memoized parsing,
- declarative filters selecting fact rows by attribute,
- variable resolution into per-year or per-month amount columns,
- rolling last-twelve-months (LTM) windows spanning calendar years,
- aggregation specs compiled for two-period and LTM modes,
- a renderer producing ordered, formatted rows with variances,
  dependency checks and typed errors.

The engine separates computation (pandas), configuration (TOML) and report
definitions (JSON), so it can be embedded in scripts, services or UIs.

Version: 0.1.0

Usage:
    from statement_engine import ReportRenderer, load_report_definition

    renderer = ReportRenderer()
    statement = renderer.render_statement(
        load_report_definition("reports/income_statement.json"),
        facts,
        {"years": [2024, 2025], "periods": "all"},
    )
    statement.to_frame()
"""

from .config import EngineConfig, load_engine_config, load_report_definition
from .definitions import ReportDefinition, StatementType, parse_report_definition
from .periods import PeriodOptions
from .renderer import RenderedRow, RenderedStatement, ReportRenderer

__all__ = [
    "EngineConfig",
    "PeriodOptions",
    "RenderedRow",
    "RenderedStatement",
    "ReportDefinition",
    "ReportRenderer",
    "StatementType",
    "load_engine_config",
    "load_report_definition",
    "parse_report_definition",
]

__version__ = "0.1.0"
