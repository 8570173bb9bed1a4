# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for the statement engine.

This module is responsible for:
- loading the engine configuration from a TOML file,
- loading report definitions stored as JSON files,
- exposing typed dataclasses used by the rest of the engine.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .definitions import FORMAT_TYPES, ReportDefinition, parse_report_definition
from .ltm import DEFAULT_LTM_WINDOW

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """
    Engine-wide configuration.

    - ltm_window: number of months covered by an LTM statement,
    - cache_expressions: whether parsed formulas are memoized,
    - default_format: format kind used when a layout row has none,
    - formatting: default options per format kind (decimals, thousands,
      symbol), overridden by report-level and row-level options.
    """

    ltm_window: int = DEFAULT_LTM_WINDOW
    cache_expressions: bool = True
    default_format: str = "decimal"
    formatting: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Config section [{name}] must be a table.")
    return section


def load_engine_config(config_path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """
    Load the engine configuration from a TOML file.

    Expected sections (all optional)
    --------------------------------
    [ltm]
        window = 12

    [expressions]
        cache = true

    [formatting]
        default_format = "decimal"

    [formatting.<kind>]
        decimals / thousands / symbol for currency, percent, integer, decimal.

    Parameters
    ----------
    config_path : str or Path, optional
        Path to the TOML file. When omitted, built-in defaults are returned.

    Returns
    -------
    EngineConfig
        Parsed and validated configuration.
    """
    if config_path is None:
        return EngineConfig()

    config_file = Path(config_path).resolve()
    raw = _load_toml(config_file)

    ltm_section = _section(raw, "ltm")
    try:
        ltm_window = int(ltm_section.get("window", DEFAULT_LTM_WINDOW))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'ltm.window' in the configuration. "
            "Expected an integer."
        ) from exc
    if ltm_window <= 0:
        raise ValueError("'ltm.window' must be a positive number of months.")

    expressions_section = _section(raw, "expressions")
    cache_expressions = expressions_section.get("cache", True)
    if not isinstance(cache_expressions, bool):
        raise ValueError("'expressions.cache' must be a boolean.")

    formatting_section = _section(raw, "formatting")
    default_format = str(formatting_section.get("default_format", "decimal"))
    if default_format not in FORMAT_TYPES:
        raise ValueError(
            f"Invalid 'formatting.default_format': {default_format!r}. "
            f"Expected one of: {', '.join(FORMAT_TYPES)}"
        )

    formatting: dict[str, dict[str, Any]] = {}
    for kind in FORMAT_TYPES:
        rule = formatting_section.get(kind)
        if rule is None:
            continue
        if not isinstance(rule, Mapping):
            raise ValueError(f"Config section [formatting.{kind}] must be a table.")
        formatting[kind] = dict(rule)

    logger.debug("Loaded engine configuration from %s", config_file)

    return EngineConfig(
        ltm_window=ltm_window,
        cache_expressions=cache_expressions,
        default_format=default_format,
        formatting=formatting,
    )


def load_report_definition(path: Union[str, Path]) -> ReportDefinition:
    """
    Load and validate a report definition stored as JSON.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the file is not valid JSON.
        InvalidReportDefinitionError: if the definition is structurally invalid.
    """
    report_file = Path(path)
    if not report_file.is_file():
        raise FileNotFoundError(f"Report definition not found: {report_file}")

    try:
        data = json.loads(report_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to parse report definition: {report_file}") from exc

    return parse_report_definition(data)


def load_report_definitions(directory: Union[str, Path]) -> dict[str, ReportDefinition]:
    """
    Load every ``*.json`` report definition of a directory.

    Returns:
        Mapping of report id -> ReportDefinition, in file name order.

    Raises:
        ValueError: if two files define the same report id.
    """
    base = Path(directory)
    if not base.is_dir():
        raise FileNotFoundError(f"Report directory not found: {base}")

    reports: dict[str, ReportDefinition] = {}
    for report_file in sorted(base.glob("*.json")):
        definition = load_report_definition(report_file)
        if definition.report_id in reports:
            raise ValueError(
                f"Duplicate report id {definition.report_id!r} in {report_file}"
            )
        reports[definition.report_id] = definition

    logger.debug("Loaded %d report definition(s) from %s", len(reports), base)
    return reports
