# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Typed exceptions raised by the statement engine.

Every exception carries:
- a class-level ``code`` (machine-readable, stable across releases),
- structured attributes describing what failed (variable name, report id,
  expression text, layout order, dependency chain),
- a short ``user_message`` suitable for UI display,
- ``technical_message()`` for logs, built from the same context.

Hierarchy
---------
    StatementEngineError
    +-- ReportDefinitionError
    |   +-- InvalidReportDefinitionError
    +-- ReportGenerationError
    |   +-- VariableResolutionError
    |   +-- ExpressionEvaluationError
    |   +-- CircularDependencyError
    +-- FilterError
    +-- ExpressionSyntaxError

Definition errors are raised before any aggregation runs. Generation errors
abort the render: a statement is never returned partially computed.
"""

import json
from collections.abc import Mapping, Sequence
from typing import Any, Optional


class StatementEngineError(Exception):
    """Base class for all statement engine errors."""

    code: str = "STATEMENT_ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        user_message: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.context: dict[str, Any] = dict(context or {})

    def technical_message(self) -> str:
        """Return a single-line description for logs."""
        parts = [f"[{self.code}] {self.message}"]
        if self.context:
            parts.append(f"Context: {json.dumps(self.context, default=str)}")
        if self.__cause__ is not None:
            parts.append(f"Cause: {self.__cause__}")
        return " | ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "userMessage": self.user_message,
            "context": dict(self.context),
        }


# ---------------------------------------------------------------------------
# Definition errors
# ---------------------------------------------------------------------------


class ReportDefinitionError(StatementEngineError):
    code = "RPT_DEFINITION"


class InvalidReportDefinitionError(ReportDefinitionError):
    """The report definition failed structural validation."""

    code = "RPT_INVALID_DEFINITION"

    def __init__(self, report_id: str, errors: Sequence[str]) -> None:
        self.report_id = report_id
        self.errors = list(errors)
        reason = "; ".join(self.errors) if self.errors else "unknown reason"
        super().__init__(
            f'Invalid report definition "{report_id}": {reason}',
            user_message=f'The report definition for "{report_id}" is invalid: '
            f"{reason}.",
            context={"reportId": report_id, "errors": self.errors},
        )


# ---------------------------------------------------------------------------
# Generation errors
# ---------------------------------------------------------------------------


class ReportGenerationError(StatementEngineError):
    code = "RPT_LAYOUT_PROCESSING"


class VariableResolutionError(ReportGenerationError):
    """A variable's filter or aggregation step failed."""

    code = "RPT_VARIABLE_RESOLUTION"

    def __init__(
        self,
        variable: str,
        reason: str,
        report_id: Optional[str] = None,
    ) -> None:
        self.variable = variable
        self.report_id = report_id
        self.reason = reason
        where = f' in report "{report_id}"' if report_id else ""
        super().__init__(
            f'Failed to resolve variable "{variable}"{where}: {reason}',
            user_message=f'Unable to calculate "{variable}". The data may be '
            "missing or the report definition may be incorrect.",
            context={"variable": variable, "reportId": report_id},
        )


class ExpressionEvaluationError(ReportGenerationError):
    """A calculated row's expression could not be evaluated."""

    code = "RPT_EXPRESSION_EVAL"

    def __init__(
        self,
        expression: str,
        reason: str,
        order: Optional[int] = None,
        report_id: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> None:
        self.expression = expression
        self.order = order
        self.report_id = report_id
        self.reason = reason
        self.kind = kind
        where = f" at order {order}" if order is not None else ""
        super().__init__(
            f"Failed to evaluate expression {expression!r}{where}: {reason}",
            user_message=f'Unable to calculate the expression "{expression}". '
            "Please check the formula.",
            context={
                "expression": expression,
                "layoutOrder": order,
                "reportId": report_id,
                "kind": kind,
            },
        )


class CircularDependencyError(ReportGenerationError):
    """Calculated rows reference each other in a loop or reference ahead."""

    code = "RPT_CIRCULAR_DEPENDENCY"

    def __init__(
        self,
        chain: Sequence[str],
        report_id: Optional[str] = None,
    ) -> None:
        self.chain = list(chain)
        self.report_id = report_id
        rendered = " -> ".join(self.chain)
        super().__init__(
            f"Circular dependency detected: {rendered}",
            user_message="Circular dependency detected between report rows. "
            "Please check the row expressions.",
            context={"dependencyChain": self.chain, "reportId": report_id},
        )


# ---------------------------------------------------------------------------
# Component errors
# ---------------------------------------------------------------------------


class FilterError(StatementEngineError, ValueError):
    """A filter specification is malformed or cannot be applied."""

    code = "FILTER_INVALID"


class ExpressionSyntaxError(StatementEngineError, ValueError):
    """An expression could not be tokenized or parsed.

    ``kind`` is one of the ``FailureKind`` values defined in
    ``expressions.py``.
    """

    code = "EXPRESSION_SYNTAX"

    def __init__(
        self,
        kind: str,
        message: str,
        expression: str = "",
        position: Optional[int] = None,
    ) -> None:
        self.kind = kind
        self.expression = expression
        self.position = position
        super().__init__(
            message,
            context={"expression": expression, "position": position, "kind": kind},
        )
