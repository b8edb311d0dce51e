"""Validation rule evaluator.

Judges a query result against an item's validation rule:

- single_number_required: one row, one numeric column
- must_return_rows: at least one row
- must_return_no_rows: no rows at all
- number_equals_expected: the single number equals the expected value
- number_matches_expected_with_tolerance: the single number is within
  ``tolerance * max(|expected|, 1)`` of the expected value

A wrongly shaped result (no rows, several rows, non-numeric value) is a
``fail``: the query is broken. A well-formed number that disagrees with the
expected value is a ``warn``: a business divergence the client must look at.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, assert_never

from conferkit.engine.errors import ConfigurationError, EvaluationError
from conferkit.engine.substitution import is_numeric_literal
from conferkit.templates.types import (
    MustReturnNoRows,
    MustReturnRows,
    NumberEqualsExpected,
    NumberMatchesExpectedWithTolerance,
    SingleNumberRequired,
    ValidationRule,
)

Rows = list[dict[str, Any]]


class Verdict(str, Enum):
    AUTO_OK = "auto_ok"
    WARN = "warn"
    FAIL = "fail"


@dataclass
class RuleOutcome:
    """Result of judging one query result.

    Attributes:
        verdict: auto_ok, warn or fail
        value: The extracted number, for rules that extract one
        message: Human-readable explanation
    """

    verdict: Verdict
    value: float | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"verdict": self.verdict.value, "value": self.value, "message": self.message}


def to_number(value: Any) -> float:
    """Convert a scalar to float, rejecting booleans, blanks and non-finite values.

    Raises:
        EvaluationError: If the value is not a number
    """
    if isinstance(value, bool) or value is None:
        raise EvaluationError(f"Expected a number, got {value!r}")
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str) and is_numeric_literal(value):
        number = float(value.strip())
    else:
        raise EvaluationError(f"Expected a number, got {value!r}")
    if not math.isfinite(number):
        raise EvaluationError(f"Expected a finite number, got {value!r}")
    return number


def extract_single_number(rows: Rows) -> float:
    """Extract the only value of a one-row, one-column result.

    Raises:
        EvaluationError: On zero rows, several rows, several columns or a
            non-numeric value
    """
    if len(rows) != 1:
        raise EvaluationError(f"Expected exactly one row, got {len(rows)}")
    row = rows[0]
    if len(row) != 1:
        raise EvaluationError(f"Expected exactly one column, got {len(row)}")
    (value,) = row.values()
    return to_number(value)


def _format(number: float) -> str:
    return f"{number:g}" if abs(number) < 1e15 else repr(number)


def _require_expected(rule: ValidationRule, expected: Any) -> float:
    if expected is None or expected == "":
        raise ConfigurationError(f"Rule '{rule.type}' has no expected value bound")
    try:
        return to_number(expected)
    except EvaluationError as exc:
        raise EvaluationError(f"Expected value is not a number: {expected!r}") from exc


def judge(rule: ValidationRule, rows: Rows, expected: Any = None) -> RuleOutcome:
    """Judge a result, raising on broken results and missing bindings.

    Raises:
        ConfigurationError: If the rule needs an expected value and has none
        EvaluationError: If the result (or expected value) is not usable
    """
    if isinstance(rule, SingleNumberRequired):
        value = extract_single_number(rows)
        return RuleOutcome(Verdict.AUTO_OK, value, f"Result: {_format(value)}")

    if isinstance(rule, MustReturnRows):
        if len(rows) >= 1:
            return RuleOutcome(Verdict.AUTO_OK, message=f"{len(rows)} row(s) returned")
        raise EvaluationError("Query returned no rows")

    if isinstance(rule, MustReturnNoRows):
        if len(rows) == 0:
            return RuleOutcome(Verdict.AUTO_OK, message="No rows returned")
        raise EvaluationError(f"Query returned {len(rows)} row(s), expected none")

    if isinstance(rule, NumberEqualsExpected):
        target = _require_expected(rule, expected)
        value = extract_single_number(rows)
        if value == target:
            return RuleOutcome(
                Verdict.AUTO_OK, value, f"Result {_format(value)} equals expected {_format(target)}"
            )
        return RuleOutcome(
            Verdict.WARN, value, f"Result {_format(value)} differs from expected {_format(target)}"
        )

    if isinstance(rule, NumberMatchesExpectedWithTolerance):
        target = _require_expected(rule, expected)
        value = extract_single_number(rows)
        allowed = rule.tolerance * max(abs(target), 1.0)
        deviation = abs(value - target)
        if deviation <= allowed:
            return RuleOutcome(
                Verdict.AUTO_OK,
                value,
                f"Result {_format(value)} within {_format(allowed)} of expected {_format(target)}",
            )
        return RuleOutcome(
            Verdict.WARN,
            value,
            f"Result {_format(value)} deviates {_format(deviation)} from expected "
            f"{_format(target)} (allowed {_format(allowed)})",
        )

    assert_never(rule)


def evaluate(rule: ValidationRule, rows: Rows, expected: Any = None) -> Verdict:
    """Compute the verdict for a query result.

    Broken results yield ``Verdict.FAIL``. A missing expected value for a
    rule that needs one is a configuration problem and is raised.

    Raises:
        ConfigurationError: If the rule requires an expected value and none is bound
    """
    try:
        return judge(rule, rows, expected).verdict
    except EvaluationError:
        return Verdict.FAIL


def evaluate_rows(rule: ValidationRule, rows: Rows, expected: Any = None) -> RuleOutcome:
    """Like :func:`evaluate` but never raises; problems become a ``fail`` outcome."""
    try:
        return judge(rule, rows, expected)
    except (EvaluationError, ConfigurationError) as exc:
        return RuleOutcome(Verdict.FAIL, message=exc.message)
