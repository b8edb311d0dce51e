"""Tests for the validation rule evaluator."""

from decimal import Decimal

import pytest

from conferkit.engine.errors import ConfigurationError, EvaluationError
from conferkit.engine.rules import (
    Verdict,
    evaluate,
    evaluate_rows,
    extract_single_number,
    judge,
    to_number,
)
from conferkit.templates.types import (
    MustReturnNoRows,
    MustReturnRows,
    NumberEqualsExpected,
    NumberMatchesExpectedWithTolerance,
    SingleNumberRequired,
)


# =============================================================================
# Number extraction
# =============================================================================


class TestExtractSingleNumber:
    def test_single_cell(self):
        assert extract_single_number([{"total": 42}]) == 42.0

    def test_decimal_and_numeric_string(self):
        assert extract_single_number([{"total": Decimal("10.5")}]) == 10.5
        assert extract_single_number([{"total": "7"}]) == 7.0

    @pytest.mark.parametrize(
        "rows",
        [
            [],
            [{"a": 1}, {"a": 2}],
            [{"a": 1, "b": 2}],
            [{"a": "abc"}],
            [{"a": None}],
            [{"a": True}],
        ],
    )
    def test_wrong_shapes_raise(self, rows):
        with pytest.raises(EvaluationError):
            extract_single_number(rows)

    def test_non_finite_is_rejected(self):
        with pytest.raises(EvaluationError):
            to_number(float("nan"))


# =============================================================================
# Verdicts
# =============================================================================


class TestSimpleRules:
    def test_single_number_required(self):
        assert evaluate(SingleNumberRequired(), [{"n": 3}]) == Verdict.AUTO_OK
        assert evaluate(SingleNumberRequired(), []) == Verdict.FAIL

    def test_must_return_rows(self):
        assert evaluate(MustReturnRows(), [{"id": 1}]) == Verdict.AUTO_OK
        assert evaluate(MustReturnRows(), []) == Verdict.FAIL

    def test_must_return_no_rows(self):
        assert evaluate(MustReturnNoRows(), []) == Verdict.AUTO_OK
        assert evaluate(MustReturnNoRows(), [{"id": 1}]) == Verdict.FAIL


class TestExpectedRules:
    def test_equal_values_pass(self):
        assert evaluate(NumberEqualsExpected(), [{"total": 1000}], "1000") == Verdict.AUTO_OK

    def test_mismatch_is_a_business_warning(self):
        outcome = judge(NumberEqualsExpected(), [{"total": 950}], 1000)
        assert outcome.verdict == Verdict.WARN
        assert outcome.value == 950.0
        assert "differs" in outcome.message

    def test_exact_match_has_zero_tolerance(self):
        assert evaluate(NumberEqualsExpected(), [{"v": 100.0000001}], 100) == Verdict.WARN

    def test_zero_tolerance_behaves_like_equality(self):
        rule = NumberMatchesExpectedWithTolerance(tolerance=0)
        assert evaluate(rule, [{"v": 100.0000001}], 100) == Verdict.WARN
        assert evaluate(rule, [{"v": 100}], 100) == Verdict.AUTO_OK

    def test_tolerance_is_relative_to_expected(self):
        rule = NumberMatchesExpectedWithTolerance(tolerance=0.05)
        assert evaluate(rule, [{"v": 960}], 1000) == Verdict.AUTO_OK
        assert evaluate(rule, [{"v": 940}], 1000) == Verdict.WARN

    def test_tolerance_floor_for_small_expected_values(self):
        rule = NumberMatchesExpectedWithTolerance(tolerance=0.1)
        assert evaluate(rule, [{"v": 0.05}], 0) == Verdict.AUTO_OK

    def test_tolerance_is_monotonic(self):
        rows = [{"v": 1030}]
        verdicts = [
            evaluate(NumberMatchesExpectedWithTolerance(tolerance=t), rows, 1000)
            for t in (0.0, 0.01, 0.02, 0.03, 0.05, 0.5)
        ]
        first_ok = verdicts.index(Verdict.AUTO_OK)
        assert all(v == Verdict.AUTO_OK for v in verdicts[first_ok:])

    def test_wrong_shape_fails_even_with_expected(self):
        assert evaluate(NumberEqualsExpected(), [], 1000) == Verdict.FAIL

    def test_missing_expected_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            evaluate(NumberEqualsExpected(), [{"v": 1}], None)

    def test_non_numeric_expected_fails(self):
        assert evaluate(NumberEqualsExpected(), [{"v": 1}], "mil") == Verdict.FAIL


class TestEvaluateRows:
    def test_never_raises_on_missing_expected(self):
        outcome = evaluate_rows(NumberEqualsExpected(), [{"v": 1}], None)
        assert outcome.verdict == Verdict.FAIL
        assert "no expected value" in outcome.message

    def test_fail_outcome_carries_message(self):
        outcome = evaluate_rows(MustReturnNoRows(), [{"id": 1}, {"id": 2}])
        assert outcome.verdict == Verdict.FAIL
        assert "2 row(s)" in outcome.message

    def test_to_dict(self):
        outcome = evaluate_rows(SingleNumberRequired(), [{"n": 2}])
        assert outcome.to_dict() == {"verdict": "auto_ok", "value": 2.0, "message": "Result: 2"}
