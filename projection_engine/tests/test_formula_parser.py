"""Tests for the formula parser and evaluator."""

import pytest

from projection_engine.errors import FormulaEvaluationError, MissingDependencyValueError
from projection_engine.models.driver import ValueTable
from projection_engine.utils.formula_parser import (
    FormulaEvaluator,
    FormulaSyntaxError,
    Tokenizer,
    TokenType,
    evaluate_expression,
)


class TestTokenizer:
    """Tests for Tokenizer."""

    def test_numbers_with_exponent(self) -> None:
        """Test that substituted float literals tokenize as one number."""
        tokens = Tokenizer("1e+20 * 2.5").tokenize()

        assert tokens[0].type == TokenType.NUMBER
        assert tokens[0].value == 1e20
        assert tokens[1].value == "*"
        assert tokens[2].value == 2.5
        assert tokens[-1].type == TokenType.EOF

    def test_power_is_single_operator(self) -> None:
        """Test that ** is not read as two multiplications."""
        tokens = Tokenizer("2 ** 3").tokenize()
        assert [t.value for t in tokens[:3]] == [2.0, "**", 3.0]

    def test_unexpected_character(self) -> None:
        """Test that unsupported characters are rejected."""
        with pytest.raises(FormulaSyntaxError, match="unexpected character"):
            Tokenizer("2 $ 3").tokenize()


class TestEvaluateExpression:
    """Tests for evaluate_expression()."""

    def test_basic_arithmetic(self) -> None:
        """Test arithmetic with parentheses."""
        assert evaluate_expression("500 * (1 + 0.05)") == pytest.approx(525.0)

    def test_operator_precedence(self) -> None:
        """Test that * binds tighter than + and ** tighter than unary minus."""
        assert evaluate_expression("2 + 3 * 4") == 14.0
        assert evaluate_expression("-2 ** 2") == -4.0
        assert evaluate_expression("2 ** 3 ** 2") == 512.0
        assert evaluate_expression("10 - 4 - 3") == 3.0

    def test_comparisons_return_one_or_zero(self) -> None:
        """Test that comparisons evaluate to 1.0 or 0.0."""
        assert evaluate_expression("3 > 2") == 1.0
        assert evaluate_expression("3 <= 2") == 0.0
        assert evaluate_expression("(2 == 2) * 7") == 7.0

    def test_conditional(self) -> None:
        """Test the ternary conditional."""
        assert evaluate_expression("1 > 2 ? 10 : 20") == 20.0
        assert evaluate_expression("2 > 1 ? 10 : 20") == 10.0

    def test_conditional_untaken_branch_not_evaluated(self) -> None:
        """Test that division by zero in the untaken branch is harmless."""
        assert evaluate_expression("0 != 0 ? 1 / 0 : 0") == 0.0

    def test_division_by_zero(self) -> None:
        """Test that division by zero fails naming the original formula."""
        with pytest.raises(FormulaEvaluationError, match="A / B") as exc_info:
            evaluate_expression("100.0 / 0.0", formula="A / B")

        assert exc_info.value.formula == "A / B"
        assert "division by zero" in exc_info.value.reason

    def test_non_finite_result(self) -> None:
        """Test that results overflowing to infinity are rejected."""
        with pytest.raises(FormulaEvaluationError, match="not a finite number"):
            evaluate_expression("1e308 * 10")

    def test_overflow(self) -> None:
        """Test that power overflow is rejected."""
        with pytest.raises(FormulaEvaluationError, match="overflow"):
            evaluate_expression("10 ** 400")

    def test_complex_result(self) -> None:
        """Test that a fractional power of a negative number is rejected."""
        with pytest.raises(FormulaEvaluationError, match="not a real number"):
            evaluate_expression("(-8) ** 0.5")

    @pytest.mark.parametrize("expression", ["2 +", "(2 + 3", "2 3", "", "1 ? 2"])
    def test_malformed(self, expression: str) -> None:
        """Test that malformed expressions are rejected."""
        with pytest.raises(FormulaEvaluationError) as exc_info:
            evaluate_expression(expression)

        assert isinstance(exc_info.value.__cause__, FormulaSyntaxError)

    def test_unresolved_name(self) -> None:
        """Test that a leftover name is reported as an unknown reference."""
        with pytest.raises(FormulaEvaluationError, match="unknown reference 'Students'"):
            evaluate_expression("Students * 2")


class TestFormulaEvaluator:
    """Tests for FormulaEvaluator."""

    @pytest.fixture
    def table(self) -> ValueTable:
        """Create a table with a few 2024/2025 values."""
        table = ValueTable()
        table.set("students", 2025, 500)
        table.set("tuition", 2025, 1000)
        table.set("revenue", 2024, 100)
        table.set("revenue", 2025, 100)
        table.set("growth", 2025, 0.1)
        table.set("loss", 2025, -5)
        return table

    @pytest.fixture
    def evaluator(self) -> FormulaEvaluator:
        return FormulaEvaluator()

    def test_dependency_substitution(
        self, evaluator: FormulaEvaluator, table: ValueTable
    ) -> None:
        """Test Revenue = Students * Tuition."""
        result = evaluator.evaluate(
            "Students * Tuition",
            [("students", "Students"), ("tuition", "Tuition")],
            2025,
            table,
        )
        assert result == 500000.0

    def test_year_tokens(self, evaluator: FormulaEvaluator, table: ValueTable) -> None:
        """Test that PREV_YEAR and CURRENT_YEAR become numeric years."""
        assert evaluator.evaluate("CURRENT_YEAR - 2000", [], 2025, table) == 25.0
        assert evaluator.evaluate("CURRENT_YEAR - PREV_YEAR", [], 2025, table) == 1.0

    def test_longest_name_first(
        self, evaluator: FormulaEvaluator, table: ValueTable
    ) -> None:
        """Test that a shorter name does not replace part of a longer one."""
        result = evaluator.evaluate(
            "Revenue * (1 + Revenue Growth)",
            [("revenue", "Revenue"), ("growth", "Revenue Growth")],
            2025,
            table,
        )
        assert result == pytest.approx(110.0)

    def test_negative_values_are_parenthesised(
        self, evaluator: FormulaEvaluator, table: ValueTable
    ) -> None:
        """Test that negative values keep their sign under ** and -."""
        references = [("loss", "Loss")]

        assert evaluator.substitute("10 - Loss", references, 2025, table) == "10 - (-5.0)"
        assert evaluator.evaluate("10 - Loss", references, 2025, table) == 15.0
        assert evaluator.evaluate("Loss ** 2", references, 2025, table) == 25.0

    def test_lagged_dependency(
        self, evaluator: FormulaEvaluator, table: ValueTable
    ) -> None:
        """Test that Name[PREV_YEAR] reads the prior year of a dependency."""
        table.set("revenue", 2024, 80)
        result = evaluator.evaluate(
            "Revenue - Revenue[PREV_YEAR]", [("revenue", "Revenue")], 2025, table
        )
        assert result == 20.0

    def test_own_prior_year(self, evaluator: FormulaEvaluator, table: ValueTable) -> None:
        """Test that a driver can grow from its own prior-year value."""
        result = evaluator.evaluate(
            "Revenue[PREV_YEAR] * 1.1",
            [],
            2025,
            table,
            own=("revenue", "Revenue"),
        )
        assert result == pytest.approx(110.0)

    def test_own_current_year_rejected(
        self, evaluator: FormulaEvaluator, table: ValueTable
    ) -> None:
        """Test that a driver cannot read its own value for the target year."""
        with pytest.raises(FormulaEvaluationError, match="cannot read its own"):
            evaluator.evaluate(
                "Revenue[CURRENT_YEAR] * 1.1",
                [],
                2025,
                table,
                own=("revenue", "Revenue"),
            )

    def test_own_unindexed_rejected(
        self, evaluator: FormulaEvaluator, table: ValueTable
    ) -> None:
        """Test that an unindexed self-reference is not resolved."""
        with pytest.raises(FormulaEvaluationError, match="unknown reference"):
            evaluator.evaluate(
                "Revenue * 1.1", [], 2025, table, own=("revenue", "Revenue")
            )

    def test_missing_value(self, evaluator: FormulaEvaluator, table: ValueTable) -> None:
        """Test that an empty cell is reported, not treated as zero."""
        with pytest.raises(MissingDependencyValueError) as exc_info:
            evaluator.evaluate("Students * 2", [("students", "Students")], 2026, table)

        assert exc_info.value.driver_id == "students"
        assert exc_info.value.year == 2026

    def test_deterministic(self, evaluator: FormulaEvaluator, table: ValueTable) -> None:
        """Test that identical inputs give identical results."""
        references = [("students", "Students"), ("tuition", "Tuition")]
        results = {
            evaluator.evaluate("Students / Tuition * 3", references, 2025, table)
            for _ in range(5)
        }
        assert len(results) == 1
