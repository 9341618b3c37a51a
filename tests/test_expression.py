"""A test suite for compiling custom SFH formulas."""

import warnings

import numpy as np
import pytest

from sfhgrid import exceptions
from sfhgrid.exceptions import CompileError
from sfhgrid.expression import compile_formula


class TestCompileFormula:
    """Tests for compiling and evaluating valid formulas."""

    def test_step(self):
        """Test the step builtin is 1 from its argument's zero onwards."""
        formula = compile_formula("step(t-5)")
        t = np.array([0.0, 4.0, 5.0, 6.0, 10.0])

        assert np.array_equal(formula.evaluate([t]), [0, 0, 1, 1, 1])

    def test_min_max(self):
        """Test the min and max builtins."""
        formula = compile_formula("min(t, 2) + max(t, 3)")
        t = np.array([1.0, 2.5, 4.0])

        assert np.allclose(formula.evaluate([t]), [1 + 3, 2 + 3, 2 + 4])

    def test_parameter_slots(self):
        """Test parameters are bound to slots in the given order."""
        formula = compile_formula("a * t + b", ["a", "b"])

        assert formula.variables == ("t", "a", "b")
        assert formula.nparams == 2
        assert formula.nslots == 3
        assert formula.evaluate([2.0, 3.0, 1.0]) == pytest.approx(7.0)
        assert formula(2.0, 1.0, 3.0) == pytest.approx(5.0)

    def test_exponential(self):
        """Test a delayed exponentially declining SFH."""
        formula = compile_formula(
            "step(t - t0) * exp(-(t - t0) / tau)", ["t0", "tau"]
        )
        t = np.array([0.0, 1e8, 1.1e9])
        expected = np.array([0.0, 1.0, np.exp(-1.0)])

        assert np.allclose(formula.evaluate([t, 1e8, 1e9]), expected)

    def test_caret_power(self):
        """Test ^ and ** both denote powers."""
        assert compile_formula("t^2").evaluate([3.0]) == pytest.approx(9.0)
        assert compile_formula("t**2").evaluate([3.0]) == pytest.approx(9.0)
        assert compile_formula("2^3^2").evaluate([0.0]) == pytest.approx(
            512.0
        )

    def test_standard_functions(self):
        """Test the standard functions and constants."""
        cases = {
            "log(100)": 2.0,
            "log10(1000)": 3.0,
            "ln(e)": 1.0,
            "sqrt(16)": 4.0,
            "pow(2, 10)": 1024.0,
            "abs(-3)": 3.0,
            "cos(pi)": -1.0,
            "floor(2.7) + ceil(2.2)": 5.0,
            "7 % 3": 1.0,
        }
        for text, expected in cases.items():
            value = compile_formula(text).evaluate([0.0])
            assert value == pytest.approx(expected), (
                f"{text} gave {value}, expected {expected}"
            )

    def test_constant_formula(self):
        """Test a formula that does not depend on t."""
        formula = compile_formula("2.5")
        assert formula.evaluate([np.arange(3.0)]) == pytest.approx(2.5)

    def test_non_finite_values(self):
        """Test non-finite values propagate without warnings."""
        formula = compile_formula("1 / t")

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            values = formula.evaluate([np.array([0.0, 2.0])])

        assert np.isinf(values[0])
        assert values[1] == pytest.approx(0.5)

    def test_free_is_idempotent(self):
        """Test a formula can be freed twice and not used afterwards."""
        formula = compile_formula("t")
        assert formula.is_compiled

        formula.free()
        formula.free()

        assert not formula.is_compiled
        with pytest.raises(exceptions.InconsistentArguments):
            formula.evaluate([1.0])

    def test_leading_whitespace(self):
        """Test whitespace before the formula is ignored."""
        formula = compile_formula("  \tstep(t-5)")
        t = np.array([0.0, 5.0, 10.0])

        assert np.array_equal(formula.evaluate([t]), [0, 1, 1])

    def test_modulo_sign_of_dividend(self):
        """Test the remainder takes the sign of the dividend."""
        formula = compile_formula("(t - 5) % 3")
        t = np.array([0.0, 1.0, 9.0])

        assert np.allclose(formula.evaluate([t]), [-2.0, -1.0, 1.0])
        assert compile_formula("t % -3").evaluate([5.0]) == pytest.approx(
            2.0
        )

    def test_step_of_nan(self):
        """Test step is 0 for a nan argument."""
        formula = compile_formula("step(t)")
        t = np.array([np.nan, -1.0, 0.0])

        assert np.array_equal(formula.evaluate([t]), [0.0, 0.0, 1.0])

    def test_wrong_number_of_slots(self):
        """Test evaluating with the wrong number of slots."""
        formula = compile_formula("a * t", ["a"])

        with pytest.raises(exceptions.InconsistentArguments):
            formula.evaluate([1.0])


class TestCompileErrors:
    """Tests for the errors reported on invalid formulas."""

    def test_unknown_variable(self):
        """Test an unknown variable is located."""
        text = "t + foo"
        with pytest.raises(CompileError) as excinfo:
            compile_formula(text)

        assert excinfo.value.position == 4
        assert text[excinfo.value.position :].startswith("foo")

    def test_unknown_function(self):
        """Test an unknown function is located."""
        text = "2 * gauss(t)"
        with pytest.raises(CompileError) as excinfo:
            compile_formula(text)

        assert excinfo.value.position == 4

    def test_wrong_arity(self):
        """Test calling a builtin with the wrong number of arguments."""
        with pytest.raises(CompileError) as excinfo:
            compile_formula("1 + step(t, 2)")

        assert excinfo.value.position == 4
        assert "argument" in str(excinfo.value)

    def test_syntax_error(self):
        """Test a syntax error is located at or before the bad token."""
        text = "t * (2 + "
        with pytest.raises(CompileError) as excinfo:
            compile_formula(text)

        assert 0 <= excinfo.value.position <= len(text)

    def test_offset_after_power(self):
        """Test offsets refer to the original text when ^ is used."""
        text = "t^2 + bad"
        with pytest.raises(CompileError) as excinfo:
            compile_formula(text)

        assert excinfo.value.position == 6

    def test_offset_after_leading_whitespace(self):
        """Test offsets count the leading whitespace of the text."""
        text = "   t + foo"
        with pytest.raises(CompileError) as excinfo:
            compile_formula(text)

        assert excinfo.value.position == 7

    def test_caret(self):
        """Test the caret is aligned under the failing character."""
        text = "t + foo"
        with pytest.raises(CompileError) as excinfo:
            compile_formula(text)

        header, marker = excinfo.value.caret.splitlines()
        assert header == CompileError.header + text
        assert marker.index("^") == len(CompileError.header) + 4

    @pytest.mark.parametrize("name", ["t", "step", "exp", "pi", "1a", "_a"])
    def test_reserved_parameter_names(self, name):
        """Test invalid or reserved parameter names are rejected."""
        with pytest.raises(exceptions.InconsistentArguments):
            compile_formula("t", [name])

    def test_duplicate_parameter_names(self):
        """Test a parameter cannot be defined twice."""
        with pytest.raises(exceptions.InconsistentArguments):
            compile_formula("a * t", ["a", "a"])
