"""A module for compiling user defined star formation history formulas.

A custom SFH is given as a plain arithmetic formula of the time since the
onset of star formation, ``t``, and any number of named free parameters,
for instance::

    formula = compile_formula("step(t - t0) * exp(-(t - t0) / tau)",
                              ["t0", "tau"])
    sfr = formula.evaluate([times, 1e8, 1e9])

The formula text is parsed with Python's own parser, checked against a
fixed table of variables, functions and constants, converted into a sympy
expression and finally compiled into a vectorised numpy function with
sympy.lambdify. Any failure is reported as a CompileError carrying the
character offset of the problem in the original text.

Supported syntax:
    - Operators: + - * / % and ^ (or **) for powers, with parentheses. The
      remainder takes the sign of the dividend.
    - Variables: t and the parameter names, in that order.
    - Functions: step(x) (1 if x >= 0 else 0), min(a, b), max(a, b), plus
      abs, exp, ln, log (base 10), log10, sqrt, pow, sin, cos, tan, asin,
      acos, atan, atan2, sinh, cosh, tanh, ceil and floor.
    - Constants: pi and e.
"""

import ast
import keyword
import math

import numpy as np
import sympy
from sympy.printing.numpy import NumPyPrinter

from sfhgrid import exceptions

# The name of the time variable (always the first slot)
TIME_VARIABLE = "t"


def _step(x):
    """Return 1 where x >= 0 and 0 elsewhere (including nan)."""
    return np.where(np.asarray(x) >= 0, 1.0, 0.0)


# The builtins registered on top of the standard functions
BUILTIN_FUNCTIONS = {
    "step": (1, _step),
    "min": (2, np.minimum),
    "max": (2, np.maximum),
}

STANDARD_FUNCTIONS = {
    "abs": (1, np.abs),
    "exp": (1, np.exp),
    "ln": (1, np.log),
    "log": (1, np.log10),
    "log10": (1, np.log10),
    "sqrt": (1, np.sqrt),
    "pow": (2, np.power),
    "sin": (1, np.sin),
    "cos": (1, np.cos),
    "tan": (1, np.tan),
    "asin": (1, np.arcsin),
    "acos": (1, np.arccos),
    "atan": (1, np.arctan),
    "atan2": (2, np.arctan2),
    "sinh": (1, np.sinh),
    "cosh": (1, np.cosh),
    "tanh": (1, np.tanh),
    "ceil": (1, np.ceil),
    "floor": (1, np.floor),
}

FUNCTIONS = {**STANDARD_FUNCTIONS, **BUILTIN_FUNCTIONS}

CONSTANTS = {"pi": math.pi, "e": math.e}

# The remainder takes the sign of the dividend, as C fmod
MODULO_FUNCTION = "fmod"

_BINARY_OPERATORS = (ast.Add, ast.Sub, ast.Mult, ast.Div, ast.Mod, ast.Pow)
_UNARY_OPERATORS = (ast.UAdd, ast.USub)


def _internal_name(name):
    """Return the sympy function name used for a formula function.

    The leading underscore keeps sympy's printers from recognising the name
    as one of their own functions.
    """
    return f"_{name}"


class _FormulaPrinter(NumPyPrinter):
    """A numpy printer writing every number as a float64 scalar.

    Numbers printed as numpy scalars keep constant sub-expressions (e.g.
    ``1/0``) in numpy arithmetic, so they produce inf or nan rather than
    raising.
    """

    def _print_Float(self, expr):
        return f"float64({float(expr)!r})"

    def _print_Integer(self, expr):
        return f"float64({float(expr)!r})"


class Formula:
    """A compiled star formation history formula.

    The formula is evaluated from a slot vector ``[t, p1, ..., pK]`` where
    slot 0 is the time and the remaining slots follow the order of the
    parameter names given at compile time. Evaluation is vectorised: the
    time slot can be an array, in which case an array is returned.

    Attributes:
        text (str):
            The original formula text.
        parameter_names (tuple of str):
            The ordered names of the free parameters.
        expression (sympy.Expr):
            The symbolic expression the formula compiled to.
    """

    def __init__(self, text, parameter_names, expression, func):
        """Initialise the Formula.

        Args:
            text (str):
                The original formula text.
            parameter_names (tuple of str):
                The ordered names of the free parameters.
            expression (sympy.Expr):
                The symbolic expression.
            func (callable):
                The lambdified function taking ``nslots`` arguments.
        """
        self.text = text
        self.parameter_names = tuple(parameter_names)
        self.expression = expression
        self._func = func

    @property
    def variables(self):
        """Return the names of the variable slots in order."""
        return (TIME_VARIABLE,) + self.parameter_names

    @property
    def nparams(self):
        """Return the number of free parameters."""
        return len(self.parameter_names)

    @property
    def nslots(self):
        """Return the number of variable slots (time plus parameters)."""
        return self.nparams + 1

    @property
    def is_compiled(self):
        """Return whether the compiled function is still available."""
        return self._func is not None

    def evaluate(self, slot_values):
        """Evaluate the formula for the passed slot vector.

        Args:
            slot_values (sequence):
                The values of ``[t, p1, ..., pK]``. Any slot can be an array
                as long as the arrays broadcast together.

        Returns:
            float/np.ndarray of float:
                The formula value(s). Non-finite values are returned as is.
        """
        if self._func is None:
            raise exceptions.InconsistentArguments(
                f"The formula '{self.text}' has been freed."
            )
        if len(slot_values) != self.nslots:
            raise exceptions.InconsistentArguments(
                f"The formula '{self.text}' expects {self.nslots} values "
                f"for {self.variables} (got {len(slot_values)})."
            )

        args = [np.asarray(value, dtype=np.float64) for value in slot_values]

        with np.errstate(all="ignore"):
            return self._func(*args)

    def __call__(self, t, *parameter_values):
        """Evaluate the formula at time t for the given parameter values."""
        return self.evaluate([t, *parameter_values])

    def free(self):
        """Release the compiled function.

        Calling this more than once is harmless.
        """
        self._func = None

    def __repr__(self):
        """Return a string representation of the Formula."""
        return (
            f"Formula('{self.text}', parameters={list(self.parameter_names)})"
        )


def _check_parameter_names(parameter_names):
    """Ensure the parameter names can be used as formula variables.

    Args:
        parameter_names (list of str):
            The parameter names.

    Raises:
        InconsistentArguments
            If a name is not a valid identifier, is reserved or is repeated.
    """
    seen = set()
    for name in parameter_names:
        if not isinstance(name, str) or not name.isidentifier():
            raise exceptions.InconsistentArguments(
                f"Invalid SFH parameter name '{name}'."
            )
        if keyword.iskeyword(name) or name.startswith("_"):
            raise exceptions.InconsistentArguments(
                f"Invalid SFH parameter name '{name}'."
            )
        if name == TIME_VARIABLE or name in FUNCTIONS or name in CONSTANTS:
            raise exceptions.InconsistentArguments(
                f"SFH parameter name '{name}' is reserved."
            )
        if name in seen:
            raise exceptions.InconsistentArguments(
                f"SFH parameter '{name}' is defined more than once."
            )
        seen.add(name)


def _translate(text):
    """Translate formula text into Python expression syntax.

    Leading whitespace is dropped, other whitespace is normalised to spaces
    and ``^`` becomes ``**``.

    Args:
        text (str):
            The formula text.

    Returns:
        str:
            The translated text.
        list of int:
            For each character of the translated text, the offset of the
            character it came from in the original text.
    """
    translated = []
    offsets = []
    for i, char in enumerate(text):
        if char.isspace() and not translated:
            # Python would read it as indentation
            continue
        if char == "^":
            translated.append("**")
            offsets.extend((i, i))
        elif char.isspace():
            translated.append(" ")
            offsets.append(i)
        else:
            translated.append(char)
            offsets.append(i)

    return "".join(translated), offsets


class _SympyBuilder:
    """Convert a validated Python AST into a sympy expression."""

    def __init__(self, text, translated, offsets, symbols):
        self.text = text
        self.translated = translated
        self.offsets = offsets
        self.symbols = symbols
        self.functions = {
            name: sympy.Function(_internal_name(name)) for name in FUNCTIONS
        }
        self.modulo = sympy.Function(_internal_name(MODULO_FUNCTION))

    def error(self, node, reason):
        """Return a CompileError positioned on the passed node."""
        # col_offset counts UTF-8 bytes
        col = len(
            self.translated.encode("utf-8")[: node.col_offset].decode(
                "utf-8", errors="ignore"
            )
        )
        if col < len(self.offsets):
            position = self.offsets[col]
        else:
            position = len(self.text)
        return exceptions.CompileError(self.text, position, reason)

    def convert(self, node):
        """Convert an AST node (recursively) into a sympy expression."""
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(
                node.value, (int, float)
            ):
                raise self.error(node, f"unsupported value {node.value!r}")
            return sympy.Float(float(node.value), 17)

        if isinstance(node, ast.Name):
            if node.id in self.symbols:
                return self.symbols[node.id]
            if node.id in CONSTANTS:
                return sympy.Float(CONSTANTS[node.id], 17)
            if node.id in FUNCTIONS:
                raise self.error(node, f"function '{node.id}' is not called")
            raise self.error(node, f"unknown variable '{node.id}'")

        if isinstance(node, ast.UnaryOp) and isinstance(
            node.op, _UNARY_OPERATORS
        ):
            operand = self.convert(node.operand)
            if isinstance(node.op, ast.USub):
                return sympy.Mul(sympy.Integer(-1), operand, evaluate=False)
            return operand

        if isinstance(node, ast.BinOp) and isinstance(
            node.op, _BINARY_OPERATORS
        ):
            left = self.convert(node.left)
            right = self.convert(node.right)
            if isinstance(node.op, ast.Add):
                return sympy.Add(left, right, evaluate=False)
            if isinstance(node.op, ast.Sub):
                return sympy.Add(
                    left,
                    sympy.Mul(sympy.Integer(-1), right, evaluate=False),
                    evaluate=False,
                )
            if isinstance(node.op, ast.Mult):
                return sympy.Mul(left, right, evaluate=False)
            if isinstance(node.op, ast.Div):
                return sympy.Mul(
                    left,
                    sympy.Pow(right, sympy.Integer(-1), evaluate=False),
                    evaluate=False,
                )
            if isinstance(node.op, ast.Mod):
                return self.modulo(left, right)
            return sympy.Pow(left, right, evaluate=False)

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name):
                raise self.error(node, "unsupported function call")
            name = node.func.id
            if name not in FUNCTIONS:
                raise self.error(node.func, f"unknown function '{name}'")
            if node.keywords:
                raise self.error(
                    node.keywords[0].value, "keyword arguments not supported"
                )
            nargs = FUNCTIONS[name][0]
            if len(node.args) != nargs:
                raise self.error(
                    node.func,
                    f"function '{name}' takes {nargs} argument(s) "
                    f"({len(node.args)} given)",
                )
            args = [self.convert(arg) for arg in node.args]
            return self.functions[name](*args)

        raise self.error(node, "unsupported syntax")


def compile_formula(formula_text, parameter_names=()):
    """Compile a star formation history formula.

    Args:
        formula_text (str):
            The formula, a function of t and the parameters.
        parameter_names (list of str):
            The ordered names of the free parameters, bound to slots
            1..K of the compiled formula.

    Returns:
        Formula
            The compiled formula.

    Raises:
        CompileError
            If the formula could not be parsed. The error holds the
            offset of the offending character.
        InconsistentArguments
            If a parameter name is invalid or reserved.
    """
    parameter_names = list(parameter_names)
    _check_parameter_names(parameter_names)

    translated, offsets = _translate(formula_text)

    try:
        tree = ast.parse(translated, mode="eval")
    except SyntaxError as err:
        col = (err.offset or 1) - 1
        if 0 <= col < len(offsets):
            position = offsets[col]
        else:
            position = len(formula_text)
        raise exceptions.CompileError(formula_text, position, err.msg)

    symbols = {
        name: sympy.Symbol(name)
        for name in [TIME_VARIABLE] + parameter_names
    }
    builder = _SympyBuilder(formula_text, translated, offsets, symbols)
    expression = builder.convert(tree.body)

    namespace = {
        _internal_name(name): func for name, (_, func) in FUNCTIONS.items()
    }
    namespace[_internal_name(MODULO_FUNCTION)] = np.fmod
    namespace["float64"] = np.float64

    func = sympy.lambdify(
        list(symbols.values()),
        expression,
        modules=[namespace, "numpy"],
        printer=_FormulaPrinter(
            {
                "fully_qualified_modules": False,
                "inline": True,
                "allow_unknown_functions": True,
                "user_functions": {},
            }
        ),
        dummify=True,
    )

    return Formula(formula_text, parameter_names, expression, func)
