"""Symbolic flux front-end.

Flux equations are written as sympy expressions over explicitly created
variable and parameter handles, then compiled once with ``lambdify`` into a
pure JAX function::

    temp, lday, pet = variables("temp lday pet")
    (Df,) = parameters("Df")
    flux = SymbolicFlux([temp, lday], [pet], [29.8 * lday * temp * Df])

Handles are ordinary sympy symbols of two marker classes, so nothing is
injected into any global namespace.
"""

from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import jax.numpy as jnp
import sympy
from sympy.printing.numpy import JaxPrinter
from sympy.utilities.lambdify import lambdify

from ..core.exceptions import ConstructionError
from ..functions import step_func
from .base import AbstractFlux, as_names, stack_outputs


class HydroVariable(sympy.Symbol):
    """Symbol for a time-varying quantity (forcing, flux output or state)."""

    pass


class HydroParameter(sympy.Symbol):
    """Symbol for a calibratable parameter."""

    pass


def variables(names: str) -> Tuple[HydroVariable, ...]:
    """Create variable handles, e.g. ``variables("prcp temp")``."""
    return tuple(sympy.symbols(names, cls=HydroVariable, seq=True))


def parameters(names: str) -> Tuple[HydroParameter, ...]:
    """Create parameter handles, e.g. ``parameters("Tmin Tmax Df")``."""
    return tuple(sympy.symbols(names, cls=HydroParameter, seq=True))


def is_parameter(symbol: Any) -> bool:
    return isinstance(symbol, HydroParameter)


# Extra names resolvable inside compiled expressions
JAX_EXTEND_MODULE: Dict[str, Callable] = {
    "step_func": step_func,
}

# Smooth step usable inside sympy expressions, compiled to functions.step_func
StepFunc = sympy.Function("step_func")


class HydroJaxPrinter(JaxPrinter):
    """JAX printer emitting pairwise ``maximum``/``minimum`` for Max/Min."""

    def _fold(self, func: str, args) -> str:
        func = self._module_format(func)
        code = self._print(args[0])
        for arg in args[1:]:
            code = f"{func}({code}, {self._print(arg)})"
        return code

    def _print_Max(self, expr):
        return self._fold("jax.numpy.maximum", expr.args)

    def _print_Min(self, expr):
        return self._fold("jax.numpy.minimum", expr.args)


def _printer() -> HydroJaxPrinter:
    return HydroJaxPrinter(
        {
            "fully_qualified_modules": False,
            "inline": True,
            "allow_unknown_functions": True,
            "user_functions": {k: k for k in JAX_EXTEND_MODULE},
        }
    )


def compile_expressions(
    exprs: Sequence[Any],
    input_symbols: Sequence[sympy.Symbol],
    param_symbols: Sequence[sympy.Symbol],
    owner: str,
) -> Callable[[jnp.ndarray, jnp.ndarray], list]:
    """Compile expressions into ``f(inputs, params) -> list of values``.

    Raises:
        ConstructionError: if an expression uses an undeclared symbol
    """
    exprs = [sympy.sympify(e) for e in exprs]
    declared = set(input_symbols) | set(param_symbols)
    for expr in exprs:
        unknown = expr.free_symbols - declared
        if unknown:
            names = ", ".join(sorted(s.name for s in unknown))
            raise ConstructionError(
                f"{owner}: expression {expr} uses undeclared symbols: {names}"
            )

    n_inputs = len(input_symbols)
    n_params = len(param_symbols)
    compiled = lambdify(
        list(input_symbols) + list(param_symbols),
        exprs,
        modules=[JAX_EXTEND_MODULE, "jax"],
        printer=_printer(),
    )

    def func(inputs, params):
        args = [inputs[i] for i in range(n_inputs)]
        args += [params[j] for j in range(n_params)]
        return compiled(*args)

    return func


def _ordered_parameters(exprs, input_symbols) -> Tuple[sympy.Symbol, ...]:
    """Parameter symbols of ``exprs`` in order of first appearance."""
    found = []
    for expr in exprs:
        for symbol in sympy.preorder_traversal(sympy.sympify(expr)):
            if is_parameter(symbol) and symbol not in found and symbol not in input_symbols:
                found.append(symbol)
    return tuple(found)


class SymbolicFlux(AbstractFlux):
    """Flux defined by sympy expressions, one per output.

    Parameters default to every :class:`HydroParameter` appearing in the
    expressions, in order of first appearance. Any other free symbol must be
    listed among the inputs.

    Args:
        inputs: Input variable handles
        outputs: Output variable handles
        exprs: One expression per output (a single expression is accepted for
            a single output)
        params: Explicit parameter handles, overriding detection
        name: Flux name, defaults to the output names joined
    """

    def __init__(
        self,
        inputs: Sequence[sympy.Symbol],
        outputs: Sequence[sympy.Symbol],
        exprs: Any,
        params: Optional[Sequence[sympy.Symbol]] = None,
        name: Optional[str] = None,
    ):
        if not isinstance(exprs, (list, tuple)):
            exprs = [exprs]
        self.input_names = as_names(inputs)
        self.output_names = as_names(outputs)
        self.name = name or "_".join(self.output_names) + "_flux"
        if len(exprs) != len(self.output_names):
            raise ConstructionError(
                f"{self.name}: {len(exprs)} expressions for "
                f"{len(self.output_names)} outputs"
            )

        input_symbols = tuple(inputs)
        if params is None:
            param_symbols = _ordered_parameters(exprs, input_symbols)
        else:
            param_symbols = tuple(params)
        self.param_names = as_names(param_symbols)
        self.exprs = tuple(sympy.sympify(e) for e in exprs)
        self._func = compile_expressions(
            self.exprs, input_symbols, param_symbols, self.name
        )

    @classmethod
    def from_equations(cls, inputs, equations, params=None, name=None):
        """Build from ``sympy.Eq(output, expr)`` equations."""
        outputs = [eq.lhs for eq in equations]
        exprs = [eq.rhs for eq in equations]
        return cls(inputs, outputs, exprs, params=params, name=name)

    def evaluate(self, inputs, params, nn_params=None):
        return stack_outputs(
            self._func(inputs, params), len(self.output_names), self.name
        )
