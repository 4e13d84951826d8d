"""State fluxes: the time derivative of one storage."""

from typing import Any, Callable, Optional, Sequence, Union

import jax.numpy as jnp
import sympy

from ..core.exceptions import ConstructionError
from .base import AbstractFlux, as_name, as_names
from .symbolic import _ordered_parameters, compile_expressions


class StateFlux(AbstractFlux):
    """Defines ``d(state)/dt``.

    Either as a mass balance over named flows::

        StateFlux("soilwater", inflows=["rainfall", "melt"], outflows=["evap", "flow"])

    or as an explicit expression over declared inputs and parameters, given as
    a callable ``(inputs, params) -> scalar`` or a sympy expression::

        StateFlux(S, inputs=[P, Q], params=[k], expr=P - k * Q)

    The state flux owns its state; the state name is never a flux output.
    """

    def __init__(
        self,
        state: Any,
        inflows: Sequence[Any] = (),
        outflows: Sequence[Any] = (),
        *,
        inputs: Optional[Sequence[Any]] = None,
        params: Optional[Sequence[Any]] = None,
        expr: Union[Callable, Any, None] = None,
        name: Optional[str] = None,
    ):
        state_name = as_name(state)
        self.state_names = (state_name,)
        self.output_names = ()
        self.name = name or f"{state_name}_dflux"

        if expr is None:
            if inputs is not None or params is not None:
                raise ConstructionError(
                    f"{self.name}: inputs/params need an explicit expr"
                )
            self.input_names = as_names(inflows) + as_names(outflows)
            self.param_names = ()
            self.inflow_names = as_names(inflows)
            self.outflow_names = as_names(outflows)
            n_in = len(self.inflow_names)
            self._func = lambda i, p: jnp.sum(i[:n_in]) - jnp.sum(i[n_in:])
            return

        if inflows or outflows:
            raise ConstructionError(
                f"{self.name}: give either inflows/outflows or expr, not both"
            )
        inputs = tuple(inputs or ())
        self.input_names = as_names(inputs)
        self.inflow_names = self.outflow_names = ()
        if isinstance(expr, sympy.Basic):
            if params is None:
                params = _ordered_parameters([expr], inputs)
            params = tuple(params)
            compiled = compile_expressions([expr], inputs, params, self.name)
            self._func = lambda i, p: compiled(i, p)[0]
        elif callable(expr):
            params = tuple(params or ())
            self._func = expr
        else:
            raise ConstructionError(f"{self.name}: unsupported expr {expr!r}")
        self.param_names = as_names(params)

    @property
    def state_name(self) -> str:
        return self.state_names[0]

    def evaluate(self, inputs, params, nn_params=None):
        return jnp.reshape(jnp.asarray(self._func(inputs, params)), (1,))
