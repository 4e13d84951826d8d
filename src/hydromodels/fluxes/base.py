"""Base flux classes.

A flux is a named, pure function mapping an ordered input vector and an
ordered parameter vector (plus, for neural fluxes, flat network weights) to
an ordered output vector. Every flux exposes the same name interface::

    flux.input_names, flux.output_names, flux.param_names, flux.nn_names

and is evaluated one sample at a time by :meth:`AbstractFlux.evaluate`. The
public ``__call__`` vectorizes that over a trailing sample/time axis.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence, Tuple, Union

import jax
import jax.numpy as jnp

from ..core.exceptions import ConstructionError, ValidationError
from ..parameters import resolve_nn_params, resolve_param_vector


def as_name(var: Any) -> str:
    """Return the name of a variable handle (str, sympy Symbol, ...)."""
    if isinstance(var, str):
        return var
    name = getattr(var, "name", None)
    if isinstance(name, str):
        return name
    raise ConstructionError(f"Cannot derive a variable name from {var!r}")


def as_names(variables: Sequence[Any]) -> Tuple[str, ...]:
    """Convert a sequence of variable handles to a tuple of names."""
    if isinstance(variables, str):
        variables = (variables,)
    return tuple(as_name(v) for v in variables)


def stack_outputs(values: Any, n_outputs: int, owner: str) -> jnp.ndarray:
    """Stack the raw return value of a flux function into a vector.

    Accepts a sequence of per-output values, an array whose leading axis is
    the output axis, or a bare scalar when exactly one output is declared.
    """
    if isinstance(values, (list, tuple)):
        if len(values) != n_outputs:
            raise ValidationError(
                f"{owner} returned {len(values)} outputs, expected {n_outputs}"
            )
        if n_outputs == 0:
            return jnp.zeros((0,))
        return jnp.stack([jnp.asarray(v) for v in values])

    values = jnp.asarray(values)
    if values.ndim == 0:
        if n_outputs != 1:
            raise ValidationError(
                f"{owner} returned a scalar, expected {n_outputs} outputs"
            )
        return values.reshape(1)
    if values.shape[0] != n_outputs:
        raise ValidationError(
            f"{owner} returned {values.shape[0]} outputs, expected {n_outputs}"
        )
    return values


class AbstractFlux(ABC):
    """Base class for all flux variants.

    Attributes:
        name: Identifier of the flux
        input_names: Ordered input variable names
        output_names: Ordered output variable names
        param_names: Ordered parameter names
        nn_names: Names of neural modules whose flat weights the flux needs
        state_names: State variables owned by the flux (state fluxes only)
    """

    name: str = ""
    input_names: Tuple[str, ...] = ()
    output_names: Tuple[str, ...] = ()
    param_names: Tuple[str, ...] = ()
    nn_names: Tuple[str, ...] = ()
    state_names: Tuple[str, ...] = ()

    @abstractmethod
    def evaluate(
        self,
        inputs: jnp.ndarray,
        params: jnp.ndarray,
        nn_params: Optional[Tuple[jnp.ndarray, ...]] = None,
    ) -> jnp.ndarray:
        """Evaluate the flux for a single sample.

        Args:
            inputs: Input values ordered as ``input_names``, shape [n_inputs]
            params: Parameter values ordered as ``param_names``, shape [n_params]
            nn_params: Flat weight vectors ordered as ``nn_names``, or None

        Returns:
            Output values ordered as ``output_names``, shape [n_outputs]
        """
        pass

    def __call__(self, input, pas=(), nn_params=None) -> jnp.ndarray:
        """Evaluate the flux on one sample or a batch of samples.

        Args:
            input: Array of shape [n_inputs] or [n_inputs, n_samples]
            pas: Parameter vector ordered as ``param_names``, or a container
                holding the parameters by name (optionally under ``params``
                with neural weights under ``nn``)
            nn_params: Explicit flat weight vector(s), overriding ``pas.nn``

        Returns:
            Array of shape [n_outputs] or [n_outputs, n_samples]
        """
        x = jnp.asarray(input)
        if x.ndim not in (1, 2) or x.shape[0] != len(self.input_names):
            raise ValidationError(
                f"{self.name}: expected input with {len(self.input_names)} rows "
                f"{self.input_names}, got shape {x.shape}"
            )
        params = resolve_param_vector(self.param_names, pas)
        nn = resolve_nn_params(self.nn_names, pas, nn_params)

        if x.ndim == 1:
            return self.evaluate(x, params, nn)
        return jax.vmap(self.evaluate, in_axes=(1, None, None), out_axes=1)(
            x, params, nn
        )

    def __repr__(self) -> str:
        inputs = ", ".join(self.input_names)
        outputs = ", ".join(self.output_names + self.state_names)
        params = ", ".join(self.param_names)
        return f"{self.__class__.__name__}({self.name}: [{inputs}] -> [{outputs}], params=[{params}])"


FluxFunction = Callable[[jnp.ndarray, jnp.ndarray], Any]


class Flux(AbstractFlux):
    """Flux defined by plain names and an explicit callable.

    The callable receives ``(inputs, params)`` as vectors ordered like the
    declared names and returns one value per output. A list with one
    callable per output is accepted as well.

    Examples:
        >>> flux = Flux(["a", "b"], ["c", "d"], ["p1", "p2"],
        ...             func=[lambda i, p: i[0] * p[0] + i[1] * p[1],
        ...                   lambda i, p: i[0] / p[0] + i[1] / p[1]])
        >>> flux(jnp.array([2.0, 3.0]), jnp.array([3.0, 4.0]))
        Array([18.        ,  1.41666667], dtype=float64)
    """

    def __init__(
        self,
        inputs: Sequence[Any],
        outputs: Sequence[Any],
        params: Sequence[Any] = (),
        func: Union[FluxFunction, Sequence[FluxFunction], None] = None,
        name: Optional[str] = None,
    ):
        self.input_names = as_names(inputs)
        self.output_names = as_names(outputs)
        self.param_names = as_names(params)
        if not self.output_names:
            raise ConstructionError("A flux must declare at least one output")
        self.name = name or "_".join(self.output_names) + "_flux"

        if func is None:
            raise ConstructionError(f"{self.name}: no flux function given")
        if isinstance(func, (list, tuple)):
            if len(func) != len(self.output_names):
                raise ConstructionError(
                    f"{self.name}: {len(func)} functions for "
                    f"{len(self.output_names)} outputs"
                )
            funcs = tuple(func)
            self._func = lambda i, p: [f(i, p) for f in funcs]
        elif callable(func):
            self._func = func
        else:
            raise ConstructionError(f"{self.name}: flux function is not callable")

    def evaluate(self, inputs, params, nn_params=None):
        return stack_outputs(
            self._func(inputs, params), len(self.output_names), self.name
        )
