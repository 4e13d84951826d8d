"""Neural-network fluxes.

The network is treated as an opaque differentiable function of
``(inputs, flat_weights)``. Two kinds of modules are accepted:

- any ``equinox.Module`` mapping a vector [n_inputs] to a vector [n_outputs];
  its array leaves are flattened into one weight vector with ``ravel_pytree``
- any object exposing ``apply(inputs_matrix, flat_weights) -> outputs_matrix``
  with matrices of shape [n_inputs, n] and [n_outputs, n]

The flat weights are looked up by the flux name under the ``nn`` namespace of
the parameter container.
"""

import logging
from typing import Any, Optional, Sequence

import equinox as eqx
import jax.numpy as jnp
from jax.flatten_util import ravel_pytree

from ..core.exceptions import ConstructionError, ValidationError
from .base import AbstractFlux, as_names, stack_outputs

logger = logging.getLogger(__name__)


class NeuralFlux(AbstractFlux):
    """Flux computed by a neural network with a flat weight vector.

    Examples:
        >>> mlp = eqx.nn.MLP(2, 1, width_size=8, depth=1, key=jax.random.PRNGKey(0))
        >>> flux = NeuralFlux(["S", "temp"], ["q"], mlp, name="qnn")
        >>> weights = flux.init_params()
        >>> flux(jnp.ones((2, 10)), Bunch(nn=Bunch(qnn=weights))).shape
        (1, 10)
    """

    def __init__(
        self,
        inputs: Sequence[Any],
        outputs: Sequence[Any],
        model: Any,
        name: Optional[str] = None,
    ):
        self.input_names = as_names(inputs)
        self.output_names = as_names(outputs)
        if not self.output_names:
            raise ConstructionError("A neural flux must declare at least one output")
        self.name = name or "_".join(self.output_names) + "_nn"
        self.param_names = ()
        self.nn_names = (self.name,)
        self.model = model

        if isinstance(model, eqx.Module):
            arrays, static = eqx.partition(model, eqx.is_array)
            flat, unravel = ravel_pytree(arrays)
            self._init_params = flat

            def apply_single(x, weights):
                network = eqx.combine(unravel(weights), static)
                return network(x)

        elif hasattr(model, "apply"):
            self._init_params = getattr(model, "init_params", None)

            def apply_single(x, weights):
                return model.apply(x[:, None], weights)[:, 0]

        else:
            raise ConstructionError(
                f"{self.name}: model must be an equinox Module or expose apply()"
            )
        self._apply_single = apply_single
        logger.debug("Built neural flux %s with %d outputs", self.name, len(self.output_names))

    def init_params(self) -> jnp.ndarray:
        """Return the initial flat weight vector of the wrapped module."""
        if self._init_params is None:
            raise ConstructionError(f"{self.name}: module provides no initial weights")
        if callable(self._init_params):
            return jnp.asarray(self._init_params())
        return self._init_params

    def evaluate(self, inputs, params, nn_params=None):
        if nn_params is None:
            raise ValidationError(f"{self.name}: no network weights supplied")
        out = self._apply_single(inputs, nn_params[0])
        return stack_outputs(out, len(self.output_names), self.name)
