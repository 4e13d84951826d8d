"""Sequential composition of buckets."""

import logging
from typing import Mapping, Optional, Sequence

import jax.numpy as jnp

from .bucket import HydroBucket
from .core.exceptions import ConstructionError, ValidationError
from .graph import unique
from .interpolation import as_float_array
from .solvers.result import is_failure

logger = logging.getLogger(__name__)


class HydroUnit:
    """Runs buckets one after another on a shared forcing.

    Each bucket reads its inputs from the forcing rows or from rows produced
    by an earlier bucket. The result stacks every bucket's result in order,
    labelled by ``output_labels``.

    Example:
        >>> unit = HydroUnit("exphydro", [snow_bucket(), soil_bucket()])
        >>> unit.input_names
        ('temp', 'lday', 'prcp')
    """

    def __init__(self, name: Optional[str] = None, components: Sequence[HydroBucket] = ()):
        components = list(components)
        if not components:
            raise ConstructionError("A unit needs at least one bucket")

        produced = []
        required = []
        for component in components:
            required.extend(n for n in component.input_names if n not in produced)
            for label in component.output_labels:
                if label in produced:
                    raise ConstructionError(f"'{label}' is produced by two buckets")
                produced.append(label)

        self.name = name or "_".join(c.name for c in components)
        self.components = components
        self.input_names = unique(required)
        self.output_labels = tuple(produced)
        self.param_names = unique(n for c in components for n in c.param_names)
        self.state_names = unique(n for c in components for n in c.state_names)
        self.nn_names = unique(n for c in components for n in c.nn_names)

    def __repr__(self) -> str:
        names = ", ".join(c.name for c in self.components)
        return f"HydroUnit({self.name}: [{names}])"

    def __call__(self, input, pas: Mapping, config: Optional[Mapping] = None):
        """Run all buckets in order.

        Args:
            input: Forcing [n_inputs, T] or [n_inputs, n_nodes, T] ordered as
                ``input_names``
            pas: Container shared by all buckets
            config: Run configuration passed to every bucket

        Returns:
            Array [len(output_labels), (n_nodes,) T] or the first SolverFailure
        """
        x = as_float_array(input)
        if x.ndim not in (2, 3) or x.shape[0] != len(self.input_names):
            raise ValidationError(
                f"{self.name}: expected input with {len(self.input_names)} rows "
                f"{self.input_names}, got shape {x.shape}"
            )

        rows = {name: x[i] for i, name in enumerate(self.input_names)}
        results = []
        for component in self.components:
            if component.input_names:
                component_input = jnp.stack([rows[n] for n in component.input_names])
            else:
                component_input = jnp.zeros((0,) + x.shape[1:], dtype=x.dtype)
            result = component(component_input, pas, config)
            if is_failure(result):
                logger.warning("%s: bucket %s failed", self.name, component.name)
                return result
            for i, label in enumerate(component.output_labels):
                rows[label] = result[i]
            results.append(result)
        return jnp.concatenate(results, axis=0)
