"""Cost function for parameter calibration."""

import logging
from typing import Callable, Mapping, Optional, Union

import jax
import jax.numpy as jnp

from ..core.bunch import Bunch
from ..core.exceptions import MissingNameError, ValidationError
from ..interpolation import as_float_array
from ..solvers.result import is_failure
from .metrics import get_loss_function

logger = logging.getLogger(__name__)


def conform_bounds(template: Mapping, bounds: Mapping, default: float, where: str) -> Bunch:
    """Arrange ``bounds`` like ``template``, matching entries by name.

    Leaves of ``template`` without a bound get ``default``. Bound names that
    are not in ``template`` raise a ValidationError.
    """
    unknown = set(bounds) - set(template)
    if unknown:
        raise ValidationError(
            f"Bounds '{where}' name unknown tunables: {', '.join(sorted(map(str, unknown)))}"
        )
    conformed = Bunch()
    for key, value in template.items():
        bound = bounds.get(key)
        if isinstance(value, Mapping):
            if bound is not None and not isinstance(bound, Mapping):
                raise ValidationError(f"Bounds '{where}': '{key}' must be a mapping")
            conformed[key] = conform_bounds(value, bound or {}, default, f"{where}.{key}")
        else:
            conformed[key] = default if bound is None else bound
    return conformed


class CalibrationObjective:
    """Scalar loss of a model run as a function of the tunable parameters.

    The tunable container is clipped to the bounds, merged over the constant
    container and passed to the model. The loss compares the named result
    rows with the observed series after an optional warm-up period. A failed
    run or a non-finite loss yields ``penalty``.

    Args:
        model: Bucket or unit, called as ``model(input, pas, config)``
        tunable_pas: Initial tunable container, e.g. ``Bunch(params=Bunch(k=0.1))``
        const_pas: Constant part of the container (states, fixed parameters)
        input: Forcing array for the model
        target: Mapping from result label to the observed series
        config: Run configuration passed to the model
        lb: Lower bounds by name, any subset of ``tunable_pas``
        ub: Upper bounds by name, any subset of ``tunable_pas``
        loss_fn: Metric name from ``LOSS_FUNCTIONS`` or ``f(pred, obs)``
        penalty: Loss reported for failed runs
        warmup: Number of leading time steps excluded from the loss

    Example:
        >>> objective = CalibrationObjective(
        ...     unit, Bunch(params=Bunch(Smax=1500.0)), const_pas, forcing,
        ...     {"flow": observed}, lb=Bunch(params=Bunch(Smax=100.0)),
        ...     ub=Bunch(params=Bunch(Smax=2000.0)))
        >>> objective(objective.tunable_pas)
    """

    def __init__(
        self,
        model,
        tunable_pas: Mapping,
        const_pas: Mapping,
        input,
        target: Mapping,
        config: Optional[Mapping] = None,
        lb: Optional[Mapping] = None,
        ub: Optional[Mapping] = None,
        loss_fn: Union[str, Callable] = "mse",
        penalty: float = 1e10,
        warmup: int = 0,
    ):
        self.model = model
        self.tunable_pas = Bunch.from_nested(tunable_pas)
        self.const_pas = Bunch.from_nested(const_pas)
        self.input = as_float_array(input)
        self.config = config
        self.loss_fn = get_loss_function(loss_fn)
        self.penalty = penalty
        self.warmup = warmup

        labels = tuple(model.output_labels)
        self.target_names = tuple(target)
        for name in self.target_names:
            if name not in labels:
                raise MissingNameError(name, "output", model.name)
        self.target_rows = tuple(labels.index(n) for n in self.target_names)
        self.target = jnp.stack([as_float_array(target[n]) for n in self.target_names])

        self._lb = Bunch.from_nested(lb or {})
        self._ub = Bunch.from_nested(ub or {})
        self.lb = conform_bounds(self.tunable_pas, self._lb, -jnp.inf, "lb")
        self.ub = conform_bounds(self.tunable_pas, self._ub, jnp.inf, "ub")

    def project(self, tunable):
        """Clip every tunable leaf to its bounds."""
        tunable = Bunch.from_nested(tunable)
        lb = conform_bounds(tunable, self._lb, -jnp.inf, "lb")
        ub = conform_bounds(tunable, self._ub, jnp.inf, "ub")
        return jax.tree.map(jnp.clip, tunable, lb, ub)

    def build_pas(self, tunable) -> Bunch:
        """Full container for a model run."""
        return self.const_pas.merge(self.project(tunable))

    def __call__(self, tunable):
        result = self.model(self.input, self.build_pas(tunable), self.config)
        if is_failure(result):
            logger.info("Run failed, returning penalty %g", self.penalty)
            return jnp.asarray(self.penalty, dtype=float)

        pred = jnp.stack([result[i] for i in self.target_rows])
        loss = self.loss_fn(pred[..., self.warmup:], self.target[..., self.warmup:])
        return jnp.where(jnp.isfinite(loss), loss, self.penalty)
