"""Continuous-time access to forcing series.

Forcing data is sampled at the discrete time index of a run, while solvers
may evaluate the right-hand side anywhere in between (Runge-Kutta stages,
adaptive steps). The series is wrapped once per call in a Diffrax
interpolation over all variables (and nodes) at the same time.
"""

from typing import Literal

import diffrax
import jax
import jax.numpy as jnp
import numpy as np

from .core.exceptions import ValidationError


def as_float_array(x) -> jnp.ndarray:
    """Convert to a JAX array with a floating dtype."""
    x = jnp.asarray(x)
    if not jnp.issubdtype(x.dtype, jnp.floating):
        x = x.astype(jnp.result_type(float))
    return x


def check_timeidx(timeidx, n_times: int) -> jnp.ndarray:
    """Validate a time index against the number of samples.

    Raises:
        ValidationError: if it is not 1-D, has the wrong length or is not
            strictly increasing
    """
    ts = as_float_array(timeidx)
    if ts.ndim != 1 or ts.shape[0] != n_times:
        raise ValidationError(
            f"timeidx must have shape ({n_times},), got {ts.shape}"
        )
    try:
        concrete = np.asarray(ts)
    except jax.errors.TracerArrayConversionError:
        return ts
    if n_times > 1 and not np.all(np.diff(concrete) > 0):
        raise ValidationError("timeidx must be strictly increasing")
    return ts


class InputInterpolator:
    """Interpolate a series whose time axis is last.

    Linear interpolation reproduces the samples exactly at the time index and
    extrapolates along the first/last segment outside of it. A single-sample
    series is treated as constant.

    Args:
        timeidx: Time points [n_times], strictly increasing
        values: Samples [..., n_times]
        method: 'linear' or 'cubic' (backward Hermite)

    Example:
        >>> ts = jnp.arange(4.0)
        >>> interp = InputInterpolator(ts, jnp.array([[0.0, 1.0, 4.0, 9.0]]))
        >>> interp(1.5)
        Array([2.5], dtype=float64)
    """

    def __init__(
        self,
        timeidx: jnp.ndarray,
        values: jnp.ndarray,
        method: Literal["linear", "cubic"] = "linear",
    ):
        values = as_float_array(values)
        if values.ndim < 1:
            raise ValidationError("values need a time axis")
        ts = check_timeidx(timeidx, values.shape[-1])
        ts = ts.astype(values.dtype)

        if method not in ("linear", "cubic"):
            raise ValueError(f"interpolation must be 'linear' or 'cubic', got {method}")

        self.method = method
        self.ts = ts
        self.values = values
        ys = jnp.moveaxis(values, -1, 0)

        if values.shape[-1] == 1:
            self._interpolation = None
        elif method == "linear":
            self._interpolation = diffrax.LinearInterpolation(ts=ts, ys=ys)
        else:
            coeffs = diffrax.backward_hermite_coefficients(ts=ts, ys=ys)
            self._interpolation = diffrax.CubicInterpolation(ts=ts, coeffs=coeffs)

    @property
    def t0(self):
        return self.ts[0]

    @property
    def t1(self):
        return self.ts[-1]

    def __call__(self, t) -> jnp.ndarray:
        if self._interpolation is None:
            return self.values[..., 0]
        return self._interpolation.evaluate(t)


def build_interpolator(input, timeidx, method: str = "linear") -> InputInterpolator:
    """Interpolator over a bucket input of shape [n_vars, T] or [n_vars, n_nodes, T]."""
    return InputInterpolator(timeidx, input, method=method)
