"""Smooth helper functions shared by the reference models."""

import jax.numpy as jnp


def step_func(x):
    """Smooth approximation of the Heaviside step, ``(tanh(5x) + 1) / 2``.

    Differentiable everywhere; equals 0.5 at zero and saturates to exactly
    0 or 1 in float64 for ``|x| >= 5``.
    """
    return (jnp.tanh(5.0 * x) + 1.0) * 0.5


def hamon_pet(temp, lday):
    """Hamon potential evapotranspiration [mm/day].

    Args:
        temp: Mean air temperature [degC]
        lday: Day length as a fraction of a day
    """
    saturation = 0.611 * jnp.exp(17.3 * temp / (temp + 237.3))
    return 29.8 * lday * 24.0 * saturation / (temp + 273.2)
