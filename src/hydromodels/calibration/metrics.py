"""Goodness-of-fit metrics.

All metrics take ``(pred, obs)`` arrays of equal shape and return a scalar
loss to be minimized: NSE and KGE are returned as ``1 - score``.
"""

import jax.numpy as jnp


def mse(pred, obs):
    return jnp.mean((pred - obs) ** 2)


def rmse(pred, obs):
    return jnp.sqrt(mse(pred, obs))


def nse(pred, obs):
    """``1 - NSE``, the normalized squared error (0 is a perfect fit)."""
    return jnp.sum((pred - obs) ** 2) / jnp.sum((obs - jnp.mean(obs)) ** 2)


def kge(pred, obs):
    """``1 - KGE`` (Gupta et al. 2009)."""
    r = jnp.corrcoef(pred.ravel(), obs.ravel())[0, 1]
    alpha = jnp.std(pred) / jnp.std(obs)
    beta = jnp.mean(pred) / jnp.mean(obs)
    return jnp.sqrt((r - 1.0) ** 2 + (alpha - 1.0) ** 2 + (beta - 1.0) ** 2)


LOSS_FUNCTIONS = {
    "mse": mse,
    "rmse": rmse,
    "nse": nse,
    "kge": kge,
}


def get_loss_function(loss_fn):
    """Look up a loss by name, or return a callable unchanged."""
    if callable(loss_fn):
        return loss_fn
    try:
        return LOSS_FUNCTIONS[loss_fn]
    except KeyError:
        raise ValueError(
            f"Unknown loss '{loss_fn}', choose from {sorted(LOSS_FUNCTIONS)}"
        ) from None
