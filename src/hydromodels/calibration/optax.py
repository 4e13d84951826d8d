import logging

import jax
import jax.numpy as jnp
import numpy as np
import optax

logger = logging.getLogger(__name__)


class OptaxCalibrator:
    """
    Gradient-based calibration of a :class:`CalibrationObjective` with Optax.

    Each step evaluates the objective and its gradient with a jit-compiled
    ``value_and_grad``, applies the optimizer update and projects the result
    back into the parameter bounds. NaN gradients, e.g. from a run that
    diverged under tracing, are zeroed with ``optax.zero_nans`` so the loop
    keeps going from the last finite iterate.

    Parameters
    ----------
    objective : CalibrationObjective
        Cost function of the tunable container.
    optimizer : optax.GradientTransformation
        Optax optimizer instance (e.g., optax.adam(0.01)).
    callback : callable, optional
        Called after each step as ``callback(step, tunable, fitting_data,
        loss_value, grads) -> (stop, tunable)``. Returning ``stop=True`` ends
        the loop early.
    log_every : int, optional
        Log progress at INFO level every ``log_every`` steps. Default is 10.

    Examples
    --------
    >>> calibrator = OptaxCalibrator(objective, optax.adam(0.05))
    >>> best, fitting_data = calibrator.run(objective.tunable_pas, max_steps=200)
    >>> fitting_data["best_loss"]
    """

    def __init__(self, objective, optimizer, callback=None, log_every=10):
        self.objective = objective
        self.optimizer = optimizer
        self.callback = callback
        self.log_every = log_every

    def run(self, tunable, max_steps=1):
        """
        Run the calibration loop.

        Parameters
        ----------
        tunable : PyTree
            Initial tunable container.
        max_steps : int, optional
            Maximum number of optimization steps. Default is 1.

        Returns
        -------
        tuple
            - **best** (PyTree): Tunable container with the lowest loss seen.
            - **fitting_data** (dict): ``loss`` history, ``best_loss`` and
              ``best_step``.
        """
        tunable = self.objective.project(
            jax.tree.map(lambda x: jnp.asarray(x, dtype=float), tunable)
        )
        optimizer = optax.chain(optax.zero_nans(), self.optimizer)
        opt_state = optimizer.init(tunable)
        v_g_fun = jax.jit(jax.value_and_grad(self.objective))

        def step(tunable, opt_state):
            loss_value, grads = v_g_fun(tunable)
            updates, opt_state = optimizer.update(grads, opt_state, tunable)
            new_tunable = self.objective.project(optax.apply_updates(tunable, updates))
            return new_tunable, opt_state, loss_value, grads

        fitting_data = dict(loss=[], best_loss=np.inf, best_step=-1)
        best = tunable
        for i in range(max_steps):
            new_tunable, opt_state, loss_value, grads = step(tunable, opt_state)
            loss_value = float(loss_value)
            fitting_data["loss"].append(loss_value)
            if loss_value < fitting_data["best_loss"]:
                fitting_data["best_loss"] = loss_value
                fitting_data["best_step"] = i
                best = tunable
            if self.log_every and i % self.log_every == 0:
                logger.info("Step %d: loss = %.6g", i, loss_value)

            tunable = new_tunable
            if self.callback is not None:
                stop, tunable = self.callback(i, tunable, fitting_data, loss_value, grads)
                if stop:
                    logger.info("Stopping due to callback at step %d", i)
                    break

        logger.info(
            "Calibration finished: best loss %.6g at step %d",
            fitting_data["best_loss"],
            fitting_data["best_step"],
        )
        return best, fitting_data
