"""Buckets: fluxes and state fluxes integrated over forcing series.

A bucket owns a set of fluxes (instantaneous relations) and state fluxes
(storage derivatives). Calling it on a forcing array runs the storages
through a solver and evaluates every flux along the solved trajectory::

    bucket = HydroBucket(fluxes=[...], dfluxes=[StateFlux("S", ["P"], ["Q"])])
    result = bucket(input, pas)          # [n_states + n_outputs, T]
    result = bucket(input3d, pas, Bunch(ptypes=[...], stypes=[...]))
"""

import logging
from typing import Mapping, Optional, Sequence

import jax
import jax.numpy as jnp

from . import graph
from .core.bunch import Bunch
from .core.exceptions import ConstructionError, ValidationError
from .fluxes.base import AbstractFlux
from .interpolation import as_float_array, build_interpolator, check_timeidx
from .parameters import get_initstates, get_nn_extractor, get_param_extractor
from .solvers.native import Euler
from .solvers.result import is_failure

logger = logging.getLogger(__name__)


class HydroBucket:
    """A storage unit defined by fluxes and state fluxes.

    Attributes:
        name: Bucket identifier
        fluxes: Fluxes in evaluation order
        dfluxes: State fluxes, one per state
        input_names: Forcing rows the bucket reads, in first-appearance order
        output_names: Flux outputs in declaration order
        state_names: States in state-flux order
        param_names: Parameters used by any flux or state flux
        nn_names: Neural modules used by any flux
        flux_func: ``(values, params, nn_params, t) -> outputs`` for one sample
        ode_func: ``(inputs, states, params, nn_params, t) -> dstates``, or None
            for a stateless bucket

    Run configuration (keys of ``DEFAULT_CONFIG``):
        solver: Solver instance, ``Euler()`` if None
        interpolation: 'linear' or 'cubic' forcing interpolation
        timeidx: Time points [T], ``0..T-1`` if None
        ptypes: Parameter type per node (multi-node), all types if None
        stypes: State type per node (multi-node), all types if None
    """

    DEFAULT_CONFIG = Bunch(
        solver=None,
        interpolation="linear",
        timeidx=None,
        ptypes=None,
        stypes=None,
    )

    def __init__(
        self,
        name: Optional[str] = None,
        fluxes: Sequence[AbstractFlux] = (),
        dfluxes: Sequence[AbstractFlux] = (),
        sort_fluxes: bool = True,
    ):
        fluxes = list(fluxes)
        dfluxes = list(dfluxes)
        if not fluxes and not dfluxes:
            raise ConstructionError("A bucket needs at least one flux or state flux")

        input_names, output_names, state_names = graph.get_var_names(fluxes, dfluxes)
        ordered = graph.sort_fluxes(fluxes, state_names)
        if not sort_fluxes and ordered != fluxes:
            raise ConstructionError(
                "Fluxes are not in dependency order; pass sort_fluxes=True"
            )

        self.name = name or "".join(state_names or output_names) + "_bucket"
        self.fluxes = ordered
        self.dfluxes = dfluxes
        self.input_names = input_names
        self.output_names = output_names
        self.state_names = state_names
        self.param_names = graph.get_param_names(fluxes + dfluxes)
        self.nn_names = graph.get_nn_names(fluxes + dfluxes)

        meta = Bunch(
            name=self.name,
            input_names=self.input_names,
            output_names=self.output_names,
            state_names=self.state_names,
            param_names=self.param_names,
            nn_names=self.nn_names,
        )
        self.flux_func = graph.build_flux_func(self.fluxes, meta)
        self.ode_func = (
            graph.build_ode_func(self.fluxes, self.dfluxes, meta) if dfluxes else None
        )
        logger.debug(
            "Built bucket %s: inputs=%s states=%s outputs=%s params=%s",
            self.name,
            self.input_names,
            self.state_names,
            self.output_names,
            self.param_names,
        )

    @property
    def output_labels(self):
        """Row labels of a call result: states first, then flux outputs."""
        return self.state_names + self.output_names

    def __repr__(self) -> str:
        return (
            f"HydroBucket({self.name}: inputs={list(self.input_names)}, "
            f"states={list(self.state_names)}, outputs={list(self.output_names)})"
        )

    def resolve_config(self, config: Optional[Mapping] = None) -> Bunch:
        """Merge a user configuration over ``DEFAULT_CONFIG``.

        Raises:
            ValidationError: on unknown configuration options
        """
        merged = self.DEFAULT_CONFIG.copy()
        if config:
            unknown = set(config) - set(self.DEFAULT_CONFIG)
            if unknown:
                raise ValidationError(
                    f"Unknown config options: {', '.join(sorted(unknown))}"
                )
            merged.update(config)
        if merged.solver is None:
            merged.solver = Euler()
        return merged

    def __call__(self, input, pas: Mapping, config: Optional[Mapping] = None):
        """Run the bucket.

        Args:
            input: Forcing [n_inputs, T] or [n_inputs, n_nodes, T], rows ordered
                as ``input_names``
            pas: Container with ``params``, ``initstates`` and optionally ``nn``
            config: Run configuration, see ``DEFAULT_CONFIG``

        Returns:
            [n_states + n_outputs, (n_nodes,) T] with rows ordered as
            ``output_labels``, or the solver's SolverFailure
        """
        config = self.resolve_config(config)
        x = as_float_array(input)
        if x.ndim not in (2, 3):
            raise ValidationError(
                f"{self.name}: input must be 2-D or 3-D, got shape {x.shape}"
            )
        if x.shape[0] != len(self.input_names):
            raise ValidationError(
                f"{self.name}: input has {x.shape[0]} rows, expected "
                f"{len(self.input_names)} {self.input_names}"
            )
        n_times = x.shape[-1]
        timeidx = config.timeidx
        if timeidx is None:
            timeidx = jnp.arange(n_times, dtype=x.dtype)
        timeidx = check_timeidx(timeidx, n_times)

        logger.debug("Running %s on input %s", self.name, x.shape)
        if x.ndim == 2:
            result = self._run_single(x, pas, timeidx, config)
        else:
            result = self._run_multi(x, pas, timeidx, config)

        if is_failure(result):
            logger.warning("%s: solver failed, %s", self.name, result.message)
        return result

    def _fluxes_over_time(self, values, params, nn_params, timeidx):
        """Evaluate all fluxes along the time axis of ``values`` [n_values, T]."""
        return jax.vmap(
            lambda v, t: self.flux_func(v, params, nn_params, t),
            in_axes=(1, 0),
            out_axes=1,
        )(values, timeidx)

    def _run_single(self, x, pas, timeidx, config):
        param_fn = get_param_extractor(self.param_names, pas)
        nn_fn = get_nn_extractor(self.nn_names, pas)

        if self.ode_func is None:
            return self._fluxes_over_time(x, param_fn(pas), nn_fn(pas), timeidx)

        u0 = get_initstates(self.state_names, pas)
        interp = build_interpolator(x, timeidx, config.interpolation)

        def du_func(u, p, t):
            return self.ode_func(interp(t), u, param_fn(p), nn_fn(p), t)

        states = config.solver(du_func, pas, u0, timeidx)
        if is_failure(states):
            return states

        values = jnp.concatenate([x, states.astype(jnp.result_type(x, states))])
        outputs = self._fluxes_over_time(values, param_fn(pas), nn_fn(pas), timeidx)
        return jnp.concatenate([states, outputs.astype(states.dtype)], axis=0)

    def _node_types(self, types, pas, key: str, n_nodes: int):
        if types is None:
            section = pas.get(key) if isinstance(pas, Mapping) else None
            types = tuple(section.keys()) if isinstance(section, Mapping) else ()
        types = tuple(types)
        if len(types) == 1:
            types = types * n_nodes
        if len(types) != n_nodes:
            raise ValidationError(
                f"{self.name}: {len(types)} {key} types for {n_nodes} nodes"
            )
        return types

    def _run_multi(self, x, pas, timeidx, config):
        n_nodes = x.shape[1]
        if self.param_names:
            ptypes = self._node_types(config.ptypes, pas, "params", n_nodes)
            param_fn = get_param_extractor(self.param_names, pas, ptypes)
        else:
            if config.ptypes is not None:
                self._node_types(config.ptypes, pas, "params", n_nodes)
            param_fn = lambda p: jnp.zeros((n_nodes, 0))
        if self.ode_func is None and config.stypes is not None:
            self._node_types(config.stypes, pas, "initstates", n_nodes)
        nn_fn = get_nn_extractor(self.nn_names, pas)

        def node_fluxes(values, params, nn_params):
            return jax.vmap(
                lambda v, pn: self._fluxes_over_time(v, pn, nn_params, timeidx),
                in_axes=(1, 0),
                out_axes=1,
            )(values, params)

        if self.ode_func is None:
            return node_fluxes(x, param_fn(pas), nn_fn(pas))

        stypes = self._node_types(config.stypes, pas, "initstates", n_nodes)
        u0 = get_initstates(self.state_names, pas, stypes)
        interp = build_interpolator(x, timeidx, config.interpolation)

        def du_func(u, p, t):
            nn_params = nn_fn(p)
            return jax.vmap(
                lambda i, s, pn: self.ode_func(i, s, pn, nn_params, t),
                in_axes=(1, 1, 0),
                out_axes=1,
            )(interp(t), u, param_fn(p))

        states = config.solver(du_func, pas, u0, timeidx)
        if is_failure(states):
            return states

        values = jnp.concatenate([x, states.astype(jnp.result_type(x, states))])
        outputs = node_fluxes(values, param_fn(pas), nn_fn(pas))
        return jnp.concatenate([states, outputs.astype(states.dtype)], axis=0)
