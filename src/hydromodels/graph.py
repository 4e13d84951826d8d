"""Flux graph builder.

Derives the ordered name sets of a bucket from its fluxes and state fluxes,
orders the fluxes so that every flux runs after the fluxes producing its
inputs, and compiles two single-sample functions over plain arrays:

- ``flux_func(values, params, nn_params, t) -> outputs`` where ``values`` is
  ordered as ``input_names + state_names``
- ``ode_func(inputs, states, params, nn_params, t) -> dstates``

Both are pure and vectorized by the caller with ``jax.vmap``.
"""

import logging
from collections import deque
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

import jax.numpy as jnp
import numpy as np

from .core.bunch import Bunch
from .core.exceptions import ConstructionError
from .fluxes.base import AbstractFlux

logger = logging.getLogger(__name__)


def unique(names: Iterable[str]) -> Tuple[str, ...]:
    """Deduplicate keeping the first appearance."""
    return tuple(dict.fromkeys(names))


def get_var_names(
    fluxes: Sequence[AbstractFlux], dfluxes: Sequence[AbstractFlux] = ()
) -> Tuple[Tuple[str, ...], Tuple[str, ...], Tuple[str, ...]]:
    """Derive ``(input_names, output_names, state_names)``.

    Raises:
        ConstructionError: on an output produced twice, a state owned twice, or
            a name that is both a flux output and a state
    """
    output_names = tuple(n for f in fluxes for n in f.output_names)
    state_names = tuple(n for d in dfluxes for n in d.state_names)

    for kind, names in (("output", output_names), ("state", state_names)):
        seen = set()
        for name in names:
            if name in seen:
                raise ConstructionError(f"{kind} '{name}' is defined more than once")
            seen.add(name)

    clash = set(output_names) & set(state_names)
    if clash:
        raise ConstructionError(
            f"Names used both as flux output and state: {', '.join(sorted(clash))}"
        )

    produced = set(output_names) | set(state_names)
    input_names = unique(
        n
        for component in tuple(fluxes) + tuple(dfluxes)
        for n in component.input_names
        if n not in produced
    )
    return input_names, output_names, state_names


def get_param_names(components: Sequence[AbstractFlux]) -> Tuple[str, ...]:
    return unique(n for c in components for n in c.param_names)


def get_nn_names(components: Sequence[AbstractFlux]) -> Tuple[str, ...]:
    return unique(n for c in components for n in c.nn_names)


def sort_fluxes(
    fluxes: Sequence[AbstractFlux], state_names: Sequence[str] = ()
) -> List[AbstractFlux]:
    """Topologically sort fluxes (Kahn's algorithm).

    Declaration order is kept among fluxes that are ready at the same time.
    States are known at every evaluation and never create an edge.

    Raises:
        ConstructionError: if the flux dependencies contain a cycle
    """
    fluxes = list(fluxes)
    producer: Dict[str, int] = {}
    for i, flux in enumerate(fluxes):
        for name in flux.output_names:
            producer[name] = i

    states = set(state_names)
    dependents: Dict[int, List[int]] = {i: [] for i in range(len(fluxes))}
    in_degree = [0] * len(fluxes)
    for i, flux in enumerate(fluxes):
        upstream = {
            producer[n] for n in flux.input_names if n in producer and n not in states
        }
        for j in sorted(upstream):
            dependents[j].append(i)
            in_degree[i] += 1

    queue = deque(i for i in range(len(fluxes)) if in_degree[i] == 0)
    order: List[int] = []
    while queue:
        i = queue.popleft()
        order.append(i)
        for k in dependents[i]:
            in_degree[k] -= 1
            if in_degree[k] == 0:
                queue.append(k)

    if len(order) != len(fluxes):
        cyclic = [fluxes[i].name for i in range(len(fluxes)) if in_degree[i] > 0]
        raise ConstructionError(f"Cyclic flux dependency among: {', '.join(cyclic)}")
    return [fluxes[i] for i in order]


def _gather(env: Dict[str, jnp.ndarray], names: Sequence[str]) -> jnp.ndarray:
    if not names:
        return jnp.zeros((0,))
    return jnp.stack([env[n] for n in names])


def _plan(components: Sequence[AbstractFlux], meta: Bunch) -> List[Tuple]:
    """Pair each component with index arrays into the bucket's param/nn vectors."""
    param_index = {n: i for i, n in enumerate(meta.param_names)}
    nn_index = {n: i for i, n in enumerate(meta.nn_names)}
    plan = []
    for c in components:
        pidx = np.asarray([param_index[n] for n in c.param_names], dtype=int)
        nidx = tuple(nn_index[n] for n in c.nn_names)
        plan.append((c, pidx, nidx))
    return plan


def _run(plan, env, params, nn_params) -> None:
    for flux, pidx, nidx in plan:
        nn = tuple(nn_params[k] for k in nidx) if nidx else None
        out = flux.evaluate(_gather(env, flux.input_names), params[pidx], nn)
        for k, name in enumerate(flux.output_names):
            env[name] = out[k]


def build_flux_func(fluxes: Sequence[AbstractFlux], meta: Bunch) -> Callable:
    """Compile ``flux_func(values, params, nn_params, t) -> outputs``.

    Args:
        fluxes: Fluxes in evaluation order
        meta: Bunch with input_names, output_names, state_names, param_names,
            nn_names of the bucket
    """
    value_names = tuple(meta.input_names) + tuple(meta.state_names)
    output_names = tuple(meta.output_names)
    plan = _plan(fluxes, meta)

    def flux_func(values, params, nn_params=None, t=None):
        env = {name: values[i] for i, name in enumerate(value_names)}
        _run(plan, env, params, nn_params)
        if not output_names:
            return jnp.zeros((0,), dtype=values.dtype)
        return jnp.stack([env[n] for n in output_names])

    return flux_func


def required_fluxes(
    fluxes: Sequence[AbstractFlux], dfluxes: Sequence[AbstractFlux]
) -> List[AbstractFlux]:
    """Subset of ``fluxes`` (kept in order) the state fluxes transitively need."""
    producer = {n: f for f in fluxes for n in f.output_names}
    needed = set()
    pending = [n for d in dfluxes for n in d.input_names]
    while pending:
        name = pending.pop()
        flux = producer.get(name)
        if flux is None or id(flux) in needed:
            continue
        needed.add(id(flux))
        pending.extend(flux.input_names)
    return [f for f in fluxes if id(f) in needed]


def build_ode_func(
    fluxes: Sequence[AbstractFlux], dfluxes: Sequence[AbstractFlux], meta: Bunch
) -> Callable:
    """Compile ``ode_func(inputs, states, params, nn_params, t) -> dstates``.

    Only the fluxes the state fluxes depend on are evaluated.
    """
    input_names = tuple(meta.input_names)
    state_names = tuple(meta.state_names)
    plan = _plan(required_fluxes(fluxes, dfluxes), meta)
    dplan = _plan(dfluxes, meta)

    def ode_func(inputs, states, params, nn_params=None, t=None):
        env = {name: inputs[i] for i, name in enumerate(input_names)}
        env.update({name: states[i] for i, name in enumerate(state_names)})
        _run(plan, env, params, nn_params)
        dstates = []
        for dflux, pidx, nidx in dplan:
            nn = tuple(nn_params[k] for k in nidx) if nidx else None
            dstates.append(
                dflux.evaluate(_gather(env, dflux.input_names), params[pidx], nn)[0]
            )
        return jnp.stack(dstates)

    logger.debug(
        "Built ode_func for %s: %d of %d fluxes feed %d states",
        meta.get("name", "bucket"),
        len(plan),
        len(fluxes),
        len(dfluxes),
    )
    return ode_func
