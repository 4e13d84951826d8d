"""Exp-Hydro: a two-bucket snow and soil-water model.

Snow bucket (forcing temp, lday, prcp; state snowpack)::

    pet       = hamon(temp, lday)
    snowfall  = step(Tmin - temp) * prcp
    rainfall  = step(temp - Tmin) * prcp
    melt      = step(temp - Tmax) * step(snowpack) * min(snowpack, Df * (temp - Tmax))
    d(snowpack)/dt = snowfall - melt

Soil bucket (reads pet, rainfall, melt; state soilwater)::

    evap        = step(soilwater) * pet * min(1, soilwater / Smax)
    baseflow    = step(soilwater) * Qmax * exp(-f * max(0, Smax - soilwater))
    surfaceflow = max(0, soilwater - Smax)
    flow        = baseflow + surfaceflow
    d(soilwater)/dt = rainfall + melt - evap - flow

``step`` is the smooth step :func:`hydromodels.functions.step_func`.
"""

import sympy

from ..bucket import HydroBucket
from ..core.bunch import Bunch
from ..fluxes import StateFlux, StepFunc, SymbolicFlux, parameters, variables
from ..unit import HydroUnit

temp, lday, prcp, pet, snowfall, rainfall, melt, snowpack = variables(
    "temp lday prcp pet snowfall rainfall melt snowpack"
)
soilwater, evap, baseflow, surfaceflow, flow = variables(
    "soilwater evap baseflow surfaceflow flow"
)
Tmin, Tmax, Df, Smax, Qmax, f = parameters("Tmin Tmax Df Smax Qmax f")

# Calibrated values for the 01013500 catchment
DEFAULT_PARAMS = Bunch(
    f=0.0167,
    Smax=1709.46,
    Qmax=18.47,
    Df=2.674,
    Tmax=0.176,
    Tmin=-2.093,
)

DEFAULT_INITSTATES = Bunch(snowpack=0.0, soilwater=1303.0)


def hamon_expr(temp_, lday_):
    return (
        29.8
        * lday_
        * 24
        * 0.611
        * sympy.exp(17.3 * temp_ / (temp_ + 237.3))
        / (temp_ + 273.2)
    )


def snow_bucket(name: str = "exphydro_snow") -> HydroBucket:
    fluxes = [
        SymbolicFlux([temp, lday], [pet], hamon_expr(temp, lday), params=[]),
        SymbolicFlux(
            [prcp, temp],
            [snowfall, rainfall],
            [StepFunc(Tmin - temp) * prcp, StepFunc(temp - Tmin) * prcp],
            params=[Tmin],
        ),
        SymbolicFlux(
            [snowpack, temp],
            [melt],
            StepFunc(temp - Tmax)
            * StepFunc(snowpack)
            * sympy.Min(snowpack, Df * (temp - Tmax)),
            params=[Tmax, Df],
        ),
    ]
    dfluxes = [StateFlux(snowpack, inflows=[snowfall], outflows=[melt])]
    return HydroBucket(name, fluxes, dfluxes)


def soil_bucket(name: str = "exphydro_soil") -> HydroBucket:
    fluxes = [
        SymbolicFlux(
            [soilwater, pet],
            [evap],
            StepFunc(soilwater) * pet * sympy.Min(1, soilwater / Smax),
            params=[Smax],
        ),
        SymbolicFlux(
            [soilwater],
            [baseflow],
            StepFunc(soilwater) * Qmax * sympy.exp(-f * sympy.Max(0, Smax - soilwater)),
            params=[Smax, Qmax, f],
        ),
        SymbolicFlux(
            [soilwater], [surfaceflow], sympy.Max(0, soilwater - Smax), params=[Smax]
        ),
        SymbolicFlux([baseflow, surfaceflow], [flow], baseflow + surfaceflow, params=[]),
    ]
    dfluxes = [
        StateFlux(soilwater, inflows=[rainfall, melt], outflows=[evap, flow])
    ]
    return HydroBucket(name, fluxes, dfluxes)


def build_unit(name: str = "exphydro") -> HydroUnit:
    """Snow bucket followed by soil bucket.

    Result rows: snowpack, pet, snowfall, rainfall, melt, soilwater, evap,
    baseflow, surfaceflow, flow.
    """
    return HydroUnit(name, [snow_bucket(), soil_bucket()])


def default_pas() -> Bunch:
    """Parameter container with the default parameters and initial states."""
    return Bunch(params=DEFAULT_PARAMS.copy(), initstates=DEFAULT_INITSTATES.copy())
