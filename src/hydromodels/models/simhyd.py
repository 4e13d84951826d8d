"""SIMHYD: interception, soil moisture and groundwater in one bucket.

Forcing prcp and pet; states SMS (soil moisture) and GW (groundwater)::

    IMAX = min(INSC, pet)                         interception capacity
    INT  = min(IMAX, prcp)                        interception
    INR  = prcp - INT                             throughfall
    POT  = pet - INT                              remaining PET
    EVAP = min(10 * SMS / SMSC, POT)              soil evaporation
    RMO  = min(COEFF * exp(-SQ * SMS / SMSC), INR)  infiltration
    IRUN = INR - RMO                              infiltration excess runoff
    SRUN = SUB * SMS / SMSC * RMO                 interflow
    REC  = CRAK * SMS / SMSC * (RMO - SRUN)       recharge
    SMF  = RMO - SRUN - REC                       soil infiltration
    GWF  = step(SMS - SMSC) * SMF                 overflow of a full soil store
    BAS  = K * GW                                 baseflow
    U    = IRUN + SRUN + BAS                      streamflow

    d(SMS)/dt = SMF - EVAP - GWF
    d(GW)/dt  = REC + GWF - BAS
"""

import sympy

from ..bucket import HydroBucket
from ..core.bunch import Bunch
from ..fluxes import StateFlux, StepFunc, SymbolicFlux, parameters, variables
from ..unit import HydroUnit

prcp, pet = variables("prcp pet")
IMAX, INT, INR, POT, EVAP, RMO, IRUN = variables("IMAX INT INR POT EVAP RMO IRUN")
SRUN, REC, SMF, GWF, BAS, U = variables("SRUN REC SMF GWF BAS U")
SMS, GW = variables("SMS GW")
INSC, COEFF, SQ, SMSC, SUB, CRAK, K = parameters("INSC COEFF SQ SMSC SUB CRAK K")

# Mid-range values of the usual calibration ranges
DEFAULT_PARAMS = Bunch(
    INSC=2.5,
    COEFF=200.0,
    SQ=1.5,
    SMSC=250.0,
    SUB=0.5,
    CRAK=0.5,
    K=0.1,
)

DEFAULT_INITSTATES = Bunch(SMS=100.0, GW=10.0)


def fluxes():
    """The SIMHYD fluxes in declaration order."""
    return [
        SymbolicFlux([pet], [IMAX], sympy.Min(INSC, pet), params=[INSC]),
        SymbolicFlux([prcp, IMAX], [INT], sympy.Min(IMAX, prcp), params=[]),
        SymbolicFlux([prcp, INT], [INR], prcp - INT, params=[]),
        SymbolicFlux([pet, INT], [POT], pet - INT, params=[]),
        SymbolicFlux([POT, SMS], [EVAP], sympy.Min(10 * SMS / SMSC, POT), params=[SMSC]),
        SymbolicFlux(
            [INR, SMS],
            [RMO],
            sympy.Min(COEFF * sympy.exp(-SQ * SMS / SMSC), INR),
            params=[COEFF, SQ, SMSC],
        ),
        SymbolicFlux([INR, RMO], [IRUN], INR - RMO, params=[]),
        SymbolicFlux([RMO, SMS], [SRUN], SUB * SMS / SMSC * RMO, params=[SUB, SMSC]),
        SymbolicFlux(
            [RMO, SRUN, SMS], [REC], CRAK * SMS / SMSC * (RMO - SRUN), params=[CRAK, SMSC]
        ),
        SymbolicFlux([RMO, SRUN, REC], [SMF], RMO - SRUN - REC, params=[]),
        SymbolicFlux([SMS, SMF], [GWF], StepFunc(SMS - SMSC) * SMF, params=[SMSC]),
        SymbolicFlux([GW], [BAS], K * GW, params=[K]),
        SymbolicFlux([IRUN, SRUN, BAS], [U], IRUN + SRUN + BAS, params=[]),
    ]


def bucket(name: str = "simhyd_soil") -> HydroBucket:
    dfluxes = [
        StateFlux(SMS, inflows=[SMF], outflows=[EVAP, GWF]),
        StateFlux(GW, inflows=[REC, GWF], outflows=[BAS]),
    ]
    return HydroBucket(name, fluxes(), dfluxes)


def build_unit(name: str = "simhyd") -> HydroUnit:
    return HydroUnit(name, [bucket()])


def default_pas() -> Bunch:
    """Parameter container with the default parameters and initial states."""
    return Bunch(params=DEFAULT_PARAMS.copy(), initstates=DEFAULT_INITSTATES.copy())
