"""Parameter calibration: metrics, cost function and an Optax loop."""

from .metrics import LOSS_FUNCTIONS, get_loss_function, kge, mse, nse, rmse
from .objective import CalibrationObjective
from .optax import OptaxCalibrator

__all__ = [
    "CalibrationObjective",
    "OptaxCalibrator",
    "LOSS_FUNCTIONS",
    "get_loss_function",
    "kge",
    "mse",
    "nse",
    "rmse",
]
