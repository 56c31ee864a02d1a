"""Filter implementations for state estimation."""

from .base import BaseFilter, FilterResult, FilterSnapshot
from .jacobian_function import JacobianFunction
from .observation import WeakObservationHandle
from .ekf import ExtendedKalmanFilter

__all__ = [
    'BaseFilter',
    'FilterResult',
    'FilterSnapshot',
    'JacobianFunction',
    'WeakObservationHandle',
    'ExtendedKalmanFilter'
]
