import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

from kafi import ExtendedKalmanFilter, JacobianFunction
from kafi.models import create_identity_jacobian

@pytest.fixture
def temperature_filter():
    """N = 1 state observed by M = 2 thermometers."""
    return ExtendedKalmanFilter(create_identity_jacobian(1, 1),
                                create_identity_jacobian(1, 2),
                                np.array([20.64]),
                                np.array([[0.05]]),
                                np.array([[0.64, 0.0],
                                          [0.0, 0.64]]))

class CallCounter:
    def __init__(self):
        self.evaluations = 0
        self.derivatives = 0

@pytest.fixture
def counted_broadcast():
    """Broadcast h: R^1 -> R^2 that records how often it is evaluated."""
    counter = CallCounter()

    def h(state, out):
        counter.evaluations += 1
        out[:] = state[0]

    def one(state):
        counter.derivatives += 1
        return 1.0

    return JacobianFunction(h, [[one], [one]]), counter
