"""kafi: Extended Kalman Filter with analytic Jacobians and preallocated state."""

from . import config
from . import exceptions
from . import filters
from . import models
from . import simulation
from . import visualization
from .config import CovarianceUpdateMethod, FilterConfig, SimulationConfig
from .exceptions import (DimensionMismatchError, KafiError, ObservationExpiredError,
                         SingularInnovationError)
from .filters import ExtendedKalmanFilter, FilterResult, JacobianFunction

__version__ = "0.1.0"
