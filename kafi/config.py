"""Configuration classes and shape validation for the kafi filters."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import numpy as np

from .exceptions import DimensionMismatchError

class CovarianceUpdateMethod(Enum):
    """Methods for covariance update in Kalman filter."""
    STANDARD = "standard"
    JOSEPH = "joseph"

@dataclass
class FilterConfig:
    """Numerical options for the Extended Kalman Filter."""
    covariance_update: CovarianceUpdateMethod = CovarianceUpdateMethod.STANDARD
    symmetrize: bool = False
    max_condition_number: float = 1e12

    def __post_init__(self):
        # accepts the enum value as a plain string, e.g. "joseph"
        self.covariance_update = CovarianceUpdateMethod(self.covariance_update)
        if self.max_condition_number <= 1.0:
            raise ValueError("max_condition_number must be greater than 1")

@dataclass
class SimulationConfig:
    """Configuration for driving a filter over an observation stream."""
    observation_interval: int = 1  # register an observation every k-th step
    log_interval: int = 1000

    def __post_init__(self):
        if self.observation_interval < 1:
            raise ValueError("observation_interval must be at least 1")
        if self.log_interval < 1:
            raise ValueError("log_interval must be at least 1")

class DimensionValidator:
    """Shape and finiteness checks for one filter instance.

    Every helper returns a fresh ``float64`` copy so the caller never shares
    storage with the filter.
    """

    def __init__(self, state_dim: int, observation_dim: int):
        if state_dim < 1 or observation_dim < 1:
            raise DimensionMismatchError(
                f"Dimensions must be positive, got N={state_dim}, M={observation_dim}")
        self.state_dim = state_dim
        self.observation_dim = observation_dim

    @staticmethod
    def _as_vector(value, length: int, name: str) -> np.ndarray:
        array = np.array(value, dtype=float)
        if array.shape not in ((length,), (length, 1)):
            raise DimensionMismatchError(
                f"{name} must have shape ({length},) or ({length}, 1), got {array.shape}")
        return array.reshape(length)

    @staticmethod
    def _as_matrix(value, rows: int, cols: int, name: str) -> np.ndarray:
        array = np.array(value, dtype=float)
        if array.shape != (rows, cols):
            raise DimensionMismatchError(
                f"{name} must have shape ({rows}, {cols}), got {array.shape}")
        return array

    @staticmethod
    def _require_finite(array: np.ndarray, name: str) -> np.ndarray:
        if not np.all(np.isfinite(array)):
            raise ValueError(f"{name} contains NaN or infinite values")
        return array

    def state(self, value, name: str = "state") -> np.ndarray:
        """Validate an N-vector."""
        return self._require_finite(self._as_vector(value, self.state_dim, name), name)

    def process_matrix(self, value, name: str = "process_noise") -> np.ndarray:
        """Validate an N x N matrix."""
        return self._require_finite(
            self._as_matrix(value, self.state_dim, self.state_dim, name), name)

    def sensor_matrix(self, value, name: str = "sensor_noise") -> np.ndarray:
        """Validate an M x M matrix."""
        return self._require_finite(
            self._as_matrix(value, self.observation_dim, self.observation_dim, name), name)

    def jacobian_function(self, function, input_dim: int, output_dim: int,
                          name: Optional[str] = None) -> None:
        """Check that a JacobianFunction maps input_dim -> output_dim."""
        name = name or "function"
        if function.shape != (output_dim, input_dim):
            raise DimensionMismatchError(
                f"{name} must map {input_dim} -> {output_dim} dimensions, "
                f"got {function.input_dim} -> {function.output_dim}")
