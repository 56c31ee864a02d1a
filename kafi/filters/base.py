"""Base class for Kalman filter implementations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import NamedTuple, Optional
import logging
import numpy as np

from ..config import DimensionValidator
from ..exceptions import DimensionMismatchError, ObservationExpiredError
from .observation import WeakObservationHandle

class FilterResult(NamedTuple):
    """Copies of the filter matrices taken at the end of a step."""
    state: np.ndarray
    prediction_error: np.ndarray
    gain: np.ndarray

@dataclass(frozen=True, eq=False)
class FilterSnapshot:
    """Read-only diagnostic view of a filter."""
    update_count: int
    prediction_count: int
    state: np.ndarray
    observation: Optional[np.ndarray]
    prediction_error: np.ndarray
    gain: np.ndarray

    def __str__(self) -> str:
        line = "============================\n"

        def block(tag: str, name: str, value) -> str:
            body = "(none)" if value is None else np.array2string(np.atleast_2d(value), precision=6)
            return f" [{tag}] {name}:\n{body}\n{line}"

        observation = None if self.observation is None else self.observation.reshape(-1, 1)
        return ("Kafi:\n"
                f"  Update      # calls: {self.update_count}\n"
                f"  Predictions # calls: {self.prediction_count}\n"
                + block("S", "state", self.state.reshape(-1, 1))
                + block("O", "observation", observation)
                + block("P", "prediction_error", self.prediction_error)
                + block("G", "gain", self.gain))

class BaseFilter(ABC):
    """Abstract base class for filter implementations.

    Owns the state, the prediction error covariance, the gain, the call
    counters and the latest-wins observation slot. Subclasses provide the
    prediction and update formulae; ``step()`` is the only public transition.
    """

    def __init__(self,
                 state_dim: int,
                 observation_dim: int,
                 starting_state: np.ndarray,
                 prediction_error: Optional[np.ndarray] = None):
        self.state_dim = state_dim
        self.observation_dim = observation_dim
        self.validator = DimensionValidator(state_dim, observation_dim)

        self._state = self.validator.state(starting_state, "starting_state")
        if prediction_error is None:
            self._prediction_error = np.eye(state_dim)
        else:
            self._prediction_error = self.validator.process_matrix(prediction_error, "prediction_error")
        self._gain = np.zeros((state_dim, observation_dim))

        self._observation = WeakObservationHandle()
        self._new_data_available = False
        self._prediction_count = 0
        self._update_count = 0

    def __copy__(self):
        raise TypeError(f"{type(self).__name__} owns its matrices and cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError(f"{type(self).__name__} owns its matrices and cannot be copied")

    @abstractmethod
    def _apply_prediction(self) -> None:
        """Prediction step to be implemented by concrete classes."""
        pass

    @abstractmethod
    def _apply_update(self, observation: np.ndarray) -> None:
        """Update step to be implemented by concrete classes."""
        pass

    def set_current_observation(self, observation: np.ndarray) -> None:
        """
        Register the observation used by the next ``step()``.

        Only a weak reference is kept, so the caller must hold on to the
        array until ``step()`` has run. Registering several observations
        between two steps is allowed; the last one wins.

        Args:
            observation: Array of shape (M,) or (M, 1)
        """
        if not isinstance(observation, np.ndarray):
            raise TypeError(f"observation must be a numpy array, got {type(observation).__name__}")
        if observation.shape not in ((self.observation_dim,), (self.observation_dim, 1)):
            raise DimensionMismatchError(
                f"observation must have shape ({self.observation_dim},), got {observation.shape}")

        self._observation.reset(observation)
        self._new_data_available = True

    def step(self) -> FilterResult:
        """
        Run one prediction and, if a new observation was registered, one update.

        Returns:
            FilterResult: copies of (state, prediction_error, gain)
        """
        self._apply_prediction()
        if self._consume_new_data():
            self._apply_update(self._locked_observation())

        logging.debug("%s", self)
        return self._result()

    def _consume_new_data(self) -> bool:
        """Return the new-data flag and clear it."""
        if self._new_data_available:
            self._new_data_available = False
            return True
        return False

    def _locked_observation(self) -> np.ndarray:
        observation = self._observation.try_lock()
        if observation is None:
            message = "The registered observation was released before step() consumed it"
            logging.error(f"Error in {type(self).__name__} update: {message}")
            raise ObservationExpiredError(message)
        return observation.reshape(self.observation_dim)

    def _result(self) -> FilterResult:
        return FilterResult(self._state.copy(),
                            self._prediction_error.copy(),
                            self._gain.copy())

    @property
    def state(self) -> np.ndarray:
        """Get current state estimate."""
        return self._state.copy()

    @property
    def prediction_error(self) -> np.ndarray:
        """Get current state covariance."""
        return self._prediction_error.copy()

    @property
    def gain(self) -> np.ndarray:
        """Get the gain of the last update (zeros before the first one)."""
        return self._gain.copy()

    @property
    def prediction_count(self) -> int:
        return self._prediction_count

    @property
    def update_count(self) -> int:
        return self._update_count

    @property
    def new_data_available(self) -> bool:
        return self._new_data_available

    def snapshot(self) -> FilterSnapshot:
        """Capture counters, state, last observation, covariance and gain."""
        observation = self._observation.try_lock()
        return FilterSnapshot(
            update_count=self._update_count,
            prediction_count=self._prediction_count,
            state=self._state.copy(),
            observation=None if observation is None else observation.reshape(-1).copy(),
            prediction_error=self._prediction_error.copy(),
            gain=self._gain.copy(),
        )

    def __str__(self) -> str:
        return str(self.snapshot())
