"""Non-owning reference to the most recent observation."""

from typing import Optional
import weakref
import numpy as np

class WeakObservationHandle:
    """Weak reference to an observation vector owned by its producer.

    The filter never extends the lifetime of an observation: once the
    producer drops its last reference, ``try_lock`` returns ``None``.
    """

    def __init__(self, observation: Optional[np.ndarray] = None):
        self._ref = None
        if observation is not None:
            self.reset(observation)

    def reset(self, observation: np.ndarray) -> None:
        """Point the handle at a new observation."""
        self._ref = weakref.ref(observation)

    def try_lock(self) -> Optional[np.ndarray]:
        """Return the observation if it is still alive, else ``None``."""
        if self._ref is None:
            return None
        return self._ref()

    @property
    def expired(self) -> bool:
        return self.try_lock() is None
