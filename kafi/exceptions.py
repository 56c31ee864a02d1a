"""Exceptions raised by the kafi filters."""

import numpy as np

class KafiError(Exception):
    """Base class for all kafi errors."""

class DimensionMismatchError(KafiError, ValueError):
    """A matrix, vector or function does not agree with the filter dimensions."""

class ObservationExpiredError(KafiError, RuntimeError):
    """An update was requested but the registered observation no longer exists.

    The filter only keeps a weak reference to the observation, so the producer
    must keep it alive until the next ``step()`` has consumed it.
    """

class SingularInnovationError(KafiError, np.linalg.LinAlgError):
    """The innovation covariance ``H P H^T + R`` could not be inverted.

    Raised after the prediction of the failing step has been applied and
    before any part of the update touched the filter. ``result`` holds the
    post-prediction ``FilterResult`` so the caller can decide to skip the
    update, inflate the sensor noise or abort.
    """

    def __init__(self, message: str, result=None, condition_number: float = float('inf')):
        super().__init__(message)
        self.result = result
        self.condition_number = condition_number
