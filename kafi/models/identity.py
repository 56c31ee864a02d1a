"""Identity and broadcast building blocks for JacobianFunction models."""

import numpy as np

from ..filters.jacobian_function import JacobianFunction, PartialDerivative, VectorFunction

def create_identity(n: int) -> np.ndarray:
    """Return the n x n identity matrix."""
    if n < 1:
        raise ValueError(f"Identity size must be positive, got {n}")
    return np.eye(n)

def identity_derivative(value: float) -> PartialDerivative:
    """Constant partial derivative, typically 0 or 1."""
    value = float(value)

    def derivative(state: np.ndarray) -> float:
        return value

    return derivative

def identity_broadcast_function(n: int, m: int) -> VectorFunction:
    """
    Function copying the first state entry into every one of the m outputs.

    With n == m == 1 this is the plain identity; with n == 1 and m > 1 it
    models m sensors observing the same scalar state.
    """
    if n < 1 or m < 1:
        raise ValueError(f"Dimensions must be positive, got n={n}, m={m}")

    def broadcast(state: np.ndarray, out: np.ndarray) -> None:
        out[:] = state[0]

    return broadcast

def create_identity_jacobian(n: int, m: int) -> JacobianFunction:
    """
    Pair ``identity_broadcast_function(n, m)`` with its Jacobian.

    The Jacobian has ones in the first column and zeros everywhere else.
    """
    one = identity_derivative(1.0)
    zero = identity_derivative(0.0)
    partials = [[one if col == 0 else zero for col in range(n)] for _ in range(m)]
    return JacobianFunction(identity_broadcast_function(n, m), partials,
                            input_dim=n, output_dim=m)

def create_identity_mapping(n: int) -> JacobianFunction:
    """Element-wise identity R^n -> R^n with the identity matrix as Jacobian."""
    one = identity_derivative(1.0)
    zero = identity_derivative(0.0)

    def identity(state: np.ndarray, out: np.ndarray) -> None:
        out[:] = state

    partials = [[one if row == col else zero for col in range(n)] for row in range(n)]
    return JacobianFunction(identity, partials, input_dim=n, output_dim=n)
