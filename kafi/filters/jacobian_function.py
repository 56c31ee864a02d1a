"""A vector function bundled with its analytic Jacobian."""

from typing import Callable, Optional, Sequence, Tuple
import numpy as np

from ..exceptions import DimensionMismatchError

#: ``func(state, out)`` writes f(state) into ``out``; both may be the same array.
VectorFunction = Callable[[np.ndarray, np.ndarray], None]
#: ``d(state)`` returns one entry of the Jacobian.
PartialDerivative = Callable[[np.ndarray], float]

class JacobianFunction:
    """
    Immutable pair of a function f: R^N -> R^M and its M x N partial derivatives.

    Nothing is allocated per call: both ``evaluate`` and ``jacobian`` write into
    caller-owned arrays, which lets the filter reuse its scratch buffers on
    every step.

    Args:
        func: ``func(state, out)`` writing the M outputs into ``out``.
            ``state`` may be the very array passed as ``out``, so copy the
            inputs first if the function reads them after writing.
        partials: M rows of N callables; ``partials[r][c](state)`` is
            d f_r / d x_c evaluated at ``state``.
        input_dim: Expected N, checked against the grid when given.
        output_dim: Expected M, checked against the grid when given.

    Example:
        >>> broadcast = JacobianFunction(
        ...     lambda s, out: out.fill(s[0]),
        ...     [[lambda s: 1.0], [lambda s: 1.0]])
        >>> broadcast.shape
        (2, 1)
    """

    __slots__ = ('_func', '_partials', '_input_dim', '_output_dim')

    def __init__(self,
                 func: VectorFunction,
                 partials: Sequence[Sequence[PartialDerivative]],
                 input_dim: Optional[int] = None,
                 output_dim: Optional[int] = None):
        if not callable(func):
            raise TypeError("func must be callable")

        grid = tuple(tuple(row) for row in partials)
        if not grid or not grid[0]:
            raise DimensionMismatchError("partials must contain at least one row and one column")

        columns = len(grid[0])
        for index, row in enumerate(grid):
            if len(row) != columns:
                raise DimensionMismatchError(
                    f"partials row {index} has {len(row)} entries, expected {columns}")
            for col, derivative in enumerate(row):
                if not callable(derivative):
                    raise TypeError(f"partials[{index}][{col}] must be callable")

        if output_dim is not None and output_dim != len(grid):
            raise DimensionMismatchError(
                f"partials has {len(grid)} rows but output_dim is {output_dim}")
        if input_dim is not None and input_dim != columns:
            raise DimensionMismatchError(
                f"partials has {columns} columns but input_dim is {input_dim}")

        object.__setattr__(self, '_func', func)
        object.__setattr__(self, '_partials', grid)
        object.__setattr__(self, '_input_dim', columns)
        object.__setattr__(self, '_output_dim', len(grid))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __copy__(self):
        raise TypeError(f"{type(self).__name__} cannot be copied, pass it by reference")

    def __deepcopy__(self, memo):
        raise TypeError(f"{type(self).__name__} cannot be copied, pass it by reference")

    def __reduce__(self):
        raise TypeError(f"{type(self).__name__} cannot be copied, pass it by reference")

    @property
    def input_dim(self) -> int:
        """N, the length of the input vector."""
        return self._input_dim

    @property
    def output_dim(self) -> int:
        """M, the length of the output vector."""
        return self._output_dim

    @property
    def shape(self) -> Tuple[int, int]:
        """Shape ``(M, N)`` of the Jacobian."""
        return self._output_dim, self._input_dim

    def evaluate(self, state: np.ndarray, out: np.ndarray) -> np.ndarray:
        """Write f(state) into ``out`` and return ``out``."""
        self._func(state, out)
        return out

    __call__ = evaluate

    def jacobian(self, state: np.ndarray, out: np.ndarray) -> np.ndarray:
        """Evaluate every partial derivative at ``state`` into ``out`` (M x N)."""
        # TODO: rows are independent, evaluate them in a thread pool for large M x N
        for row, derivatives in enumerate(self._partials):
            for col, derivative in enumerate(derivatives):
                out[row, col] = derivative(state)
        return out

    def __repr__(self) -> str:
        return f"{type(self).__name__}(input_dim={self._input_dim}, output_dim={self._output_dim})"
