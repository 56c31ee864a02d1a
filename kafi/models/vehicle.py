"""Planar vehicle model fusing accelerometer, optical speed sensor and yaw."""

from dataclasses import dataclass
from typing import Optional
import numpy as np

from ..filters.jacobian_function import JacobianFunction
from .identity import identity_derivative

# state:       x, y, ax, ay, vx, vy, phi
# observation:       ax, ay, vx, vy, phi
STATE_LABELS = ('x', 'y', 'ax', 'ay', 'vx', 'vy', 'phi')
OBSERVATION_LABELS = ('ax', 'ay', 'vx', 'vy', 'phi')

@dataclass
class VehicleParams:
    dt: float = 0.001  # 1 kHz sample rate
    acceleration_noise: float = 0.1
    velocity_noise: float = 0.1
    heading_noise: float = 0.1
    accelerometer_variance: float = 0.7
    speed_sensor_variance: float = 0.45
    heading_variance: float = 0.001

class VehicleModel:
    """
    Constant-acceleration vehicle in body coordinates with a fixed heading.

    Position is integrated in the world frame by rotating the body-frame
    displacement by ``phi``; accelerations and heading are carried over
    unchanged and velocities are integrated from the accelerations.

    Attributes:
        params (VehicleParams): Sample time and noise levels
    """

    state_dim = len(STATE_LABELS)
    observation_dim = len(OBSERVATION_LABELS)

    def __init__(self, params: Optional[VehicleParams] = None):
        self.params = params if params is not None else VehicleParams()
        if self.params.dt <= 0:
            raise ValueError("Time step must be positive")

    def _displacement(self, state: np.ndarray):
        """Body-frame displacement (dx, dy) over one sample."""
        t = self.params.dt
        t2 = t * t
        _, _, ax, ay, vx, vy, _ = state
        return 0.5 * ax * t2 + vx * t, 0.5 * ay * t2 + vy * t

    def _transition(self, state: np.ndarray, out: np.ndarray) -> None:
        t = self.params.dt
        x, y, ax, ay, vx, vy, phi = (float(value) for value in state)
        dx, dy = self._displacement((x, y, ax, ay, vx, vy, phi))
        c, s = np.cos(phi), np.sin(phi)

        out[0] = dx * c + dy * s + x
        out[1] = -dx * s + dy * c + y
        out[2] = ax
        out[3] = ay
        out[4] = vx + ax * t
        out[5] = vy + ay * t
        out[6] = phi

    def _transition_partials(self):
        t = self.params.dt
        t2 = t * t
        one = identity_derivative(1.0)
        zero = identity_derivative(0.0)
        dt_const = identity_derivative(t)

        # first row, x update
        def df0_dax(s): return 0.5 * t2 * np.cos(s[6])
        def df0_day(s): return 0.5 * t2 * np.sin(s[6])
        def df0_dvx(s): return t * np.cos(s[6])
        def df0_dvy(s): return t * np.sin(s[6])

        def df0_dphi(s):
            dx, dy = self._displacement(s)
            return np.cos(s[6]) * dy - np.sin(s[6]) * dx

        # second row, y update
        def df1_dax(s): return -0.5 * t2 * np.sin(s[6])
        def df1_day(s): return 0.5 * t2 * np.cos(s[6])
        def df1_dvx(s): return -t * np.sin(s[6])
        def df1_dvy(s): return t * np.cos(s[6])

        def df1_dphi(s):
            dx, dy = self._displacement(s)
            return -np.cos(s[6]) * dx - np.sin(s[6]) * dy

        return [
            #  x     y     ax        ay        vx       vy       phi
            [one,  zero, df0_dax,  df0_day,  df0_dvx, df0_dvy, df0_dphi],
            [zero, one,  df1_dax,  df1_day,  df1_dvx, df1_dvy, df1_dphi],
            [zero, zero, one,      zero,     zero,    zero,    zero],
            [zero, zero, zero,     one,      zero,    zero,    zero],
            [zero, zero, dt_const, zero,     one,     zero,    zero],
            [zero, zero, zero,     dt_const, zero,    one,     zero],
            [zero, zero, zero,     zero,     zero,    zero,    one],
        ]

    @staticmethod
    def _observe(state: np.ndarray, out: np.ndarray) -> None:
        out[:] = state[2:7]

    def transition(self) -> JacobianFunction:
        """State transition f: R^7 -> R^7 with its analytic Jacobian."""
        return JacobianFunction(self._transition, self._transition_partials(),
                                input_dim=self.state_dim, output_dim=self.state_dim)

    def observation(self) -> JacobianFunction:
        """Observation model h: R^7 -> R^5, selecting (ax, ay, vx, vy, phi)."""
        one = identity_derivative(1.0)
        zero = identity_derivative(0.0)
        partials = [[one if col == row + 2 else zero for col in range(self.state_dim)]
                    for row in range(self.observation_dim)]
        return JacobianFunction(self._observe, partials,
                                input_dim=self.state_dim, output_dim=self.observation_dim)

    def default_process_noise(self) -> np.ndarray:
        """Q with no noise on the integrated position."""
        p = self.params
        return np.diag([0.0, 0.0,
                        p.acceleration_noise, p.acceleration_noise,
                        p.velocity_noise, p.velocity_noise,
                        p.heading_noise])

    def default_sensor_noise(self) -> np.ndarray:
        p = self.params
        return np.diag([p.accelerometer_variance, p.accelerometer_variance,
                        p.speed_sensor_variance, p.speed_sensor_variance,
                        p.heading_variance])

    def initial_state(self, observation: np.ndarray) -> np.ndarray:
        """Start at the origin with the sensed accelerations, velocities and heading."""
        observation = np.asarray(observation, dtype=float).reshape(-1)
        if observation.shape != (self.observation_dim,):
            raise ValueError(f"Observation must have {self.observation_dim} elements")
        return np.concatenate([np.zeros(2), observation])
