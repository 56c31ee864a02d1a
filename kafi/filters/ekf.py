"""Extended Kalman Filter with preallocated working memory."""

from typing import Optional
import logging
import numpy as np
import scipy.linalg

from .base import BaseFilter
from .jacobian_function import JacobianFunction
from ..config import CovarianceUpdateMethod, FilterConfig
from ..exceptions import SingularInnovationError

class ExtendedKalmanFilter(BaseFilter):
    """
    Extended Kalman Filter for a fixed state dimension N and observation dimension M.

    Every call to ``step()`` predicts with the state transition ``f``; when an
    observation was registered through ``set_current_observation`` since the
    previous step it is then fused through the observation model ``h``.

    All intermediate matrices are allocated once here and reused, so stepping
    the filter does not grow its memory footprint.

    Args:
        f: State transition, a JacobianFunction mapping N -> N
        h: Observation model, a JacobianFunction mapping N -> M
        starting_state: Initial state estimate (N,)
        process_noise: Q (N x N)
        sensor_noise: R (M x M)
        prediction_error: Initial P (N x N), identity when omitted
        config: Numerical options

    Example:
        >>> from kafi.models import create_identity_jacobian
        >>> ekf = ExtendedKalmanFilter(create_identity_jacobian(1, 1),
        ...                            create_identity_jacobian(1, 2),
        ...                            np.array([20.64]),
        ...                            np.array([[0.05]]),
        ...                            np.eye(2) * 0.64)
        >>> observation = np.array([18.625, 20.0])
        >>> ekf.set_current_observation(observation)
        >>> state, P, G = ekf.step()
    """

    def __init__(self,
                 f: JacobianFunction,
                 h: JacobianFunction,
                 starting_state: np.ndarray,
                 process_noise: np.ndarray,
                 sensor_noise: np.ndarray,
                 prediction_error: Optional[np.ndarray] = None,
                 config: Optional[FilterConfig] = None):
        for name, function in (("f", f), ("h", h)):
            if not isinstance(function, JacobianFunction):
                raise TypeError(f"{name} must be a JacobianFunction, got {type(function).__name__}")

        super().__init__(f.input_dim, h.output_dim, starting_state, prediction_error)
        self.config = config if config is not None else FilterConfig()

        N, M = self.state_dim, self.observation_dim
        self.validator.jacobian_function(f, N, N, "state transition f")
        self.validator.jacobian_function(h, N, M, "observation model h")
        self._f = f
        self._h = h

        self._process_noise = self.validator.process_matrix(process_noise)
        self._sensor_noise = self.validator.sensor_matrix(sensor_noise)
        self._identity = np.eye(N)
        for constant in (self._process_noise, self._sensor_noise, self._identity):
            constant.setflags(write=False)

        # scratch space, sized once
        self._f_jacobian_temp = np.zeros((N, N))
        self._h_temp = np.zeros(M)
        self._h_jacobian_temp = np.zeros((M, N))
        self._nxn_temp = np.zeros((N, N))
        self._nxn_temp2 = np.zeros((N, N))
        self._nxm_temp = np.zeros((N, M))
        self._innovation_covariance = np.zeros((M, M))
        self._innovation = np.zeros(M)
        self._correction = np.zeros(N)
        self._next_state = np.zeros(N)
        self._mxn_temp = np.zeros((M, N))
        self._innovation_scale = np.zeros(M)
        self._innovation_factor = np.zeros((M, M))
        self._pocon, = scipy.linalg.get_lapack_funcs(("pocon",), (self._innovation_factor,))

        logging.debug(f"ExtendedKalmanFilter created with N={N}, M={M}, "
                      f"covariance update {self.config.covariance_update.value}")

    @property
    def process_noise(self) -> np.ndarray:
        return self._process_noise

    @property
    def sensor_noise(self) -> np.ndarray:
        return self._sensor_noise

    def _apply_prediction(self) -> None:
        """F = jac_f(s); P = F P F^T + Q; s = f(s)."""
        try:
            # F must be taken at the state before the transition
            F = self._f.jacobian(self._state, self._f_jacobian_temp)

            np.matmul(F, self._prediction_error, out=self._nxn_temp)
            P_next = np.matmul(self._nxn_temp, F.T, out=self._nxn_temp2)
            P_next += self._process_noise
            s_next = self._f.evaluate(self._state, self._next_state)

            # commit only once f and its partials have all succeeded
            np.copyto(self._prediction_error, P_next)
            np.copyto(self._state, s_next)

            if self.config.symmetrize:
                self._symmetrize()
            self._prediction_count += 1

        except Exception as e:
            logging.error(f"Error in ExtendedKalmanFilter prediction: {str(e)}")
            raise

    def _apply_update(self, observation: np.ndarray) -> None:
        """
        Fuse ``observation`` into the predicted state.

        h = h(s); H = jac_h(s); S = H P H^T + R; G = P H^T S^-1;
        s = s + G (o - h); P = (I - G H) P
        """
        try:
            h = self._h.evaluate(self._state, self._h_temp)
            H = self._h.jacobian(self._state, self._h_jacobian_temp)
            P = self._prediction_error

            P_Ht = np.matmul(P, H.T, out=self._nxm_temp)
            S = np.matmul(H, P_Ht, out=self._innovation_covariance)
            S += self._sensor_noise
            self._solve_gain(S, P_Ht)

            np.subtract(observation, h, out=self._innovation)
            np.matmul(self._gain, self._innovation, out=self._correction)
            self._state += self._correction

            self._update_covariance(H)
            if self.config.symmetrize:
                self._symmetrize()
            self._update_count += 1

        except Exception as e:
            logging.error(f"Error in ExtendedKalmanFilter update: {str(e)}")
            raise

    def _singular(self, message: str, condition_number: float = float('inf')) -> SingularInnovationError:
        return SingularInnovationError(message, result=self._result(),
                                       condition_number=condition_number)

    def _solve_gain(self, S: np.ndarray, P_Ht: np.ndarray) -> None:
        """
        Write G = P H^T S^-1 into the gain, or raise SingularInnovationError.

        S is scaled to unit diagonal, C = D^-1/2 S D^-1/2, before the Cholesky
        factorization, so the condition number does not depend on the sensor
        units. The gain is only written once every check has passed.
        """
        scale = self._innovation_scale
        np.copyto(scale, np.diagonal(S))
        if not np.all(np.isfinite(scale)) or np.any(scale <= 0.0):
            raise self._singular("Innovation covariance has a non-positive diagonal")
        np.sqrt(scale, out=scale)
        np.reciprocal(scale, out=scale)

        C = self._innovation_factor
        np.multiply(S, scale[:, np.newaxis], out=C)
        C *= scale
        anorm = np.linalg.norm(C, 1)

        try:
            factor, lower = scipy.linalg.cho_factor(C, lower=False, overwrite_a=True)
        except (np.linalg.LinAlgError, ValueError) as e:
            raise self._singular(
                f"Innovation covariance is not positive definite: {str(e)}") from e

        rcond, _ = self._pocon(factor, anorm)
        condition_number = 1.0 / rcond if rcond > 0.0 else float('inf')
        if not np.isfinite(condition_number) or condition_number > self.config.max_condition_number:
            raise self._singular(
                f"Innovation covariance is singular (condition number {condition_number:.3e})",
                condition_number)

        # G^T = D^-1/2 C^-1 D^-1/2 (P H^T)^T
        rhs = np.multiply(P_Ht.T, scale[:, np.newaxis], out=self._mxn_temp)
        G_t = scipy.linalg.cho_solve((factor, lower), rhs, overwrite_b=True)
        G_t *= scale[:, np.newaxis]
        if not np.all(np.isfinite(G_t)):
            raise self._singular("Kalman gain is not finite", condition_number)
        np.copyto(self._gain, G_t.T)

    def _update_covariance(self, H: np.ndarray) -> None:
        P = self._prediction_error
        G = self._gain

        I_GH = np.matmul(G, H, out=self._nxn_temp)
        np.subtract(self._identity, I_GH, out=I_GH)

        if self.config.covariance_update is CovarianceUpdateMethod.JOSEPH:
            # P = (I - G H) P (I - G H)^T + G R G^T
            np.matmul(I_GH, P, out=self._nxn_temp2)
            np.matmul(self._nxn_temp2, I_GH.T, out=P)
            G_R = np.matmul(G, self._sensor_noise, out=self._nxm_temp)
            P += np.matmul(G_R, G.T, out=self._nxn_temp2)
        else:
            np.matmul(I_GH, P, out=self._nxn_temp2)
            np.copyto(P, self._nxn_temp2)

    def _symmetrize(self) -> None:
        P = self._prediction_error
        np.add(P, P.T, out=self._nxn_temp2)
        np.multiply(self._nxn_temp2, 0.5, out=P)
