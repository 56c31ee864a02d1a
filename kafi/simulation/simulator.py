"""Simulation utilities for running a filter over an observation stream."""

import numpy as np
from typing import Dict, Optional
import logging
from pathlib import Path

from ..config import SimulationConfig
from ..filters.base import BaseFilter

def simulate_temperature(time_steps: int,
                         initial_temperature: float = 20.0,
                         drift_std: float = 0.0,
                         sensor_std: float = 0.8,
                         sensor_count: int = 2,
                         seed: Optional[int] = None) -> Dict[str, np.ndarray]:
    """
    Generate a slowly drifting temperature read by several noisy sensors.

    Returns:
        Dict with 'true_states' (time_steps, 1) and 'measurements'
        (time_steps, sensor_count)
    """
    if time_steps < 1:
        raise ValueError("time_steps must be positive")
    rng = np.random.default_rng(seed)

    drift = rng.normal(0.0, drift_std, size=time_steps) if drift_std > 0 else np.zeros(time_steps)
    temperature = initial_temperature + np.cumsum(drift)
    noise = rng.normal(0.0, sensor_std, size=(time_steps, sensor_count))

    return {
        'true_states': temperature.reshape(-1, 1),
        'measurements': temperature.reshape(-1, 1) + noise
    }

class FilterSimulator:
    """Feeds recorded or simulated observations to a filter and collects its output."""

    def __init__(self, filter_instance: BaseFilter, config: Optional[SimulationConfig] = None):
        self.filter = filter_instance
        self.config = config if config is not None else SimulationConfig()

    def run(self,
            observations: np.ndarray,
            true_states: Optional[np.ndarray] = None,
            save_path: Optional[Path] = None) -> Dict[str, np.ndarray]:
        """
        Step the filter once per observation row.

        An observation is registered on every ``observation_interval``-th step;
        the steps in between are prediction-only.

        Args:
            observations: (T, M) observation matrix
            true_states: Optional (T, N) ground truth, stored alongside the estimates
            save_path: Optional ``.npz`` destination

        Returns:
            Dict of result arrays keyed by name
        """
        observations = np.asarray(observations, dtype=float)
        state_dim = self.filter.state_dim
        observation_dim = self.filter.observation_dim

        if observations.ndim != 2 or observations.shape[1] != observation_dim:
            raise ValueError(f"observations must have shape (T, {observation_dim}), "
                             f"got {observations.shape}")
        time_steps = observations.shape[0]

        results = {
            'estimated_states': np.zeros((time_steps, state_dim)),
            'covariance_diagonals': np.zeros((time_steps, state_dim)),
            'gains': np.zeros((time_steps, state_dim, observation_dim)),
            'measurements': observations.copy(),
            'updated': np.zeros(time_steps, dtype=bool)
        }
        if true_states is not None:
            true_states = np.asarray(true_states, dtype=float)
            if true_states.shape != (time_steps, state_dim):
                raise ValueError(f"true_states must have shape ({time_steps}, {state_dim}), "
                                 f"got {true_states.shape}")
            results['true_states'] = true_states.copy()

        for step in range(time_steps):
            if step % self.config.log_interval == 0:
                logging.info(f"Simulation step {step}/{time_steps}")

            # kept alive until step() has consumed it
            observation = None
            if step % self.config.observation_interval == 0:
                observation = observations[step]
                self.filter.set_current_observation(observation)

            updates_before = self.filter.update_count
            state, prediction_error, gain = self.filter.step()

            results['estimated_states'][step] = state
            results['covariance_diagonals'][step] = np.diag(prediction_error)
            results['gains'][step] = gain
            results['updated'][step] = self.filter.update_count > updates_before

        if save_path:
            np.savez(save_path, **results)

        return results
