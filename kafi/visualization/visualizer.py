"""Visualization tools for analyzing Kalman filter performance."""

import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from typing import Dict, Optional, Sequence
from pathlib import Path

class ResultVisualizer:
    """Visualization tools for the result dictionaries of FilterSimulator."""

    def __init__(self,
                 results: Dict[str, np.ndarray],
                 state_labels: Optional[Sequence[str]] = None):
        self.results = results
        self.estimates = results['estimated_states']
        self.time_steps = np.arange(len(self.estimates))
        state_dim = self.estimates.shape[1]
        self.state_labels = list(state_labels) if state_labels is not None else \
            [f'x{i}' for i in range(state_dim)]
        if len(self.state_labels) != state_dim:
            raise ValueError(f"Expected {state_dim} state labels, got {len(self.state_labels)}")
        sns.set_style("whitegrid")

    def _save(self, fig, save_path: Optional[Path], name: str) -> None:
        if save_path:
            fig.savefig(Path(save_path) / name, dpi=300, bbox_inches='tight')

    def plot_state_estimates(self, save_path: Optional[Path] = None):
        """Plot estimated states with 2σ bounds and, if present, the ground truth."""
        state_dim = len(self.state_labels)
        fig, axes = plt.subplots(state_dim, 1, figsize=(12, 3 * state_dim),
                                 sharex=True, squeeze=False)
        std = np.sqrt(np.maximum(self.results['covariance_diagonals'], 0.0))

        for i, (ax, label) in enumerate(zip(axes[:, 0], self.state_labels)):
            if 'true_states' in self.results:
                ax.plot(self.time_steps, self.results['true_states'][:, i],
                        'k-', label='True', linewidth=2)
            ax.plot(self.time_steps, self.estimates[:, i], 'b--', label='EKF')
            ax.fill_between(self.time_steps,
                            self.estimates[:, i] - 2 * std[:, i],
                            self.estimates[:, i] + 2 * std[:, i],
                            alpha=0.2, color='b')
            ax.set_ylabel(f'State {label}')
            ax.legend()

        axes[-1, 0].set_xlabel('Time Step')
        fig.suptitle('State Estimates with 2σ Uncertainty Bounds')
        self._save(fig, save_path, 'state_estimates.png')
        return fig

    def plot_uncertainty(self, save_path: Optional[Path] = None):
        """Plot the diagonal of the prediction error covariance over time."""
        fig, ax = plt.subplots(figsize=(12, 6))
        for i, label in enumerate(self.state_labels):
            ax.semilogy(self.time_steps, self.results['covariance_diagonals'][:, i], label=label)

        updated = self.results.get('updated')
        if updated is not None and np.any(updated) and not np.all(updated):
            for step in self.time_steps[updated]:
                ax.axvline(step, color='grey', alpha=0.1, linewidth=0.5)

        ax.set_xlabel('Time Step')
        ax.set_ylabel('Variance')
        ax.set_title('Evolution of the Prediction Error Covariance')
        ax.legend()
        self._save(fig, save_path, 'uncertainty.png')
        return fig

    def plot_gains(self, save_path: Optional[Path] = None):
        """Heatmap of the last gain and the gain norm over time."""
        gains = self.results['gains']
        fig, (ax_norm, ax_map) = plt.subplots(1, 2, figsize=(15, 5))

        ax_norm.plot(self.time_steps, np.linalg.norm(gains, axis=(1, 2)))
        ax_norm.set_xlabel('Time Step')
        ax_norm.set_ylabel('‖G‖')
        ax_norm.set_title('Kalman Gain Norm')

        sns.heatmap(gains[-1], annot=gains.shape[1] * gains.shape[2] <= 64, fmt='.3f',
                    yticklabels=self.state_labels, cmap='coolwarm', center=0.0, ax=ax_map)
        ax_map.set_xlabel('Observation')
        ax_map.set_title('Final Kalman Gain')

        self._save(fig, save_path, 'gains.png')
        return fig

    def rmse(self) -> Optional[np.ndarray]:
        """Per-state RMSE against the ground truth, if one was recorded."""
        if 'true_states' not in self.results:
            return None
        return np.sqrt(np.mean((self.results['true_states'] - self.estimates) ** 2, axis=0))
