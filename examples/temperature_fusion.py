"""Example script fusing two noisy thermometers into one temperature estimate."""

import argparse
import logging
from pathlib import Path

import numpy as np

from kafi import ExtendedKalmanFilter, SimulationConfig
from kafi.models import create_identity_jacobian
from kafi.simulation import FilterSimulator, simulate_temperature
from kafi.visualization import ResultVisualizer

def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument('--steps', type=int, default=500)
    parser.add_argument('--observation-interval', type=int, default=1)
    parser.add_argument('--seed', type=int, default=42)
    parser.add_argument('--output', type=Path, default=Path('results'))
    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    args.output.mkdir(exist_ok=True)

    data = simulate_temperature(args.steps, initial_temperature=20.0,
                                drift_std=0.05, sensor_std=0.8, seed=args.seed)

    # the first reading of both sensors approximates the starting state
    starting_state = np.array([data['measurements'][0].mean()])

    ekf = ExtendedKalmanFilter(create_identity_jacobian(1, 1),
                               create_identity_jacobian(1, 2),
                               starting_state,
                               process_noise=np.array([[0.05]]),
                               sensor_noise=np.eye(2) * 0.64)

    simulator = FilterSimulator(ekf, SimulationConfig(observation_interval=args.observation_interval,
                                                      log_interval=100))
    results = simulator.run(data['measurements'],
                            true_states=data['true_states'],
                            save_path=args.output / 'temperature_results.npz')

    visualizer = ResultVisualizer(results, state_labels=['temperature'])
    visualizer.plot_state_estimates(args.output)
    visualizer.plot_uncertainty(args.output)

    logging.info(f"Final filter state:\n{ekf}")
    logging.info(f"Temperature RMSE: {visualizer.rmse()[0]:.4f}")

if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        logging.error(f"Error in main execution: {str(e)}")
        raise
