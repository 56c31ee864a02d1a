"""Example script estimating a vehicle trajectory from a recorded test drive."""

import argparse
import logging
from pathlib import Path


from kafi import ExtendedKalmanFilter, SimulationConfig
from kafi.models import VehicleModel, VehicleParams
from kafi.models.vehicle import STATE_LABELS
from kafi.simulation import FilterSimulator, load_sensor_recording
from kafi.visualization import ResultVisualizer

def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument('--recording', type=Path, required=True,
                        help='CSV with ax[m/s^2], ay[m/s^2], vx[m/s], vy[m/s], psi[rad] columns')
    parser.add_argument('--dt', type=float, default=0.001)
    parser.add_argument('--output', type=Path, default=Path('results'))
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    args.output.mkdir(exist_ok=True)
    observations = load_sensor_recording(args.recording)

    model = VehicleModel(VehicleParams(dt=args.dt))
    ekf = ExtendedKalmanFilter(model.transition(),
                               model.observation(),
                               model.initial_state(observations[0]),
                               model.default_process_noise(),
                               model.default_sensor_noise())

    simulator = FilterSimulator(ekf, SimulationConfig(log_interval=max(1, int(1.0 / args.dt))))
    results = simulator.run(observations, save_path=args.output / 'vehicle_results.npz')

    visualizer = ResultVisualizer(results, state_labels=STATE_LABELS)
    visualizer.plot_state_estimates(args.output)
    visualizer.plot_gains(args.output)

    x, y = results['estimated_states'][-1, :2]
    logging.info(f"Final position estimate: x={x:.2f} m, y={y:.2f} m")
    logging.info(f"Final filter state:\n{ekf}")

if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        logging.error(f"Error in main execution: {str(e)}")
        raise
