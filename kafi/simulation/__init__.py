"""Simulation utilities for the kafi filters."""

from .recording import load_sensor_recording
from .simulator import FilterSimulator, simulate_temperature

__all__ = ['FilterSimulator', 'load_sensor_recording', 'simulate_temperature']
