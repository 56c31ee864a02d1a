"""Plotting helpers for estimation results."""

from .visualizer import ResultVisualizer

__all__ = ['ResultVisualizer']
