"""Receding-horizon trajectory controller for a simulated car."""

__version__ = '0.1.0'
