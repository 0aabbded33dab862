"""Rotation algebra, an error-state Kalman filter, IMU integration and preintegration, and point-cloud nearest-neighbour search and projection."""

__version__ = "0.1.0"