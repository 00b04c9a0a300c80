"""
Global <-> vehicle (body) frame transforms.

The body frame has its origin at the vehicle position and its x-axis
along the heading, y-axis pointing to the left of the car. Waypoints
arrive in the map frame and are re-expressed in the body frame every
cycle, which makes x = y = heading = 0 for the controller state.
"""

import numpy as np
from dataclasses import dataclass
from typing import Sequence, Tuple

from .errors import InputError


@dataclass(frozen=True)
class Pose:
    """Vehicle pose in the global frame."""
    x: float = 0.0          # m
    y: float = 0.0          # m
    heading: float = 0.0    # rad
    speed: float = 0.0      # m/s


def _as_points(xs: Sequence[float], ys: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    xs = np.asarray(xs, dtype=np.float64).ravel()
    ys = np.asarray(ys, dtype=np.float64).ravel()
    if xs.size == 0:
        raise InputError("Waypoint sequence is empty")
    if xs.size != ys.size:
        raise InputError(
            f"Waypoint x/y length mismatch ({xs.size} vs {ys.size})")
    return xs, ys


def to_local(pose: Pose, xs: Sequence[float],
             ys: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Transform global waypoints into the vehicle frame.

    Translation by -position followed by a rotation by -heading:
        lx =  cos(h) * dx + sin(h) * dy
        ly = -sin(h) * dx + cos(h) * dy

    Args:
        pose: Vehicle pose (global frame)
        xs, ys: Global waypoint coordinates

    Returns:
        (lx, ly) arrays in the vehicle frame

    Raises:
        InputError: if the sequence is empty or x/y lengths differ
    """
    xs, ys = _as_points(xs, ys)
    cos_h = np.cos(pose.heading)
    sin_h = np.sin(pose.heading)
    dx = xs - pose.x
    dy = ys - pose.y
    lx = cos_h * dx + sin_h * dy
    ly = -sin_h * dx + cos_h * dy
    return lx, ly


def to_global(pose: Pose, lx: Sequence[float],
              ly: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Inverse of to_local: rotate by +heading, then translate by position."""
    lx, ly = _as_points(lx, ly)
    cos_h = np.cos(pose.heading)
    sin_h = np.sin(pose.heading)
    gx = cos_h * lx - sin_h * ly + pose.x
    gy = sin_h * lx + cos_h * ly + pose.y
    return gx, gy
