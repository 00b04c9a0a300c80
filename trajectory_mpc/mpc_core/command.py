"""
Command extraction and the platform boundary adapter.

Receding horizon: only the first control pair of the solved sequence is
applied; the rest is discarded and re-solved next cycle. The predicted
(x, y) points are kept for display.

to_platform() is the ONLY place the simulator's steering sign convention
appears. The simulator's positive heading direction is opposite to the
model's, so steering is negated here and never inside the dynamics.
"""

import numpy as np
from dataclasses import dataclass
from typing import List, Tuple

from .solver import HorizonSolution, MPCConfig


@dataclass(frozen=True)
class ActuatorCommand:
    """Raw actuator command in model units and sign convention."""
    steering: float = 0.0       # rad
    acceleration: float = 0.0


def extract(solution: HorizonSolution) -> Tuple[ActuatorCommand, Tuple[List[float], List[float]]]:
    """
    First control pair plus the predicted trajectory (t > 0, vehicle frame).

    Returns:
        (ActuatorCommand, (trajectory_x, trajectory_y))
    """
    delta, accel = solution.controls[0]
    traj = solution.states[1:, :2]
    return (ActuatorCommand(float(delta), float(accel)),
            (traj[:, 0].tolist(), traj[:, 1].tolist()))


def to_platform(command: ActuatorCommand, config: MPCConfig) -> Tuple[float, float]:
    """
    Convert a model command to normalized platform values in [-1, 1].

    Steering is divided by max_steering (and negated if the platform's
    heading convention is inverted). Acceleration is divided by the
    bound on its own side.

    Returns:
        (steering_angle, throttle)
    """
    steering = command.steering / config.max_steering
    if config.invert_steering:
        steering = -steering

    if command.acceleration >= 0.0:
        throttle = command.acceleration / config.max_acceleration if config.max_acceleration > 0 else 0.0
    else:
        throttle = command.acceleration / abs(config.min_acceleration) if config.min_acceleration < 0 else 0.0

    return (float(np.clip(steering, -1.0, 1.0)),
            float(np.clip(throttle, -1.0, 1.0)))


def from_platform(steering_angle: float, throttle: float,
                  config: MPCConfig) -> ActuatorCommand:
    """Inverse of to_platform, used to record fallback commands in model units."""
    steering = steering_angle * config.max_steering
    if config.invert_steering:
        steering = -steering
    if throttle >= 0.0:
        accel = throttle * max(config.max_acceleration, 0.0)
    else:
        accel = throttle * abs(min(config.min_acceleration, 0.0))
    return ActuatorCommand(float(steering), float(accel))
