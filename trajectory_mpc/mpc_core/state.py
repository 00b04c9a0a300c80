"""
Initial controller state from the fitted reference path.

Because waypoints are re-expressed in the vehicle frame every cycle,
the vehicle always sits at the origin with zero heading, and the
tracking errors come straight from the polynomial:
    cte  = f(0)
    epsi = 0 - atan(f'(0)) = -atan(c[1])

Latency compensation (optional): when a fixed actuation delay is
configured, the state is propagated forward by that delay with the
previous cycle's command, so the optimized trajectory starts where the
vehicle will be when the new command takes effect. With zero latency
the control-period delay is left uncompensated.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional

from .dynamics import KinematicBicycle
from .polynomial import PathPolynomial
from .solver import MPCConfig


@dataclass(frozen=True)
class ControlState:
    """Optimizer initial state, vehicle frame."""
    x: float = 0.0
    y: float = 0.0
    psi: float = 0.0
    v: float = 0.0
    cte: float = 0.0
    epsi: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.psi, self.v, self.cte, self.epsi])

    @classmethod
    def from_array(cls, arr) -> 'ControlState':
        return cls(*(float(a) for a in arr[:6]))


def estimate_state(path: PathPolynomial, speed: float,
                   config: Optional[MPCConfig] = None,
                   previous_command=None) -> ControlState:
    """
    Build the optimizer's initial state.

    Args:
        path: Reference polynomial in the vehicle frame
        speed: Current vehicle speed
        config: Controller config; its actuation_latency enables propagation
        previous_command: Last applied ActuatorCommand (model convention)

    Returns:
        ControlState
    """
    cte = float(path(0.0))
    epsi = 0.0 - float(np.arctan(path.coeffs[1]))
    state = ControlState(0.0, 0.0, 0.0, float(speed), cte, epsi)

    if config is None or config.actuation_latency <= 0.0 or previous_command is None:
        return state

    model = KinematicBicycle(lf=config.lf, dt=config.dt)
    control = np.array([previous_command.steering, previous_command.acceleration])
    return ControlState.from_array(
        model.step(state.as_array(), control, path.coeffs, dt=config.actuation_latency))
