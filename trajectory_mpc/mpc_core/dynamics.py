"""
Kinematic bicycle model with tracking-error states.

State: [x, y, psi, v, cte, epsi]
  x, y  - position (vehicle frame at solve time)
  psi   - heading
  v     - speed
  cte   - cross-track error
  epsi  - heading error

Control: [delta, a]
  delta - steering angle (model convention: positive turns toward +y)
  a     - acceleration

Discrete (forward Euler) dynamics with step dt:
    x'    = x + v * cos(psi) * dt
    y'    = y + v * sin(psi) * dt
    psi'  = psi + v / Lf * delta * dt
    v'    = v + a * dt
    cte'  = (f(x) - y) + v * sin(epsi) * dt
    epsi' = (psi - atan(f'(x))) + v / Lf * delta * dt

The same step is used symbolically by the optimizer (CasADi) and
numerically for latency propagation and warm-start rollouts.
"""

import numpy as np
import casadi as ca
from typing import Optional, Sequence

from .polynomial import polyeval, polyderiv


class KinematicBicycle:
    """Kinematic bicycle with cte/epsi error states."""

    nx = 6  # [x, y, psi, v, cte, epsi]
    nu = 2  # [delta, a]

    def __init__(self, lf: float = 2.67, dt: float = 0.1):
        self.lf = lf
        self.dt = dt

    def step(self, state, control, coeffs: Sequence[float],
             dt: Optional[float] = None):
        """Advance one step. Accepts numpy arrays or CasADi symbols."""
        h = dt if dt is not None else self.dt
        x, y, psi, v, _, epsi = (state[i] for i in range(self.nx))
        delta, a = control[0], control[1]

        if isinstance(state, (ca.SX, ca.MX)) or isinstance(control, (ca.SX, ca.MX)):
            f_x = polyeval(coeffs, x)
            psi_des = ca.atan(polyderiv(coeffs, x))
            return ca.vertcat(
                x + v * ca.cos(psi) * h,
                y + v * ca.sin(psi) * h,
                psi + v / self.lf * delta * h,
                v + a * h,
                (f_x - y) + v * ca.sin(epsi) * h,
                (psi - psi_des) + v / self.lf * delta * h,
            )

        f_x = polyeval(coeffs, x)
        psi_des = np.arctan(polyderiv(coeffs, x))
        return np.array([
            x + v * np.cos(psi) * h,
            y + v * np.sin(psi) * h,
            psi + v / self.lf * delta * h,
            v + a * h,
            (f_x - y) + v * np.sin(epsi) * h,
            (psi - psi_des) + v / self.lf * delta * h,
        ])

    def rollout(self, x0: np.ndarray, controls: np.ndarray,
                coeffs: Sequence[float]) -> np.ndarray:
        """
        Simulate from x0 with a control sequence.

        Args:
            x0: Initial state [nx]
            controls: Control sequence [K, nu]
            coeffs: Reference polynomial coefficients

        Returns:
            States trajectory [K+1, nx]
        """
        controls = np.atleast_2d(controls)
        K = controls.shape[0]
        states = np.zeros((K + 1, self.nx))
        states[0] = x0
        for k in range(K):
            states[k + 1] = self.step(states[k], controls[k], coeffs)
        return states
