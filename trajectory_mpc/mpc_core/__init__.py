"""
MPC Core - receding-horizon trajectory tracking.

Key components:
- to_local / to_global: map <-> vehicle frame transforms
- PathPolynomial, polyfit: cubic reference path in the vehicle frame
- estimate_state: initial ControlState (cte, epsi, optional latency step)
- KinematicBicycle: discrete bicycle model with tracking-error states
- HorizonOptimizer: CasADi/IPOPT solver (fresh Opti per solve)
- extract / to_platform: first command + simulator boundary adapter
"""

from .errors import MPCError, InputError, FitError, SolveFailure, ConfigError
from .frames import Pose, to_local, to_global
from .polynomial import PathPolynomial, polyfit, polyeval, polyderiv
from .dynamics import KinematicBicycle
from .solver import HorizonOptimizer, HorizonSolution, MPCConfig
from .state import ControlState, estimate_state
from .command import ActuatorCommand, extract, to_platform, from_platform

__all__ = [
    'MPCError',
    'InputError',
    'FitError',
    'SolveFailure',
    'ConfigError',
    'Pose',
    'to_local',
    'to_global',
    'PathPolynomial',
    'polyfit',
    'polyeval',
    'polyderiv',
    'KinematicBicycle',
    'HorizonOptimizer',
    'HorizonSolution',
    'MPCConfig',
    'ControlState',
    'estimate_state',
    'ActuatorCommand',
    'extract',
    'to_platform',
    'from_platform',
]
