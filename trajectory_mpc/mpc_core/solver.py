"""
Horizon optimizer - receding-horizon MPC using CasADi + IPOPT.

Creates a FRESH CasADi Opti() on every solve() call. The reference
polynomial changes every cycle and is baked into the dynamics
constraints as constants, so nothing is reused between solves except
the warm-start guess.

Formulation:
- Step 0 is an Opti parameter pinned to the estimated ControlState
- States 1..N-1 and controls 0..N-2 are decision variables
- Kinematic bicycle dynamics as equality constraints (see dynamics.py)
- Box bounds on steering and acceleration
- Cost: tracking (cte, epsi, speed), actuator effort, actuator smoothness
- Warm-starting from the previous solution shifted by one step
"""

import time
import logging
import numpy as np
import casadi as ca
from dataclasses import dataclass, field, fields
from dataclasses import replace as dataclass_replace
from typing import Optional, Sequence

from .dynamics import KinematicBicycle
from .errors import ConfigError, SolveFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MPCConfig:
    """Controller configuration. Immutable once built; use replace() for variants."""
    # Horizon
    horizon: int = 10               # N predicted states, N-1 controls
    dt: float = 0.1                 # Step duration (s)

    # Vehicle
    lf: float = 2.67                # CoM to front axle (turning response scale)
    reference_velocity: float = 40.0
    max_steering: float = 0.436332  # 25 deg in rad
    min_acceleration: float = -1.0
    max_acceleration: float = 1.0

    # Reference path
    polynomial_degree: int = 3
    min_waypoints: int = 4

    # Cost weights - smoothness terms keep the steering from oscillating
    cte_weight: float = 2000.0
    epsi_weight: float = 2000.0
    velocity_weight: float = 1.0
    steering_weight: float = 5.0
    acceleration_weight: float = 5.0
    steering_rate_weight: float = 200.0
    jerk_weight: float = 10.0

    # Solver budget
    max_iterations: int = 100
    max_cpu_time: float = 0.5       # s, must stay below the cycle deadline
    tolerance: float = 1e-6
    warm_start: bool = True

    # Actuation latency compensation (0 = uncompensated)
    actuation_latency: float = 0.0

    # Platform boundary
    invert_steering: bool = True    # simulator heading is opposite to the model's
    fallback_throttle: float = -0.5

    # Diagnostics
    diagnostic_interval: int = 50   # cycles between summary log lines

    _INT_FIELDS = ('horizon', 'polynomial_degree', 'min_waypoints',
                   'max_iterations', 'diagnostic_interval')

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError if any constant is out of range."""
        problems = [
            f"{name} must be an integer (got {getattr(self, name)!r})"
            for name in self._INT_FIELDS
            if isinstance(getattr(self, name), bool) or not isinstance(getattr(self, name), int)
        ]
        if problems:
            raise ConfigError("Invalid controller config: " + "; ".join(problems))

        if self.horizon < 2:
            problems.append(f"horizon must be >= 2 (got {self.horizon})")
        if self.dt <= 0:
            problems.append(f"dt must be > 0 (got {self.dt})")
        if self.lf <= 0:
            problems.append(f"lf must be > 0 (got {self.lf})")
        if self.max_steering <= 0:
            problems.append(f"max_steering must be > 0 (got {self.max_steering})")
        if self.min_acceleration >= self.max_acceleration:
            problems.append(
                f"min_acceleration ({self.min_acceleration}) must be below "
                f"max_acceleration ({self.max_acceleration})")
        if self.polynomial_degree < 1:
            problems.append(
                f"polynomial_degree must be >= 1 (got {self.polynomial_degree})")
        if self.min_waypoints <= self.polynomial_degree:
            problems.append(
                f"min_waypoints ({self.min_waypoints}) must exceed "
                f"polynomial_degree ({self.polynomial_degree})")
        for name in ('cte_weight', 'epsi_weight', 'velocity_weight',
                     'steering_weight', 'acceleration_weight',
                     'steering_rate_weight', 'jerk_weight'):
            if getattr(self, name) < 0:
                problems.append(f"{name} must be >= 0 (got {getattr(self, name)})")
        if self.max_iterations < 0:
            problems.append(f"max_iterations must be >= 0 (got {self.max_iterations})")
        if self.max_cpu_time <= 0:
            problems.append(f"max_cpu_time must be > 0 (got {self.max_cpu_time})")
        if self.tolerance <= 0:
            problems.append(f"tolerance must be > 0 (got {self.tolerance})")
        if self.actuation_latency < 0:
            problems.append(
                f"actuation_latency must be >= 0 (got {self.actuation_latency})")
        if not -1.0 <= self.fallback_throttle <= 1.0:
            problems.append(
                f"fallback_throttle must lie in [-1, 1] (got {self.fallback_throttle})")
        if self.diagnostic_interval < 1:
            problems.append(
                f"diagnostic_interval must be >= 1 (got {self.diagnostic_interval})")
        if problems:
            raise ConfigError("Invalid controller config: " + "; ".join(problems))

    def replace(self, **overrides) -> 'MPCConfig':
        """Copy with some fields changed (validated again)."""
        unknown = set(overrides) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigError(f"Unknown config keys: {sorted(unknown)}")
        return dataclass_replace(self, **overrides)


@dataclass
class HorizonSolution:
    """Result of one horizon solve."""
    states: np.ndarray = field(default_factory=lambda: np.zeros((1, 6)))    # [N, 6]
    controls: np.ndarray = field(default_factory=lambda: np.zeros((0, 2)))  # [N-1, 2]
    cost: float = float('inf')
    iterations: int = 0
    solve_time: float = 0.0
    status: str = ""


class HorizonOptimizer:
    """
    MPC solver using CasADi Opti with IPOPT.

    Fresh Opti per solve; previous solution kept only for warm-starting.
    """

    def __init__(self, config: MPCConfig):
        self.config = config
        self.model = KinematicBicycle(lf=config.lf, dt=config.dt)

        # Warm-start storage
        self._prev_states: Optional[np.ndarray] = None
        self._prev_controls: Optional[np.ndarray] = None

    def solve(self, x0: Sequence[float], coeffs: Sequence[float]) -> HorizonSolution:
        """
        Solve the horizon problem from the pinned initial state.

        Args:
            x0: Initial state [x, y, psi, v, cte, epsi]
            coeffs: Reference polynomial coefficients (lowest order first)

        Returns:
            HorizonSolution with N states and N-1 controls

        Raises:
            SolveFailure: if IPOPT does not converge within its budget
        """
        t_start = time.time()
        x0 = np.asarray(x0, dtype=np.float64).ravel()
        coeffs = [float(c) for c in coeffs]

        try:
            solution = self._solve_casadi(x0, coeffs)
        except SolveFailure:
            self.reset()
            raise

        if not (np.all(np.isfinite(solution.states)) and
                np.all(np.isfinite(solution.controls))):
            self.reset()
            raise SolveFailure("IPOPT returned a non-finite solution", status="non_finite")

        solution.solve_time = time.time() - t_start
        return solution

    def _solve_casadi(self, x0: np.ndarray, coeffs: Sequence[float]) -> HorizonSolution:
        """Core CasADi solve - builds a fresh Opti each call."""
        cfg = self.config
        N = cfg.horizon
        nx = self.model.nx
        nu = self.model.nu

        try:
            opti, X, U = self._build_problem(x0, coeffs)
        except RuntimeError as exc:
            logger.debug("CasADi problem setup failed: %s", exc)
            raise SolveFailure(f"CasADi problem setup failed: {exc}",
                               status="setup_error") from exc

        # === Solve ===
        try:
            sol = opti.solve()
        except RuntimeError as exc:
            status = str(opti.stats().get('return_status', 'unknown'))
            logger.debug("IPOPT returned %s after %s iterations",
                         status, opti.stats().get('iter_count'))
            raise SolveFailure(f"IPOPT failed ({status})", status=status) from exc

        X_sol = np.asarray(sol.value(X)).reshape(nx, N - 1)
        U_sol = np.asarray(sol.value(U)).reshape(nu, N - 1)

        states_out = np.vstack([x0, X_sol.T])
        controls_out = U_sol.T.copy()
        # IPOPT may overshoot bounds by its relaxation factor
        controls_out[:, 0] = np.clip(controls_out[:, 0], -cfg.max_steering, cfg.max_steering)
        controls_out[:, 1] = np.clip(controls_out[:, 1],
                                     cfg.min_acceleration, cfg.max_acceleration)

        # Store for warm start
        self._prev_states = states_out
        self._prev_controls = controls_out

        stats = sol.stats()
        return HorizonSolution(
            states=states_out,
            controls=controls_out,
            cost=float(sol.value(opti.f)),
            iterations=int(stats.get('iter_count', 0)),
            status=str(stats.get('return_status', '')),
        )

    def _build_problem(self, x0: np.ndarray, coeffs: Sequence[float]):
        """Set up variables, constraints, cost, solver and initial guess.

        Returns:
            (opti, X, U)

        Raises:
            SolveFailure: if the cold-start rollout is not finite
        """
        cfg = self.config
        N = cfg.horizon
        nx = self.model.nx
        nu = self.model.nu

        opti = ca.Opti()

        # Step 0 is pinned, not a decision variable
        X0 = opti.parameter(nx)
        opti.set_value(X0, x0)
        X = opti.variable(nx, N - 1)
        U = opti.variable(nu, N - 1)
        states = ca.horzcat(X0, X)

        # === Dynamics constraints ===
        for t in range(N - 1):
            x_next = self.model.step(states[:, t], U[:, t], coeffs)
            opti.subject_to(X[:, t] == x_next)

        # === Actuator bounds ===
        opti.subject_to(opti.bounded(-cfg.max_steering, U[0, :], cfg.max_steering))
        opti.subject_to(opti.bounded(cfg.min_acceleration, U[1, :], cfg.max_acceleration))

        # === Cost function ===
        cost = 0.0

        # Tracking
        for t in range(N):
            cost += cfg.cte_weight * states[4, t]**2
            cost += cfg.epsi_weight * states[5, t]**2
            cost += cfg.velocity_weight * (states[3, t] - cfg.reference_velocity)**2

        # Actuator effort
        for t in range(N - 1):
            cost += cfg.steering_weight * U[0, t]**2
            cost += cfg.acceleration_weight * U[1, t]**2

        # Actuator smoothness
        for t in range(N - 2):
            cost += cfg.steering_rate_weight * (U[0, t + 1] - U[0, t])**2
            cost += cfg.jerk_weight * (U[1, t + 1] - U[1, t])**2

        opti.minimize(cost)

        # === Solver options ===
        opts = {
            'ipopt.print_level': 0,
            'ipopt.sb': 'yes',
            'print_time': 0,
            'ipopt.max_iter': cfg.max_iterations,
            'ipopt.max_cpu_time': cfg.max_cpu_time,
            'ipopt.tol': cfg.tolerance,
        }
        warm = cfg.warm_start and self._prev_states is not None
        if warm:
            opts['ipopt.warm_start_init_point'] = 'yes'
        opti.solver('ipopt', opts)

        # === Initial guess ===
        if warm:
            # Shift previous solution forward by one step, repeat the tail
            prev_X = self._prev_states
            prev_U = self._prev_controls
            for t in range(N - 1):
                opti.set_initial(X[:, t], prev_X[min(t + 2, N - 1)])
                opti.set_initial(U[:, t], prev_U[min(t + 1, N - 2)])
        else:
            with np.errstate(over='ignore', invalid='ignore'):
                guess = self.model.rollout(x0, np.zeros((N - 1, nu)), coeffs)
            if not np.all(np.isfinite(guess)):
                raise SolveFailure("Cold-start rollout is not finite", status="non_finite")
            opti.set_initial(X, guess[1:].T)
            opti.set_initial(U, 0.0)

        return opti, X, U

    def reset(self):
        """Drop warm-start state."""
        self._prev_states = None
        self._prev_controls = None
