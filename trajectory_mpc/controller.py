#!/usr/bin/env python3
"""
Trajectory Controller - one receding-horizon MPC solve per telemetry message.

Pipeline per cycle:
  telemetry -> to_local -> polyfit -> estimate_state -> HorizonOptimizer
            -> extract -> to_platform -> command

Error policy (a single bad cycle never stops the loop):
  - InputError / FitError: neutral command (no steering, no throttle),
    optimizer is not called
  - SolveFailure: safe fallback (no steering, braking)
  - ConfigError: fatal, raised at startup only

Usage:
    trajectory_controller --config config/controller.yaml < frames.txt

    Reads one socket.io text frame per line on stdin and writes one reply
    frame per line on stdout. Logs go to stderr.
"""

import sys
import logging
import argparse
from dataclasses import dataclass
from typing import Optional, Union

from .mpc_core import (
    ActuatorCommand,
    ConfigError,
    FitError,
    HorizonOptimizer,
    InputError,
    MPCConfig,
    PathPolynomial,
    SolveFailure,
    estimate_state,
    extract,
    from_platform,
    to_local,
    to_platform,
)
from .module_config import load_controller_config
from .telemetry import (
    MANUAL_REPLY,
    TELEMETRY_EVENT,
    SteerCommand,
    Telemetry,
    decode_frame,
    encode_steer,
)

logger = logging.getLogger(__name__)


@dataclass
class ControllerStats:
    """Cycle counters for operational visibility."""
    cycles: int = 0
    ok: int = 0
    neutral: int = 0
    fallback: int = 0
    last_solve_time: float = 0.0
    total_solve_time: float = 0.0

    @property
    def mean_solve_time(self) -> float:
        return self.total_solve_time / self.ok if self.ok else 0.0


class TrajectoryController:
    """
    Synchronous control-loop driver.

    The transport calls process_cycle() (or handle_message() for raw
    frames) once per message; cycles never overlap. The only state kept
    between cycles is the optimizer's warm start and the last applied
    command (for latency compensation).
    """

    def __init__(self, config: MPCConfig, optimizer: Optional[HorizonOptimizer] = None):
        self.config = config
        self.optimizer = optimizer if optimizer is not None else HorizonOptimizer(config)
        self.stats = ControllerStats()
        self._last_command: Optional[ActuatorCommand] = None

        logger.info(
            "Trajectory controller initialized: horizon=%d dt=%.3f lf=%.2f v_ref=%.1f "
            "max_steering=%.3f accel=[%.2f, %.2f] latency=%.3f warm_start=%s",
            config.horizon, config.dt, config.lf, config.reference_velocity,
            config.max_steering, config.min_acceleration, config.max_acceleration,
            config.actuation_latency, config.warm_start)

    @property
    def last_command(self) -> Optional[ActuatorCommand]:
        return self._last_command

    def process_cycle(self, telemetry: Union[Telemetry, dict, None]) -> SteerCommand:
        """Run one control cycle and return the command to send."""
        self.stats.cycles += 1
        reference = ([], [])
        try:
            telemetry = self._validate(telemetry)
            lx, ly = to_local(telemetry.pose, telemetry.ptsx, telemetry.ptsy)
            reference = (lx.tolist(), ly.tolist())

            path = PathPolynomial.fit(lx, ly, self.config.polynomial_degree)
            state = estimate_state(path, telemetry.speed, self.config, self._last_command)
            solution = self.optimizer.solve(state.as_array(), path.coeffs)
        except (InputError, FitError) as e:
            command = self._neutral(reference)
            logger.info("Cycle %d: neutral command (%s: %s)",
                        self.stats.cycles, type(e).__name__, e)
        except SolveFailure as e:
            command = self._fallback(reference)
            logger.warning("Cycle %d: solver failure (%s), sending fallback",
                           self.stats.cycles, e.status)
        else:
            actuator, (traj_x, traj_y) = extract(solution)
            steering, throttle = to_platform(actuator, self.config)
            self._last_command = actuator
            self.stats.ok += 1
            self.stats.last_solve_time = solution.solve_time
            self.stats.total_solve_time += solution.solve_time
            command = SteerCommand(
                steering_angle=steering,
                throttle=throttle,
                trajectory_x=traj_x,
                trajectory_y=traj_y,
                reference_x=reference[0],
                reference_y=reference[1],
                status='ok',
            )
            logger.debug("Cycle %d: steer=%.3f throttle=%.3f cost=%.2f iters=%d t=%.1fms",
                         self.stats.cycles, steering, throttle, solution.cost,
                         solution.iterations, solution.solve_time * 1000.0)

        if self.stats.cycles % self.config.diagnostic_interval == 0:
            self.log_diagnostics()
        return command

    def handle_message(self, raw: str) -> Optional[str]:
        """
        Handle one raw socket.io frame.

        Returns:
            Reply frame, or None if the frame needs no reply
        """
        if len(raw) <= 2 or not raw.startswith('42'):
            return None
        try:
            decoded = decode_frame(raw)
        except InputError as e:
            logger.info("Malformed frame: %s", e)
            return encode_steer(self.process_cycle(None))
        if decoded is None:
            # No data: manual driving
            return MANUAL_REPLY
        event, data = decoded
        if event != TELEMETRY_EVENT:
            return None
        return encode_steer(self.process_cycle(data))

    def _validate(self, telemetry) -> Telemetry:
        if telemetry is None:
            raise InputError("No telemetry")
        if not isinstance(telemetry, Telemetry):
            telemetry = Telemetry.from_dict(telemetry)
        if len(telemetry.ptsx) < self.config.min_waypoints:
            raise InputError(
                f"Need at least {self.config.min_waypoints} waypoints, got {len(telemetry.ptsx)}")
        return telemetry

    def _neutral(self, reference) -> SteerCommand:
        self.stats.neutral += 1
        self._last_command = ActuatorCommand(0.0, 0.0)
        return SteerCommand(0.0, 0.0, [], [], reference[0], reference[1], status='neutral')

    def _fallback(self, reference) -> SteerCommand:
        self.stats.fallback += 1
        throttle = self.config.fallback_throttle
        self._last_command = from_platform(0.0, throttle, self.config)
        return SteerCommand(0.0, throttle, [], [], reference[0], reference[1], status='fallback')

    def log_diagnostics(self):
        s = self.stats
        logger.info(
            "Controller stats: cycles=%d ok=%d neutral=%d fallback=%d "
            "solve_time last=%.1fms mean=%.1fms",
            s.cycles, s.ok, s.neutral, s.fallback,
            s.last_solve_time * 1000.0, s.mean_solve_time * 1000.0)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Receding-horizon trajectory controller (stdin/stdout frames)')
    parser.add_argument('--config', default=None, help='Path to controller.yaml')
    parser.add_argument('--horizon', type=int, default=None, help='Override horizon length')
    parser.add_argument('--latency', type=float, default=None,
                        help='Override actuation latency compensation (s)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='[%(asctime)s] %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    try:
        config = load_controller_config(
            args.config, horizon=args.horizon, actuation_latency=args.latency)
    except ConfigError as e:
        logger.error("%s", e)
        return 1

    controller = TrajectoryController(config)
    for line in sys.stdin:
        reply = controller.handle_message(line.strip())
        if reply is not None:
            sys.stdout.write(reply + '\n')
            sys.stdout.flush()

    controller.log_diagnostics()
    return 0


if __name__ == '__main__':
    sys.exit(main())
