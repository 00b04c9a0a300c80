#!/usr/bin/env python3
"""
Closed-loop simulation of the trajectory controller on a synthetic track.

The plant is a global-frame kinematic bicycle that interprets commands
the way the simulator does (normalized steering, inverted sign). Each
cycle the six track points ahead of the car are sent as telemetry.

Usage:
    python3 scripts/run_closed_loop.py --cycles 150 --plot
"""

import os
import sys
import time
import logging
import argparse
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from trajectory_mpc.controller import TrajectoryController
from trajectory_mpc.module_config import load_controller_config
from trajectory_mpc.mpc_core import from_platform
from trajectory_mpc.telemetry import Telemetry


def make_track(length=600.0, amplitude=15.0, wavelength=200.0, spacing=5.0):
    """Sinusoidal centre line, Nx2."""
    x = np.arange(0.0, length, spacing)
    y = amplitude * np.sin(2.0 * np.pi * x / wavelength)
    return np.column_stack([x, y])


def waypoints_ahead(track, x, y, count=6):
    dists = np.hypot(track[:, 0] - x, track[:, 1] - y)
    idx = int(np.argmin(dists))
    idx = min(idx, len(track) - count)
    return track[idx:idx + count]


def lateral_error(track, x, y):
    """Distance from (x, y) to the closest track segment."""
    best = np.inf
    for p1, p2 in zip(track[:-1], track[1:]):
        v = p2 - p1
        t = np.clip(np.dot([x, y] - p1, v) / np.dot(v, v), 0.0, 1.0)
        best = min(best, np.linalg.norm(np.array([x, y]) - (p1 + t * v)))
    return best


def run(config, cycles, latency_steps=0):
    track = make_track()
    controller = TrajectoryController(config)

    x, y, psi, v = track[0, 0], track[0, 1] + 1.0, 0.0, 0.0
    pending = []
    history = []

    for _ in range(cycles):
        pts = waypoints_ahead(track, x, y)
        telemetry = Telemetry(tuple(pts[:, 0]), tuple(pts[:, 1]), x, y, psi, v)

        t0 = time.time()
        cmd = controller.process_cycle(telemetry)
        solve_ms = (time.time() - t0) * 1000.0

        # The simulator applies commands after a fixed number of cycles
        pending.append(from_platform(cmd.steering_angle, cmd.throttle, config))
        applied = pending.pop(0) if len(pending) > latency_steps else from_platform(0.0, 0.0, config)

        dt = config.dt
        x += v * np.cos(psi) * dt
        y += v * np.sin(psi) * dt
        psi += v / config.lf * applied.steering * dt
        v += applied.acceleration * dt

        history.append((x, y, v, lateral_error(track, x, y), solve_ms, cmd.status))
        if x >= track[-8, 0]:
            break

    return track, history, controller.stats


def main():
    parser = argparse.ArgumentParser(description='Closed-loop controller simulation')
    parser.add_argument('--config', default=None)
    parser.add_argument('--cycles', type=int, default=150)
    parser.add_argument('--latency-steps', type=int, default=1,
                        help='Cycles between computing and applying a command')
    parser.add_argument('--plot', action='store_true')
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING,
                        format='[%(asctime)s] %(levelname)s %(name)s: %(message)s')

    config = load_controller_config(args.config)
    track, history, stats = run(config, args.cycles, args.latency_steps)

    errors = np.array([h[3] for h in history])
    solve_ms = np.array([h[4] for h in history])
    print(f"Cycles: {stats.cycles}  ok={stats.ok} neutral={stats.neutral} fallback={stats.fallback}")
    print(f"Lateral error: mean={errors.mean():.3f} max={errors.max():.3f}")
    print(f"Cycle time: mean={solve_ms.mean():.1f}ms p95={np.percentile(solve_ms, 95):.1f}ms")
    print(f"Final speed: {history[-1][2]:.2f}")

    if args.plot:
        import matplotlib.pyplot as plt
        fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(10, 8))
        ax1.plot(track[:, 0], track[:, 1], 'y-', label='Track')
        ax1.plot([h[0] for h in history], [h[1] for h in history], 'g-', label='Vehicle')
        ax1.set_aspect('equal')
        ax1.legend()
        ax1.set_title('Closed-loop path')
        ax2.plot(errors, 'r-')
        ax2.set_xlabel('Cycle')
        ax2.set_ylabel('Lateral error')
        ax2.grid(True, alpha=0.3)
        plt.tight_layout()
        plt.show()


if __name__ == '__main__':
    main()
