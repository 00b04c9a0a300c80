"""
Tests for the horizon optimizer and its configuration.

Tests cover:
1. MPCConfig validation and derived variants
2. Solution shape and pinned initial state
3. Actuator bounds and model consistency of the returned trajectory
4. Steering direction on straight and curved references
5. Failure handling (SolveFailure, warm-start reset)

Run with:
    python3 -m pytest test/test_solver.py -v
"""

import sys
import os
import dataclasses
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from trajectory_mpc.mpc_core.errors import ConfigError, SolveFailure
from trajectory_mpc.mpc_core.dynamics import KinematicBicycle
from trajectory_mpc.mpc_core.solver import HorizonOptimizer, MPCConfig


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def config():
    return MPCConfig()


@pytest.fixture
def optimizer(config):
    return HorizonOptimizer(config)


@pytest.fixture
def straight():
    """Vehicle on a straight reference with zero errors."""
    x0 = np.array([0.0, 0.0, 0.0, 10.0, 0.0, 0.0])
    return x0, [0.0, 0.0, 0.0, 0.0]


@pytest.fixture
def left_curve():
    """Reference y = 0.05 x^2, curving to the left of the vehicle."""
    x0 = np.array([0.0, 0.0, 0.0, 10.0, 0.0, 0.0])
    return x0, [0.0, 0.0, 0.05, 0.0]


@pytest.fixture
def offset_curve():
    """Vehicle 2m right of a curving path, path heading away to the left."""
    coeffs = [2.0, 0.3, 0.01, 0.0]
    x0 = np.array([0.0, 0.0, 0.0, 15.0, 2.0, -np.arctan(0.3)])
    return x0, coeffs


# ============================================================================
# Config tests
# ============================================================================

class TestMPCConfig:

    def test_defaults_are_valid(self, config):
        assert config.horizon == 10
        assert config.dt == 0.1
        assert config.lf == 2.67
        assert config.max_steering == pytest.approx(np.deg2rad(25.0), abs=1e-6)

    def test_frozen(self, config):
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.horizon = 20

    @pytest.mark.parametrize("overrides", [
        {'horizon': 1},
        {'dt': 0.0},
        {'lf': -1.0},
        {'max_steering': 0.0},
        {'min_acceleration': 1.0, 'max_acceleration': 1.0},
        {'polynomial_degree': 0},
        {'min_waypoints': 3},
        {'cte_weight': -1.0},
        {'max_cpu_time': 0.0},
        {'actuation_latency': -0.1},
        {'fallback_throttle': -2.0},
        {'diagnostic_interval': 0},
        {'horizon': 10.0},
        {'max_iterations': 1.5},
        {'polynomial_degree': True},
        {'min_waypoints': '4'},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError):
            MPCConfig(**overrides)

    def test_replace(self, config):
        derived = config.replace(horizon=15, warm_start=False)
        assert derived.horizon == 15
        assert derived.warm_start is False
        assert config.horizon == 10

    def test_replace_unknown_key(self, config):
        with pytest.raises(ConfigError):
            config.replace(horizion=15)

    def test_replace_validates(self, config):
        with pytest.raises(ConfigError):
            config.replace(dt=-0.1)


# ============================================================================
# Solution structure tests
# ============================================================================

class TestHorizonSolution:

    def test_shapes(self, optimizer, config, straight):
        sol = optimizer.solve(*straight)
        assert sol.states.shape == (config.horizon, 6)
        assert sol.controls.shape == (config.horizon - 1, 2)
        assert sol.iterations >= 0
        assert sol.solve_time > 0.0

    def test_initial_state_is_pinned(self, optimizer, offset_curve):
        x0, coeffs = offset_curve
        sol = optimizer.solve(x0, coeffs)
        np.testing.assert_array_equal(sol.states[0], x0)

    def test_controls_within_bounds(self, optimizer, config, offset_curve):
        sol = optimizer.solve(*offset_curve)
        assert np.all(np.abs(sol.controls[:, 0]) <= config.max_steering)
        assert np.all(sol.controls[:, 1] >= config.min_acceleration)
        assert np.all(sol.controls[:, 1] <= config.max_acceleration)

    def test_trajectory_follows_model(self, optimizer, config, offset_curve):
        x0, coeffs = offset_curve
        sol = optimizer.solve(x0, coeffs)
        model = KinematicBicycle(lf=config.lf, dt=config.dt)
        for t in range(config.horizon - 1):
            predicted = model.step(sol.states[t], sol.controls[t], coeffs)
            np.testing.assert_allclose(sol.states[t + 1], predicted, atol=1e-4)

    def test_horizon_length_follows_config(self, config, straight):
        opt = HorizonOptimizer(config.replace(horizon=5))
        sol = opt.solve(*straight)
        assert sol.states.shape == (5, 6)
        assert sol.controls.shape == (4, 2)


# ============================================================================
# Behaviour tests
# ============================================================================

class TestSteeringBehaviour:

    def test_straight_path_no_steering(self, optimizer, straight):
        sol = optimizer.solve(*straight)
        assert abs(sol.controls[0, 0]) < 1e-3
        # Below reference velocity: accelerate
        assert sol.controls[0, 1] > 0.0

    def test_left_curve_steers_left(self, optimizer, left_curve):
        sol = optimizer.solve(*left_curve)
        assert sol.controls[0, 0] > 0.0

    def test_offset_path_steers_toward_path(self, optimizer, offset_curve):
        sol = optimizer.solve(*offset_curve)
        assert sol.controls[0, 0] > 0.0
        assert sol.states[-1, 1] > 0.0

    def test_above_reference_velocity_brakes(self, config, straight):
        opt = HorizonOptimizer(config.replace(reference_velocity=5.0))
        x0, coeffs = straight
        sol = opt.solve(x0, coeffs)
        assert sol.controls[0, 1] < 0.0

    def test_deterministic_without_warm_start(self, config, offset_curve):
        opt = HorizonOptimizer(config.replace(warm_start=False))
        first = opt.solve(*offset_curve)
        second = opt.solve(*offset_curve)
        np.testing.assert_allclose(first.controls, second.controls, atol=1e-8)


# ============================================================================
# Failure handling tests
# ============================================================================

class TestSolveFailure:

    def test_zero_iterations_raises(self, config, offset_curve):
        opt = HorizonOptimizer(config.replace(max_iterations=0))
        with pytest.raises(SolveFailure) as excinfo:
            opt.solve(*offset_curve)
        assert excinfo.value.status

    def test_non_finite_cold_start_raises(self, optimizer):
        """Extreme but finite speed overflows the initial-guess rollout."""
        x0 = np.array([0.0, 0.0, 0.0, 1e300, 0.0, 0.0])
        with pytest.raises(SolveFailure) as excinfo:
            optimizer.solve(x0, [0.0, 0.1, 0.03, -0.002])
        assert excinfo.value.status == "non_finite"
        assert optimizer._prev_states is None

    def test_warm_start_kept_after_success(self, optimizer, straight):
        optimizer.solve(*straight)
        assert optimizer._prev_states is not None
        assert optimizer._prev_controls is not None

    def test_failure_resets_warm_start(self, config, offset_curve):
        opt = HorizonOptimizer(config)
        opt.solve(*offset_curve)
        assert opt._prev_states is not None

        opt.config = config.replace(max_iterations=0)
        with pytest.raises(SolveFailure):
            opt.solve(*offset_curve)
        assert opt._prev_states is None
        assert opt._prev_controls is None

    def test_reset(self, optimizer, straight):
        optimizer.solve(*straight)
        optimizer.reset()
        assert optimizer._prev_states is None


if __name__ == '__main__':
    pytest.main([__file__, '-v', '--tb=short'])
