"""Tests for the FluidSimulator orchestrator."""

import logging
import math
from collections import deque

import numpy as np
import pytest

from flowsim import (
    ConfigurationError,
    FluidSimulator,
    SimulationConfig,
    SimulationDivergedError,
)
from flowsim.grid import BoundaryType, CircleObstacle, RectangleObstacle
from flowsim.simulation import HISTORY_LENGTH


@pytest.fixture
def sim(quiet_config):
    return FluidSimulator(quiet_config)


class TestConstruction:
    def test_reynolds_number(self):
        sim = FluidSimulator(SimulationConfig(width=100, height=50, dx=0.02,
                                              viscosity=0.001, density=1.0))
        assert sim.state.reynolds_number == pytest.approx(1000.0, rel=1e-12)

    def test_overrides_apply_on_top_of_config(self, quiet_config):
        sim = FluidSimulator(quiet_config, width=30)
        assert sim.config.width == 30
        assert sim.field.u.shape == (12, 31)

    def test_invalid_grid_rejected(self):
        with pytest.raises(ConfigurationError):
            FluidSimulator(width=2, height=2)

    def test_initial_field_matches_inflow(self, sim):
        fluid_rows = slice(1, -1)
        assert np.all(sim.field.u[fluid_rows, :] == 1.0)
        assert np.all(sim.field.temperature == 298.0)
        assert sim.state.time == 0.0 and sim.state.step_count == 0
        assert not sim.is_running


class TestLifecycle:
    def test_step_is_noop_when_stopped(self, sim):
        before = sim.field.u.copy()
        assert sim.step() is None
        assert sim.state.step_count == 0
        assert np.array_equal(sim.field.u, before)

    def test_start_step_stop(self, sim):
        sim.start()
        metrics = sim.step()
        assert metrics is not None
        assert metrics["step"] == 1
        for key in ("total_ms", "diffuse_ms", "project1_ms", "advect_ms",
                    "project2_ms", "forces_ms", "divergence"):
            assert key in metrics
        assert sim.state.time == pytest.approx(sim.config.time_step)

        sim.stop()
        assert sim.step() is None
        assert sim.state.step_count == 1

    def test_toggle_pause(self, sim):
        sim.toggle_pause()
        assert sim.is_running
        sim.toggle_pause()
        assert not sim.is_running

    def test_stops_at_max_simulation_time(self, quiet_config):
        sim = FluidSimulator(quiet_config, time_step=0.25, max_simulation_time=0.75)
        sim.start()
        steps = 0
        while sim.step() is not None:
            steps += 1
            assert steps <= 3
        assert steps == 3
        assert not sim.is_running
        assert sim.state.time == 0.75

    def test_reset_restores_initial_state(self, sim):
        sim.start()
        for _ in range(3):
            sim.step()
        sim.field.temperature[5, 5] = 500.0

        sim.reset()

        assert sim.state.step_count == 0
        assert sim.state.time == 0.0
        assert not sim.is_running
        assert sim.get_state().convergence_history == []
        assert np.all(sim.field.temperature == 298.0)


class TestSteadyFlow:
    def test_uniform_inflow_is_a_fixed_point(self, sim):
        sim.start()
        sim.step()
        first_u = sim.field.u.copy()
        first_v = sim.field.v.copy()
        for _ in range(5):
            sim.step()

        assert np.allclose(sim.field.u, first_u, atol=1e-10)
        assert np.allclose(sim.field.v, first_v, atol=1e-10)
        assert np.allclose(sim.field.u[1:-1, :], 1.0, atol=1e-10)
        assert sim.state.avg_divergence < 1e-8

    def test_history_grows_per_step(self, sim):
        sim.start()
        for _ in range(4):
            sim.step()
        history = sim.get_state().convergence_history
        assert len(history) == 4
        assert isinstance(history, list)

    def test_live_history_is_bounded_deque(self, sim):
        history = sim.state.convergence_history
        assert isinstance(history, deque)
        assert history.maxlen == HISTORY_LENGTH

    def test_history_is_capped(self):
        sim = FluidSimulator(width=6, height=4, dx=0.1, time_step=0.01,
                             viscosity=0.0, gravity=(0.0, 0.0), buoyancy_factor=0.0,
                             enable_vorticity_confinement=False,
                             diffusion_iterations=1, pressure_iterations=1,
                             max_simulation_time=1e6)
        sim.start()
        for _ in range(HISTORY_LENGTH + 5):
            sim.step()
        assert len(sim.state.convergence_history) == HISTORY_LENGTH
        assert sim.state.step_count == HISTORY_LENGTH + 5


class TestObstacles:
    def test_add_and_list(self, sim):
        sim.add_circular_obstacle(8, 6, 2)
        sim.add_rectangular_obstacle(14, 3, 16, 5)
        assert sim.obstacles == (CircleObstacle(8, 6, 2), RectangleObstacle(14, 3, 16, 5))
        assert sim.boundary.solid[6, 8]
        assert sim.boundary.solid[4, 15]

    def test_obstacles_survive_reset(self, sim):
        sim.add_circular_obstacle(8, 6, 2)
        sim.reset()
        assert sim.boundary.solid[6, 8]
        assert len(sim.obstacles) == 1

    def test_clear_obstacles(self, sim):
        sim.add_circular_obstacle(8, 6, 2)
        sim.clear_obstacles()
        assert sim.obstacles == ()
        assert not sim.boundary.solid[6, 8]
        assert np.all(sim.boundary.types[1:-1, 1:-1] == BoundaryType.FLUID)

    def test_no_slip_holds_while_stepping(self, quiet_config):
        sim = FluidSimulator(quiet_config, viscosity=0.001)
        sim.add_circular_obstacle(8, 6, 2)
        sim.start()
        for _ in range(3):
            sim.step()
        assert np.all(sim.field.u[sim.boundary.u_blocked] == 0.0)
        assert np.all(sim.field.v[sim.boundary.v_blocked] == 0.0)

    def test_obstacle_list_is_read_only(self, sim):
        assert isinstance(sim.obstacles, tuple)


class TestHealth:
    def test_nan_raises_and_stops(self, sim):
        sim.start()
        sim.field.u[5, 5] = np.nan
        with pytest.raises(SimulationDivergedError) as info:
            sim.step()
        assert info.value.step == 1
        assert not sim.is_running

    def test_divergence_limit(self, quiet_config):
        sim = FluidSimulator(quiet_config, divergence_limit=1e-30,
                             viscosity=0.01, gravity=(0.0, -9.81))
        sim.add_circular_obstacle(8, 6, 2)
        sim.start()
        with pytest.raises(SimulationDivergedError):
            for _ in range(5):
                sim.step()
        assert not sim.is_running


class TestQueries:
    def test_get_state_is_a_copy(self, sim):
        sim.start()
        sim.step()
        state = sim.get_state()
        state.convergence_history.append(42.0)
        state.time = 99.0
        assert len(sim.state.convergence_history) == 1
        assert sim.state.time != 99.0

    def test_get_config_is_a_copy(self, sim):
        cfg = sim.get_config()
        cfg.viscosity = 5.0
        assert sim.config.viscosity == 0.0

    def test_update_config_pushes_into_field(self, sim):
        sim.update_config(viscosity=0.01, density=2.0, inflow=(2.0, 0.0))
        assert sim.field.viscosity == 0.01
        assert sim.field.density == 2.0
        assert sim.boundary.inflow.velocity == (2.0, 0.0)
        expected = 2.0 * 12 * 0.05 / (0.01 / 2.0)
        assert sim.state.reynolds_number == pytest.approx(expected)

    def test_update_config_rejects_resize(self, sim):
        with pytest.raises(ConfigurationError):
            sim.update_config(width=50)
        sim.update_config(width=24)

    def test_visualization_data(self, sim):
        data = sim.get_visualization_data()
        assert (data.grid_width, data.grid_height) == (24, 12)
        assert data.cell_size == 0.05
        assert data.u.shape == (12, 25)
        assert data.velocity_magnitude.shape == (12, 24)
        assert set(data.statistics) == {
            "max_velocity", "min_pressure", "max_pressure",
            "max_vorticity", "average_divergence",
        }
        data.u[:] = 7.0
        assert not np.any(sim.field.u == 7.0)

    def test_streamline_seeds(self, sim):
        seeds = sim.get_visualization_data().streamline_seeds
        # spacing 5: rows 5 and 10, columns 5..20, plus one per inflow cell
        assert len(seeds) == 2 * 4 + 12
        dx = sim.config.dx
        assert ((5 + 0.5) * dx, (5 + 0.5) * dx) in seeds
        assert (0.5 * dx, 6.5 * dx) in seeds

    def test_streamline_seeds_skip_solids(self, sim):
        sim.add_rectangular_obstacle(5, 5, 5, 5)
        seeds = sim.get_visualization_data(seed_spacing=5).streamline_seeds
        assert len(seeds) == 2 * 4 + 12 - 1


class TestProbe:
    def test_inside_fluid(self, sim):
        dx = sim.config.dx
        probe = sim.get_probe_data(10.3 * dx, 6.2 * dx)
        assert probe.is_valid
        assert probe.u == pytest.approx(1.0)
        assert probe.v == pytest.approx(0.0)
        assert probe.magnitude == pytest.approx(1.0)
        assert probe.temperature == pytest.approx(298.0)

    @pytest.mark.parametrize("x,y", [(-0.01, 0.2), (0.3, -0.01), (1.25, 0.2), (0.3, 0.65)])
    def test_outside_domain(self, sim, x, y):
        probe = sim.get_probe_data(x, y)
        assert not probe.is_valid
        assert probe.u == 0.0 and probe.v == 0.0 and probe.vorticity == 0.0

    @pytest.mark.parametrize("x,y", [(math.nan, 0.2), (0.3, math.nan), (math.inf, 0.2), (0.3, -math.inf)])
    def test_non_finite_position(self, sim, x, y):
        probe = sim.get_probe_data(x, y)
        assert not probe.is_valid
        assert probe.u == 0.0 and probe.magnitude == 0.0

    def test_inside_solid(self, sim):
        dx = sim.config.dx
        sim.add_circular_obstacle(8, 6, 2)
        probe = sim.get_probe_data(8.5 * dx, 6.5 * dx)
        assert not probe.is_valid
        assert probe.u == 0.0 and probe.magnitude == 0.0

    def test_streamline_follows_uniform_flow(self, sim):
        dx = sim.config.dx
        seed = (2.5 * dx, 6.5 * dx)
        points = sim.generate_streamline(seed, steps=10, step_size=0.01)
        assert len(points) == 11
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        assert all(b > a for a, b in zip(xs, xs[1:]))
        assert all(math.isclose(y, seed[1]) for y in ys)

    def test_streamline_stops_leaving_domain(self, sim):
        dx = sim.config.dx
        points = sim.generate_streamline((20.5 * dx, 6.5 * dx), steps=100, step_size=0.1)
        assert len(points) < 101

    def test_streamline_stops_on_nan_velocity(self, sim):
        dx = sim.config.dx
        sim.field.u[:] = np.nan
        points = sim.generate_streamline((2.5 * dx, 6.5 * dx), steps=10, step_size=0.01)
        assert len(points) == 2
        assert math.isnan(points[-1][0])


class TestProgressLogging:
    def test_logs_each_output_interval(self, quiet_config, caplog):
        sim = FluidSimulator(quiet_config, time_step=0.25, output_interval=0.5,
                             max_simulation_time=10.0)
        sim.start()
        with caplog.at_level(logging.INFO, logger="flowsim.simulation"):
            for _ in range(4):
                sim.step()
        progress = [r for r in caplog.records if r.getMessage().startswith("t=")]
        assert len(progress) == 2
