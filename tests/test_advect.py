"""Tests for semi-Lagrangian advection."""

import numpy as np
import pytest

from flowsim.advect import _bilinear_interpolate, advect
from flowsim.boundary import apply_boundary_conditions
from flowsim.config import InflowCondition
from flowsim.grid import add_circular_obstacle, create_default_boundary, create_field, initialize_field


class TestBilinearInterpolation:
    def test_exact_on_grid_points(self, rng):
        values = rng.normal(size=(5, 6))
        ys, xs = np.mgrid[0:4, 0:5].astype(float)
        assert np.array_equal(_bilinear_interpolate(values, xs, ys), values[0:4, 0:5])

    def test_reproduces_linear_function(self):
        ys, xs = np.mgrid[0:5, 0:6].astype(float)
        values = 2.0 * xs - 3.0 * ys + 1.0
        qx = np.array([0.25, 1.5, 3.75])
        qy = np.array([0.5, 2.25, 3.0])
        expected = 2.0 * qx - 3.0 * qy + 1.0
        assert np.allclose(_bilinear_interpolate(values, qx, qy), expected)


class TestAdvect:
    def test_zero_velocity_is_identity(self, small_field, still_boundary, rng):
        small_field.temperature[:] = rng.uniform(290.0, 310.0, small_field.temperature.shape)
        before = small_field.temperature.copy()

        advect(small_field, still_boundary)

        assert np.array_equal(small_field.temperature[1:-1, 1:-1], before[1:-1, 1:-1])
        assert not small_field.u.any()
        assert not small_field.v.any()

    def test_uniform_flow_translates_one_cell(self):
        dx, dt = 0.1, 0.01
        speed = dx / dt
        field = create_field(12, 8, dx=dx, dt=dt)
        boundary = create_default_boundary(12, 8, inflow=InflowCondition(velocity=(speed, 0.0)))
        initialize_field(field, velocity=(speed, 0.0))
        apply_boundary_conditions(field, boundary)
        field.temperature[:] = 300.0 + np.arange(12, dtype=float)

        advect(field, boundary)

        t = field.temperature
        for x in range(2, 11):
            assert t[1:-1, x] == pytest.approx(300.0 + x - 1, abs=1e-9)
        # the flow itself is unchanged by self-advection
        assert field.u[3, 5] == pytest.approx(speed)

    def test_solid_faces_zero_after_advection(self, small_field, still_boundary, rng):
        add_circular_obstacle(still_boundary, 6, 4, 1.5)
        small_field.u[:] = rng.normal(scale=0.5, size=small_field.u.shape)
        small_field.v[:] = rng.normal(scale=0.5, size=small_field.v.shape)
        apply_boundary_conditions(small_field, still_boundary)

        advect(small_field, still_boundary)

        assert np.all(small_field.u[still_boundary.u_blocked] == 0.0)
        assert np.all(small_field.v[still_boundary.v_blocked] == 0.0)

    def test_snapshot_taken_before_advection(self, small_field, still_boundary, rng):
        small_field.u[1:-1, 2:-2] = rng.normal(size=(6, 9))
        before = small_field.u.copy()
        advect(small_field, still_boundary)
        assert np.array_equal(small_field.u_prev, before)
