"""Pytest configuration and fixtures for the flow solver tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# main.py and visualizer.py live at the repository root
sys.path.insert(0, str(Path(__file__).parent.parent))

from flowsim.config import InflowCondition, SimulationConfig
from flowsim.grid import BoundaryType, Boundary, create_default_boundary, create_field


@pytest.fixture
def small_field():
    """12x8 field with 0.1 m cells and a 0.01 s step."""
    return create_field(12, 8, density=1.0, viscosity=0.01, dx=0.1, dt=0.01)


@pytest.fixture
def channel_boundary():
    """Default channel for the 12x8 field: walls top/bottom, inlet left, outlet right."""
    return create_default_boundary(12, 8)


@pytest.fixture
def still_boundary():
    """Default channel whose inlet imposes zero velocity."""
    return create_default_boundary(12, 8, inflow=InflowCondition(velocity=(0.0, 0.0)))


@pytest.fixture
def open_boundary():
    """12x8 boundary where every cell is FLUID (no walls, inlet or outlet)."""
    return Boundary(np.full((8, 12), BoundaryType.FLUID, dtype=np.int8))


@pytest.fixture
def quiet_config():
    """
    Small inviscid channel without body forces or confinement.

    A uniform inflow is an exact steady state of this configuration.
    """
    return SimulationConfig(
        width=24,
        height=12,
        dx=0.05,
        time_step=0.005,
        viscosity=0.0,
        gravity=(0.0, 0.0),
        buoyancy_factor=0.0,
        enable_vorticity_confinement=False,
        diffusion_iterations=5,
        pressure_iterations=20,
    )


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
