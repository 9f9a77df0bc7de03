"""Tests for SimulationConfig, its validation and the presets."""

import pytest

from flowsim.config import (
    PRESETS,
    InflowCondition,
    OutflowCondition,
    SimulationConfig,
    default_config,
)
from flowsim.errors import ConfigurationError, FlowSimError


class TestDefaults:
    def test_default_values(self):
        cfg = SimulationConfig()
        assert (cfg.width, cfg.height, cfg.dx) == (100, 50, 0.02)
        assert cfg.density == 1.0
        assert cfg.viscosity == 0.001
        assert cfg.time_step == 0.001
        assert cfg.diffusion_iterations == 20
        assert cfg.pressure_iterations == 40
        assert cfg.enable_vorticity_confinement
        assert cfg.vorticity_strength == 0.1
        assert cfg.inflow == InflowCondition((1.0, 0.0), 298.0)
        assert cfg.outflow == OutflowCondition(0.0)
        assert cfg.max_simulation_time == 10.0
        assert cfg.output_interval == 0.1
        assert cfg.divergence_limit is None

    def test_default_instances_do_not_share_inflow(self):
        a, b = SimulationConfig(), SimulationConfig()
        a.inflow.temperature = 350.0
        assert b.inflow.temperature == 298.0


class TestValidation:
    @pytest.mark.parametrize("changes", [
        {"width": 2},
        {"height": 1},
        {"width": 10.5},
        {"dx": 0.0},
        {"time_step": -0.001},
        {"density": 0.0},
        {"viscosity": -1e-3},
        {"diffusion_iterations": -1},
        {"pressure_iterations": -5},
        {"output_interval": 0.0},
        {"divergence_limit": -1.0},
    ])
    def test_rejects_invalid(self, changes):
        with pytest.raises(ConfigurationError):
            SimulationConfig(**changes).validate()

    def test_zero_viscosity_and_iterations_allowed(self):
        SimulationConfig(viscosity=0.0, diffusion_iterations=0, pressure_iterations=0).validate()

    def test_error_hierarchy(self):
        assert issubclass(ConfigurationError, FlowSimError)
        assert issubclass(ConfigurationError, ValueError)


class TestReplace:
    def test_returns_updated_copy(self):
        cfg = default_config()
        other = cfg.replace(width=40, viscosity=0.01)
        assert other.width == 40 and other.viscosity == 0.01
        assert cfg.width == 100 and cfg.viscosity == 0.001

    def test_unknown_option(self):
        with pytest.raises(ConfigurationError, match="Unknown"):
            default_config().replace(colour="blue")

    def test_invalid_value(self):
        with pytest.raises(ConfigurationError):
            default_config().replace(height=0)

    @pytest.mark.parametrize("inflow,expected", [
        ((2.0, 0.5), InflowCondition((2.0, 0.5), 298.0)),
        ({"velocity": (0.5, 0.0), "temperature": 310}, InflowCondition((0.5, 0.0), 310.0)),
        (InflowCondition((3.0, 0.0), 280.0), InflowCondition((3.0, 0.0), 280.0)),
    ])
    def test_inflow_coercion(self, inflow, expected):
        assert default_config().replace(inflow=inflow).inflow == expected

    def test_outflow_coercion(self):
        assert default_config().replace(outflow=101325).outflow == OutflowCondition(101325.0)
        assert default_config().replace(outflow={"pressure": 5}).outflow.pressure == 5.0

    def test_to_dict(self):
        data = default_config().to_dict()
        assert data["width"] == 100
        assert data["inflow"] == {"velocity": (1.0, 0.0), "temperature": 298.0}


class TestPresets:
    def test_names(self):
        assert set(PRESETS) == {"default", "karman", "pipe", "airfoil"}

    @pytest.mark.parametrize("name", sorted(PRESETS))
    def test_presets_validate(self, name):
        cfg = PRESETS[name]()
        assert cfg.validate() is cfg

    def test_karman(self):
        cfg = PRESETS["karman"]()
        assert (cfg.width, cfg.height) == (120, 60)
        assert cfg.inflow.velocity == (1.2, 0.0)
        assert cfg.vorticity_strength == 0.2

    def test_pipe_disables_confinement(self):
        assert not PRESETS["pipe"]().enable_vorticity_confinement

    def test_airfoil_uses_air(self):
        cfg = PRESETS["airfoil"]()
        assert cfg.density == 1.225
        assert cfg.inflow.velocity == (20.0, 0.0)
