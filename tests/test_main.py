"""Tests for the command-line runner."""

import pytest

import main


class TestBuildSimulator:
    def test_cylinder_for_default_preset(self):
        sim = main.build_simulator("default", width=40, height=20)
        assert (sim.config.width, sim.config.height) == (40, 20)
        assert len(sim.obstacles) == 1
        assert sim.boundary.solid[10, 10]

    def test_pipe_is_empty(self):
        sim = main.build_simulator("pipe", width=30, height=10)
        assert sim.obstacles == ()

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            main.build_simulator("nozzle")


class TestHeadless:
    def test_prints_summary(self, capsys):
        main.run_headless("pipe", width=20, height=8, frames=3)
        out = capsys.readouterr().out
        assert "Headless simulation | pipe | 20x8 | 3 frames" in out
        assert "Frame 000" in out
        assert "Average:" in out

    def test_benchmark_table(self, capsys):
        main.run_benchmark("pipe", width=20, height=8, frames=2)
        out = capsys.readouterr().out
        assert "SOLVER BENCHMARK" in out
        assert "project1_ms" in out
