"""Tests for planner configuration loading and validation.

Run with: pytest tests/test_config.py -v
"""

import os
from pathlib import Path

import pytest

from fleet_planner.errors import ConfigurationError
from fleet_planner.warehouse.config import (
    ConcurrencyConfig,
    FleetConfig,
    GridConfig,
    PlannerConfig,
    load_config,
)

DEFAULT_YAML = Path(__file__).parent.parent / "config" / "default_warehouse.yaml"


class TestLoadConfig:
    def test_default_yaml_matches_defaults(self):
        assert load_config(DEFAULT_YAML) == PlannerConfig()

    def test_points_become_tuples(self):
        config = load_config(DEFAULT_YAML)
        assert config.grid.feed_points == ((0, 5),)
        assert config.fleet.queue_points[0] == (11, 11)

    def test_partial_override(self, tmp_path):
        path = tmp_path / "small.yaml"
        path.write_text(
            "grid:\n"
            "  width: 5\n"
            "  height: 4\n"
            "  feed_points: [[0, 1]]\n"
            "fleet:\n"
            "  n_agents: 2\n"
            "  n_tasks: 2\n"
            "  queue_points: [[4, 3], [0, 3]]\n"
            "  start_positions: [[0, 0], [4, 0]]\n"
            "solver:\n"
            "  cost_ceiling: 30\n"
            "random_seed: 99\n"
        )
        config = load_config(path)
        assert (config.grid.width, config.grid.height) == (5, 4)
        assert config.grid.rack_positions is None
        assert config.fleet.start_positions == ((0, 0), (4, 0))
        assert config.solver.cost_ceiling == 30
        assert config.solver.task_probability == 0.99
        assert config.output.base_dir == "output"
        assert config.random_seed == 99

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == PlannerConfig()

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("solver:\n  warp_speed: 9\n")
        with pytest.raises(TypeError):
            load_config(path)


class TestValidation:
    def test_needs_agents(self):
        with pytest.raises(ConfigurationError):
            PlannerConfig(fleet=FleetConfig(n_agents=0))

    def test_needs_tasks(self):
        with pytest.raises(ConfigurationError):
            PlannerConfig(fleet=FleetConfig(n_tasks=0))

    def test_queue_point_per_agent(self):
        with pytest.raises(ConfigurationError, match="queue points"):
            PlannerConfig(fleet=FleetConfig(n_agents=5))

    def test_grid_square(self):
        with pytest.raises(ConfigurationError):
            PlannerConfig(grid=GridConfig(grid_square=0))

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            PlannerConfig(fleet=FleetConfig(n_agents=0))


class TestConcurrency:
    def test_bounded_by_ceiling(self):
        assert ConcurrencyConfig().workers(1) == 1

    def test_bounded_by_cpus(self):
        assert ConcurrencyConfig().workers(10_000) == (os.cpu_count() or 1)

    def test_never_zero(self):
        assert ConcurrencyConfig().workers(0) == 1
