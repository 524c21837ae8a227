"""
===============================================================================
MGA FIDELITY - Configuration Test Suite
===============================================================================
Tests for YAML scenario loading: the shipped scenario file, unit
conversion into the parameter vector, validation errors and the builders
for bodies and the comparison driver.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import copy

import numpy as np
import pytest
import yaml
from numpy.testing import assert_allclose

from mgafidelity.core.constants import DEG2RAD, JULIAN_DAY
from mgafidelity.core.exceptions import ConfigurationError
from mgafidelity.guidance.trajectory_layout import LegType
from mgafidelity.simulation.config import ComparisonConfig, load_config
from mgafidelity.simulation.mga_comparison import MGAComparison

CONFIG_PATH = os.path.join(os.path.dirname(__file__), '..', 'mgafidelity', 'config',
                           'mga_comparison.yaml')


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def raw_config():
    return load_config(CONFIG_PATH)


@pytest.fixture
def small_config():
    return {
        'mission': {'name': 'EVM test'},
        'bodies': {
            'central_body': 'Sun',
            'transfer_body_order': ['Earth', 'Venus', 'Mars'],
            'leg_types': ['Departure', 'SwingbyWithDSM'],
        },
        'trajectory': {
            'departure_epoch_days': 100.0,
            'leg_durations_days': [150.0, 300.0],
            'dsm': [{'fraction': 0.3, 'radius_ratio': 1.1,
                     'in_plane_angle_deg': 90.0, 'out_of_plane_angle_deg': 1.0}],
            'departure_orbit': {'semi_major_axis_km': 6678.0, 'eccentricity': 0.0},
        },
        'propagation': {
            'perturbing_bodies': ['Jupiter'],
            'integrator': {'method': 'RK45', 'rtol': 1e-9, 'atol': 1.0},
            'anchor': 'midpoint',
        },
        'execution': {'num_workers': 2},
    }


# =============================================================================
# Shipped scenario
# =============================================================================

class TestShippedScenario:

    def test_cli_default_is_packaged_scenario(self):
        from mgafidelity.main import DEFAULT_CONFIG
        assert DEFAULT_CONFIG.is_file()
        assert os.path.samefile(DEFAULT_CONFIG, CONFIG_PATH)

    def test_loads(self, raw_config):
        assert 'bodies' in raw_config
        assert raw_config['propagation']['integrator']['rtol'] == pytest.approx(1e-10)

    def test_vector_layout(self, raw_config):
        scenario = ComparisonConfig.from_dict(raw_config)
        assert scenario.vector.size == 1 + 5 + 4
        assert scenario.vector[0] == pytest.approx(-789.8 * JULIAN_DAY)
        assert scenario.leg_types[2] is LegType.SWINGBY_WITH_DSM
        assert np.isinf(scenario.departure_orbit[0])
        assert scenario.terminate_at_arrival_soi is True

    def test_build_comparison(self, raw_config):
        scenario = ComparisonConfig.from_dict(raw_config)
        comparison = scenario.build_comparison()
        assert isinstance(comparison, MGAComparison)
        assert comparison.num_workers == 4
        layout, tasks, boundaries, _ = comparison.build_tasks(scenario.vector)
        assert layout.number_of_evaluation_legs == 6
        assert [t.leg_index for t in tasks] == [0, 1, 2, 3, 4]
        assert len(boundaries) == 7


# =============================================================================
# Conversion
# =============================================================================

class TestConversion:

    def test_units(self, small_config):
        scenario = ComparisonConfig.from_dict(small_config)
        assert_allclose(scenario.vector, [
            100.0 * JULIAN_DAY, 150.0 * JULIAN_DAY, 300.0 * JULIAN_DAY,
            0.3, 1.1, 90.0 * DEG2RAD, 1.0 * DEG2RAD,
        ])
        assert scenario.departure_orbit == (6678.0e3, 0.0)
        assert np.isinf(scenario.capture_orbit[0])
        assert scenario.propagation_anchor == 'midpoint'
        assert scenario.integrator_settings == {'method': 'RK45', 'rtol': 1e-9, 'atol': 1.0}
        assert scenario.num_workers == 2

    def test_acceleration_settings(self, small_config):
        settings = ComparisonConfig.from_dict(small_config).acceleration_settings
        assert settings.central_body == 'Sun'
        assert settings.perturbing_bodies == ('Jupiter',)

    def test_build_bodies(self, small_config):
        bodies = ComparisonConfig.from_dict(small_config).build_bodies()
        for name in ('Sun', 'Earth', 'Venus', 'Mars', 'Jupiter'):
            assert name in bodies
        assert len(bodies) == 5

    def test_yaml_round_trip_of_file(self, small_config, tmp_path):
        path = tmp_path / 'scenario.yaml'
        path.write_text(yaml.safe_dump(small_config))
        scenario = ComparisonConfig.from_dict(load_config(str(path)))
        assert scenario.name == 'EVM test'


# =============================================================================
# Validation
# =============================================================================

class TestValidation:

    def test_missing_section(self, small_config):
        del small_config['trajectory']
        with pytest.raises(ConfigurationError):
            ComparisonConfig.from_dict(small_config)

    def test_missing_key(self, small_config):
        del small_config['bodies']['leg_types']
        with pytest.raises(ConfigurationError):
            ComparisonConfig.from_dict(small_config)

    def test_duration_count_mismatch(self, small_config):
        small_config['trajectory']['leg_durations_days'] = [150.0]
        with pytest.raises(ConfigurationError):
            ComparisonConfig.from_dict(small_config)

    def test_missing_dsm_block(self, small_config):
        small_config['trajectory']['dsm'] = []
        with pytest.raises(ConfigurationError):
            ComparisonConfig.from_dict(small_config)

    def test_body_order_mismatch(self, small_config):
        cfg = copy.deepcopy(small_config)
        cfg['bodies']['transfer_body_order'] = ['Earth', 'Venus']
        with pytest.raises(ConfigurationError):
            ComparisonConfig.from_dict(cfg)

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(str(tmp_path / 'missing.yaml'))

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))
