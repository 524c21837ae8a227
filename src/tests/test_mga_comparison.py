"""
===============================================================================
MGA FIDELITY - Comparison Driver Test Suite
===============================================================================
Tests for the MGA comparison driver: compared-leg selection, per-leg failure
isolation, thread-pool fan-out, determinism, configuration validation before
any propagation, result tables and plots, and the one-shot entry point.

Driver semantics are tested with a stub evaluator and a stub leg engine;
the end-to-end tests use the patched-conic evaluator and the real engine.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import matplotlib.pyplot as plt
import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from mgafidelity.core.constants import AU, JULIAN_DAY
from mgafidelity.core.data_structures import LegBoundary, LegHistories, TimeIndexedStateHistory
from mgafidelity.core.exceptions import (
    ConfigurationError,
    GeometryError,
    IntegrationError,
    LegComparisonError,
)
from mgafidelity.dynamics.environment import AccelerationSettings, BodySystem
from mgafidelity.guidance.patched_conic import PatchedConicTrajectory
from mgafidelity.guidance.time_of_flight import resolve_times_of_flight
from mgafidelity.guidance.trajectory_layout import LegType, TrajectoryLayout
from mgafidelity.simulation.leg_propagation import LegPropagationEngine
from mgafidelity.simulation.mga_comparison import (
    MGAComparison,
    get_difference_full_propagation_wrt_lambert_targeter_mga,
)
from mgafidelity.visualization.residual_plots import plot_leg_residuals, plot_position_deviation

D = LegType.DEPARTURE
S = LegType.SWINGBY
DSM = LegType.SWINGBY_WITH_DSM

INTEGRATOR = {'method': 'DOP853', 'rtol': 1e-11, 'atol': 1e-6}


# =============================================================================
# Stubs
# =============================================================================

class StubEvaluator:
    """Boundary points on the x axis, epochs from the resolved times of flight."""

    def __init__(self, body_order):
        self.body_order = body_order
        self.calls = 0
        self._boundaries = None

    def calculate_trajectory(self, vector, layout=None):
        self.calls += 1
        layout = layout or TrajectoryLayout.build(
            [D] + [S] * (len(self.body_order) - 2), len(vector))
        tofs = resolve_times_of_flight(layout, vector)
        epochs = np.concatenate([[0.0], np.cumsum(tofs)])
        names = layout.boundary_names(self.body_order)
        self._boundaries = [
            LegBoundary(position=[(k + 1) * AU, 0.0, 0.0], epoch=t, name=name)
            for k, (t, name) in enumerate(zip(epochs, names))
        ]
        return 0.0

    def boundaries(self):
        return list(self._boundaries)

    def maneuvers(self):
        raise NotImplementedError


class StubEngine:
    """Residual of leg i is (i + 1) in every component; selected legs fail."""

    def __init__(self, failing=(), error=IntegrationError):
        self.failing = set(failing)
        self.error = error
        self.tasks = []

    def propagate_leg(self, task):
        self.tasks.append(task)
        if task.leg_index in self.failing:
            raise self.error(f"leg {task.leg_index} blew up")
        epochs = [task.start_epoch, task.end_epoch]
        analytic = TimeIndexedStateHistory(epochs, np.full((2, 6), task.leg_index + 1.0))
        numerical = TimeIndexedStateHistory(epochs, np.zeros((2, 6)))
        return LegHistories(task.leg_index, analytic, numerical,
                            task.departure_name, task.arrival_name)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def four_body_order():
    return ['Earth', 'Venus', 'Earth', 'Jupiter', 'Saturn']


@pytest.fixture
def plain_vector():
    return np.array([100.0 * JULIAN_DAY, 150.0 * JULIAN_DAY, 400.0 * JULIAN_DAY,
                     60.0 * JULIAN_DAY, 1000.0 * JULIAN_DAY])


@pytest.fixture(scope='module')
def bodies():
    return BodySystem.create_simplified_solar_system(['Earth', 'Venus', 'Mars', 'Jupiter'])


def _stub_comparison(body_order, leg_types, engine, num_workers=1):
    return MGAComparison(StubEvaluator(body_order), engine, leg_types, body_order,
                         num_workers=num_workers)


# =============================================================================
# Driver semantics
# =============================================================================

class TestDriverSemantics:

    def test_last_evaluation_leg_not_compared(self, four_body_order, plain_vector):
        engine = StubEngine()
        result = _stub_comparison(four_body_order, [D, S, S, S], engine).run(plain_vector)
        assert sorted(result.residuals) == [0, 1, 2]
        assert result.is_complete
        assert_allclose(result.times_of_flight, plain_vector[1:4])

    def test_two_legs_compare_first_only(self):
        vector = np.array([0.0, 150.0 * JULIAN_DAY, 300.0 * JULIAN_DAY])
        engine = StubEngine()
        _stub_comparison(['Earth', 'Venus', 'Mars'], [D, S], engine).run(vector)
        assert len(engine.tasks) == 1
        assert engine.tasks[0].time_of_flight == 150.0 * JULIAN_DAY

    def test_leg_tasks_use_bounding_boundaries(self, four_body_order, plain_vector):
        engine = StubEngine()
        _stub_comparison(four_body_order, [D, S, S, S], engine).run(plain_vector)
        task = sorted(engine.tasks, key=lambda t: t.leg_index)[1]
        assert (task.departure_name, task.arrival_name) == ('Venus', 'Earth')
        assert_allclose(task.departure_position, [2 * AU, 0.0, 0.0])
        assert_allclose(task.arrival_position, [3 * AU, 0.0, 0.0])
        assert task.start_epoch == pytest.approx(250.0 * JULIAN_DAY)

    def test_dsm_sub_legs(self):
        vector = np.array([0.0, 100.0 * JULIAN_DAY, 300.0 * JULIAN_DAY, 0.25, 1.0, 0.0, 0.0])
        engine = StubEngine()
        result = _stub_comparison(['Earth', 'Venus', 'Mars'], [D, DSM], engine).run(vector)
        assert sorted(result.residuals) == [0, 1]
        tasks = sorted(engine.tasks, key=lambda t: t.leg_index)
        assert (tasks[1].departure_name, tasks[1].arrival_name) == ('Venus', 'DSM')
        assert tasks[1].arrival_is_body is False
        assert tasks[1].time_of_flight == pytest.approx(75.0 * JULIAN_DAY)

    def test_result_keeps_its_own_boundaries(self, four_body_order, plain_vector):
        evaluator = StubEvaluator(four_body_order)
        other_vector = plain_vector * 2.0

        class InterleavingEngine(StubEngine):
            """Re-evaluates the shared evaluator mid-run, as a second run would."""

            def propagate_leg(self, task):
                evaluator.calculate_trajectory(other_vector)
                return super().propagate_leg(task)

        comparison = MGAComparison(evaluator, InterleavingEngine(), [D, S, S, S],
                                   four_body_order)
        result = comparison.run(plain_vector)

        expected = np.concatenate([[0.0], np.cumsum(plain_vector[1:])])
        assert_allclose([b.epoch for b in result.boundaries], expected)

    def test_residual_values(self, four_body_order, plain_vector):
        result = _stub_comparison(four_body_order, [D, S, S, S], StubEngine()).run(plain_vector)
        departure, arrival = result.state_differences()[2]
        assert_allclose(departure, np.full(6, 3.0))
        assert_allclose(arrival, np.full(6, 3.0))


# =============================================================================
# Failure isolation
# =============================================================================

class TestFailureIsolation:

    @pytest.mark.parametrize("num_workers", [1, 3])
    def test_integration_error_isolated(self, four_body_order, plain_vector, num_workers):
        engine = StubEngine(failing={1})
        result = _stub_comparison(four_body_order, [D, S, S, S], engine,
                                  num_workers=num_workers).run(plain_vector)

        assert sorted(result.residuals) == [0, 2]
        assert sorted(result.failures) == [1]
        assert 1 not in result.state_differences()
        assert result.failures[1].error_type == 'IntegrationError'
        assert 'blew up' in result.failures[1].message
        assert not result.is_complete
        assert_allclose(result.residuals[2].arrival_residual, np.full(6, 3.0))

    def test_geometry_error_isolated(self, four_body_order, plain_vector):
        engine = StubEngine(failing={0}, error=GeometryError)
        result = _stub_comparison(four_body_order, [D, S, S, S], engine).run(plain_vector)
        assert result.failures[0].error_type == 'GeometryError'
        assert sorted(result.residuals) == [1, 2]

    def test_raise_for_failures(self, four_body_order, plain_vector):
        result = _stub_comparison(four_body_order, [D, S, S, S],
                                  StubEngine(failing={0, 2})).run(plain_vector)
        with pytest.raises(LegComparisonError) as excinfo:
            result.raise_for_failures()
        assert sorted(excinfo.value.failures) == [0, 2]

    def test_dataframe_marks_failures(self, four_body_order, plain_vector):
        result = _stub_comparison(four_body_order, [D, S, S, S],
                                  StubEngine(failing={1})).run(plain_vector)
        frame = result.to_dataframe()
        assert list(frame.index) == [0, 1, 2]
        assert list(frame['status']) == ['ok', 'failed', 'ok']
        assert np.isnan(frame.loc[1, 'arrival_position_error'])
        assert frame.loc[2, 'arrival_position_error'] == pytest.approx(3.0 * np.sqrt(3.0))
        assert frame.loc[0, 'time_of_flight_days'] == pytest.approx(150.0)

    def test_saved_plots_are_closed(self, four_body_order, plain_vector, tmp_path):
        result = _stub_comparison(four_body_order, [D, S, S, S],
                                  StubEngine(failing={1})).run(plain_vector)
        open_before = len(plt.get_fignums())
        for index in range(3):
            plot_leg_residuals(result, str(tmp_path / f'residuals_{index}.png'))
            plot_position_deviation(result, str(tmp_path / f'deviation_{index}.png'))
        assert len(plt.get_fignums()) == open_before
        assert (tmp_path / 'deviation_2.png').stat().st_size > 0


# =============================================================================
# Configuration validation
# =============================================================================

class TestConfigurationValidation:

    def test_inconsistent_vector_raises_before_propagation(self, four_body_order):
        engine = StubEngine()
        comparison = _stub_comparison(four_body_order, [D, S, S, S], engine)
        with pytest.raises(ConfigurationError):
            comparison.run(np.array([0.0, 1.0, 2.0]))
        assert engine.tasks == []
        assert comparison.evaluator.calls == 0

    def test_body_order_mismatch_raises(self, plain_vector):
        engine = StubEngine()
        comparison = _stub_comparison(['Earth', 'Venus'], [D, S, S, S], engine)
        with pytest.raises(ConfigurationError):
            comparison.run(plain_vector)
        assert engine.tasks == []

    def test_invalid_worker_count(self, four_body_order):
        with pytest.raises(ConfigurationError):
            _stub_comparison(four_body_order, [D, S, S, S], StubEngine(), num_workers=0)


# =============================================================================
# End to end
# =============================================================================

class TestEndToEnd:

    @pytest.fixture
    def comparison(self, bodies):
        body_order = ['Earth', 'Venus', 'Mars', 'Jupiter']
        leg_types = [D, DSM, S]
        evaluator = PatchedConicTrajectory(bodies, body_order, leg_types)
        engine = LegPropagationEngine(
            bodies, AccelerationSettings('Sun', ('Jupiter',)), INTEGRATOR)
        return MGAComparison(evaluator, engine, leg_types, body_order, num_workers=2)

    @pytest.fixture
    def vector(self):
        return np.array([
            2500.0 * JULIAN_DAY,
            160.0 * JULIAN_DAY, 350.0 * JULIAN_DAY, 900.0 * JULIAN_DAY,
            0.45, 1.2, 1.3, 0.02,
        ])

    def test_all_compared_legs_present(self, comparison, vector):
        result = comparison.run(vector)
        assert sorted(result.leg_indices) == [0, 1, 2]
        assert len(result.boundaries) == 5
        for index, histories in result.histories.items():
            assert histories.analytic.first_epoch == histories.numerical.first_epoch
            assert histories.analytic.last_epoch == histories.numerical.last_epoch

    @pytest.mark.parametrize("fraction, failed_leg", [(0.0, 1), (1.0, 2)])
    def test_degenerate_dsm_fraction_fails_only_its_sub_leg(self, comparison, vector,
                                                            fraction, failed_leg):
        vector = vector.copy()
        vector[4] = fraction
        result = comparison.run(vector)

        assert sorted(result.leg_indices) == [0, 1, 2]
        assert list(result.failures) == [failed_leg]
        assert result.failures[failed_leg].error_type == 'GeometryError'
        assert sorted(result.residuals) == sorted({0, 1, 2} - {failed_leg})
        assert np.isnan(result.total_delta_v)
        assert result.to_dataframe().loc[failed_leg, 'status'] == 'failed'

    def test_identical_inputs_give_identical_residuals(self, comparison, vector):
        first = comparison.run(vector).state_differences()
        second = comparison.run(vector).state_differences()
        assert sorted(first) == sorted(second)
        for index in first:
            assert_array_equal(first[index][0], second[index][0])
            assert_array_equal(first[index][1], second[index][1])

    def test_plots_written(self, comparison, vector, tmp_path):
        result = comparison.run(vector)
        bar_path = tmp_path / 'residuals.png'
        line_path = tmp_path / 'deviation.png'
        plot_leg_residuals(result, str(bar_path))
        plot_position_deviation(result, str(line_path))
        assert bar_path.exists() and bar_path.stat().st_size > 0
        assert line_path.exists() and line_path.stat().st_size > 0

    def test_one_shot_sun_only(self, bodies):
        vector = np.array([1200.0 * JULIAN_DAY, 200.0 * JULIAN_DAY, 250.0 * JULIAN_DAY])
        differences = get_difference_full_propagation_wrt_lambert_targeter_mga(
            bodies, ['Earth', 'Mars', 'Venus'], ['Departure', 'Swingby'], vector,
            AccelerationSettings('Sun'), {'method': 'DOP853', 'rtol': 1e-12, 'atol': 1e-6},
        )
        assert list(differences) == [0]
        departure, arrival = differences[0]
        assert_allclose(departure, np.zeros(6), atol=1e-6)
        assert np.linalg.norm(arrival[:3]) < 1e-6 * AU
