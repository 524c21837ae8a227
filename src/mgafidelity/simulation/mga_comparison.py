"""
===============================================================================
MGA FIDELITY - MGA Comparison Driver
===============================================================================
Runs the Lambert-versus-full-propagation comparison over a whole
multi-gravity-assist trajectory.

Workflow per run:

    1. Lay out the parameter vector (TrajectoryLayout) and validate it
       against the leg types and transfer bodies.  Configuration errors are
       raised here, before any propagation starts.
    2. Evaluate the patched-conic trajectory once, giving the boundary
       points, and resolve the evaluation-leg times of flight once.
    3. Fan out one task per compared evaluation leg onto a thread pool.
       Each task solves the leg's Lambert problem, propagates the full
       problem and differences the two histories at their endpoints.
    4. Fan in by leg index.  A leg that raises GeometryError or
       IntegrationError is recorded as a LegFailure; the other legs are
       unaffected.

The last evaluation leg is not compared: legs 0 .. E-2 of the E
evaluation legs are.
===============================================================================
"""

import logging
import threading
from dataclasses import dataclass, field
from multiprocessing.pool import ThreadPool
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from mgafidelity.core.constants import DSM_NODE_NAME, JULIAN_DAY
from mgafidelity.core.data_structures import (
    LegBoundary,
    LegFailure,
    LegHistories,
    LegResidual,
)
from mgafidelity.core.exceptions import (
    ConfigurationError,
    GeometryError,
    IntegrationError,
    LegComparisonError,
)
from mgafidelity.dynamics.environment import AccelerationSettings, BodySystem
from mgafidelity.guidance.patched_conic import PatchedConicTrajectory, TrajectoryEvaluator
from mgafidelity.guidance.time_of_flight import resolve_compared_times_of_flight
from mgafidelity.guidance.trajectory_layout import LegType, TrajectoryLayout
from mgafidelity.simulation.endpoint_differ import difference_at_endpoints
from mgafidelity.simulation.leg_propagation import LegPropagationEngine, LegTask

logger = logging.getLogger(__name__)

LegOutcome = Tuple[int, Union[LegResidual, LegFailure], Optional[LegHistories]]


def _compare_single_leg(engine: LegPropagationEngine, task: LegTask) -> LegOutcome:
    """
    Propagate and difference one leg.

    Geometry and integration failures are turned into a LegFailure record so
    that a single bad leg never aborts its siblings.
    """
    names = dict(departure_body=task.departure_name, arrival_body=task.arrival_name)
    try:
        histories = engine.propagate_leg(task)
    except (GeometryError, IntegrationError) as exc:
        logger.warning("Leg %d (%s -> %s) failed: %s",
                       task.leg_index, task.departure_name, task.arrival_name, exc)
        return task.leg_index, LegFailure.from_exception(task.leg_index, exc, **names), None

    departure, arrival = difference_at_endpoints(histories.analytic, histories.numerical)
    residual = LegResidual(
        leg_index=task.leg_index,
        departure_residual=departure,
        arrival_residual=arrival,
        departure_epoch=histories.numerical.first_epoch,
        arrival_epoch=histories.numerical.last_epoch,
        **names,
    )
    return task.leg_index, residual, histories


# =============================================================================
# RESULT
# =============================================================================

@dataclass
class ComparisonResult:
    """
    Outcome of one comparison run.

    Attributes:
        residuals: Evaluation-leg index -> LegResidual, for successful legs
        failures: Evaluation-leg index -> LegFailure, for failed legs
        histories: Evaluation-leg index -> LegHistories, for successful legs
        boundaries: Patched-conic boundary points of the trajectory
        times_of_flight: Times of flight of the compared legs (s)
        total_delta_v: Patched-conic total delta-V (m/s)
    """
    residuals: Dict[int, LegResidual] = field(default_factory=dict)
    failures: Dict[int, LegFailure] = field(default_factory=dict)
    histories: Dict[int, LegHistories] = field(default_factory=dict)
    boundaries: List[LegBoundary] = field(default_factory=list)
    times_of_flight: NDArray = field(default_factory=lambda: np.empty(0))
    total_delta_v: float = float('nan')

    @property
    def is_complete(self) -> bool:
        """True when every compared leg produced a residual."""
        return not self.failures

    @property
    def leg_indices(self) -> List[int]:
        return sorted(set(self.residuals) | set(self.failures))

    def state_differences(self) -> Dict[int, Tuple[NDArray, NDArray]]:
        """Leg index -> (departure residual, arrival residual)."""
        return {i: self.residuals[i].as_pair() for i in sorted(self.residuals)}

    def raise_for_failures(self) -> None:
        """Raise LegComparisonError if any leg failed."""
        if self.failures:
            raise LegComparisonError(self.failures)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per compared leg, residual norms in m and m/s."""
        rows = []
        for i in self.leg_indices:
            if i in self.residuals:
                res = self.residuals[i]
                rows.append({
                    'leg': i,
                    'departure_body': res.departure_body,
                    'arrival_body': res.arrival_body,
                    'status': 'ok',
                    'time_of_flight_days': self._tof_days(i),
                    'departure_position_error': res.departure_position_error,
                    'departure_velocity_error': res.departure_velocity_error,
                    'arrival_position_error': res.arrival_position_error,
                    'arrival_velocity_error': res.arrival_velocity_error,
                    'error': '',
                })
            else:
                fail = self.failures[i]
                rows.append({
                    'leg': i,
                    'departure_body': fail.departure_body,
                    'arrival_body': fail.arrival_body,
                    'status': 'failed',
                    'time_of_flight_days': self._tof_days(i),
                    'departure_position_error': np.nan,
                    'departure_velocity_error': np.nan,
                    'arrival_position_error': np.nan,
                    'arrival_velocity_error': np.nan,
                    'error': f"{fail.error_type}: {fail.message}",
                })

        frame = pd.DataFrame(rows)
        if not frame.empty:
            frame.set_index('leg', inplace=True)
        return frame

    def _tof_days(self, index: int) -> float:
        if index < len(self.times_of_flight):
            return float(self.times_of_flight[index]) / JULIAN_DAY
        return np.nan


# =============================================================================
# DRIVER
# =============================================================================

class MGAComparison:
    """
    Compares the Lambert solution of every leg with a full propagation.

    Parameters
    ----------
    evaluator : TrajectoryEvaluator
        Patched-conic evaluator of the trajectory.
    engine : LegPropagationEngine
        Per-leg Lambert / numerical engine; shared read-only by the workers.
    leg_types : sequence of LegType
        One per leg.
    body_order : sequence of str
        Transfer bodies, one more than the number of legs.
    num_workers : int
        Size of the thread pool.  1 runs the legs in the calling thread.
    """

    def __init__(
        self,
        evaluator: TrajectoryEvaluator,
        engine: LegPropagationEngine,
        leg_types: Sequence[LegType],
        body_order: Sequence[str],
        num_workers: int = 1,
    ) -> None:
        if num_workers < 1:
            raise ConfigurationError(f"num_workers must be at least 1, got {num_workers}")
        self.evaluator = evaluator
        self.engine = engine
        self.leg_types = [lt if isinstance(lt, LegType) else LegType.from_string(lt)
                          for lt in leg_types]
        self.body_order = list(body_order)
        self.num_workers = num_workers
        self._evaluator_lock = threading.Lock()

    def build_tasks(
        self, vector: NDArray,
    ) -> Tuple[TrajectoryLayout, List[LegTask], List[LegBoundary], float]:
        """
        Validate *vector*, evaluate the trajectory and build the leg tasks.

        Returns:
            (layout, tasks, boundaries, total_delta_v)

        Raises:
            ConfigurationError: On any inconsistency between the vector, the
                leg types and the transfer bodies
            GeometryError: If the patched-conic trajectory cannot be evaluated
        """
        vector = np.asarray(vector, dtype=np.float64)
        if vector.ndim != 1:
            raise ConfigurationError(f"Parameter vector must be 1-D, got shape {vector.shape}")

        layout = TrajectoryLayout.build(self.leg_types, vector.size)
        layout.check_body_order(self.body_order)

        # The evaluator keeps the last trajectory; evaluate and read it together
        with self._evaluator_lock:
            total_delta_v = self.evaluator.calculate_trajectory(vector, layout)
            boundaries = self.evaluator.boundaries()
        if len(boundaries) != layout.number_of_boundaries:
            raise ConfigurationError(
                f"Evaluator returned {len(boundaries)} boundary points, expected "
                f"{layout.number_of_boundaries}"
            )

        times_of_flight = resolve_compared_times_of_flight(layout, vector)
        t0 = float(vector[0])

        tasks = []
        for i in layout.compared_leg_indices:
            start, end = boundaries[i], boundaries[i + 1]
            logger.debug("Leg %d bounded by %s and %s", i, start.name, end.name)
            tasks.append(LegTask(
                leg_index=i,
                departure_position=start.position,
                arrival_position=end.position,
                start_epoch=t0 + start.epoch,
                time_of_flight=float(times_of_flight[i]),
                departure_name=start.name,
                arrival_name=end.name,
                departure_is_body=start.name != DSM_NODE_NAME,
                arrival_is_body=end.name != DSM_NODE_NAME,
            ))
        return layout, tasks, boundaries, total_delta_v

    def run(self, vector: NDArray) -> ComparisonResult:
        """
        Compare every compared evaluation leg of the trajectory *vector*.

        Returns:
            ComparisonResult with one residual or failure per compared leg.
        """
        layout, tasks, boundaries, total_delta_v = self.build_tasks(vector)

        logger.info(
            "Starting MGA comparison: %d legs (%d with DSM), %d compared, %d workers",
            layout.number_of_legs, layout.number_of_dsm_legs, len(tasks), self.num_workers,
        )

        args_list = [(self.engine, task) for task in tasks]
        if self.num_workers <= 1 or len(tasks) <= 1:
            outcomes = [_compare_single_leg(*args) for args in args_list]
        else:
            with ThreadPool(processes=self.num_workers) as pool:
                outcomes = pool.starmap(_compare_single_leg, args_list)

        result = ComparisonResult(
            boundaries=boundaries,
            times_of_flight=np.array([task.time_of_flight for task in tasks]),
            total_delta_v=total_delta_v,
        )
        for index, record, histories in outcomes:
            if isinstance(record, LegFailure):
                result.failures[index] = record
            else:
                result.residuals[index] = record
                result.histories[index] = histories

        logger.info(
            "MGA comparison complete: %d/%d legs compared successfully",
            len(result.residuals), len(tasks),
        )
        return result

    def __repr__(self) -> str:
        return (
            f"MGAComparison({'-'.join(self.body_order)}, "
            f"workers={self.num_workers})"
        )


def get_difference_full_propagation_wrt_lambert_targeter_mga(
    bodies: BodySystem,
    body_order: Sequence[str],
    leg_types: Sequence[LegType],
    vector: NDArray,
    acceleration_settings: AccelerationSettings,
    integrator_settings: Optional[Dict[str, Any]] = None,
    minimum_pericenter_radii: Optional[Sequence[float]] = None,
    departure_orbit: Tuple[float, float] = (float('inf'), 0.0),
    capture_orbit: Tuple[float, float] = (float('inf'), 0.0),
    num_workers: int = 1,
    raise_on_failure: bool = False,
    **engine_options: Any,
) -> Dict[int, Tuple[NDArray, NDArray]]:
    """
    One-shot comparison of a patched-conic MGA trajectory.

    Builds the patched-conic evaluator and the leg engine, runs the
    comparison and returns leg index -> (departure residual, arrival
    residual).  Failed legs are absent from the map unless
    *raise_on_failure* is set, in which case LegComparisonError is raised.

    Extra keyword arguments (``propagation_anchor``,
    ``terminate_at_departure_soi``, ``terminate_at_arrival_soi``) go to
    LegPropagationEngine.
    """
    evaluator = PatchedConicTrajectory(
        bodies, body_order, leg_types,
        central_body=acceleration_settings.central_body,
        minimum_pericenter_radii=minimum_pericenter_radii,
        departure_orbit=departure_orbit,
        capture_orbit=capture_orbit,
    )
    engine = LegPropagationEngine(bodies, acceleration_settings, integrator_settings,
                                  **engine_options)
    result = MGAComparison(evaluator, engine, leg_types, body_order, num_workers).run(vector)
    if raise_on_failure:
        result.raise_for_failures()
    return result.state_differences()
