"""
===============================================================================
MGA FIDELITY - Leg Propagation-and-Difference Engine
===============================================================================
Produces, for one evaluation leg, the two state histories that are compared:

    analytic  : the Lambert arc between the leg's boundary points, sampled by
                Kepler propagation about the central body
    numerical : the full problem (central body plus perturbing bodies)
                integrated from the Lambert boundary state

The analytic history is sampled at the numerical history's epochs, so both
share their first and last epochs.

Propagation anchors:

    'departure' -- integrate forward from the Lambert departure state
    'midpoint'  -- take the Lambert state at half the time of flight and
                   integrate backward to the start and forward to the end

Each call is independent of every other leg; the engine holds only
read-only configuration and may be shared between worker threads.
===============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np
from numpy.typing import NDArray

from mgafidelity.core.constants import JULIAN_DAY
from mgafidelity.core.data_structures import LegHistories, TimeIndexedStateHistory
from mgafidelity.core.exceptions import ConfigurationError
from mgafidelity.dynamics.environment import AccelerationSettings, BodySystem
from mgafidelity.dynamics.orbital_mechanics import LambertSolver, propagate_kepler
from mgafidelity.dynamics.propagation import (
    NumericalPropagator,
    sphere_of_influence_exit_offset,
)

logger = logging.getLogger(__name__)

PROPAGATION_ANCHORS = ('departure', 'midpoint')


@dataclass(frozen=True)
class LegTask:
    """
    Everything needed to compare one evaluation leg.

    Attributes:
        leg_index: Evaluation-leg index
        departure_position: Boundary position at the leg start (3,)
        arrival_position: Boundary position at the leg end (3,)
        start_epoch: Leg start, seconds since J2000
        time_of_flight: Leg duration (s)
        departure_name: Body name or 'DSM'
        arrival_name: Body name or 'DSM'
        departure_is_body: False when the leg starts at a DSM point
        arrival_is_body: False when the leg ends at a DSM point
    """
    leg_index: int
    departure_position: NDArray
    arrival_position: NDArray
    start_epoch: float
    time_of_flight: float
    departure_name: str = ''
    arrival_name: str = ''
    departure_is_body: bool = True
    arrival_is_body: bool = True

    @property
    def end_epoch(self) -> float:
        return self.start_epoch + self.time_of_flight


class LegPropagationEngine:
    """
    Lambert-versus-full-propagation engine for single legs.

    Parameters
    ----------
    bodies : BodySystem
        Bodies referenced by the acceleration settings.
    acceleration_settings : AccelerationSettings
        Central body and perturbing bodies of the full problem.
    integrator_settings : dict, optional
        Passed verbatim to ``solve_ivp``.
    propagation_anchor : str
        'departure' (default) or 'midpoint'.
    terminate_at_departure_soi : bool
        Start the numerical propagation where the Lambert arc leaves the
        departure body's sphere of influence.
    terminate_at_arrival_soi : bool
        Stop the numerical propagation on entering the arrival body's
        sphere of influence.
    lambert_solver : LambertSolver, optional
    """

    def __init__(
        self,
        bodies: BodySystem,
        acceleration_settings: AccelerationSettings,
        integrator_settings: Optional[Dict[str, Any]] = None,
        propagation_anchor: str = 'departure',
        terminate_at_departure_soi: bool = False,
        terminate_at_arrival_soi: bool = False,
        lambert_solver: Optional[LambertSolver] = None,
    ) -> None:
        if propagation_anchor not in PROPAGATION_ANCHORS:
            raise ConfigurationError(
                f"Unknown propagation anchor '{propagation_anchor}'. "
                f"Valid: {list(PROPAGATION_ANCHORS)}"
            )
        self.bodies = bodies
        self.acceleration_settings = acceleration_settings
        self.central_body = bodies.get_body(acceleration_settings.central_body)
        self.propagator = NumericalPropagator(
            acceleration_settings.build(bodies), integrator_settings)
        self.propagation_anchor = propagation_anchor
        self.terminate_at_departure_soi = terminate_at_departure_soi
        self.terminate_at_arrival_soi = terminate_at_arrival_soi
        self.lambert_solver = lambert_solver or LambertSolver()

    def propagate_leg(self, task: LegTask) -> LegHistories:
        """
        Solve the leg's Lambert problem and propagate the full problem.

        Raises:
            GeometryError: If the Lambert problem has no solution
            IntegrationError: If the numerical propagation fails
        """
        mu = self.central_body.mu
        r_dep = np.asarray(task.departure_position, dtype=np.float64)
        v_dep, _ = self.lambert_solver.solve(
            r_dep, task.arrival_position, task.time_of_flight, mu)

        offset = 0.0
        if self.terminate_at_departure_soi and task.departure_is_body:
            offset = sphere_of_influence_exit_offset(
                r_dep, v_dep, mu, self.bodies.get_body(task.departure_name),
                task.start_epoch, task.time_of_flight)

        terminal_body = None
        if self.terminate_at_arrival_soi and task.arrival_is_body:
            terminal_body = self.bodies.get_body(task.arrival_name)

        propagation_start = task.start_epoch + offset
        if self.propagation_anchor == 'departure':
            r0, v0 = propagate_kepler(r_dep, v_dep, offset, mu)
            numerical = self.propagator.propagate(
                np.concatenate([r0, v0]), propagation_start, task.end_epoch, terminal_body)
        else:
            numerical = self._propagate_from_midpoint(
                r_dep, v_dep, task, propagation_start, terminal_body)

        analytic = self._sample_kepler_arc(r_dep, v_dep, task.start_epoch, numerical.epochs)

        logger.debug(
            "Leg %d (%s -> %s): %d epochs over %.2f days",
            task.leg_index, task.departure_name, task.arrival_name,
            len(numerical), (numerical.last_epoch - numerical.first_epoch) / JULIAN_DAY,
        )
        return LegHistories(
            leg_index=task.leg_index,
            analytic=analytic,
            numerical=numerical,
            departure_body=task.departure_name,
            arrival_body=task.arrival_name,
        )

    # ------------------------------------------------------------------ #
    def _propagate_from_midpoint(self, r_dep, v_dep, task, propagation_start,
                                 terminal_body) -> TimeIndexedStateHistory:
        mu = self.central_body.mu
        midpoint = propagation_start + 0.5 * (task.end_epoch - propagation_start)
        r_mid, v_mid = propagate_kepler(r_dep, v_dep, midpoint - task.start_epoch, mu)
        state_mid = np.concatenate([r_mid, v_mid])

        backward = self.propagator.propagate(state_mid, midpoint, propagation_start)
        forward = self.propagator.propagate(state_mid, midpoint, task.end_epoch, terminal_body)

        epochs = np.concatenate([backward.epochs, forward.epochs[1:]])
        states = np.vstack([backward.states, forward.states[1:]])
        return TimeIndexedStateHistory(epochs, states)

    def _sample_kepler_arc(self, r_dep, v_dep, start_epoch,
                           epochs: NDArray) -> TimeIndexedStateHistory:
        mu = self.central_body.mu
        states = np.empty((len(epochs), 6))
        for k, t in enumerate(epochs):
            r, v = propagate_kepler(r_dep, v_dep, t - start_epoch, mu)
            states[k, :3] = r
            states[k, 3:] = v
        return TimeIndexedStateHistory(epochs, states)

    def __repr__(self) -> str:
        return (
            f"LegPropagationEngine(central={self.central_body.name}, "
            f"anchor={self.propagation_anchor})"
        )
