"""
===============================================================================
MGA FIDELITY - Full-Problem Numerical Propagation
===============================================================================
Numerical propagation of the spacecraft translational state under a
PointMassGravity model with scipy's ``solve_ivp``.

The integrator settings dictionary is handed to ``solve_ivp`` verbatim, so
any of its keywords (``method``, ``rtol``, ``atol``, ``max_step``,
``first_step`` ...) may be configured.  The output epochs are the
integrator's own steps; the first and last epochs are always the requested
start epoch and the final (or terminal-event) epoch.

Optional sphere-of-influence handling:

    * entering the arrival body's SOI terminates the propagation
      (terminal ``solve_ivp`` event),
    * leaving the departure body's SOI is located on the Kepler arc with
      Brent's method, to shift the propagation start epoch.
===============================================================================
"""

import logging
from typing import Any, Dict, Optional

import numpy as np
from numpy.typing import NDArray
from scipy.integrate import solve_ivp
from scipy.optimize import brentq

from mgafidelity.core.constants import JULIAN_DAY
from mgafidelity.core.data_structures import TimeIndexedStateHistory
from mgafidelity.core.exceptions import GeometryError, IntegrationError
from mgafidelity.dynamics.environment import CelestialBody, PointMassGravity
from mgafidelity.dynamics.orbital_mechanics import propagate_kepler

logger = logging.getLogger(__name__)


DEFAULT_INTEGRATOR_SETTINGS: Dict[str, Any] = {
    'method': 'DOP853',
    'rtol': 1e-10,
    'atol': 1e-6,
}


class NumericalPropagator:
    """
    Cowell propagation of the spacecraft state under point-mass gravity.

    Parameters
    ----------
    gravity : PointMassGravity
        Acceleration model of the full problem.
    integrator_settings : dict, optional
        Keyword arguments forwarded to ``scipy.integrate.solve_ivp``.
    """

    def __init__(
        self,
        gravity: PointMassGravity,
        integrator_settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.gravity = gravity
        self.integrator_settings = dict(
            DEFAULT_INTEGRATOR_SETTINGS if integrator_settings is None else integrator_settings
        )

    def _equations_of_motion(self, t: float, y: NDArray) -> NDArray:
        try:
            accel = self.gravity.acceleration(y[:3], t)
        except ValueError as exc:
            raise IntegrationError(f"Acceleration model failed at t = {t:.6e} s: {exc}") from exc
        if not np.all(np.isfinite(accel)):
            raise IntegrationError(f"Non-finite acceleration at t = {t:.6e} s")
        return np.concatenate([y[3:], accel])

    def propagate(
        self,
        initial_state: NDArray,
        start_epoch: float,
        end_epoch: float,
        terminal_body: Optional[CelestialBody] = None,
    ) -> TimeIndexedStateHistory:
        """
        Propagate *initial_state* from *start_epoch* to *end_epoch*.

        Propagation runs backwards when ``end_epoch < start_epoch``; the
        returned history is always in increasing epoch order.

        Args:
            initial_state: Cartesian state [x, y, z, vx, vy, vz] at start_epoch
            start_epoch: Seconds since J2000
            end_epoch: Seconds since J2000
            terminal_body: If given, stop on entering this body's sphere of
                influence

        Returns:
            TimeIndexedStateHistory of the integrator steps.

        Raises:
            IntegrationError: If the integrator fails or produces non-finite
                states.
        """
        initial_state = np.asarray(initial_state, dtype=np.float64)
        if initial_state.shape != (6,):
            raise IntegrationError(f"Initial state must have shape (6,), got {initial_state.shape}")
        if end_epoch == start_epoch:
            raise IntegrationError("Propagation span is empty")

        settings = dict(self.integrator_settings)
        if terminal_body is not None:
            settings['events'] = self._sphere_of_influence_entry_event(terminal_body)

        sol = solve_ivp(
            self._equations_of_motion,
            (start_epoch, end_epoch),
            initial_state,
            **settings,
        )

        if sol.status == -1:
            raise IntegrationError(f"Integration failed: {sol.message}")
        if not np.all(np.isfinite(sol.y)):
            raise IntegrationError("Integration produced non-finite states")

        epochs = sol.t
        states = sol.y.T
        if end_epoch < start_epoch:
            epochs = epochs[::-1]
            states = states[::-1]

        logger.debug(
            "Propagated %.3f days in %d steps (status %d)",
            abs(epochs[-1] - epochs[0]) / JULIAN_DAY, len(epochs), sol.status,
        )
        return TimeIndexedStateHistory(epochs, states)

    @staticmethod
    def _sphere_of_influence_entry_event(body: CelestialBody):
        def event(t, y):
            return np.linalg.norm(y[:3] - body.position(t)) - body.sphere_of_influence
        event.terminal = True
        event.direction = -1
        return event

    def __repr__(self) -> str:
        return f"NumericalPropagator({self.gravity!r}, {self.integrator_settings})"


def sphere_of_influence_exit_offset(
    position: NDArray,
    velocity: NDArray,
    mu: float,
    body: CelestialBody,
    start_epoch: float,
    time_of_flight: float,
) -> float:
    """
    Time after *start_epoch* at which the two-body arc leaves *body*'s SOI.

    The arc (*position*, *velocity*) is Kepler-propagated about the central
    body and the SOI crossing is bracketed on [0, time_of_flight].

    Raises
    ------
    GeometryError
        If the arc is still inside the SOI at the end of the leg.
    """
    def distance_margin(dt: float) -> float:
        r, _ = propagate_kepler(position, velocity, dt, mu)
        return np.linalg.norm(r - body.position(start_epoch + dt)) - body.sphere_of_influence

    if distance_margin(0.0) >= 0.0:
        return 0.0
    if distance_margin(time_of_flight) <= 0.0:
        raise GeometryError(
            f"Leg does not leave the sphere of influence of {body.name} "
            f"within its time of flight"
        )
    return brentq(distance_margin, 0.0, time_of_flight, xtol=1e-3)
