"""
===============================================================================
MGA FIDELITY - Patched-Conic Trajectory Evaluator
===============================================================================
Reconstructs a multi-gravity-assist trajectory from its packed parameter
vector under the patched-conic approximation:

    1. Node epochs: t0 plus the cumulative leg durations.
    2. Body positions and velocities from the ephemerides at the node epochs.
    3. One Lambert arc per leg; a leg with a deep-space manoeuvre (DSM) is
       flown as two arcs through the DSM point.
    4. Impulsive delta-V at every node: departure from a parking orbit,
       powered swingbys with a minimum pericenter, DSMs, capture.

DSM point (position formulation): at radius_ratio * |r_body| from the
central body, in a direction obtained by rotating the departure body's
radial unit vector by the in-plane angle about the body's orbit normal and
then lifting it by the out-of-plane angle:

    u_dsm = cos(phi) * (cos(theta) * u_r + sin(theta) * u_t) + sin(phi) * u_n

Boundary points are ordered in time: N + D + 1 points for N legs of which D
carry a DSM.
===============================================================================
"""

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from mgafidelity.core.data_structures import LegBoundary
from mgafidelity.core.exceptions import ConfigurationError
from mgafidelity.dynamics.environment import BodySystem
from mgafidelity.dynamics.orbital_mechanics import LambertSolver
from mgafidelity.guidance.maneuver_planner import ManeuverPlanner
from mgafidelity.guidance.time_of_flight import leg_times_of_flight
from mgafidelity.guidance.trajectory_layout import LegType, TrajectoryLayout

logger = logging.getLogger(__name__)

# Default minimum flyby pericenter, in body radii
DEFAULT_PERICENTER_FACTOR = 1.1

# (semi-major axis [m], eccentricity); inf = start/end at the SOI edge
Orbit = Tuple[float, float]


class TrajectoryEvaluator(Protocol):
    """Anything that turns a parameter vector into trajectory boundary points."""

    def calculate_trajectory(self, vector: NDArray,
                             layout: Optional[TrajectoryLayout] = None) -> float:
        ...

    def maneuvers(self) -> Tuple[NDArray, NDArray, NDArray]:
        ...

    def boundaries(self) -> List[LegBoundary]:
        ...


def dsm_direction(r_body: NDArray, v_body: NDArray,
                  in_plane_angle: float, out_of_plane_angle: float) -> NDArray:
    """Unit vector towards the DSM point, relative to the departure body's orbit."""
    u_r = r_body / np.linalg.norm(r_body)
    h = np.cross(r_body, v_body)
    u_n = h / np.linalg.norm(h)
    u_t = np.cross(u_n, u_r)
    in_plane = np.cos(in_plane_angle) * u_r + np.sin(in_plane_angle) * u_t
    return np.cos(out_of_plane_angle) * in_plane + np.sin(out_of_plane_angle) * u_n


class PatchedConicTrajectory:
    """
    Patched-conic MGA trajectory with optional position-formulation DSMs.

    Parameters
    ----------
    bodies : BodySystem
        Bodies with ephemerides, including the central body.
    body_order : sequence of str
        Transfer bodies, N + 1 names for N legs.  Leg i flies from
        body_order[i] to body_order[i + 1].
    leg_types : sequence of LegType
        One per leg.  DEPARTURE is only valid for the first leg.
    central_body : str
        Body at the origin of the heliocentric frame.
    minimum_pericenter_radii : sequence of float, optional
        Lowest admissible flyby radius per transfer body (m).  Defaults to
        1.1 body radii.
    departure_orbit, capture_orbit : (float, float)
        (semi-major axis, eccentricity) of the parking and target orbits.
        An infinite semi-major axis starts / ends at the SOI edge.
    lambert_solver : LambertSolver, optional
    """

    def __init__(
        self,
        bodies: BodySystem,
        body_order: Sequence[str],
        leg_types: Sequence[LegType],
        central_body: str = 'Sun',
        minimum_pericenter_radii: Optional[Sequence[float]] = None,
        departure_orbit: Orbit = (float('inf'), 0.0),
        capture_orbit: Orbit = (float('inf'), 0.0),
        lambert_solver: Optional[LambertSolver] = None,
    ) -> None:
        self.leg_types = [lt if isinstance(lt, LegType) else LegType.from_string(lt)
                          for lt in leg_types]
        if not self.leg_types:
            raise ConfigurationError("A trajectory needs at least one leg")
        if len(body_order) != len(self.leg_types) + 1:
            raise ConfigurationError(
                f"Transfer body order has {len(body_order)} entries, expected "
                f"{len(self.leg_types) + 1} for {len(self.leg_types)} legs"
            )
        for index, leg_type in enumerate(self.leg_types):
            if leg_type is LegType.DEPARTURE and index != 0:
                raise ConfigurationError(
                    f"Leg {index} is of type {LegType.DEPARTURE.value}; "
                    "only the first leg can be"
                )

        self.bodies = bodies
        self.body_order = list(body_order)
        self.central_body = bodies.get_body(central_body)
        self.transfer_bodies = [bodies.get_body(name) for name in self.body_order]

        if minimum_pericenter_radii is None:
            minimum_pericenter_radii = [DEFAULT_PERICENTER_FACTOR * body.radius
                                        for body in self.transfer_bodies]
        if len(minimum_pericenter_radii) != len(self.body_order):
            raise ConfigurationError(
                f"Expected {len(self.body_order)} minimum pericenter radii, "
                f"got {len(minimum_pericenter_radii)}"
            )
        self.minimum_pericenter_radii = [float(r) for r in minimum_pericenter_radii]

        self.departure_orbit = tuple(departure_orbit)
        self.capture_orbit = tuple(capture_orbit)
        self.lambert_solver = lambert_solver or LambertSolver()
        self.planner = ManeuverPlanner()

        self._boundaries: Optional[List[LegBoundary]] = None
        self._total_delta_v = float('nan')

    # ------------------------------------------------------------------ #
    #  Evaluation
    # ------------------------------------------------------------------ #
    def calculate_trajectory(self, vector: NDArray,
                             layout: Optional[TrajectoryLayout] = None) -> float:
        """
        Evaluate the trajectory for *vector*.

        Args:
            vector: Packed parameter vector
            layout: Layout of *vector*; built here if not supplied

        Returns:
            Total delta-V (m/s); NaN when a DSM side has no time of flight.

        Raises:
            ConfigurationError: If the vector does not match the legs
            GeometryError: If a Lambert arc cannot be solved
        """
        vector = np.asarray(vector, dtype=np.float64)
        if layout is None:
            layout = TrajectoryLayout.build(self.leg_types, vector.size)
        elif layout.leg_types != tuple(self.leg_types) or layout.vector_length != vector.size:
            raise ConfigurationError("Layout does not describe this trajectory and vector")

        names = layout.boundary_names(self.body_order)
        mu = self.central_body.mu
        t0 = float(vector[0])

        positions: List[NDArray] = []
        epochs: List[float] = []
        delta_vs: List[float] = []

        # Heliocentric velocities at each body node: (arriving, departing)
        arrival_velocity: Optional[NDArray] = None
        elapsed = 0.0

        for slot in layout.slots:
            i = slot.total_index
            body_dep = self.transfer_bodies[i]
            body_arr = self.transfer_bodies[i + 1]
            state_dep = body_dep.state(t0 + elapsed)
            r_dep, v_body_dep = state_dep[:3], state_dep[3:]

            times = leg_times_of_flight(slot, layout, vector)
            duration = sum(times)
            r_arr = body_arr.position(t0 + elapsed + duration)

            if slot.leg_type.has_dsm:
                block = layout.dsm_block_index(slot)
                radius_ratio, in_plane, out_of_plane = vector[block + 1:block + 4]
                r_dsm = (radius_ratio * np.linalg.norm(r_dep)
                         * dsm_direction(r_dep, v_body_dep, in_plane, out_of_plane))
                v_leave, v_dsm_in = self._solve_dsm_arc(r_dep, r_dsm, times[0], mu, i)
                v_dsm_out, v_arrive = self._solve_dsm_arc(r_dsm, r_arr, times[1], mu, i)
            else:
                v_leave, v_arrive = self.lambert_solver.solve(r_dep, r_arr, times[0], mu)

            # Node at the departure body of this leg
            v_inf_out = v_leave - v_body_dep
            if i == 0:
                dv_node = self.planner.departure_delta_v(
                    np.linalg.norm(v_inf_out), body_dep.mu, *self.departure_orbit)
            else:
                dv_node = self.planner.powered_swingby_delta_v(
                    arrival_velocity - v_body_dep, v_inf_out,
                    body_dep.mu, self.minimum_pericenter_radii[i])
            positions.append(r_dep)
            epochs.append(elapsed)
            delta_vs.append(dv_node)

            if slot.leg_type.has_dsm:
                positions.append(r_dsm)
                epochs.append(elapsed + times[0])
                delta_vs.append(self.planner.deep_space_delta_v(v_dsm_in, v_dsm_out))

            arrival_velocity = v_arrive
            elapsed += duration

        # Final node: capture at the last body
        body_final = self.transfer_bodies[-1]
        state_final = body_final.state(t0 + elapsed)
        v_inf_in = arrival_velocity - state_final[3:]
        positions.append(state_final[:3])
        epochs.append(elapsed)
        delta_vs.append(self.planner.capture_delta_v(
            np.linalg.norm(v_inf_in), body_final.mu, *self.capture_orbit))

        self._boundaries = [
            LegBoundary(position=r, epoch=t, delta_v=dv, name=name)
            for r, t, dv, name in zip(positions, epochs, delta_vs, names)
        ]
        self._total_delta_v = float(sum(delta_vs))

        logger.info(
            "Patched-conic trajectory %s: %d boundary points, total dv = %.1f m/s",
            '-'.join(names), len(self._boundaries), self._total_delta_v,
        )
        return self._total_delta_v

    def _solve_dsm_arc(self, r1: NDArray, r2: NDArray, tof: float, mu: float,
                       leg_index: int) -> Tuple[NDArray, NDArray]:
        """
        Lambert arc on one side of a DSM.

        A DSM fraction of 0 or 1 leaves one side with no time of flight.  Its
        velocities are then undefined (NaN), so are the delta-Vs that depend
        on them; the boundary points stay valid and the leg engine reports
        the degenerate sub-leg on its own.
        """
        if tof > 0.0:
            return self.lambert_solver.solve(r1, r2, tof, mu)
        logger.warning(
            "Leg %d: DSM sub-arc has time of flight %.3e s; its delta-V is undefined",
            leg_index, tof,
        )
        return np.full(3, np.nan), np.full(3, np.nan)

    # ------------------------------------------------------------------ #
    #  Results
    # ------------------------------------------------------------------ #
    def boundaries(self) -> List[LegBoundary]:
        """Boundary points of the last evaluated trajectory, in time order."""
        if self._boundaries is None:
            raise RuntimeError("calculate_trajectory() has not been called")
        return list(self._boundaries)

    def maneuvers(self) -> Tuple[NDArray, NDArray, NDArray]:
        """
        Returns:
            (positions (M, 3), epochs (M,), delta_vs (M,)); epochs are seconds
            since the trajectory start.
        """
        boundaries = self.boundaries()
        positions = np.array([b.position for b in boundaries])
        epochs = np.array([b.epoch for b in boundaries])
        delta_vs = np.array([b.delta_v for b in boundaries])
        return positions, epochs, delta_vs

    @property
    def total_delta_v(self) -> float:
        return self._total_delta_v

    def __repr__(self) -> str:
        return (
            f"PatchedConicTrajectory({'-'.join(self.body_order)}, "
            f"legs={[lt.value for lt in self.leg_types]})"
        )
