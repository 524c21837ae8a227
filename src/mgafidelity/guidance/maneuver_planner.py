"""
===============================================================================
MGA FIDELITY - Maneuver Planner
===============================================================================
Impulsive delta-V models at the boundary points of a patched-conic MGA
trajectory:

    - departure from a parking orbit onto the escape hyperbola
    - capture from the approach hyperbola into a target orbit
    - powered swingby with a minimum pericenter radius
    - deep-space manoeuvre between two heliocentric arcs

Sign conventions and units:
    - All distances in meters
    - All velocities in m/s
    - Gravitational parameters (mu) in m^3/s^2
    - Hyperbolic excess velocities are relative to the flyby body
===============================================================================
"""

import logging

import numpy as np
from scipy.optimize import brentq

logger = logging.getLogger(__name__)


class ManeuverPlanner:
    """
    Computes the impulsive delta-V at each node of an MGA trajectory.

    The planner is stateless: all inputs are passed as arguments and results
    are returned directly.

    Typical usage:
        planner = ManeuverPlanner()
        dv = planner.departure_delta_v(v_inf, EARTH_MU, 6678e3, 0.0)
    """

    # -------------------------------------------------------------------------
    # Departure / Capture
    # -------------------------------------------------------------------------

    def departure_delta_v(
        self,
        v_infinity: float,
        mu_body: float,
        semi_major_axis: float,
        eccentricity: float,
    ) -> float:
        """
        Delta-V to leave a parking orbit with hyperbolic excess *v_infinity*.

        The burn is applied at the parking orbit pericenter
        r_p = a * (1 - e):

            v_peri_hyp  = sqrt(v_infinity^2 + 2 * mu / r_p)
            v_peri_park = sqrt(mu * (1 + e) / r_p)
            dv          = v_peri_hyp - v_peri_park

        An infinite semi-major axis means the spacecraft starts at the edge
        of the sphere of influence, and dv = v_infinity.

        Args:
            v_infinity: Hyperbolic excess speed (m/s).
            mu_body: Gravitational parameter of the departure body.
            semi_major_axis: Parking orbit semi-major axis (m), or inf.
            eccentricity: Parking orbit eccentricity.

        Returns:
            Departure delta-V magnitude (m/s).
        """
        if np.isinf(semi_major_axis):
            return float(v_infinity)

        r_p = semi_major_axis * (1.0 - eccentricity)
        if r_p <= 0.0:
            raise ValueError(f"Parking orbit pericenter must be positive, got {r_p}")

        v_peri_hyperbolic = np.sqrt(v_infinity**2 + 2.0 * mu_body / r_p)
        v_peri_orbit = np.sqrt(mu_body * (1.0 + eccentricity) / r_p)
        dv = abs(v_peri_hyperbolic - v_peri_orbit)

        logger.debug(
            "Departure: v_inf=%.1f m/s, r_p=%.0f m, dv=%.1f m/s",
            v_infinity, r_p, dv,
        )
        return float(dv)

    def capture_delta_v(
        self,
        v_infinity: float,
        mu_body: float,
        semi_major_axis: float,
        eccentricity: float,
    ) -> float:
        """
        Delta-V to capture from an approach hyperbola into a target orbit.

        The geometry is the departure burn run backwards, so the magnitude
        is the same expression evaluated with the arrival excess speed.
        """
        return self.departure_delta_v(v_infinity, mu_body, semi_major_axis, eccentricity)

    # -------------------------------------------------------------------------
    # Powered Swingby
    # -------------------------------------------------------------------------

    def powered_swingby_delta_v(
        self,
        v_inf_in: np.ndarray,
        v_inf_out: np.ndarray,
        mu_body: float,
        minimum_pericenter: float,
    ) -> float:
        """
        Delta-V of a powered swingby that turns *v_inf_in* into *v_inf_out*.

        The required bending angle delta between the excess velocities is
        split between the incoming and outgoing hyperbolas, which share a
        pericenter r_p:

            e_in  = 1 + r_p * |v_inf_in|^2  / mu
            e_out = 1 + r_p * |v_inf_out|^2 / mu
            asin(1 / e_in) + asin(1 / e_out) = delta

        r_p is found with Brent's method and the burn at pericenter is

            dv = | sqrt(v_out^2 + 2 mu / r_p) - sqrt(v_in^2 + 2 mu / r_p) |

        If the bend cannot be reached above *minimum_pericenter* the flyby is
        flown at the minimum radius and the remaining turn is paid for with
        an additional impulse 2 * v_out * sin(delta_missing / 2).

        Args:
            v_inf_in: Incoming excess velocity relative to the body (3,).
            v_inf_out: Outgoing excess velocity relative to the body (3,).
            mu_body: Gravitational parameter of the flyby body.
            minimum_pericenter: Lowest admissible pericenter radius (m).

        Returns:
            Delta-V magnitude (m/s).
        """
        v_inf_in = np.asarray(v_inf_in, dtype=np.float64)
        v_inf_out = np.asarray(v_inf_out, dtype=np.float64)
        if not (np.all(np.isfinite(v_inf_in)) and np.all(np.isfinite(v_inf_out))):
            return float('nan')

        v_in = np.linalg.norm(v_inf_in)
        v_out = np.linalg.norm(v_inf_out)
        if v_in == 0.0 or v_out == 0.0:
            return float(abs(v_out - v_in))

        cos_delta = np.clip(np.dot(v_inf_in, v_inf_out) / (v_in * v_out), -1.0, 1.0)
        delta = np.arccos(cos_delta)

        def bending_residual(r_p: float) -> float:
            e_in = 1.0 + r_p * v_in**2 / mu_body
            e_out = 1.0 + r_p * v_out**2 / mu_body
            return np.arcsin(1.0 / e_in) + np.arcsin(1.0 / e_out) - delta

        max_bend_residual = bending_residual(minimum_pericenter)
        if max_bend_residual < 0.0:
            # Turn not achievable: fly at the minimum radius, burn the rest
            r_p = minimum_pericenter
            missing = -max_bend_residual
            dv_turn = 2.0 * v_out * np.sin(missing / 2.0)
        else:
            r_upper = minimum_pericenter
            while bending_residual(r_upper) > 0.0:
                r_upper *= 2.0
                if r_upper > 1e30:
                    # Bend of ~0 deg: periapsis at infinity, magnitudes only
                    return float(abs(v_out - v_in))
            r_p = brentq(bending_residual, minimum_pericenter, r_upper, xtol=1.0)
            dv_turn = 0.0

        v_peri_in = np.sqrt(v_in**2 + 2.0 * mu_body / r_p)
        v_peri_out = np.sqrt(v_out**2 + 2.0 * mu_body / r_p)
        dv = abs(v_peri_out - v_peri_in) + dv_turn

        logger.debug(
            "Powered swingby: v_inf_in=%.1f, v_inf_out=%.1f, "
            "delta=%.3f rad, r_peri=%.0f m, dv=%.1f m/s",
            v_in, v_out, delta, r_p, dv,
        )
        return float(dv)

    # -------------------------------------------------------------------------
    # Deep-Space Manoeuvre
    # -------------------------------------------------------------------------

    def deep_space_delta_v(self, v_arrive: np.ndarray, v_depart: np.ndarray) -> float:
        """
        Impulse joining two heliocentric arcs at the DSM point:

            dv = | v_depart - v_arrive |
        """
        return float(np.linalg.norm(np.asarray(v_depart) - np.asarray(v_arrive)))

    def __repr__(self) -> str:
        return "ManeuverPlanner()"
