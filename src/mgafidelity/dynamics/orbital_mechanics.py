"""
===============================================================================
MGA FIDELITY - Two-Body Orbital Mechanics
===============================================================================
Analytic two-body toolkit used on both sides of the patched-conic
comparison:

    1. **Element conversion** -- Keplerian elements to Cartesian state,
       Kepler's equation for elliptic orbits.

    2. **Kepler propagation** -- universal-variable propagation of a
       Cartesian state, valid for elliptic, parabolic and hyperbolic arcs.
       Used to sample the analytic (Lambert) history of each leg.

    3. **Lambert's problem** -- universal-variable boundary-value solver
       connecting two positions in a given time of flight (single
       revolution).

All vectors are in SI units (m, m/s, s).  Failures of the analytic solvers
are reported as GeometryError.

References
----------
    [1] Vallado, "Fundamentals of Astrodynamics and Applications", 4th ed.
    [2] Curtis, "Orbital Mechanics for Engineering Students", 4th ed.
    [3] Bate, Mueller & White, "Fundamentals of Astrodynamics", Dover.
===============================================================================
"""

import logging
from typing import Tuple

import numpy as np
from scipy.optimize import brentq

from mgafidelity.core.constants import TWO_PI
from mgafidelity.core.exceptions import GeometryError

logger = logging.getLogger(__name__)


# =============================================================================
# STUMPFF FUNCTIONS
# =============================================================================

def stumpff_c2(psi: float) -> float:
    """
    Stumpff function c2(psi).

    c2(psi) = (1 - cos(sqrt(psi))) / psi        if psi > 0   (elliptic)
            = (cosh(sqrt(-psi)) - 1) / (-psi)    if psi < 0   (hyperbolic)
            = 1/2                                 if psi = 0   (parabolic)
    """
    if abs(psi) < 1e-12:
        return 1.0 / 2.0
    elif psi > 0.0:
        sqrt_psi = np.sqrt(psi)
        return (1.0 - np.cos(sqrt_psi)) / psi
    else:
        sqrt_neg_psi = np.sqrt(-psi)
        return (np.cosh(sqrt_neg_psi) - 1.0) / (-psi)


def stumpff_c3(psi: float) -> float:
    """
    Stumpff function c3(psi).

    c3(psi) = (sqrt(psi) - sin(sqrt(psi))) / psi^(3/2)       if psi > 0
            = (sinh(sqrt(-psi)) - sqrt(-psi)) / (-psi)^(3/2)  if psi < 0
            = 1/6                                              if psi = 0
    """
    if abs(psi) < 1e-12:
        return 1.0 / 6.0
    elif psi > 0.0:
        sqrt_psi = np.sqrt(psi)
        return (sqrt_psi - np.sin(sqrt_psi)) / (psi * sqrt_psi)
    else:
        sqrt_neg_psi = np.sqrt(-psi)
        return (np.sinh(sqrt_neg_psi) - sqrt_neg_psi) / ((-psi) * sqrt_neg_psi)


# =============================================================================
# ELEMENT CONVERSIONS
# =============================================================================

def solve_kepler_equation(mean_anomaly: float, e: float, tol: float = 1e-14,
                          max_iter: int = 50) -> float:
    """
    Solve Kepler's equation M = E - e*sin(E) for the eccentric anomaly.

    Newton-Raphson, starting from E0 = M (e < 0.8) or E0 = pi (e >= 0.8).
    Only elliptic orbits (0 <= e < 1) are supported.
    """
    if not 0.0 <= e < 1.0:
        raise ValueError(f"Kepler's equation solver needs 0 <= e < 1, got e = {e}")

    M = np.mod(mean_anomaly, TWO_PI)
    E = M if e < 0.8 else np.pi
    for _ in range(max_iter):
        delta = (E - e * np.sin(E) - M) / (1.0 - e * np.cos(E))
        E -= delta
        if abs(delta) < tol:
            return float(E)
    raise ValueError(
        f"Kepler's equation did not converge (M = {mean_anomaly:.6e}, e = {e:.6e})"
    )


def keplerian_to_cartesian(
    a: float, e: float, i: float,
    RAAN: float, omega: float, nu: float,
    mu: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert classical Keplerian orbital elements to Cartesian position and
    velocity vectors.

    The procedure is:
        1. Compute the position and velocity in the perifocal (PQW)
           frame using the orbit equation and angular momentum.
        2. Rotate from PQW to the inertial frame using the 3-1-3 Euler
           rotation defined by (RAAN, inclination, argument of periapsis).

    Parameters
    ----------
    a : float
        Semi-major axis (m).  Negative for hyperbolic orbits.
    e : float
        Eccentricity.
    i, RAAN, omega, nu : float
        Inclination, right ascension of the ascending node, argument of
        periapsis and true anomaly (rad).
    mu : float
        Gravitational parameter (m^3/s^2).

    Returns
    -------
    r : np.ndarray
        3-element position vector (m).
    v : np.ndarray
        3-element velocity vector (m/s).
    """
    p = a * (1.0 - e * e)
    if abs(p) < 1e-10:
        raise ValueError("Semi-latus rectum is near zero; degenerate orbit.")

    cos_nu = np.cos(nu)
    sin_nu = np.sin(nu)
    r_mag = p / (1.0 + e * cos_nu)

    r_pqw = r_mag * np.array([cos_nu, sin_nu, 0.0], dtype=np.float64)
    v_pqw = np.sqrt(mu / p) * np.array([-sin_nu, e + cos_nu, 0.0], dtype=np.float64)

    cos_O, sin_O = np.cos(RAAN), np.sin(RAAN)
    cos_i, sin_i = np.cos(i), np.sin(i)
    cos_w, sin_w = np.cos(omega), np.sin(omega)

    R = np.array([
        [cos_O * cos_w - sin_O * sin_w * cos_i,
         -cos_O * sin_w - sin_O * cos_w * cos_i,
         sin_O * sin_i],
        [sin_O * cos_w + cos_O * sin_w * cos_i,
         -sin_O * sin_w + cos_O * cos_w * cos_i,
         -cos_O * sin_i],
        [sin_w * sin_i,
         cos_w * sin_i,
         cos_i],
    ], dtype=np.float64)

    return R @ r_pqw, R @ v_pqw


# =============================================================================
# KEPLER PROPAGATION (Universal Variables)
# =============================================================================

def propagate_kepler(
    r0: np.ndarray,
    v0: np.ndarray,
    dt: float,
    mu: float,
    tol: float = 1e-12,
    max_iter: int = 100,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Propagate a Cartesian state over *dt* seconds on a two-body conic.

    Solves the universal Kepler equation for the universal anomaly chi
    (Vallado Algorithm 8, Curtis Algorithm 3.4):

        sqrt(mu)*dt = r0*vr0/sqrt(mu) * chi^2 * C(alpha*chi^2)
                      + (1 - alpha*r0) * chi^3 * S(alpha*chi^2)
                      + r0 * chi

    and maps the state through the Lagrange coefficients f, g, f_dot, g_dot.
    Negative *dt* propagates backwards.

    Raises
    ------
    GeometryError
        If the universal Kepler equation does not converge.
    """
    r0 = np.asarray(r0, dtype=np.float64)
    v0 = np.asarray(v0, dtype=np.float64)
    if dt == 0.0:
        return r0.copy(), v0.copy()

    r0_mag = np.linalg.norm(r0)
    v0_mag = np.linalg.norm(v0)
    sqrt_mu = np.sqrt(mu)
    vr0 = np.dot(r0, v0) / r0_mag

    # Reciprocal semi-major axis
    alpha = 2.0 / r0_mag - v0_mag * v0_mag / mu

    # Initial guess for chi
    if alpha > 1e-12:
        chi = sqrt_mu * alpha * dt
    elif alpha < -1e-12:
        a = 1.0 / alpha
        sign = np.sign(dt)
        arg = (-2.0 * mu * alpha * dt) / (
            np.dot(r0, v0) + sign * np.sqrt(-mu * a) * (1.0 - r0_mag * alpha)
        )
        chi = sign * np.sqrt(-a) * np.log(arg) if arg > 0.0 else sqrt_mu * abs(alpha) * dt
    else:
        chi = sqrt_mu * dt / r0_mag

    for _ in range(max_iter):
        psi = alpha * chi * chi
        c2 = stumpff_c2(psi)
        c3 = stumpff_c3(psi)
        F = (r0_mag * vr0 / sqrt_mu * chi * chi * c2
             + (1.0 - alpha * r0_mag) * chi ** 3 * c3
             + r0_mag * chi
             - sqrt_mu * dt)
        dFdchi = (r0_mag * vr0 / sqrt_mu * chi * (1.0 - psi * c3)
                  + (1.0 - alpha * r0_mag) * chi * chi * c2
                  + r0_mag)
        step = F / dFdchi
        chi -= step
        if abs(step) <= tol * max(1.0, abs(chi)):
            break
    else:
        raise GeometryError(
            f"Universal Kepler equation did not converge in {max_iter} iterations "
            f"(dt = {dt:.6e} s, alpha = {alpha:.6e} 1/m)"
        )

    psi = alpha * chi * chi
    c2 = stumpff_c2(psi)
    c3 = stumpff_c3(psi)

    f = 1.0 - chi * chi / r0_mag * c2
    g = dt - chi ** 3 / sqrt_mu * c3
    r = f * r0 + g * v0
    r_mag = np.linalg.norm(r)

    f_dot = sqrt_mu / (r_mag * r0_mag) * (psi * chi * c3 - chi)
    g_dot = 1.0 - chi * chi / r_mag * c2
    v = f_dot * r0 + g_dot * v0

    return r, v


# =============================================================================
# LAMBERT SOLVER (Universal Variable Formulation)
# =============================================================================

class LambertSolver:
    """
    Single-revolution Lambert solver using the universal variable z.

    Given two position vectors and a time of flight, determine the initial
    and final velocity vectors of the connecting conic arc:

        y(z)   = r1 + r2 + A * (z*S(z) - 1) / sqrt(C(z))
        tof(z) = ( (y/C)^(3/2) * S(z) + A*sqrt(y) ) / sqrt(mu)

    tof(z) increases monotonically on (-inf, 4*pi^2) for a single
    revolution, so the root of tof(z) - tof_target is bracketed and found
    with Brent's method.

        z > 0  =>  elliptic
        z = 0  =>  parabolic
        z < 0  =>  hyperbolic

    Attributes:
        tolerance:      Absolute tolerance on z.
        max_iterations: Maximum Brent iterations.
    """

    Z_UPPER_MARGINS = (1e-2, 1e-3, 1e-4, 1e-5, 1e-6)

    def __init__(self, tolerance: float = 1e-12, max_iterations: int = 200) -> None:
        self.tolerance = tolerance
        self.max_iterations = max_iterations

    def solve(
        self,
        r1: np.ndarray,
        r2: np.ndarray,
        tof: float,
        mu: float,
        prograde: bool = True,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Solve Lambert's problem.

        Args:
            r1: Initial position vector (3,) in meters.
            r2: Final position vector (3,) in meters.
            tof: Time of flight in seconds (must be > 0).
            mu: Gravitational parameter of central body (m^3/s^2).
            prograde: If True, the transfer follows the +z sense of motion.

        Returns:
            (v1, v2): Tuple of initial and final velocity vectors (m/s).

        Raises:
            GeometryError: If tof <= 0, the transfer angle is 0 or 180 deg,
                or no root of the time-of-flight equation is found.
        """
        if not tof > 0.0:
            raise GeometryError(f"Time of flight must be positive, got {tof}")

        r1 = np.asarray(r1, dtype=np.float64)
        r2 = np.asarray(r2, dtype=np.float64)
        r1_mag = np.linalg.norm(r1)
        r2_mag = np.linalg.norm(r2)

        cross = np.cross(r1, r2)
        cos_dtheta = np.clip(np.dot(r1, r2) / (r1_mag * r2_mag), -1.0, 1.0)

        # Sense of the transfer angle from the z component of r1 x r2
        if prograde:
            sin_sign = -1.0 if cross[2] < 0.0 else 1.0
        else:
            sin_sign = -1.0 if cross[2] >= 0.0 else 1.0
        sin_dtheta = sin_sign * np.sqrt(1.0 - cos_dtheta ** 2)

        if 1.0 - cos_dtheta < 1e-12:
            raise GeometryError(
                "Lambert solver: degenerate geometry (transfer angle is 0). "
                "Positions are collinear."
            )
        if 1.0 + cos_dtheta < 1e-12:
            raise GeometryError(
                "Lambert solver: degenerate geometry (transfer angle is 180 deg). "
                "Transfer plane is undefined."
            )
        A = sin_dtheta * np.sqrt(r1_mag * r2_mag / (1.0 - cos_dtheta))

        sqrt_mu = np.sqrt(mu)

        def _y(z: float) -> float:
            return r1_mag + r2_mag + A * (z * stumpff_c3(z) - 1.0) / np.sqrt(stumpff_c2(z))

        def _F(z: float) -> float:
            y = _y(z)
            if y <= 0.0:
                # Limit of tof(z) as y -> 0+
                return -tof
            c2 = stumpff_c2(z)
            return ((y / c2) ** 1.5 * stumpff_c3(z) + A * np.sqrt(y)) / sqrt_mu - tof

        # tof(z) -> inf as z -> 4 pi^2, where c2 underflows to zero in double
        # precision; use the widest margin that brackets the root
        for margin in self.Z_UPPER_MARGINS:
            z_upper = (TWO_PI ** 2) * (1.0 - margin)
            if _F(z_upper) > 0.0:
                break
        else:
            raise GeometryError(
                f"Lambert solver: time of flight {tof:.6e} s exceeds the "
                "single-revolution range"
            )

        z_lower = -TWO_PI ** 2
        for _ in range(60):
            if _F(z_lower) < 0.0:
                break
            z_lower *= 2.0
        else:
            raise GeometryError(
                f"Lambert solver: could not bracket the universal variable "
                f"(tof = {tof:.6e} s)"
            )

        try:
            z = brentq(_F, z_lower, z_upper, xtol=self.tolerance,
                       maxiter=self.max_iterations)
        except (RuntimeError, ValueError) as exc:
            raise GeometryError(f"Lambert solver did not converge: {exc}") from exc

        # --- Lagrange coefficients ---
        y = _y(z)
        f = 1.0 - y / r1_mag
        g = A * np.sqrt(y / mu)
        g_dot = 1.0 - y / r2_mag

        v1 = (r2 - f * r1) / g
        v2 = (g_dot * r2 - r1) / g

        if not (np.all(np.isfinite(v1)) and np.all(np.isfinite(v2))):
            raise GeometryError("Lambert solver produced non-finite velocities")

        logger.debug("Lambert converged: z = %.6e, tof = %.6e s", z, tof)
        return v1, v2

    def __repr__(self) -> str:
        return (
            f"LambertSolver(tol={self.tolerance:.1e}, "
            f"max_iter={self.max_iterations})"
        )
