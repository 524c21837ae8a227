"""
===============================================================================
MGA FIDELITY - Approximate Planetary Ephemerides
===============================================================================
Heliocentric planet states from the JPL "Approximate Positions of the
Planets" Keplerian element tables (Standish, valid 1800 AD - 2050 AD).

Each element is linear in time:

    element(T) = element_0 + element_dot * T,    T = Julian centuries past J2000

Angles are tabulated in degrees, semi-major axes in AU.  The mean anomaly
is M = L - varpi and the argument of periapsis is omega = varpi - Omega.
States are returned in the J2000 ecliptic frame, SI units, with the Sun
fixed at the origin.

The Earth entry is the Earth-Moon barycentre, which is what the patched-conic
model flies by.
===============================================================================
"""

import logging
from typing import Dict, Tuple

import numpy as np

from mgafidelity.core.constants import AU, DEG2RAD, JULIAN_CENTURY, SUN_MU
from mgafidelity.dynamics.orbital_mechanics import (
    keplerian_to_cartesian,
    solve_kepler_equation,
)

logger = logging.getLogger(__name__)


# (value at J2000, rate per Julian century) for
#   a [AU], e [-], I [deg], L [deg], varpi [deg], Omega [deg]
_ElementRow = Tuple[Tuple[float, float], ...]

APPROXIMATE_ELEMENTS: Dict[str, _ElementRow] = {
    'mercury': ((0.38709927, 0.00000037), (0.20563593, 0.00001906),
                (7.00497902, -0.00594749), (252.25032350, 149472.67411175),
                (77.45779628, 0.16047689), (48.33076593, -0.12534081)),
    'venus': ((0.72333566, 0.00000390), (0.00677672, -0.00004107),
              (3.39467605, -0.00078890), (181.97909950, 58517.81538729),
              (131.60246718, 0.00268329), (76.67984255, -0.27769418)),
    'earth': ((1.00000261, 0.00000562), (0.01671123, -0.00004392),
              (-0.00001531, -0.01294668), (100.46457166, 35999.37244981),
              (102.93768193, 0.32327364), (0.0, 0.0)),
    'mars': ((1.52371034, 0.00001847), (0.09339410, 0.00007882),
             (1.84969142, -0.00813131), (-4.55343205, 19140.30268499),
             (-23.94362959, 0.44441088), (49.55953891, -0.29257343)),
    'jupiter': ((5.20288700, -0.00011607), (0.04838624, -0.00013253),
                (1.30439695, -0.00183714), (34.39644051, 3034.74612775),
                (14.72847983, 0.21252668), (100.47390909, 0.20469106)),
    'saturn': ((9.53667594, -0.00125060), (0.05386179, -0.00050991),
               (2.48599187, 0.00193609), (49.95424423, 1222.49362201),
               (92.59887831, -0.41897216), (113.66242448, -0.28867794)),
    'uranus': ((19.18916464, -0.00196176), (0.04725744, -0.00004397),
               (0.77263783, -0.00242939), (313.23810451, 428.48202785),
               (170.95427630, 0.40805281), (74.01692503, 0.04240589)),
    'neptune': ((30.06992276, 0.00026291), (0.00859048, 0.00005105),
                (1.77004347, 0.00035372), (-55.12002969, 218.45945325),
                (44.96476227, -0.32241464), (131.78422574, -0.00508664)),
}


class ApproximatePlanetEphemeris:
    """
    Heliocentric ephemeris of one planet from the JPL approximate elements.

    Parameters
    ----------
    body_name : str
        Planet name (case-insensitive), Mercury through Neptune.
    sun_mu : float, optional
        Gravitational parameter used to turn the elements into a velocity.
    """

    def __init__(self, body_name: str, sun_mu: float = SUN_MU) -> None:
        key = body_name.lower()
        if key not in APPROXIMATE_ELEMENTS:
            raise ValueError(
                f"No approximate elements for '{body_name}'. "
                f"Valid: {sorted(APPROXIMATE_ELEMENTS)}"
            )
        self.body_name = body_name
        self.sun_mu = sun_mu
        self._rows = APPROXIMATE_ELEMENTS[key]

    def keplerian_elements(self, epoch: float) -> Tuple[float, ...]:
        """
        Osculating elements at *epoch* (seconds since J2000).

        Returns
        -------
        tuple
            (a [m], e, i [rad], RAAN [rad], omega [rad], mean_anomaly [rad])
        """
        T = epoch / JULIAN_CENTURY
        a, e, inc, L, varpi, raan = (v0 + rate * T for v0, rate in self._rows)

        mean_anomaly = (L - varpi) * DEG2RAD
        omega = (varpi - raan) * DEG2RAD
        return a * AU, e, inc * DEG2RAD, raan * DEG2RAD, omega, mean_anomaly

    def cartesian_state(self, epoch: float) -> np.ndarray:
        """Heliocentric state [x, y, z, vx, vy, vz] at *epoch* (s since J2000)."""
        a, e, inc, raan, omega, mean_anomaly = self.keplerian_elements(epoch)

        E = solve_kepler_equation(mean_anomaly, e)
        nu = 2.0 * np.arctan2(np.sqrt(1.0 + e) * np.sin(E / 2.0),
                              np.sqrt(1.0 - e) * np.cos(E / 2.0))

        r, v = keplerian_to_cartesian(a, e, inc, raan, omega, nu, self.sun_mu)
        return np.concatenate([r, v])

    def __repr__(self) -> str:
        return f"ApproximatePlanetEphemeris('{self.body_name}')"


class FixedEphemeris:
    """Ephemeris of a body that does not move in the propagation frame."""

    def __init__(self, state=None) -> None:
        self._state = np.zeros(6) if state is None else np.asarray(state, dtype=np.float64)

    def cartesian_state(self, epoch: float) -> np.ndarray:
        return self._state.copy()

    def __repr__(self) -> str:
        return f"FixedEphemeris(position={self._state[:3].tolist()})"
