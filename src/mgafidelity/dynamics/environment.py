"""
===============================================================================
MGA FIDELITY - Environment Models
===============================================================================
The gravitational environment shared by the trajectory evaluator and the
numerical propagator:

    - CelestialBody        : Name, gravitational parameter, radius, ephemeris
                             and sphere of influence of one body
    - BodySystem           : Named, read-only collection of celestial bodies
    - PointMassGravity     : Central-body point mass plus third-body
                             perturbations (direct and indirect terms)
    - AccelerationSettings : Which body is central, which bodies perturb the
                             spacecraft, and the name of the propagated body

All vectors are in the central-body-centred J2000 ecliptic frame.  SI units
throughout (m, s, rad).
===============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from mgafidelity.core.constants import AU, SUN_MU, get_body_mu, get_body_radius
from mgafidelity.core.exceptions import ConfigurationError
from mgafidelity.dynamics.ephemeris import (
    APPROXIMATE_ELEMENTS,
    ApproximatePlanetEphemeris,
    FixedEphemeris,
)

logger = logging.getLogger(__name__)


def sphere_of_influence(orbit_radius: float, mu_body: float, mu_central: float) -> float:
    """
    Laplace sphere of influence radius:

        r_SOI = a * (mu_body / mu_central)^(2/5)

    Example: Earth's SOI around the Sun is ~9.25e8 m.
    """
    return orbit_radius * (mu_body / mu_central) ** 0.4


# ============================================================================
#  CELESTIAL BODIES
# ============================================================================

@dataclass
class CelestialBody:
    """
    A gravitating body with an ephemeris.

    Attributes:
        name: Body name as used in flyby sequences (e.g. 'Earth')
        mu: Gravitational parameter (m^3/s^2)
        radius: Mean radius (m)
        ephemeris: Object with ``cartesian_state(epoch) -> (6,)``
        sphere_of_influence: SOI radius (m); inf for the central body
    """
    name: str
    mu: float
    radius: float
    ephemeris: object
    sphere_of_influence: float = float('inf')

    def state(self, epoch: float) -> NDArray:
        """Cartesian state [x, y, z, vx, vy, vz] at *epoch* (s since J2000)."""
        return np.asarray(self.ephemeris.cartesian_state(epoch), dtype=np.float64)

    def position(self, epoch: float) -> NDArray:
        return self.state(epoch)[:3]


class BodySystem:
    """
    Read-only mapping of body name to CelestialBody.

    Lookups are case-insensitive.  The collection is built once and then
    shared, without locking, by every leg task of a comparison run.
    """

    def __init__(self, bodies: Iterable[CelestialBody] = ()) -> None:
        self._bodies: Dict[str, CelestialBody] = {}
        for body in bodies:
            self.add_body(body)

    def add_body(self, body: CelestialBody) -> None:
        self._bodies[body.name.lower()] = body

    def get_body(self, name: str) -> CelestialBody:
        """
        Return the body called *name*.

        Raises:
            ConfigurationError: If no such body exists
        """
        try:
            return self._bodies[name.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unknown body '{name}'. Available: {self.names}"
            ) from None

    @property
    def names(self) -> List[str]:
        return [body.name for body in self._bodies.values()]

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._bodies

    def __getitem__(self, name: str) -> CelestialBody:
        return self.get_body(name)

    def __len__(self) -> int:
        return len(self._bodies)

    # ------------------------------------------------------------------ #
    #  Factory
    # ------------------------------------------------------------------ #
    @classmethod
    def create_simplified_solar_system(
        cls, planets: Optional[Iterable[str]] = None
    ) -> "BodySystem":
        """
        Sun at the origin plus planets on approximate-element ephemerides.

        Parameters
        ----------
        planets : iterable of str, optional
            Planet names to include (default: Mercury through Neptune).
        """
        if planets is None:
            planets = [name.capitalize() for name in APPROXIMATE_ELEMENTS]

        system = cls([CelestialBody('Sun', SUN_MU, get_body_radius('sun'), FixedEphemeris())])
        for name in planets:
            try:
                mu = get_body_mu(name)
                radius = get_body_radius(name)
                ephemeris = ApproximatePlanetEphemeris(name)
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from exc

            semi_major_axis = APPROXIMATE_ELEMENTS[name.lower()][0][0] * AU
            system.add_body(CelestialBody(
                name=name.capitalize(),
                mu=mu,
                radius=radius,
                ephemeris=ephemeris,
                sphere_of_influence=sphere_of_influence(semi_major_axis, mu, SUN_MU),
            ))

        logger.debug("Created body system: %s", system.names)
        return system

    def __repr__(self) -> str:
        return f"BodySystem({self.names})"


# ============================================================================
#  GRAVITY MODEL
# ============================================================================

class PointMassGravity:
    """
    Point-mass gravity of a central body plus third-body perturbations.

    In the central-body-centred frame the perturbing acceleration of each
    third body is (Battin, 1999):

        a_pert = mu_3 * ( (r_3 - r_sc) / |r_3 - r_sc|^3  -  r_3 / |r_3|^3 )

    The first term is the direct attraction of the third body on the S/C,
    the second the attraction of the third body on the central body.

    Parameters
    ----------
    central_body : CelestialBody
        Body at the origin of the propagation frame.
    perturbing_bodies : list of CelestialBody, optional
        Third bodies whose ephemerides are evaluated at every call.
    """

    def __init__(
        self,
        central_body: CelestialBody,
        perturbing_bodies: Optional[List[CelestialBody]] = None,
    ) -> None:
        self.central_body = central_body
        self.perturbing_bodies = list(perturbing_bodies or [])

    def acceleration(self, position: NDArray, epoch: float) -> NDArray:
        """
        Total gravitational acceleration on the spacecraft.

        Parameters
        ----------
        position : ndarray, shape (3,)
            Spacecraft position relative to the central body (m).
        epoch : float
            Seconds since J2000, used for the third-body ephemerides.

        Returns
        -------
        ndarray, shape (3,)
            Acceleration (m/s^2).
        """
        r = np.linalg.norm(position)
        if r < 1.0:
            raise ValueError("Position is at the origin; gravity is undefined.")

        accel = -self.central_body.mu / r ** 3 * position

        if self.perturbing_bodies:
            origin = self.central_body.position(epoch)
            for body in self.perturbing_bodies:
                r_3 = body.position(epoch) - origin
                r_sc_to_3 = r_3 - position
                d_sc_to_3 = np.linalg.norm(r_sc_to_3)
                d_3 = np.linalg.norm(r_3)
                accel = accel + body.mu * (r_sc_to_3 / d_sc_to_3 ** 3 - r_3 / d_3 ** 3)

        return accel

    def __repr__(self) -> str:
        third = [body.name for body in self.perturbing_bodies]
        return f"PointMassGravity(central={self.central_body.name}, third={third})"


@dataclass
class AccelerationSettings:
    """
    Acceleration model of the full propagation problem.

    Attributes:
        central_body: Name of the body at the frame origin (usually 'Sun')
        perturbing_bodies: Names of third bodies acting on the spacecraft
        propagated_body: Name of the propagated spacecraft
    """
    central_body: str = 'Sun'
    perturbing_bodies: Tuple[str, ...] = field(default_factory=tuple)
    propagated_body: str = 'Spacecraft'

    def __post_init__(self):
        self.perturbing_bodies = tuple(self.perturbing_bodies)
        if self.central_body.lower() in (name.lower() for name in self.perturbing_bodies):
            raise ConfigurationError(
                f"Central body '{self.central_body}' cannot also be a perturbing body"
            )

    def build(self, bodies: BodySystem) -> PointMassGravity:
        """Resolve the body names against *bodies* into a gravity model."""
        return PointMassGravity(
            central_body=bodies.get_body(self.central_body),
            perturbing_bodies=[bodies.get_body(name) for name in self.perturbing_bodies],
        )
