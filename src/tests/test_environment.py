"""
===============================================================================
MGA FIDELITY - Ephemeris and Environment Test Suite
===============================================================================
Tests for the approximate planetary ephemerides, the body system factory,
sphere-of-influence radii, point-mass gravity with third bodies, and the
acceleration settings.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from mgafidelity.core.constants import AU, JULIAN_DAY, SUN_MU, JUPITER_MU
from mgafidelity.core.exceptions import ConfigurationError
from mgafidelity.dynamics.ephemeris import ApproximatePlanetEphemeris, FixedEphemeris
from mgafidelity.dynamics.environment import (
    AccelerationSettings,
    BodySystem,
    PointMassGravity,
    sphere_of_influence,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope='module')
def solar_system():
    """Sun, Earth, Venus and Jupiter."""
    return BodySystem.create_simplified_solar_system(['Earth', 'Venus', 'Jupiter'])


# =============================================================================
# Ephemerides
# =============================================================================

class TestEphemeris:

    def test_earth_near_perihelion_at_j2000(self):
        r = ApproximatePlanetEphemeris('Earth').cartesian_state(0.0)[:3]
        assert 0.980 < np.linalg.norm(r) / AU < 0.990
        # Ecliptic frame: Earth-Moon barycentre stays close to the ecliptic
        assert abs(r[2]) < 1e-4 * AU

    def test_jupiter_distance(self):
        r = ApproximatePlanetEphemeris('jupiter').cartesian_state(5000.0 * JULIAN_DAY)[:3]
        assert 4.9 < np.linalg.norm(r) / AU < 5.5

    @pytest.mark.parametrize("name", ['Mercury', 'Venus', 'Earth', 'Mars', 'Saturn'])
    def test_velocity_matches_finite_difference(self, name):
        eph = ApproximatePlanetEphemeris(name)
        epoch, h = 1000.0 * JULIAN_DAY, 60.0
        state = eph.cartesian_state(epoch)
        fd = (eph.cartesian_state(epoch + h)[:3] - eph.cartesian_state(epoch - h)[:3]) / (2 * h)
        assert_allclose(fd, state[3:], rtol=1e-3, atol=1e-2)

    def test_vis_viva(self):
        eph = ApproximatePlanetEphemeris('Mars')
        a = eph.keplerian_elements(0.0)[0]
        state = eph.cartesian_state(0.0)
        r, v = np.linalg.norm(state[:3]), np.linalg.norm(state[3:])
        assert v ** 2 == pytest.approx(SUN_MU * (2.0 / r - 1.0 / a), rel=1e-10)

    def test_unknown_planet_raises(self):
        with pytest.raises(ValueError):
            ApproximatePlanetEphemeris('Pluto')

    def test_fixed_ephemeris(self):
        assert_allclose(FixedEphemeris().cartesian_state(1e9), np.zeros(6))


# =============================================================================
# Body system
# =============================================================================

class TestBodySystem:

    def test_contents(self, solar_system):
        assert len(solar_system) == 4
        assert 'sun' in solar_system
        assert 'EARTH' in solar_system
        assert solar_system['Earth'].mu == pytest.approx(3.986004418e14)

    def test_earth_sphere_of_influence(self, solar_system):
        assert solar_system['Earth'].sphere_of_influence == pytest.approx(9.25e8, rel=0.01)

    def test_sun_has_unbounded_sphere_of_influence(self, solar_system):
        assert np.isinf(solar_system['Sun'].sphere_of_influence)

    def test_unknown_body_raises(self, solar_system):
        with pytest.raises(ConfigurationError):
            solar_system.get_body('Vulcan')

    def test_unknown_planet_in_factory_raises(self):
        with pytest.raises(ConfigurationError):
            BodySystem.create_simplified_solar_system(['Pluto'])

    def test_soi_formula(self):
        assert sphere_of_influence(5.2 * AU, JUPITER_MU, SUN_MU) == pytest.approx(4.82e10, rel=0.01)


# =============================================================================
# Gravity
# =============================================================================

class TestPointMassGravity:

    def test_central_body_only(self, solar_system):
        gravity = PointMassGravity(solar_system['Sun'])
        r = np.array([AU, 0.0, 0.0])
        assert_allclose(gravity.acceleration(r, 0.0), [-SUN_MU / AU ** 2, 0.0, 0.0])

    def test_third_body_pulls_towards_it(self, solar_system):
        epoch = 0.0
        jupiter = solar_system['Jupiter']
        r_jup = jupiter.position(epoch)
        r_sc = 0.9 * r_jup
        central = PointMassGravity(solar_system['Sun']).acceleration(r_sc, epoch)
        full = PointMassGravity(solar_system['Sun'], [jupiter]).acceleration(r_sc, epoch)
        perturbation = full - central
        assert np.dot(perturbation, r_jup - r_sc) > 0.0

    def test_origin_raises(self, solar_system):
        with pytest.raises(ValueError):
            PointMassGravity(solar_system['Sun']).acceleration(np.zeros(3), 0.0)


class TestAccelerationSettings:

    def test_build(self, solar_system):
        settings = AccelerationSettings('Sun', ('Jupiter', 'Venus'), 'Probe')
        gravity = settings.build(solar_system)
        assert gravity.central_body.name == 'Sun'
        assert [b.name for b in gravity.perturbing_bodies] == ['Jupiter', 'Venus']

    def test_central_body_cannot_perturb(self):
        with pytest.raises(ConfigurationError):
            AccelerationSettings('Sun', ('Sun',))

    def test_unknown_perturber_raises(self, solar_system):
        with pytest.raises(ConfigurationError):
            AccelerationSettings('Sun', ('Neptune',)).build(solar_system)
