"""
===============================================================================
MGA FIDELITY - Physical and Astronomical Constants
===============================================================================
Central repository for all physical constants used by the trajectory
evaluation and propagation code. SI units throughout (meters, seconds,
kilograms, radians). Epochs are seconds since J2000 (TDB).

Gravitational parameters follow the IAU 2015 / JPL DE430 values; radii are
mean volumetric radii.
===============================================================================
"""

import numpy as np


# =============================================================================
# MATHEMATICAL CONSTANTS
# =============================================================================
PI = np.pi
TWO_PI = 2.0 * np.pi
DEG2RAD = PI / 180.0

# =============================================================================
# TIME
# =============================================================================
JULIAN_DAY = 86400.0                   # s
JULIAN_CENTURY = 36525.0 * JULIAN_DAY  # s

# =============================================================================
# FUNDAMENTAL PHYSICAL CONSTANTS
# =============================================================================
AU = 1.495978707e11                    # Astronomical Unit in meters

# =============================================================================
# SUN
# =============================================================================
SUN_MU = 1.32712440018e20              # m^3/s^2
SUN_RADIUS = 6.957e8                   # m

# =============================================================================
# PLANETS (gravitational parameter m^3/s^2, mean radius m)
# =============================================================================
MERCURY_MU = 2.2031868551e13
MERCURY_RADIUS = 2439700.0

VENUS_MU = 3.24858592e14
VENUS_RADIUS = 6051800.0

EARTH_MU = 3.986004418e14
EARTH_RADIUS = 6371000.0

MARS_MU = 4.282837362e13
MARS_RADIUS = 3389500.0

JUPITER_MU = 1.26686534e17
JUPITER_RADIUS = 69911000.0

SATURN_MU = 3.7931187e16
SATURN_RADIUS = 58232000.0

URANUS_MU = 5.793939e15
URANUS_RADIUS = 25362000.0

NEPTUNE_MU = 6.836529e15
NEPTUNE_RADIUS = 24622000.0

# =============================================================================
# LOOKUP TABLES
# =============================================================================
_BODY_MU = {
    'sun': SUN_MU,
    'mercury': MERCURY_MU,
    'venus': VENUS_MU,
    'earth': EARTH_MU,
    'mars': MARS_MU,
    'jupiter': JUPITER_MU,
    'saturn': SATURN_MU,
    'uranus': URANUS_MU,
    'neptune': NEPTUNE_MU,
}

_BODY_RADIUS = {
    'sun': SUN_RADIUS,
    'mercury': MERCURY_RADIUS,
    'venus': VENUS_RADIUS,
    'earth': EARTH_RADIUS,
    'mars': MARS_RADIUS,
    'jupiter': JUPITER_RADIUS,
    'saturn': SATURN_RADIUS,
    'uranus': URANUS_RADIUS,
    'neptune': NEPTUNE_RADIUS,
}

# Name used for the extra boundary point introduced by a deep-space manoeuvre
DSM_NODE_NAME = 'DSM'


def get_body_mu(body_name: str) -> float:
    """
    Look up gravitational parameter by body name.

    Args:
        body_name: Sun or planet name (case-insensitive)

    Returns:
        Gravitational parameter mu in m^3/s^2

    Raises:
        ValueError: If body_name is not recognized
    """
    if body_name.lower() not in _BODY_MU:
        raise ValueError(f"Unknown body: {body_name}. Valid: {list(_BODY_MU.keys())}")
    return _BODY_MU[body_name.lower()]


def get_body_radius(body_name: str) -> float:
    """
    Look up mean radius by body name.

    Args:
        body_name: Sun or planet name (case-insensitive)

    Returns:
        Mean radius in meters
    """
    if body_name.lower() not in _BODY_RADIUS:
        raise ValueError(f"Unknown body: {body_name}. Valid: {list(_BODY_RADIUS.keys())}")
    return _BODY_RADIUS[body_name.lower()]
