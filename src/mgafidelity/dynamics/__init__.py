"""
===============================================================================
MGA FIDELITY - Dynamics Package
===============================================================================
Two-body and full-problem dynamics.

Modules:
    orbital_mechanics : Stumpff functions, Kepler propagation, Lambert solver
    ephemeris         : Approximate planetary ephemerides (JPL elements)
    environment       : Celestial bodies, body system, point-mass gravity
    propagation       : solve_ivp based full-problem propagator
===============================================================================
"""
