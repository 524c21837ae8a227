"""
===============================================================================
MGA FIDELITY - Guidance Package
===============================================================================
Patched-conic description of the MGA trajectory.

Modules:
    trajectory_layout : Leg types and parameter-vector layout
    time_of_flight    : Per-evaluation-leg time-of-flight resolver
    maneuver_planner  : Departure, swingby, DSM and capture delta-V models
    patched_conic     : Patched-conic trajectory evaluator
===============================================================================
"""
