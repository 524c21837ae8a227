"""
===============================================================================
MGA FIDELITY - Simulation Package
===============================================================================
Lambert-versus-full-propagation comparison of MGA trajectories.

Modules:
    leg_propagation : Per-leg Lambert solve and numerical propagation
    endpoint_differ : Endpoint state differences of two histories
    mga_comparison  : Comparison driver, thread-pool fan-out, results
    config          : YAML scenario loading
===============================================================================
"""
