"""
===============================================================================
MGA FIDELITY - Patched-Conic vs Full-Propagation Comparison
===============================================================================
Evaluates multi-gravity-assist (MGA) interplanetary trajectories, with or
without deep-space manoeuvres (DSM), and quantifies the error introduced by
the patched-conic approximation: every leg is solved as a two-body Lambert
arc and numerically propagated under the multi-body force model, and the
state discrepancy at both ends of the leg is reported.

Subpackages:
    core          -- Constants, exceptions, boundary/history/residual records
    dynamics      -- Ephemerides, body system, two-body and full propagation
    guidance      -- Trajectory layout, time-of-flight resolver, patched conics
    simulation    -- Per-leg propagation engine, endpoint differ, driver
    visualization -- Residual plots
===============================================================================
"""

__version__ = "0.3.0"
