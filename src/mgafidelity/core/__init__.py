"""
===============================================================================
MGA FIDELITY - Core Package
===============================================================================
Shared building blocks used by every other subsystem.

Modules:
    constants       : Physical and astronomical constants, body lookups
    exceptions      : Configuration / geometry / integration error taxonomy
    data_structures : Leg boundaries, time-indexed state histories, residuals
===============================================================================
"""
