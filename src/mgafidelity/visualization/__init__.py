"""
===============================================================================
MGA FIDELITY - Visualization Package
===============================================================================
Modules:
    residual_plots : matplotlib residual and deviation plots
===============================================================================
"""
