"""
===============================================================================
MGA FIDELITY - Error Taxonomy
===============================================================================
    ConfigurationError : inconsistent mission description, detected before
                         any propagation starts; fatal to the whole run.
    GeometryError      : the two-body (Lambert) solver cannot connect a
                         leg's endpoints in the requested time of flight.
    IntegrationError   : the numerical propagator did not produce a valid
                         trajectory for a leg.

Geometry and integration errors are reported per leg; the comparison driver
collects them instead of aborting sibling legs.
===============================================================================
"""

from typing import Dict


class MGAFidelityError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(MGAFidelityError):
    """Inconsistent or incomplete mission / comparison configuration."""


class GeometryError(MGAFidelityError):
    """Two-body boundary-value problem has no (converged) solution."""


class IntegrationError(MGAFidelityError):
    """Numerical propagation failed or produced non-finite states."""


class LegComparisonError(MGAFidelityError):
    """
    Raised on demand when a comparison run finished with failed legs.

    Attributes
    ----------
    failures : dict
        Mapping of evaluation-leg index to the LegFailure record.
    """

    def __init__(self, failures: Dict[int, object]) -> None:
        self.failures = dict(failures)
        legs = ", ".join(str(i) for i in sorted(self.failures))
        super().__init__(f"{len(self.failures)} leg(s) failed: {legs}")
