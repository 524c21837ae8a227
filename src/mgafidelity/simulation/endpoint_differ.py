"""
Per-leg endpoint differ: (analytic - numerical) state at the first and last
epoch of a leg.  No scaling and no frame change are applied.
"""

from typing import Tuple

import numpy as np
from numpy.typing import NDArray

from mgafidelity.core.data_structures import TimeIndexedStateHistory

# Largest admissible offset between the two histories' endpoint epochs (s)
EPOCH_TOLERANCE = 1e-6


def difference_at_endpoints(
    analytic: TimeIndexedStateHistory,
    numerical: TimeIndexedStateHistory,
) -> Tuple[NDArray, NDArray]:
    """
    Element-wise ``analytic - numerical`` at the departure and arrival epochs.

    Raises
    ------
    ValueError
        If the two histories do not start and end at the same epochs.
    """
    if not (np.isclose(analytic.first_epoch, numerical.first_epoch, rtol=0.0, atol=EPOCH_TOLERANCE)
            and np.isclose(analytic.last_epoch, numerical.last_epoch, rtol=0.0, atol=EPOCH_TOLERANCE)):
        raise ValueError(
            "Histories do not share endpoint epochs: analytic "
            f"[{analytic.first_epoch!r}, {analytic.last_epoch!r}] vs numerical "
            f"[{numerical.first_epoch!r}, {numerical.last_epoch!r}]"
        )

    departure = analytic.initial_state - numerical.initial_state
    arrival = analytic.final_state - numerical.final_state
    return departure, arrival
