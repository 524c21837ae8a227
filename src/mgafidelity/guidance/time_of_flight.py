"""
===============================================================================
MGA FIDELITY - Leg Time-of-Flight Resolver
===============================================================================
Turns the raw leg durations of the parameter vector into one time of flight
per evaluation leg.  A leg with a deep-space manoeuvre at fraction f of its
duration T yields two values, f*T (departure body to DSM) and (1 - f)*T
(DSM to arrival body); every other leg yields its duration unchanged.

The fraction is taken as given: 0 and 1 are not special-cased.
===============================================================================
"""

from typing import Tuple

import numpy as np
from numpy.typing import NDArray

from mgafidelity.guidance.trajectory_layout import LegSlot, TrajectoryLayout


def leg_times_of_flight(slot: LegSlot, layout: TrajectoryLayout,
                        vector: NDArray) -> Tuple[float, ...]:
    """Times of flight (s) of the evaluation legs belonging to *slot*."""
    duration = float(vector[layout.time_of_flight_index(slot)])
    if not slot.leg_type.has_dsm:
        return (duration,)
    fraction = float(vector[layout.dsm_fraction_index(slot)])
    return (fraction * duration, (1.0 - fraction) * duration)


def resolve_times_of_flight(layout: TrajectoryLayout, vector: NDArray) -> NDArray:
    """
    Times of flight of all evaluation legs, in temporal order.

    Returns
    -------
    ndarray, shape (layout.number_of_evaluation_legs,)
    """
    vector = np.asarray(vector, dtype=np.float64)
    values = []
    for slot in layout.slots:
        values.extend(leg_times_of_flight(slot, layout, vector))
    return np.array(values, dtype=np.float64)


def resolve_compared_times_of_flight(layout: TrajectoryLayout, vector: NDArray) -> NDArray:
    """
    Times of flight of the compared evaluation legs, i.e. all but the last.

    For a trajectory without DSMs these are the durations of legs 0 .. N-2.
    """
    return resolve_times_of_flight(layout, vector)[:len(layout.compared_leg_indices)]
