"""
===============================================================================
MGA FIDELITY - Trajectory Layout
===============================================================================
Bookkeeping of a multi-gravity-assist trajectory: which entries of the
packed parameter vector belong to which leg, and how legs map onto
evaluation legs (the segments between consecutive boundary points).

Parameter vector for N legs, of which D carry a deep-space manoeuvre:

    index 0             departure epoch t0 (s since J2000)
    index 1 .. N        raw leg durations (s), one per leg
    index N+1 + 4*k     DSM block of the k-th DSM leg, in leg order:
                        [fraction, radius_ratio, in_plane_angle,
                         out_of_plane_angle]

A DSM leg splits into two evaluation legs (pre- and post-manoeuvre), so
there are N + D evaluation legs and N + D + 1 boundary points.

The layout is computed once per run and read by both the patched-conic
evaluator and the time-of-flight resolver.
===============================================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from mgafidelity.core.constants import DSM_NODE_NAME
from mgafidelity.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DSM_BLOCK_SIZE = 4


class LegType(Enum):
    """Kind of leg, named after the manoeuvre at its departure body."""
    DEPARTURE = 'Departure'
    SWINGBY = 'Swingby'
    SWINGBY_WITH_DSM = 'SwingbyWithDSM'

    @property
    def has_dsm(self) -> bool:
        return self is LegType.SWINGBY_WITH_DSM

    @property
    def evaluation_leg_count(self) -> int:
        return 2 if self.has_dsm else 1

    @classmethod
    def from_string(cls, name: str) -> "LegType":
        """Parse 'Departure', 'swingby', 'SWINGBY_WITH_DSM', 'SwingbyWithDSM' ..."""
        key = name.replace('_', '').replace(' ', '').lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ConfigurationError(
            f"Unknown leg type '{name}'. Valid: {[m.value for m in cls]}"
        )


@dataclass(frozen=True)
class LegSlot:
    """
    Position of one leg in the parameter vector and the evaluation sequence.

    Attributes:
        leg_type: Kind of leg
        total_index: 0-based leg index (DSM legs count once)
        dsm_index: Ordinal among DSM legs, None for legs without a DSM
        first_evaluation_index: Index of the leg's first evaluation leg
    """
    leg_type: LegType
    total_index: int
    dsm_index: Optional[int]
    first_evaluation_index: int

    @property
    def evaluation_indices(self) -> Tuple[int, ...]:
        return tuple(range(self.first_evaluation_index,
                           self.first_evaluation_index + self.leg_type.evaluation_leg_count))


class TrajectoryLayout:
    """
    Derived counts and parameter-vector offsets of one MGA trajectory.

    Use :meth:`build`, which validates the vector length, rather than the
    constructor.
    """

    def __init__(self, slots: Sequence[LegSlot], vector_length: int) -> None:
        self.slots: Tuple[LegSlot, ...] = tuple(slots)
        self.vector_length = vector_length

    @classmethod
    def build(cls, leg_types: Sequence[LegType], vector_length: int) -> "TrajectoryLayout":
        """
        Lay out *leg_types* against a parameter vector of *vector_length*.

        Raises:
            ConfigurationError: If there are no legs, or the entries after the
                leg durations are not one 4-entry block per DSM leg.
        """
        leg_types = [lt if isinstance(lt, LegType) else LegType.from_string(lt)
                     for lt in leg_types]
        number_of_legs = len(leg_types)
        if number_of_legs == 0:
            raise ConfigurationError("A trajectory needs at least one leg")

        extra = vector_length - 1 - number_of_legs
        if extra < 0 or extra % DSM_BLOCK_SIZE != 0:
            raise ConfigurationError(
                f"Parameter vector of length {vector_length} does not match "
                f"{number_of_legs} legs: expected 1 + {number_of_legs} entries "
                f"plus {DSM_BLOCK_SIZE} per DSM leg"
            )

        number_of_dsm_blocks = extra // DSM_BLOCK_SIZE
        number_of_dsm_legs = sum(1 for lt in leg_types if lt.has_dsm)
        if number_of_dsm_blocks != number_of_dsm_legs:
            raise ConfigurationError(
                f"Parameter vector holds {number_of_dsm_blocks} DSM block(s) but "
                f"{number_of_dsm_legs} leg(s) are of type "
                f"{LegType.SWINGBY_WITH_DSM.value}"
            )

        slots: List[LegSlot] = []
        dsm_counter = 0
        evaluation_counter = 0
        for total_index, leg_type in enumerate(leg_types):
            dsm_index = None
            if leg_type.has_dsm:
                dsm_index = dsm_counter
                dsm_counter += 1
            slots.append(LegSlot(leg_type, total_index, dsm_index, evaluation_counter))
            evaluation_counter += leg_type.evaluation_leg_count

        layout = cls(slots, vector_length)
        logger.debug(
            "Layout: %d legs, %d DSM, %d evaluation legs",
            layout.number_of_legs, layout.number_of_dsm_legs,
            layout.number_of_evaluation_legs,
        )
        return layout

    # -- counts ---------------------------------------------------------------

    @property
    def number_of_legs(self) -> int:
        return len(self.slots)

    @property
    def number_of_dsm_legs(self) -> int:
        return sum(1 for slot in self.slots if slot.dsm_index is not None)

    @property
    def number_of_evaluation_legs(self) -> int:
        """Legs including DSM sub-legs: floor((len - 1 - N) / 4) + N."""
        return (self.vector_length - 1 - self.number_of_legs) // DSM_BLOCK_SIZE + self.number_of_legs

    @property
    def number_of_boundaries(self) -> int:
        return self.number_of_evaluation_legs + 1

    @property
    def compared_leg_indices(self) -> range:
        """Evaluation legs that are propagated and compared (all but the last)."""
        return range(self.number_of_evaluation_legs - 1)

    @property
    def leg_types(self) -> Tuple[LegType, ...]:
        return tuple(slot.leg_type for slot in self.slots)

    # -- parameter-vector offsets ---------------------------------------------

    def time_of_flight_index(self, slot: LegSlot) -> int:
        return 1 + slot.total_index

    def dsm_block_index(self, slot: LegSlot) -> int:
        if slot.dsm_index is None:
            raise ValueError(f"Leg {slot.total_index} has no deep-space manoeuvre")
        return self.number_of_legs + 1 + DSM_BLOCK_SIZE * slot.dsm_index

    def dsm_fraction_index(self, slot: LegSlot) -> int:
        return self.dsm_block_index(slot)

    # -- boundary naming ------------------------------------------------------

    def check_body_order(self, body_order: Sequence[str]) -> None:
        """Raise ConfigurationError unless there is one body per leg end."""
        if len(body_order) != self.number_of_legs + 1:
            raise ConfigurationError(
                f"Transfer body order has {len(body_order)} entries, expected "
                f"{self.number_of_legs + 1} for {self.number_of_legs} legs"
            )

    def boundary_names(self, body_order: Sequence[str]) -> List[str]:
        """
        Names of all boundary points: the bodies, with 'DSM' inserted after
        the departure body of every DSM leg.
        """
        self.check_body_order(body_order)
        names = [body_order[0]]
        for slot in self.slots:
            if slot.leg_type.has_dsm:
                names.append(DSM_NODE_NAME)
            names.append(body_order[slot.total_index + 1])
        return names

    def __repr__(self) -> str:
        types = [lt.value for lt in self.leg_types]
        return f"TrajectoryLayout(legs={types}, vector_length={self.vector_length})"
