"""
Record types exchanged between the trajectory evaluator, the per-leg
propagation engine and the comparison driver.

Structures
----------
LegBoundary              -- One boundary point of the patched-conic trajectory
                            (departure, flyby, DSM or arrival).
TimeIndexedStateHistory  -- Strictly increasing epochs mapped to 6-D
                            Cartesian states, backed by contiguous NumPy arrays.
LegHistories             -- The analytic and numerical histories of one leg.
LegResidual              -- (analytic - numerical) state at both leg endpoints.
LegFailure               -- Structured record of a leg that could not be
                            evaluated.

All records are created fresh for one comparison run and never shared
between runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd


STATE_DIM = 6
STATE_COLUMNS = ['x', 'y', 'z', 'vx', 'vy', 'vz']


# ---------------------------------------------------------------------------
# 1. LegBoundary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LegBoundary:
    """One boundary point along the trajectory.

    Attributes
    ----------
    position : np.ndarray
        3-element heliocentric position (m).
    epoch : float
        Time since trajectory start (s).
    delta_v : float
        Impulsive delta-V magnitude applied at this point (m/s).
    name : str
        Body name, or ``'DSM'`` for a deep-space manoeuvre point.
    """
    position: np.ndarray
    epoch: float
    delta_v: float = 0.0
    name: str = ''

    def __post_init__(self):
        position = np.array(self.position, dtype=np.float64)
        if position.shape != (3,):
            raise ValueError(f"Boundary position must have shape (3,), got {position.shape}")
        position.setflags(write=False)
        object.__setattr__(self, 'position', position)


# ---------------------------------------------------------------------------
# 2. TimeIndexedStateHistory
# ---------------------------------------------------------------------------

class TimeIndexedStateHistory:
    """Ordered mapping from epoch to 6-D Cartesian state.

    Two arrays are stored:

    * ``epochs`` -- ``float64[n]``, strictly increasing
    * ``states`` -- ``float64[n, 6]``, position (m) then velocity (m/s)

    Both arrays are read-only once the history is built, so a history can be
    handed to other threads without copying.

    Parameters
    ----------
    epochs : array_like, shape (n,)
        Epochs in seconds since J2000.  Must be strictly increasing.
    states : array_like, shape (n, 6)
        Cartesian states at the corresponding epochs.
    """

    def __init__(self, epochs, states) -> None:
        epochs = np.array(epochs, dtype=np.float64).reshape(-1)
        states = np.array(states, dtype=np.float64)

        if epochs.size == 0:
            raise ValueError("A state history needs at least one epoch")
        if states.shape != (epochs.size, STATE_DIM):
            raise ValueError(
                f"Expected states of shape ({epochs.size}, {STATE_DIM}), got {states.shape}"
            )
        if epochs.size > 1 and np.any(np.diff(epochs) <= 0.0):
            raise ValueError("Epochs must be strictly increasing")

        epochs.setflags(write=False)
        states.setflags(write=False)
        self._epochs = epochs
        self._states = states

    @classmethod
    def from_mapping(cls, history: dict) -> 'TimeIndexedStateHistory':
        """Build a history from an ``{epoch: state}`` dictionary."""
        epochs = sorted(history)
        return cls(epochs, [history[t] for t in epochs])

    # -- read --------------------------------------------------------------

    @property
    def epochs(self) -> np.ndarray:
        return self._epochs

    @property
    def states(self) -> np.ndarray:
        return self._states

    @property
    def first_epoch(self) -> float:
        return float(self._epochs[0])

    @property
    def last_epoch(self) -> float:
        return float(self._epochs[-1])

    @property
    def initial_state(self) -> np.ndarray:
        """State at the minimum epoch."""
        return self._states[0].copy()

    @property
    def final_state(self) -> np.ndarray:
        """State at the maximum epoch."""
        return self._states[-1].copy()

    def state_at(self, epoch: float) -> np.ndarray:
        """Return the stored state at exactly *epoch*.

        Raises
        ------
        KeyError
            If *epoch* is not one of the stored epochs.
        """
        index = int(np.searchsorted(self._epochs, epoch))
        if index >= self._epochs.size or self._epochs[index] != epoch:
            raise KeyError(f"No state stored at epoch {epoch!r}")
        return self._states[index].copy()

    def to_dataframe(self) -> pd.DataFrame:
        """Return the history as a DataFrame indexed by epoch."""
        frame = pd.DataFrame(self._states, columns=STATE_COLUMNS)
        frame.index = pd.Index(self._epochs, name='epoch')
        return frame

    def __len__(self) -> int:
        return int(self._epochs.size)

    def __repr__(self) -> str:
        return (
            f"TimeIndexedStateHistory(n={len(self)}, "
            f"span=[{self.first_epoch:.1f}, {self.last_epoch:.1f}] s)"
        )


# ---------------------------------------------------------------------------
# 3. Per-leg results
# ---------------------------------------------------------------------------

@dataclass
class LegHistories:
    """Analytic (Lambert / Kepler) and numerical histories of one leg."""
    leg_index: int
    analytic: TimeIndexedStateHistory
    numerical: TimeIndexedStateHistory
    departure_body: str = ''
    arrival_body: str = ''


@dataclass
class LegResidual:
    """
    State discrepancy of one evaluation leg.

    Attributes:
        leg_index: 0-based evaluation-leg index (DSM sub-legs counted)
        departure_residual: analytic - numerical state at the first epoch (6,)
        arrival_residual: analytic - numerical state at the last epoch (6,)
        departure_body: Name of the body (or 'DSM') at the leg start
        arrival_body: Name of the body (or 'DSM') at the leg end
        departure_epoch: First epoch of both histories (s since J2000)
        arrival_epoch: Last epoch of both histories (s since J2000)
    """
    leg_index: int
    departure_residual: np.ndarray
    arrival_residual: np.ndarray
    departure_body: str = ''
    arrival_body: str = ''
    departure_epoch: float = float('nan')
    arrival_epoch: float = float('nan')

    def __post_init__(self):
        self.departure_residual = np.asarray(self.departure_residual, dtype=np.float64)
        self.arrival_residual = np.asarray(self.arrival_residual, dtype=np.float64)

    def as_pair(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(departure_residual, arrival_residual)``."""
        return self.departure_residual, self.arrival_residual

    @property
    def departure_position_error(self) -> float:
        return float(np.linalg.norm(self.departure_residual[:3]))

    @property
    def departure_velocity_error(self) -> float:
        return float(np.linalg.norm(self.departure_residual[3:]))

    @property
    def arrival_position_error(self) -> float:
        return float(np.linalg.norm(self.arrival_residual[:3]))

    @property
    def arrival_velocity_error(self) -> float:
        return float(np.linalg.norm(self.arrival_residual[3:]))


@dataclass
class LegFailure:
    """A leg whose analytic solve or numerical propagation failed."""
    leg_index: int
    error_type: str
    message: str
    departure_body: str = ''
    arrival_body: str = ''

    @classmethod
    def from_exception(cls, leg_index: int, exc: Exception, **kwargs) -> 'LegFailure':
        return cls(leg_index=leg_index, error_type=type(exc).__name__,
                   message=str(exc), **kwargs)
