"""
===============================================================================
MGA FIDELITY - Residual Plots
===============================================================================
matplotlib figures of a comparison run:

    plot_leg_residuals      : position / velocity residual norms per leg
    plot_position_deviation : |r_analytic - r_numerical| along each leg

Uses the non-interactive Agg backend; figures are written to the path given
by the caller.
===============================================================================
"""

import logging
from typing import Optional

import numpy as np

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from mgafidelity.core.constants import AU, JULIAN_DAY

logger = logging.getLogger(__name__)


def plot_leg_residuals(result, filepath: Optional[str] = None):
    """
    Bar chart of the endpoint residual norms of every compared leg.

    Failed legs are marked with a red 'X' instead of a bar.

    Parameters
    ----------
    result : ComparisonResult
    filepath : str or None
        If provided, save the figure to this path (PNG, PDF, etc.) and close
        it; otherwise the caller owns the open figure.

    Returns
    -------
    matplotlib.figure.Figure
    """
    frame = result.to_dataframe()
    fig, (ax_pos, ax_vel) = plt.subplots(2, 1, figsize=(10, 8), sharex=True)

    if frame.empty:
        ax_pos.set_title("MGA comparison - no compared legs")
    else:
        legs = frame.index.to_numpy()
        labels = [f"{i}: {d}-{a}" for i, d, a in
                  zip(legs, frame['departure_body'], frame['arrival_body'])]
        width = 0.38

        for ax, quantity, unit in ((ax_pos, 'position', 'm'), (ax_vel, 'velocity', 'm/s')):
            ax.bar(legs - width / 2, frame[f'departure_{quantity}_error'], width,
                   label='departure', color='steelblue')
            ax.bar(legs + width / 2, frame[f'arrival_{quantity}_error'], width,
                   label='arrival', color='darkorange')
            failed = legs[frame['status'].to_numpy() == 'failed']
            if failed.size:
                ax.scatter(failed, np.ones(failed.size), marker='x', color='red',
                           label='failed', zorder=3)
            ax.set_ylabel(f"|{quantity} residual| ({unit})")
            ax.set_yscale('symlog', linthresh=1e-6)
            ax.grid(True, alpha=0.3)
            ax.legend()

        ax_vel.set_xticks(legs)
        ax_vel.set_xticklabels(labels, rotation=30, ha='right')
        ax_pos.set_title(
            f"Lambert vs full propagation - total patched-conic dv "
            f"{result.total_delta_v / 1000.0:.2f} km/s"
        )

    fig.tight_layout()
    if filepath:
        fig.savefig(filepath, dpi=150, bbox_inches='tight')
        logger.info("Residual plot saved to %s", filepath)
        plt.close(fig)
    return fig


def plot_position_deviation(result, filepath: Optional[str] = None):
    """
    Position deviation between the analytic and numerical histories along
    each successfully compared leg, against days since the first epoch.
    Closed after saving when *filepath* is given.
    """
    fig, ax = plt.subplots(figsize=(10, 6))
    origin = None
    for index in sorted(result.histories):
        histories = result.histories[index]
        epochs = histories.numerical.epochs
        if origin is None:
            origin = epochs[0]
        deviation = np.linalg.norm(
            histories.analytic.states[:, :3] - histories.numerical.states[:, :3], axis=1)
        ax.plot((epochs - origin) / JULIAN_DAY, deviation / AU, linewidth=1.2,
                label=f"leg {index}: {histories.departure_body}-{histories.arrival_body}")

    ax.set_xlabel("Days since first compared epoch")
    ax.set_ylabel("|r_lambert - r_full| (AU)")
    ax.set_title("Lambert vs full propagation - position deviation")
    ax.grid(True, alpha=0.3)
    if result.histories:
        ax.legend()

    if filepath:
        fig.savefig(filepath, dpi=150, bbox_inches='tight')
        logger.info("Deviation plot saved to %s", filepath)
        plt.close(fig)
    return fig
