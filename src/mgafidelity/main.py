#!/usr/bin/env python3
"""
===============================================================================
MGA FIDELITY - MAIN ENTRY POINT
===============================================================================
Compares the patched-conic (Lambert) solution of each leg of a
multi-gravity-assist trajectory with a full numerical propagation, and
prints the state residuals at the leg endpoints.

USAGE:
    mga-fidelity                                 # Default scenario
    mga-fidelity --config my_scenario.yaml       # Custom scenario
    mga-fidelity --workers 8 --plot residuals.png
    python -m mgafidelity.main --verbose

EXIT STATUS:
    0  all compared legs succeeded
    1  at least one leg failed (residual table still printed)
    2  configuration error
===============================================================================
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from mgafidelity.core.exceptions import ConfigurationError, GeometryError
from mgafidelity.simulation.config import ComparisonConfig, load_config
from mgafidelity.visualization.residual_plots import plot_leg_residuals

logger = logging.getLogger('MGA_MAIN')

DEFAULT_CONFIG = Path(__file__).resolve().parent / 'config' / 'mga_comparison.yaml'


def main(argv=None) -> int:
    """
    Main entry point. Parses command line arguments and runs the comparison.
    """
    parser = argparse.ArgumentParser(
        description='Lambert vs full-propagation comparison of MGA trajectories',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mga-fidelity                           Default Cassini-like scenario
  mga-fidelity --config scenario.yaml    Custom scenario
  mga-fidelity --plot residuals.png      Save a residual plot
        """
    )
    parser.add_argument('--config', type=str, default=str(DEFAULT_CONFIG),
                        help='Path to scenario config YAML')
    parser.add_argument('--workers', type=int, default=None,
                        help='Override execution.num_workers')
    parser.add_argument('--plot', type=str, default=None,
                        help='Save a residual plot to this path')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    try:
        scenario = ComparisonConfig.from_dict(load_config(args.config))
        if args.workers is not None:
            scenario.num_workers = args.workers
        comparison = scenario.build_comparison()
        start = time.time()
        result = comparison.run(scenario.vector)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    except GeometryError as exc:
        logger.error("Patched-conic trajectory could not be evaluated: %s", exc)
        return 1

    print("=" * 70)
    print(f"  {scenario.name}")
    print(f"  Total patched-conic delta-V: {result.total_delta_v / 1000.0:.3f} km/s")
    print(f"  Wall time: {time.time() - start:.1f} s")
    print("=" * 70)
    print(result.to_dataframe().to_string())
    print("=" * 70)

    if args.plot:
        plot_leg_residuals(result, args.plot)

    return 0 if result.is_complete else 1


if __name__ == '__main__':
    sys.exit(main())
