"""
===============================================================================
MGA FIDELITY - Comparison Configuration
===============================================================================
Loads a comparison scenario from YAML and turns it into the objects the
comparison driver needs: body system, parameter vector, patched-conic
evaluator, leg engine.

The YAML file uses engineering units (days, km, degrees); everything is
converted to SI here.  Integrator settings are forwarded to ``solve_ivp``
verbatim.

Expected layout (see mgafidelity/config/mga_comparison.yaml):

    mission:     {name}
    bodies:      {central_body, transfer_body_order, leg_types,
                  minimum_pericenter_radii_km (optional)}
    trajectory:  {departure_epoch_days, leg_durations_days, dsm (list),
                  departure_orbit, capture_orbit}
    propagation: {perturbing_bodies, propagated_body, integrator, anchor,
                  terminate_at_departure_soi, terminate_at_arrival_soi}
    execution:   {num_workers}
===============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import yaml
from numpy.typing import NDArray

from mgafidelity.core.constants import DEG2RAD, JULIAN_DAY
from mgafidelity.core.exceptions import ConfigurationError
from mgafidelity.dynamics.environment import AccelerationSettings, BodySystem
from mgafidelity.dynamics.propagation import DEFAULT_INTEGRATOR_SETTINGS
from mgafidelity.guidance.patched_conic import PatchedConicTrajectory
from mgafidelity.guidance.trajectory_layout import LegType, TrajectoryLayout
from mgafidelity.simulation.leg_propagation import LegPropagationEngine
from mgafidelity.simulation.mga_comparison import MGAComparison

logger = logging.getLogger(__name__)

KM = 1000.0


def load_config(config_path: str) -> dict:
    """
    Load a comparison configuration from a YAML file.

    Args:
        config_path: Path to the YAML file

    Returns:
        Dictionary of configuration parameters

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    logger.info("Loading configuration from: %s", config_path)
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot load configuration '{config_path}': {exc}") from exc

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration '{config_path}' is not a mapping")
    logger.info("Mission: %s", config.get('mission', {}).get('name', '<unnamed>'))
    return config


def _require(section: dict, key: str, where: str) -> Any:
    if not isinstance(section, dict) or key not in section:
        raise ConfigurationError(f"Missing required key '{where}.{key}'")
    return section[key]


def _orbit(section: Optional[dict]) -> Tuple[float, float]:
    if not section:
        return float('inf'), 0.0
    return (float(section.get('semi_major_axis_km', float('inf'))) * KM,
            float(section.get('eccentricity', 0.0)))


@dataclass
class ComparisonConfig:
    """Fully resolved, SI-unit comparison scenario."""
    name: str
    central_body: str
    body_order: List[str]
    leg_types: List[LegType]
    vector: NDArray
    minimum_pericenter_radii: Optional[List[float]] = None
    departure_orbit: Tuple[float, float] = (float('inf'), 0.0)
    capture_orbit: Tuple[float, float] = (float('inf'), 0.0)
    perturbing_bodies: List[str] = field(default_factory=list)
    propagated_body: str = 'Spacecraft'
    integrator_settings: Dict[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_INTEGRATOR_SETTINGS))
    propagation_anchor: str = 'departure'
    terminate_at_departure_soi: bool = False
    terminate_at_arrival_soi: bool = False
    num_workers: int = 1

    @classmethod
    def from_dict(cls, cfg: dict) -> "ComparisonConfig":
        """
        Build a scenario from a parsed YAML dictionary.

        The parameter vector is assembled as
        [t0, T_1 .. T_N, (fraction, radius_ratio, in_plane, out_of_plane) per DSM leg].

        Raises:
            ConfigurationError: On missing keys or inconsistent entries
        """
        bodies = _require(cfg, 'bodies', 'root')
        trajectory = _require(cfg, 'trajectory', 'root')
        propagation = cfg.get('propagation', {}) or {}
        execution = cfg.get('execution', {}) or {}

        body_order = [str(name) for name in _require(bodies, 'transfer_body_order', 'bodies')]
        leg_types = [LegType.from_string(str(lt)) for lt in _require(bodies, 'leg_types', 'bodies')]

        durations = [float(d) * JULIAN_DAY
                     for d in _require(trajectory, 'leg_durations_days', 'trajectory')]
        if len(durations) != len(leg_types):
            raise ConfigurationError(
                f"{len(durations)} leg durations given for {len(leg_types)} legs"
            )

        dsm_blocks = []
        for entry in trajectory.get('dsm', []) or []:
            dsm_blocks.extend([
                float(_require(entry, 'fraction', 'trajectory.dsm')),
                float(_require(entry, 'radius_ratio', 'trajectory.dsm')),
                float(entry.get('in_plane_angle_deg', 0.0)) * DEG2RAD,
                float(entry.get('out_of_plane_angle_deg', 0.0)) * DEG2RAD,
            ])

        t0 = float(_require(trajectory, 'departure_epoch_days', 'trajectory')) * JULIAN_DAY
        vector = np.array([t0] + durations + dsm_blocks, dtype=np.float64)

        # Fail early on a vector that does not fit the legs
        TrajectoryLayout.build(leg_types, vector.size).check_body_order(body_order)

        radii = bodies.get('minimum_pericenter_radii_km')
        integrator = propagation.get('integrator')

        config = cls(
            name=str(cfg.get('mission', {}).get('name', 'MGA comparison')),
            central_body=str(bodies.get('central_body', 'Sun')),
            body_order=body_order,
            leg_types=leg_types,
            vector=vector,
            minimum_pericenter_radii=None if radii is None else [float(r) * KM for r in radii],
            departure_orbit=_orbit(trajectory.get('departure_orbit')),
            capture_orbit=_orbit(trajectory.get('capture_orbit')),
            perturbing_bodies=[str(b) for b in propagation.get('perturbing_bodies', []) or []],
            propagated_body=str(propagation.get('propagated_body', 'Spacecraft')),
            integrator_settings=(dict(DEFAULT_INTEGRATOR_SETTINGS) if integrator is None
                                 else dict(integrator)),
            propagation_anchor=str(propagation.get('anchor', 'departure')),
            terminate_at_departure_soi=bool(propagation.get('terminate_at_departure_soi', False)),
            terminate_at_arrival_soi=bool(propagation.get('terminate_at_arrival_soi', False)),
            num_workers=int(execution.get('num_workers', 1)),
        )
        logger.info(
            "Scenario '%s': %s, %d legs, %d perturbing bodies",
            config.name, '-'.join(body_order), len(leg_types), len(config.perturbing_bodies),
        )
        return config

    # ------------------------------------------------------------------ #
    #  Builders
    # ------------------------------------------------------------------ #
    @property
    def acceleration_settings(self) -> AccelerationSettings:
        return AccelerationSettings(
            central_body=self.central_body,
            perturbing_bodies=tuple(self.perturbing_bodies),
            propagated_body=self.propagated_body,
        )

    def build_bodies(self) -> BodySystem:
        """Simplified solar system holding every body the scenario names."""
        planets = []
        for name in self.body_order + self.perturbing_bodies:
            if name.lower() != self.central_body.lower() and name.lower() not in planets:
                planets.append(name.lower())
        return BodySystem.create_simplified_solar_system(planets)

    def build_comparison(self, bodies: Optional[BodySystem] = None) -> MGAComparison:
        """Evaluator, leg engine and driver for this scenario."""
        bodies = bodies or self.build_bodies()
        evaluator = PatchedConicTrajectory(
            bodies, self.body_order, self.leg_types,
            central_body=self.central_body,
            minimum_pericenter_radii=self.minimum_pericenter_radii,
            departure_orbit=self.departure_orbit,
            capture_orbit=self.capture_orbit,
        )
        engine = LegPropagationEngine(
            bodies, self.acceleration_settings, self.integrator_settings,
            propagation_anchor=self.propagation_anchor,
            terminate_at_departure_soi=self.terminate_at_departure_soi,
            terminate_at_arrival_soi=self.terminate_at_arrival_soi,
        )
        return MGAComparison(evaluator, engine, self.leg_types, self.body_order,
                             num_workers=self.num_workers)
