"""
Beam Sensor Model for Range Finders

This module turns a set of range-finder beams into a weighting function that
assigns an importance weight to each candidate pose of a particle filter.

Measurement Model:
    Each beam reading z is an independent mixture of four phenomena, given the
    expected range z* obtained by ray casting the map from the candidate pose:

    p(z | x, m) = z_hit   · p_hit(z)     correct return with Gaussian noise
                + z_short · p_short(z)   return cut short by an unmapped obstacle
                + z_max   · p_max(z)     no return, reported as max range
                + z_rand  · p_rand(z)    unexplained random reading

    p_hit(z)   = η_hit · N(z; z*, σ_hit²)                0 ≤ z ≤ z_max_range
                 η_hit = 1 / (Φ((z_max_range - z*)/σ_hit) - Φ(-z*/σ_hit))
    p_short(z) = η_short · λ e^{-λ z}                    z < z*, else 0
                 η_short = 1 / (1 - e^{-λ z*})
    p_max(z)   = 1 if z = z_max_range, else 0
    p_rand(z)  = 1 / z_max_range if z < z_max_range, else 0

    Readings longer than the beam range are reported as the beam range.

Pose Weight:
    w(x) = Π_k p(z_k | x, m)³

    The per-beam likelihoods are cubed and multiplied; the product is
    accumulated as a sum of logarithms.

Reference:
    Thrun, S., Burgard, W., Fox, D. (2005). Probabilistic Robotics, §6.3
"""

import logging
import math
import warnings
from dataclasses import asdict, dataclass
from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np
from scipy.special import erf

from ..errors import ConfigurationError
from ..geometry import SE2
from ..maps import OccupancyMap

logger = logging.getLogger(__name__)

# Exponent applied to each beam likelihood before combining beams.
BEAM_LIKELIHOOD_EXPONENT = 3.0

# Expected and measured ranges closer than this are treated as equal.
_RANGE_EPSILON = 1e-9

Measurement = Sequence[Tuple[float, float]]


@dataclass(frozen=True)
class BeamModelConfig:
    """
    Beam sensor model parameters.

    Attributes:
        z_hit: Mixture weight of the Gaussian hit component
        z_short: Mixture weight of the short reading component
        z_max: Mixture weight of the max range component
        z_rand: Mixture weight of the uniform random component
        sigma_hit: Standard deviation of the hit component (m)
        lambda_short: Rate of the short reading exponential (1/m)
        beam_max_range: Sensor maximum range (m)
    """
    z_hit: float = 0.5
    z_short: float = 0.05
    z_max: float = 0.05
    z_rand: float = 0.5
    sigma_hit: float = 0.2
    lambda_short: float = 0.1
    beam_max_range: float = 60.0

    def __post_init__(self):
        for name in ('z_hit', 'z_short', 'z_max', 'z_rand'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be between 0 and 1, got {value}")
        for name in ('sigma_hit', 'lambda_short', 'beam_max_range'):
            value = getattr(self, name)
            if not (value > 0.0 and math.isfinite(value)):
                raise ConfigurationError(f"{name} must be positive and finite, got {value}")

        mixture_total = self.z_hit + self.z_short + self.z_max + self.z_rand
        if not math.isclose(mixture_total, 1.0, abs_tol=1e-6):
            warnings.warn(f"Beam mixture weights sum to {mixture_total:.3f}, not 1")

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'BeamModelConfig':
        """
        Create a configuration from a dictionary.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        unknown = set(config) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown beam model parameters: {sorted(unknown)}")
        return cls(**{key: float(value) for key, value in config.items()})

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class BeamWeightingFunction:
    """
    Importance weight of a pose given a fixed set of beams and a fixed map.

    Beam ranges and bearings are computed once at construction and reused for
    every pose evaluated. Instances are immutable and hold no reference to the
    sensor model, so map swaps on the model do not affect them.
    """

    def __init__(self, config: BeamModelConfig, grid: OccupancyMap, measurements: Measurement):
        self.config = config
        self.grid = grid

        points = np.asarray(measurements, dtype=float).reshape(-1, 2)
        self.ranges = np.minimum(np.hypot(points[:, 0], points[:, 1]), config.beam_max_range)
        self.bearings = np.arctan2(points[:, 1], points[:, 0])

        # Constant of the untruncated Gaussian density 1 / (√(2π) σ)
        self._gaussian_norm = 1.0 / (math.sqrt(2.0 * math.pi) * config.sigma_hit)

    def __len__(self) -> int:
        return len(self.ranges)

    def expected_ranges(self, pose: SE2) -> np.ndarray:
        """Ray-cast range z* of every beam from ``pose``."""
        max_range = self.config.beam_max_range
        return np.array([self.grid.ray_cast(pose, bearing, max_range) for bearing in self.bearings])

    def beam_likelihoods(self, pose: SE2) -> np.ndarray:
        """Per-beam mixture likelihood p(z_k | x, m)."""
        cfg = self.config
        z = self.ranges
        z_expected = self.expected_ranges(pose)
        scale = math.sqrt(2.0) * cfg.sigma_hit

        # 1: Correct range with local measurement noise, truncated to [0, max range]
        hit_mass = 0.5 * (erf((cfg.beam_max_range - z_expected) / scale) - erf(-z_expected / scale))
        p_hit = self._gaussian_norm * np.exp(-0.5 * ((z - z_expected) / cfg.sigma_hit) ** 2) / hit_mass

        # 2: Unexpected obstacle in front of the mapped one
        is_short = z < z_expected - _RANGE_EPSILON
        with np.errstate(divide='ignore', invalid='ignore'):
            eta_short = 1.0 / (1.0 - np.exp(-cfg.lambda_short * z_expected))
        p_short = np.where(is_short, eta_short * cfg.lambda_short * np.exp(-cfg.lambda_short * z), 0.0)

        # 3: Max range reading
        p_max = np.where(z >= cfg.beam_max_range, 1.0, 0.0)

        # 4: Random measurement
        p_rand = np.where(z < cfg.beam_max_range, 1.0 / cfg.beam_max_range, 0.0)

        return cfg.z_hit * p_hit + cfg.z_short * p_short + cfg.z_max * p_max + cfg.z_rand * p_rand

    def __call__(self, state: Union[SE2, Sequence[float], np.ndarray]) -> float:
        """
        Importance weight of a pose.

        Args:
            state: SE2 pose or [x, y, θ] row

        Returns:
            Non-negative weight Π_k p(z_k | x, m)³
        """
        pose = state if isinstance(state, SE2) else SE2.from_array(state)
        likelihoods = self.beam_likelihoods(pose)
        with np.errstate(divide='ignore'):
            log_weight = BEAM_LIKELIHOOD_EXPONENT * np.sum(np.log(likelihoods))
        return float(np.exp(log_weight))

    def evaluate_many(self, states) -> np.ndarray:
        """Map a column of states to an array of weights."""
        return np.array([self(state) for state in states], dtype=float)


class BeamSensorModel:
    """
    Beam sensor model bound to a map.

    Usage:
        model = BeamSensorModel(BeamModelConfig(), grid)
        weight_of = model.make_weighting_function(scan_points)
        weights[:] = weight_of.evaluate_many(states)

    The map reference is swapped with ``update_map``; weighting functions made
    before the swap keep using the map they were built with. The model does no
    locking: swapping while another thread builds a weighting function must be
    synchronized by the caller.
    """

    def __init__(self, config: BeamModelConfig, grid: OccupancyMap):
        """
        Initialize the sensor model.

        Raises:
            ConfigurationError: If ``config`` is not a BeamModelConfig
        """
        if not isinstance(config, BeamModelConfig):
            raise ConfigurationError(f"Expected BeamModelConfig, got {type(config).__name__}")
        self._config = config
        self._grid = grid
        logger.info(f"Beam sensor model initialized: max range {config.beam_max_range:.1f}m, "
                    f"sigma_hit {config.sigma_hit:.3f}m")

    @property
    def config(self) -> BeamModelConfig:
        return self._config

    @property
    def grid(self) -> OccupancyMap:
        return self._grid

    def update_map(self, grid: OccupancyMap) -> None:
        """Replace the map used by weighting functions created from now on."""
        self._grid = grid
        logger.info("Beam sensor model map updated")

    def make_weighting_function(self, measurements: Measurement) -> BeamWeightingFunction:
        """
        Build the weighting function for one scan.

        Args:
            measurements: Beam endpoints (x, y) in the sensor frame

        Returns:
            Callable mapping a pose to its importance weight
        """
        function = BeamWeightingFunction(self._config, self._grid, measurements)
        logger.debug(f"Weighting function built for {len(function)} beams")
        return function

    __call__ = make_weighting_function

    def get_model_info(self) -> Dict[str, Any]:
        """
        Get sensor model configuration and map summary.

        Returns:
            Dictionary for monitoring and logging
        """
        return {
            'sensor_type': 'beam',
            'config': self._config.to_dict(),
            'map': repr(self._grid)
        }
