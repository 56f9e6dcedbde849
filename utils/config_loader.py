"""Configuration management utilities."""

import logging
import math
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)


DEFAULT_SOURCE_WEIGHTS = {
    'transcript': 1.0,
    'command_line_stats': 0.9,
    'amplitude': 0.7,
}


CONFIG_SECTIONS = ('consensus', 'threshold')


def load_config(config_path) -> Dict[str, Any]:
    """
    Read the YAML config file into its raw section mapping.

    Only the ``consensus`` and ``threshold`` sections are used; any other
    top-level key is logged and left in place. An empty file gives {}.

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is not valid YAML
        InvalidConfiguration: If the document or a known section is not a mapping
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f)

    if data is None:
        logger.info(f"{config_path} is empty, using defaults")
        return {}
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"{config_path}: expected a mapping of sections, got {type(data).__name__}")

    errors = [
        f"{config_path}: section '{name}' must be a mapping"
        for name in CONFIG_SECTIONS
        if data.get(name) is not None and not isinstance(data[name], dict)
    ]
    if errors:
        raise InvalidConfiguration(errors)

    unknown = sorted(str(key) for key in data if key not in CONFIG_SECTIONS)
    if unknown:
        logger.warning(f"Ignoring unknown config sections in {config_path}: {', '.join(unknown)}")

    logger.debug(f"Loaded config sections: {[name for name in CONFIG_SECTIONS if name in data]}")
    return data


@dataclass
class ThresholdSettings:
    """Parameters for the adaptive threshold calculator and quiet-region pass."""
    base_threshold: float = 0.005
    floor_ratio: float = 0.5
    p10_factor: float = 0.3
    p5_factor: float = 0.5
    median_factor: float = 0.15
    min_region_duration_sec: float = 0.2
    smoothing_window: int = 10
    relative_quiet_percentile: float = 0.2
    relative_quiet_confidence: float = 0.6

    def validate(self) -> List[str]:
        errors = []
        if self.base_threshold < 0.0:
            errors.append("base_threshold must be non-negative")
        if self.floor_ratio < 0.0:
            errors.append("floor_ratio must be non-negative")
        for name in ('p10_factor', 'p5_factor', 'median_factor'):
            if getattr(self, name) <= 0.0:
                errors.append(f"{name} must be positive")
        if self.min_region_duration_sec < 0.0:
            errors.append("min_region_duration_sec must be non-negative")
        if self.smoothing_window < 1:
            errors.append("smoothing_window must be at least 1")
        if not 0.0 <= self.relative_quiet_percentile < 1.0:
            errors.append("relative_quiet_percentile must be in [0, 1)")
        if not 0.0 <= self.relative_quiet_confidence <= 1.0:
            errors.append("relative_quiet_confidence must be between 0.0 and 1.0")
        return errors


@dataclass
class ConsensusConfig:
    """
    Engine configuration.

    Built from the ``consensus`` and ``threshold`` sections of the YAML
    config. Unknown keys are ignored; missing keys take the defaults below.
    """
    merge_tolerance_seconds: float = 0.1
    confidence_threshold: float = 0.0
    source_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SOURCE_WEIGHTS))
    default_source_weight: float = 0.5
    single_source_discount: float = 0.8
    auto_apply_threshold: float = 0.9
    review_threshold: float = 0.7
    auto_apply_min_quality: int = 0
    min_duration_seconds: float = 0.0
    similarity_window_ms: float = 500.0
    max_workers: int = 4
    threshold: ThresholdSettings = field(default_factory=ThresholdSettings)

    @classmethod
    def from_dict(cls, config: Dict[str, Any] = None) -> 'ConsensusConfig':
        """
        Build a config from a loaded YAML dict.

        ``source_weights`` entries override the defaults one by one, so a
        config only has to list the sources it wants to change.
        """
        config = config or {}
        section = dict(config.get('consensus', {}) or {})
        threshold_section = dict(config.get('threshold', {}) or {})

        weights = dict(DEFAULT_SOURCE_WEIGHTS)
        weights.update(section.pop('source_weights', None) or {})

        known = {f for f in cls.__dataclass_fields__ if f not in ('source_weights', 'threshold')}
        kwargs = {k: v for k, v in section.items() if k in known}
        ignored = set(section) - known
        if ignored:
            logger.warning(f"Ignoring unknown consensus config keys: {sorted(ignored)}")

        threshold_known = set(ThresholdSettings.__dataclass_fields__)
        threshold = ThresholdSettings(
            **{k: v for k, v in threshold_section.items() if k in threshold_known}
        )

        return cls(source_weights=weights, threshold=threshold, **kwargs)

    def validate(self) -> List[str]:
        """Validate configuration parameters and return any errors."""
        errors = []
        if not math.isfinite(self.merge_tolerance_seconds) or self.merge_tolerance_seconds < 0.0:
            errors.append("merge_tolerance_seconds must be non-negative")
        for name in ('confidence_threshold', 'auto_apply_threshold', 'review_threshold',
                     'single_source_discount'):
            if not 0.0 <= getattr(self, name) <= 1.0:
                errors.append(f"{name} must be between 0.0 and 1.0")
        if self.review_threshold > self.auto_apply_threshold:
            errors.append("review_threshold must not exceed auto_apply_threshold")
        if not 0 <= self.auto_apply_min_quality <= 100:
            errors.append("auto_apply_min_quality must be between 0 and 100")
        if self.min_duration_seconds < 0.0:
            errors.append("min_duration_seconds must be non-negative")
        if self.similarity_window_ms < 0.0:
            errors.append("similarity_window_ms must be non-negative")
        if self.default_source_weight <= 0.0:
            errors.append("default_source_weight must be positive")
        for source, weight in self.source_weights.items():
            if weight <= 0.0:
                errors.append(f"source weight for '{source}' must be positive")
        if self.max_workers < 1:
            errors.append("max_workers must be at least 1")
        errors.extend(self.threshold.validate())
        return errors

    def ensure_valid(self) -> 'ConsensusConfig':
        """Raise InvalidConfiguration if validate() reports anything."""
        errors = self.validate()
        if errors:
            raise InvalidConfiguration(errors)
        return self

    def weight_for(self, source: str) -> float:
        source = getattr(source, 'value', source)
        return self.source_weights.get(source, self.default_source_weight)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the nested dict layout used by the YAML file."""
        data = asdict(self)
        threshold = data.pop('threshold')
        return {'consensus': data, 'threshold': threshold}


def load_consensus_config(config_path=None) -> ConsensusConfig:
    """Load and validate engine configuration; defaults when no path is given."""
    if config_path is None:
        return ConsensusConfig().ensure_valid()
    return ConsensusConfig.from_dict(load_config(config_path)).ensure_valid()
