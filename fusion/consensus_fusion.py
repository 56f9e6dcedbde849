"""
Consensus confidence fusion across detection methods.

Fusion strategy:
- Single method: the claim is unvalidated, so its confidence is discounted
  (c * 0.8 by default)
- Several methods: reliability-weighted mean of the per-source confidences,
  sum(c_i * w_i) / sum(w_i), clipped to [0, 1]

Reliability weights by method (overridable through config):
- transcript: 1.0
- command_line_stats: 0.9
- amplitude: 0.7
- anything else: 0.5

A separate reliability score, 1 - sqrt(variance), measures how much the
sources agree regardless of their average. It is reported for diagnostics
and never gates an action.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import numpy as np

from detection.segments import CanonicalSegment, ConfidenceLevel
from utils.config_loader import ConsensusConfig

logger = logging.getLogger(__name__)


def get_confidence_level(confidence: float) -> ConfidenceLevel:
    """Bucket a confidence: very_high >= 0.9, high >= 0.8, medium >= 0.7, low >= 0.6."""
    if confidence >= 0.9:
        return ConfidenceLevel.VERY_HIGH
    if confidence >= 0.8:
        return ConfidenceLevel.HIGH
    if confidence >= 0.7:
        return ConfidenceLevel.MEDIUM
    if confidence >= 0.6:
        return ConfidenceLevel.LOW
    return ConfidenceLevel.VERY_LOW


def compute_consensus_confidence(
    per_source_confidence: Dict[str, float],
    source_weights: Optional[Dict[str, float]] = None,
    default_weight: float = 0.5,
    single_source_discount: float = 0.8
) -> float:
    """
    Fuse per-source confidences into one score.

    Args:
        per_source_confidence: Source -> confidence (one entry per source)
        source_weights: Source -> reliability weight
        default_weight: Weight for sources missing from source_weights
        single_source_discount: Multiplier applied when only one source contributed

    Returns:
        Consensus confidence (0-1)
    """
    if not per_source_confidence:
        return 0.0

    if len(per_source_confidence) == 1:
        (confidence,) = per_source_confidence.values()
        return float(np.clip(confidence * single_source_discount, 0.0, 1.0))

    source_weights = source_weights or {}
    confidences = np.array(list(per_source_confidence.values()), dtype=float)
    weights = np.array(
        [source_weights.get(source, default_weight) for source in per_source_confidence],
        dtype=float
    )

    fused = np.sum(confidences * weights) / np.sum(weights)

    return float(np.clip(fused, 0.0, 1.0))


def compute_source_reliability(per_source_confidence: Dict[str, float]) -> float:
    """
    Agreement between sources: 1 - sqrt(population variance), floored at 0.

    One source (or none) has nothing to disagree with and scores 1.0.
    """
    if len(per_source_confidence) < 2:
        return 1.0

    values = np.array(list(per_source_confidence.values()), dtype=float)
    return float(max(0.0, 1.0 - np.sqrt(np.var(values))))


def compute_overall_confidence(segments: Sequence[CanonicalSegment]) -> float:
    """Mean consensus confidence of a run's segments (0.0 for none)."""
    scored = [s.consensus_confidence for s in segments if s.consensus_confidence is not None]
    if not scored:
        return 0.0
    return float(np.mean(scored))


class ConsensusEngine:
    """
    Consensus confidence engine for merged segments.

    Usage:
        engine = ConsensusEngine(config)
        fused = engine.apply(canonical_segments)
    """

    def __init__(self, config: ConsensusConfig):
        """
        Initialize consensus engine.

        Args:
            config: Engine configuration (weights and discount factor)
        """
        self.config = config
        self.single_source_discount = config.single_source_discount

        logger.debug(
            f"Consensus engine initialized: weights={config.source_weights}, "
            f"default={config.default_source_weight}, discount={self.single_source_discount}"
        )

    def fuse(self, segment: CanonicalSegment) -> CanonicalSegment:
        """Return a copy of the segment with consensus fields filled in."""
        weights = {source: self.config.weight_for(source) for source in segment.per_source_confidence}
        confidence = compute_consensus_confidence(
            segment.per_source_confidence,
            weights,
            single_source_discount=self.single_source_discount,
        )
        return replace(
            segment,
            consensus_confidence=confidence,
            reliability=compute_source_reliability(segment.per_source_confidence),
            confidence_level=get_confidence_level(confidence),
        )

    def apply(self, segments: Sequence[CanonicalSegment]) -> List[CanonicalSegment]:
        """
        Fuse every segment.

        Args:
            segments: Canonical segments from the interval merger

        Returns:
            New segments with consensus_confidence, reliability and
            confidence_level set, in the input order
        """
        if not segments:
            return []

        fused = [self.fuse(seg) for seg in segments]

        multi = sum(1 for seg in fused if seg.is_multi_source)
        logger.info(
            f"Consensus computed for {len(fused)} segments "
            f"({multi} multi-source, mean confidence "
            f"{compute_overall_confidence(fused):.3f})"
        )

        return fused


def filter_by_confidence(
    segments: List[CanonicalSegment],
    min_confidence: float = 0.0
) -> List[CanonicalSegment]:
    """
    Filter segments by minimum consensus confidence.

    Args:
        segments: Fused canonical segments
        min_confidence: Minimum consensus confidence to keep

    Returns:
        Filtered list
    """
    filtered = [s for s in segments if s.consensus_confidence >= min_confidence]

    logger.info(
        f"Filtered {len(segments)} -> {len(filtered)} segments "
        f"(confidence >= {min_confidence})"
    )

    return filtered


def fuse_canonical_segments(
    segments: Sequence[CanonicalSegment],
    config: Optional[ConsensusConfig] = None
) -> List[CanonicalSegment]:
    """
    Convenience function for consensus fusion.

    Args:
        segments: Canonical segments from the interval merger
        config: Engine configuration (defaults when None)

    Returns:
        Fused segments
    """
    engine = ConsensusEngine(config or ConsensusConfig())
    return engine.apply(segments)
