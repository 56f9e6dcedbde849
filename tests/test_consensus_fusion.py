"""
Unit tests for consensus confidence fusion.

Tests cover:
- Single-source discount
- Reliability-weighted mean for multiple sources
- Source reliability (agreement) score
- Confidence level buckets
- Bounds for arbitrary inputs
"""

import pytest # pyright: ignore[reportMissingImports]
import numpy as np
from pathlib import Path

# Import modules to test
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from detection.segments import CandidateSegment, ConfidenceLevel
from fusion.consensus_fusion import (
    ConsensusEngine,
    compute_consensus_confidence,
    compute_overall_confidence,
    compute_source_reliability,
    filter_by_confidence,
    fuse_canonical_segments,
    get_confidence_level
)
from segment_merging.interval_merger import merge_candidates
from utils.config_loader import ConsensusConfig, DEFAULT_SOURCE_WEIGHTS


class TestConsensusConfidence:
    """Test the fusion formula."""

    def test_single_source_discount(self):
        """One source: confidence * 0.8."""
        assert compute_consensus_confidence({'transcript': 0.95}) == pytest.approx(0.76)

    def test_single_source_discount_configurable(self):
        result = compute_consensus_confidence({'amplitude': 0.5}, single_source_discount=0.5)
        assert result == pytest.approx(0.25)

    def test_weighted_mean(self):
        """Transcript 0.8 (w=1.0) and amplitude 0.6 (w=0.7)."""
        result = compute_consensus_confidence(
            {'transcript': 0.8, 'amplitude': 0.6}, DEFAULT_SOURCE_WEIGHTS
        )
        assert result == pytest.approx((0.8 * 1.0 + 0.6 * 0.7) / 1.7)
        assert result == pytest.approx(0.7176, abs=1e-4)

    def test_unknown_source_default_weight(self):
        result = compute_consensus_confidence(
            {'transcript': 1.0, 'envelope': 0.0}, DEFAULT_SOURCE_WEIGHTS, default_weight=0.5
        )
        assert result == pytest.approx(1.0 / 1.5)

    def test_no_sources(self):
        assert compute_consensus_confidence({}) == 0.0

    def test_bounds(self):
        rng = np.random.default_rng(11)
        for _ in range(200):
            count = int(rng.integers(1, 5))
            per_source = {f"src_{i}": float(rng.uniform(0.0, 1.0)) for i in range(count)}
            weights = {f"src_{i}": float(rng.uniform(0.1, 2.0)) for i in range(count)}

            result = compute_consensus_confidence(per_source, weights)

            assert 0.0 <= result <= 1.0


class TestSourceReliability:
    """Test the agreement score."""

    def test_single_source(self):
        assert compute_source_reliability({'transcript': 0.3}) == 1.0

    def test_full_agreement(self):
        assert compute_source_reliability({'a': 0.7, 'b': 0.7}) == pytest.approx(1.0)

    def test_disagreement(self):
        """Population std of (0.0, 1.0) is 0.5."""
        assert compute_source_reliability({'a': 0.0, 'b': 1.0}) == pytest.approx(0.5)

    def test_floored_at_zero(self):
        assert compute_source_reliability({'a': 0.0, 'b': 1.0, 'c': 0.0, 'd': 1.0}) >= 0.0


class TestConfidenceLevel:
    """Test bucket boundaries."""

    @pytest.mark.parametrize("confidence,expected", [
        (0.95, ConfidenceLevel.VERY_HIGH),
        (0.9, ConfidenceLevel.VERY_HIGH),
        (0.85, ConfidenceLevel.HIGH),
        (0.7, ConfidenceLevel.MEDIUM),
        (0.65, ConfidenceLevel.LOW),
        (0.2, ConfidenceLevel.VERY_LOW),
    ])
    def test_buckets(self, confidence, expected):
        assert get_confidence_level(confidence) == expected


class TestConsensusEngine:
    """Test fusion of merged segments."""

    def test_merged_scenario(self):
        """Two overlapping sources fuse to the weighted mean."""
        merged = merge_candidates([
            CandidateSegment(0.5, 0.9, 0.8, 'transcript', 'speech_gap'),
            CandidateSegment(0.6, 1.0, 0.6, 'amplitude', 'amplitude_quiet'),
        ], merge_tolerance=0.2)

        fused = ConsensusEngine(ConsensusConfig()).apply(merged)

        assert len(fused) == 1
        assert fused[0].consensus_confidence == pytest.approx(0.7176, abs=1e-4)
        assert fused[0].reliability == pytest.approx(0.9)
        assert fused[0].confidence_level == ConfidenceLevel.MEDIUM

    def test_custom_weights(self):
        config = ConsensusConfig(source_weights={'transcript': 1.0, 'amplitude': 1.0})
        merged = merge_candidates([
            CandidateSegment(0.0, 1.0, 0.8, 'transcript', 'speech_gap'),
            CandidateSegment(0.0, 1.0, 0.6, 'amplitude', 'amplitude_quiet'),
        ])

        fused = fuse_canonical_segments(merged, config)

        assert fused[0].consensus_confidence == pytest.approx(0.7)

    def test_configured_default_weight(self):
        """Sources missing from source_weights take the configured default."""
        config = ConsensusConfig(default_source_weight=1.0)
        merged = merge_candidates([
            CandidateSegment(0.0, 1.0, 1.0, 'transcript', 'speech_gap'),
            CandidateSegment(0.0, 1.0, 0.0, 'envelope', 'amplitude_quiet'),
        ])

        fused = ConsensusEngine(config).apply(merged)

        assert fused[0].consensus_confidence == pytest.approx(0.5)

    def test_input_not_modified(self):
        merged = merge_candidates([CandidateSegment(0.0, 1.0, 0.8, 'transcript', 'speech_gap')])

        ConsensusEngine(ConsensusConfig()).apply(merged)

        assert merged[0].consensus_confidence is None

    def test_filter_and_overall(self):
        merged = merge_candidates([
            CandidateSegment(0.0, 1.0, 0.9, 'transcript', 'speech_gap'),
            CandidateSegment(5.0, 6.0, 0.3, 'amplitude', 'amplitude_quiet'),
        ])
        fused = fuse_canonical_segments(merged)

        kept = filter_by_confidence(fused, min_confidence=0.5)

        assert len(kept) == 1
        assert kept[0].start == 0.0
        assert compute_overall_confidence(fused) == pytest.approx((0.72 + 0.24) / 2)
        assert compute_overall_confidence([]) == 0.0


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
