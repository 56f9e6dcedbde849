"""
Unit tests for the adaptive threshold and quiet-region detection.

Tests cover:
- Threshold selection (minimum heuristic, floor clamp)
- Monotonicity under positive scaling
- Quiet-region extraction (interior regions, end-of-clip silence)
- Relative quiet fallback
- Edge cases (empty input, invalid samples, invalid hop)
"""

import pytest # pyright: ignore[reportMissingImports]
import numpy as np
from pathlib import Path

# Import modules to test
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from detection.adaptive_threshold import (
    compute_adaptive_threshold,
    detect_quiet_regions,
    detect_relative_quiet_regions,
    smooth_levels
)
from utils.config_loader import ThresholdSettings
from utils.errors import InsufficientData


class TestComputeAdaptiveThreshold:
    """Test threshold selection from energy statistics."""

    def test_constant_level_uses_median_heuristic(self):
        """All candidates equal the level; median * 0.15 is the smallest."""
        result = compute_adaptive_threshold([0.1] * 100)

        assert result.median == pytest.approx(0.1)
        assert result.candidates == pytest.approx((0.03, 0.05, 0.015))
        assert result.threshold == pytest.approx(0.015)
        assert not result.floor_clamped

    def test_floor_clamp_on_silence(self):
        """Digital silence clamps to base_threshold * 0.5."""
        result = compute_adaptive_threshold([0.0] * 50, base_threshold=0.005)

        assert result.threshold == pytest.approx(0.0025)
        assert result.floor_clamped

    def test_threshold_never_below_floor(self):
        """Threshold is at least base_threshold * floor_ratio."""
        rng = np.random.default_rng(7)
        samples = rng.uniform(0.0, 0.001, 500)

        result = compute_adaptive_threshold(samples, base_threshold=0.01, floor_ratio=0.5)

        assert result.threshold >= 0.005

    def test_lower_nearest_rank_percentiles(self):
        """Percentiles index sorted[floor(n * q)]."""
        samples = list(range(20))  # 0..19

        result = compute_adaptive_threshold(samples, base_threshold=0.0)

        assert result.p5 == 1.0    # floor(20 * 0.05) = 1
        assert result.p10 == 2.0   # floor(20 * 0.10) = 2
        assert result.median == 10.0
        assert result.sample_count == 20

    def test_order_independent(self):
        """Shuffled samples yield the same threshold."""
        rng = np.random.default_rng(1)
        samples = rng.uniform(0.0, 0.2, 300)
        shuffled = rng.permutation(samples)

        assert compute_adaptive_threshold(samples).threshold == \
            compute_adaptive_threshold(shuffled).threshold

    def test_custom_factors(self):
        """Heuristic factors are configurable."""
        result = compute_adaptive_threshold(
            [0.1] * 10, base_threshold=0.0,
            p10_factor=0.01, p5_factor=0.5, median_factor=0.5
        )
        assert result.threshold == pytest.approx(0.001)

    def test_to_dict(self):
        """Statistics are exposed for diagnostics."""
        data = compute_adaptive_threshold([0.2] * 10).to_dict()

        assert set(data) >= {'threshold', 'p5', 'p10', 'median', 'candidates'}
        assert len(data['candidates']) == 3


class TestThresholdMonotonicity:
    """Scaling every sample by k >= 1 never lowers the threshold."""

    @pytest.mark.parametrize("scale", [1.0, 1.5, 2.0, 10.0, 1000.0])
    def test_scaling_up(self, scale):
        rng = np.random.default_rng(42)
        samples = rng.uniform(0.0, 0.05, 400)

        base = compute_adaptive_threshold(samples).threshold
        scaled = compute_adaptive_threshold(samples * scale).threshold

        assert scaled >= base


class TestInvalidSamples:
    """Test input validation."""

    def test_empty_samples(self):
        """Empty input is InsufficientData, not a crash."""
        with pytest.raises(InsufficientData):
            compute_adaptive_threshold([])

    def test_empty_samples_quiet_regions(self):
        with pytest.raises(InsufficientData):
            detect_quiet_regions([], hop_seconds=0.01)

    def test_negative_sample(self):
        with pytest.raises(ValueError):
            compute_adaptive_threshold([0.1, -0.2, 0.3])

    def test_nan_sample(self):
        with pytest.raises(ValueError):
            compute_adaptive_threshold([0.1, float('nan')])

    def test_non_positive_hop(self):
        with pytest.raises(ValueError):
            detect_quiet_regions([0.1, 0.2], hop_seconds=0.0)


class TestSmoothLevels:
    """Test the centered moving average."""

    def test_constant_input(self):
        smoothed = smooth_levels([0.3] * 40, window=10)

        assert smoothed.shape == (40,)
        assert np.allclose(smoothed, 0.3)

    def test_window_one_is_identity(self):
        samples = [0.1, 0.5, 0.2, 0.9]
        assert np.allclose(smooth_levels(samples, window=1), samples)

    def test_empty(self):
        assert smooth_levels([]).size == 0


class TestDetectQuietRegions:
    """Test amplitude candidate extraction."""

    def test_interior_quiet_region(self):
        """A silent stretch between loud audio becomes amplitude_quiet."""
        samples = [0.1] * 100 + [0.0] * 50 + [0.1] * 100

        result = detect_quiet_regions(samples, hop_seconds=0.01)

        assert not result.used_relative_fallback
        assert len(result.candidates) == 1
        candidate = result.candidates[0]
        assert candidate.start == pytest.approx(1.0)
        assert candidate.end == pytest.approx(1.5)
        assert candidate.source == 'amplitude'
        assert candidate.category == 'amplitude_quiet'
        # duration score 0.25, depth score 1.0
        assert candidate.confidence == pytest.approx(0.625)

    def test_trailing_silence_is_silence_end(self):
        """A region reaching the end of the clip extends to clip_duration."""
        samples = [0.1] * 100 + [0.0] * 50

        result = detect_quiet_regions(samples, hop_seconds=0.01, clip_duration=1.52)

        assert len(result.candidates) == 1
        assert result.candidates[0].category == 'silence_end'
        assert result.candidates[0].end == pytest.approx(1.52)

    def test_short_regions_ignored(self):
        """Regions under min_region_duration_sec are dropped."""
        samples = [0.1] * 100 + [0.0] * 10 + [0.1] * 100

        settings = ThresholdSettings(min_region_duration_sec=0.2)
        result = detect_quiet_regions(samples, hop_seconds=0.01, settings=settings)

        assert all(c.category == 'relative_quiet' for c in result.candidates)

    def test_confidence_bounds(self):
        rng = np.random.default_rng(3)
        samples = np.concatenate([
            rng.uniform(0.05, 0.2, 200),
            rng.uniform(0.0, 0.001, 80),
            rng.uniform(0.05, 0.2, 200),
        ])

        result = detect_quiet_regions(samples, hop_seconds=0.01)

        assert result.candidates
        for candidate in result.candidates:
            assert 0.0 <= candidate.confidence <= 1.0
            assert candidate.end > candidate.start

    def test_statistics(self):
        samples = [0.1] * 100 + [0.0] * 50 + [0.1] * 100

        result = detect_quiet_regions(samples, hop_seconds=0.01)

        assert result.statistics['total_windows'] == 250
        assert result.statistics['silent_windows'] == 50
        assert result.silent_fraction == pytest.approx(0.2)


class TestRelativeQuietFallback:
    """Test the fallback pass for clips without absolute silence."""

    def test_fallback_on_ramp(self):
        """No sample falls below threshold; the quietest part is marked."""
        samples = np.linspace(0.05, 0.5, 200)

        result = detect_quiet_regions(samples, hop_seconds=0.01)

        assert result.used_relative_fallback
        assert result.relative_cutoff is not None
        assert len(result.candidates) >= 1
        first = result.candidates[0]
        assert first.category == 'relative_quiet'
        assert first.confidence == pytest.approx(0.6)
        assert first.start == pytest.approx(0.0)

    def test_relative_confidence_configurable(self):
        samples = np.linspace(0.05, 0.5, 200)
        settings = ThresholdSettings(relative_quiet_confidence=0.4)

        candidates, cutoff = detect_relative_quiet_regions(samples, 0.01, settings=settings)

        assert candidates
        assert all(c.confidence == pytest.approx(0.4) for c in candidates)
        assert cutoff > 0.05


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
