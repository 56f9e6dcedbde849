"""
Adaptive silence threshold from energy samples.

A fixed amplitude threshold fails on clips with very different noise floors.
The calculator instead derives a per-clip cutoff from percentile statistics
of the clip's own energy samples (RMS per short window):

    candidates = p10 * 0.3, p5 * 0.5, median * 0.15
    threshold  = max(min(candidates), base_threshold * 0.5)

The lowest candidate is the most sensitive; the floor clamp keeps near-silent
recordings from driving the threshold to zero.

Quiet-region pass:
- Runs of samples below the threshold become amplitude_quiet candidates
- A run reaching the end of the clip is tagged silence_end
- If nothing falls below the threshold, a smoothed second pass marks the
  quietest 20% of the clip as relative_quiet, at a fixed lower confidence

Percentiles use lower nearest rank (sorted[floor(n * q)]) so that the same
sample set always yields the same threshold.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from utils.config_loader import ThresholdSettings
from utils.errors import InsufficientData
from .segments import CandidateSegment, DetectionSource, SegmentCategory

logger = logging.getLogger(__name__)


@dataclass
class AdaptiveThreshold:
    """
    Selected threshold plus the statistics used to derive it.

    Attributes:
        threshold: Selected silence threshold
        p5: 5th percentile of the samples
        p10: 10th percentile of the samples
        median: 50th percentile of the samples
        candidates: The three heuristic thresholds (p10, p5, median based)
        base_threshold: Caller-supplied floor reference
        sample_count: Number of samples the statistics came from
    """
    threshold: float
    p5: float
    p10: float
    median: float
    candidates: Tuple[float, float, float]
    base_threshold: float
    sample_count: int

    @property
    def floor_clamped(self) -> bool:
        """True when the floor, not a percentile heuristic, set the threshold."""
        return self.threshold > min(self.candidates)

    def to_dict(self) -> dict:
        return {
            'threshold': self.threshold,
            'p5': self.p5,
            'p10': self.p10,
            'median': self.median,
            'candidates': list(self.candidates),
            'base_threshold': self.base_threshold,
            'sample_count': self.sample_count,
        }


@dataclass
class QuietRegionResult:
    """Output of the quiet-region pass over one clip."""
    candidates: List[CandidateSegment]
    threshold: AdaptiveThreshold
    used_relative_fallback: bool = False
    relative_cutoff: Optional[float] = None
    silent_fraction: float = 0.0
    statistics: dict = field(default_factory=dict)


def _validate_samples(samples: Sequence[float]) -> np.ndarray:
    values = np.asarray(samples, dtype=float).ravel()
    if values.size == 0:
        raise InsufficientData("At least one energy sample is required")
    if not np.all(np.isfinite(values)):
        raise ValueError("Energy samples must be finite")
    if np.any(values < 0):
        raise ValueError("Energy samples must be non-negative")
    return values


def _lower_percentile(sorted_values: np.ndarray, q: float) -> float:
    index = min(int(len(sorted_values) * q), len(sorted_values) - 1)
    return float(sorted_values[index])


def compute_adaptive_threshold(
    samples: Sequence[float],
    base_threshold: float = 0.005,
    floor_ratio: float = 0.5,
    p10_factor: float = 0.3,
    p5_factor: float = 0.5,
    median_factor: float = 0.15
) -> AdaptiveThreshold:
    """
    Derive a silence threshold from energy samples.

    Args:
        samples: Non-negative energy samples covering the whole clip
        base_threshold: Configured floor reference
        floor_ratio: Fraction of base_threshold the result may not go below
        p10_factor: Multiplier for the 10th percentile heuristic
        p5_factor: Multiplier for the 5th percentile heuristic
        median_factor: Multiplier for the median heuristic

    Returns:
        AdaptiveThreshold with the selected value and its statistics

    Raises:
        InsufficientData: If samples is empty
        ValueError: If any sample is negative or non-finite
    """
    values = np.sort(_validate_samples(samples))

    p5 = _lower_percentile(values, 0.05)
    p10 = _lower_percentile(values, 0.10)
    median = float(values[len(values) // 2])

    candidates = (p10 * p10_factor, p5 * p5_factor, median * median_factor)
    threshold = max(min(candidates), base_threshold * floor_ratio)

    logger.debug(
        f"Adaptive threshold {threshold:.6f} "
        f"(median={median:.6f}, p10={p10:.6f}, p5={p5:.6f}, "
        f"candidates={[round(c, 6) for c in candidates]}, base={base_threshold})"
    )

    return AdaptiveThreshold(
        threshold=float(threshold),
        p5=p5,
        p10=p10,
        median=median,
        candidates=tuple(float(c) for c in candidates),
        base_threshold=base_threshold,
        sample_count=int(values.size),
    )


def smooth_levels(samples: Sequence[float], window: int = 10) -> np.ndarray:
    """
    Centered moving average.

    Each output value is the mean of samples[i - window//2 : i + window//2]
    (clipped to the array bounds, always including sample i).
    """
    values = np.asarray(samples, dtype=float).ravel()
    n = values.size
    if n == 0:
        return values

    half = window // 2
    cumulative = np.concatenate(([0.0], np.cumsum(values)))
    idx = np.arange(n)
    lo = np.maximum(0, idx - half)
    hi = np.maximum(np.minimum(n, idx + half), idx + 1)

    return (cumulative[hi] - cumulative[lo]) / (hi - lo)


def _find_runs(mask: np.ndarray) -> List[Tuple[int, int]]:
    """Return (start, stop) index pairs of consecutive True values, stop exclusive."""
    if mask.size == 0:
        return []
    padded = np.concatenate(([False], mask, [False])).astype(int)
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    stops = np.flatnonzero(edges == -1)
    return list(zip(starts.tolist(), stops.tolist()))


def _run_bounds(start_idx: int, stop_idx: int, n: int, hop_seconds: float,
                clip_duration: float) -> Tuple[float, float, bool]:
    start = start_idx * hop_seconds
    reaches_end = stop_idx >= n
    end = clip_duration if reaches_end else stop_idx * hop_seconds
    return start, end, reaches_end


def _region_confidence(mean_level: float, threshold: float, duration: float) -> float:
    duration_score = min(duration / 2.0, 1.0)
    if threshold <= 0:
        depth_score = 1.0
    else:
        depth_score = float(np.clip(1.0 - mean_level / threshold, 0.0, 1.0))
    return (duration_score + depth_score) / 2.0


def detect_relative_quiet_regions(
    samples: Sequence[float],
    hop_seconds: float,
    clip_duration: Optional[float] = None,
    settings: Optional[ThresholdSettings] = None
) -> Tuple[List[CandidateSegment], float]:
    """
    Mark the quietest part of a clip that has no absolute silence.

    Smooths the samples, takes the configured percentile (20th by default)
    of the smoothed series as the cutoff, and returns runs at or below it
    as relative_quiet candidates with a fixed confidence.

    Returns:
        (candidates, cutoff)
    """
    settings = settings or ThresholdSettings()
    values = _validate_samples(samples)
    n = values.size
    if clip_duration is None:
        clip_duration = n * hop_seconds

    smoothed = smooth_levels(values, settings.smoothing_window)
    cutoff = _lower_percentile(np.sort(smoothed), settings.relative_quiet_percentile)

    logger.info(
        f"Relative quiet cutoff: {cutoff:.6f} "
        f"({settings.relative_quiet_percentile:.0%} percentile of smoothed levels)"
    )

    candidates = []
    for start_idx, stop_idx in _find_runs(smoothed <= cutoff):
        start, end, _ = _run_bounds(start_idx, stop_idx, n, hop_seconds, clip_duration)
        if end - start < settings.min_region_duration_sec or end <= start:
            continue
        candidates.append(CandidateSegment(
            start=start,
            end=end,
            confidence=settings.relative_quiet_confidence,
            source=DetectionSource.AMPLITUDE.value,
            category=SegmentCategory.RELATIVE_QUIET.value,
            metadata={
                'threshold': cutoff,
                'average_level': float(np.mean(smoothed[start_idx:stop_idx])),
            },
        ))

    logger.info(f"Found {len(candidates)} relative quiet periods")
    return candidates, cutoff


def detect_quiet_regions(
    samples: Sequence[float],
    hop_seconds: float,
    clip_duration: Optional[float] = None,
    settings: Optional[ThresholdSettings] = None
) -> QuietRegionResult:
    """
    Turn energy samples into amplitude-based candidate segments.

    Sample i covers the time i * hop_seconds. A region that is still quiet
    at the last sample extends to clip_duration (default n * hop_seconds).

    Args:
        samples: Energy samples ordered by time
        hop_seconds: Time between consecutive samples
        clip_duration: Clip length in seconds
        settings: Threshold settings (defaults when None)

    Returns:
        QuietRegionResult with candidates and the threshold diagnostics

    Raises:
        InsufficientData: If samples is empty
    """
    if hop_seconds <= 0:
        raise ValueError("hop_seconds must be positive")

    settings = settings or ThresholdSettings()
    values = _validate_samples(samples)
    n = values.size
    if clip_duration is None:
        clip_duration = n * hop_seconds

    adaptive = compute_adaptive_threshold(
        values,
        base_threshold=settings.base_threshold,
        floor_ratio=settings.floor_ratio,
        p10_factor=settings.p10_factor,
        p5_factor=settings.p5_factor,
        median_factor=settings.median_factor,
    )

    silent = values < adaptive.threshold
    silent_fraction = float(np.mean(silent))

    candidates = []
    for start_idx, stop_idx in _find_runs(silent):
        start, end, reaches_end = _run_bounds(start_idx, stop_idx, n, hop_seconds, clip_duration)
        duration = end - start
        if duration < settings.min_region_duration_sec or duration <= 0:
            continue

        mean_level = float(np.mean(values[start_idx:stop_idx]))
        category = SegmentCategory.SILENCE_END if reaches_end else SegmentCategory.AMPLITUDE_QUIET
        candidates.append(CandidateSegment(
            start=start,
            end=end,
            confidence=_region_confidence(mean_level, adaptive.threshold, duration),
            source=DetectionSource.AMPLITUDE.value,
            category=category.value,
            metadata={
                'threshold': adaptive.threshold,
                'average_level': mean_level,
            },
        ))

    logger.info(
        f"Amplitude pass: {len(candidates)} regions below {adaptive.threshold:.6f} "
        f"({silent_fraction * 100:.1f}% of windows silent)"
    )

    used_fallback = False
    cutoff = None
    if not candidates:
        logger.info("No absolute silence found, trying relative quiet detection")
        candidates, cutoff = detect_relative_quiet_regions(
            values, hop_seconds, clip_duration, settings
        )
        used_fallback = True

    return QuietRegionResult(
        candidates=candidates,
        threshold=adaptive,
        used_relative_fallback=used_fallback,
        relative_cutoff=cutoff,
        silent_fraction=silent_fraction,
        statistics={
            'total_windows': int(n),
            'silent_windows': int(np.sum(silent)),
            'silence_percentage': round(silent_fraction * 100, 1),
        },
    )
