"""
Detection layer: segment data model and candidate intake.

This package covers everything between the raw detectors and the merger:
1. Data model (candidate, canonical and issue records)
2. Adaptive threshold calculation from energy samples
3. Quiet-region extraction with relative-quiet fallback
4. Candidate validation and normalization
5. Detector interface used by the orchestrator
"""

from .segments import (
    CandidateSegment,
    CanonicalSegment,
    IssueReport,
    DetectionSource,
    SegmentCategory,
    ConfidenceLevel,
    RecommendedAction,
    Severity,
    severity_from_confidence
)
from .adaptive_threshold import (
    AdaptiveThreshold,
    compute_adaptive_threshold,
    detect_quiet_regions,
    detect_relative_quiet_regions
)
from .normalizer import (
    NormalizationResult,
    normalize_candidates,
    normalize_candidate_lists
)
from .producers import AudioEventDetector, EnergySampleDetector, StaticDetector

__all__ = [
    'CandidateSegment',
    'CanonicalSegment',
    'IssueReport',
    'DetectionSource',
    'SegmentCategory',
    'ConfidenceLevel',
    'RecommendedAction',
    'Severity',
    'severity_from_confidence',
    'AdaptiveThreshold',
    'compute_adaptive_threshold',
    'detect_quiet_regions',
    'detect_relative_quiet_regions',
    'NormalizationResult',
    'normalize_candidates',
    'normalize_candidate_lists',
    'AudioEventDetector',
    'EnergySampleDetector',
    'StaticDetector',
]
