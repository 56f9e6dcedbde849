"""
Multi-source consensus fusion module.

This package combines the confidences of independent detectors that agree
on a region:
- Requires corroboration for full confidence (single-method discount)
- Weights each method by its reliability
- Keeps per-source confidences for explainability

Rationale:
- A single detector's claim may be an artifact (breath, room tone, hum)
- Agreement between methods increases precision
"""

from .consensus_fusion import (
    ConsensusEngine,
    compute_consensus_confidence,
    compute_source_reliability,
    compute_overall_confidence,
    get_confidence_level,
    filter_by_confidence,
    fuse_canonical_segments
)

__all__ = [
    'ConsensusEngine',
    'compute_consensus_confidence',
    'compute_source_reliability',
    'compute_overall_confidence',
    'get_confidence_level',
    'filter_by_confidence',
    'fuse_canonical_segments',
]
