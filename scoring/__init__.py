"""
Segment scoring module.

This package turns fused results into actionable, ranked output:
1. Quality Score (0-100): rubric score for canonical silence segments
2. Recommended Action: auto_apply / review_apply / manual_review
3. Issue Priority (0-100): severity-weighted rank for overlap, clipping
   and loudness issues, with a suggested resolution

All scores are:
- Interpretable (0-100 scale, higher = stronger / more urgent)
- Explainable (fixed additive rubric, no learned weights)
"""

from .quality_score import compute_quality_score, recommend_action, score_segments
from .issue_priority import (
    categorize_issue,
    compute_issue_priority,
    prioritize_issues
)

__all__ = [
    'compute_quality_score',
    'recommend_action',
    'score_segments',
    'categorize_issue',
    'compute_issue_priority',
    'prioritize_issues',
]
