"""
Segment merging module.

Two strategies turn overlapping detector output into one list:
1. Interval merge: union of candidates whose spans overlap or sit within a
   small tolerance of each other, tracking contributing sources
2. Similarity merge: collapse point-in-time issue reports sharing type,
   severity and moment

Interval merging is sequential by nature: each decision depends on the
extent of the segment built so far.
"""

from .interval_merger import (
    merge_candidates,
    merge_canonical_segments,
    filter_short_segments,
    segment_contains
)
from .similarity_merger import (
    merge_similar_reports,
    merge_report_group,
    reports_are_similar
)

__all__ = [
    'merge_candidates',
    'merge_canonical_segments',
    'filter_short_segments',
    'segment_contains',
    'merge_similar_reports',
    'merge_report_group',
    'reports_are_similar',
]
