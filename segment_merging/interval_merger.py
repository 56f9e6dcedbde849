"""
Interval merging of candidate segments across detectors.

Detectors disagree on exact boundaries. Requiring exact overlap would
fragment one real event into many tiny segments, so candidates are
union-merged: any candidate starting within merge_tolerance of the open
segment's end joins it and extends it.

Algorithm:
1. Sort candidates by (start, end)
2. Walk the list keeping one open segment
3. candidate.start <= open.end + tolerance -> extend end, add source,
   keep the max confidence per source
4. Otherwise emit the open segment and open a new one

Emitted segments are separated by gaps larger than the tolerance, so merging
the output again changes nothing.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from detection.segments import CandidateSegment, CanonicalSegment
from utils.errors import InvalidConfiguration

logger = logging.getLogger(__name__)


@dataclass
class _OpenSegment:
    """Mutable accumulator for the segment currently being built."""
    start: float
    end: float
    per_source_confidence: Dict[str, float] = field(default_factory=dict)
    sources: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    category: str = ""
    best_confidence: float = -1.0
    metadata: list = field(default_factory=list)

    def add(self, source: str, confidence: float, categories: Sequence[str],
            primary_category: str, metadata: Sequence[dict]):
        if source not in self.per_source_confidence:
            self.sources.append(source)
            self.per_source_confidence[source] = confidence
        else:
            self.per_source_confidence[source] = max(self.per_source_confidence[source], confidence)

        for category in categories:
            if category not in self.categories:
                self.categories.append(category)

        if confidence > self.best_confidence:
            self.best_confidence = confidence
            self.category = primary_category

        self.metadata.extend(m for m in metadata if m)

    def close(self) -> CanonicalSegment:
        return CanonicalSegment(
            start=self.start,
            end=self.end,
            sources=tuple(self.sources),
            per_source_confidence=dict(self.per_source_confidence),
            category=self.category,
            categories=tuple(self.categories),
            metadata=list(self.metadata),
        )


def _check_tolerance(merge_tolerance: float):
    if merge_tolerance < 0:
        raise InvalidConfiguration(f"merge tolerance must be non-negative, got {merge_tolerance}")


def merge_candidates(
    candidates: Sequence[CandidateSegment],
    merge_tolerance: float = 0.1
) -> List[CanonicalSegment]:
    """
    Union-merge candidates from all detectors into canonical segments.

    Args:
        candidates: Normalized candidates from every producer of the run
        merge_tolerance: Maximum gap (seconds) bridged by a merge

    Returns:
        Canonical segments ordered by start (consensus fields unset)

    Example:
        Input (tolerance 0.2):
            [0.5-0.9, transcript, 0.8], [0.6-1.0, amplitude, 0.6]
        Output:
            [0.5-1.0, sources=(transcript, amplitude)]
    """
    _check_tolerance(merge_tolerance)

    if not candidates:
        return []

    ordered = sorted(candidates, key=lambda c: (c.start, c.end))

    merged = []
    current = None

    for candidate in ordered:
        if current is not None and candidate.start <= current.end + merge_tolerance:
            current.end = max(current.end, candidate.end)
        else:
            if current is not None:
                merged.append(current.close())
            current = _OpenSegment(start=candidate.start, end=candidate.end)

        current.add(
            candidate.source,
            candidate.confidence,
            [candidate.category],
            candidate.category,
            [candidate.metadata],
        )

    merged.append(current.close())

    logger.info(
        f"Merged {len(candidates)} candidates -> {len(merged)} segments "
        f"(tolerance: {merge_tolerance}s)"
    )

    return merged


def merge_canonical_segments(
    segments: Sequence[CanonicalSegment],
    merge_tolerance: float = 0.1
) -> List[CanonicalSegment]:
    """
    Re-merge canonical segments.

    Each segment is treated as one candidate carrying all of its sources.
    A segment that merges with nothing is returned as the same object, so
    running this on merge_candidates output returns an equal list.
    """
    _check_tolerance(merge_tolerance)

    if not segments:
        return []

    ordered = sorted(segments, key=lambda s: (s.start, s.end))

    groups = [[ordered[0]]]
    group_end = ordered[0].end
    for seg in ordered[1:]:
        if seg.start <= group_end + merge_tolerance:
            groups[-1].append(seg)
            group_end = max(group_end, seg.end)
        else:
            groups.append([seg])
            group_end = seg.end

    merged = []
    for group in groups:
        if len(group) == 1:
            merged.append(group[0])
            continue

        current = _OpenSegment(start=group[0].start, end=max(s.end for s in group))
        for seg in group:
            for source in seg.sources:
                current.add(
                    source,
                    seg.per_source_confidence[source],
                    seg.categories or (seg.category,),
                    seg.category,
                    [],
                )
            current.metadata.extend(seg.metadata)
        merged.append(current.close())

    if len(merged) != len(segments):
        logger.info(f"Re-merged {len(segments)} -> {len(merged)} segments")

    return merged


def filter_short_segments(
    segments: List[CanonicalSegment],
    min_duration_sec: float = 0.0
) -> List[CanonicalSegment]:
    """
    Remove segments shorter than minimum duration.

    Args:
        segments: List of canonical segments
        min_duration_sec: Minimum duration threshold

    Returns:
        Filtered list
    """
    filtered = [seg for seg in segments if seg.duration >= min_duration_sec]

    if len(filtered) < len(segments):
        logger.info(
            f"Filtered {len(segments) - len(filtered)} segments "
            f"shorter than {min_duration_sec}s"
        )

    return filtered


def segment_contains(segment: CanonicalSegment, candidate: CandidateSegment) -> bool:
    """True if the candidate's [start, end) lies inside the segment's span."""
    return segment.start <= candidate.start and candidate.end <= segment.end
