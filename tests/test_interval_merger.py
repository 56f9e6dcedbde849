"""
Unit tests for interval merging.

Tests cover:
- Overlap and tolerance-gap merging
- Per-source max confidence and source bookkeeping
- Union containment and idempotence
- Edge cases (empty input, negative tolerance, touching segments)
"""

import pytest # pyright: ignore[reportMissingImports]
import numpy as np
from pathlib import Path

# Import modules to test
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from detection.segments import CandidateSegment
from segment_merging.interval_merger import (
    filter_short_segments,
    merge_canonical_segments,
    merge_candidates,
    segment_contains
)
from utils.errors import InvalidConfiguration


def _candidate(start, end, confidence=0.8, source='transcript', category='speech_gap'):
    return CandidateSegment(start=start, end=end, confidence=confidence,
                            source=source, category=category)


class TestMergeCandidates:
    """Test union-merging of candidates."""

    def test_overlapping_sources_merge(self):
        """Overlapping transcript and amplitude candidates become one segment."""
        candidates = [
            _candidate(0.5, 0.9, 0.8, 'transcript'),
            _candidate(0.6, 1.0, 0.6, 'amplitude', 'amplitude_quiet'),
        ]

        merged = merge_candidates(candidates, merge_tolerance=0.2)

        assert len(merged) == 1
        assert merged[0].start == 0.5
        assert merged[0].end == 1.0
        assert merged[0].sources == ('transcript', 'amplitude')
        assert merged[0].per_source_confidence == {'transcript': 0.8, 'amplitude': 0.6}
        assert merged[0].category == 'speech_gap'
        assert set(merged[0].categories) == {'speech_gap', 'amplitude_quiet'}

    def test_gap_within_tolerance_merges(self):
        merged = merge_candidates([_candidate(0.0, 1.0), _candidate(1.05, 2.0)], merge_tolerance=0.1)
        assert len(merged) == 1
        assert merged[0].end == 2.0

    def test_gap_beyond_tolerance_splits(self):
        merged = merge_candidates([_candidate(0.0, 1.0), _candidate(1.5, 2.0)], merge_tolerance=0.1)
        assert len(merged) == 2

    def test_touching_with_zero_tolerance(self):
        """start == previous end merges even at tolerance 0."""
        merged = merge_candidates([_candidate(0.0, 1.0), _candidate(1.0, 2.0)], merge_tolerance=0.0)
        assert len(merged) == 1

    def test_same_source_keeps_max_confidence(self):
        candidates = [
            _candidate(0.0, 1.0, 0.4, 'amplitude'),
            _candidate(0.5, 1.5, 0.9, 'amplitude'),
        ]

        merged = merge_candidates(candidates)

        assert merged[0].sources == ('amplitude',)
        assert merged[0].per_source_confidence == {'amplitude': 0.9}

    def test_unsorted_input(self):
        candidates = [_candidate(5.0, 6.0), _candidate(0.0, 1.0), _candidate(2.0, 3.0)]

        merged = merge_candidates(candidates)

        assert [s.start for s in merged] == [0.0, 2.0, 5.0]

    def test_nested_candidate(self):
        """A candidate inside another does not shrink the segment."""
        merged = merge_candidates([_candidate(0.0, 3.0), _candidate(1.0, 1.5, source='amplitude')])

        assert len(merged) == 1
        assert merged[0].end == 3.0

    def test_empty(self):
        assert merge_candidates([]) == []

    def test_negative_tolerance(self):
        with pytest.raises(InvalidConfiguration):
            merge_candidates([_candidate(0.0, 1.0)], merge_tolerance=-0.1)

    def test_metadata_carried(self):
        candidate = CandidateSegment(0.0, 1.0, 0.5, 'amplitude', 'amplitude_quiet',
                                     metadata={'average_level': 0.001})

        merged = merge_candidates([candidate])

        assert merged[0].metadata == [{'average_level': 0.001}]


class TestMergeProperties:
    """Properties that must hold for any input."""

    @staticmethod
    def _random_candidates(seed, count=60):
        rng = np.random.default_rng(seed)
        sources = ['transcript', 'amplitude', 'command_line_stats']
        candidates = []
        for _ in range(count):
            start = float(rng.uniform(0.0, 30.0))
            candidates.append(_candidate(
                start,
                start + float(rng.uniform(0.05, 2.0)),
                float(rng.uniform(0.0, 1.0)),
                sources[int(rng.integers(0, len(sources)))]
            ))
        return candidates

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_union_containment(self, seed):
        """Every candidate lies inside exactly one output segment."""
        candidates = self._random_candidates(seed)

        merged = merge_candidates(candidates, merge_tolerance=0.1)

        for candidate in candidates:
            containing = [s for s in merged if segment_contains(s, candidate)]
            assert len(containing) == 1
            assert candidate.source in containing[0].sources

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_idempotence(self, seed):
        """Merging already-merged output changes nothing."""
        merged = merge_candidates(self._random_candidates(seed), merge_tolerance=0.1)

        assert merge_canonical_segments(merged, merge_tolerance=0.1) == merged

    @pytest.mark.parametrize("seed", [0, 1])
    def test_outputs_separated_by_more_than_tolerance(self, seed):
        merged = merge_candidates(self._random_candidates(seed), merge_tolerance=0.1)

        for prev, nxt in zip(merged, merged[1:]):
            assert nxt.start > prev.end + 0.1

    def test_input_order_irrelevant(self):
        candidates = self._random_candidates(9)

        forward = merge_candidates(candidates)
        backward = merge_candidates(list(reversed(candidates)))

        assert [(s.start, s.end) for s in forward] == [(s.start, s.end) for s in backward]


class TestMergeCanonicalSegments:
    """Test re-merging canonical segments."""

    def test_merges_overlapping_segments(self):
        first = merge_candidates([_candidate(0.0, 1.0, 0.5, 'transcript')])
        second = merge_candidates([_candidate(0.9, 2.0, 0.7, 'amplitude')])

        merged = merge_canonical_segments(first + second)

        assert len(merged) == 1
        assert merged[0].per_source_confidence == {'transcript': 0.5, 'amplitude': 0.7}
        assert merged[0].end == 2.0


class TestFilterShortSegments:
    """Test duration filtering."""

    def test_filter(self):
        merged = merge_candidates([_candidate(0.0, 0.1), _candidate(1.0, 1.5)], merge_tolerance=0.0)

        kept = filter_short_segments(merged, min_duration_sec=0.2)

        assert len(kept) == 1
        assert kept[0].start == 1.0


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
