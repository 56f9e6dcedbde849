"""
Unit tests for result file export.

Tests cover:
- JSON and CSV segment export
- Issue export
- Candidate file loading
- Summary statistics
"""

import csv
import json

import pytest # pyright: ignore[reportMissingImports]
from pathlib import Path

# Import modules to test
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pipeline.orchestrator import ConsensusOrchestrator
from utils.result_export import (
    export_issues_json,
    export_segments_csv,
    export_segments_json,
    get_segment_summary_stats,
    load_candidate_file
)


@pytest.fixture
def report():
    return ConsensusOrchestrator().run([
        [
            {'start': 3.0, 'end': 4.0, 'confidence': 0.9, 'source': 'transcript', 'category': 'speech_gap'},
            {'start': 0.5, 'end': 0.9, 'confidence': 0.8, 'source': 'transcript', 'category': 'speech_gap'},
        ],
        [
            {'start': 0.6, 'end': 1.0, 'confidence': 0.6, 'source': 'amplitude', 'category': 'amplitude_quiet'},
        ],
    ])


class TestSegmentExport:
    """Test segment writers."""

    def test_json(self, report, tmp_path):
        path = export_segments_json(report.segments, tmp_path / 'out' / 'segments.json',
                                    summary={'run_id': report.run_id})

        with open(path) as f:
            data = json.load(f)

        assert data['total_segments'] == 2
        assert [s['start'] for s in data['segments']] == [0.5, 3.0]
        assert data['segments'][0]['recommended_action'] == 'review_apply'
        assert data['summary']['run_id'] == report.run_id

    def test_csv(self, report, tmp_path):
        path = export_segments_csv(report.segments, tmp_path / 'segments.csv')

        with open(path, newline='') as f:
            rows = list(csv.reader(f))

        assert rows[0][0] == 'ID'
        assert len(rows) == 3
        assert rows[1][5] == 'transcript+amplitude'

    def test_empty_json(self, tmp_path):
        path = export_segments_json([], tmp_path / 'segments.json')

        with open(path) as f:
            assert json.load(f)['segments'] == []


class TestIssueExport:
    """Test issue writer."""

    def test_issues_json(self, tmp_path):
        issues = ConsensusOrchestrator().run_issues([[
            {'type': 'clipping', 'confidence': 0.9, 'timestamp': 1000, 'method': 'clipping'},
        ]])

        path = export_issues_json(issues, tmp_path / 'issues.json')

        with open(path) as f:
            data = json.load(f)
        assert data['total_issues'] == 1
        assert data['issues'][0]['recommended_resolution'] == 'apply_compression'
        assert data['issues'][0]['severity'] == 'high'


class TestLoadCandidateFile:
    """Test input file parsing."""

    def test_bare_list(self, tmp_path):
        path = tmp_path / 'candidates.json'
        path.write_text(json.dumps([{'start': 0.0}]))
        assert load_candidate_file(path) == [{'start': 0.0}]

    def test_wrapped_list(self, tmp_path):
        path = tmp_path / 'issues.json'
        path.write_text(json.dumps({'issues': [{'type': 'clipping'}]}))
        assert load_candidate_file(path) == [{'type': 'clipping'}]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_candidate_file(tmp_path / 'nope.json')

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / 'bad.json'
        path.write_text(json.dumps({'other': 1}))
        with pytest.raises(ValueError):
            load_candidate_file(path)


class TestSummaryStats:
    """Test summary statistics."""

    def test_stats(self, report):
        stats = get_segment_summary_stats(report.segments)

        assert stats['total_segments'] == 2
        assert stats['multi_source_segments'] == 1
        assert 0.0 <= stats['mean_confidence'] <= 1.0
        assert sum(stats['actions'].values()) == 2

    def test_empty(self):
        assert get_segment_summary_stats([]) == {}


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
