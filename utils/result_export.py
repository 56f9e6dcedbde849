"""
Result file export for host editors and reviewers.

Formats:
- JSON: full canonical segment records plus run summary (machine-readable,
  consumed by the apply layer)
- CSV: one row per segment for spreadsheet review
- JSON issue list: prioritized overlap/clipping/loudness reports

Segments are always written ordered by start time.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


def _ensure_parent(output_path) -> Path:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _value(value):
    return getattr(value, 'value', value)


def export_segments_json(
    segments: Sequence,
    output_path,
    summary: Optional[Dict[str, Any]] = None
) -> str:
    """
    Write canonical segments to a JSON file.

    Args:
        segments: CanonicalSegment objects
        output_path: Destination file
        summary: Optional run summary stored next to the segments

    Returns:
        Path of the written file
    """
    path = _ensure_parent(output_path)
    ordered = sorted(segments, key=lambda s: (s.start, s.end))

    payload = {
        'annotation_type': 'audio_consensus',
        'total_segments': len(ordered),
        'segments': [s.to_dict() for s in ordered],
    }
    if summary:
        payload['summary'] = summary

    with open(path, 'w') as f:
        json.dump(payload, f, indent=2)

    logger.info(f"JSON segments saved: {path}")
    return str(path)


def export_segments_csv(segments: Sequence, output_path) -> str:
    """Write canonical segments to a CSV file, one row per segment."""
    path = _ensure_parent(output_path)

    with open(path, 'w', newline='') as f:
        writer = csv.writer(f)

        writer.writerow([
            'ID',
            'Start_Sec',
            'End_Sec',
            'Duration_Sec',
            'Category',
            'Sources',
            'Consensus_Confidence',
            'Confidence_Level',
            'Quality_Score',
            'Recommended_Action'
        ])

        for idx, seg in enumerate(sorted(segments, key=lambda s: (s.start, s.end)), 1):
            writer.writerow([
                idx,
                f"{seg.start:.3f}",
                f"{seg.end:.3f}",
                f"{seg.duration:.3f}",
                _value(seg.category),
                "+".join(str(_value(s)) for s in seg.sources),
                f"{(seg.consensus_confidence or 0.0):.3f}",
                _value(seg.confidence_level) or "",
                seg.quality_score if seg.quality_score is not None else "",
                _value(seg.recommended_action) or ""
            ])

    logger.info(f"CSV segments saved: {path}")
    return str(path)


def export_issues_json(issues: Sequence, output_path) -> str:
    """Write prioritized issue reports to a JSON file (order preserved)."""
    path = _ensure_parent(output_path)

    with open(path, 'w') as f:
        json.dump({
            'annotation_type': 'audio_issues',
            'total_issues': len(issues),
            'issues': [issue.to_dict() for issue in issues]
        }, f, indent=2)

    logger.info(f"JSON issues saved: {path}")
    return str(path)


def load_candidate_file(input_path) -> List:
    """
    Read candidate or issue records from a JSON file.

    Accepts a bare list, or an object with a ``candidates``, ``issues`` or
    ``segments`` list.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file holds no record list
    """
    path = Path(input_path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")

    with open(path, 'r') as f:
        data = json.load(f)

    if isinstance(data, dict):
        for key in ('candidates', 'issues', 'segments'):
            if isinstance(data.get(key), list):
                return data[key]
        raise ValueError(f"{input_path}: no 'candidates', 'issues' or 'segments' list")
    if not isinstance(data, list):
        raise ValueError(f"{input_path}: expected a JSON list, got {type(data).__name__}")
    return data


def get_segment_summary_stats(segments: Sequence) -> Dict[str, Any]:
    """
    Summary statistics over scored segments.

    Returns:
        Dictionary with counts, mean confidence/quality and action counts
        ({} when there are no segments)
    """
    if not segments:
        return {}

    confidences = [s.consensus_confidence or 0.0 for s in segments]
    durations = [s.duration for s in segments]
    qualities = [s.quality_score or 0 for s in segments]

    actions: Dict[str, int] = {}
    for seg in segments:
        action = _value(seg.recommended_action) or 'unscored'
        actions[action] = actions.get(action, 0) + 1

    return {
        'total_segments': len(segments),
        'multi_source_segments': sum(1 for s in segments if s.is_multi_source),
        'mean_confidence': float(np.mean(confidences)),
        'max_confidence': float(np.max(confidences)),
        'mean_duration': float(np.mean(durations)),
        'total_duration': float(np.sum(durations)),
        'mean_quality_score': float(np.mean(qualities)),
        'actions': actions,
    }
