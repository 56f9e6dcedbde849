"""
Similarity merging of issue reports.

Clipping, loudness and overlap issues are reported at a moment rather than
over a span, and several detectors often report the same problem. Two
reports are similar when they have:
- the same issue type
- the same severity bucket (low / medium / high)
- timestamps within similarity_window_ms (skipped for whole-file reports)

Reports are processed in descending confidence order. Each unprocessed
report seeds a group and collects every later report similar to it.
A group merges into one report:
- confidence = arithmetic mean of the group
- description = distinct descriptions joined with '; '
- methods = union of contributing methods, in first-seen order
- severity = recomputed from the group's maximum confidence
"""

import logging
from dataclasses import replace
from typing import List, Sequence

import numpy as np

from detection.segments import IssueReport, severity_from_confidence

logger = logging.getLogger(__name__)


def reports_are_similar(
    first: IssueReport,
    second: IssueReport,
    similarity_window_ms: float = 500.0
) -> bool:
    """Check type, severity bucket and temporal proximity."""
    if first.issue_type != second.issue_type:
        return False
    if first.severity_bucket != second.severity_bucket:
        return False

    if first.timestamp_ms is not None and second.timestamp_ms is not None:
        if abs(first.timestamp_ms - second.timestamp_ms) > similarity_window_ms:
            return False

    return True


def merge_report_group(group: Sequence[IssueReport]) -> IssueReport:
    """
    Merge a group of similar reports into one.

    The first report (highest confidence) supplies timestamp, value and
    metadata.
    """
    if len(group) == 1:
        return group[0]

    confidences = [r.confidence for r in group]

    descriptions = []
    for report in group:
        if report.description and report.description not in descriptions:
            descriptions.append(report.description)

    methods = []
    for report in group:
        for method in report.methods:
            if method not in methods:
                methods.append(method)

    return replace(
        group[0],
        confidence=float(np.mean(confidences)),
        description="; ".join(descriptions),
        methods=tuple(methods),
        severity=severity_from_confidence(max(confidences)),
    )


def merge_similar_reports(
    reports: Sequence[IssueReport],
    similarity_window_ms: float = 500.0
) -> List[IssueReport]:
    """
    Collapse near-duplicate issue reports.

    Args:
        reports: Issue reports from all detectors
        similarity_window_ms: Temporal tolerance in milliseconds

    Returns:
        Merged reports, in descending order of their seed's confidence
    """
    if not reports:
        return []

    ordered = sorted(reports, key=lambda r: r.confidence, reverse=True)
    processed = [False] * len(ordered)
    merged = []

    for i, seed in enumerate(ordered):
        if processed[i]:
            continue
        processed[i] = True
        group = [seed]

        for j in range(i + 1, len(ordered)):
            if processed[j]:
                continue
            if reports_are_similar(seed, ordered[j], similarity_window_ms):
                group.append(ordered[j])
                processed[j] = True

        merged.append(merge_report_group(group))

    logger.info(f"Merged {len(reports)} issue reports into {len(merged)} unique issues")

    return merged
