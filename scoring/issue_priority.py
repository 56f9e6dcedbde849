"""
Priority scoring for overlap, clipping and loudness issues.

Formula:
    priority = confidence * 50 * severity_multiplier + class_offset

Severity multipliers: low 1.0, medium 1.5, high 2.0.
Class offsets follow typical perceptual annoyance:
timing overlap (25) > clipping (20) > loudness (15) > background (10).
Result clamped to 0-100; higher means fix first.
"""

import logging
from dataclasses import replace
from typing import List, Sequence

import numpy as np

from detection.segments import IssueReport, Severity
from fusion.consensus_fusion import get_confidence_level

logger = logging.getLogger(__name__)


SEVERITY_MULTIPLIERS = {
    Severity.LOW: 1.0,
    Severity.MEDIUM: 1.5,
    Severity.HIGH: 2.0,
}

CLASS_OFFSETS = {
    'overlap': 25,
    'clipping': 20,
    'loudness': 15,
    'background': 10,
    'other': 0,
}

RESOLUTIONS = {
    'clipping': 'apply_compression',
    'loudness': 'normalize_levels',
    'overlap': 'adjust_timing',
    'background': 'apply_noise_reduction',
    'other': 'manual_review',
}


def categorize_issue(issue_type: str) -> str:
    """Map an issue type to its class by substring (e.g. true_peak_exceeded -> other)."""
    issue_type = str(getattr(issue_type, 'value', issue_type))
    for issue_class in ('clipping', 'loudness', 'overlap', 'background'):
        if issue_class in issue_type:
            return issue_class
    return 'other'


def compute_issue_priority(report: IssueReport) -> float:
    """Priority (0-100) of one issue report."""
    priority = report.confidence * 50.0
    priority *= SEVERITY_MULTIPLIERS[report.severity_bucket]
    priority += CLASS_OFFSETS[categorize_issue(report.issue_type)]
    return float(np.clip(priority, 0.0, 100.0))


def prioritize_issues(reports: Sequence[IssueReport]) -> List[IssueReport]:
    """
    Score issue reports and sort them by priority (highest first).

    Args:
        reports: Merged issue reports

    Returns:
        New reports with priority, confidence level, class and resolution
    """
    scored = []
    for report in reports:
        issue_class = categorize_issue(report.issue_type)
        scored.append(replace(
            report,
            priority=compute_issue_priority(report),
            confidence_level=get_confidence_level(report.confidence),
            issue_class=issue_class,
            recommended_resolution=RESOLUTIONS[issue_class],
        ))

    scored.sort(key=lambda r: r.priority, reverse=True)

    counts = {}
    for report in scored:
        counts[report.issue_class] = counts.get(report.issue_class, 0) + 1
    for issue_class, count in counts.items():
        logger.info(f"{issue_class}: {count} issues")

    return scored
