"""
Candidate validation and normalization.

Every detector's output passes through here before merging. Records are
rejected, never coerced: a candidate with end <= start, a confidence
outside [0, 1], a non-finite number or a missing source/category is
dropped and counted. A bad record never aborts the run.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .segments import CandidateSegment

logger = logging.getLogger(__name__)


CandidateLike = Union[CandidateSegment, Dict[str, Any]]


@dataclass
class NormalizationResult:
    """
    Valid candidates plus drop accounting.

    Attributes:
        candidates: Candidates that passed validation
        dropped: Number of rejected records
        drop_reasons: Reason -> count
    """
    candidates: List[CandidateSegment] = field(default_factory=list)
    dropped: int = 0
    drop_reasons: Counter = field(default_factory=Counter)

    def extend(self, other: 'NormalizationResult') -> 'NormalizationResult':
        return NormalizationResult(
            candidates=self.candidates + other.candidates,
            dropped=self.dropped + other.dropped,
            drop_reasons=self.drop_reasons + other.drop_reasons,
        )


def _label(value) -> Optional[str]:
    if isinstance(value, Enum):
        value = value.value
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _as_float(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def validate_candidate(record: CandidateLike) -> Tuple[Optional[CandidateSegment], Optional[str]]:
    """
    Validate one record.

    Returns:
        (candidate, None) when valid, (None, reason) when rejected
    """
    if isinstance(record, dict):
        try:
            record = CandidateSegment.from_dict(record)
        except (TypeError, ValueError):
            return None, 'not_a_candidate'
    elif not isinstance(record, CandidateSegment):
        return None, 'not_a_candidate'

    source = _label(record.source)
    if source is None:
        return None, 'missing_source'
    category = _label(record.category)
    if category is None:
        return None, 'missing_category'

    start = _as_float(record.start)
    end = _as_float(record.end)
    if start is None or end is None:
        return None, 'invalid_bounds'
    if end <= start:
        return None, 'end_not_after_start'

    confidence = _as_float(record.confidence)
    if confidence is None or not 0.0 <= confidence <= 1.0:
        return None, 'confidence_out_of_range'

    metadata = record.metadata if isinstance(record.metadata, dict) else {}

    return CandidateSegment(
        start=start,
        end=end,
        confidence=confidence,
        source=source,
        category=category,
        metadata=metadata,
    ), None


def normalize_candidates(records: Iterable[CandidateLike], producer: str = "unknown") -> NormalizationResult:
    """
    Validate and normalize one producer's records.

    Source and category labels are reduced to plain strings so that enum
    members and their string values behave identically downstream.

    Args:
        records: CandidateSegment objects or detector dicts
        producer: Producer name used in log messages

    Returns:
        NormalizationResult
    """
    result = NormalizationResult()

    for record in records or []:
        candidate, reason = validate_candidate(record)
        if candidate is None:
            result.dropped += 1
            result.drop_reasons[reason] += 1
            logger.debug(f"Dropped candidate from {producer}: {reason} ({record!r})")
            continue
        result.candidates.append(candidate)

    if result.dropped:
        logger.warning(
            f"{producer}: dropped {result.dropped} malformed candidates "
            f"({dict(result.drop_reasons)})"
        )

    return result


def normalize_candidate_lists(candidate_lists: Iterable[Iterable[CandidateLike]]) -> NormalizationResult:
    """Normalize each producer's list and fold the results into one."""
    combined = NormalizationResult()
    for idx, records in enumerate(candidate_lists or []):
        combined = combined.extend(normalize_candidates(records, producer=f"producer_{idx}"))
    return combined
