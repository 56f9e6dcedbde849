"""
Segment data model for multi-source audio event detection.

Three record kinds flow through the engine:
- CandidateSegment: one detector's unverified claim about a time region
- CanonicalSegment: the fused, deduplicated output unit of one run
- IssueReport: a point-in-time problem report (clipping, loudness,
  overlapping sources) merged by similarity rather than by span overlap

Candidates are immutable once built. Later stages never edit a segment
they received; they return updated copies via dataclasses.replace.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class DetectionSource(str, Enum):
    """Known detection methods. Sources are plain strings, so others are allowed."""
    AMPLITUDE = "amplitude"
    TRANSCRIPT = "transcript"
    COMMAND_LINE_STATS = "command_line_stats"
    CROSS_CORRELATION = "cross_correlation"
    ENVELOPE = "envelope"
    LOUDNESS = "loudness"
    CLIPPING = "clipping"
    FREQUENCY = "frequency"


class SegmentCategory(str, Enum):
    """Semantic kind of a detected region or issue."""
    SPEECH_GAP = "speech_gap"
    SHORT_PAUSE = "short_pause"
    SILENCE_END = "silence_end"
    AMPLITUDE_QUIET = "amplitude_quiet"
    RELATIVE_QUIET = "relative_quiet"
    FREQUENCY_OVERLAP = "frequency_overlap"
    HARMONIC_OVERLAP = "harmonic_overlap"
    CROSS_CORRELATION_OVERLAP = "cross_correlation_overlap"
    ENVELOPE_OVERLAP = "envelope_overlap"
    CLIPPING = "clipping"
    LOUDNESS = "loudness"
    LOUDNESS_DEVIATION = "loudness_deviation"
    TRUE_PEAK_EXCEEDED = "true_peak_exceeded"
    DISTORTION = "distortion"
    BACKGROUND = "background"


class ConfidenceLevel(str, Enum):
    VERY_HIGH = "very_high"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


class RecommendedAction(str, Enum):
    AUTO_APPLY = "auto_apply"
    REVIEW_APPLY = "review_apply"
    MANUAL_REVIEW = "manual_review"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _enum_value(value):
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class CandidateSegment:
    """
    A single detector's claim about a time region.

    Attributes:
        start: Region start in seconds
        end: Region end in seconds (must be > start)
        confidence: Detector confidence (0-1)
        source: Producing method (see DetectionSource)
        category: Semantic kind (see SegmentCategory)
        metadata: Opaque detector-specific data, carried through unchanged
    """
    start: float
    end: float
    confidence: float
    source: str
    category: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.end - self.start

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CandidateSegment':
        """
        Build a candidate from a detector's JSON record.

        Accepts ``type`` for category and ``method`` for source, the field
        names the silence and overlap detectors emit. No validation happens
        here; that is the normalizer's job.
        """
        known = {'start', 'end', 'confidence', 'source', 'category', 'type',
                 'method', 'metadata', 'duration'}
        metadata = dict(data.get('metadata') or {})
        # Any extra detector fields ride along as metadata
        metadata.update({k: v for k, v in data.items() if k not in known})

        return cls(
            start=data.get('start'),
            end=data.get('end'),
            confidence=data.get('confidence'),
            source=_enum_value(data.get('source', data.get('method'))),
            category=_enum_value(data.get('category', data.get('type'))),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start': self.start,
            'end': self.end,
            'duration': self.duration,
            'confidence': self.confidence,
            'source': _enum_value(self.source),
            'category': _enum_value(self.category),
            'metadata': self.metadata,
        }


@dataclass(frozen=True)
class CanonicalSegment:
    """
    Fused output unit of one consensus run.

    Attributes:
        start: Earliest start of any contributing candidate
        end: Latest end of any contributing candidate
        sources: Distinct contributing sources, in order of first contribution
        per_source_confidence: Source -> max confidence it contributed
        category: Category of the highest-confidence contributing candidate
        categories: All distinct contributing categories
        metadata: Non-empty metadata dicts of the contributing candidates
        consensus_confidence: Fused confidence (0-1), set by the fusion stage
        reliability: Source agreement (0-1), diagnostic only
        quality_score: Rubric score (0-100), set by the scoring stage
        confidence_level: Bucket of consensus_confidence
        recommended_action: What the host editor should do with the segment
    """
    start: float
    end: float
    sources: Tuple[str, ...]
    per_source_confidence: Dict[str, float]
    category: str
    categories: Tuple[str, ...] = ()
    metadata: List[Dict[str, Any]] = field(default_factory=list)
    consensus_confidence: Optional[float] = None
    reliability: Optional[float] = None
    quality_score: Optional[int] = None
    confidence_level: Optional[ConfidenceLevel] = None
    recommended_action: Optional[RecommendedAction] = None

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.end - self.start

    @property
    def is_multi_source(self) -> bool:
        return len(self.sources) > 1

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable record consumed by the UI and host-apply layers."""
        return {
            'start': float(self.start),
            'end': float(self.end),
            'duration': float(self.duration),
            'sources': [_enum_value(s) for s in self.sources],
            'per_source_confidence': {
                _enum_value(s): float(c) for s, c in self.per_source_confidence.items()
            },
            'category': _enum_value(self.category),
            'categories': [_enum_value(c) for c in self.categories],
            'consensus_confidence': (
                float(self.consensus_confidence)
                if self.consensus_confidence is not None else None
            ),
            'reliability': float(self.reliability) if self.reliability is not None else None,
            'quality_score': self.quality_score,
            'confidence_level': _enum_value(self.confidence_level),
            'recommended_action': _enum_value(self.recommended_action),
            'metadata': self.metadata,
        }


def severity_from_confidence(confidence: float) -> Severity:
    """Severity bucket used for issue reports: >0.8 high, >0.6 medium."""
    if confidence > 0.8:
        return Severity.HIGH
    if confidence > 0.6:
        return Severity.MEDIUM
    return Severity.LOW


@dataclass(frozen=True)
class IssueReport:
    """
    A detected audio problem at (roughly) one moment.

    Attributes:
        issue_type: e.g. 'clipping', 'loudness_deviation', 'frequency_overlap'
        confidence: Detector confidence (0-1)
        timestamp_ms: Position in milliseconds; None for whole-file issues
        severity: Explicit severity; derived from confidence when None
        description: Human-readable description
        methods: Contributing method names
        value: Measured value (peak level, energy, correlation, ...)
        metadata: Opaque detector data
        priority: Priority score (0-100), set by the scoring stage
        confidence_level: Bucket of confidence
        issue_class: clipping / loudness / overlap / background / other
        recommended_resolution: Suggested fix for the host editor
    """
    issue_type: str
    confidence: float
    timestamp_ms: Optional[float] = None
    severity: Optional[Severity] = None
    description: str = ""
    methods: Tuple[str, ...] = ()
    value: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    priority: Optional[float] = None
    confidence_level: Optional[ConfidenceLevel] = None
    issue_class: Optional[str] = None
    recommended_resolution: Optional[str] = None

    @property
    def severity_bucket(self) -> Severity:
        if self.severity is None:
            return severity_from_confidence(self.confidence)
        return Severity(_enum_value(self.severity))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IssueReport':
        """Build a report from a detector JSON record (``type``/``method`` keys accepted)."""
        methods = data.get('methods')
        if methods is None:
            method = data.get('method')
            methods = (method,) if method else ()
        severity = data.get('severity')
        known = {'type', 'issue_type', 'confidence', 'timestamp', 'timestamp_ms',
                 'severity', 'description', 'method', 'methods', 'value', 'metadata'}
        metadata = dict(data.get('metadata') or {})
        metadata.update({k: v for k, v in data.items() if k not in known})

        return cls(
            issue_type=_enum_value(data.get('issue_type', data.get('type'))),
            confidence=float(data['confidence']),
            timestamp_ms=data.get('timestamp_ms', data.get('timestamp')),
            severity=Severity(severity) if severity else None,
            description=data.get('description', ""),
            methods=tuple(methods),
            value=data.get('value'),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': _enum_value(self.issue_type),
            'confidence': float(self.confidence),
            'timestamp_ms': self.timestamp_ms,
            'severity': _enum_value(self.severity_bucket),
            'description': self.description,
            'methods': list(self.methods),
            'value': self.value,
            'priority': self.priority,
            'confidence_level': _enum_value(self.confidence_level),
            'issue_class': self.issue_class,
            'recommended_resolution': self.recommended_resolution,
            'metadata': self.metadata,
        }
