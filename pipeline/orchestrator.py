"""
Orchestration of one consensus run.

State machine:
    idle -> collecting -> normalizing -> merging -> scoring -> complete
    any non-idle state -> error (fatal engine errors only)

Stages:
1. collecting: every detector is submitted to a thread pool before any
   result is awaited. A detector that fails, returns something other than
   a list, or is abandoned on cancellation contributes an empty list.
   Engine errors raised inside a detector still end the run.
2. normalizing: per-producer validation; malformed records are dropped and
   counted.
3. merging: interval union-merge across all producers.
4. scoring: consensus confidence, confidence/duration filtering, quality
   score and recommended action.

Failure policy:
- Producer failures are recoverable: logged, recorded, run continues
- Zero candidates is a valid outcome ("no events found"), not an error
- InvalidConfiguration / InsufficientData / AlreadyRunning are fatal and
  propagate to the caller; nothing is retried here

Detector outputs are folded after collection, in detector order, so the
merge input does not depend on completion order.
"""

import logging
import threading
import time
import uuid
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_COMPLETED
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from detection.normalizer import NormalizationResult, normalize_candidates
from detection.producers import AudioEventDetector
from detection.segments import CanonicalSegment, IssueReport
from fusion.consensus_fusion import ConsensusEngine, compute_overall_confidence, filter_by_confidence
from scoring.issue_priority import prioritize_issues
from scoring.quality_score import score_segments
from segment_merging.interval_merger import filter_short_segments, merge_candidates
from segment_merging.similarity_merger import merge_similar_reports
from utils.config_loader import ConsensusConfig
from utils.errors import AlreadyRunning, DetectorError, EngineError, InvalidConfiguration
from .progress import LogProgressReporter, PipelineState, ProgressReporter

logger = logging.getLogger(__name__)


@dataclass
class ConsensusReport:
    """
    Result of one consensus run.

    Attributes:
        run_id: Identifier used in logs and progress reports
        segments: Scored canonical segments, ordered by start
        candidate_count: Valid candidates that entered the merge
        dropped_count: Malformed candidates rejected by the normalizer
        drop_reasons: Reason -> count for the dropped candidates
        producer_count: Number of producers (detectors or candidate lists)
        failed_producers: Producer name -> failure description
        overall_confidence: Mean consensus confidence of the segments
        state: Final pipeline state
        elapsed_sec: Wall time of the run
    """
    run_id: str
    segments: List[CanonicalSegment] = field(default_factory=list)
    candidate_count: int = 0
    dropped_count: int = 0
    drop_reasons: Dict[str, int] = field(default_factory=dict)
    producer_count: int = 0
    failed_producers: Dict[str, str] = field(default_factory=dict)
    overall_confidence: float = 0.0
    state: PipelineState = PipelineState.IDLE
    elapsed_sec: float = 0.0

    @property
    def partial(self) -> bool:
        """Some producers failed but at least one succeeded."""
        return 0 < len(self.failed_producers) < self.producer_count

    @property
    def no_events_found(self) -> bool:
        return self.state == PipelineState.COMPLETE and not self.segments

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'state': self.state.value,
            'segments': [s.to_dict() for s in self.segments],
            'candidate_count': self.candidate_count,
            'dropped_count': self.dropped_count,
            'drop_reasons': dict(self.drop_reasons),
            'producer_count': self.producer_count,
            'failed_producers': dict(self.failed_producers),
            'partial': self.partial,
            'overall_confidence': self.overall_confidence,
            'elapsed_sec': self.elapsed_sec,
        }


CandidateLists = Union[Dict[str, Sequence], Sequence[Sequence]]


def _named_lists(candidate_lists: CandidateLists) -> List:
    if isinstance(candidate_lists, dict):
        return list(candidate_lists.items())
    return [(f"producer_{idx}", records) for idx, records in enumerate(candidate_lists or [])]


def _producer_labels(detectors: Sequence[AudioEventDetector]) -> List[str]:
    """One distinct label per detector. Repeated names get their index appended."""
    names = [getattr(d, 'name', None) or f"detector_{i}" for i, d in enumerate(detectors)]
    counts = Counter(names)
    return [f"{name}#{idx}" if counts[name] > 1 else name for idx, name in enumerate(names)]


class ConsensusOrchestrator:
    """
    Runs detectors and the consensus pipeline as one operation.

    The logger and progress reporter are injected; nothing is read from
    global application state.

    Usage:
        orchestrator = ConsensusOrchestrator(config)
        report = orchestrator.analyze('clip.wav', detectors)
        report = orchestrator.run({'transcript': [...], 'amplitude': [...]})
    """

    def __init__(
        self,
        config: Union[ConsensusConfig, Dict, None] = None,
        progress: Optional[ProgressReporter] = None,
        log: Optional[logging.Logger] = None
    ):
        if config is None:
            config = ConsensusConfig()
        elif isinstance(config, dict):
            config = ConsensusConfig.from_dict(config)

        self.config = config
        self.log = log or logger
        self.progress = progress or LogProgressReporter(self.log)

        self._lock = threading.Lock()
        self._running = False
        self._state = PipelineState.IDLE
        self._run_id = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def _begin(self) -> str:
        with self._lock:
            if self._running:
                raise AlreadyRunning(f"Run {self._run_id} is still {self._state.value}")
            self._running = True
            self._run_id = uuid.uuid4().hex[:12]
        return self._run_id

    def _end(self):
        with self._lock:
            self._running = False

    def _transition(self, state: PipelineState, detail: Optional[str] = None):
        self._state = state
        self.progress.report(self._run_id, state, detail)

    def _fail(self, error: Exception):
        self._state = PipelineState.ERROR
        self.log.error(f"Run {self._run_id} failed: {type(error).__name__}: {error}")
        self.progress.report(self._run_id, PipelineState.ERROR, str(error))

    def _check_config(self):
        errors = self.config.validate()
        if errors:
            raise InvalidConfiguration(errors)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def analyze(
        self,
        audio_ref: Any,
        detectors: Sequence[AudioEventDetector],
        cancel_event: Optional[threading.Event] = None
    ) -> ConsensusReport:
        """
        Run every detector concurrently, then the consensus pipeline.

        Args:
            audio_ref: Reference passed unchanged to each detector
            detectors: Candidate producers
            cancel_event: When set during collection, outstanding detectors
                are abandoned and count as failed

        Returns:
            ConsensusReport

        Raises:
            AlreadyRunning: If another run is in progress
            InvalidConfiguration: If the configuration is invalid
            InsufficientData: If a detector has too little input to analyze
        """
        run_id = self._begin()
        started = time.time()
        try:
            self._transition(PipelineState.COLLECTING, f"{len(detectors)} detectors")
            self._check_config()
            collected, failures = self._collect(audio_ref, detectors, cancel_event)
            report = self._process(run_id, collected, failures, started)
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._end()
        return report

    def run(self, candidate_lists: CandidateLists) -> ConsensusReport:
        """
        Run the consensus pipeline over already-collected candidate lists.

        Args:
            candidate_lists: One list per producer, either as a sequence of
                lists or a mapping producer name -> list

        Returns:
            ConsensusReport (empty segments when there are no candidates)

        Raises:
            AlreadyRunning: If another run is in progress
            InvalidConfiguration: If the configuration is invalid
        """
        run_id = self._begin()
        started = time.time()
        try:
            named_lists = _named_lists(candidate_lists)
            self._transition(PipelineState.COLLECTING, f"{len(named_lists)} candidate lists")
            self._check_config()
            report = self._process(run_id, named_lists, {}, started)
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._end()
        return report

    def run_issues(self, issue_lists: CandidateLists) -> List[IssueReport]:
        """
        Similarity-merge and prioritize issue reports from several detectors.

        Args:
            issue_lists: One list of IssueReport (or detector dicts) per
                detector, either as a sequence of lists or a mapping
                detector name -> list

        Returns:
            Merged reports sorted by priority, highest first
        """
        self._begin()
        try:
            self._check_config()
            named_lists = _named_lists(issue_lists)
            self._transition(PipelineState.NORMALIZING, f"{len(named_lists)} issue lists")
            reports = []
            dropped = 0
            for name, records in named_lists:
                for record in records or []:
                    try:
                        report = record if isinstance(record, IssueReport) else IssueReport.from_dict(record)
                    except (AttributeError, KeyError, TypeError, ValueError) as e:
                        dropped += 1
                        self.log.debug(f"Dropped malformed issue report from {name}: {e}")
                        continue
                    if not report.issue_type or not 0.0 <= report.confidence <= 1.0:
                        dropped += 1
                        self.log.debug(f"Dropped issue report out of range from {name}: {record!r}")
                        continue
                    reports.append(report)
            if dropped:
                self.log.warning(f"Dropped {dropped} malformed issue reports")

            self._transition(PipelineState.MERGING, f"{len(reports)} reports")
            merged = merge_similar_reports(reports, self.config.similarity_window_ms)

            self._transition(PipelineState.SCORING)
            prioritized = prioritize_issues(merged)

            self._transition(PipelineState.COMPLETE, f"{len(prioritized)} issues")
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._end()
        return prioritized

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _harvest(self, future, name: str, failures: Dict[str, str]) -> Optional[list]:
        """Result of one finished detector, or None after recording its failure."""
        try:
            output = future.result()
        except DetectorError as e:
            failures[name] = str(e)
            self.log.warning(f"Detector {name} failed: {e}")
            return None
        except EngineError:
            # Fatal for the whole run, not just this detector
            raise
        except Exception as e:
            failures[name] = f"{type(e).__name__}: {e}"
            self.log.warning(f"Detector {name} raised {type(e).__name__}: {e}")
            return None

        if not isinstance(output, (list, tuple)):
            failures[name] = f"returned {type(output).__name__}, expected a list"
            self.log.warning(f"Detector {name} returned malformed output")
            return None
        return list(output)

    def _collect(
        self,
        audio_ref: Any,
        detectors: Sequence[AudioEventDetector],
        cancel_event: Optional[threading.Event]
    ):
        """Invoke all detectors concurrently; isolate each detector's failure."""
        failures: Dict[str, str] = {}
        results: Dict[int, list] = {}
        names = _producer_labels(detectors)

        if not detectors:
            return [], failures

        executor = ThreadPoolExecutor(
            max_workers=min(self.config.max_workers, len(detectors)),
            thread_name_prefix="detector"
        )
        cancelled = False
        try:
            futures = {
                executor.submit(detector.detect, audio_ref, self.config): idx
                for idx, detector in enumerate(detectors)
            }
            pending = set(futures)

            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break
                done, pending = wait(
                    pending,
                    timeout=0.05 if cancel_event is not None else None,
                    return_when=FIRST_COMPLETED
                )
                for future in done:
                    output = self._harvest(future, names[futures[future]], failures)
                    if output is not None:
                        results[futures[future]] = output

            if cancelled:
                abandoned = 0
                for future in pending:
                    idx = futures[future]
                    if future.done():
                        output = self._harvest(future, names[idx], failures)
                        if output is not None:
                            results[idx] = output
                        continue
                    future.cancel()
                    failures[names[idx]] = "cancelled"
                    abandoned += 1
                self.log.warning(f"Collection cancelled; abandoned {abandoned} detectors")
        finally:
            executor.shutdown(wait=not cancelled, cancel_futures=True)

        # One entry per detector; failed ones contribute nothing
        collected = [(names[idx], results.get(idx, [])) for idx in range(len(detectors))]

        self.log.info(
            f"Collected candidates from {len(results)}/{len(detectors)} detectors"
            + (f" ({len(failures)} failed)" if failures else "")
        )
        return collected, failures

    def _process(self, run_id: str, named_lists, failures: Dict[str, str], started: float) -> ConsensusReport:
        config = self.config

        self._transition(PipelineState.NORMALIZING, f"{len(named_lists)} producers")
        normalization = NormalizationResult()
        for name, records in named_lists:
            normalization = normalization.extend(normalize_candidates(records, producer=name))

        self._transition(PipelineState.MERGING, f"{len(normalization.candidates)} candidates")
        merged = merge_candidates(normalization.candidates, config.merge_tolerance_seconds)

        self._transition(PipelineState.SCORING, f"{len(merged)} segments")
        fused = ConsensusEngine(config).apply(merged)
        kept = filter_by_confidence(fused, config.confidence_threshold)
        kept = filter_short_segments(kept, config.min_duration_seconds)
        scored = sorted(score_segments(kept, config), key=lambda s: (s.start, s.end))

        if not normalization.candidates:
            self.log.info("No candidates from any producer: no events found")
        elif not scored:
            self.log.info("All merged segments were filtered out: no events found")

        report = ConsensusReport(
            run_id=run_id,
            segments=scored,
            candidate_count=len(normalization.candidates),
            dropped_count=normalization.dropped,
            drop_reasons=dict(normalization.drop_reasons),
            producer_count=len(named_lists),
            failed_producers=dict(failures),
            overall_confidence=compute_overall_confidence(scored),
            state=PipelineState.COMPLETE,
            elapsed_sec=time.time() - started,
        )

        self._transition(
            PipelineState.COMPLETE,
            f"{len(scored)} segments"
            + (f", {report.dropped_count} dropped" if report.dropped_count else "")
            + (", partial results" if report.partial else "")
        )
        return report


def run_consensus(
    candidate_lists: CandidateLists,
    config: Union[ConsensusConfig, Dict, None] = None
) -> List[CanonicalSegment]:
    """
    Convenience function for one consensus run.

    Args:
        candidate_lists: One candidate list per producer
        config: Engine configuration (defaults when None)

    Returns:
        Scored canonical segments ordered by start; [] when nothing was found
    """
    return ConsensusOrchestrator(config).run(candidate_lists).segments
