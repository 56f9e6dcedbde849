"""
Detector interface consumed by the orchestrator.

The detectors themselves (transcript gap extraction, command-line audio
statistics, frequency and cross-correlation analysis, amplitude sampling)
are external collaborators. Each exposes a single operation:

    detect(audio_ref, config) -> List[CandidateSegment]

raising DetectorError when it cannot produce results.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence, Tuple

from utils.config_loader import ConsensusConfig
from utils.errors import DetectorError
from .adaptive_threshold import detect_quiet_regions
from .segments import CandidateSegment

logger = logging.getLogger(__name__)


class AudioEventDetector(ABC):
    """Interface for candidate-producing detectors."""

    name: str = "detector"

    @abstractmethod
    def detect(self, audio_ref: Any, config: ConsensusConfig) -> List[CandidateSegment]:
        """Return candidate segments for the referenced audio."""
        pass


class StaticDetector(AudioEventDetector):
    """Detector that replays a precomputed candidate list."""

    def __init__(self, name: str, candidates: Sequence):
        self.name = name
        self._candidates = list(candidates)

    def detect(self, audio_ref: Any, config: ConsensusConfig) -> List:
        return list(self._candidates)


class EnergySampleDetector(AudioEventDetector):
    """
    Amplitude detector built on an external energy sampler.

    The sampler is any callable returning (samples, hop_seconds) or
    (samples, hop_seconds, clip_duration) for an audio reference; decoding
    and RMS windowing happen there, not here.

    Usage:
        detector = EnergySampleDetector(my_rms_sampler)
        candidates = detector.detect('clip.wav', config)
    """

    name = "amplitude"

    def __init__(self, sampler: Callable[[Any], Tuple], name: Optional[str] = None):
        self._sampler = sampler
        if name:
            self.name = name
        self.last_result = None

    def detect(self, audio_ref: Any, config: ConsensusConfig) -> List[CandidateSegment]:
        try:
            sampled = self._sampler(audio_ref)
        except Exception as e:
            raise DetectorError(self.name, f"energy sampler failed: {e}") from e

        if len(sampled) == 3:
            samples, hop_seconds, clip_duration = sampled
        else:
            samples, hop_seconds = sampled
            clip_duration = None

        result = detect_quiet_regions(
            samples,
            hop_seconds,
            clip_duration=clip_duration,
            settings=config.threshold,
        )
        self.last_result = result

        logger.info(
            f"{self.name}: {len(result.candidates)} candidates "
            f"(threshold={result.threshold.threshold:.6f}, "
            f"relative_fallback={result.used_relative_fallback})"
        )
        return result.candidates
