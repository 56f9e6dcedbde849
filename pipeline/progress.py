"""
Progress reporting for consensus runs.

Reporters receive the pipeline state itself. The completed fraction is
derived from the state, so every reporter shows the same numbers for
the same run.
"""

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    NORMALIZING = "normalizing"
    MERGING = "merging"
    SCORING = "scoring"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def finished(self) -> bool:
        return self in (PipelineState.COMPLETE, PipelineState.ERROR)


STAGE_PROGRESS = {
    PipelineState.COLLECTING: 0.1,
    PipelineState.NORMALIZING: 0.4,
    PipelineState.MERGING: 0.6,
    PipelineState.SCORING: 0.8,
    PipelineState.COMPLETE: 1.0,
}


def stage_progress(state: PipelineState) -> float:
    """Completed fraction of a run once it has entered `state` (0 for idle/error)."""
    return STAGE_PROGRESS.get(state, 0.0)


class ProgressReporter(ABC):
    @abstractmethod
    def report(self, run_id: str, state: PipelineState, detail: Optional[str] = None) -> None:
        """Called on every state transition of run `run_id`."""


class LogProgressReporter(ProgressReporter):
    """
    Logs each transition with the time spent in the stage it leaves.

    Errors are logged at WARNING; the orchestrator logs the failure
    itself at ERROR.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger
        self._entered: Dict[str, Tuple[PipelineState, float]] = {}

    def report(self, run_id: str, state: PipelineState, detail: Optional[str] = None) -> None:
        now = time.monotonic()
        previous = self._entered.pop(run_id, None)

        msg = f"[{run_id}] {state.value}"
        progress = stage_progress(state)
        if progress > 0:
            msg += f" {progress:.0%}"
        if detail:
            msg += f" - {detail}"
        if previous is not None:
            msg += f" ({previous[0].value} took {now - previous[1]:.2f}s)"

        if state.finished:
            level = logging.WARNING if state == PipelineState.ERROR else logging.INFO
        else:
            self._entered[run_id] = (state, now)
            level = logging.INFO
        self._log.log(level, msg)


class RecordingProgressReporter(ProgressReporter):
    """Keeps every report in memory, for UIs that poll and for tests."""

    def __init__(self):
        self.events: List[Tuple[str, PipelineState, Optional[str]]] = []

    def report(self, run_id: str, state: PipelineState, detail: Optional[str] = None) -> None:
        self.events.append((run_id, state, detail))

    @property
    def stages(self) -> List[str]:
        return [state.value for _, state, _ in self.events]

    def latest(self, run_id: str) -> Optional[PipelineState]:
        """Most recent state reported for `run_id`, None if never seen."""
        for seen_id, state, _ in reversed(self.events):
            if seen_id == run_id:
                return state
        return None
