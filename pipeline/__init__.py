"""
Consensus run orchestration.

Drives one run through collecting -> normalizing -> merging -> scoring,
with concurrent detector collection, per-detector failure isolation and
injected progress reporting.
"""

from .orchestrator import (
    ConsensusReport,
    ConsensusOrchestrator,
    run_consensus
)
from .progress import (
    PipelineState,
    ProgressReporter,
    LogProgressReporter,
    RecordingProgressReporter
)

__all__ = [
    'PipelineState',
    'ConsensusReport',
    'ConsensusOrchestrator',
    'run_consensus',
    'ProgressReporter',
    'LogProgressReporter',
    'RecordingProgressReporter',
]
