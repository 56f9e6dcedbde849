"""Shared utilities for the audio consensus engine."""

from .config_loader import (
    load_config,
    load_consensus_config,
    ConsensusConfig,
    ThresholdSettings
)
from .errors import (
    EngineError,
    InsufficientData,
    AlreadyRunning,
    InvalidConfiguration,
    DetectorError
)
from .result_export import (
    export_segments_json,
    export_segments_csv,
    export_issues_json,
    load_candidate_file,
    get_segment_summary_stats
)

__all__ = [
    'load_config',
    'load_consensus_config',
    'ConsensusConfig',
    'ThresholdSettings',
    'EngineError',
    'InsufficientData',
    'AlreadyRunning',
    'InvalidConfiguration',
    'DetectorError',
    'export_segments_json',
    'export_segments_csv',
    'export_issues_json',
    'load_candidate_file',
    'get_segment_summary_stats',
]
