#!/usr/bin/env python3
"""
Command-line entry point for the audio consensus engine.

Combines the silence/event candidates of several detectors into one
deduplicated, confidence-ranked list of canonical segments:
1. Candidate collection (one JSON file per detector, plus optional
   amplitude levels run through the adaptive threshold detector)
2. Normalization (malformed records dropped and counted)
3. Interval merging (overlaps within the merge tolerance become one segment)
4. Consensus fusion (weighted source confidence, single-source discount)
5. Scoring (quality score, confidence level, recommended action)
6. Export (JSON, optional CSV)

Overlap/clipping/loudness issue reports given with --issues are
similarity-merged and prioritized separately.

Usage:
    python main.py --candidates transcript.json amplitude.json --output results/
    python main.py --levels levels.json --hop 0.01 --output results/
    python main.py --issues overlap.json loudness.json --output results/

Exit codes:
    0: run completed (including "no events found")
    1: invalid input or configuration, or a fatal engine error
"""

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import List

from detection import EnergySampleDetector, StaticDetector
from pipeline import ConsensusOrchestrator
from utils.config_loader import ConsensusConfig, load_consensus_config
from utils.errors import EngineError, InvalidConfiguration
from utils.result_export import (
    export_issues_json,
    export_segments_csv,
    export_segments_json,
    get_segment_summary_stats,
    load_candidate_file
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('audio_consensus.log'),
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


def _levels_sampler(hop_seconds: float):
    """Build a sampler that reads amplitude levels from a JSON file."""
    def sampler(audio_ref):
        with open(audio_ref, 'r') as f:
            data = json.load(f)
        if isinstance(data, dict):
            return data['samples'], float(data.get('hop_seconds', hop_seconds)), data.get('duration')
        return data, hop_seconds
    return sampler


def build_detectors(candidate_paths: List[str], levels_path: str = None, hop_seconds: float = 0.01):
    """
    One StaticDetector per candidate file, named after the file, plus the
    levels detector. Repeated names are made distinct by the orchestrator.
    """
    detectors = []
    for path in candidate_paths or []:
        detectors.append(StaticDetector(Path(path).stem, load_candidate_file(path)))
    if levels_path:
        detectors.append(EnergySampleDetector(_levels_sampler(hop_seconds)))
    return detectors


def run_pipeline(args, config: ConsensusConfig) -> dict:
    """
    Execute the consensus run(s) requested on the command line.

    Args:
        args: Parsed command-line arguments
        config: Engine configuration

    Returns:
        Dictionary of written output paths
    """
    logger.info("=" * 80)
    logger.info("AUDIO CONSENSUS - Multi-source audio event consensus")
    logger.info("=" * 80)

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    outputs = {}
    orchestrator = ConsensusOrchestrator(config)

    if args.candidates or args.levels:
        detectors = build_detectors(args.candidates, args.levels, args.hop)
        report = orchestrator.analyze(args.levels, detectors)

        if report.partial:
            logger.warning(
                f"Partial results: {len(report.failed_producers)} of "
                f"{report.producer_count} producers failed "
                f"({', '.join(sorted(report.failed_producers))})"
            )
        if report.no_events_found:
            logger.info("No events found")

        summary = report.to_dict()
        summary.pop('segments')
        summary['stats'] = get_segment_summary_stats(report.segments)

        outputs['segments_json'] = export_segments_json(
            report.segments, output_dir / 'segments.json', summary=summary
        )
        if args.csv:
            outputs['segments_csv'] = export_segments_csv(report.segments, output_dir / 'segments.csv')

        logger.info(
            f"{len(report.segments)} segments from {report.candidate_count} candidates "
            f"(dropped {report.dropped_count}), overall confidence "
            f"{report.overall_confidence:.3f}"
        )

    if args.issues:
        issue_lists = [load_candidate_file(path) for path in args.issues]
        issues = orchestrator.run_issues(issue_lists)
        outputs['issues_json'] = export_issues_json(issues, output_dir / 'issues.json')
        logger.info(f"{len(issues)} prioritized issues")

    return outputs


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Audio Consensus - merge and rank multi-detector audio events',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Merge transcript and amplitude candidates
  python main.py --candidates transcript.json amplitude.json --output results/

  # Detect quiet regions from amplitude levels (10 ms hop) and merge
  python main.py --levels levels.json --hop 0.01 --candidates transcript.json

  # Prioritize overlap and loudness issues
  python main.py --issues overlap.json loudness.json --output results/
        """
    )

    parser.add_argument(
        '--candidates',
        type=str,
        nargs='+',
        default=[],
        help='JSON files of candidate segments, one file per detector'
    )

    parser.add_argument(
        '--levels',
        type=str,
        default=None,
        help='JSON file of amplitude levels for the adaptive threshold detector'
    )

    parser.add_argument(
        '--hop',
        type=float,
        default=0.01,
        help='Seconds between amplitude levels (default: 0.01)'
    )

    parser.add_argument(
        '--issues',
        type=str,
        nargs='+',
        default=[],
        help='JSON files of overlap/clipping/loudness issue reports'
    )

    parser.add_argument(
        '--config',
        type=str,
        default='configs/consensus.yaml',
        help='Path to configuration YAML file (default: configs/consensus.yaml)'
    )

    parser.add_argument(
        '--output',
        type=str,
        default='data/outputs',
        help='Output directory for results (default: data/outputs)'
    )

    parser.add_argument(
        '--csv',
        action='store_true',
        help='Also write segments.csv'
    )

    args = parser.parse_args()

    if not (args.candidates or args.levels or args.issues):
        parser.error('nothing to do: give --candidates, --levels or --issues')

    for path in list(args.candidates) + list(args.issues) + ([args.levels] if args.levels else []):
        if not Path(path).exists():
            logger.error(f"Input file not found: {path}")
            sys.exit(1)

    # Load configuration
    config_path = Path(args.config)
    if config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
    else:
        logger.warning(f"Config file not found: {config_path}, using defaults")
        config_path = None

    try:
        config = load_consensus_config(config_path)
    except InvalidConfiguration as e:
        for error in e.errors:
            logger.error(f"Config error: {error}")
        sys.exit(1)

    try:
        outputs = run_pipeline(args, config)

        logger.info("\n" + "=" * 80)
        logger.info("✓ SUCCESS: Consensus run completed")
        for name, path in outputs.items():
            logger.info(f"  {name}: {path}")
        logger.info("=" * 80)

        sys.exit(0)

    except KeyboardInterrupt:
        logger.warning("\nRun interrupted by user")
        sys.exit(1)

    except EngineError as e:
        logger.error(f"\n✗ ERROR: {type(e).__name__}: {e}")
        sys.exit(1)

    except Exception as e:
        logger.error(f"\n✗ ERROR: Consensus run failed with exception:")
        logger.error(f"  {type(e).__name__}: {str(e)}")
        logger.exception("Full traceback:")
        sys.exit(1)


if __name__ == '__main__':
    main()
