"""
Quality score and recommended action for canonical silence segments.

Transparent rubric, not a learned model:
- base: consensus_confidence * 50
- method diversity: +20 when more than one detection method agrees
- duration: +15 for 0.5-2.0s, +10 above 2.0s, nothing for shorter events
  (very short events are more likely noise)
- category: +10 for a speech gap, +5 for end-of-clip silence
- clamped to 0-100

Score interpretation:
- 80-100: Corroborated, well-sized cut candidate
- 50-79: Plausible, worth a look
- 0-49: Weak evidence

Recommended action:
- consensus > auto_apply_threshold (0.9) -> auto_apply
- consensus > review_threshold (0.7) -> review_apply
- otherwise -> manual_review
"""

import logging
from dataclasses import replace
from typing import List, Sequence

import numpy as np

from detection.segments import CanonicalSegment, RecommendedAction, SegmentCategory
from fusion.consensus_fusion import get_confidence_level
from utils.config_loader import ConsensusConfig

logger = logging.getLogger(__name__)


CATEGORY_BONUSES = {
    SegmentCategory.SPEECH_GAP.value: 10,
    SegmentCategory.SILENCE_END.value: 5,
}


def _duration_bonus(duration: float) -> float:
    if 0.5 <= duration <= 2.0:
        return 15.0
    if duration > 2.0:
        return 10.0
    return 0.0


def compute_quality_score(segment: CanonicalSegment) -> int:
    """
    Compute the 0-100 quality score of a fused segment.

    The category bonus is the largest bonus among all contributing
    categories, so a transcript speech gap corroborated by an amplitude
    region still earns the speech-gap credit.
    """
    confidence = segment.consensus_confidence or 0.0

    score = confidence * 50.0
    if segment.is_multi_source:
        score += 20.0
    score += _duration_bonus(segment.duration)

    categories = segment.categories or (segment.category,)
    score += max(CATEGORY_BONUSES.get(c, 0) for c in categories)

    return int(round(float(np.clip(score, 0.0, 100.0))))


def recommend_action(
    consensus_confidence: float,
    quality_score: int = 100,
    auto_apply_threshold: float = 0.9,
    review_threshold: float = 0.7,
    auto_apply_min_quality: int = 0
) -> RecommendedAction:
    """Map confidence (and optionally quality) to an action."""
    if consensus_confidence > auto_apply_threshold and quality_score >= auto_apply_min_quality:
        return RecommendedAction.AUTO_APPLY
    if consensus_confidence > review_threshold:
        return RecommendedAction.REVIEW_APPLY
    return RecommendedAction.MANUAL_REVIEW


def score_segments(
    segments: Sequence[CanonicalSegment],
    config: ConsensusConfig
) -> List[CanonicalSegment]:
    """
    Attach quality score, confidence level and recommended action.

    Segments are independent of each other here; order is preserved.

    Args:
        segments: Fused canonical segments
        config: Engine configuration (action thresholds)

    Returns:
        New scored segments
    """
    scored = []
    for seg in segments:
        confidence = seg.consensus_confidence or 0.0
        quality = compute_quality_score(seg)
        scored.append(replace(
            seg,
            quality_score=quality,
            confidence_level=get_confidence_level(confidence),
            recommended_action=recommend_action(
                confidence,
                quality,
                auto_apply_threshold=config.auto_apply_threshold,
                review_threshold=config.review_threshold,
                auto_apply_min_quality=config.auto_apply_min_quality,
            ),
        ))

    if scored:
        actions = {}
        for seg in scored:
            actions[seg.recommended_action.value] = actions.get(seg.recommended_action.value, 0) + 1
        logger.info(
            f"Scored {len(scored)} segments: mean quality "
            f"{np.mean([s.quality_score for s in scored]):.1f}, actions {actions}"
        )

    return scored
