"""Confidence ceilings and data coverage tiers.

Lookup tables mapping how complete a trade context is to the highest
confidence the engine is allowed to express.  All tables are immutable
module constants, so the functions here are safe to call from many
threads at once.
"""

from __future__ import annotations

import math
from typing import Final, Optional, Tuple

from ..config import CONFIDENCE_CAP, CONFIDENCE_FLOOR
from ..context.models import MissingDataFlags, DataQuality, SourceFreshness
from .models import CoverageBadge, DataCoverageResult

# (coverage percent upper bound, confidence ceiling); above the last bound
# the ceiling is 100.
CONFIDENCE_CEILING_BY_COVERAGE: Final[Tuple[Tuple[float, int], ...]] = (
    (30, 35),
    (50, 55),
    (70, 75),
    (85, 90),
)

MISSING_FIELD_PENALTY: Final[int] = 5
MISSING_FIELD_PENALTY_MAX: Final[int] = 25
MISSING_DATA_BASE_CEILING: Final[int] = 80
MISSING_DATA_MIN_CEILING: Final[int] = 55

STALE_INJURY_CEILING: Final[int] = 70
STALE_VALUATION_CEILING: Final[int] = 65
STALE_ADP_CEILING: Final[int] = 75
STALE_TRADE_HISTORY_CEILING: Final[int] = 75
MULTI_STALE_CEILING: Final[int] = 50
MULTI_STALE_THRESHOLD: Final[int] = 3

# (minimum score, tier, confidence adjustment, badge label, badge tone)
COVERAGE_TIERS: Final[Tuple[Tuple[int, str, int, str, str], ...]] = (
    (80, "FULL", 0, "Full data coverage", "green"),
    (55, "PARTIAL", -3, "Partial data coverage", "yellow"),
    (30, "LIMITED", -6, "Limited data coverage", "orange"),
    (0, "MINIMAL", -10, "Minimal data coverage", "red"),
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity."""
    return int(math.floor(value + 0.5))


def clamp_confidence(value: float) -> int:
    """Round and clamp a confidence to the user-facing bounds."""
    return max(CONFIDENCE_FLOOR, min(CONFIDENCE_CAP, round_half_up(value)))


def coverage_ceiling(coverage_percent: float) -> int:
    for threshold, cap in CONFIDENCE_CEILING_BY_COVERAGE:
        if coverage_percent <= threshold:
            return cap
    return 100


def missing_data_ceiling(missing_count: int) -> Optional[int]:
    """Ceiling implied by missing valuation/ADP/analytics fields, if any."""
    if missing_count <= 0:
        return None
    penalty = min(missing_count * MISSING_FIELD_PENALTY, MISSING_FIELD_PENALTY_MAX)
    return max(MISSING_DATA_MIN_CEILING, MISSING_DATA_BASE_CEILING - penalty)


def _freshness_score(missing: MissingDataFlags, freshness: Optional[SourceFreshness]) -> float:
    if freshness is not None:
        return freshness.composite_score
    return max(0.0, 100.0 - 20.0 * missing.stale_source_count)


def compute_data_coverage(
    quality: DataQuality,
    missing: MissingDataFlags,
    freshness: Optional[SourceFreshness] = None,
) -> DataCoverageResult:
    """Blend coverage, ADP hit rate and freshness into a coverage tier.

    The score weights asset coverage at 60%, ADP hit rate at 20% and
    source freshness (the assembler's composite score, or 20 points lost
    per stale source when no grades are present) at 20%.
    """
    coverage = max(0.0, min(100.0, quality.coverage_percent))
    adp = max(0.0, min(1.0, quality.adp_hit_rate)) * 100.0
    score = round_half_up(0.6 * coverage + 0.2 * adp + 0.2 * _freshness_score(missing, freshness))
    score = max(0, min(100, score))
    for minimum, tier, adjustment, label, tone in COVERAGE_TIERS:
        if score >= minimum:
            return DataCoverageResult(
                tier=tier,
                score=score,
                confidence_adjustment=adjustment,
                badge=CoverageBadge(label=label, tone=tone),
            )
    raise AssertionError("coverage tiers must end at zero")
