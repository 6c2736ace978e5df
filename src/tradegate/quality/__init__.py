"""Deterministic scoring and the quality gate.

Everything in this package is synchronous, pure and free of shared
mutable state, so it can be called concurrently from any number of
request-handling threads.
"""

from .coverage import clamp_confidence, compute_data_coverage, coverage_ceiling
from .deterministic import score_trade_context
from .gate import ConsensusView, consensus_view, run_quality_gate
from .models import (
    ConditionalRecommendation,
    CoverageBadge,
    DataCoverageResult,
    DeterministicIntelligence,
    QualityGateResult,
    QualityViolation,
)

__all__ = [
    "ConditionalRecommendation",
    "ConsensusView",
    "CoverageBadge",
    "DataCoverageResult",
    "DeterministicIntelligence",
    "QualityGateResult",
    "QualityViolation",
    "clamp_confidence",
    "compute_data_coverage",
    "consensus_view",
    "coverage_ceiling",
    "run_quality_gate",
    "score_trade_context",
]
