"""Pydantic models for the quality gate output.

The :class:`QualityGateResult` is the only object the engine exposes to
its callers.  Violations are plain data: nothing in the gate raises, and
a ``hard`` severity is the only thing that flips ``passed`` to false.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field

from ..llm.models import WireModel

Severity = Literal["hard", "soft"]
CoverageTier = Literal["FULL", "PARTIAL", "LIMITED", "MINIMAL"]


class QualityViolation(WireModel):
    """A single rule breach detected by the gate."""

    rule: str
    severity: Severity
    detail: str
    adjustment: Optional[str] = None


class ConditionalRecommendation(WireModel):
    is_conditional: bool = False
    reasons: List[str] = Field(default_factory=list)
    label: str = "Standard"


class CoverageBadge(WireModel):
    label: str
    tone: str


class DataCoverageResult(WireModel):
    """How complete the context's data is, as a tier with a signed adjustment."""

    tier: CoverageTier
    score: int = Field(ge=0, le=100)
    confidence_adjustment: int
    badge: CoverageBadge


class DeterministicIntelligence(WireModel):
    """Confidence, reasons, warnings and counters derived only from the context."""

    confidence: int = Field(ge=0, le=100)
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    counters: List[str] = Field(default_factory=list)


class QualityGateResult(WireModel):
    """Calibrated, filtered recommendation returned to callers."""

    passed: bool
    violations: List[QualityViolation] = Field(default_factory=list)
    adjusted_confidence: int = Field(ge=0, le=100)
    deterministic_confidence: int
    original_llm_confidence: Optional[float] = Field(default=None, alias="originalLLMConfidence")
    filtered_reasons: List[str] = Field(default_factory=list)
    filtered_counters: List[str] = Field(default_factory=list)
    filtered_warnings: List[str] = Field(default_factory=list)
    deterministic_intelligence: DeterministicIntelligence
    conditional_recommendation: ConditionalRecommendation = Field(default_factory=ConditionalRecommendation)
    data_coverage: DataCoverageResult

    @property
    def hard_violations(self) -> List[QualityViolation]:
        return [v for v in self.violations if v.severity == "hard"]

    @property
    def soft_violations(self) -> List[QualityViolation]:
        return [v for v in self.violations if v.severity == "soft"]

    def rules(self) -> List[str]:
        """Rule names of all violations, in detection order."""
        return [v.rule for v in self.violations]
