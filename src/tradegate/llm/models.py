"""Pydantic models for the provider analysis layer.

Providers return untrusted JSON that is turned into a
:class:`TradeAnalysis` (or, for peer reviews, a
:class:`PeerReviewVerdict`) only by the schema validator.  Each call is
recorded as a provider result, and the merger combines the results into
a single consensus record.  All models are frozen; wire names are
camelCase to match the provider contract.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


Winner = Literal[
    "Team A",
    "Team B",
    "Even",
    "Slight edge to Team A",
    "Slight edge to Team B",
]

# Peer-review consensus may additionally report an explicit disagreement.
ConsensusVerdict = Literal[
    "Team A",
    "Team B",
    "Even",
    "Slight edge to Team A",
    "Slight edge to Team B",
    "Disagreement",
]

WINNER_VALUES: tuple[str, ...] = (
    "Team A",
    "Team B",
    "Even",
    "Slight edge to Team A",
    "Slight edge to Team B",
)

ConsensusMethod = Literal["single", "weighted_merge", "primary_fallback"]
PeerReviewMethod = Literal["agreement", "disagreement", "single_provider", "degraded_fallback"]


def verdict_side(verdict: Optional[str]) -> str:
    """Map a verdict to the side it favours: ``A``, ``B``, ``Even`` or ``Disagreement``."""
    if verdict in ("Team A", "Slight edge to Team A"):
        return "A"
    if verdict in ("Team B", "Slight edge to Team B"):
        return "B"
    if verdict == "Disagreement":
        return "Disagreement"
    return "Even"


def _non_blank(items: List[str], field: str) -> List[str]:
    kept = [item for item in items if item.strip()]
    if not kept:
        raise ValueError(f"{field} must contain at least one non-blank item")
    return kept


class WireModel(BaseModel):
    """Base for provider-layer and gate records: frozen, camelCase aliases."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ParseStage(str, Enum):
    """Which validation attempt produced an analysis."""

    STRICT = "strict"
    COERCED = "coerced"
    SALVAGED = "salvaged"
    REJECTED = "rejected"


class TradeAnalysis(WireModel):
    """A single provider's opinion of the trade."""

    winner: Winner
    value_delta: str
    factors: List[str] = Field(min_length=1)
    confidence: float = Field(ge=0, le=100)
    dynasty_verdict: str
    veto_risk: Optional[str] = None
    aging_concerns: Optional[List[str]] = None
    recommendations: Optional[List[str]] = None
    you_give_adjusted: Optional[str] = None
    you_want_added: Optional[str] = None
    reason: Optional[str] = None

    @field_validator("factors")
    @classmethod
    def _require_factor_text(cls, value: List[str]) -> List[str]:
        return _non_blank(value, "factors")

    @field_validator("aging_concerns", "recommendations")
    @classmethod
    def _drop_blank_notes(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return None if value is None else [item for item in value if item.strip()]


class PeerReviewVerdict(WireModel):
    """A provider's structured review of the deterministic fact layer."""

    model_config = ConfigDict(extra="forbid")

    verdict: Winner
    confidence: float = Field(ge=0, le=100)
    reasons: List[str] = Field(min_length=1)
    counters: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @field_validator("reasons")
    @classmethod
    def _require_reason_text(cls, value: List[str]) -> List[str]:
        return _non_blank(value, "reasons")

    @field_validator("counters", "warnings")
    @classmethod
    def _drop_blank_notes(cls, value: List[str]) -> List[str]:
        return [item for item in value if item.strip()]


class ProviderResult(WireModel):
    """Outcome of one provider call for a trade analysis.

    ``analysis`` is ``None`` when the call failed or nothing usable could
    be parsed; ``error`` then explains why.  ``confidence_score`` is the
    deterministic quality score used by the merger to weight sources.
    """

    provider: str
    analysis: Optional[TradeAnalysis] = None
    raw: Any = None
    latency_ms: int = 0
    error: Optional[str] = None
    schema_valid: bool = False
    confidence_score: float = Field(default=0.0, ge=0, le=100)
    parse_stage: ParseStage = ParseStage.REJECTED


class PeerReviewProviderResult(WireModel):
    """Outcome of one provider call for a peer review."""

    provider: str
    verdict: Optional[PeerReviewVerdict] = None
    raw: Any = None
    latency_ms: int = 0
    error: Optional[str] = None
    schema_valid: bool = False
    parse_stage: ParseStage = ParseStage.REJECTED


class ConsensusMeta(WireModel):
    consensus_method: ConsensusMethod
    primary_provider: str
    providers: List[ProviderResult] = Field(default_factory=list)
    total_latency_ms: int = 0
    contradictions: List[str] = Field(default_factory=list)
    contradiction_detail: Optional[str] = None


class ConsensusAnalysis(WireModel):
    """The merged analysis plus how it was derived."""

    analysis: TradeAnalysis
    meta: ConsensusMeta

    @property
    def winner(self) -> str:
        return self.analysis.winner

    @property
    def confidence(self) -> float:
        return self.analysis.confidence

    @property
    def reasons(self) -> List[str]:
        return list(self.analysis.factors)

    @property
    def counters(self) -> List[str]:
        return list(self.analysis.recommendations or [])

    @property
    def warnings(self) -> List[str]:
        return list(self.analysis.aging_concerns or [])


class PeerReviewMeta(WireModel):
    providers: List[PeerReviewProviderResult] = Field(default_factory=list)
    consensus_method: PeerReviewMethod
    total_latency_ms: int = 0
    confidence_adjustment: str = "none"
    disagreement_codes: List[str] = Field(default_factory=list)
    disagreement_details: Optional[str] = None


class PeerReviewConsensus(WireModel):
    """Merged peer review across providers."""

    verdict: ConsensusVerdict
    confidence: float
    reasons: List[str] = Field(default_factory=list)
    counters: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    meta: PeerReviewMeta
