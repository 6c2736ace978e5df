"""Pydantic models for the trade decision context.

The context is assembled upstream from league, roster, valuation and
freshness data and is the single shared ground truth for one trade
evaluation.  Models are frozen so that neither the consensus merger nor
the quality gate can mutate it.  Field names are snake_case in Python
and camelCase on the wire, matching the JSON emitted by the context
assembler.  Optional upstream sections default to empty values so that
downstream code only needs to null-coalesce, never re-validate.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..config import SUPPORTED_CONTEXT_MAJOR

logger = logging.getLogger(__name__)

ContenderTier = Literal["champion", "contender", "middle", "rebuild"]
AgeBucket = Literal["prime", "ascending", "declining", "cliff", "unknown"]
ReinjuryRisk = Literal["low", "moderate", "high", "unknown"]
FreshnessGrade = Literal["fresh", "aging", "stale", "expired", "unavailable"]
FavoredSide = Literal["A", "B", "Even"]

# Grades at which a source no longer counts as trustworthy.
UNRELIABLE_GRADES = frozenset({"stale", "expired", "unavailable"})


class ContextModel(BaseModel):
    """Base for all context records: frozen, camelCase aliases."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class LeagueConfig(ContextModel):
    league_id: Optional[str] = None
    name: str = ""
    platform: Optional[str] = None
    scoring_type: str = "ppr"
    num_teams: int = Field(default=12, ge=2)
    is_sf: bool = Field(default=False, alias="isSF")
    is_tep: bool = Field(default=False, alias="isTEP")
    tep_bonus: float = 0.0
    roster_positions: List[str] = Field(default_factory=list)
    starter_slots: int = 0
    bench_slots: int = 0
    taxi_slots: int = 0
    scoring_settings: Dict[str, float] = Field(default_factory=dict)

    @property
    def roster_size(self) -> int:
        """Total roster slots including the taxi squad."""
        return self.starter_slots + self.bench_slots + self.taxi_slots


class ValuationSource(ContextModel):
    source: str
    valued_at: str


class AdpInfo(ContextModel):
    rank: float
    positional_rank: Optional[str] = None
    value: Optional[float] = None
    fetched_at: Optional[str] = None


class AssetValuation(ContextModel):
    """A single player, draft pick or FAAB amount changing hands."""

    name: str
    type: Literal["PLAYER", "PICK", "FAAB"] = "PLAYER"
    position: str = ""
    age: Optional[float] = None
    team: Optional[str] = None
    market_value: float = 0.0
    impact_value: float = 0.0
    vorp_value: float = 0.0
    volatility: float = 0.0
    valuation_source: Optional[ValuationSource] = None
    adp: Optional[AdpInfo] = None
    is_cornerstone: bool = False
    cornerstone_reason: str = ""


class InjuryStatus(ContextModel):
    status: str = "Healthy"
    type: Optional[str] = None
    description: Optional[str] = None
    report_date: Optional[str] = None
    recency_days: Optional[float] = None
    missed_games: Optional[int] = None
    reinjury_risk: ReinjuryRisk = "unknown"

    @property
    def is_active(self) -> bool:
        return self.status in ("Healthy", "Active")


class AnalyticsGrade(ContextModel):
    athletic_grade: Optional[float] = None
    college_production_grade: Optional[float] = None
    weekly_volatility: Optional[float] = None
    breakout_age: Optional[float] = None
    comparable_players: Optional[str] = None


class PlayerRiskMarker(ContextModel):
    player_name: str
    age_bucket: AgeBucket = "unknown"
    current_age: Optional[float] = None
    injury_status: Optional[InjuryStatus] = None
    analytics: Optional[AnalyticsGrade] = None


class RosterComposition(ContextModel):
    size: int = 0
    pick_count: int = 0
    young_asset_count: int = 0
    starter_strength_index: float = 0.0


class ManagerPreferences(ContextModel):
    sample_size: int = 0
    starter_premium: float = 0.0
    position_bias: Dict[str, float] = Field(default_factory=dict)
    risk_tolerance: float = 0.0
    consolidation_bias: float = 0.0
    overpay_threshold: float = 0.0
    fairness_tolerance: float = 0.0
    computed_at: Optional[str] = None


class TeamSnapshot(ContextModel):
    """One side of the trade: what it sends plus its roster situation."""

    team_id: str = ""
    team_name: str = ""
    assets: List[AssetValuation] = Field(default_factory=list)
    total_value: float = 0.0
    risk_markers: List[PlayerRiskMarker] = Field(default_factory=list)
    roster_composition: RosterComposition = Field(default_factory=RosterComposition)
    needs: List[str] = Field(default_factory=list)
    surplus: List[str] = Field(default_factory=list)
    contender_tier: ContenderTier = "middle"
    manager_preferences: Optional[ManagerPreferences] = None

    @property
    def is_contender(self) -> bool:
        return self.contender_tier in ("champion", "contender")

    @property
    def is_rebuilder(self) -> bool:
        return self.contender_tier == "rebuild"


class CompetitorSnapshot(ContextModel):
    team_id: str = ""
    team_name: str = ""
    contender_tier: ContenderTier = "middle"
    starter_strength_index: float = 0.0
    needs: List[str] = Field(default_factory=list)
    surplus: List[str] = Field(default_factory=list)


class ValueDelta(ContextModel):
    absolute_diff: float = 0.0
    percentage_diff: float = 0.0
    favored_side: FavoredSide = "Even"


class TradeHistoryStats(ContextModel):
    total_trades: int = 0
    recent_trades: int = 0
    recency_window_days: int = 0
    avg_value_delta: float = 0.0
    league_trade_frequency: Optional[Literal["low", "medium", "high"]] = None
    computed_at: Optional[str] = None


class MissingDataFlags(ContextModel):
    valuations_missing: List[str] = Field(default_factory=list)
    adp_missing: List[str] = Field(default_factory=list)
    analytics_missing: List[str] = Field(default_factory=list)
    injury_data_stale: bool = False
    valuation_data_stale: bool = False
    adp_data_stale: bool = False
    analytics_data_stale: bool = False
    trade_history_stale: bool = False
    manager_tendencies_unavailable: List[str] = Field(default_factory=list)
    competitor_data_unavailable: bool = False
    trade_history_insufficient: bool = False

    @property
    def missing_field_count(self) -> int:
        return len(self.valuations_missing) + len(self.adp_missing) + len(self.analytics_missing)

    @property
    def stale_source_count(self) -> int:
        """Number of the five tracked sources currently flagged stale."""
        return sum(
            [
                self.injury_data_stale,
                self.valuation_data_stale,
                self.adp_data_stale,
                self.analytics_data_stale,
                self.trade_history_stale,
            ]
        )


class DataQuality(ContextModel):
    assets_covered: int = 0
    assets_total: int = 0
    coverage_percent: float = 0.0
    adp_hit_rate: float = 0.0
    injury_data_available: bool = False
    analytics_available: bool = False
    warnings: List[str] = Field(default_factory=list)


class DataSources(ContextModel):
    valuation_fetched_at: Optional[str] = None
    adp_fetched_at: Optional[str] = None
    injury_fetched_at: Optional[str] = None
    analytics_fetched_at: Optional[str] = None
    rosters_fetched_at: Optional[str] = None
    trade_history_fetched_at: Optional[str] = None


class SingleSourceFreshness(ContextModel):
    source: str
    fetched_at: Optional[str] = None
    age_ms: float = -1
    age_label: str = "unavailable"
    grade: FreshnessGrade = "unavailable"
    confidence_penalty: float = 0.0

    @property
    def is_unreliable(self) -> bool:
        return self.grade in UNRELIABLE_GRADES


class SourceFreshness(ContextModel):
    """Per-source freshness grades computed by the context assembler."""

    rosters: SingleSourceFreshness
    valuations: SingleSourceFreshness
    injuries: SingleSourceFreshness
    adp: SingleSourceFreshness
    analytics: SingleSourceFreshness
    trade_history: SingleSourceFreshness
    composite_score: float = Field(default=0.0, ge=0, le=100)
    composite_grade: FreshnessGrade = "unavailable"
    total_confidence_penalty: float = 0.0
    warnings: List[str] = Field(default_factory=list)


class TradeDecisionContext(ContextModel):
    """Versioned, immutable snapshot of both sides of a proposed trade."""

    version: str
    context_id: str
    assembled_at: str
    league_config: LeagueConfig = Field(default_factory=LeagueConfig)
    side_a: TeamSnapshot
    side_b: TeamSnapshot
    competitors: List[CompetitorSnapshot] = Field(default_factory=list)
    value_delta: ValueDelta = Field(default_factory=ValueDelta)
    trade_history_stats: TradeHistoryStats = Field(default_factory=TradeHistoryStats)
    missing_data: MissingDataFlags = Field(default_factory=MissingDataFlags)
    data_quality: DataQuality = Field(default_factory=DataQuality)
    data_sources: DataSources = Field(default_factory=DataSources)
    source_freshness: Optional[SourceFreshness] = None

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not is_supported_version(value):
            raise ValueError(
                f"Unsupported trade decision context version '{value}'; "
                f"this engine understands major version {SUPPORTED_CONTEXT_MAJOR}"
            )
        return value

    @property
    def sides(self) -> tuple[TeamSnapshot, TeamSnapshot]:
        return (self.side_a, self.side_b)

    @property
    def all_assets(self) -> List[AssetValuation]:
        return [*self.side_a.assets, *self.side_b.assets]

    @property
    def all_risk_markers(self) -> List[PlayerRiskMarker]:
        return [*self.side_a.risk_markers, *self.side_b.risk_markers]


def is_supported_version(version: str) -> bool:
    """Return True if ``version`` is a semantic version this engine accepts."""
    parts = str(version).strip().split(".")
    if len(parts) != 3:
        return False
    try:
        major, _minor, _patch = (int(p) for p in parts)
    except ValueError:
        return False
    return major == SUPPORTED_CONTEXT_MAJOR


def load_context(payload: Any) -> Optional[TradeDecisionContext]:
    """Parse a context payload, returning ``None`` if it cannot be trusted.

    Unknown future versions and malformed documents are rejected rather
    than interpreted on a best-effort basis.

    Args:
        payload: A decoded JSON object produced by the context assembler.

    Returns:
        The parsed :class:`TradeDecisionContext` or ``None``.
    """
    if not isinstance(payload, dict):
        logger.warning("Rejecting trade context: expected a JSON object, got %s", type(payload).__name__)
        return None
    try:
        return TradeDecisionContext.model_validate(payload)
    except ValidationError as exc:
        logger.warning(
            "Rejecting trade context %s: %d validation error(s)",
            payload.get("contextId", "<unknown>"),
            exc.error_count(),
        )
        return None
