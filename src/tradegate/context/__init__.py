"""Trade decision context consumed by the consensus and quality gate engine.

The context is produced by an upstream assembler; this package only
defines its schema and a loader that rejects untrusted documents.
"""

from .models import (
    AssetValuation,
    CompetitorSnapshot,
    DataQuality,
    DataSources,
    InjuryStatus,
    LeagueConfig,
    MissingDataFlags,
    PlayerRiskMarker,
    RosterComposition,
    SingleSourceFreshness,
    SourceFreshness,
    TeamSnapshot,
    TradeDecisionContext,
    TradeHistoryStats,
    ValueDelta,
    is_supported_version,
    load_context,
)

__all__ = [
    "AssetValuation",
    "CompetitorSnapshot",
    "DataQuality",
    "DataSources",
    "InjuryStatus",
    "LeagueConfig",
    "MissingDataFlags",
    "PlayerRiskMarker",
    "RosterComposition",
    "SingleSourceFreshness",
    "SourceFreshness",
    "TeamSnapshot",
    "TradeDecisionContext",
    "TradeHistoryStats",
    "ValueDelta",
    "is_supported_version",
    "load_context",
]
