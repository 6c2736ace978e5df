"""Shared fixtures for the TradeGate test suite.

Trade contexts are built from a realistic camelCase payload (the shape
the context assembler emits) so that tests exercise the same aliases as
production input.  The ``make_context`` fixture returns a builder that
deep-merges overrides into the default payload.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict

import pytest

from tradegate.context.models import TradeDecisionContext


def _asset(name: str, position: str, age: float, value: float, **extra: Any) -> Dict[str, Any]:
    asset = {
        "name": name,
        "type": "PLAYER",
        "position": position,
        "age": age,
        "marketValue": value,
        "impactValue": value * 0.8,
        "vorpValue": value * 0.5,
        "volatility": 0.1,
    }
    asset.update(extra)
    return asset


def base_payload() -> Dict[str, Any]:
    """A well-covered 12-team PPR trade: Justin Jefferson for Bijan Robinson."""
    return {
        "version": "1.0.0",
        "contextId": "ctx-test-1",
        "assembledAt": "2026-01-01T00:00:00Z",
        "leagueConfig": {
            "leagueId": "lg-1",
            "name": "Test League",
            "platform": "sleeper",
            "scoringType": "ppr",
            "numTeams": 12,
            "isSF": False,
            "isTEP": False,
            "tepBonus": 0,
            "rosterPositions": ["QB", "RB", "RB", "WR", "WR", "TE", "FLEX"],
            "starterSlots": 10,
            "benchSlots": 15,
            "taxiSlots": 0,
        },
        "sideA": {
            "teamId": "team-a",
            "teamName": "Alpha",
            "assets": [_asset("Justin Jefferson", "WR", 25, 9000)],
            "totalValue": 9000,
            "riskMarkers": [],
            "rosterComposition": {"size": 25, "pickCount": 4, "youngAssetCount": 6, "starterStrengthIndex": 70},
            "needs": ["RB"],
            "surplus": ["WR"],
            "contenderTier": "middle",
            "managerPreferences": {"sampleSize": 6},
        },
        "sideB": {
            "teamId": "team-b",
            "teamName": "Bravo",
            "assets": [_asset("Bijan Robinson", "RB", 22, 8000)],
            "totalValue": 8000,
            "riskMarkers": [],
            "rosterComposition": {"size": 25, "pickCount": 3, "youngAssetCount": 8, "starterStrengthIndex": 65},
            "needs": ["WR"],
            "surplus": ["RB"],
            "contenderTier": "middle",
            "managerPreferences": {"sampleSize": 4},
        },
        "competitors": [{"teamId": "team-c", "teamName": "Charlie", "contenderTier": "contender"}],
        "valueDelta": {"absoluteDiff": 1000, "percentageDiff": 12.5, "favoredSide": "A"},
        "tradeHistoryStats": {"totalTrades": 14, "recentTrades": 5, "recencyWindowDays": 90},
        "missingData": {},
        "dataQuality": {
            "assetsCovered": 2,
            "assetsTotal": 2,
            "coveragePercent": 100,
            "adpHitRate": 1.0,
            "injuryDataAvailable": True,
            "analyticsAvailable": True,
        },
        "dataSources": {},
    }


def freshness_payload(**grades: str) -> Dict[str, Any]:
    """A sourceFreshness block with every source fresh unless overridden."""
    sources = ["rosters", "valuations", "injuries", "adp", "analytics", "tradeHistory"]
    block: Dict[str, Any] = {
        key: {"source": key, "grade": grades.get(key, "fresh"), "ageLabel": "1h", "ageMs": 3_600_000}
        for key in sources
    }
    block.update({"compositeScore": 90, "compositeGrade": "fresh", "totalConfidencePenalty": 0, "warnings": []})
    return block


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


ContextFactory = Callable[..., TradeDecisionContext]


@pytest.fixture
def make_context() -> ContextFactory:
    """Return a builder: ``make_context(valueDelta={...}, ...)``."""

    def _build(**overrides: Any) -> TradeDecisionContext:
        return TradeDecisionContext.model_validate(_deep_merge(base_payload(), overrides))

    return _build


@pytest.fixture
def context(make_context: ContextFactory) -> TradeDecisionContext:
    return make_context()


@pytest.fixture
def freshness() -> Callable[..., Dict[str, Any]]:
    """Return :func:`freshness_payload` for building ``sourceFreshness`` overrides."""
    return freshness_payload


@pytest.fixture
def asset() -> Callable[..., Dict[str, Any]]:
    """Return a builder for camelCase asset payloads."""
    return _asset
