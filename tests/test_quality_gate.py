"""Tests for the quality gate.

The gate is exercised with hand-built consensus records so each check
can be triggered in isolation.  Contexts come from the ``make_context``
fixture in ``conftest.py``.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import pytest

from tradegate.context.models import TradeDecisionContext
from tradegate.llm.models import (
    ConsensusAnalysis,
    ConsensusMeta,
    PeerReviewConsensus,
    PeerReviewMeta,
    TradeAnalysis,
)
from tradegate.quality.gate import consensus_view, run_quality_gate


def _consensus(
    winner: str = "Team A",
    confidence: float = 75,
    factors: Sequence[str] = ("Justin Jefferson adds receiving volume",),
    recommendations: Optional[List[str]] = None,
    aging_concerns: Optional[List[str]] = None,
    method: str = "single",
    contradictions: Sequence[str] = (),
) -> ConsensusAnalysis:
    analysis = TradeAnalysis.model_validate(
        {
            "winner": winner,
            "valueDelta": "about 12% in favour of side A",
            "factors": list(factors),
            "confidence": confidence,
            "dynastyVerdict": "Side A wins the long game",
            "recommendations": recommendations,
            "agingConcerns": aging_concerns,
        }
    )
    meta = ConsensusMeta(
        consensus_method=method,
        primary_provider="openai",
        contradictions=list(contradictions),
        contradiction_detail="; ".join(contradictions) or None,
    )
    return ConsensusAnalysis(analysis=analysis, meta=meta)


def _rules(result) -> List[str]:
    return [v.rule for v in result.violations]


def test_clean_agreement_passes(context: TradeDecisionContext) -> None:
    result = run_quality_gate(_consensus(confidence=75), context)
    assert result.passed
    assert result.violations == []
    # No bonus when the model is less confident than the data.
    assert result.adjusted_confidence == 85
    assert result.deterministic_confidence == 85
    assert result.original_llm_confidence == 75
    assert "Justin Jefferson adds receiving volume" in result.filtered_reasons
    assert result.conditional_recommendation.is_conditional is False
    assert result.conditional_recommendation.label == "Standard"
    assert result.data_coverage.tier == "FULL"


def test_agreement_bonus_respects_upper_bound(context: TradeDecisionContext) -> None:
    result = run_quality_gate(_consensus(confidence=100), context)
    assert result.adjusted_confidence == 90


def test_phantom_reference_is_filtered(make_context) -> None:
    ctx = make_context(sideB={"assets": [], "totalValue": 0})
    consensus = _consensus(
        factors=["Tyreek Hill looks underrated here", "Justin Jefferson adds receiving volume"]
    )
    result = run_quality_gate(consensus, ctx)
    assert "Tyreek Hill looks underrated here" not in result.filtered_reasons
    assert "Justin Jefferson adds receiving volume" in result.filtered_reasons
    assert "phantom_asset_reference" in _rules(result)
    # Phantom violations do not produce QualityGate warning lines.
    assert not any("Tyreek Hill" in w for w in result.filtered_warnings)


def test_last_name_reference_is_known(context: TradeDecisionContext) -> None:
    result = run_quality_gate(_consensus(factors=["Star Jefferson is a strong anchor"]), context)
    assert "phantom_asset_reference" not in _rules(result)


def test_all_reasons_phantom_is_hard(context: TradeDecisionContext) -> None:
    result = run_quality_gate(_consensus(factors=["Tyreek Hill looks underrated here"]), context)
    assert "all_reasons_filtered" in _rules(result)
    assert result.passed is False
    # Deterministic reasons are still returned.
    assert result.filtered_reasons[0].startswith("Side A has a 12.5% value edge")


def test_superflex_counter_in_non_sf_league(context: TradeDecisionContext) -> None:
    counter = "Ask for a superflex QB upgrade instead"
    result = run_quality_gate(_consensus(recommendations=[counter]), context)
    assert "counter_sf_in_non_sf" in _rules(result)
    assert counter not in result.filtered_counters
    assert result.passed


def test_superflex_counter_allowed_in_sf_league(make_context) -> None:
    ctx = make_context(leagueConfig={"isSF": True})
    counter = "Ask for a superflex QB upgrade instead"
    result = run_quality_gate(_consensus(recommendations=[counter]), ctx)
    assert "counter_sf_in_non_sf" not in _rules(result)
    assert counter in result.filtered_counters


@pytest.mark.parametrize(
    "counter, rule",
    [
        ("Only makes sense in a 1qb format", "counter_1qb_in_sf"),
        ("Stash the rookie on your taxi squad", "counter_taxi_in_no_taxi"),
        ("In a 14 team league this is fine", "counter_team_count_mismatch"),
        ("With a 40 man roster depth matters less", "counter_roster_size_mismatch"),
    ],
)
def test_counter_league_rules(make_context, counter: str, rule: str) -> None:
    ctx = make_context(leagueConfig={"isSF": True})
    result = run_quality_gate(_consensus(recommendations=[counter]), ctx)
    assert rule in _rules(result)
    assert counter not in result.filtered_counters


def test_roster_size_within_tolerance_is_not_flagged(context: TradeDecisionContext) -> None:
    result = run_quality_gate(_consensus(recommendations=["With a 28 man roster depth matters"]), context)
    assert "counter_roster_size_mismatch" not in _rules(result)


def test_reason_level_league_rules(context: TradeDecisionContext) -> None:
    consensus = _consensus(
        factors=[
            "Justin Jefferson carries superflex value",
            "Tight ends get a boost from te premium scoring",
            "Under standard scoring this is closer",
        ]
    )
    rules = _rules(run_quality_gate(consensus, context))
    assert "sf_reference_in_non_sf" in rules
    assert "tep_reference_in_non_tep" in rules
    assert "scoring_mismatch" in rules


def test_large_delta_contradiction_is_hard(make_context, caplog: pytest.LogCaptureFixture) -> None:
    ctx = make_context(valueDelta={"percentageDiff": 28, "favoredSide": "A"})
    with caplog.at_level("INFO", logger="tradegate.quality.gate"):
        result = run_quality_gate(_consensus(winner="Team B", confidence=70), ctx)
    hard = result.hard_violations
    assert len(hard) + len(result.soft_violations) == len(result.violations)
    assert f"hard={len(hard)} soft={len(result.soft_violations)}" in caplog.text
    assert any(v.rule == "verdict_contradicts_deterministic_valuation" for v in hard)
    assert result.passed is False
    # Output is not suppressed on failure.
    assert result.filtered_reasons


def test_even_verdict_with_large_delta(make_context) -> None:
    ctx = make_context(valueDelta={"percentageDiff": 35, "favoredSide": "A"})
    result = run_quality_gate(_consensus(winner="Even"), ctx)
    assert "even_verdict_with_large_delta" in _rules(result)


def test_high_confidence_on_close_trade(make_context) -> None:
    ctx = make_context(valueDelta={"percentageDiff": 4, "favoredSide": "A"})
    result = run_quality_gate(_consensus(winner="Team A", confidence=92), ctx)
    assert "high_confidence_on_close_trade" in _rules(result)


def test_zero_coverage_caps_confidence(make_context) -> None:
    ctx = make_context(dataQuality={"coveragePercent": 0, "adpHitRate": 0, "injuryDataAvailable": False})
    result = run_quality_gate(_consensus(winner="Team A", confidence=95), ctx)
    assert result.deterministic_confidence <= 35
    assert result.adjusted_confidence <= 35
    assert "confidence_vs_completeness" in _rules(result)
    assert result.data_coverage.tier != "FULL"


def test_completeness_checks_model_confidence(make_context) -> None:
    ctx = make_context(dataQuality={"coveragePercent": 40, "adpHitRate": 0.9, "injuryDataAvailable": True})
    flagged = run_quality_gate(_consensus(winner="Team A", confidence=95), ctx)
    completeness = [v for v in flagged.violations if v.rule == "confidence_vs_completeness"]
    assert completeness and "ceiling 55%" in completeness[0].detail
    assert completeness[0] in flagged.soft_violations
    assert "confidence_vs_completeness" not in _rules(run_quality_gate(_consensus(confidence=50), ctx))
    assert "confidence_vs_completeness" not in _rules(run_quality_gate(None, ctx))


def test_multiple_stale_sources_hard_cap(make_context) -> None:
    ctx = make_context(missingData={"injuryDataStale": True, "valuationDataStale": True, "adpDataStale": True})
    result = run_quality_gate(_consensus(), ctx)
    multi = [v for v in result.violations if v.rule == "confidence_vs_multi_stale"]
    assert multi and multi[0].severity == "hard"
    assert result.passed is False
    assert result.adjusted_confidence <= 50


def test_missing_fields_tighten_ceiling(make_context) -> None:
    ctx = make_context(missingData={"adpMissing": ["A", "B", "C", "D", "E"]})
    result = run_quality_gate(_consensus(), ctx)
    assert "confidence_vs_missing_data" in _rules(result)
    assert result.adjusted_confidence <= 55


def test_injury_compound_risk(make_context) -> None:
    ctx = make_context(
        valueDelta={"percentageDiff": 6, "favoredSide": "A"},
        missingData={"injuryDataStale": True},
        sideB={
            "riskMarkers": [
                {"playerName": "Bijan Robinson", "injuryStatus": {"status": "Questionable", "reinjuryRisk": "moderate"}}
            ]
        },
    )
    result = run_quality_gate(_consensus(), ctx)
    compound = [v for v in result.violations if v.rule == "injury_compound_risk"]
    assert compound and compound[0].severity == "hard"
    assert result.adjusted_confidence <= 55
    assert result.passed is False


def test_injury_stale_risk_with_wide_delta(make_context, freshness) -> None:
    ctx = make_context(
        valueDelta={"percentageDiff": 18, "favoredSide": "A"},
        sourceFreshness=freshness(injuries="expired"),
        sideB={"riskMarkers": [{"playerName": "Bijan Robinson", "injuryStatus": {"reinjuryRisk": "high"}}]},
    )
    result = run_quality_gate(_consensus(), ctx)
    assert "injury_stale_risk" in _rules(result)
    assert "injury_compound_risk" not in _rules(result)
    assert result.adjusted_confidence <= 65


def test_conditional_recommendation(make_context) -> None:
    ctx = make_context(
        missingData={"competitorDataUnavailable": True, "managerTendenciesUnavailable": ["team-a", "team-b"]},
        sideA={"managerPreferences": None},
        sideB={"managerPreferences": None, "rosterComposition": {"size": 0}},
    )
    result = run_quality_gate(_consensus(), ctx)
    rules = _rules(result)
    assert {"missing_roster_data", "missing_competitor_data", "missing_manager_tendencies"} <= set(rules)
    conditional = result.conditional_recommendation
    assert conditional.is_conditional
    assert conditional.label == "Conditional"
    assert len(conditional.reasons) == 3
    assert result.filtered_warnings[-1].startswith("[Conditional] This recommendation requires verification: Roster")


def test_violations_are_listed_in_warnings(make_context) -> None:
    ctx = make_context(missingData={"competitorDataUnavailable": True})
    result = run_quality_gate(_consensus(), ctx)
    assert "[QualityGate] Competitor team data unavailable; league context incomplete" in result.filtered_warnings


def test_null_consensus_uses_deterministic_only(context: TradeDecisionContext) -> None:
    result = run_quality_gate(None, context)
    assert "llm_consensus_unavailable" in _rules(result)
    assert result.original_llm_confidence is None
    assert result.filtered_reasons == result.deterministic_intelligence.reasons
    assert result.passed
    # 85 deterministic minus one soft violation.
    assert result.adjusted_confidence == 82


def test_primary_fallback_counts_as_disagreement(context: TradeDecisionContext) -> None:
    plain = run_quality_gate(_consensus(confidence=75), context)
    fallback = run_quality_gate(_consensus(confidence=75, method="primary_fallback"), context)
    assert plain.adjusted_confidence - fallback.adjusted_confidence == 5


def test_review_mode_from_confidence_spread(context: TradeDecisionContext) -> None:
    consensus = _consensus(confidence=75, method="weighted_merge", contradictions=["confidence_spread_high"])
    result = run_quality_gate(consensus, context)
    assert "review_mode_active" in _rules(result)
    # -5 disagreement, -3 review mode, -3 for the soft violation itself.
    assert result.adjusted_confidence == 74


def test_peer_review_disagreement_consensus(context: TradeDecisionContext) -> None:
    consensus = PeerReviewConsensus(
        verdict="Disagreement",
        confidence=40,
        reasons=["Justin Jefferson is the better long-term asset"],
        counters=[],
        warnings=["Provider disagreement"],
        meta=PeerReviewMeta(
            consensus_method="disagreement",
            disagreement_codes=["verdict_polarity_mismatch", "confidence_spread_high"],
            disagreement_details="openai rated A while grok rated B.",
        ),
    )
    view = consensus_view(consensus)
    assert view is not None and view.disagreement and view.review_mode
    result = run_quality_gate(consensus, context)
    assert "review_mode_active" in _rules(result)
    assert result.original_llm_confidence == 40


def test_contradicting_model_loses_confidence(context: TradeDecisionContext) -> None:
    agree = run_quality_gate(_consensus(winner="Team A", confidence=75), context)
    contradict = run_quality_gate(_consensus(winner="Team B", confidence=75), context)
    assert agree.adjusted_confidence - contradict.adjusted_confidence == 8
    # Contradictions below the 20% threshold adjust confidence only.
    assert contradict.passed


def test_restated_reason_is_dropped(context: TradeDecisionContext) -> None:
    restatement = "Roster fit is strong: Side A fills need, Side B fills need too"
    result = run_quality_gate(_consensus(factors=[restatement]), context)
    assert restatement not in result.filtered_reasons


def test_counter_covered_by_deterministic_prefix_is_dropped(context: TradeDecisionContext) -> None:
    dup = "Side B could add a future mid-round pick to close the gap quickly"
    result = run_quality_gate(_consensus(recommendations=[dup]), context)
    assert dup not in result.filtered_counters
    assert result.filtered_counters == ["Side B could add a future mid-round pick to close the 12.5% gap"]


SCENARIOS = [
    {},
    {"missingData": {"injuryDataStale": True, "valuationDataStale": True, "adpDataStale": True,
                     "analyticsDataStale": True, "tradeHistoryStale": True,
                     "valuationsMissing": ["A", "B", "C"], "competitorDataUnavailable": True}},
    {"dataQuality": {"coveragePercent": 0, "adpHitRate": 0}},
    {"valueDelta": {"percentageDiff": 60, "favoredSide": "B"}},
    {"valueDelta": {"percentageDiff": 0, "favoredSide": "Even"}},
]


@pytest.mark.parametrize("overrides", SCENARIOS)
@pytest.mark.parametrize("winner, confidence", [("Team A", 100), ("Team B", 0), ("Even", 50)])
def test_confidence_bounds_and_passed_invariant(make_context, overrides, winner, confidence) -> None:
    ctx = make_context(**overrides)
    consensus = _consensus(
        winner=winner,
        confidence=confidence,
        factors=["Tyreek Hill looks underrated here", "Davante Adams is a fine piece"],
        recommendations=["Add a superflex pick in a 10 team league"],
    )
    for candidate in (consensus, None):
        result = run_quality_gate(candidate, ctx)
        assert 15 <= result.adjusted_confidence <= 90
        assert result.passed == (not any(v.severity == "hard" for v in result.violations))


def test_gate_is_idempotent(make_context) -> None:
    ctx = make_context(missingData={"adpMissing": ["A"], "competitorDataUnavailable": True})
    consensus = _consensus(factors=["Tyreek Hill looks underrated here", "Justin Jefferson adds receiving volume"])
    first = run_quality_gate(consensus, ctx)
    second = run_quality_gate(consensus, ctx)
    assert first.model_dump_json(by_alias=True) == second.model_dump_json(by_alias=True)


def test_context_is_not_modified(context: TradeDecisionContext) -> None:
    before = context.model_dump_json()
    run_quality_gate(_consensus(), context)
    assert context.model_dump_json() == before


def test_result_serialises_with_wire_names(context: TradeDecisionContext) -> None:
    data = run_quality_gate(_consensus(), context).model_dump(by_alias=True)
    assert {"passed", "adjustedConfidence", "originalLLMConfidence", "filteredReasons",
            "conditionalRecommendation", "dataCoverage"} <= set(data)
