"""Tests for consensus merging of provider analyses and peer reviews."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from tradegate.llm.consensus import (
    WeightedBallot,
    dedupe_and_rank,
    detect_contradictions,
    merge_analyses,
    merge_peer_reviews,
)
from tradegate.llm.models import (
    ParseStage,
    PeerReviewProviderResult,
    PeerReviewVerdict,
    ProviderResult,
    TradeAnalysis,
)
from tradegate.llm.validator import SALVAGE_FALLBACK_FACTOR, score_analysis


def _analysis(winner: str, confidence: float, factors: List[str], **extra: Any) -> TradeAnalysis:
    payload: Dict[str, Any] = {
        "winner": winner,
        "valueDelta": "short",
        "factors": factors,
        "confidence": confidence,
        "dynastyVerdict": "short",
    }
    payload.update(extra)
    return TradeAnalysis.model_validate(payload)


def _result(provider: str, analysis: Optional[TradeAnalysis], valid: bool = True, latency: int = 100) -> ProviderResult:
    return ProviderResult(
        provider=provider,
        analysis=analysis,
        latency_ms=latency,
        error=None if analysis is not None else "boom",
        schema_valid=valid,
        confidence_score=score_analysis(analysis, valid),
        parse_stage=ParseStage.STRICT if valid else ParseStage.SALVAGED,
    )


def test_weighted_ballot_first_seen_wins_ties() -> None:
    ballot: WeightedBallot[str] = WeightedBallot()
    ballot.add("Team A", 50)
    ballot.add("Team B", 50)
    assert ballot.leader() == "Team A"
    ballot.add("Team B", 1)
    assert ballot.leader() == "Team B"
    assert ballot.weight_of("Team B") == 51
    assert len(ballot) == 2
    assert WeightedBallot().leader() is None


def test_dedupe_and_rank_prefers_shared_items() -> None:
    merged = dedupe_and_rank(["Alpha", "beta"], ["Gamma", "BETA", "alpha"])
    assert merged == ["Alpha", "beta", "Gamma"]
    assert dedupe_and_rank(["x"], ["y", "y", "y"]) == ["y", "x"]
    assert dedupe_and_rank([], []) == []


def test_no_usable_results_returns_none() -> None:
    assert merge_analyses([], "openai") is None
    assert merge_analyses([_result("openai", None), _result("grok", None)], "openai") is None


def test_single_result_is_returned_verbatim() -> None:
    analysis = _analysis("Team A", 72, ["Justin Jefferson is the best asset"], vetoRisk="Low")
    consensus = merge_analyses([_result("openai", None), _result("grok", analysis)], "openai")
    assert consensus is not None
    assert consensus.meta.consensus_method == "single"
    assert consensus.analysis == analysis
    assert consensus.analysis.model_dump_json() == analysis.model_dump_json()
    assert [p.provider for p in consensus.meta.providers] == ["openai", "grok"]


def test_low_scoring_secondary_falls_back_to_primary() -> None:
    primary = _analysis("Team A", 80, ["a", "b", "c"])
    weak = _analysis("Team B", 10, ["z"])
    results = [_result("openai", primary, latency=120), _result("grok", weak, valid=False, latency=300)]
    consensus = merge_analyses(results, "openai")
    assert consensus is not None
    assert consensus.meta.consensus_method == "primary_fallback"
    assert consensus.analysis == primary
    assert consensus.meta.total_latency_ms == 300
    assert "winner_polarity_mismatch" in consensus.meta.contradictions
    assert "confidence_spread_high" in consensus.meta.contradictions


def test_weighted_merge() -> None:
    # openai scores 40 + 24 + 10 + 5 = 79, grok scores 40 + 18 + 5 = 63
    primary = _analysis("Team A", 80, ["a", "b", "c"], recommendations=["Add a pick"])
    secondary = _analysis("Team B", 60, ["A", "d"], recommendations=["add a pick", "Swap the TE"])
    consensus = merge_analyses([_result("openai", primary), _result("grok", secondary)], "openai")
    assert consensus is not None
    assert consensus.meta.consensus_method == "weighted_merge"
    merged = consensus.analysis
    assert merged.winner == "Team A"
    assert merged.confidence == 71
    assert merged.factors == ["a", "b", "c", "d"]
    assert merged.recommendations == ["Add a pick", "Swap the TE"]
    assert consensus.meta.contradictions == ["winner_polarity_mismatch"]


def test_weighted_merge_secondary_can_win_the_vote() -> None:
    primary = _analysis("Team A", 40, ["a"])
    secondary = _analysis("Slight edge to Team B", 90, ["b", "c", "d"], valueDelta="Team B by about 18%")
    consensus = merge_analyses([_result("openai", primary), _result("grok", secondary)], "openai")
    assert consensus is not None
    assert consensus.meta.consensus_method == "weighted_merge"
    assert consensus.analysis.winner == "Slight edge to Team B"
    # Narrative fields come from the higher-scoring analysis.
    assert consensus.analysis.value_delta == "Team B by about 18%"


def test_weighted_merge_with_only_blank_factors_uses_fallback_factor() -> None:
    # Unvalidated records; the schema no longer admits blank-only factors.
    def blank(winner: str) -> TradeAnalysis:
        return TradeAnalysis.model_construct(
            winner=winner, value_delta="short", factors=[" ", ""], confidence=70, dynasty_verdict="short"
        )

    consensus = merge_analyses([_result("openai", blank("Team A")), _result("grok", blank("Team A"))], "openai")
    assert consensus is not None
    assert consensus.meta.consensus_method == "weighted_merge"
    assert consensus.analysis.factors == [SALVAGE_FALLBACK_FACTOR]
    assert consensus.analysis.winner == "Team A"
    assert consensus.analysis.recommendations == []


def test_primary_override_changes_anchor() -> None:
    a = _analysis("Team A", 70, ["a"])
    b = _analysis("Team A", 70, ["b"])
    consensus = merge_analyses([_result("openai", a), _result("grok", b)], "grok")
    assert consensus is not None
    assert consensus.meta.primary_provider == "grok"
    assert consensus.analysis.factors == ["b", "a"]


def test_detect_contradictions() -> None:
    codes, detail = detect_contradictions(_analysis("Team A", 90, ["a"]), _analysis("Team B", 50, ["b"]))
    assert codes == ["winner_polarity_mismatch", "confidence_spread_high"]
    assert detail is not None and "40" in detail
    assert detect_contradictions(_analysis("Team A", 60, ["a"]), _analysis("Even", 70, ["b"])) == ([], None)


def _review(provider: str, verdict: Optional[str], confidence: float = 70, reasons: Optional[List[str]] = None) -> PeerReviewProviderResult:
    if verdict is None:
        return PeerReviewProviderResult(provider=provider, error="timed out")
    return PeerReviewProviderResult(
        provider=provider,
        verdict=PeerReviewVerdict(verdict=verdict, confidence=confidence, reasons=reasons or ["shared reason"]),
        schema_valid=True,
        parse_stage=ParseStage.STRICT,
    )


def test_peer_review_agreement() -> None:
    merged = merge_peer_reviews([_review("openai", "Team A", 70), _review("grok", "Slight edge to Team A", 80)])
    assert merged is not None
    assert merged.meta.consensus_method == "agreement"
    assert merged.verdict == "Slight edge to Team A"
    assert merged.confidence == 85
    assert merged.reasons == ["shared reason"]


def test_peer_review_disagreement() -> None:
    merged = merge_peer_reviews(
        [
            _review("openai", "Team A", 90, ["Value favours A strongly"]),
            _review("grok", "Team B", 50, ["Roster fit favours B"]),
        ]
    )
    assert merged is not None
    assert merged.verdict == "Disagreement"
    assert merged.confidence == 40
    assert merged.meta.consensus_method == "disagreement"
    assert merged.meta.disagreement_codes == [
        "verdict_polarity_mismatch",
        "confidence_spread_high",
        "reason_overlap_low",
    ]
    assert merged.warnings[0].startswith("Provider disagreement: openai says")


def test_peer_review_degraded_fallback() -> None:
    merged = merge_peer_reviews([_review("openai", None), _review("grok", "Team B", 70)])
    assert merged is not None
    assert merged.meta.consensus_method == "degraded_fallback"
    assert merged.confidence == 60
    assert merged.meta.disagreement_codes == ["provider_degraded"]
    assert any("openai failed" in w for w in merged.warnings)


def test_peer_review_single_provider() -> None:
    merged = merge_peer_reviews([_review("grok", "Even", 55)])
    assert merged is not None
    assert merged.meta.consensus_method == "single_provider"
    assert merged.confidence == 55
    assert merge_peer_reviews([_review("openai", None)]) is None
