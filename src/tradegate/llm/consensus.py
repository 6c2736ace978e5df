"""Consensus merging of provider analyses.

Zero, one or two provider results are combined into a single
consensus record.  Disagreement between two usable analyses is settled
by a confidence-weighted vote in which each provider's deterministic
quality score is its voting weight.  Contradictions between providers
are detected as an advisory side channel; they never change the merged
result.

Peer reviews use a simpler agreement/disagreement scheme and are merged
by :func:`merge_peer_reviews`.
"""

from __future__ import annotations

import logging
from typing import Dict, Generic, Hashable, List, Optional, Sequence, Tuple, TypeVar

from .models import (
    ConsensusAnalysis,
    ConsensusMeta,
    PeerReviewConsensus,
    PeerReviewMeta,
    PeerReviewProviderResult,
    ProviderResult,
    TradeAnalysis,
    verdict_side,
)
from .validator import SALVAGE_FALLBACK_FACTOR, score_provider_result

logger = logging.getLogger(__name__)

# Secondary results scoring below this are treated as noise.
SECONDARY_NOISE_FLOOR = 30.0
# Confidence gap (points) above which two analyses are flagged as contradictory.
CONTRADICTION_CONFIDENCE_SPREAD = 25.0

PEER_AGREEMENT_BONUS = 10
PEER_DISAGREEMENT_CAP = 40
PEER_DEGRADED_PENALTY = 10
PEER_SPREAD_THRESHOLD = 25
PEER_REASON_OVERLAP_MIN = 0.3

K = TypeVar("K", bound=Hashable)


class WeightedBallot(Generic[K]):
    """Accumulates weight per candidate and reports the leader.

    Ties go to the candidate that was first added, which lets callers
    encode their own precedence through insertion order.
    """

    def __init__(self) -> None:
        self._weights: Dict[K, float] = {}

    def add(self, candidate: K, weight: float) -> None:
        self._weights[candidate] = self._weights.get(candidate, 0.0) + weight

    def weight_of(self, candidate: K) -> float:
        return self._weights.get(candidate, 0.0)

    def leader(self) -> Optional[K]:
        best: Optional[K] = None
        best_weight = float("-inf")
        for candidate, weight in self._weights.items():
            if weight > best_weight:
                best, best_weight = candidate, weight
        return best

    def __len__(self) -> int:
        return len(self._weights)


def dedupe_and_rank(primary: Sequence[str], secondary: Sequence[str]) -> List[str]:
    """Merge two lists, dropping case-insensitive duplicates.

    Items are ranked by weighted frequency: each appearance in
    ``primary`` counts 2 and each appearance in ``secondary`` counts 1,
    so an item both sources mention outranks one mentioned once.  The
    first spelling seen is kept and ties preserve first-seen order.
    """
    scores: Dict[str, int] = {}
    first_seen: Dict[str, str] = {}
    for items, weight in ((primary, 2), (secondary, 1)):
        for item in items:
            key = item.strip().lower()
            if not key:
                continue
            scores[key] = scores.get(key, 0) + weight
            first_seen.setdefault(key, item)
    ordered = sorted(first_seen, key=lambda k: -scores[k])
    return [first_seen[k] for k in ordered]


def detect_contradictions(a: TradeAnalysis, b: TradeAnalysis) -> Tuple[List[str], Optional[str]]:
    """Return contradiction codes and a readable detail for two analyses."""
    codes: List[str] = []
    details: List[str] = []
    side_a, side_b = verdict_side(a.winner), verdict_side(b.winner)
    if {side_a, side_b} == {"A", "B"}:
        codes.append("winner_polarity_mismatch")
        details.append(f'winners point to opposite teams ("{a.winner}" vs "{b.winner}")')
    spread = abs(a.confidence - b.confidence)
    if spread > CONTRADICTION_CONFIDENCE_SPREAD:
        codes.append("confidence_spread_high")
        details.append(f"confidence spread of {spread:g} points")
    return codes, ("; ".join(details) if details else None)


def _total_latency(results: Sequence[ProviderResult | PeerReviewProviderResult]) -> int:
    return max((r.latency_ms for r in results), default=0)


def _resolve_winner(primary: TradeAnalysis, secondary: TradeAnalysis, p_score: float, s_score: float) -> str:
    if primary.winner == secondary.winner:
        return primary.winner
    ballot: WeightedBallot[str] = WeightedBallot()
    ballot.add(primary.winner, p_score)
    ballot.add(secondary.winner, s_score)
    return ballot.leader() or primary.winner


def merge_analyses(results: Sequence[ProviderResult], primary_provider: str) -> Optional[ConsensusAnalysis]:
    """Merge provider results into one :class:`ConsensusAnalysis`.

    Args:
        results: Provider results in call-issue order.
        primary_provider: Provider whose analysis wins ties and anchors
            the merge.

    Returns:
        The consensus, or ``None`` when no result carries an analysis.
    """
    usable = [r for r in results if r.analysis is not None]
    if not usable:
        return None
    total_latency = _total_latency(results)
    providers = list(results)

    if len(usable) == 1:
        return ConsensusAnalysis(
            analysis=usable[0].analysis,
            meta=ConsensusMeta(
                consensus_method="single",
                primary_provider=primary_provider,
                providers=providers,
                total_latency_ms=total_latency,
            ),
        )

    primary = next((r for r in usable if r.provider == primary_provider), usable[0])
    secondary = next(r for r in usable if r is not primary)
    p_analysis: TradeAnalysis = primary.analysis  # type: ignore[assignment]
    s_analysis: TradeAnalysis = secondary.analysis  # type: ignore[assignment]
    p_score = score_provider_result(primary)
    s_score = score_provider_result(secondary)
    contradictions, contradiction_detail = detect_contradictions(p_analysis, s_analysis)

    if s_score < SECONDARY_NOISE_FLOOR:
        logger.info(
            "Discarding %s analysis (score %.1f < %.0f); using %s",
            secondary.provider,
            s_score,
            SECONDARY_NOISE_FLOOR,
            primary.provider,
        )
        return ConsensusAnalysis(
            analysis=p_analysis,
            meta=ConsensusMeta(
                consensus_method="primary_fallback",
                primary_provider=primary_provider,
                providers=providers,
                total_latency_ms=total_latency,
                contradictions=contradictions,
                contradiction_detail=contradiction_detail,
            ),
        )

    total = p_score + s_score
    p_weight = p_score / total if total else 0.5
    s_weight = 1.0 - p_weight
    p_leads = p_score >= s_score
    lead = p_analysis if p_leads else s_analysis
    factors = dedupe_and_rank(p_analysis.factors, s_analysis.factors) or [SALVAGE_FALLBACK_FACTOR]

    merged = TradeAnalysis.model_validate(
        {
            "winner": _resolve_winner(p_analysis, s_analysis, p_score, s_score),
            "valueDelta": lead.value_delta,
            "factors": factors,
            "confidence": round(p_analysis.confidence * p_weight + s_analysis.confidence * s_weight),
            "dynastyVerdict": lead.dynasty_verdict,
            "vetoRisk": p_analysis.veto_risk or s_analysis.veto_risk,
            "agingConcerns": dedupe_and_rank(p_analysis.aging_concerns or [], s_analysis.aging_concerns or []),
            "recommendations": dedupe_and_rank(p_analysis.recommendations or [], s_analysis.recommendations or []),
            "youGiveAdjusted": p_analysis.you_give_adjusted or s_analysis.you_give_adjusted,
            "youWantAdded": p_analysis.you_want_added or s_analysis.you_want_added,
            "reason": p_analysis.reason or s_analysis.reason,
        }
    )
    if contradictions:
        logger.info("Provider contradiction (%s): %s", ", ".join(contradictions), contradiction_detail)
    return ConsensusAnalysis(
        analysis=merged,
        meta=ConsensusMeta(
            consensus_method="weighted_merge",
            primary_provider=primary_provider,
            providers=providers,
            total_latency_ms=total_latency,
            contradictions=contradictions,
            contradiction_detail=contradiction_detail,
        ),
    )


def _reason_overlap(a: Sequence[str], b: Sequence[str]) -> Optional[float]:
    a_keys = {r.lower()[:40] for r in a}
    b_keys = {r.lower()[:40] for r in b}
    union = a_keys | b_keys
    if not union:
        return None
    return len(a_keys & b_keys) / len(union)


def merge_peer_reviews(results: Sequence[PeerReviewProviderResult]) -> Optional[PeerReviewConsensus]:
    """Merge peer reviews by agreement of the side they favour.

    One usable review is passed through (with a penalty when the other
    provider failed).  Two reviews that favour the same side are boosted;
    two that do not yield an explicit ``Disagreement`` verdict with a
    capped confidence and diagnostic codes.
    """
    usable = [r for r in results if r.verdict is not None]
    if not usable:
        return None
    total_latency = _total_latency(results)
    providers = list(results)

    if len(usable) == 1:
        only = usable[0]
        review = only.verdict
        failed = next((r for r in results if r.verdict is None), None)
        warnings = list(review.warnings)
        if failed is None:
            return PeerReviewConsensus(
                verdict=review.verdict,
                confidence=review.confidence,
                reasons=list(review.reasons),
                counters=list(review.counters),
                warnings=warnings,
                meta=PeerReviewMeta(
                    providers=providers,
                    consensus_method="single_provider",
                    total_latency_ms=total_latency,
                ),
            )
        warnings.append(
            f"{failed.provider} failed ({failed.error or 'unknown error'}); using {only.provider} only"
        )
        return PeerReviewConsensus(
            verdict=review.verdict,
            confidence=max(0.0, review.confidence - PEER_DEGRADED_PENALTY),
            reasons=list(review.reasons),
            counters=list(review.counters),
            warnings=warnings,
            meta=PeerReviewMeta(
                providers=providers,
                consensus_method="degraded_fallback",
                total_latency_ms=total_latency,
                confidence_adjustment=f"-{PEER_DEGRADED_PENALTY} ({failed.provider} unavailable)",
                disagreement_codes=["provider_degraded"],
                disagreement_details=f"{failed.provider} was unavailable, analysis based solely on {only.provider}.",
            ),
        )

    first, second = usable[0], usable[1]
    a, b = first.verdict, second.verdict
    class_a, class_b = verdict_side(a.verdict), verdict_side(b.verdict)
    avg_confidence = round((a.confidence + b.confidence) / 2)
    reasons = dedupe_and_rank(a.reasons, b.reasons)
    counters = dedupe_and_rank(a.counters, b.counters)
    warnings = dedupe_and_rank(a.warnings, b.warnings)

    if class_a == class_b:
        return PeerReviewConsensus(
            verdict=a.verdict if a.confidence >= b.confidence else b.verdict,
            confidence=min(100, avg_confidence + PEER_AGREEMENT_BONUS),
            reasons=reasons,
            counters=counters,
            warnings=warnings,
            meta=PeerReviewMeta(
                providers=providers,
                consensus_method="agreement",
                total_latency_ms=total_latency,
                confidence_adjustment=f"+{PEER_AGREEMENT_BONUS} (both providers agree: {class_a})",
            ),
        )

    capped = min(avg_confidence, PEER_DISAGREEMENT_CAP)
    warnings.insert(
        0,
        f'Provider disagreement: {first.provider} says "{a.verdict}" ({a.confidence:g}%), '
        f'{second.provider} says "{b.verdict}" ({b.confidence:g}%)',
    )
    codes = ["verdict_polarity_mismatch"]
    details = [f'{first.provider} rated "{class_a}" while {second.provider} rated "{class_b}"']
    spread = abs(a.confidence - b.confidence)
    if spread >= PEER_SPREAD_THRESHOLD:
        codes.append("confidence_spread_high")
        details.append(f"Confidence spread of {spread:g}% suggests different data interpretation")
    overlap = _reason_overlap(a.reasons, b.reasons)
    if overlap is not None and overlap < PEER_REASON_OVERLAP_MIN:
        codes.append("reason_overlap_low")
        details.append(f"Providers cited different reasoning ({round(overlap * 100)}% overlap)")

    return PeerReviewConsensus(
        verdict="Disagreement",
        confidence=capped,
        reasons=reasons,
        counters=counters,
        warnings=warnings,
        meta=PeerReviewMeta(
            providers=providers,
            consensus_method="disagreement",
            total_latency_ms=total_latency,
            confidence_adjustment=(
                f"capped at {capped} (verdict class mismatch: "
                f"{first.provider}={class_a}, {second.provider}={class_b})"
            ),
            disagreement_codes=codes,
            disagreement_details=". ".join(details) + ".",
        ),
    )
