"""Quality gate reconciling provider consensus with the deterministic reading.

The gate is the trust boundary of the engine.  It runs a fixed sequence
of checks over the consensus and the trade context, each producing zero
or more :class:`QualityViolation` records:

1. confidence versus data completeness (coverage, missing fields and
   stale sources set a confidence ceiling),
2. phantom references (name-shaped text that matches no asset),
3. league constraints (format features the league does not have),
4. valuation-bound conflicts with the computed value delta,
5. compounded injury risk,
6. missing roster and team data (conditional recommendations).

The final confidence starts from the deterministic confidence and is
adjusted for agreement, disagreement and violations, then capped by the
tightest ceiling and clamped to [15, 90].  ``passed`` is false exactly
when a ``hard`` violation was recorded.  Output is never suppressed: a
failing result still carries filtered reasons, counters and warnings.

:func:`run_quality_gate` never raises, uses no clock or randomness and
keeps no state between calls, so identical inputs always produce an
identical result and concurrent calls do not interfere.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple, Union

from ..context.models import TradeDecisionContext
from ..llm.models import ConsensusAnalysis, PeerReviewConsensus, verdict_side
from . import coverage as cov
from .deterministic import score_trade_context
from .models import ConditionalRecommendation, QualityGateResult, QualityViolation
from .rules import (
    check_counter_rules,
    check_reason_rules,
    extract_player_references,
    is_known_reference,
    known_asset_names,
)

logger = logging.getLogger(__name__)

HARD_PENALTY = 15
SOFT_PENALTY = 3
PENALTY_FLOOR = 10
CONTRADICTION_PENALTY = 8
DISAGREEMENT_PENALTY = 5
REVIEW_MODE_PENALTY = 3
AGREEMENT_BONUS_MAX = 10
AGREEMENT_BONUS_SCALE = 0.3

INJURY_COMPOUND_CEILING = 55
INJURY_STALE_CEILING = 65
THIN_DELTA_PCT = 10

# Shared significant words (longer than three letters) that make a model
# reason a restatement of a deterministic one.
RESTATEMENT_MIN_SHARED_WORDS = 4
COUNTER_PREFIX_LEN = 30
WARNING_PREFIX_LEN = 25

FALLBACK_REASON = "Insufficient data for detailed analysis"

_WORD = re.compile(r"[a-z0-9']+")

AnyConsensus = Union[ConsensusAnalysis, PeerReviewConsensus]


@dataclass(frozen=True)
class ConsensusView:
    """The parts of a consensus the gate inspects, independent of its origin."""

    verdict: str
    confidence: float
    reasons: List[str] = field(default_factory=list)
    counters: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    disagreement: bool = False
    review_mode: bool = False
    detail: Optional[str] = None


def consensus_view(consensus: Optional[AnyConsensus]) -> Optional[ConsensusView]:
    """Normalise a merged analysis or a peer-review consensus for the gate.

    For a :class:`ConsensusAnalysis` the factors are the reasons, the
    recommendations are the counters and the aging concerns are the
    warnings.  A primary fallback or any flagged contradiction counts as
    a disagreement; a high confidence spread turns on review mode.
    """
    if consensus is None:
        return None
    if isinstance(consensus, ConsensusAnalysis):
        meta = consensus.meta
        return ConsensusView(
            verdict=consensus.winner,
            confidence=consensus.confidence,
            reasons=consensus.reasons,
            counters=consensus.counters,
            warnings=consensus.warnings,
            disagreement=meta.consensus_method == "primary_fallback" or bool(meta.contradictions),
            review_mode="confidence_spread_high" in meta.contradictions,
            detail=meta.contradiction_detail,
        )
    meta = consensus.meta
    disagreement = meta.consensus_method == "disagreement"
    return ConsensusView(
        verdict=consensus.verdict,
        confidence=consensus.confidence,
        reasons=list(consensus.reasons),
        counters=list(consensus.counters),
        warnings=list(consensus.warnings),
        disagreement=disagreement,
        review_mode=disagreement and "confidence_spread_high" in meta.disagreement_codes,
        detail=meta.disagreement_details,
    )


def _num(value: float) -> str:
    return f"{value:g}"


# --------------------------------------------------------------------------
# Checks
# --------------------------------------------------------------------------


def check_confidence_vs_completeness(
    confidence: float, ctx: TradeDecisionContext
) -> Tuple[List[QualityViolation], int]:
    """Compute the completeness ceiling and flag a confidence above it."""
    violations: List[QualityViolation] = []
    missing = ctx.missing_data
    coverage = ctx.data_quality.coverage_percent
    ceiling = cov.coverage_ceiling(coverage)

    if confidence > ceiling:
        violations.append(
            QualityViolation(
                rule="confidence_vs_completeness",
                severity="soft",
                detail=f"Confidence {_num(confidence)}% exceeds ceiling {ceiling}% for {_num(coverage)}% data coverage",
                adjustment=f"Capped confidence to {ceiling}",
            )
        )

    data_ceiling = cov.missing_data_ceiling(missing.missing_field_count)
    if data_ceiling is not None and data_ceiling < ceiling:
        ceiling = data_ceiling
        violations.append(
            QualityViolation(
                rule="confidence_vs_missing_data",
                severity="soft",
                detail=f"{missing.missing_field_count} missing data fields; ceiling reduced to {data_ceiling}%",
                adjustment=f"Penalized ceiling by {cov.MISSING_DATA_BASE_CEILING - data_ceiling} for missing data",
            )
        )

    stale_caps = (
        (missing.injury_data_stale, cov.STALE_INJURY_CEILING, "confidence_vs_stale_injury", "Injury data is stale"),
        (
            missing.valuation_data_stale,
            cov.STALE_VALUATION_CEILING,
            "confidence_vs_stale_valuation",
            "Player valuations are stale (>3 days)",
        ),
        (missing.adp_data_stale, cov.STALE_ADP_CEILING, "confidence_vs_stale_adp", "ADP data is stale (>7 days)"),
        (
            missing.trade_history_stale,
            cov.STALE_TRADE_HISTORY_CEILING,
            "confidence_vs_stale_trade_history",
            "Trade history is stale (>7 days)",
        ),
    )
    for stale, cap, rule, label in stale_caps:
        if stale and cap < ceiling:
            ceiling = cap
            violations.append(
                QualityViolation(
                    rule=rule,
                    severity="soft",
                    detail=f"{label}; ceiling reduced to {cap}%",
                    adjustment=f"Reduced ceiling for {rule.rsplit('_vs_stale_', 1)[-1].replace('_', ' ')} data",
                )
            )

    stale_count = missing.stale_source_count
    if stale_count >= cov.MULTI_STALE_THRESHOLD and cov.MULTI_STALE_CEILING < ceiling:
        ceiling = cov.MULTI_STALE_CEILING
        violations.append(
            QualityViolation(
                rule="confidence_vs_multi_stale",
                severity="hard",
                detail=f"{stale_count}/5 data sources are stale; ceiling hard-capped at {ceiling}%",
                adjustment="Multiple stale sources cap",
            )
        )
    return violations, ceiling


def check_phantom_references(
    view: ConsensusView, ctx: TradeDecisionContext
) -> Tuple[List[QualityViolation], Dict[str, Set[int]]]:
    """Flag name-shaped references that match no asset in the context.

    Returns the violations and, per section, the indexes of offending lines.
    """
    known = known_asset_names(ctx)
    violations: List[QualityViolation] = []
    flagged: Dict[str, Set[int]] = {"reasons": set(), "counters": set(), "warnings": set()}
    sections = (("reasons", view.reasons), ("counters", view.counters), ("warnings", view.warnings))
    for section, items in sections:
        for idx, text in enumerate(items):
            for ref in extract_player_references(text):
                if is_known_reference(ref, known):
                    continue
                flagged[section].add(idx)
                violations.append(
                    QualityViolation(
                        rule="phantom_asset_reference",
                        severity="soft",
                        detail=f'"{ref}" referenced in {section}[{idx}] but not found in trade context assets',
                        adjustment="Flagged line for potential hallucination",
                    )
                )
    return violations, flagged


def check_valuation_bounds(view: ConsensusView, ctx: TradeDecisionContext) -> List[QualityViolation]:
    violations: List[QualityViolation] = []
    pct = ctx.value_delta.percentage_diff
    favored = ctx.value_delta.favored_side
    side = verdict_side(view.verdict)

    if pct > 20 and {favored, side} == {"A", "B"}:
        violations.append(
            QualityViolation(
                rule="verdict_contradicts_deterministic_valuation",
                severity="hard",
                detail=f'Deterministic values favor Side {favored} by {_num(pct)}% but model says "{view.verdict}"',
                adjustment="Severe confidence reduction; model contradicts strong deterministic signal",
            )
        )
    if pct > 30 and side in ("Even", "Disagreement"):
        violations.append(
            QualityViolation(
                rule="even_verdict_with_large_delta",
                severity="soft",
                detail=f'{_num(pct)}% value delta but model says "{view.verdict}"; likely ignoring valuation gap',
                adjustment="Reduced confidence for even verdict with large delta",
            )
        )
    if pct <= 5 and view.confidence > 85 and side in ("A", "B"):
        violations.append(
            QualityViolation(
                rule="high_confidence_on_close_trade",
                severity="soft",
                detail=(
                    f"Only {_num(pct)}% delta but model is {_num(view.confidence)}% confident "
                    f'in "{view.verdict}"'
                ),
                adjustment="Capped confidence; values too close for strong verdict",
            )
        )
    return violations


def check_injury_compound_risk(ctx: TradeDecisionContext) -> Tuple[List[QualityViolation], Optional[int]]:
    """Cap confidence when injury risk meets unreliable injury data."""
    at_risk = [
        m
        for m in ctx.all_risk_markers
        if m.injury_status is not None
        and (m.injury_status.reinjury_risk in ("high", "moderate") or not m.injury_status.is_active)
    ]
    if not at_risk:
        return [], None

    if ctx.source_freshness is not None:
        unreliable = ctx.source_freshness.injuries.is_unreliable
    else:
        unreliable = ctx.missing_data.injury_data_stale
    if not unreliable:
        return [], None

    pct = ctx.value_delta.percentage_diff
    if pct <= THIN_DELTA_PCT:
        names = ", ".join(m.player_name for m in at_risk[:3])
        cap = INJURY_COMPOUND_CEILING
        return [
            QualityViolation(
                rule="injury_compound_risk",
                severity="hard",
                detail=(
                    f"Injury risk ({names}) + unreliable injury data + thin value delta ({_num(pct)}%); "
                    f"confidence hard-capped at {cap}%"
                ),
                adjustment=f"Capped at {cap}% due to compounding injury uncertainty",
            )
        ], cap
    cap = INJURY_STALE_CEILING
    return [
        QualityViolation(
            rule="injury_stale_risk",
            severity="soft",
            detail=f"Injury risk present but injury data is unreliable; ceiling reduced to {cap}%",
            adjustment="Reduced ceiling for injury data uncertainty",
        )
    ], cap


def check_missing_roster_team_data(ctx: TradeDecisionContext) -> Tuple[List[QualityViolation], List[str]]:
    """Collect reasons that make the recommendation conditional."""
    violations: List[QualityViolation] = []
    reasons: List[str] = []
    missing = ctx.missing_data

    def flag(rule: str, reason: str, detail: str) -> None:
        reasons.append(reason)
        violations.append(
            QualityViolation(rule=rule, severity="soft", detail=detail, adjustment="Forced conditional recommendation")
        )

    roster_unavailable = ctx.source_freshness is not None and ctx.source_freshness.rosters.grade in (
        "expired",
        "unavailable",
    )
    if roster_unavailable or any(side.roster_composition.size == 0 for side in ctx.sides):
        flag(
            "missing_roster_data",
            "Roster data is missing or expired; needs/surplus analysis may be inaccurate",
            "Roster data is unavailable or expired; recommendation is conditional",
        )
    if missing.competitor_data_unavailable:
        flag(
            "missing_competitor_data",
            "No competitor team data; league-wide context is unavailable",
            "Competitor team data unavailable; league context incomplete",
        )
    no_preferences = all(side.manager_preferences is None for side in ctx.sides)
    if no_preferences and len(missing.manager_tendencies_unavailable) >= 2:
        flag(
            "missing_manager_tendencies",
            "No manager trade history for either side; acceptance predictions are unreliable",
            "Both managers lack trade tendency data; acceptance signals unreliable",
        )
    missing_values = len(missing.valuations_missing)
    if missing_values >= 3:
        flag(
            "missing_critical_valuations",
            f"Valuations missing for {missing_values} assets; value delta may not reflect true trade value",
            f"{missing_values} assets lack valuations; value analysis is incomplete",
        )
    return violations, reasons


# --------------------------------------------------------------------------
# Output filtering
# --------------------------------------------------------------------------


def _significant_words(text: str) -> Set[str]:
    return {w for w in _WORD.findall(text.lower()) if len(w) > 3}


def _restates(candidate: str, existing: List[str]) -> bool:
    words = _significant_words(candidate)
    return any(len(words & _significant_words(e)) >= RESTATEMENT_MIN_SHARED_WORDS for e in existing)


def _covered_by_prefix(candidate: str, existing: List[str], length: int) -> bool:
    lowered = candidate.lower()
    return any(e.lower()[:length] in lowered for e in existing)


def _dedupe(items: List[str]) -> List[str]:
    seen: Set[str] = set()
    out: List[str] = []
    for item in items:
        key = item.strip().lower()
        if key and key not in seen:
            seen.add(key)
            out.append(item)
    return out


def _kept(items: List[str], dropped: Set[int]) -> List[str]:
    return [item for idx, item in enumerate(items) if idx not in dropped]


# --------------------------------------------------------------------------
# Gate
# --------------------------------------------------------------------------


def run_quality_gate(consensus: Optional[AnyConsensus], ctx: TradeDecisionContext) -> QualityGateResult:
    """Run every check and build the calibrated :class:`QualityGateResult`.

    Args:
        consensus: The merged provider opinion, or ``None`` when no provider
            produced a usable answer.  In that case the result rests purely
            on the deterministic reading.
        ctx: The trade decision context; never modified.

    Returns:
        The gate result.  This function does not raise for any valid context.
    """
    deterministic = score_trade_context(ctx)
    data_coverage = cov.compute_data_coverage(ctx.data_quality, ctx.missing_data, ctx.source_freshness)
    view = consensus_view(consensus)
    violations: List[QualityViolation] = []

    # The model's confidence, not the deterministic one, is checked against completeness.
    stated_confidence = view.confidence if view is not None else deterministic.confidence
    completeness, ceiling = check_confidence_vs_completeness(stated_confidence, ctx)
    violations.extend(completeness)

    phantom: Dict[str, Set[int]] = {"reasons": set(), "counters": set(), "warnings": set()}
    flagged_counters: Set[int] = set()
    if view is None:
        violations.append(
            QualityViolation(
                rule="llm_consensus_unavailable",
                severity="soft",
                detail="No provider analysis available; recommendation is based on deterministic data only",
                adjustment="Deterministic fallback",
            )
        )
    else:
        phantom_violations, phantom = check_phantom_references(view, ctx)
        violations.extend(phantom_violations)
        violations.extend(check_reason_rules(view.reasons, ctx.league_config))
        counter_violations, flagged_counters = check_counter_rules(view.counters, ctx.league_config)
        violations.extend(counter_violations)
        violations.extend(check_valuation_bounds(view, ctx))

    injury_violations, injury_ceiling = check_injury_compound_risk(ctx)
    violations.extend(injury_violations)

    roster_violations, conditional_reasons = check_missing_roster_team_data(ctx)
    violations.extend(roster_violations)

    model_reasons = _kept(view.reasons, phantom["reasons"]) if view is not None else []
    model_counters = _kept(view.counters, phantom["counters"] | flagged_counters) if view is not None else []
    model_warnings = _kept(view.warnings, phantom["warnings"]) if view is not None else []

    if view is not None and view.reasons and not model_reasons:
        violations.append(
            QualityViolation(
                rule="all_reasons_filtered",
                severity="hard",
                detail=f"All {len(view.reasons)} model reasons contained phantom asset references",
                adjustment="Model reasoning discarded; deterministic reasons are primary",
            )
        )

    adjusted = float(deterministic.confidence)
    if view is not None:
        favored = ctx.value_delta.favored_side
        side = verdict_side(view.verdict)
        if side == favored:
            bonus = cov.round_half_up((view.confidence - deterministic.confidence) * AGREEMENT_BONUS_SCALE)
            adjusted += max(0, min(bonus, AGREEMENT_BONUS_MAX))
        elif {side, favored} == {"A", "B"}:
            adjusted -= CONTRADICTION_PENALTY
        if view.disagreement:
            adjusted -= DISAGREEMENT_PENALTY
            if view.review_mode:
                adjusted -= REVIEW_MODE_PENALTY
                violations.append(
                    QualityViolation(
                        rule="review_mode_active",
                        severity="soft",
                        detail=(
                            "High disagreement between providers"
                            f"{f' ({view.detail})' if view.detail else ''}; "
                            "review mode active with conservative counters"
                        ),
                        adjustment=f"Additional -{REVIEW_MODE_PENALTY} for high-disagreement review mode",
                    )
                )

    hard_count = sum(1 for v in violations if v.severity == "hard")
    soft_count = len(violations) - hard_count
    adjusted = max(adjusted - HARD_PENALTY * hard_count - SOFT_PENALTY * soft_count, PENALTY_FLOOR)

    adjusted += data_coverage.confidence_adjustment
    if data_coverage.tier != "FULL":
        violations.append(
            QualityViolation(
                rule="coverage_tier_penalty",
                severity="soft",
                detail=(
                    f"Data coverage is {data_coverage.tier} (score: {data_coverage.score}/100); "
                    f"confidence adjusted by {data_coverage.confidence_adjustment}"
                ),
                adjustment=f"Coverage tier: {data_coverage.badge.label}",
            )
        )

    effective_ceiling = ceiling if injury_ceiling is None else min(ceiling, injury_ceiling)
    adjusted_confidence = cov.clamp_confidence(min(adjusted, effective_ceiling))

    filtered_reasons = _dedupe(
        deterministic.reasons + [r for r in model_reasons if not _restates(r, deterministic.reasons)]
    )
    filtered_counters = _dedupe(
        deterministic.counters
        + [c for c in model_counters if not _covered_by_prefix(c, deterministic.counters, COUNTER_PREFIX_LEN)]
    )
    filtered_warnings = deterministic.warnings + [
        w for w in model_warnings if not _covered_by_prefix(w, deterministic.warnings, WARNING_PREFIX_LEN)
    ]
    filtered_warnings += [f"[QualityGate] {v.detail}" for v in violations if v.rule != "phantom_asset_reference"]

    is_conditional = bool(conditional_reasons)
    if is_conditional:
        filtered_warnings.append(
            f"[Conditional] This recommendation requires verification: {conditional_reasons[0]}"
        )

    result = QualityGateResult(
        passed=not any(v.severity == "hard" for v in violations),
        violations=violations,
        adjusted_confidence=adjusted_confidence,
        deterministic_confidence=deterministic.confidence,
        original_llm_confidence=view.confidence if view is not None else None,
        filtered_reasons=filtered_reasons or [FALLBACK_REASON],
        filtered_counters=filtered_counters,
        filtered_warnings=_dedupe(filtered_warnings),
        deterministic_intelligence=deterministic,
        conditional_recommendation=ConditionalRecommendation(
            is_conditional=is_conditional,
            reasons=conditional_reasons,
            label="Conditional" if is_conditional else "Standard",
        ),
        data_coverage=data_coverage,
    )
    logger.info(
        "Quality gate %s | confidence=%d (deterministic=%d) | hard=%d soft=%d | coverage=%s",
        "passed" if result.passed else "FAILED",
        result.adjusted_confidence,
        result.deterministic_confidence,
        len(result.hard_violations),
        len(result.soft_violations),
        data_coverage.tier,
    )
    return result
