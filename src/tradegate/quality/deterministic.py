"""Deterministic reading of a trade decision context.

This module turns the structured context into a confidence figure and
human-readable reasons, warnings and counter-offer baselines without
consulting any generative model.  Every sentence it produces is built
from a field of the context, so the output can be traced back to data.

:func:`score_trade_context` is total: it accepts any valid context,
however sparse, and never raises.
"""

from __future__ import annotations

from typing import List

from ..config import CONFIDENCE_CAP, CONFIDENCE_FLOOR
from ..context.models import AssetValuation, PlayerRiskMarker, TradeDecisionContext
from .coverage import coverage_ceiling, round_half_up
from .models import DeterministicIntelligence

YOUNG_MAX_AGE = 25
PRIME_AGE_RANGE = (26, 30)
WARNING_SAMPLE = 5
RISK_SAMPLE = 3


def format_value(value: float) -> str:
    """Render a market value compactly (``7.5k`` above a thousand)."""
    if value >= 1000:
        return f"{value / 1000:.1f}k"
    return f"{value:.0f}"


def _pct(value: float) -> str:
    return f"{value:g}"


def compute_confidence(ctx: TradeDecisionContext) -> int:
    """Confidence in [15, 90] computed only from data completeness and the value gap.

    The result is also held under the coverage ceiling, so a context
    with little coverage can never look confident.
    """
    confidence = 50.0
    missing = ctx.missing_data
    quality = ctx.data_quality

    coverage = quality.coverage_percent
    if coverage >= 90:
        confidence += 25
    elif coverage >= 70:
        confidence += 18
    elif coverage >= 50:
        confidence += 10
    elif coverage >= 30:
        confidence += 3
    else:
        confidence -= 10

    pct = ctx.value_delta.percentage_diff
    if pct >= 25:
        confidence += 12
    elif pct >= 15:
        confidence += 8
    elif pct >= 8:
        confidence += 4
    elif pct <= 3:
        confidence -= 5

    missing_penalty = min(missing.missing_field_count * 3, 15)
    freshness = ctx.source_freshness
    if freshness is not None:
        confidence += freshness.total_confidence_penalty
        # Unavailable sources are already penalised through the freshness grade.
        unavailable = [s for s in (freshness.valuations, freshness.adp, freshness.analytics) if s.grade == "unavailable"]
        if not unavailable:
            confidence -= missing_penalty
    else:
        confidence -= missing.stale_source_count * 4
        confidence -= missing_penalty

    if missing.manager_tendencies_unavailable:
        confidence -= 3
    if missing.competitor_data_unavailable:
        confidence -= 2
    if missing.trade_history_insufficient:
        confidence -= 3

    if quality.injury_data_available:
        confidence += 3
    if quality.adp_hit_rate >= 0.8:
        confidence += 3

    bounded = max(CONFIDENCE_FLOOR, min(CONFIDENCE_CAP, round_half_up(confidence)))
    return min(bounded, max(CONFIDENCE_FLOOR, coverage_ceiling(coverage)))


def _top_assets(assets: List[AssetValuation], n: int = 2) -> List[AssetValuation]:
    return sorted(assets, key=lambda a: a.market_value, reverse=True)[:n]


def _asset_labels(assets: List[AssetValuation]) -> str:
    return ", ".join(f"{a.name} ({format_value(a.market_value)})" for a in assets)


def _needs_filled(needs: List[str], incoming: List[AssetValuation]) -> int:
    wanted = {n.lower() for n in needs}
    return sum(1 for a in incoming if a.position.lower() in wanted)


def _risk_tags(marker: PlayerRiskMarker) -> List[str]:
    tags: List[str] = []
    if marker.age_bucket == "cliff":
        tags.append("age cliff")
    elif marker.age_bucket == "declining":
        tags.append("declining")
    if marker.injury_status is not None and marker.injury_status.reinjury_risk == "high":
        tags.append("high reinjury risk")
    return tags


def build_reasons(ctx: TradeDecisionContext) -> List[str]:
    reasons: List[str] = []
    side_a, side_b = ctx.side_a, ctx.side_b
    pct = ctx.value_delta.percentage_diff
    favored = ctx.value_delta.favored_side

    if favored == "Even" or pct <= 3:
        reasons.append(
            f"Value is essentially even: Side A total {format_value(side_a.total_value)} "
            f"vs Side B total {format_value(side_b.total_value)} ({_pct(pct)}% gap)"
        )
    else:
        reasons.append(
            f"Side {favored} has a {_pct(pct)}% value edge: "
            f"{format_value(side_a.total_value)} (A) vs {format_value(side_b.total_value)} (B)"
        )

    top_a, top_b = _top_assets(side_a.assets), _top_assets(side_b.assets)
    if top_a and top_b:
        reasons.append(f"Key assets: Side A sends {_asset_labels(top_a)} | Side B sends {_asset_labels(top_b)}")

    a_filled = _needs_filled(side_a.needs, side_b.assets)
    b_filled = _needs_filled(side_b.needs, side_a.assets)
    if a_filled and b_filled:
        reasons.append(f"Roster fit is strong: Side A fills {a_filled} need(s), Side B fills {b_filled} need(s)")
    elif a_filled:
        reasons.append(f"Side A fills {a_filled} positional need(s); one-sided roster improvement")
    elif b_filled:
        reasons.append(f"Side B fills {b_filled} positional need(s); one-sided roster improvement")

    if (side_a.is_contender and side_b.is_rebuilder) or (side_b.is_contender and side_a.is_rebuilder):
        contender_side = "A" if side_a.is_contender else "B"
        contender_gets = side_b.assets if side_a.is_contender else side_a.assets
        rebuilder_gets = side_a.assets if side_a.is_contender else side_b.assets
        prime = sum(
            1 for a in contender_gets if a.age is not None and PRIME_AGE_RANGE[0] <= a.age <= PRIME_AGE_RANGE[1]
        )
        young = sum(1 for a in rebuilder_gets if a.age is not None and a.age <= YOUNG_MAX_AGE)
        if young or prime:
            reasons.append(
                f"Contender (Side {contender_side}) gets {prime} win-now piece(s), "
                f"rebuilder gets {young} young asset(s); classic window-aligned swap"
            )

    risky = [m for m in ctx.all_risk_markers if _risk_tags(m)]
    if risky:
        labels = [f"{m.player_name} ({', '.join(_risk_tags(m))})" for m in risky[:RISK_SAMPLE]]
        reasons.append(f"Risk factors: {'; '.join(labels)}")

    cornerstones = [a for a in ctx.all_assets if a.is_cornerstone]
    if cornerstones:
        labels = [f"{c.name}: {c.cornerstone_reason}" if c.cornerstone_reason else c.name for c in cornerstones[:2]]
        reasons.append(f"Cornerstone asset(s) in play: {'; '.join(labels)}")

    return reasons


def build_warnings(ctx: TradeDecisionContext) -> List[str]:
    warnings: List[str] = []
    missing = ctx.missing_data

    if missing.valuations_missing:
        warnings.append(f"Missing valuations for: {', '.join(missing.valuations_missing[:WARNING_SAMPLE])}")
    if missing.adp_missing:
        warnings.append(f"No ADP data for: {', '.join(missing.adp_missing[:WARNING_SAMPLE])}")
    if len(missing.analytics_missing) >= 3:
        warnings.append(f"Analytics data missing for {len(missing.analytics_missing)} player(s)")

    if ctx.source_freshness is not None:
        warnings.extend(ctx.source_freshness.warnings)
    else:
        if missing.valuation_data_stale:
            warnings.append("Player valuations may be outdated (>3 days)")
        if missing.injury_data_stale:
            warnings.append("Injury reports may be outdated (>7 days)")
        if missing.adp_data_stale:
            warnings.append("ADP rankings may be outdated")
        if missing.trade_history_stale:
            warnings.append("League trade history may be outdated")

    markers = ctx.all_risk_markers
    for marker in [m for m in markers if m.age_bucket == "cliff"][:RISK_SAMPLE]:
        age = f" (age {marker.current_age:g})" if marker.current_age else ""
        warnings.append(f"{marker.player_name} is at age cliff{age}; value likely to decline sharply")

    injured = [m for m in markers if m.injury_status is not None and not m.injury_status.is_active]
    for marker in injured[:RISK_SAMPLE]:
        injury = marker.injury_status
        kind = f" ({injury.type})" if injury.type else ""
        missed = f", est. {injury.missed_games} games missed" if injury.missed_games is not None else ""
        warnings.append(f"{marker.player_name} is {injury.status}{kind}{missed}")

    if missing.trade_history_insufficient:
        warnings.append("Limited trade history (<3 trades); acceptance signals are less reliable")
    if missing.competitor_data_unavailable:
        warnings.append("No competitor team data available; league context is incomplete")
    if missing.manager_tendencies_unavailable:
        warnings.append(f"No trade tendency data for: {', '.join(missing.manager_tendencies_unavailable)}")

    return warnings


def build_counters(ctx: TradeDecisionContext) -> List[str]:
    """Counter-offer baselines sized to the value gap; empty for near-even trades."""
    pct = ctx.value_delta.percentage_diff
    favored = ctx.value_delta.favored_side
    if pct <= 3 or favored == "Even":
        return []

    lighter_side = "B" if favored == "A" else "A"
    lighter = ctx.side_b if favored == "A" else ctx.side_a
    heavier = ctx.side_a if favored == "A" else ctx.side_b
    counters: List[str] = []

    if pct <= 15:
        if any(a.type == "PICK" for a in lighter.assets):
            counters.append(
                f"Consider adding a late-round pick from Side {lighter_side} to balance the {_pct(pct)}% difference"
            )
        else:
            counters.append(f"Side {lighter_side} could add a future mid-round pick to close the {_pct(pct)}% gap")
    elif pct <= 25:
        players = sorted((a for a in heavier.assets if a.type == "PLAYER"), key=lambda a: a.market_value)
        if players:
            smallest = players[0]
            counters.append(
                f"Removing {smallest.name} ({format_value(smallest.market_value)}) from Side {favored} would narrow the gap"
            )
        counters.append(f"Side {lighter_side} could add a future 2nd or 3rd round pick to close the {_pct(pct)}% gap")
    else:
        counters.append(
            f"{_pct(pct)}% gap is too large for minor adjustments; this trade likely needs to be "
            f"restructured with different core pieces"
        )
    return counters


def score_trade_context(ctx: TradeDecisionContext) -> DeterministicIntelligence:
    """Compute the deterministic confidence, reasons, warnings and counters."""
    return DeterministicIntelligence(
        confidence=compute_confidence(ctx),
        reasons=build_reasons(ctx),
        warnings=build_warnings(ctx),
        counters=build_counters(ctx),
    )
