"""End-to-end trade evaluation.

This module wires the components together for one trade: it asks the
providers for an opinion through the :class:`ProviderOrchestrator`,
merges their answers, and passes the consensus with the trade context
through the quality gate.  Provider problems never surface as
exceptions here; a trade with no usable provider answer is still
evaluated on the deterministic reading alone.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .context.models import TradeDecisionContext, load_context
from .llm.contracts import ANALYSIS_PROMPT_CONTRACT
from .llm.models import ConsensusAnalysis, PeerReviewConsensus, WireModel
from .llm.orchestrator import ProviderOrchestrator
from .quality.deterministic import score_trade_context
from .quality.gate import run_quality_gate
from .quality.models import QualityGateResult


class TradeEvaluation(WireModel):
    """Consensus (if any) plus the gate result for one trade."""

    consensus: Optional[Union[ConsensusAnalysis, PeerReviewConsensus]] = None
    gate: QualityGateResult


def load_context_file(path: Path) -> Optional[TradeDecisionContext]:
    """Load a trade decision context from a JSON file.

    Args:
        path: File containing the context JSON emitted by the assembler.

    Returns:
        The parsed context, or ``None`` if the file is missing, is not
        valid JSON or does not describe a supported context.
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None
    return load_context(data)


def build_user_prompt(context: TradeDecisionContext) -> str:
    """Serialise the context as the user message sent to providers."""
    return context.model_dump_json(by_alias=True)


def build_fact_layer_prompt(context: TradeDecisionContext) -> str:
    """Context plus its deterministic reading, for peer review."""
    payload: Dict[str, Any] = context.model_dump(mode="json", by_alias=True)
    payload["deterministic"] = score_trade_context(context).model_dump(mode="json", by_alias=True)
    return json.dumps(payload, sort_keys=True)


def build_data_gaps_prompt(context: TradeDecisionContext) -> Optional[str]:
    """Describe missing upstream data so reviewers can temper their confidence."""
    missing = context.missing_data
    lines = []
    if missing.valuations_missing:
        lines.append(f"- No valuation for: {', '.join(missing.valuations_missing)}")
    if missing.adp_missing:
        lines.append(f"- No ADP for: {', '.join(missing.adp_missing)}")
    if missing.competitor_data_unavailable:
        lines.append("- No competitor team data")
    if missing.trade_history_insufficient:
        lines.append("- Fewer than 3 league trades on record")
    if not lines:
        return None
    return "DATA GAPS (do not assume values for these):\n" + "\n".join(lines)


def evaluate_trade(
    context: TradeDecisionContext,
    *,
    orchestrator: ProviderOrchestrator,
    system_prompt: str = ANALYSIS_PROMPT_CONTRACT,
    user_prompt: Optional[str] = None,
    mode: Optional[str] = None,
    primary: Optional[str] = None,
    timeout_s: Optional[float] = None,
) -> TradeEvaluation:
    """Run providers, merge their analyses and gate the result.

    Args:
        context: The trade decision context.
        orchestrator: Configured provider orchestrator.
        system_prompt: System message for the providers.
        user_prompt: User message; defaults to the serialised context.
        mode: Per-call override of the provider mode.
        primary: Per-call override of the primary provider.
        timeout_s: Per-call override of the provider timeout.

    Returns:
        A :class:`TradeEvaluation`.
    """
    consensus = orchestrator.analyze(
        system=system_prompt,
        user=user_prompt if user_prompt is not None else build_user_prompt(context),
        mode=mode,
        primary=primary,
        timeout_s=timeout_s,
    )
    return TradeEvaluation(consensus=consensus, gate=run_quality_gate(consensus, context))


def review_trade(
    context: TradeDecisionContext,
    *,
    orchestrator: ProviderOrchestrator,
    mode: Optional[str] = None,
    timeout_s: Optional[float] = None,
) -> TradeEvaluation:
    """Peer-review the deterministic fact layer and gate the merged review."""
    consensus = orchestrator.run_peer_review(
        fact_layer_prompt=build_fact_layer_prompt(context),
        data_gaps_prompt=build_data_gaps_prompt(context),
        mode=mode,
        timeout_s=timeout_s,
    )
    return TradeEvaluation(consensus=consensus, gate=run_quality_gate(consensus, context))


def dump_evaluation(evaluation: Union[TradeEvaluation, QualityGateResult], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(evaluation.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
