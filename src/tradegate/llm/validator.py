"""Schema validation and scoring of untrusted provider output.

A provider payload passes through up to three named stages:

``STRICT``
    The payload is validated as-is in pydantic strict mode.
``COERCED``
    One repair pass (numeric strings, winner casing, list fields) and a
    second validation.
``SALVAGED``
    A best-effort record kept only when the mandatory narrative fields
    are present.  It is marked invalid so that scoring discounts it
    heavily, but its text is not thrown away.

Anything else is ``REJECTED``.  The stage that produced the record is
kept on the outcome so tests and logs can see its provenance.  This is
the only place where :class:`TradeAnalysis` and
:class:`PeerReviewVerdict` instances are created from provider data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .models import (
    WINNER_VALUES,
    ParseStage,
    PeerReviewVerdict,
    ProviderResult,
    TradeAnalysis,
)

SALVAGE_FALLBACK_FACTOR = "Analysis provided but schema incomplete"
SALVAGE_FALLBACK_WARNING = "Provider returned non-standard schema"
SALVAGE_DEFAULT_CONFIDENCE = 50.0

T = TypeVar("T", bound=BaseModel)

_WINNER_LOOKUP = {w.lower(): w for w in WINNER_VALUES}


@dataclass(frozen=True)
class ValidationOutcome(Generic[T]):
    """Tagged result of validating one payload."""

    stage: ParseStage
    record: Optional[T] = None
    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.stage in (ParseStage.STRICT, ParseStage.COERCED)


def _error_summary(exc: ValidationError) -> List[str]:
    return [f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in exc.errors()]


def _run_stages(
    payload: Any,
    model: Type[T],
    coerce: Callable[[Dict[str, Any]], Dict[str, Any]],
    salvage: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]],
) -> ValidationOutcome[T]:
    if not isinstance(payload, dict):
        return ValidationOutcome(ParseStage.REJECTED, None, ["payload is not a JSON object"])
    errors: List[str] = []

    try:
        return ValidationOutcome(ParseStage.STRICT, model.model_validate(payload, strict=True))
    except ValidationError as exc:
        errors.extend(f"strict {e}" for e in _error_summary(exc))

    try:
        return ValidationOutcome(ParseStage.COERCED, model.model_validate(coerce(payload)), errors)
    except ValidationError as exc:
        errors.extend(f"coerced {e}" for e in _error_summary(exc))

    repaired = salvage(payload)
    if repaired is not None:
        try:
            return ValidationOutcome(ParseStage.SALVAGED, model.model_validate(repaired), errors)
        except ValidationError as exc:
            errors.extend(f"salvaged {e}" for e in _error_summary(exc))
    return ValidationOutcome(ParseStage.REJECTED, None, errors)


def _normalize_winner(value: Any) -> Any:
    if isinstance(value, str):
        return _WINNER_LOOKUP.get(" ".join(value.split()).lower(), value)
    return value


def _coerce_number(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip().rstrip("%").strip()
        try:
            return float(text)
        except ValueError:
            return value
    return value


def _coerce_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str) and v.strip()]
    if isinstance(value, str) and value.strip():
        return [value]
    return []


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _clamped_confidence(value: Any) -> float:
    value = _coerce_number(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return SALVAGE_DEFAULT_CONFIDENCE
    return float(min(100.0, max(0.0, value)))


# --------------------------------------------------------------------------
# Trade analysis
# --------------------------------------------------------------------------

_ANALYSIS_LIST_FIELDS = ("agingConcerns", "recommendations")


def _coerce_analysis(raw: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(raw)
    data["winner"] = _normalize_winner(raw.get("winner"))
    data["confidence"] = _coerce_number(raw.get("confidence"))
    data["factors"] = _coerce_list(raw.get("factors"))
    for key in _ANALYSIS_LIST_FIELDS:
        if key in raw:
            data[key] = _coerce_list(raw.get(key))
    return data


def _salvage_analysis(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    winner = _normalize_winner(raw.get("winner"))
    verdict = _text(raw.get("dynastyVerdict"))
    if winner not in WINNER_VALUES or not verdict:
        return None
    repaired: Dict[str, Any] = {
        "winner": winner,
        "valueDelta": _text(raw.get("valueDelta")),
        "factors": _coerce_list(raw.get("factors")) or [SALVAGE_FALLBACK_FACTOR],
        "confidence": _clamped_confidence(raw.get("confidence")),
        "dynastyVerdict": verdict,
    }
    for key in _ANALYSIS_LIST_FIELDS:
        if isinstance(raw.get(key), list):
            repaired[key] = _coerce_list(raw[key])
    for key in ("vetoRisk", "youGiveAdjusted", "youWantAdded", "reason"):
        if isinstance(raw.get(key), str):
            repaired[key] = raw[key]
    return repaired


def validate_analysis(payload: Any) -> ValidationOutcome[TradeAnalysis]:
    """Validate a provider payload as a :class:`TradeAnalysis`."""
    return _run_stages(payload, TradeAnalysis, _coerce_analysis, _salvage_analysis)


# --------------------------------------------------------------------------
# Peer review
# --------------------------------------------------------------------------


def _coerce_peer_review(raw: Dict[str, Any]) -> Dict[str, Any]:
    reasons = raw.get("reasons") if isinstance(raw.get("reasons"), list) else raw.get("factors")
    return {
        "verdict": _normalize_winner(raw.get("verdict") or raw.get("winner")),
        "confidence": _coerce_number(raw.get("confidence")),
        "reasons": _coerce_list(reasons),
        "counters": _coerce_list(raw.get("counters")),
        "warnings": _coerce_list(raw.get("warnings")),
    }


def _salvage_peer_review(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    coerced = _coerce_peer_review(raw)
    if coerced["verdict"] not in WINNER_VALUES:
        return None
    return {
        "verdict": coerced["verdict"],
        "confidence": _clamped_confidence(raw.get("confidence")),
        "reasons": coerced["reasons"] or [SALVAGE_FALLBACK_FACTOR],
        "counters": coerced["counters"],
        "warnings": coerced["warnings"] or [SALVAGE_FALLBACK_WARNING],
    }


def validate_peer_review(payload: Any) -> ValidationOutcome[PeerReviewVerdict]:
    """Validate a provider payload as a :class:`PeerReviewVerdict`."""
    return _run_stages(payload, PeerReviewVerdict, _coerce_peer_review, _salvage_peer_review)


# --------------------------------------------------------------------------
# Scoring
# --------------------------------------------------------------------------


def score_analysis(analysis: Optional[TradeAnalysis], schema_valid: bool) -> float:
    """Deterministic quality score in [0, 100] for one provider's output.

    40 points for a schema-valid payload, up to 30 points scaled by the
    self-reported confidence, and bonuses for each well-populated
    optional section.
    """
    score = 40.0 if schema_valid else 0.0
    if analysis is not None:
        score += min(30.0, analysis.confidence / 100.0 * 30.0)
        if len(analysis.factors) >= 3:
            score += 10
        if len(analysis.value_delta) > 10:
            score += 5
        if len(analysis.dynasty_verdict) > 10:
            score += 5
        if analysis.recommendations:
            score += 5
        if analysis.aging_concerns:
            score += 5
    return max(0.0, min(100.0, score))


def score_provider_result(result: ProviderResult) -> float:
    """Score a :class:`ProviderResult`; see :func:`score_analysis`."""
    return score_analysis(result.analysis, result.schema_valid)
