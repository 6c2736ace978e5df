"""Concurrent orchestration of the two provider backends.

The orchestrator is the only concurrent component of the engine.  In
``both`` mode it issues the two provider calls together on a small
thread pool and waits for both outcomes, each bounded by its own
timeout; a slow or failing provider never cancels or blocks its
sibling.  In single-provider modes it calls the requested provider and,
if that yields no analysis, synchronously falls back to the other one.

Every code path returns a list of results in call-issue order (provider
A before provider B).  Exceptions raised by clients are recorded on the
result and never propagated.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, TypeVar, Union

from ..config import (
    MODE_BOTH,
    MODE_OFF,
    PEER_REVIEW_MAX_TOKENS,
    PEER_REVIEW_TEMPERATURE,
    PROVIDERS,
    TRADE_AI_MODES,
    EngineSettings,
)
from .client import ChatMessage, LLMClient, extract_json_payload
from .consensus import merge_analyses, merge_peer_reviews
from .contracts import PEER_REVIEW_PROMPT_CONTRACT
from .models import (
    ConsensusAnalysis,
    PeerReviewConsensus,
    PeerReviewProviderResult,
    ProviderResult,
)
from .validator import score_analysis, validate_analysis, validate_peer_review

logger = logging.getLogger(__name__)

R = TypeVar("R", ProviderResult, PeerReviewProviderResult)


class ProviderRoutingError(ValueError):
    """Raised when the orchestrator is configured with unknown providers."""


@dataclass(frozen=True)
class ProviderRequest:
    """The two-message prompt plus sampling parameters sent to a provider."""

    system: str
    user: str
    temperature: float
    max_tokens: int
    purpose: str = "analysis"

    def messages(self) -> List[ChatMessage]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def _elapsed_ms(start: float) -> int:
    return int(round((time.monotonic() - start) * 1000))


def _analysis_result(provider: str, text: Optional[str], latency_ms: int, error: Optional[str]) -> ProviderResult:
    if error is not None:
        return ProviderResult(provider=provider, latency_ms=latency_ms, error=error)
    payload = extract_json_payload(text)
    if payload is None:
        return ProviderResult(
            provider=provider,
            raw=text,
            latency_ms=latency_ms,
            error="No JSON object found in provider response",
        )
    outcome = validate_analysis(payload)
    return ProviderResult(
        provider=provider,
        analysis=outcome.record,
        raw=payload,
        latency_ms=latency_ms,
        error=None if outcome.record is not None else "Provider response failed schema validation",
        schema_valid=outcome.valid,
        confidence_score=score_analysis(outcome.record, outcome.valid),
        parse_stage=outcome.stage,
    )


def _peer_review_result(
    provider: str, text: Optional[str], latency_ms: int, error: Optional[str]
) -> PeerReviewProviderResult:
    if error is not None:
        return PeerReviewProviderResult(provider=provider, latency_ms=latency_ms, error=error)
    payload = extract_json_payload(text)
    if payload is None:
        return PeerReviewProviderResult(
            provider=provider,
            raw=text,
            latency_ms=latency_ms,
            error="No JSON object found in provider response",
        )
    outcome = validate_peer_review(payload)
    return PeerReviewProviderResult(
        provider=provider,
        verdict=outcome.record,
        raw=payload,
        latency_ms=latency_ms,
        error=None if outcome.record is not None else "Provider response failed schema validation",
        schema_valid=outcome.valid,
        parse_stage=outcome.stage,
    )


def _is_usable(result: Union[ProviderResult, PeerReviewProviderResult]) -> bool:
    if isinstance(result, ProviderResult):
        return result.analysis is not None
    return result.verdict is not None


class ProviderOrchestrator:
    """Runs provider calls according to a mode and returns their results.

    Args:
        clients: Mapping of provider name (``openai``/``grok``) to client.
            A provider missing from the mapping resolves to a failed
            result when requested.
        settings: Process-wide defaults; individual calls may override
            mode, primary provider and timeout.

    Raises:
        ProviderRoutingError: If ``clients`` names an unknown provider.
    """

    def __init__(self, clients: Mapping[str, LLMClient], settings: Optional[EngineSettings] = None) -> None:
        invalid = set(clients) - set(PROVIDERS)
        if invalid:
            raise ProviderRoutingError(
                f"Unknown providers configured: {', '.join(sorted(invalid))}. "
                f"Allowed providers are: {', '.join(PROVIDERS)}"
            )
        self.clients: Dict[str, LLMClient] = dict(clients)
        self.settings = settings or EngineSettings()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        *,
        system: str,
        user: str,
        mode: Optional[str] = None,
        timeout_s: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> List[ProviderResult]:
        """Query providers for a trade analysis.

        Returns:
            Zero, one or two :class:`ProviderResult` records in call-issue
            order.  Never raises.
        """
        request = ProviderRequest(
            system=system,
            user=user,
            temperature=self.settings.temperature if temperature is None else temperature,
            max_tokens=self.settings.max_tokens if max_tokens is None else max_tokens,
            purpose="analysis",
        )
        return self._dispatch(request, self._resolve_mode(mode), self._resolve_timeout(timeout_s), _analysis_result)

    def analyze(
        self,
        *,
        system: str,
        user: str,
        mode: Optional[str] = None,
        primary: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> Optional[ConsensusAnalysis]:
        """Query providers and merge their analyses into one consensus."""
        results = self.run(system=system, user=user, mode=mode, timeout_s=timeout_s)
        primary_provider = self._resolve_primary(primary)
        consensus = merge_analyses(results, primary_provider)
        if consensus is None:
            logger.warning("No provider produced a usable analysis (%d result(s))", len(results))
        else:
            logger.info(
                "Consensus %s | winner=%s conf=%s | latency=%dms",
                consensus.meta.consensus_method,
                consensus.winner,
                consensus.confidence,
                consensus.meta.total_latency_ms,
            )
        return consensus

    def run_peer_review(
        self,
        *,
        fact_layer_prompt: str,
        data_gaps_prompt: Optional[str] = None,
        mode: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> Optional[PeerReviewConsensus]:
        """Ask providers to peer-review the deterministic fact layer."""
        system = PEER_REVIEW_PROMPT_CONTRACT
        if data_gaps_prompt:
            system = f"{system}\n\n{data_gaps_prompt}"
        request = ProviderRequest(
            system=system,
            user=fact_layer_prompt,
            temperature=PEER_REVIEW_TEMPERATURE,
            max_tokens=PEER_REVIEW_MAX_TOKENS,
            purpose="peer_review",
        )
        results = self._dispatch(
            request, self._resolve_mode(mode), self._resolve_timeout(timeout_s), _peer_review_result
        )
        consensus = merge_peer_reviews(results)
        if consensus is not None:
            logger.info(
                "Peer review %s | verdict=%s conf=%s | adj=%s",
                consensus.meta.consensus_method,
                consensus.verdict,
                consensus.confidence,
                consensus.meta.confidence_adjustment,
            )
        return consensus

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_mode(self, mode: Optional[str]) -> str:
        resolved = (mode or self.settings.mode).lower()
        if resolved not in TRADE_AI_MODES:
            logger.warning("Unknown trade AI mode %r; using %r", resolved, self.settings.mode)
            return self.settings.mode
        return resolved

    def _resolve_primary(self, primary: Optional[str]) -> str:
        resolved = (primary or self.settings.primary).lower()
        return resolved if resolved in PROVIDERS else self.settings.primary

    def _resolve_timeout(self, timeout_s: Optional[float]) -> float:
        if timeout_s is None or timeout_s <= 0:
            return self.settings.timeout_s
        return timeout_s

    def _dispatch(
        self,
        request: ProviderRequest,
        mode: str,
        timeout_s: float,
        build: Callable[[str, Optional[str], int, Optional[str]], R],
    ) -> List[R]:
        if mode == MODE_OFF:
            return []
        if mode == MODE_BOTH:
            return self._call_concurrently(list(PROVIDERS), request, timeout_s, build)

        first = mode
        fallback = next(p for p in PROVIDERS if p != first)
        results = self._call_concurrently([first], request, timeout_s, build)
        if not _is_usable(results[0]):
            logger.warning(
                "%s failed (%s); attempting %s fallback",
                first,
                results[0].error or "no usable output",
                fallback,
            )
            results.extend(self._call_concurrently([fallback], request, timeout_s, build))
        return results

    def _invoke(self, provider: str, request: ProviderRequest, timeout_s: float) -> str:
        client = self.clients.get(provider)
        if client is None:
            raise RuntimeError(f"Provider '{provider}' is not configured")
        return client.complete(
            purpose=request.purpose,
            messages=request.messages(),
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            timeout=timeout_s,
        )

    def _call_concurrently(
        self,
        providers: List[str],
        request: ProviderRequest,
        timeout_s: float,
        build: Callable[[str, Optional[str], int, Optional[str]], R],
    ) -> List[R]:
        # Each call owns its own future; results are collected in issue order.
        executor = ThreadPoolExecutor(max_workers=len(providers), thread_name_prefix="tradegate-provider")
        try:
            start = time.monotonic()
            futures: List[Future] = [
                executor.submit(self._invoke, provider, request, timeout_s) for provider in providers
            ]
            results: List[R] = []
            for provider, future in zip(providers, futures):
                remaining = max(0.0, timeout_s - (time.monotonic() - start))
                try:
                    text = future.result(timeout=remaining)
                except FutureTimeoutError:
                    results.append(build(provider, None, _elapsed_ms(start), f"{provider} timed out after {timeout_s:g}s"))
                    continue
                except Exception as exc:
                    logger.warning("%s call failed: %s", provider, exc)
                    results.append(build(provider, None, _elapsed_ms(start), str(exc) or type(exc).__name__))
                    continue
                results.append(build(provider, text, _elapsed_ms(start), None))
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
