"""
Configuration constants and settings for the TradeGate project.

This module centralises configuration values that are used across the
application.  Constants are declared with ``Final``; the runtime
settings object is resolved once at process start via
:meth:`EngineSettings.from_env` and then passed explicitly to the
components that need it.  Business logic never reads the environment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Final, Mapping, Optional

logger = logging.getLogger(__name__)

PROJECT_NAME: Final[str] = "TradeGate"

# Major version of the trade decision context this engine understands.
# Contexts from a newer major version are rejected rather than guessed at.
SUPPORTED_CONTEXT_MAJOR: Final[int] = 1
TRADE_DECISION_CONTEXT_VERSION: Final[str] = "1.0.0"

# Provider A and provider B.  The order of this tuple is the call-issue
# order used when both providers are consulted.
PROVIDER_OPENAI: Final[str] = "openai"
PROVIDER_GROK: Final[str] = "grok"
PROVIDERS: Final[tuple[str, ...]] = (PROVIDER_OPENAI, PROVIDER_GROK)

MODE_OFF: Final[str] = "off"
MODE_BOTH: Final[str] = "both"
TRADE_AI_MODES: Final[tuple[str, ...]] = (MODE_OFF, PROVIDER_OPENAI, PROVIDER_GROK, MODE_BOTH)

LLM_MODES: Final[tuple[str, ...]] = ("fake", "live")

DEFAULT_MODE: Final[str] = MODE_BOTH
DEFAULT_PRIMARY: Final[str] = PROVIDER_OPENAI
DEFAULT_TIMEOUT_S: Final[float] = 15.0
DEFAULT_TEMPERATURE: Final[float] = 0.45
DEFAULT_MAX_TOKENS: Final[int] = 1500
DEFAULT_LLM_MODE: Final[str] = "fake"

PEER_REVIEW_TEMPERATURE: Final[float] = 0.4
PEER_REVIEW_MAX_TOKENS: Final[int] = 1500

# Absolute bounds for every confidence figure shown to a user.
CONFIDENCE_FLOOR: Final[int] = 15
CONFIDENCE_CAP: Final[int] = 90


@dataclass(frozen=True)
class EngineSettings:
    """Process-wide defaults for provider orchestration.

    Attributes:
        mode: One of ``off``, ``openai``, ``grok`` or ``both``.
        primary: Provider used for tie-breaking when merging analyses.
        timeout_s: Per-call timeout applied to each provider request.
        temperature: Sampling temperature sent to the providers.
        max_tokens: Maximum completion tokens sent to the providers.
        llm_mode: ``fake`` for deterministic offline clients, ``live`` for
            real network clients.
    """

    mode: str = DEFAULT_MODE
    primary: str = DEFAULT_PRIMARY
    timeout_s: float = DEFAULT_TIMEOUT_S
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    llm_mode: str = DEFAULT_LLM_MODE

    def __post_init__(self) -> None:
        if self.mode not in TRADE_AI_MODES:
            raise ValueError(f"Unknown mode '{self.mode}'. Allowed: {', '.join(TRADE_AI_MODES)}")
        if self.primary not in PROVIDERS:
            raise ValueError(f"Unknown primary provider '{self.primary}'. Allowed: {', '.join(PROVIDERS)}")
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        if self.llm_mode not in LLM_MODES:
            raise ValueError(f"Unknown LLM mode '{self.llm_mode}'. Allowed: {', '.join(LLM_MODES)}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        """Resolve settings from environment variables.

        Invalid values are logged and replaced by the defaults so that a
        typo in deployment configuration degrades to the documented
        behaviour instead of failing every request.

        Args:
            environ: Mapping to read from.  Defaults to ``os.environ``.

        Returns:
            A fully validated :class:`EngineSettings`.
        """
        env = os.environ if environ is None else environ

        mode = _choice(env, "TRADE_AI_MODE", TRADE_AI_MODES, DEFAULT_MODE)
        primary = _choice(env, "TRADE_AI_PRIMARY", PROVIDERS, DEFAULT_PRIMARY)
        llm_mode = _choice(env, "LLM_MODE", LLM_MODES, DEFAULT_LLM_MODE)

        timeout_ms = _number(env, "TRADE_AI_TIMEOUT_MS", DEFAULT_TIMEOUT_S * 1000, minimum=1)
        temperature = _number(env, "TRADE_AI_TEMPERATURE", DEFAULT_TEMPERATURE, minimum=0)
        max_tokens = _number(env, "TRADE_AI_MAX_TOKENS", DEFAULT_MAX_TOKENS, minimum=1)

        return cls(
            mode=mode,
            primary=primary,
            timeout_s=timeout_ms / 1000.0,
            temperature=temperature,
            max_tokens=int(max_tokens),
            llm_mode=llm_mode,
        )


def _choice(env: Mapping[str, str], name: str, allowed: tuple[str, ...], default: str) -> str:
    raw = (env.get(name) or "").strip().lower()
    if not raw:
        return default
    if raw not in allowed:
        logger.warning("Ignoring %s=%r; expected one of %s, using %r", name, raw, ", ".join(allowed), default)
        return default
    return raw


def _number(env: Mapping[str, str], name: str, default: float, *, minimum: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r; not a number, using %r", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Ignoring %s=%r; below minimum %r, using %r", name, raw, minimum, default)
        return default
    return value


__all__ = [
    "PROJECT_NAME",
    "SUPPORTED_CONTEXT_MAJOR",
    "TRADE_DECISION_CONTEXT_VERSION",
    "PROVIDER_OPENAI",
    "PROVIDER_GROK",
    "PROVIDERS",
    "MODE_OFF",
    "MODE_BOTH",
    "TRADE_AI_MODES",
    "LLM_MODES",
    "PEER_REVIEW_TEMPERATURE",
    "PEER_REVIEW_MAX_TOKENS",
    "CONFIDENCE_FLOOR",
    "CONFIDENCE_CAP",
    "EngineSettings",
]
