"""LLM client abstraction for TradeGate.

This module defines a simple protocol for chat-completion clients and
a helper to recover a JSON object from a raw model response.  Two live
clients are provided (OpenAI and xAI Grok, both speaking the chat
completions wire format) plus a deterministic ``FakeLLMClient`` for
offline runs and tests, which never performs network calls.
"""

from __future__ import annotations

import json
import os
import re
from typing import Any, Dict, List, Optional, Protocol

import requests

ChatMessage = Dict[str, str]


class LLMClient(Protocol):
    """Protocol for language model clients.

    Concrete implementations must provide a ``complete`` method that
    sends the given chat messages and returns the raw textual content of
    the reply.  Transport or API failures are raised as exceptions; the
    orchestrator is responsible for turning them into failed results.
    """

    def complete(
        self,
        *,
        purpose: str,
        messages: List[ChatMessage],
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> str:
        raise NotImplementedError


_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def extract_json_payload(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Recover a JSON object from a raw model response.

    Attempts, in order: a direct parse of the whole text, a parse of the
    first fenced code block, and finally the first balanced ``{...}``
    substring.  Returns ``None`` if none of these yields a JSON object.
    """
    if not isinstance(text, str) or not text.strip():
        return None
    candidates: List[str] = [text.strip()]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    balanced = _first_balanced_object(text)
    if balanced:
        candidates.append(balanced)
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _first_balanced_object(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


class _ChatCompletionsClient:
    """Shared request logic for OpenAI-compatible chat completion APIs."""

    label = "LLM"
    json_mode = False

    def __init__(self, *, api_key: str, base_url: str, model: str) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model

    def complete(
        self,
        *,
        purpose: str,
        messages: List[ChatMessage],
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> str:
        """Perform a chat completion request.

        Args:
            purpose: Ignored by this client; routing is handled by the caller.
            messages: System and user messages.
            temperature: Sampling temperature.
            max_tokens: Maximum completion tokens.
            timeout: Request timeout in seconds.

        Returns:
            The raw content of the assistant's message.

        Raises:
            RuntimeError: On transport or API errors.
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self.json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(
                f"{self.base_url}/v1/chat/completions",
                headers=headers,
                json=payload,
                timeout=timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except Exception as exc:
            raise RuntimeError(f"{self.label} API call failed: {exc}") from exc
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise RuntimeError(f"{self.label} API returned no choices")
        content = (choices[0].get("message") or {}).get("content")
        if not isinstance(content, str):
            raise RuntimeError(f"{self.label} API response missing content")
        return content


class OpenAIClient(_ChatCompletionsClient):
    """Client for OpenAI's GPT models (provider A).

    Reads ``OPENAI_API_KEY``, ``OPENAI_BASE_URL`` and ``OPENAI_MODEL``
    from the environment unless given explicitly.  Requests JSON-object
    output so the reply body is the analysis itself.
    """

    label = "OpenAI"
    json_mode = True

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
        if not key:
            raise ValueError("OPENAI_API_KEY environment variable must be set for OpenAIClient")
        super().__init__(
            api_key=key,
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or "https://api.openai.com",
            model=(model or os.getenv("OPENAI_MODEL") or "gpt-4o").strip(),
        )


class GrokClient(_ChatCompletionsClient):
    """Client for xAI's Grok models (provider B).

    Reads ``XAI_API_KEY``, ``XAI_BASE_URL`` and ``XAI_MODEL``.  Grok
    answers in free text that usually, but not always, contains a fenced
    JSON block; callers extract it with :func:`extract_json_payload`.
    """

    label = "Grok"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        key = (api_key or os.getenv("XAI_API_KEY") or "").strip()
        if not key:
            raise ValueError("XAI_API_KEY environment variable must be set for GrokClient")
        super().__init__(
            api_key=key,
            base_url=base_url or os.getenv("XAI_BASE_URL") or "https://api.x.ai",
            model=(model or os.getenv("XAI_MODEL") or "grok-3").strip(),
        )


class FakeLLMClient:
    """Deterministic fake LLM for offline runs and testing.

    The fake client reads the trade context serialised as JSON in the
    user message and answers with a schema-valid analysis (or peer
    review) that follows the context's value delta.  It never accesses
    network or file resources and always returns the same output for
    the same input.
    """

    def __init__(self, name: str = "fake") -> None:
        self.name = name

    def complete(
        self,
        *,
        purpose: str,
        messages: List[ChatMessage],
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> str:
        user = next((m.get("content", "") for m in reversed(messages) if m.get("role") == "user"), "")
        try:
            payload = json.loads(user)
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        if purpose == "peer_review":
            return self._peer_review(payload)
        if purpose == "analysis":
            return self._analysis(payload)
        raise ValueError(f"Unknown purpose: {purpose}")

    @staticmethod
    def _read_delta(payload: Dict[str, Any]) -> tuple[str, float]:
        delta = payload.get("valueDelta") or {}
        side = delta.get("favoredSide") or "Even"
        try:
            pct = float(delta.get("percentageDiff") or 0)
        except (TypeError, ValueError):
            pct = 0.0
        return side, pct

    @staticmethod
    def _winner(side: str, pct: float) -> str:
        if side not in ("A", "B") or pct <= 3:
            return "Even"
        if pct >= 10:
            return f"Team {side}"
        return f"Slight edge to Team {side}"

    @staticmethod
    def _top_asset(payload: Dict[str, Any], side_key: str) -> Optional[str]:
        assets = (payload.get(side_key) or {}).get("assets") or []
        best = None
        best_value = None
        for asset in assets:
            if not isinstance(asset, dict) or not asset.get("name"):
                continue
            value = asset.get("marketValue") or 0
            if best_value is None or value > best_value:
                best, best_value = asset["name"], value
        return best

    def _factors(self, payload: Dict[str, Any], side: str, pct: float) -> List[str]:
        factors = [f"Value gap of {pct:g}% favours side {side}" if side in ("A", "B") else "Values are close to even"]
        for side_key, label in (("sideA", "A"), ("sideB", "B")):
            top = self._top_asset(payload, side_key)
            if top:
                factors.append(f"{top} is the headline piece sent by side {label}")
        return factors

    def _analysis(self, payload: Dict[str, Any]) -> str:
        side, pct = self._read_delta(payload)
        body = {
            "winner": self._winner(side, pct),
            "valueDelta": f"{pct:g}% difference in market value",
            "factors": self._factors(payload, side, pct),
            "confidence": min(90, 55 + int(pct)),
            "dynastyVerdict": f"{self.name} reads this as {self._winner(side, pct).lower()} on current values",
            "vetoRisk": "Low",
            "recommendations": [],
        }
        return json.dumps(body)

    def _peer_review(self, payload: Dict[str, Any]) -> str:
        side, pct = self._read_delta(payload)
        body = {
            "verdict": self._winner(side, pct),
            "confidence": min(90, 55 + int(pct)),
            "reasons": self._factors(payload, side, pct),
            "counters": [],
            "warnings": [],
        }
        return json.dumps(body)
