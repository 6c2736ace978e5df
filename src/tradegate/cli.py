"""Command-line interface for TradeGate.

This module uses the :mod:`click` library to expose a thin operator
surface over the engine: a configuration check and a command that
evaluates one trade decision context end to end and prints (or writes)
the resulting quality gate JSON.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional

import click

from .config import LLM_MODES, PROVIDER_GROK, PROVIDER_OPENAI, PROVIDERS, TRADE_AI_MODES, EngineSettings
from .llm.client import FakeLLMClient, GrokClient, LLMClient, OpenAIClient
from .llm.orchestrator import ProviderOrchestrator
from .pipeline import dump_evaluation, evaluate_trade, load_context_file, review_trade

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Keys required to talk to the live providers, in report order.
LIVE_KEYS = ("OPENAI_API_KEY", "XAI_API_KEY")


@click.group()
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity for engine diagnostics (written to stderr).",
)
def cli(log_level: str) -> None:
    """TradeGate command-line interface."""
    logging.basicConfig(level=getattr(logging, log_level.upper()), format=LOG_FORMAT)


# The config-check command verifies that the environment variables needed
# for live provider calls are present.  In fake mode no keys are required.
# Missing variable names are reported in sorted order.
@cli.command(name="config-check")
@click.option(
    "--mode",
    default="fake",
    type=click.Choice(list(LLM_MODES), case_sensitive=False),
    help="Configuration mode to validate: 'fake' or 'live'",
)
def config_check(mode: str) -> None:
    """Validate that required configuration variables are present.

    In fake mode this command always succeeds.  In live mode it checks
    for the API keys of both providers; missing keys are listed and the
    command exits with status 2.
    """
    if mode.lower() == "fake":
        click.echo("OK (fake); live keys not required")
        return
    missing = sorted(key for key in LIVE_KEYS if not os.getenv(key))
    if missing:
        click.echo("Missing environment variables: " + ", ".join(missing), err=True)
        click.get_current_context().exit(2)
    click.echo("OK (live)")


def build_clients(settings: EngineSettings) -> Dict[str, LLMClient]:
    """Construct provider clients for the configured LLM mode.

    Fake mode returns deterministic offline clients.  Live mode only
    builds clients whose API key is present, so a single-provider setup
    still works; a missing provider then resolves to a failed result.
    """
    if settings.llm_mode == "fake":
        return {name: FakeLLMClient(name=name) for name in PROVIDERS}
    clients: Dict[str, LLMClient] = {}
    if os.getenv("OPENAI_API_KEY"):
        clients[PROVIDER_OPENAI] = OpenAIClient()
    if os.getenv("XAI_API_KEY"):
        clients[PROVIDER_GROK] = GrokClient()
    return clients


@cli.command()
@click.option(
    "--context",
    "context_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Trade decision context JSON file.",
)
@click.option("--mode", type=click.Choice(list(TRADE_AI_MODES), case_sensitive=False), default=None,
              help="Provider mode override (defaults to TRADE_AI_MODE).")
@click.option("--primary", type=click.Choice(list(PROVIDERS), case_sensitive=False), default=None,
              help="Primary provider override (defaults to TRADE_AI_PRIMARY).")
@click.option("--timeout-ms", type=click.IntRange(min=1), default=None,
              help="Per-provider timeout override in milliseconds.")
@click.option("--peer-review", is_flag=True, default=False,
              help="Ask providers to review the deterministic fact layer instead of analysing from scratch.")
@click.option("--output", "output_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the evaluation JSON here instead of stdout.")
def evaluate(
    context_path: Path,
    mode: Optional[str],
    primary: Optional[str],
    timeout_ms: Optional[int],
    peer_review: bool,
    output_path: Optional[Path],
) -> None:
    """Evaluate one trade decision context and emit the gated result.

    Exits with status 2 when the context cannot be loaded and with
    status 1 when the quality gate did not pass.
    """
    ctx = click.get_current_context()
    context = load_context_file(context_path)
    if context is None:
        click.echo(f"[error] {context_path} is not a supported trade decision context", err=True)
        ctx.exit(2)

    settings = EngineSettings.from_env()
    orchestrator = ProviderOrchestrator(build_clients(settings), settings)
    timeout_s = timeout_ms / 1000.0 if timeout_ms is not None else None
    if peer_review:
        evaluation = review_trade(context, orchestrator=orchestrator, mode=mode, timeout_s=timeout_s)
    else:
        evaluation = evaluate_trade(
            context, orchestrator=orchestrator, mode=mode, primary=primary, timeout_s=timeout_s
        )

    gate = evaluation.gate
    if output_path is not None:
        dump_evaluation(evaluation, output_path)
        click.echo(
            f"evaluate: passed={gate.passed} confidence={gate.adjusted_confidence} "
            f"violations={len(gate.violations)} path={output_path}"
        )
    else:
        click.echo(evaluation.model_dump_json(by_alias=True, indent=2))
    if not gate.passed:
        ctx.exit(1)


__all__ = ["cli", "build_clients"]
