"""Entry point for running TradeGate as a module.

This allows the CLI to be invoked with ``python -m tradegate``.
"""

from .cli import cli

if __name__ == "__main__":  # pragma: no cover
    cli()
