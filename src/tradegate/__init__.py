"""Top-level package for the TradeGate project.

This package reconciles two independently generated trade analyses with
a deterministic reading of the trade context.  Provider clients and the
consensus merger live in :mod:`tradegate.llm`, the context schema in
:mod:`tradegate.context`, and the deterministic scorer and quality gate
in :mod:`tradegate.quality`.
"""

__all__ = [
    "cli",
    "config",
    "context",
    "llm",
    "quality",
    "pipeline",
]
