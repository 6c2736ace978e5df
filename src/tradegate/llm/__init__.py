"""Provider clients, schema validation and consensus merging.

Provider output is untrusted: it enters the engine only through
:mod:`tradegate.llm.validator`, is scored there, and is combined into a
single consensus record by :mod:`tradegate.llm.consensus`.  The
:class:`ProviderOrchestrator` ties the pieces together.
"""

from .client import FakeLLMClient, GrokClient, LLMClient, OpenAIClient, extract_json_payload
from .consensus import WeightedBallot, dedupe_and_rank, detect_contradictions, merge_analyses, merge_peer_reviews
from .contracts import ANALYSIS_PROMPT_CONTRACT, PEER_REVIEW_PROMPT_CONTRACT
from .models import (
    ConsensusAnalysis,
    ConsensusMeta,
    ParseStage,
    PeerReviewConsensus,
    PeerReviewMeta,
    PeerReviewProviderResult,
    PeerReviewVerdict,
    ProviderResult,
    TradeAnalysis,
    verdict_side,
)
from .orchestrator import ProviderOrchestrator, ProviderRoutingError
from .validator import (
    ValidationOutcome,
    score_analysis,
    score_provider_result,
    validate_analysis,
    validate_peer_review,
)

__all__ = [
    "ANALYSIS_PROMPT_CONTRACT",
    "PEER_REVIEW_PROMPT_CONTRACT",
    "ConsensusAnalysis",
    "ConsensusMeta",
    "FakeLLMClient",
    "GrokClient",
    "LLMClient",
    "OpenAIClient",
    "ParseStage",
    "PeerReviewConsensus",
    "PeerReviewMeta",
    "PeerReviewProviderResult",
    "PeerReviewVerdict",
    "ProviderOrchestrator",
    "ProviderResult",
    "ProviderRoutingError",
    "TradeAnalysis",
    "ValidationOutcome",
    "WeightedBallot",
    "dedupe_and_rank",
    "detect_contradictions",
    "extract_json_payload",
    "merge_analyses",
    "merge_peer_reviews",
    "score_analysis",
    "score_provider_result",
    "validate_analysis",
    "validate_peer_review",
    "verdict_side",
]
