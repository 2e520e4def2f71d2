"""
Text-generation and speech-synthesis adapters plus the intent router.
"""

from ..budget import CostEstimator
from ..config import AppConfig
from .anthropic import ConversationalAdapter
from .base import Component, ProviderResult, TextGenerationAdapter
from .elevenlabs import SpeechSynthesisAdapter
from .openai import CodeOpsAdapter
from .perplexity import ResearchAdapter
from .router import ExtractionRule, IntentClass, IntentRouter, classify_intent, extract_user_input


def build_router(config: AppConfig, *, session_factory=None) -> IntentRouter:
    """Wire the three text-generation adapters into an IntentRouter."""
    estimator = CostEstimator(config.budget.chars_per_unit)
    timeout = config.timeouts.provider_call_sec
    common = dict(timeout_sec=timeout, estimator=estimator, session_factory=session_factory)
    return IntentRouter(
        config.routing,
        conversational=ConversationalAdapter(config.providers.anthropic, **common),
        code_ops=CodeOpsAdapter(config.providers.openai, **common),
        research=ResearchAdapter(config.providers.perplexity, **common),
        provider_timeout_sec=timeout,
    )


def build_synthesizer(config: AppConfig, *, session_factory=None) -> SpeechSynthesisAdapter:
    return SpeechSynthesisAdapter(
        config.providers.elevenlabs,
        config.server.audio_dir,
        timeout_sec=config.timeouts.synthesis_sec,
        public_base_url=config.server.public_base_url,
        session_factory=session_factory,
    )


__all__ = [
    "CodeOpsAdapter",
    "Component",
    "ConversationalAdapter",
    "ExtractionRule",
    "IntentClass",
    "IntentRouter",
    "ProviderResult",
    "ResearchAdapter",
    "SpeechSynthesisAdapter",
    "TextGenerationAdapter",
    "build_router",
    "build_synthesizer",
    "classify_intent",
    "extract_user_input",
]
