"""
Intent router.

Maps the caller's intent label to one adapter, or to the research pipeline
(research adapter feeding the conversational adapter for a voice summary).
Classification is total: unknown labels use the conversational adapter.
Failures propagate unchanged; nothing is retried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence

from ..budget import Budget
from ..config import IntentSets, RoutingConfig
from ..deadline import Deadline
from ..logging_config import get_logger
from .base import ProviderResult, TextGenerationAdapter

logger = get_logger(__name__)


class IntentClass(Enum):
    CONVERSATIONAL = "conversational"
    CODE_OPS = "code_ops"
    RESEARCH = "research"
    DEFAULT = "default"


def classify_intent(intent: Optional[str], intent_sets: IntentSets) -> IntentClass:
    """Pure lookup; anything unlisted is DEFAULT."""
    label = (intent or "").strip()
    if label in intent_sets.conversational:
        return IntentClass.CONVERSATIONAL
    if label in intent_sets.code_ops:
        return IntentClass.CODE_OPS
    if label in intent_sets.research:
        return IntentClass.RESEARCH
    return IntentClass.DEFAULT


@dataclass(frozen=True)
class ExtractionRule:
    """One optional payload field that may carry the caller's words."""
    name: str
    field: str

    def extract(self, payload: Mapping[str, Any]) -> Optional[str]:
        value = payload.get(self.field)
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value is None:
            return None
        text = str(value).strip()
        return text or None


# Evaluated in order; first non-blank value wins
USER_INPUT_RULES: Sequence[ExtractionRule] = (
    ExtractionRule("speech", "SpeechResult"),
    ExtractionRule("transcription", "TranscriptionText"),
    ExtractionRule("message", "Body"),
    ExtractionRule("keypad", "Digits"),
    ExtractionRule("prompt", "prompt"),
)


def extract_user_input(
    payload: Mapping[str, Any],
    default: str,
    rules: Sequence[ExtractionRule] = USER_INPUT_RULES,
) -> str:
    for rule in rules:
        value = rule.extract(payload)
        if value is not None:
            return value
    return default


def _positive_number(value: Any) -> float:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number > 0 else 0.0


class IntentRouter:
    """Routes one request's intent to its adapter(s) against a single Budget."""

    def __init__(
        self,
        routing_config: RoutingConfig,
        *,
        conversational: TextGenerationAdapter,
        code_ops: TextGenerationAdapter,
        research: TextGenerationAdapter,
        provider_timeout_sec: float = 6.0,
    ):
        self._config = routing_config
        self.conversational = conversational
        self.code_ops = code_ops
        self.research = research
        self._provider_timeout_sec = provider_timeout_sec

    @property
    def adapters(self) -> Sequence[TextGenerationAdapter]:
        return (self.conversational, self.code_ops, self.research)

    async def start(self) -> None:
        for adapter in self.adapters:
            await adapter.start()

    async def stop(self) -> None:
        for adapter in self.adapters:
            await adapter.stop()

    async def route(
        self,
        intent: Optional[str],
        payload: Mapping[str, Any],
        budget: Budget,
        deadline: Optional[Deadline] = None,
    ) -> ProviderResult:
        cfg = self._config
        intent_class = classify_intent(intent, cfg.intents)
        user_input = extract_user_input(payload, cfg.default_prompt)

        logger.info(
            "Routing intent",
            intent=intent,
            intent_class=intent_class.value,
            ceiling_cents=budget.ceiling,
            utterance=user_input[:120],
        )

        if cfg.allow_simulation_hooks:
            await self._apply_simulation_hooks(payload, budget)

        if intent_class is IntentClass.CODE_OPS:
            result = await self.code_ops.call(
                user_input, budget, system_prompt=cfg.code_ops_system_prompt, deadline=deadline
            )
        elif intent_class is IntentClass.RESEARCH:
            result = await self._research_pipeline(user_input, budget, deadline)
        else:
            result = await self.conversational.call(user_input, budget, deadline=deadline)

        return ProviderResult(
            text=result.text or "",
            provider=result.provider,
            cost_cents=result.cost_cents,
            extras=dict(result.extras or {}),
        )

    async def _research_pipeline(
        self, user_input: str, budget: Budget, deadline: Optional[Deadline]
    ) -> ProviderResult:
        cfg = self._config
        digest = await self.research.call(
            user_input, budget, system_prompt=cfg.research_system_prompt, deadline=deadline
        )
        summary_prompt = f"{cfg.summary_prompt_prefix}\n\n{digest.text}"
        summary = await self.conversational.call(
            summary_prompt, budget, system_prompt=cfg.summary_system_prompt, deadline=deadline
        )
        extras: Dict[str, Any] = dict(summary.extras or {})
        extras["research"] = {"provider": digest.provider, **(digest.extras or {})}
        return ProviderResult(
            text=summary.text,
            provider=summary.provider,
            cost_cents=digest.cost_cents + summary.cost_cents,
            extras=extras,
        )

    async def _apply_simulation_hooks(self, payload: Mapping[str, Any], budget: Budget) -> None:
        """approx_tokens / force_delay hooks used by acceptance tests."""
        approx_tokens = _positive_number(payload.get("approx_tokens") or payload.get("approxTokens"))
        if approx_tokens > 0:
            budget.charge((approx_tokens / 1000.0) * self._config.simulation_rate_cents, "sim_tokens")

        force_delay = payload.get("force_delay")
        if isinstance(force_delay, (list, tuple)):
            force_delay = force_delay[0] if force_delay else None
        if str(force_delay or "") == "1":
            await asyncio.sleep(self._provider_timeout_sec + 1.0)
