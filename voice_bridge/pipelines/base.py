"""
Foundational pipeline abstractions for text-generation and synthesis adapters.

Every text-generation backend implements the same contract: accept a prompt
and the request's Budget, charge the estimated input cost before the call,
issue exactly one HTTP request under a timeout, charge the output cost after
success, and return a ProviderResult whose shape does not depend on which
backend answered.
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp

from ..budget import Budget, CostEstimator
from ..deadline import Deadline
from ..errors import ProviderError, StageTimeout
from ..logging_config import get_logger
from ..metrics import PROVIDER_CALLS

logger = get_logger(__name__)

USER_AGENT = "Voice-Cloud-Bridge/1.0"


@dataclass
class ProviderResult:
    """Uniform text-generation result. ``cost_cents`` is already charged."""
    text: str = ""
    provider: str = ""
    cost_cents: float = 0.0
    extras: Dict[str, Any] = field(default_factory=dict)


class Component(ABC):
    """Base class for all pipeline components."""

    def __init__(self, session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None):
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Warm up component resources (optional)."""

    async def stop(self) -> None:
        """Release the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _ensure_session(self) -> None:
        if self._session and not self._session.closed:
            return
        factory = self._session_factory or aiohttp.ClientSession
        self._session = factory()


class TextGenerationAdapter(Component):
    """Shared call flow for the text-generation backends."""

    #: short provider label used in budget reasons, logs and metrics
    name: str = "provider"

    def __init__(
        self,
        provider_config,
        *,
        timeout_sec: float = 6.0,
        estimator: Optional[CostEstimator] = None,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        super().__init__(session_factory)
        self._config = provider_config
        self._timeout_sec = float(timeout_sec)
        self._estimator = estimator or CostEstimator()

    async def start(self) -> None:
        logger.debug(
            "Text generation adapter initialized",
            provider=self.name,
            model=self._config.model,
            credentials_present=bool(self._config.api_key),
        )

    async def call(
        self,
        prompt: str,
        budget: Budget,
        *,
        system_prompt: Optional[str] = None,
        max_output_units: Optional[int] = None,
        deadline: Optional[Deadline] = None,
    ) -> ProviderResult:
        """Generate speakable text for ``prompt``, charging ``budget``.

        Raises:
            ProviderError: missing credentials, non-success status, bad payload
                or transport failure.
            BudgetExceeded: input or output charge would cross the ceiling.
            StageTimeout: the call or the stage deadline ran out.
        """
        if not self._config.api_key:
            raise ProviderError(self.name, None, f"{self.name} API key missing")

        timeout_sec = deadline.clamp(self._timeout_sec) if deadline else self._timeout_sec

        prompt = prompt or ""
        input_cost = self._estimator.cost(prompt, self._config.input_rate_cents)
        budget.charge(input_cost, f"{self.name}_in")

        url, headers, payload = self._build_request(
            prompt,
            system_prompt or self._config.system_prompt,
            max_output_units or self._config.max_tokens,
        )

        await self._ensure_session()
        assert self._session

        logger.debug(
            "Provider request",
            provider=self.name,
            model=payload.get("model"),
            prompt_chars=len(prompt),
            timeout_sec=round(timeout_sec, 3),
        )

        started = time.monotonic()
        try:
            timeout = aiohttp.ClientTimeout(total=timeout_sec)
            async with self._session.post(url, json=payload, headers=headers, timeout=timeout) as response:
                body = await response.text()
                status = response.status
        except asyncio.TimeoutError:
            PROVIDER_CALLS.labels(self.name, "timeout").inc()
            logger.warning("Provider request timeout", provider=self.name, timeout_sec=round(timeout_sec, 3))
            raise StageTimeout(stage="provider", timeout_sec=timeout_sec)
        except aiohttp.ClientError as exc:
            PROVIDER_CALLS.labels(self.name, "transport_error").inc()
            logger.error("Provider connection error", provider=self.name, error=str(exc))
            raise ProviderError(self.name, None, str(exc))

        if status >= 400:
            PROVIDER_CALLS.labels(self.name, "http_error").inc()
            logger.error("Provider request failed", provider=self.name, status=status, body_preview=body[:128])
            raise ProviderError(self.name, status, body)

        try:
            data = json.loads(body) if body else {}
        except json.JSONDecodeError:
            PROVIDER_CALLS.labels(self.name, "invalid_json").inc()
            logger.error("Provider returned invalid JSON", provider=self.name, status=status, body_preview=body[:128])
            raise ProviderError(self.name, status, f"invalid JSON: {body}")

        text = self._extract_text(data)
        if not isinstance(text, str):
            text = ""

        output_cost = self._estimator.cost(text, self._config.output_rate_cents)
        budget.charge(output_cost, f"{self.name}_out")
        PROVIDER_CALLS.labels(self.name, "ok").inc()

        logger.info(
            "Provider response received",
            provider=self.name,
            latency_ms=int((time.monotonic() - started) * 1000),
            response_chars=len(text),
            spent_cents=budget.spent,
            preview=text[:80],
        )
        return ProviderResult(
            text=text,
            provider=self.name,
            cost_cents=input_cost + output_cost,
            extras=self._extract_extras(data),
        )

    @abstractmethod
    def _build_request(
        self, prompt: str, system_prompt: str, max_tokens: int
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, json payload) for one call."""

    @abstractmethod
    def _extract_text(self, data: Dict[str, Any]) -> str:
        """Pull speakable text out of the provider envelope."""

    def _extract_extras(self, data: Dict[str, Any]) -> Dict[str, Any]:
        usage = data.get("usage") if isinstance(data, dict) else None
        return {"usage": usage} if usage else {}


def openai_style_text(data: Dict[str, Any]) -> str:
    """``choices[0].message.content`` or empty string."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message") or {}
    content = message.get("content")
    return content if isinstance(content, str) else ""
