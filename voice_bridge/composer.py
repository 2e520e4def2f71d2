"""
Response composer: the degrade chain for one verified request.

    routing fails (budget / timeout / provider)  -> fallback message
    routing yields empty text                    -> fallback message
    synthesis succeeds                           -> <Play> audio reference
    synthesis fails or yields no reference       -> <Say> the text itself

Routing runs under one deadline covering every provider call it makes;
synthesis gets its own, shorter deadline that starts after routing ends.
Every path returns markup.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

from . import markup
from .budget import create_budget
from .config import AppConfig
from .deadline import Deadline
from .errors import ROUTING_ERROR_KINDS, BridgeError, ErrorKind, StageTimeout, SynthesisError
from .logging_config import get_logger
from .metrics import REQUEST_SPEND_CENTS, ROUTING_FAILURES, STAGE_SECONDS, SYNTHESIS_FAILURES, WEBHOOK_OUTCOMES
from .pipelines import IntentRouter, ProviderResult, SpeechSynthesisAdapter
from .webhook import InboundCall

logger = get_logger(__name__)

OUTCOME_AUDIO = "audio"
OUTCOME_TEXT = "text"
OUTCOME_FALLBACK = "fallback"
OUTCOME_UNAUTHORIZED = "unauthorized"

# Log event per routing failure kind; the caller sees the same fallback for all
_ROUTING_FAILURE_EVENTS = {
    ErrorKind.BUDGET_EXCEEDED: "Routing stopped: budget exceeded",
    ErrorKind.TIMEOUT: "Routing stopped: stage timeout",
    ErrorKind.PROVIDER: "Routing stopped: provider error",
}


@dataclass
class ComposedResponse:
    body: str
    status: int = 200
    outcome: str = OUTCOME_FALLBACK


class ResponseComposer:
    def __init__(self, config: AppConfig, router: IntentRouter, synthesizer: SpeechSynthesisAdapter):
        self._config = config
        self.router = router
        self.synthesizer = synthesizer

    def unauthorized(self) -> ComposedResponse:
        WEBHOOK_OUTCOMES.labels(OUTCOME_UNAUTHORIZED).inc()
        return ComposedResponse(
            body=markup.say(self._config.webhook.unauthorized_message),
            status=403,
            outcome=OUTCOME_UNAUTHORIZED,
        )

    def fallback(self) -> ComposedResponse:
        WEBHOOK_OUTCOMES.labels(OUTCOME_FALLBACK).inc()
        return ComposedResponse(body=markup.say(self._config.routing.fallback_message), outcome=OUTCOME_FALLBACK)

    async def compose(self, call: InboundCall, base_url: Optional[str] = None) -> ComposedResponse:
        """Run routing then synthesis for an authenticated call."""
        result = await self._route(call)
        if result is None:
            return self.fallback()

        text = (result.text or "").strip()
        if not text:
            logger.warning("Routing returned empty text; using fallback", provider=result.provider)
            return self.fallback()

        reference = await self._synthesize(text, call, base_url)
        if reference:
            WEBHOOK_OUTCOMES.labels(OUTCOME_AUDIO).inc()
            return ComposedResponse(body=markup.play(reference), outcome=OUTCOME_AUDIO)

        WEBHOOK_OUTCOMES.labels(OUTCOME_TEXT).inc()
        return ComposedResponse(body=markup.say(text), outcome=OUTCOME_TEXT)

    async def _route(self, call: InboundCall) -> Optional[ProviderResult]:
        """Routing stage; None means the fallback message must be used."""
        timeout_sec = self._config.timeouts.routing_sec
        budget = create_budget(call.budget_ceiling)
        deadline = Deadline(timeout_sec, "routing")
        started = time.monotonic()
        try:
            return await asyncio.wait_for(
                self.router.route(call.intent, call.payload, budget, deadline),
                timeout=timeout_sec,
            )
        except asyncio.TimeoutError:
            err = StageTimeout(stage="routing", timeout_sec=timeout_sec)
            self._log_routing_failure(err, call)
            return None
        except BridgeError as err:
            self._log_routing_failure(err, call)
            return None
        except Exception as exc:
            ROUTING_FAILURES.labels("unexpected").inc()
            logger.error("Routing failed unexpectedly", intent=call.intent, error=str(exc), exc_info=True)
            return None
        finally:
            STAGE_SECONDS.labels("routing").observe(time.monotonic() - started)
            REQUEST_SPEND_CENTS.observe(budget.spent)
            logger.info(
                "Routing stage finished",
                intent=call.intent,
                spent_cents=budget.spent,
                ceiling_cents=budget.ceiling,
                charges=len(budget.charges),
            )

    def _log_routing_failure(self, err: BridgeError, call: InboundCall) -> None:
        ROUTING_FAILURES.labels(err.kind.value).inc()
        if err.kind not in ROUTING_ERROR_KINDS:
            # Authentication and synthesis errors cannot originate in routing
            logger.error("Routing raised an out-of-stage error", intent=call.intent, **err.log_fields())
            return
        logger.warning(_ROUTING_FAILURE_EVENTS[err.kind], intent=call.intent, **err.log_fields())

    async def _synthesize(self, text: str, call: InboundCall, base_url: Optional[str]) -> Optional[str]:
        """Synthesis stage; None means degrade to spoken text."""
        timeout_sec = self._config.timeouts.synthesis_sec
        deadline = Deadline(timeout_sec, "synthesis")
        started = time.monotonic()
        try:
            return await asyncio.wait_for(
                self.synthesizer.synthesize(text, base_url=base_url, prefix=call.call_id, deadline=deadline),
                timeout=timeout_sec,
            )
        except asyncio.TimeoutError:
            self._log_synthesis_failure(SynthesisError("timeout"))
            return None
        except SynthesisError as err:
            self._log_synthesis_failure(err)
            return None
        except Exception as exc:
            SYNTHESIS_FAILURES.labels("unexpected").inc()
            logger.error("Synthesis failed unexpectedly; using text fallback", error=str(exc), exc_info=True)
            return None
        finally:
            STAGE_SECONDS.labels("synthesis").observe(time.monotonic() - started)

    @staticmethod
    def _log_synthesis_failure(err: SynthesisError) -> None:
        SYNTHESIS_FAILURES.labels(err.reason).inc()
        logger.warning("Synthesis failed; using text fallback", **err.log_fields())
