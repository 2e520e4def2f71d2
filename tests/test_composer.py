import asyncio
import time
import xml.etree.ElementTree as ET

import pytest

from voice_bridge.composer import ResponseComposer
from voice_bridge.pipelines import build_router, build_synthesizer
from voice_bridge.webhook import InboundCall

FALLBACK = "I'll text you our booking link right away."


def _composer(config, backends):
    return ResponseComposer(
        config,
        build_router(config, session_factory=backends.session_factory),
        build_synthesizer(config, session_factory=backends.session_factory),
    )


def _spoken(body):
    root = ET.fromstring(body.encode("utf-8"))
    say = root.find("Say")
    return say.text if say is not None else None


def _played(body):
    root = ET.fromstring(body.encode("utf-8"))
    play = root.find("Play")
    return play.text if play is not None else None


@pytest.mark.asyncio
async def test_audio_response_when_everything_succeeds(make_config, backends):
    config = make_config()
    call = InboundCall.from_verified_payload({"CallSid": "CA9", "SpeechResult": "tour?"}, config)

    response = await _composer(config, backends).compose(call, "http://127.0.0.1:8080")

    assert response.status == 200
    assert response.outcome == "audio"
    url = _played(response.body)
    assert url.startswith("http://127.0.0.1:8080/audio/CA9-")
    assert backends.providers_called() == ["anthropic", "elevenlabs"]


@pytest.mark.asyncio
async def test_spoken_text_when_synthesis_fails(make_config, backends):
    backends.replies["anthropic"] = "Tours run 9 to 5 & weekends <by appointment>."
    backends.replies["elevenlabs"] = (500, "tts down")
    config = make_config()
    call = InboundCall.from_verified_payload({}, config)

    response = await _composer(config, backends).compose(call, "http://127.0.0.1:8080")

    assert response.status == 200
    assert response.outcome == "text"
    assert _spoken(response.body) == "Tours run 9 to 5 & weekends <by appointment>."


@pytest.mark.asyncio
async def test_spoken_text_when_synthesis_times_out(make_config, backends):
    async def slow_tts(payload):
        await asyncio.sleep(5)
        return b"late"

    backends.replies["elevenlabs"] = slow_tts
    config = make_config(timeouts={"synthesis_sec": 0.1})
    call = InboundCall.from_verified_payload({}, config)

    started = time.monotonic()
    response = await _composer(config, backends).compose(call)

    assert time.monotonic() - started < 2.0
    assert response.outcome == "text"
    assert _spoken(response.body) == "Happy to help you book a walkthrough this week."


@pytest.mark.asyncio
async def test_fallback_when_budget_exceeded(make_config, backends):
    config = make_config()
    call = InboundCall.from_verified_payload({"budget_cents": "0.0001"}, config)

    response = await _composer(config, backends).compose(call)

    assert call.budget_ceiling == 0.0001
    assert response.status == 200
    assert response.outcome == "fallback"
    assert _spoken(response.body) == FALLBACK
    assert backends.calls == []


@pytest.mark.asyncio
async def test_fallback_when_provider_fails(make_config, backends):
    backends.replies["openai"] = (401, '{"error": "invalid key"}')
    config = make_config()
    call = InboundCall.from_verified_payload({"intent": "ops_patch"}, config)

    response = await _composer(config, backends).compose(call)

    assert _spoken(response.body) == FALLBACK
    assert "elevenlabs" not in backends.providers_called()


@pytest.mark.asyncio
async def test_fallback_when_routing_times_out(make_config, backends):
    async def slow_reply(payload):
        await asyncio.sleep(5)
        return "too late"

    backends.replies["anthropic"] = slow_reply
    config = make_config(timeouts={"routing_sec": 0.2, "synthesis_sec": 0.1})
    call = InboundCall.from_verified_payload({}, config)

    started = time.monotonic()
    response = await _composer(config, backends).compose(call)

    assert time.monotonic() - started < 2.0
    assert response.outcome == "fallback"
    assert _spoken(response.body) == FALLBACK


@pytest.mark.asyncio
async def test_fallback_when_routing_text_empty(make_config, backends):
    backends.replies["anthropic"] = "   "
    config = make_config()
    call = InboundCall.from_verified_payload({}, config)

    response = await _composer(config, backends).compose(call)

    assert _spoken(response.body) == FALLBACK
    assert backends.providers_called() == ["anthropic"]


class _ExplodingRouter:
    async def route(self, intent, payload, budget, deadline=None):
        raise RuntimeError("unexpected")


@pytest.mark.asyncio
async def test_fallback_on_unexpected_routing_error(make_config, backends):
    config = make_config()
    composer = ResponseComposer(
        config, _ExplodingRouter(), build_synthesizer(config, session_factory=backends.session_factory)
    )

    response = await composer.compose(InboundCall.from_verified_payload({}, config))

    assert response.outcome == "fallback"
    assert _spoken(response.body) == FALLBACK


def test_unauthorized_is_403_with_spoken_message(make_config, backends):
    config = make_config()

    response = _composer(config, backends).unauthorized()

    assert response.status == 403
    assert response.outcome == "unauthorized"
    assert _spoken(response.body) == "Unauthorized"


class TestInboundCall:
    def test_defaults(self, make_config):
        config = make_config()
        call = InboundCall.from_verified_payload({"CallSid": "CA1"}, config)

        assert call.intent == "concierge_dialog"
        assert call.call_id == "CA1"
        assert call.budget_ceiling == 50.0

    @pytest.mark.parametrize("raw", ["abc", "0", "-3", "nan", "inf"])
    def test_invalid_budget_override_uses_default(self, make_config, raw):
        config = make_config()
        call = InboundCall.from_verified_payload({"budgetCents": raw}, config)

        assert call.budget_ceiling == 50.0

    def test_camel_case_budget_override(self, make_config):
        call = InboundCall.from_verified_payload({"budgetCents": "7.5"}, make_config())

        assert call.budget_ceiling == 7.5
