import datetime
import xml.etree.ElementTree as ET

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer, make_mocked_request

from voice_bridge.security import compute_signature
from voice_bridge.server import SERVER_KEY, create_app

FALLBACK = "I'll text you our booking link right away."


def _signed_headers(client, config, params, path="/voice/ai"):
    url = str(client.make_url(path))
    signature = compute_signature(url, params, config.webhook.auth_token)
    return {"X-Twilio-Signature": signature}


def _root(text):
    return ET.fromstring(text.encode("utf-8"))


@pytest.mark.asyncio
async def test_signed_form_request_plays_audio(make_config, backends):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)
    params = {"CallSid": "CA77", "SpeechResult": "Can I see the loft?", "intent": "concierge_dialog"}

    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/voice/ai", data=params, headers=_signed_headers(client, config, params))
        body = await resp.text()

        assert resp.status == 200
        assert resp.content_type == "text/xml"
        play_url = _root(body).find("Play").text
        assert play_url.startswith(str(client.make_url("/audio/CA77-")))

        audio = await client.get("/audio/" + play_url.rsplit("/", 1)[1])
        assert audio.status == 200
        assert audio.headers["Content-Type"] == "audio/mpeg"
        assert await audio.read() == backends.replies["elevenlabs"]

    assert backends.providers_called() == ["anthropic", "elevenlabs"]
    assert all(session.closed for session in backends.sessions)


@pytest.mark.asyncio
async def test_unsigned_request_rejected_before_any_backend(make_config, backends):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)

    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/voice/ai", data={"CallSid": "CA1"})
        body = await resp.text()

    assert resp.status == 403
    assert _root(body).find("Say").text == "Unauthorized"
    assert backends.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content_type",
    ["application/x-www-form-urlencoded", "application/x-www-form-urlencoded; charset=bogus"],
)
async def test_undecodable_form_body_rejected_as_unauthorized(make_config, backends, content_type):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)

    async with TestClient(TestServer(app)) as client:
        resp = await client.post(
            "/voice/ai",
            data=b"SpeechResult=caf\xe9&CallSid=CA1",
            headers={"Content-Type": content_type, "X-Twilio-Signature": "c2lnbmF0dXJl"},
        )
        body = await resp.text()

    assert resp.status == 403
    assert _root(body).find("Say").text == "Unauthorized"
    assert backends.calls == []


@pytest.mark.asyncio
async def test_tampered_request_rejected(make_config, backends):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)
    params = {"CallSid": "CA1", "budget_cents": "1"}

    async with TestClient(TestServer(app)) as client:
        headers = _signed_headers(client, config, params)
        resp = await client.post("/voice/ai", data=dict(params, budget_cents="500"), headers=headers)

    assert resp.status == 403
    assert backends.calls == []


@pytest.mark.asyncio
async def test_missing_auth_token_rejects_everything(make_config, backends):
    signing_config = make_config()
    config = make_config(webhook={"auth_token": None})
    app = create_app(config, session_factory=backends.session_factory)
    params = {"CallSid": "CA1"}

    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/voice/ai", data=params, headers=_signed_headers(client, signing_config, params))

    assert resp.status == 403
    assert backends.calls == []


@pytest.mark.asyncio
async def test_signed_json_request(make_config, backends):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)
    payload = {"intent": "code_scaffold", "prompt": "Scaffold a cron job"}

    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/voice/ai", json=payload, headers=_signed_headers(client, config, payload))

    assert resp.status == 200
    assert backends.providers_called() == ["openai", "elevenlabs"]
    assert backends.calls[0][1]["messages"][1]["content"] == "Scaffold a cron job"


@pytest.mark.asyncio
async def test_repeated_form_fields_signed_as_list(make_config, backends):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)
    form = [("Digits", "1"), ("Digits", "2"), ("CallSid", "CA5")]

    async with TestClient(TestServer(app)) as client:
        headers = _signed_headers(client, config, {"Digits": ["1", "2"], "CallSid": "CA5"})
        resp = await client.post("/voice/ai", data=form, headers=headers)

    assert resp.status == 200
    assert backends.calls[0][1]["messages"][0]["content"] == "1"


@pytest.mark.asyncio
async def test_tiny_budget_answers_with_fallback(make_config, backends):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)
    params = {"CallSid": "CA1", "intent": "market_research", "budget_cents": "0.001"}

    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/voice/ai", data=params, headers=_signed_headers(client, config, params))
        body = await resp.text()

    assert resp.status == 200
    assert _root(body).find("Say").text == FALLBACK
    assert backends.calls == []


@pytest.mark.asyncio
async def test_spoken_text_when_tts_unavailable(make_config, backends):
    backends.replies["elevenlabs"] = (503, "busy")
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)
    params = {"CallSid": "CA2"}

    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/voice/ai", data=params, headers=_signed_headers(client, config, params))
        body = await resp.text()

    assert resp.status == 200
    assert _root(body).find("Say").text == "Happy to help you book a walkthrough this week."


@pytest.mark.asyncio
async def test_health(make_config, backends):
    app = create_app(make_config(), session_factory=backends.session_factory)

    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/health")
        data = await resp.json()

    assert resp.status == 200
    assert data["ok"] is True
    assert datetime.datetime.fromisoformat(data["ts"]).tzinfo is not None


@pytest.mark.asyncio
async def test_metrics_exposed(make_config, backends):
    app = create_app(make_config(), session_factory=backends.session_factory)

    async with TestClient(TestServer(app)) as client:
        await client.post("/voice/ai", data={"CallSid": "CA1"})
        resp = await client.get("/metrics")
        text = await resp.text()

    assert resp.status == 200
    assert 'voice_bridge_webhook_responses_total{outcome="unauthorized"}' in text


@pytest.mark.asyncio
async def test_audio_missing_and_hidden_files_not_found(make_config, backends, tmp_path):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)

    async with TestClient(TestServer(app)) as client:
        audio_dir = app[SERVER_KEY].audio_dir
        (audio_dir / ".partial-123.mp3").write_bytes(b"half")

        missing = await client.get("/audio/nothing-here.mp3")
        hidden = await client.get("/audio/.partial-123.mp3")

    assert missing.status == 404
    assert hidden.status == 404


@pytest.mark.asyncio
async def test_audio_traversal_rejected(make_config, backends, tmp_path):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)
    server = app[SERVER_KEY]
    (tmp_path / "secret.mp3").write_bytes(b"do not serve")
    server.audio_dir.mkdir(parents=True, exist_ok=True)

    for name in ("../secret.mp3", "..", "sub/../../secret.mp3", ""):
        request = make_mocked_request("GET", "/audio/x", match_info={"filename": name})
        resp = await server.audio_handler(request)

        assert resp.status == 404
        assert resp.text == "Not found"


@pytest.mark.asyncio
async def test_audio_name_normalized_to_final_component(make_config, backends):
    config = make_config()
    app = create_app(config, session_factory=backends.session_factory)
    server = app[SERVER_KEY]
    server.audio_dir.mkdir(parents=True, exist_ok=True)
    stored = server.audio_dir / "CA1-x.mp3"
    stored.write_bytes(b"mp3")

    request = make_mocked_request("GET", "/audio/x", match_info={"filename": "sub/CA1-x.mp3"})
    resp = await server.audio_handler(request)

    assert isinstance(resp, web.FileResponse)
    assert resp.status == 200
    assert resp.headers["Content-Type"] == "audio/mpeg"


class _RecordingLogger:
    def __init__(self):
        self.events = []

    def _record(self, event, **fields):
        self.events.append((event, fields))

    debug = info = warning = error = _record


@pytest.mark.asyncio
async def test_middleware_logs_request_body(make_config, backends, monkeypatch):
    recorder = _RecordingLogger()
    monkeypatch.setattr("voice_bridge.server.logger", recorder)
    app = create_app(make_config(), session_factory=backends.session_factory)

    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/voice/ai", data={"CallSid": "CA9", "From": "+14155550100"})

    assert resp.status == 403
    received = [fields for event, fields in recorder.events if event == "Request received"]
    assert received[0]["path"] == "/voice/ai"
    assert received[0]["body"] == {"CallSid": "CA9", "From": "+14155550100"}
    assert resp.headers["X-Request-Id"]
