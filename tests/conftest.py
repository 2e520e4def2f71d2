"""
Shared fakes for the backend HTTP calls.

Adapters receive a ``session_factory``; tests hand them FakeBackends'
factory so every outbound request is recorded and answered from a script
instead of the network.
"""

import asyncio
import json

import pytest

from voice_bridge.config import AppConfig

AUTH_TOKEN = "test-auth-token"

PROVIDER_HOSTS = {
    "api.anthropic.com": "anthropic",
    "api.openai.com": "openai",
    "api.perplexity.ai": "perplexity",
    "api.elevenlabs.io": "elevenlabs",
}

FAKE_MP3 = b"ID3\x03\x00\x00\x00fake-mp3-frames"


def anthropic_body(text):
    return {
        "id": "msg_test",
        "type": "message",
        "content": [{"type": "text", "text": text}],
        "usage": {"input_tokens": 12, "output_tokens": 9},
    }


def openai_body(text, citations=None):
    body = {
        "id": "chatcmpl-test",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 9},
    }
    if citations:
        body["citations"] = citations
    return body


class FakeResponse:
    def __init__(self, body=b"", status=200):
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
        elif isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        self.status = status

    async def read(self):
        return self._body

    async def text(self):
        return self._body.decode("utf-8", errors="ignore")

    async def json(self):
        return json.loads(self._body.decode("utf-8"))


class _PendingResponse:
    """Async context manager returned by FakeSession.post."""

    def __init__(self, handler, url, payload):
        self._handler = handler
        self._url = url
        self._payload = payload

    async def __aenter__(self):
        result = self._handler(self._url, self._payload)
        if asyncio.iscoroutine(result):
            result = await result
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, FakeResponse):
            return result
        if isinstance(result, tuple):
            status, body = result
            return FakeResponse(body, status=status)
        return FakeResponse(result)

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, handler):
        self._handler = handler
        self.closed = False
        self.requests = []

    def post(self, url, json=None, params=None, headers=None, data=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return _PendingResponse(self._handler, url, json)

    async def close(self):
        self.closed = True


class FakeBackends:
    """Scripted replies keyed by provider name.

    A reply may be: provider text (str), a JSON body (dict), raw bytes,
    a ``(status, body)`` tuple, an exception instance to raise, or a
    callable taking the request JSON and returning any of those (or a
    coroutine producing one).
    """

    def __init__(self):
        self.replies = {
            "anthropic": "Happy to help you book a walkthrough this week.",
            "openai": "Apply the patch, then restart the worker.",
            "perplexity": openai_body(
                "Average rents rose three percent last quarter.",
                citations=["https://example.com/rents"],
            ),
            "elevenlabs": FAKE_MP3,
        }
        self.calls = []
        self.sessions = []

    def session_factory(self):
        session = FakeSession(self._handle)
        self.sessions.append(session)
        return session

    def providers_called(self):
        return [provider for provider, _ in self.calls]

    def _handle(self, url, payload):
        provider = next(name for host, name in PROVIDER_HOSTS.items() if host in url)
        self.calls.append((provider, payload))
        reply = self.replies[provider]
        if callable(reply) and not isinstance(reply, BaseException):
            reply = reply(payload)
        if isinstance(reply, str):
            return self._shape_text(provider, reply)
        return reply

    @staticmethod
    def _shape_text(provider, text):
        if provider == "anthropic":
            return anthropic_body(text)
        if provider == "elevenlabs":
            return text.encode("utf-8")
        return openai_body(text)


def _merge(base, overrides):
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


@pytest.fixture
def backends():
    return FakeBackends()


@pytest.fixture
def make_config(tmp_path):
    """Build an AppConfig with every credential present and audio under tmp_path."""

    def _build(**overrides):
        data = {
            "server": {"audio_dir": str(tmp_path / "audio")},
            "webhook": {"auth_token": AUTH_TOKEN},
            "providers": {
                "anthropic": {"api_key": "test-anthropic-key"},
                "openai": {"api_key": "test-openai-key"},
                "perplexity": {"api_key": "test-perplexity-key"},
                "elevenlabs": {"api_key": "test-elevenlabs-key"},
            },
        }
        return AppConfig(**_merge(data, overrides))

    return _build
