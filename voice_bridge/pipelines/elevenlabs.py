"""
ElevenLabs text-to-speech adapter.

Converts the final answer to MP3, stores it under the audio directory with a
collision-resistant name and returns the URL the telephony platform fetches
for <Play>. Either a complete file is referenced or SynthesisError is raised.
"""

from __future__ import annotations

import asyncio
import os
import re
import secrets
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import aiohttp

from ..config import ElevenLabsTTSConfig
from ..deadline import Deadline
from ..errors import StageTimeout, SynthesisError
from ..logging_config import get_logger
from .base import USER_AGENT, Component

logger = get_logger(__name__)

_UNSAFE_PREFIX_CHARS = re.compile(r'[^A-Za-z0-9_-]')
DEFAULT_PREFIX = "call"


def safe_filename(prefix: Optional[str] = None) -> str:
    """``{prefix}-{utc timestamp}-{8 hex}.mp3`` with the prefix reduced to safe characters."""
    clean = _UNSAFE_PREFIX_CHARS.sub('', prefix or '')[:64] or DEFAULT_PREFIX
    stamp = datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S%f')
    return f"{clean}-{stamp}-{secrets.token_hex(4)}.mp3"


def audio_url(file_name: str, base_url: Optional[str] = None) -> str:
    """Absolute audio link when a base is known, otherwise a relative path."""
    base = (base_url or '').strip().rstrip('/')
    return f"{base}/audio/{file_name}" if base else f"/audio/{file_name}"


def _write_atomic(directory: Path, file_name: str, data: bytes) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / file_name
    fd, tmp_path = tempfile.mkstemp(dir=str(directory), prefix='.partial-', suffix='.mp3')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return target


class SpeechSynthesisAdapter(Component):
    """ElevenLabs text-to-speech REST caller."""

    name = "elevenlabs"

    def __init__(
        self,
        tts_config: ElevenLabsTTSConfig,
        audio_dir: str | os.PathLike,
        *,
        timeout_sec: float = 5.0,
        public_base_url: Optional[str] = None,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        super().__init__(session_factory)
        self._config = tts_config
        self._audio_dir = Path(audio_dir)
        self._timeout_sec = float(timeout_sec)
        self._public_base_url = public_base_url

    @property
    def audio_dir(self) -> Path:
        return self._audio_dir

    async def start(self) -> None:
        self._audio_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(
            "Speech synthesis adapter initialized",
            voice_id=self._config.voice_id,
            model_id=self._config.model_id,
            audio_dir=str(self._audio_dir),
            credentials_present=bool(self._config.api_key),
        )

    async def synthesize(
        self,
        text: str,
        *,
        base_url: Optional[str] = None,
        prefix: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> str:
        """Synthesize ``text`` and return the audio reference URL.

        Raises:
            SynthesisError: on any failure; no placeholder reference is returned.
        """
        cfg = self._config
        if not cfg.api_key:
            raise SynthesisError("missing_credentials")
        text = (text or "").strip()
        if not text:
            raise SynthesisError("empty_text")

        try:
            timeout_sec = deadline.clamp(self._timeout_sec) if deadline else self._timeout_sec
        except StageTimeout:
            raise SynthesisError("timeout")

        payload = {
            "text": text[: cfg.max_chars],
            "model_id": cfg.model_id,
            "voice_settings": cfg.voice_settings.model_dump(),
        }
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": cfg.api_key,
            "User-Agent": USER_AGENT,
        }
        url = f"{cfg.base_url.rstrip('/')}/{cfg.voice_id}"

        await self._ensure_session()
        assert self._session

        logger.info(
            "Speech synthesis started",
            voice_id=cfg.voice_id,
            text_chars=len(payload["text"]),
            truncated=len(text) > cfg.max_chars,
        )
        started = time.monotonic()
        try:
            timeout = aiohttp.ClientTimeout(total=timeout_sec)
            async with self._session.post(url, json=payload, headers=headers, timeout=timeout) as response:
                status = response.status
                raw = await response.read()
        except asyncio.TimeoutError:
            raise SynthesisError("timeout")
        except aiohttp.ClientError as exc:
            raise SynthesisError("transport_error", body=str(exc))

        if status >= 400:
            body = raw.decode("utf-8", errors="ignore")
            logger.error("Speech synthesis failed", status=status, body_preview=body[:128])
            raise SynthesisError("http_error", status=status, body=body)
        if not raw:
            raise SynthesisError("empty_audio", status=status)

        file_name = safe_filename(prefix)
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, _write_atomic, self._audio_dir, file_name, raw)
        except OSError as exc:
            raise SynthesisError("storage_error", body=str(exc))

        reference = audio_url(file_name, self._public_base_url or base_url)
        logger.info(
            "Speech synthesis completed",
            file_name=file_name,
            output_bytes=len(raw),
            latency_ms=int((time.monotonic() - started) * 1000),
        )
        return reference
