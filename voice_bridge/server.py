"""
aiohttp HTTP surface for the voice bridge.

Routes:
    POST /voice/ai          signed telephony webhook, answers with XML markup
    GET  /audio/{filename}  synthesized MP3 files
    GET  /health            liveness probe
    GET  /metrics           Prometheus exposition
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .composer import ResponseComposer
from .config import AppConfig, load_config, validate_production_config
from .errors import AuthenticationError
from .logging_config import configure_logging, get_logger, set_correlation_id
from .metrics import STAGE_SECONDS
from .pipelines import IntentRouter, SpeechSynthesisAdapter, build_router, build_synthesizer
from .security import build_base_url, verify_request
from .webhook import InboundCall, parse_inbound

logger = get_logger(__name__)

MARKUP_CONTENT_TYPE = "text/xml"
AUDIO_CONTENT_TYPE = "audio/mpeg"
INBOUND_KEY = "voice_bridge_inbound"


@web.middleware
async def request_logging_middleware(request: web.Request, handler):
    """Bind a correlation id, log the request with its body, then its outcome."""
    correlation_id = set_correlation_id(request.headers.get("X-Request-Id"))
    params, payload = await parse_inbound(request)
    request[INBOUND_KEY] = (params, payload)
    logger.info("Request received", method=request.method, path=request.path, body=params)
    started = time.monotonic()
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        logger.info("Request finished", method=request.method, path=request.path, status=exc.status)
        raise
    duration = time.monotonic() - started
    logger.info(
        "Request finished",
        method=request.method,
        path=request.path,
        status=response.status,
        duration_ms=int(duration * 1000),
    )
    response.headers["X-Request-Id"] = correlation_id
    return response


def _rejection_reason(request: web.Request, webhook_cfg) -> str:
    if not webhook_cfg.auth_token:
        return "missing_auth_token"
    if not request.headers.get(webhook_cfg.signature_header):
        return "missing_signature"
    return "signature_mismatch"


class VoiceBridgeServer:
    """Owns the adapters and the request handlers for one application."""

    def __init__(
        self,
        config: AppConfig,
        *,
        router: Optional[IntentRouter] = None,
        synthesizer: Optional[SpeechSynthesisAdapter] = None,
        session_factory=None,
    ):
        self.config = config
        self.router = router or build_router(config, session_factory=session_factory)
        self.synthesizer = synthesizer or build_synthesizer(config, session_factory=session_factory)
        self.composer = ResponseComposer(config, self.router, self.synthesizer)

    @property
    def audio_dir(self) -> Path:
        return self.synthesizer.audio_dir

    async def on_startup(self, app: web.Application) -> None:
        await self.router.start()
        await self.synthesizer.start()
        logger.info("Voice bridge adapters started", audio_dir=str(self.audio_dir))

    async def on_cleanup(self, app: web.Application) -> None:
        await self.router.stop()
        await self.synthesizer.stop()
        logger.info("Voice bridge adapters stopped")

    async def voice_handler(self, request: web.Request) -> web.Response:
        """Verify the webhook signature, then run the compose chain."""
        started = time.monotonic()
        webhook_cfg = self.config.webhook
        params, payload = request.get(INBOUND_KEY) or await parse_inbound(request)

        if not verify_request(
            request,
            params,
            webhook_cfg.auth_token,
            force_http=webhook_cfg.force_http,
            header=webhook_cfg.signature_header,
        ):
            err = AuthenticationError(_rejection_reason(request, webhook_cfg))
            logger.warning("Webhook signature rejected", path=request.path, host=request.host, **err.log_fields())
            composed = self.composer.unauthorized()
        else:
            call = InboundCall.from_verified_payload(payload, self.config)
            base_url = build_base_url(request.host, webhook_cfg.force_http)
            composed = await self.composer.compose(call, base_url)

        STAGE_SECONDS.labels("total").observe(time.monotonic() - started)
        logger.info("Webhook answered", outcome=composed.outcome, status=composed.status)
        return web.Response(text=composed.body, status=composed.status, content_type=MARKUP_CONTENT_TYPE)

    async def audio_handler(self, request: web.Request) -> web.StreamResponse:
        """Serve a stored MP3; only the final path component of the name is used."""
        requested = request.match_info.get("filename", "")
        name = os.path.basename(requested)
        if not name or name.startswith("."):
            logger.warning("Rejected audio path", requested=requested[:128])
            return web.Response(text="Not found", status=404)

        audio_root = self.audio_dir.resolve()
        path = (audio_root / name).resolve()
        if path.parent != audio_root or not path.is_file():
            return web.Response(text="Not found", status=404)
        return web.FileResponse(path, headers={"Content-Type": AUDIO_CONTENT_TYPE})

    async def health_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": True, "ts": datetime.now(timezone.utc).isoformat()})

    async def metrics_handler(self, request: web.Request) -> web.Response:
        """Expose Prometheus metrics."""
        data = generate_latest()
        # aiohttp forbids 'charset=' inside content_type arg; pass full header via headers.
        return web.Response(body=data, headers={"Content-Type": CONTENT_TYPE_LATEST})


SERVER_KEY = web.AppKey("voice_bridge_server", VoiceBridgeServer)


def create_app(
    config: AppConfig,
    *,
    router: Optional[IntentRouter] = None,
    synthesizer: Optional[SpeechSynthesisAdapter] = None,
    session_factory=None,
) -> web.Application:
    server = VoiceBridgeServer(config, router=router, synthesizer=synthesizer, session_factory=session_factory)
    app = web.Application(middlewares=[request_logging_middleware])
    app[SERVER_KEY] = server
    app.router.add_post("/voice/ai", server.voice_handler)
    app.router.add_get("/audio/{filename}", server.audio_handler)
    app.router.add_get("/health", server.health_handler)
    app.router.add_get("/metrics", server.metrics_handler)
    app.on_startup.append(server.on_startup)
    app.on_cleanup.append(server.on_cleanup)
    return app


async def main(config_path: Optional[str] = None) -> None:
    config = load_config(config_path or os.getenv("VOICE_BRIDGE_CONFIG", "config/voice-bridge.yaml"))
    try:
        configure_logging(log_level=str(config.logging.level).upper())
    except Exception:
        configure_logging(log_level="INFO")

    errors, warnings = validate_production_config(config)
    if errors:
        logger.error("Configuration validation FAILED", errors=errors, warnings=warnings)
        raise RuntimeError(f"Configuration errors: {errors}")
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)
    logger.info("Configuration validation passed")

    app = create_app(config)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.server.host, config.server.port)
    await site.start()
    logger.info("Voice bridge listening", host=config.server.host, port=config.server.port)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_event_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    await shutdown_event.wait()
    await runner.cleanup()


def run() -> None:
    """Console entry point."""
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        logger.info("Voice bridge has shut down.")


if __name__ == "__main__":
    run()
