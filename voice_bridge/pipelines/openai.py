"""
OpenAI Chat Completions adapter (code/ops intents).
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from .base import USER_AGENT, TextGenerationAdapter, openai_style_text


def _make_http_headers(api_key: str, organization: str | None = None) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }
    if organization:
        headers["OpenAI-Organization"] = organization
    return headers


class CodeOpsAdapter(TextGenerationAdapter):
    """Chat Completions caller used for code scaffolding, formatting and ops plans."""

    name = "openai"

    def _build_request(self, prompt: str, system_prompt: str, max_tokens: int) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        cfg = self._config
        url = cfg.chat_base_url.rstrip("/") + "/chat/completions"
        payload: Dict[str, Any] = {
            "model": cfg.model,
            "temperature": cfg.temperature,
            "max_tokens": max_tokens,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
        }
        return url, _make_http_headers(cfg.api_key, cfg.organization), payload

    def _extract_text(self, data: Dict[str, Any]) -> str:
        return openai_style_text(data)
