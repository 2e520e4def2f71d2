"""
Perplexity adapter (research intents).

Perplexity speaks the OpenAI Chat Completions dialect; the online models add
a ``citations`` list which is kept in the result extras.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from .base import USER_AGENT, TextGenerationAdapter, openai_style_text


class ResearchAdapter(TextGenerationAdapter):
    """Live-research caller whose digest is later condensed for voice."""

    name = "perplexity"

    def _build_request(self, prompt: str, system_prompt: str, max_tokens: int) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        cfg = self._config
        url = cfg.chat_base_url.rstrip("/") + "/chat/completions"
        headers = {
            "Authorization": f"Bearer {cfg.api_key}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        payload: Dict[str, Any] = {
            "model": cfg.model,
            "max_tokens": max_tokens,
            "temperature": cfg.temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
        }
        return url, headers, payload

    def _extract_text(self, data: Dict[str, Any]) -> str:
        return openai_style_text(data)

    def _extract_extras(self, data: Dict[str, Any]) -> Dict[str, Any]:
        extras = super()._extract_extras(data)
        citations = data.get("citations") if isinstance(data, dict) else None
        if citations:
            extras["citations"] = list(citations)
        return extras
