"""
Anthropic Messages API adapter (conversational intents and summaries).
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from .base import USER_AGENT, TextGenerationAdapter


class ConversationalAdapter(TextGenerationAdapter):
    """Default adapter: concierge dialog and research summarization."""

    name = "anthropic"

    def _build_request(self, prompt: str, system_prompt: str, max_tokens: int) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        cfg = self._config
        headers = {
            "Content-Type": "application/json",
            "x-api-key": cfg.api_key,
            "anthropic-version": cfg.api_version,
            "User-Agent": USER_AGENT,
        }
        payload: Dict[str, Any] = {
            "model": cfg.model,
            "max_tokens": max_tokens,
            "temperature": cfg.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": prompt}],
        }
        return cfg.base_url, headers, payload

    def _extract_text(self, data: Dict[str, Any]) -> str:
        content = data.get("content") if isinstance(data, dict) else None
        if isinstance(content, list):
            # Text blocks only; tool_use and other block types carry no speech
            return "".join(
                block.get("text") or ""
                for block in content
                if isinstance(block, dict) and block.get("type", "text") == "text"
            )
        if isinstance(content, str):
            return content
        return ""
