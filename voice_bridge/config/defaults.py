"""
Default value application for configuration.

This module handles:
- Server bind / public URL / audio storage overrides
- Budget ceiling override
- Stage timeout overrides (milliseconds in env, seconds in config)
"""

import os
from typing import Any, Dict

import structlog

logger = structlog.get_logger(__name__)


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def _env_float(name: str):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric environment override", variable=name, value=raw)
        return None


def apply_server_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply server settings from environment variables.

    Environment variables:
    - HOST / PORT: bind address
    - PUBLIC_BASE_URL: absolute base for audio links
    - AUDIO_DIR: where synthesized audio is stored
    - FORCE_HTTP: 1 to reconstruct signed URLs with http://

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    server = _section(config_data, 'server')
    if os.getenv('HOST'):
        server['host'] = os.getenv('HOST')
    port = _env_float('PORT')
    if port is not None:
        server['port'] = int(port)
    if os.getenv('PUBLIC_BASE_URL'):
        server['public_base_url'] = os.getenv('PUBLIC_BASE_URL').strip()
    if os.getenv('AUDIO_DIR'):
        server['audio_dir'] = os.getenv('AUDIO_DIR').strip()

    if os.getenv('FORCE_HTTP') is not None:
        webhook = _section(config_data, 'webhook')
        webhook['force_http'] = os.getenv('FORCE_HTTP', '0').strip().lower() in ('1', 'true', 'yes')


def apply_budget_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply the default per-request ceiling from BUDGET_CENTS.

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    ceiling = _env_float('BUDGET_CENTS')
    if ceiling is not None:
        _section(config_data, 'budget')['default_ceiling_cents'] = ceiling


def apply_timeout_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply stage timeouts from environment variables (milliseconds).

    Environment variables:
    - PROVIDER_TIMEOUT_MS: single provider call
    - ROUTING_TIMEOUT_MS: whole routing stage (both research stages)
    - TTS_TIMEOUT_MS: synthesis stage

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    timeouts = _section(config_data, 'timeouts')
    for env_name, field_name in (
        ('PROVIDER_TIMEOUT_MS', 'provider_call_sec'),
        ('ROUTING_TIMEOUT_MS', 'routing_sec'),
        ('TTS_TIMEOUT_MS', 'synthesis_sec'),
    ):
        value_ms = _env_float(env_name)
        if value_ms is not None:
            timeouts[field_name] = value_ms / 1000.0
