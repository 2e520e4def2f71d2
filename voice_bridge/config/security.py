"""
Security-critical configuration injection.

This module handles:
- Webhook auth token (ONLY from environment variables)
- Provider API key injection (ONLY from environment variables)
- Model identifier overrides from environment variables

SECURITY POLICY:
- API keys and auth tokens MUST NEVER be in YAML files
- All credentials MUST come from environment variables only
- Any credential found in YAML is discarded
"""

import os
from typing import Any, Dict


# provider block -> environment variable holding its API key
PROVIDER_KEY_ENV = {
    'anthropic': 'ANTHROPIC_API_KEY',
    'openai': 'OPENAI_API_KEY',
    'perplexity': 'PERPLEXITY_API_KEY',
    'elevenlabs': 'ELEVENLABS_API_KEY',
}

# (provider block, field) -> environment variable overriding it
MODEL_OVERRIDE_ENV = {
    ('anthropic', 'model'): 'ANTHROPIC_MODEL',
    ('openai', 'model'): 'OPENAI_MODEL',
    ('perplexity', 'model'): 'PERPLEXITY_MODEL',
    ('elevenlabs', 'model_id'): 'ELEVENLABS_MODEL',
    ('elevenlabs', 'voice_id'): 'ELEVENLABS_VOICE_ID',
}


def _is_nonempty_string(val: Any) -> bool:
    """Check if value is a string with non-whitespace content."""
    return isinstance(val, str) and val.strip() != ""


def _env_or_none(name: str):
    value = os.getenv(name)
    return value if _is_nonempty_string(value) else None


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def inject_webhook_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject the webhook auth token from TWILIO_AUTH_TOKEN.

    SECURITY: Overwrites any YAML value. An unset variable leaves the token
    empty, which makes every signature check fail closed.

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    webhook = _section(config_data, 'webhook')
    webhook['auth_token'] = _env_or_none('TWILIO_AUTH_TOKEN')


def inject_provider_api_keys(config_data: Dict[str, Any]) -> None:
    """
    Inject provider API keys from environment variables ONLY.

    Environment variables:
    - ANTHROPIC_API_KEY, OPENAI_API_KEY, PERPLEXITY_API_KEY, ELEVENLABS_API_KEY

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    providers = _section(config_data, 'providers')
    for provider, env_name in PROVIDER_KEY_ENV.items():
        block = providers.get(provider)
        if not isinstance(block, dict):
            block = {}
        block['api_key'] = _env_or_none(env_name)
        providers[provider] = block


def inject_model_overrides(config_data: Dict[str, Any]) -> None:
    """
    Apply model / voice identifier overrides from the environment.

    Precedence: env vars > YAML > model defaults.

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    providers = _section(config_data, 'providers')
    for (provider, field_name), env_name in MODEL_OVERRIDE_ENV.items():
        value = _env_or_none(env_name)
        if value is None:
            continue
        block = providers.get(provider)
        if not isinstance(block, dict):
            block = {}
        block[field_name] = value.strip()
        providers[provider] = block
