"""
Configuration package for the voice bridge.

This package contains:
- models: Pydantic schema for the whole service
- loaders: YAML file loading and parsing
- security: Credential and API key injection
- defaults: Environment overrides for operational settings
"""

from typing import List, Tuple

import structlog

from .defaults import apply_budget_defaults, apply_server_defaults, apply_timeout_defaults
from .loaders import load_yaml_with_env_expansion, resolve_config_path
from .models import (
    AnthropicProviderConfig,
    AppConfig,
    BudgetConfig,
    ElevenLabsTTSConfig,
    ElevenLabsVoiceSettings,
    IntentSets,
    LoggingConfig,
    OpenAIProviderConfig,
    PerplexityProviderConfig,
    ProvidersConfig,
    RoutingConfig,
    ServerConfig,
    TimeoutConfig,
    WebhookConfig,
)
from .security import inject_model_overrides, inject_provider_api_keys, inject_webhook_credentials

logger = structlog.get_logger(__name__)


def load_config(path: str = "config/voice-bridge.yaml") -> AppConfig:
    """
    Load and validate configuration from YAML file.

    Args:
        path: Path to YAML configuration file (absolute or relative to project root)

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        yaml.YAMLError: If YAML parsing fails
    """
    # Phase 1: Load YAML file with environment variable expansion
    path = resolve_config_path(path)
    config_data = load_yaml_with_env_expansion(path)

    # Phase 2: Security - Inject credentials from environment variables only
    inject_webhook_credentials(config_data)
    inject_provider_api_keys(config_data)
    inject_model_overrides(config_data)

    # Phase 3: Apply environment overrides
    apply_server_defaults(config_data)
    apply_budget_defaults(config_data)
    apply_timeout_defaults(config_data)

    # Phase 4: Validate and return
    return AppConfig(**config_data)


def validate_production_config(config: AppConfig) -> Tuple[List[str], List[str]]:
    """Validate configuration for deployment.

    Errors block startup, warnings are logged but non-blocking. Missing
    provider credentials are only warnings: they fail individual calls,
    which the response chain already degrades around.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if config.budget.default_ceiling_cents <= 0:
        errors.append(f"Default budget ceiling must be positive (got {config.budget.default_ceiling_cents})")
    if config.budget.chars_per_unit < 1:
        errors.append(f"budget.chars_per_unit must be >= 1 (got {config.budget.chars_per_unit})")

    timeouts = config.timeouts
    for name in ("provider_call_sec", "routing_sec", "synthesis_sec"):
        if getattr(timeouts, name) <= 0:
            errors.append(f"timeouts.{name} must be positive")
    if timeouts.synthesis_sec >= timeouts.routing_sec:
        errors.append(
            f"Synthesis timeout ({timeouts.synthesis_sec}s) must be shorter than routing timeout ({timeouts.routing_sec}s)"
        )
    if timeouts.provider_call_sec > timeouts.routing_sec:
        warnings.append(
            f"Provider call timeout ({timeouts.provider_call_sec}s) exceeds routing timeout ({timeouts.routing_sec}s); "
            "routing deadline will cut calls short"
        )

    if not config.webhook.auth_token:
        warnings.append("TWILIO_AUTH_TOKEN not set; every webhook request will be rejected")
    if config.webhook.force_http:
        warnings.append("FORCE_HTTP enabled; signed URLs are reconstructed with http:// (development only)")

    providers = config.providers
    if not providers.anthropic.api_key:
        warnings.append("ANTHROPIC_API_KEY not set; conversational and research intents will use the fallback message")
    if not providers.openai.api_key:
        warnings.append("OPENAI_API_KEY not set; code/ops intents will use the fallback message")
    if not providers.perplexity.api_key:
        warnings.append("PERPLEXITY_API_KEY not set; research intents will use the fallback message")
    if not providers.elevenlabs.api_key:
        warnings.append("ELEVENLABS_API_KEY not set; responses will be spoken text without audio")

    if config.routing.allow_simulation_hooks:
        warnings.append("Simulation hooks enabled (approx_tokens/force_delay); disable in production")
    if not config.server.public_base_url:
        warnings.append("PUBLIC_BASE_URL not set; audio links are derived from the request Host header")

    return errors, warnings


__all__ = [
    'AnthropicProviderConfig',
    'AppConfig',
    'BudgetConfig',
    'ElevenLabsTTSConfig',
    'ElevenLabsVoiceSettings',
    'IntentSets',
    'LoggingConfig',
    'OpenAIProviderConfig',
    'PerplexityProviderConfig',
    'ProvidersConfig',
    'RoutingConfig',
    'ServerConfig',
    'TimeoutConfig',
    'WebhookConfig',
    'load_config',
    'validate_production_config',
]
