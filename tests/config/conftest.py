import pytest

# Every variable the config layer reads
CONFIG_ENV_VARS = (
    "TWILIO_AUTH_TOKEN",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "PERPLEXITY_API_KEY",
    "ELEVENLABS_API_KEY",
    "ANTHROPIC_MODEL",
    "OPENAI_MODEL",
    "PERPLEXITY_MODEL",
    "ELEVENLABS_MODEL",
    "ELEVENLABS_VOICE_ID",
    "HOST",
    "PORT",
    "PUBLIC_BASE_URL",
    "AUDIO_DIR",
    "FORCE_HTTP",
    "BUDGET_CENTS",
    "PROVIDER_TIMEOUT_MS",
    "ROUTING_TIMEOUT_MS",
    "TTS_TIMEOUT_MS",
)


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch):
    """Start every config test from an environment with no overrides."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
