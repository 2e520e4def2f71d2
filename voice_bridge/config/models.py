"""
Configuration models for the voice bridge.

Pydantic v2 models validate the YAML + environment configuration. Secrets
are optional here on purpose: missing credentials surface at call time as
ProviderError / SynthesisError, never at startup.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    # Absolute base for audio links; derived from the request Host when unset
    public_base_url: Optional[str] = None
    audio_dir: str = Field(default="audio")


class WebhookConfig(BaseModel):
    auth_token: Optional[str] = None
    signature_header: str = Field(default="X-Twilio-Signature")
    # Explicit dev exception: reconstruct signed URLs with http://
    force_http: bool = Field(default=False)
    unauthorized_message: str = Field(default="Unauthorized")


class BudgetConfig(BaseModel):
    default_ceiling_cents: float = Field(default=50.0)
    # Token proxy: one estimated unit per N characters (minimum 1)
    chars_per_unit: int = Field(default=4)


class TimeoutConfig(BaseModel):
    provider_call_sec: float = Field(default=6.0)
    routing_sec: float = Field(default=8.0)
    synthesis_sec: float = Field(default=5.0)


class AnthropicProviderConfig(BaseModel):
    api_key: Optional[str] = None
    base_url: str = Field(default="https://api.anthropic.com/v1/messages")
    api_version: str = Field(default="2023-06-01")
    model: str = Field(default="claude-3-haiku-20240307")
    max_tokens: int = Field(default=220)
    temperature: float = Field(default=0.6)
    input_rate_cents: float = Field(default=0.5)
    output_rate_cents: float = Field(default=1.0)
    system_prompt: str = Field(
        default=(
            "You are the voice concierge. Keep it 45-75 words, plain and speakable. "
            "Avoid special characters and numeric prices. If booking is needed, "
            "say we'll text a booking link right away."
        )
    )


class OpenAIProviderConfig(BaseModel):
    api_key: Optional[str] = None
    chat_base_url: str = Field(default="https://api.openai.com/v1")
    organization: Optional[str] = None
    model: str = Field(default="gpt-4o-mini")
    max_tokens: int = Field(default=220)
    temperature: float = Field(default=0.6)
    input_rate_cents: float = Field(default=0.5)
    output_rate_cents: float = Field(default=1.0)
    system_prompt: str = Field(
        default="Speak in 45-75 words, optimized for voice playback. No code or markup, just a concise plan."
    )


class PerplexityProviderConfig(BaseModel):
    api_key: Optional[str] = None
    chat_base_url: str = Field(default="https://api.perplexity.ai")
    model: str = Field(default="llama-3.1-sonar-small-128k-online")
    max_tokens: int = Field(default=300)
    temperature: float = Field(default=0.3)
    input_rate_cents: float = Field(default=0.6)
    output_rate_cents: float = Field(default=1.2)
    system_prompt: str = Field(
        default="Conduct live web research. Return a concise factual summary. Avoid URLs and quotes."
    )


class ElevenLabsVoiceSettings(BaseModel):
    stability: float = 0.5
    similarity_boost: float = 0.7
    style: float = 0.2
    use_speaker_boost: bool = True


class ElevenLabsTTSConfig(BaseModel):
    api_key: Optional[str] = None
    base_url: str = Field(default="https://api.elevenlabs.io/v1/text-to-speech")
    voice_id: str = Field(default="EXAVITQu4vr4xnSDxMaL")
    model_id: str = Field(default="eleven_turbo_v2")
    voice_settings: ElevenLabsVoiceSettings = Field(default_factory=ElevenLabsVoiceSettings)
    # Longer text is truncated before submission to bound latency
    max_chars: int = Field(default=1000)


class ProvidersConfig(BaseModel):
    anthropic: AnthropicProviderConfig = Field(default_factory=AnthropicProviderConfig)
    openai: OpenAIProviderConfig = Field(default_factory=OpenAIProviderConfig)
    perplexity: PerplexityProviderConfig = Field(default_factory=PerplexityProviderConfig)
    elevenlabs: ElevenLabsTTSConfig = Field(default_factory=ElevenLabsTTSConfig)


class IntentSets(BaseModel):
    conversational: List[str] = Field(
        default_factory=lambda: ["concierge_dialog", "pm_outreach", "contractor_comms", "bi_narrative"]
    )
    code_ops: List[str] = Field(default_factory=lambda: ["code_scaffold", "formatting", "ops_patch"])
    research: List[str] = Field(default_factory=lambda: ["market_research", "pricing_scan", "policy_update"])


class RoutingConfig(BaseModel):
    default_intent: str = Field(default="concierge_dialog")
    intents: IntentSets = Field(default_factory=IntentSets)
    default_prompt: str = Field(
        default="Caller is asking about our services. Provide a warm, brief, speakable response."
    )
    code_ops_system_prompt: str = Field(
        default=(
            "You are a senior engineer summarizing the game plan. Speak it in 45-75 words "
            "for a caller; no code, just actions."
        )
    )
    research_system_prompt: str = Field(
        default="Do quick live research. Return a short bulletless digest (3-5 sentences)."
    )
    summary_system_prompt: str = Field(
        default=(
            "You convert research into a short, speakable summary. Avoid prices. "
            "If next steps are needed, say we'll text a booking link."
        )
    )
    summary_prompt_prefix: str = Field(default="Summarize for voice in 45-75 words, friendly and clear:")
    fallback_message: str = Field(default="I'll text you our booking link right away.")
    # approx_tokens / force_delay payload hooks for acceptance testing
    allow_simulation_hooks: bool = Field(default=False)
    simulation_rate_cents: float = Field(default=5.0)


class LoggingConfig(BaseModel):
    level: str = Field(default="info")  # debug|info|warning|error|critical


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
