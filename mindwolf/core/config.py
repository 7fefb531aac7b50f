from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

from ..models.generation import ProviderConfig, ProviderKind
from ..models.suspicion import SuspicionWeights


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file"""

    # Provider credentials and models
    OPENAI_API_KEY: Optional[str] = Field(None, description="API key for OpenAI")
    OPENAI_MODEL: str = Field("gpt-4o-mini", description="Chat model for the OpenAI provider")
    OPENAI_REALTIME_MODEL: str = Field("gpt-4o-realtime-preview", description="Model used for persistent sessions")
    OPENAI_USE_REALTIME: bool = Field(False, description="Register an OpenAI realtime session provider")
    ANTHROPIC_API_KEY: Optional[str] = Field(None, description="API key for Anthropic")
    ANTHROPIC_MODEL: str = Field("claude-3-5-haiku-latest", description="Model for the Anthropic provider")
    COMPATIBLE_API_KEY: Optional[str] = Field(None, description="API key for an OpenAI-compatible endpoint")
    COMPATIBLE_BASE_URL: Optional[str] = Field(None, description="Base URL of an OpenAI-compatible endpoint")
    COMPATIBLE_MODEL: str = Field("openai/gpt-4o-mini", description="Model for the OpenAI-compatible endpoint")

    # Provider order, the local template provider is always appended last
    LLM_PROVIDER_ORDER: List[str] = Field(
        default_factory=lambda: ["openai", "anthropic", "openai_compatible"],
        description="Ranked provider kinds, primary first",
    )
    LLM_MAX_TOKENS: int = Field(300, description="Token limit per generation")
    LLM_TEMPERATURE: float = Field(0.8, description="Sampling temperature")
    LLM_TIMEOUT: float = Field(20.0, description="Seconds per provider attempt")

    # Retry and circuit breaker
    RETRY_MAX_ATTEMPTS: int = Field(3, ge=1, description="Attempts per provider before failing over")
    RETRY_BASE_DELAY: float = Field(0.5, ge=0, description="First backoff delay in seconds, doubled per attempt")
    RETRY_MAX_DELAY: float = Field(8.0, ge=0, description="Backoff delay cap in seconds")
    BREAKER_FAILURE_THRESHOLD: int = Field(3, ge=1, description="Consecutive failures that open a circuit")
    BREAKER_COOLDOWN: float = Field(30.0, ge=0, description="Seconds an open circuit skips its provider")

    # Suspicion update weights
    WEIGHT_CONTRADICTION: float = Field(0.15, ge=0, le=1)
    WEIGHT_VOTE_DIVERGENCE: float = Field(0.2, ge=0, le=1)
    WEIGHT_NIGHT_RESULT: float = Field(0.6, ge=0, le=1)
    WEIGHT_ROLE_CLAIM: float = Field(0.3, ge=0, le=1)

    # Server settings
    DEBUG: bool = Field(False, description="Debug mode flag")
    LOG_LEVEL: str = Field("INFO", description="Root logging level")
    PORT: int = Field(8000, description="Port to run the server on")
    HOST: str = Field("0.0.0.0", description="Host to bind the server to")

    # Match loop
    TICK_INTERVAL: float = Field(0.5, gt=0, description="Seconds between match loop ticks")
    REPLAY_DIR: Optional[str] = Field(None, description="Directory for JSON-lines replay files, disabled when unset")
    FINISHED_GAME_RETENTION: float = Field(300.0, ge=0, description="Seconds a finished match stays readable before eviction")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra='ignore'
    )

    def suspicion_weights(self) -> SuspicionWeights:
        return SuspicionWeights(
            contradiction_in_speech=self.WEIGHT_CONTRADICTION,
            voting_pattern_divergence=self.WEIGHT_VOTE_DIVERGENCE,
            night_result_conflict=self.WEIGHT_NIGHT_RESULT,
            role_claim_conflict=self.WEIGHT_ROLE_CLAIM,
        )

    def provider_configs(self) -> List[ProviderConfig]:
        """Build the ranked provider list. Providers without credentials are skipped."""
        configs: List[ProviderConfig] = []
        common = dict(
            max_tokens=self.LLM_MAX_TOKENS,
            temperature=self.LLM_TEMPERATURE,
            timeout=self.LLM_TIMEOUT,
        )
        for name in self.LLM_PROVIDER_ORDER:
            kind = ProviderKind(name)
            if kind == ProviderKind.OPENAI and self.OPENAI_API_KEY:
                if self.OPENAI_USE_REALTIME:
                    configs.append(ProviderConfig(
                        name="openai-realtime", kind=kind, api_key=self.OPENAI_API_KEY,
                        model=self.OPENAI_REALTIME_MODEL, realtime=True, **common,
                    ))
                configs.append(ProviderConfig(
                    name="openai", kind=kind, api_key=self.OPENAI_API_KEY,
                    model=self.OPENAI_MODEL, **common,
                ))
            elif kind == ProviderKind.ANTHROPIC and self.ANTHROPIC_API_KEY:
                configs.append(ProviderConfig(
                    name="anthropic", kind=kind, api_key=self.ANTHROPIC_API_KEY,
                    model=self.ANTHROPIC_MODEL, **common,
                ))
            elif kind == ProviderKind.OPENAI_COMPATIBLE and self.COMPATIBLE_BASE_URL:
                configs.append(ProviderConfig(
                    name="openai-compatible", kind=kind, api_key=self.COMPATIBLE_API_KEY,
                    endpoint=self.COMPATIBLE_BASE_URL, model=self.COMPATIBLE_MODEL, **common,
                ))
        configs.append(ProviderConfig(name="local", kind=ProviderKind.LOCAL, model="templates"))
        return configs


# Create a global settings instance
settings = Settings()
