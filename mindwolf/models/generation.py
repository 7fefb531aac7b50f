from enum import Enum
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime

from .actions import IntentType


class ProviderKind(str, Enum):
    """Supported generation provider adapters."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENAI_COMPATIBLE = "openai_compatible"  # Any endpoint speaking the OpenAI chat API
    LOCAL = "local"  # Canned templates, always available


class SessionMode(str, Enum):
    """How a generation call talks to its provider."""
    REQUEST = "request"  # One request, one response
    SESSION = "session"  # Persistent bidirectional session


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ProviderConfig(BaseModel):
    """Connection settings for one provider. Immutable once loaded."""
    name: str
    kind: ProviderKind
    endpoint: Optional[str] = None  # Base URL, provider default when None
    api_key: Optional[str] = Field(default=None, repr=False)
    model: str = "gpt-4o-mini"
    max_tokens: int = Field(default=300, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout: float = Field(default=30.0, gt=0)  # Seconds per attempt
    realtime: bool = False  # Use a persistent session instead of request/response

    model_config = ConfigDict(frozen=True)


class GenerationPrompt(BaseModel):
    """Structured prompt handed to the gateway."""
    system: str
    user: str
    intent_type: IntentType = IntentType.INFORMATION
    speaker_name: str = ""
    target_name: Optional[str] = None
    max_tokens: Optional[int] = None  # Overrides the provider limit when set


class GenerationResult(BaseModel):
    """Realized text plus the provider that produced it."""
    text: str
    provider: str
    attempts: int = 1
    latency_ms: float = 0.0
    used_fallback: bool = False


class GenerationAttempt(BaseModel):
    """Telemetry for one provider attempt, success or failure."""
    provider: str
    attempt: int
    success: bool
    latency_ms: float
    session_mode: SessionMode = SessionMode.REQUEST
    error: Optional[str] = None
    circuit_state: CircuitState = CircuitState.CLOSED
    timestamp: datetime = Field(default_factory=datetime.now)
