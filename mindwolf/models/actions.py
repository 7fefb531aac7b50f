from pydantic import BaseModel, Field, field_validator, ConfigDict
from uuid import UUID
from enum import Enum
from typing import Optional
from datetime import datetime

from .player import AbilityKind


class ActionType(str, Enum):
    """Types of actions a seat can submit to the engine."""
    NIGHT_ABILITY = "night_ability"
    VOTE = "vote"
    SPEECH = "speech"
    PASS = "pass"


class BaseAction(BaseModel):
    """Base model for all player actions."""
    action_type: ActionType
    player_id: UUID  # ID of the player performing the action
    timestamp: datetime = Field(default_factory=datetime.now)


class NightAbilityAction(BaseAction):
    """A night ability (kill, inspect, heal, poison, protect) aimed at one player."""
    action_type: ActionType = ActionType.NIGHT_ABILITY
    ability: AbilityKind
    target_id: UUID

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "player_id": "123e4567-e89b-12d3-a456-426614174000",
                "target_id": "123e4567-e89b-12d3-a456-426614174001",
                "ability": "protect",
                "timestamp": "2025-04-27T23:30:00"
            }
        }
    )


class VoteAction(BaseAction):
    """Player vote during the Voting phase."""
    action_type: ActionType = ActionType.VOTE
    target_id: UUID


class SpeechAction(BaseAction):
    """A speech turn during Discussion or Last Words."""
    action_type: ActionType = ActionType.SPEECH
    message: str

    @field_validator('message')
    @classmethod
    def message_must_not_be_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('message must not be empty')
        return v.strip()


class PassAction(BaseAction):
    """Explicitly give up the current speaking turn."""
    action_type: ActionType = ActionType.PASS


class ChatMessage(BaseModel):
    """A public utterance recorded in the chat history."""
    player_id: UUID
    message: str
    day: int = 0
    is_last_words: bool = False
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator('message')
    @classmethod
    def message_must_not_be_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('message must not be empty')
        return v


class IntentType(str, Enum):
    """What a seat wants to communicate or do."""
    ACCUSATION = "accusation"
    DEFENSE = "defense"
    INFORMATION = "information"
    STRATEGY_COMMENT = "strategy_comment"
    VOTE = "vote"
    NIGHT_ABILITY = "night_ability"


class SpeechIntent(BaseModel):
    """Tagged decision produced by a StrategyEngine; consumed immediately."""
    intent_type: IntentType
    target_id: Optional[UUID] = None
    ability: Optional[AbilityKind] = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @field_validator('confidence', mode='before')
    @classmethod
    def clamp_confidence(cls, v):
        return min(1.0, max(0.0, float(v)))
