from enum import Enum
from pydantic import BaseModel, Field, model_serializer
from uuid import UUID, uuid4
from typing import Any, Dict, Optional
from datetime import datetime

from .game import GamePhase


class EventKind(str, Enum):
    """Kinds of events emitted to the replay boundary."""
    GAME_START = "game_start"
    ROLE_ASSIGNMENT = "role_assignment"
    PHASE_CHANGE = "phase_change"
    NIGHT_ACTION = "night_action"
    NIGHT_RESULT = "night_result"
    SPEECH = "speech"
    PASS = "pass"
    VOTE = "vote"
    VOTE_RESULT = "vote_result"
    PLAYER_DEATH = "player_death"
    LAST_WORDS = "last_words"
    ACTION_REJECTED = "action_rejected"
    GENERATION = "generation"
    GENERATION_ATTEMPT = "generation_attempt"  # One provider attempt, failed or not
    GAME_END = "game_end"
    AI_ANALYSIS = "ai_analysis"  # One AI seat's final reads, after the game ends


class GameEvent(BaseModel):
    """A discrete, timestamped record of something the core resolved."""
    id: UUID = Field(default_factory=uuid4)
    game_id: UUID
    kind: EventKind
    seat: Optional[int] = None
    day: int
    phase: GamePhase
    payload: Dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=datetime.now)

    @model_serializer
    def serialize_model(self) -> dict:
        return {
            "id": str(self.id),
            "game_id": str(self.game_id),
            "kind": self.kind.value,
            "seat": self.seat,
            "day": self.day,
            "phase": self.phase.value,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat()
        }
