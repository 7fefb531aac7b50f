from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, UUID4
from uuid import UUID, uuid4
from typing import Optional, List, Dict


class Role(str, Enum):
    """Enum for player roles in the werewolf game."""
    WEREWOLF = "werewolf"
    VILLAGER = "villager"
    SEER = "seer"
    WITCH = "witch"
    HUNTER = "hunter"
    GUARD = "guard"


class Faction(str, Enum):
    """Winning-condition groups."""
    WEREWOLF = "werewolf"
    VILLAGER = "villager"


class PlayerStatus(str, Enum):
    """Enum for player status in the game."""
    ALIVE = "alive"
    DEAD = "dead"


class AbilityKind(str, Enum):
    """Night abilities a role may hold."""
    KILL = "kill"
    INSPECT = "inspect"
    HEAL = "heal"
    POISON = "poison"
    PROTECT = "protect"


class PersonalityTraits(BaseModel):
    """Numeric personality profile of an AI seat, every trait in [0, 1]."""
    aggressiveness: float = Field(default=0.5, ge=0.0, le=1.0)
    logic: float = Field(default=0.5, ge=0.0, le=1.0)
    deception: float = Field(default=0.5, ge=0.0, le=1.0)
    trust: float = Field(default=0.5, ge=0.0, le=1.0)


class Player(BaseModel):
    """Pydantic model for one seat in the match."""
    id: UUID4 = Field(default_factory=uuid4)
    seat: int = Field(ge=0)
    name: str
    role: Role
    faction: Faction
    status: PlayerStatus = PlayerStatus.ALIVE
    is_human: bool = False
    personality: Optional[PersonalityTraits] = None  # AI seats only
    persona_name: Optional[str] = None

    # Private bookkeeping, never shown to other seats
    used_abilities: List[AbilityKind] = []  # witch potions spent
    last_protected_id: Optional[UUID] = None  # guard's target last night
    inspection_results: Dict[UUID, Faction] = {}  # seer findings

    @property
    def is_alive(self) -> bool:
        return self.status == PlayerStatus.ALIVE

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "id": "f47ac10b-58cc-4372-a567-0e02b2c3d479",
                    "seat": 0,
                    "name": "Player 1",
                    "role": "seer",
                    "faction": "villager",
                    "status": "alive",
                    "is_human": True,
                    "personality": None
                }
            ]
        }
    )
