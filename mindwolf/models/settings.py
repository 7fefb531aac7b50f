from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict, model_serializer
from uuid import UUID, uuid4
from typing import Dict, Optional
from enum import Enum

from .player import Role, Faction
from .roles import roles_in_faction


class GuardRules(str, Enum):
    """Rules for the Guard role."""
    STANDARD = "standard"  # Can protect anyone including self
    NO_SELF_PROTECTION = "no_self_protection"  # Cannot protect self
    NO_CONSECUTIVE = "no_consecutive"  # Cannot protect the same player on consecutive nights


class AIDifficulty(str, Enum):
    """Persona presets for the AI seats."""
    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"
    EXPERT = "expert"


# Standard tables for the usual table sizes
ROLE_DISTRIBUTIONS: Dict[int, Dict[Role, int]] = {
    6: {Role.WEREWOLF: 2, Role.VILLAGER: 2, Role.SEER: 1, Role.WITCH: 1},
    8: {Role.WEREWOLF: 2, Role.VILLAGER: 3, Role.SEER: 1, Role.WITCH: 1, Role.GUARD: 1},
    10: {Role.WEREWOLF: 3, Role.VILLAGER: 4, Role.SEER: 1, Role.WITCH: 1, Role.HUNTER: 1},
    12: {Role.WEREWOLF: 4, Role.VILLAGER: 4, Role.SEER: 1, Role.WITCH: 1, Role.HUNTER: 1, Role.GUARD: 1},
}


def default_role_distribution(player_count: int = 8) -> Dict[Role, int]:
    """Role counts for a table of ``player_count`` seats.

    Sizes without a standard table get two werewolves and villagers for the rest.
    """
    if player_count in ROLE_DISTRIBUTIONS:
        return dict(ROLE_DISTRIBUTIONS[player_count])
    return {Role.WEREWOLF: 2, Role.VILLAGER: player_count - 2}


class GameSettings(BaseModel):
    """Match configuration, immutable for the duration of a match."""
    id: UUID = Field(default_factory=uuid4)
    player_count: int = Field(default=8, ge=4, le=16)

    # Role distribution: how many of each role, must sum to player_count
    role_distribution: Dict[Role, int] = Field(default_factory=default_role_distribution)

    # Seat of the human player, None for an all-AI match
    human_seat: Optional[int] = Field(default=0, ge=0)
    # Position of the human in the speaking queue, None keeps seat order
    human_speaking_slot: Optional[int] = Field(default=None, ge=0)

    # Time limits in seconds
    night_time_limit: float = Field(default=60.0, gt=0)
    discussion_time_limit: float = Field(default=300.0, gt=0)  # 5 minutes for the whole discussion
    speech_time_limit: float = Field(default=45.0, gt=0)  # Per-seat speaking turn
    voting_time_limit: float = Field(default=60.0, gt=0)
    last_words_time_limit: float = Field(default=45.0, gt=0)

    # Game rule variants
    guard_rules: GuardRules = GuardRules.NO_CONSECUTIVE
    wolf_parity_wins: bool = False  # Wolves also win once they equal or outnumber the rest
    reveal_role_on_death: bool = True

    ai_difficulty: AIDifficulty = AIDifficulty.NORMAL

    @model_validator(mode='before')
    @classmethod
    def fill_role_distribution(cls, data):
        """Use the standard table for the player count when no distribution is given."""
        if isinstance(data, dict) and data.get("role_distribution") is None:
            player_count = data.get("player_count", 8)
            if isinstance(player_count, int) and player_count >= 4:
                data = {**data, "role_distribution": default_role_distribution(player_count)}
        return data

    @field_validator('role_distribution')
    @classmethod
    def validate_role_counts(cls, role_distribution):
        """Validate that role distribution makes sense for the game."""
        if any(count < 0 for count in role_distribution.values()):
            raise ValueError("Role counts must not be negative")

        for faction in Faction:
            seats = sum(role_distribution.get(role, 0) for role in roles_in_faction(faction))
            if seats < 1:
                raise ValueError(f"Game must have at least one {faction.value} faction seat")

        return role_distribution

    @model_validator(mode='after')
    def validate_total_players(self) -> 'GameSettings':
        """Validate that role distribution matches player count."""
        total_roles = sum(self.role_distribution.values())
        if total_roles != self.player_count:
            raise ValueError(
                f"Role distribution covers {total_roles} seats but player count is {self.player_count}"
            )
        if self.human_seat is not None and self.human_seat >= self.player_count:
            raise ValueError(f"Human seat {self.human_seat} is out of range for {self.player_count} seats")
        return self

    def role_count(self, role: Role) -> int:
        return self.role_distribution.get(role, 0)

    @model_serializer
    def serialize_model(self) -> dict:
        return {
            "id": str(self.id),
            "player_count": self.player_count,
            "role_distribution": {role.value: count for role, count in self.role_distribution.items()},
            "human_seat": self.human_seat,
            "human_speaking_slot": self.human_speaking_slot,
            "night_time_limit": self.night_time_limit,
            "discussion_time_limit": self.discussion_time_limit,
            "speech_time_limit": self.speech_time_limit,
            "voting_time_limit": self.voting_time_limit,
            "last_words_time_limit": self.last_words_time_limit,
            "guard_rules": self.guard_rules.value,
            "wolf_parity_wins": self.wolf_parity_wins,
            "reveal_role_on_death": self.reveal_role_on_death,
            "ai_difficulty": self.ai_difficulty.value
        }

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174001",
                "player_count": 8,
                "role_distribution": {
                    "werewolf": 2,
                    "villager": 4,
                    "seer": 1,
                    "witch": 1
                },
                "human_seat": 0,
                "discussion_time_limit": 300,
                "voting_time_limit": 60,
                "guard_rules": "no_consecutive",
                "reveal_role_on_death": True,
                "ai_difficulty": "normal"
            }
        }
    )
