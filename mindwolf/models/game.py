from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, model_serializer
from uuid import UUID, uuid4
from typing import List, Dict, Optional
from datetime import datetime

from .player import Player, Faction, PlayerStatus
from .actions import ChatMessage, NightAbilityAction


class GamePhase(str, Enum):
    """Game phases for the werewolf match."""
    PREPARATION = "preparation"  # Roles are dealt, entered exactly once
    NIGHT = "night"              # Seats with night abilities act
    DISCUSSION = "discussion"    # Speaking queue, one turn per living seat
    VOTING = "voting"            # Every living seat may vote once
    LAST_WORDS = "last_words"    # The seat eliminated by vote speaks once
    OVER = "over"                # Terminal


class VoteRecord(BaseModel):
    """One cast vote. The ledger is append-only for the voting phase."""
    voter_id: UUID
    target_id: UUID
    day: int
    phase: GamePhase = GamePhase.VOTING
    timestamp: datetime = Field(default_factory=datetime.now)


class GameState(BaseModel):
    """Main game state aggregate; GamePhaseEngine is its only writer."""
    game_id: UUID = Field(default_factory=uuid4)
    players: List[Player] = []
    phase: GamePhase = GamePhase.PREPARATION
    day_number: int = Field(default=0, ge=0)  # 0 during preparation, 1 for the first night/day

    dead_players: List[UUID] = []  # In order of death

    # Vote ledger for the current voting phase, archived per day once resolved
    votes: List[VoteRecord] = []
    vote_archive: Dict[int, List[VoteRecord]] = {}

    # Pending night actions and the wolves' current pick
    night_actions: List[NightAbilityAction] = []
    pending_kill_target: Optional[UUID] = None

    # Discussion / last words bookkeeping
    speaking_queue: List[UUID] = []
    current_speaker: Optional[UUID] = None
    turn_time_remaining: Optional[float] = None
    last_eliminated: Optional[UUID] = None

    time_remaining: Optional[float] = None  # Seconds left in the current phase
    winner: Optional[Faction] = None

    history: List[str] = []
    chat_history: List[ChatMessage] = []

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def add_to_history(self, event: str) -> None:
        """Add an event to the game history."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self.history.append(f"[{timestamp}] {event}")
        self.touch()

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def get_player(self, player_id: Optional[UUID]) -> Optional[Player]:
        if player_id is None:
            return None
        return next((p for p in self.players if p.id == player_id), None)

    def player_at(self, seat: int) -> Optional[Player]:
        return next((p for p in self.players if p.seat == seat), None)

    def living_players(self) -> List[Player]:
        return [p for p in self.players if p.status == PlayerStatus.ALIVE]

    def living_in_faction(self, faction: Faction) -> List[Player]:
        return [p for p in self.living_players() if p.faction == faction]

    @property
    def human_player(self) -> Optional[Player]:
        return next((p for p in self.players if p.is_human), None)

    @model_serializer
    def serialize_model(self) -> dict:
        return {
            "game_id": str(self.game_id),
            "players": [player.model_dump(mode="json") for player in self.players],
            "phase": self.phase.value,
            "day_number": self.day_number,
            "dead_players": [str(p) for p in self.dead_players],
            "votes": [vote.model_dump(mode="json") for vote in self.votes],
            "vote_archive": {
                str(day): [vote.model_dump(mode="json") for vote in ledger]
                for day, ledger in self.vote_archive.items()
            },
            "night_actions": [action.model_dump(mode="json") for action in self.night_actions],
            "pending_kill_target": str(self.pending_kill_target) if self.pending_kill_target else None,
            "speaking_queue": [str(p) for p in self.speaking_queue],
            "current_speaker": str(self.current_speaker) if self.current_speaker else None,
            "turn_time_remaining": self.turn_time_remaining,
            "last_eliminated": str(self.last_eliminated) if self.last_eliminated else None,
            "time_remaining": self.time_remaining,
            "winner": self.winner.value if self.winner else None,
            "history": self.history,
            "chat_history": [message.model_dump(mode="json") for message in self.chat_history],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "game_id": "123e4567-e89b-12d3-a456-426614174000",
                "players": [],
                "phase": "preparation",
                "day_number": 0,
                "dead_players": [],
                "votes": [],
                "vote_archive": {},
                "night_actions": [],
                "pending_kill_target": None,
                "speaking_queue": [],
                "current_speaker": None,
                "turn_time_remaining": None,
                "last_eliminated": None,
                "time_remaining": None,
                "winner": None,
                "history": ["Game created"],
                "chat_history": [],
                "created_at": "2025-04-27T12:00:00",
                "updated_at": "2025-04-27T12:00:00"
            }
        }
    )
