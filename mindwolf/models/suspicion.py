from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, model_serializer
from uuid import UUID
from typing import Dict, List


class EvidenceKind(str, Enum):
    """Observations that move a suspicion score."""
    CONTRADICTION_IN_SPEECH = "contradiction_in_speech"
    VOTING_PATTERN_DIVERGENCE = "voting_pattern_divergence"
    NIGHT_RESULT_CONFLICT = "night_result_conflict"
    ROLE_CLAIM_CONFLICT = "role_claim_conflict"


class SuspicionWeights(BaseModel):
    """Fixed update weight per evidence kind. Configuration, not learned."""
    contradiction_in_speech: float = Field(default=0.15, ge=0.0, le=1.0)
    voting_pattern_divergence: float = Field(default=0.2, ge=0.0, le=1.0)
    night_result_conflict: float = Field(default=0.6, ge=0.0, le=1.0)
    role_claim_conflict: float = Field(default=0.3, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    def weight_for(self, kind: EvidenceKind) -> float:
        return getattr(self, kind.value)


class Evidence(BaseModel):
    """One entry in a seat's evidence log."""
    kind: EvidenceKind
    subject_id: UUID
    strength: float = Field(ge=-1.0, le=1.0)  # Negative strength clears suspicion
    weight: float
    day: int = 0


class SuspicionState(BaseModel):
    """One AI seat's private belief that each other seat is a werewolf."""
    owner_id: UUID
    beliefs: Dict[UUID, float] = {}  # {player_id: probability in [0, 1]}
    seats: Dict[UUID, int] = {}  # {player_id: seat index}, used for tie-breaks
    evidence: List[Evidence] = []

    # Evidence log capacity, older entries are dropped first
    evidence_capacity: int = 64

    def score(self, player_id: UUID) -> float:
        return self.beliefs.get(player_id, 0.0)

    @model_serializer
    def serialize_model(self) -> dict:
        return {
            "owner_id": str(self.owner_id),
            "beliefs": {str(k): v for k, v in self.beliefs.items()},
            "seats": {str(k): v for k, v in self.seats.items()},
            "evidence": [e.model_dump(mode="json") for e in self.evidence],
            "evidence_capacity": self.evidence_capacity
        }

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "owner_id": "123e4567-e89b-12d3-a456-426614174000",
                "beliefs": {
                    "123e4567-e89b-12d3-a456-426614174001": 0.28,
                    "123e4567-e89b-12d3-a456-426614174002": 0.71
                },
                "seats": {
                    "123e4567-e89b-12d3-a456-426614174001": 1,
                    "123e4567-e89b-12d3-a456-426614174002": 2
                },
                "evidence": [
                    {
                        "kind": "role_claim_conflict",
                        "subject_id": "123e4567-e89b-12d3-a456-426614174002",
                        "strength": 1.0,
                        "weight": 0.3,
                        "day": 2
                    }
                ],
                "evidence_capacity": 64
            }
        }
    )
