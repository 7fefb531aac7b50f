import logging
from uuid import UUID
from typing import Dict, Iterable, List, Optional

from ..models.player import Faction, Player
from ..models.suspicion import Evidence, EvidenceKind, SuspicionState, SuspicionWeights

logger = logging.getLogger(__name__)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class SuspicionModel:
    """Evidence accumulator holding one AI seat's belief that each other seat is a wolf.

    One instance per AI seat. Nothing else reads or writes it, so every seat
    reasons from its own imperfect information.
    """

    def __init__(
        self,
        owner: Player,
        players: List[Player],
        wolf_count: int,
        weights: Optional[SuspicionWeights] = None,
        known_allies: Iterable[UUID] = (),
    ):
        self.weights = weights or SuspicionWeights()
        self.known_allies = set(known_allies)

        others = [p for p in players if p.id != owner.id]
        # A wolf does not count itself among the wolves it is looking for
        hidden_wolves = wolf_count - (1 if owner.faction == Faction.WEREWOLF else 0)
        prior = clamp(hidden_wolves / len(others)) if others else 0.0

        beliefs: Dict[UUID, float] = {}
        for player in others:
            beliefs[player.id] = 1.0 if player.id in self.known_allies else prior

        self.state = SuspicionState(
            owner_id=owner.id,
            beliefs=beliefs,
            seats={p.id: p.seat for p in others},
        )
        self._candidates = set(beliefs)

    def update_from_evidence(
        self,
        kind: EvidenceKind,
        subject_id: UUID,
        strength: float,
        day: int = 0,
    ) -> SuspicionState:
        """Apply ``new = clamp(old + weight * strength, 0, 1)`` and log the evidence.

        Unknown subjects and the owner itself are ignored.
        """
        if subject_id not in self.state.beliefs:
            logger.debug(f"Ignoring evidence about unknown subject {subject_id}")
            return self.state
        if subject_id in self.known_allies:
            # Allies are known for certain, evidence cannot move them
            return self.state

        strength = clamp(strength, -1.0, 1.0)
        weight = self.weights.weight_for(kind)
        old = self.state.beliefs[subject_id]
        self.state.beliefs[subject_id] = clamp(old + weight * strength)

        self.state.evidence.append(
            Evidence(kind=kind, subject_id=subject_id, strength=strength, weight=weight, day=day)
        )
        overflow = len(self.state.evidence) - self.state.evidence_capacity
        if overflow > 0:
            del self.state.evidence[:overflow]

        logger.debug(
            f"Suspicion of {self.state.owner_id} on {subject_id}: {old:.2f} -> "
            f"{self.state.beliefs[subject_id]:.2f} ({kind.value}, strength {strength:+.2f})"
        )
        return self.state

    def score(self, player_id: UUID) -> float:
        return self.state.score(player_id)

    def observe_death(self, player_id: UUID) -> None:
        """Drop a dead player from the candidate set."""
        self._candidates.discard(player_id)

    def candidates(self, among: Optional[Iterable[UUID]] = None) -> List[UUID]:
        pool = self._candidates if among is None else self._candidates.intersection(among)
        return sorted(pool, key=lambda pid: self.state.seats[pid])

    def most_suspicious(self, among: Optional[Iterable[UUID]] = None) -> Optional[UUID]:
        """Highest score, ties broken by lowest seat index. None when no candidate is left."""
        candidates = self.candidates(among)
        if not candidates:
            return None
        # candidates is sorted by seat, and max() keeps the first of equal keys
        return max(candidates, key=lambda pid: self.state.beliefs[pid])

    def most_trusted(self, among: Optional[Iterable[UUID]] = None) -> Optional[UUID]:
        """Lowest score, ties broken by lowest seat index."""
        candidates = self.candidates(among)
        if not candidates:
            return None
        return min(candidates, key=lambda pid: self.state.beliefs[pid])

    def tied_top(self, among: Optional[Iterable[UUID]] = None, tolerance: float = 1e-9) -> List[UUID]:
        """Every candidate sharing the highest score, in seat order."""
        candidates = self.candidates(among)
        if not candidates:
            return []
        top = max(self.state.beliefs[pid] for pid in candidates)
        return [pid for pid in candidates if top - self.state.beliefs[pid] <= tolerance]

    def snapshot(self) -> SuspicionState:
        return self.state.model_copy(deep=True)
