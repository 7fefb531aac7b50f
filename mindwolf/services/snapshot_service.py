"""Read-only, per-viewer projections of the game state."""

from uuid import UUID
from typing import Dict, List, Optional

from pydantic import BaseModel

from ..models.actions import ChatMessage
from ..models.game import GamePhase, GameState, VoteRecord
from ..models.player import AbilityKind, Faction, Player, PlayerStatus, Role


class PlayerView(BaseModel):
    id: UUID
    seat: int
    name: str
    status: PlayerStatus
    is_human: bool
    persona_name: Optional[str] = None
    role: Optional[Role] = None  # None when hidden from the viewer
    faction: Optional[Faction] = None


class ViewerInfo(BaseModel):
    """What only the viewing seat knows."""
    id: UUID
    role: Role
    faction: Faction
    allies: List[UUID] = []
    inspection_results: Dict[UUID, Faction] = {}
    used_abilities: List[AbilityKind] = []
    last_protected_id: Optional[UUID] = None
    pending_kill_target: Optional[UUID] = None  # witch only, while a potion decision is open


class GameSnapshot(BaseModel):
    game_id: UUID
    phase: GamePhase
    day_number: int
    time_remaining: Optional[float] = None
    turn_time_remaining: Optional[float] = None
    current_speaker: Optional[UUID] = None
    speaking_queue: List[UUID] = []
    players: List[PlayerView] = []
    votes: List[VoteRecord] = []
    winner: Optional[Faction] = None
    chat_history: List[ChatMessage] = []
    history: List[str] = []
    viewer: Optional[ViewerInfo] = None


def _role_visible(player: Player, viewer: Optional[Player], state: GameState, reveal_dead: bool) -> bool:
    if state.phase == GamePhase.OVER:
        return True
    if not player.is_alive and reveal_dead:
        return True
    if viewer is None:
        return False
    if player.id == viewer.id:
        return True
    return viewer.faction == Faction.WEREWOLF and player.faction == Faction.WEREWOLF


def build_snapshot(state: GameState, viewer_id: Optional[UUID] = None, reveal_dead_roles: bool = True) -> GameSnapshot:
    """Project the state for one viewer; roles of living non-allies stay hidden."""
    viewer = state.get_player(viewer_id)

    players = []
    for p in state.players:
        visible = _role_visible(p, viewer, state, reveal_dead_roles)
        faction = p.faction if visible else None
        if not visible and viewer is not None and p.id in viewer.inspection_results:
            faction = viewer.inspection_results[p.id]
        players.append(PlayerView(
            id=p.id,
            seat=p.seat,
            name=p.name,
            status=p.status,
            is_human=p.is_human,
            persona_name=p.persona_name,
            role=p.role if visible else None,
            faction=faction,
        ))

    viewer_info = None
    if viewer is not None:
        allies = []
        if viewer.faction == Faction.WEREWOLF:
            allies = [p.id for p in state.players if p.faction == Faction.WEREWOLF and p.id != viewer.id]
        pending = None
        if viewer.role == Role.WITCH and state.phase == GamePhase.NIGHT:
            pending = state.pending_kill_target
        viewer_info = ViewerInfo(
            id=viewer.id,
            role=viewer.role,
            faction=viewer.faction,
            allies=allies,
            inspection_results=dict(viewer.inspection_results),
            used_abilities=list(viewer.used_abilities),
            last_protected_id=viewer.last_protected_id,
            pending_kill_target=pending,
        )

    return GameSnapshot(
        game_id=state.game_id,
        phase=state.phase,
        day_number=state.day_number,
        time_remaining=state.time_remaining,
        turn_time_remaining=state.turn_time_remaining,
        current_speaker=state.current_speaker,
        speaking_queue=list(state.speaking_queue),
        players=players,
        votes=list(state.votes),
        winner=state.winner,
        chat_history=list(state.chat_history),
        history=list(state.history),
        viewer=viewer_info,
    )
