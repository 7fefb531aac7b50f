import logging
import uuid
from uuid import UUID
from typing import List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ValidationError

from ..models.actions import BaseAction, NightAbilityAction, PassAction, SpeechAction, VoteAction
from ..models.player import AbilityKind
from ..models.settings import GameSettings
from ..services.game_manager import game_manager
from ..services.action_service import ActionValidationError
from ..services.snapshot_service import GameSnapshot, build_snapshot
from ..services.strategy_engine import AnalysisReport

logger = logging.getLogger(__name__)

router = APIRouter()

# --- Helper Pydantic Models for Request Bodies ---

class ActionRequest(BaseModel):
    player_id: UUID
    target_id: UUID
    ability: AbilityKind

class MessageRequest(BaseModel):
    player_id: UUID
    message: str

class PassRequest(BaseModel):
    player_id: UUID

class VoteRequest(BaseModel):
    player_id: UUID  # Voter
    target_id: UUID  # Voted for


def _validate_game_id(game_id: str) -> None:
    try:
        uuid.UUID(game_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid game ID format: {game_id}")


async def _submit(game_id: str, action: BaseAction) -> None:
    """Hands a human action to the match, mapping failures to HTTP errors."""
    _validate_game_id(game_id)
    try:
        await game_manager.apply_human_action(game_id, action)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Game {game_id} not found.")
    except ActionValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/game", response_model=GameSnapshot, status_code=status.HTTP_201_CREATED)
async def create_new_game(settings: GameSettings):
    """
    Creates a new game based on the provided settings and starts its match loop.
    """
    game_state = game_manager.create_game(settings)
    human = game_state.human_player
    return build_snapshot(game_state, human.id if human else None, settings.reveal_role_on_death)


@router.get("/game/{game_id}", response_model=GameSnapshot)
async def get_game_by_id(game_id: str, viewer_id: Optional[UUID] = None):
    """
    Retrieves a snapshot of a game. The human seat gets its private view (the default);
    any other viewer gets the spectator view.
    """
    _validate_game_id(game_id)
    engine = game_manager.get_engine(game_id)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Game with ID {game_id} not found")

    if viewer_id is None and engine.state.human_player is not None:
        viewer_id = engine.state.human_player.id
    return engine.client_snapshot(viewer_id)


@router.get("/game/{game_id}/analysis", response_model=List[AnalysisReport])
async def get_game_analysis(game_id: str):
    """
    Retrieves every AI seat's final trust and suspicion rankings. Only served
    once the game is over, since the reports name roles.
    """
    _validate_game_id(game_id)
    engine = game_manager.get_engine(game_id)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Game with ID {game_id} not found")
    if not engine.is_over:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Analysis is available once the game is over.")
    return engine.analysis_reports()


@router.get("/games", response_model=List[str])
async def list_all_games():
    """
    Retrieves the IDs of all active games.
    """
    return game_manager.list_games()


@router.post("/game/{game_id}/action", status_code=status.HTTP_204_NO_CONTENT)
async def submit_player_action(game_id: str, action_data: ActionRequest):
    """
    Submits a night ability (kill, inspect, heal, poison, protect) for the human seat.
    """
    action = NightAbilityAction(
        player_id=action_data.player_id,
        target_id=action_data.target_id,
        ability=action_data.ability,
    )
    await _submit(game_id, action)


@router.post("/game/{game_id}/message", status_code=status.HTTP_204_NO_CONTENT)
async def submit_player_message(game_id: str, message_data: MessageRequest):
    """
    Submits the human seat's speech during its Discussion or Last Words turn.
    """
    try:
        action = SpeechAction(player_id=message_data.player_id, message=message_data.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid message data: {e}")
    await _submit(game_id, action)


@router.post("/game/{game_id}/pass", status_code=status.HTTP_204_NO_CONTENT)
async def submit_player_pass(game_id: str, pass_data: PassRequest):
    """
    Gives up the human seat's speaking turn, night ability or vote.
    """
    await _submit(game_id, PassAction(player_id=pass_data.player_id))


@router.post("/game/{game_id}/vote", status_code=status.HTTP_204_NO_CONTENT)
async def submit_player_vote(game_id: str, vote_data: VoteRequest):
    """
    Submits the human seat's vote during the Voting phase.
    """
    await _submit(game_id, VoteAction(player_id=vote_data.player_id, target_id=vote_data.target_id))
