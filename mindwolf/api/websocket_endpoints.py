import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends

from ..services.game_manager import GameManager
from ..services.websocket_manager import WebSocketManager
from ..dependencies import get_websocket_manager, get_game_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/{game_id}/{client_id}")
async def websocket_endpoint(
    websocket: WebSocket,
    game_id: str,
    client_id: str,  # The viewing player's id
    manager: WebSocketManager = Depends(get_websocket_manager),
    games: GameManager = Depends(get_game_manager),
):
    """Streams per-viewer snapshots of a game to one client."""
    try:
        uuid.UUID(game_id)
        uuid.UUID(client_id)
    except ValueError:
        logger.warning(f"Invalid game_id or client_id format: {game_id}, {client_id}")
        await websocket.close(code=1008)  # Policy Violation
        return

    await manager.connect(websocket, game_id, client_id)
    # Send the current view right away instead of waiting for the next change
    await games.broadcast(game_id)
    try:
        while True:
            # Server->client pushes only; incoming text just keeps the socket alive
            data = await websocket.receive_text()
            logger.debug(f"Received from {client_id} in {game_id}: {data}")
    except WebSocketDisconnect:
        manager.disconnect(websocket, game_id)
        logger.info(f"Client {client_id} disconnected from game {game_id}")
