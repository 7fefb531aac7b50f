import asyncio
import json
import logging
from fastapi import WebSocket
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Builds the payload for one client, given that client's id
MessageBuilder = Callable[[Optional[str]], Dict[str, Any]]


class WebSocketManager:
    def __init__(self):
        # Maps game_id (str UUID) to {connection: client_id} for that game
        self.active_connections: Dict[str, Dict[WebSocket, Optional[str]]] = {}

    async def connect(self, websocket: WebSocket, game_id: str, client_id: Optional[str] = None):
        """Registers a new WebSocket connection for a given game."""
        await websocket.accept()
        self.active_connections.setdefault(game_id, {})[websocket] = client_id
        logger.info(f"WebSocket connected for game {game_id}. Total connections: {len(self.active_connections[game_id])}")

    def disconnect(self, websocket: WebSocket, game_id: str):
        """Unregisters a WebSocket connection."""
        connections = self.active_connections.get(game_id)
        if connections is None or websocket not in connections:
            return
        del connections[websocket]
        logger.info(f"WebSocket disconnected for game {game_id}. Remaining connections: {len(connections)}")
        if not connections:
            # Clean up empty mapping
            del self.active_connections[game_id]
            logger.debug(f"Game {game_id} has no active connections.")

    async def broadcast_to_game(self, game_id: str, build_message: MessageBuilder):
        """Sends each client in a game its own view of the state.

        Sockets that fail to receive are treated as disconnected and dropped.
        """
        connections = list(self.active_connections.get(game_id, {}).items())
        if not connections:
            return

        tasks = [
            self._send_personal_message(websocket, json.dumps(build_message(client_id), default=str))
            for websocket, client_id in connections
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for (websocket, _), result in zip(connections, results):
            if isinstance(result, Exception):
                logger.warning(f"Error sending message to a WebSocket in game {game_id}: {result}")
                self.disconnect(websocket, game_id)

    async def _send_personal_message(self, websocket: WebSocket, message: str):
        """Helper to send a message to a single WebSocket."""
        await websocket.send_text(message)
