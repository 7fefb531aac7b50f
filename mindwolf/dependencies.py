from .services.game_manager import GameManager, game_manager
from .services.websocket_manager import WebSocketManager

# Create a single, shared instance of the WebSocketManager
websocket_manager_instance = WebSocketManager()


def get_websocket_manager() -> WebSocketManager:
    """FastAPI dependency getter for the global WebSocketManager instance."""
    return websocket_manager_instance


def get_game_manager() -> GameManager:
    """FastAPI dependency getter for the global GameManager instance."""
    return game_manager
