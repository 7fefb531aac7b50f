import asyncio
import logging
import random
from typing import Dict, List, Optional
from uuid import UUID

from ..core.config import settings
from ..models import GameSettings, GameState, SessionMode
from ..models.actions import BaseAction
from .generation_gateway import GenerationGateway, gateway_from_settings
from .phase_engine import GamePhaseEngine
from .replay_service import ReplayRecorder

logger = logging.getLogger(__name__)


class GameManager:
    """Holds active matches and runs each match loop as an asyncio task."""

    def __init__(
        self,
        gateway: Optional[GenerationGateway] = None,
        recorder: Optional[ReplayRecorder] = None,
        tick_interval: Optional[float] = None,
        retention: Optional[float] = None,
    ):
        self.engines: Dict[str, GamePhaseEngine] = {}
        self.tasks: Dict[str, asyncio.Task] = {}
        # Pending evictions of finished games
        self.evictions: Dict[str, asyncio.TimerHandle] = {}
        self._gateway = gateway
        self.recorder = recorder or ReplayRecorder(settings.REPLAY_DIR)
        self.tick_interval = tick_interval or settings.TICK_INTERVAL
        self.retention = settings.FINISHED_GAME_RETENTION if retention is None else retention

    @property
    def gateway(self) -> GenerationGateway:
        # Built on first use so importing the app never touches provider SDKs
        if self._gateway is None:
            self._gateway = gateway_from_settings(settings)
        return self._gateway

    def create_game(self, game_settings: GameSettings, seed: Optional[int] = None, autostart: bool = True) -> GameState:
        """Creates a new match, runs Preparation and starts its loop."""
        engine = GamePhaseEngine(
            game_settings,
            gateway=self.gateway,
            recorder=self.recorder,
            rng=random.Random(seed) if seed is not None else None,
            weights=settings.suspicion_weights(),
            session_mode=SessionMode.SESSION if settings.OPENAI_USE_REALTIME else SessionMode.REQUEST,
        )
        engine.start()
        game_id_str = str(engine.state.game_id)
        self.engines[game_id_str] = engine
        logger.info(f"Game {game_id_str} created")

        if autostart:
            self._launch(game_id_str, engine)
        return engine.state

    def _launch(self, game_id_str: str, engine: GamePhaseEngine) -> None:
        async def on_update(state: GameState) -> None:
            await self.broadcast(game_id_str)

        task = asyncio.get_running_loop().create_task(engine.run(self.tick_interval, on_update))
        task.add_done_callback(lambda t: self._on_loop_done(game_id_str, t))
        self.tasks[game_id_str] = task

    def _on_loop_done(self, game_id_str: str, task: asyncio.Task) -> None:
        self.tasks.pop(game_id_str, None)
        if task.cancelled():
            # remove_game already forgets the game
            logger.info(f"Match loop for game {game_id_str} cancelled")
            return
        if task.exception() is not None:
            logger.error(f"Match loop for game {game_id_str} crashed", exc_info=task.exception())
        else:
            logger.info(f"Match loop for game {game_id_str} finished")
        self._schedule_eviction(game_id_str)

    def _schedule_eviction(self, game_id_str: str) -> None:
        """Keep a finished game readable for the retention window, then drop it."""
        if game_id_str not in self.engines:
            return
        if self.retention <= 0:
            self._evict(game_id_str)
            return
        loop = asyncio.get_running_loop()
        self.evictions[game_id_str] = loop.call_later(self.retention, self._evict, game_id_str)

    def _evict(self, game_id_str: str) -> None:
        handle = self.evictions.pop(game_id_str, None)
        if handle is not None:
            handle.cancel()
        if self.engines.pop(game_id_str, None) is not None:
            self.recorder.clear(game_id_str)
            logger.info(f"Game {game_id_str} evicted")

    def get_engine(self, game_id_str: str) -> Optional[GamePhaseEngine]:
        return self.engines.get(game_id_str)

    def get_game(self, game_id_str: str) -> Optional[GameState]:
        engine = self.engines.get(game_id_str)
        return engine.state if engine else None

    def list_games(self) -> List[str]:
        return list(self.engines)

    async def apply_human_action(self, game_id_str: str, action: BaseAction) -> GameState:
        """Applies a human action and broadcasts the result.

        Raises:
            KeyError: unknown game.
            ActionValidationError: invalid action, nothing changed.
        """
        engine = self.engines.get(game_id_str)
        if engine is None:
            raise KeyError(game_id_str)
        state = engine.apply_human_action(action)
        await self.broadcast(game_id_str)
        return state

    async def broadcast(self, game_id_str: str) -> None:
        """Pushes every connected client its own snapshot of the game."""
        engine = self.engines.get(game_id_str)
        if engine is None:
            return
        from ..dependencies import get_websocket_manager
        websocket_manager = get_websocket_manager()

        def build_message(client_id: Optional[str]) -> dict:
            viewer = None
            if client_id:
                try:
                    viewer = UUID(client_id)
                except ValueError:
                    viewer = None
            return engine.client_snapshot(viewer).model_dump(mode="json")

        await websocket_manager.broadcast_to_game(game_id_str, build_message)

    async def remove_game(self, game_id_str: str) -> None:
        """Stops a match loop and forgets the game."""
        task = self.tasks.pop(game_id_str, None)
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._evict(game_id_str)

    async def shutdown(self) -> None:
        for game_id_str in list(self.engines):
            await self.remove_game(game_id_str)
        if self._gateway is not None:
            await self._gateway.close()


game_manager = GameManager()  # Make the instance available globally
