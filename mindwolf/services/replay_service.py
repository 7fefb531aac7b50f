import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union
from uuid import UUID

from ..models.events import GameEvent

logger = logging.getLogger(__name__)


class ReplayRecorder:
    """Receives every resolved event of a match.

    Events are kept in memory per game and, when a replay directory is set,
    appended to ``game_<id>.jsonl`` as one JSON object per line. The match
    never reads this stream back.
    """

    def __init__(self, replay_dir: Optional[Union[str, Path]] = None):
        self.replay_dir = Path(replay_dir) if replay_dir else None
        self.events: Dict[str, List[GameEvent]] = {}

    def _get_replay_file_path(self, game_id_str: str) -> Path:
        """Constructs the full path for a replay file using a string ID."""
        self.replay_dir.mkdir(parents=True, exist_ok=True)
        return self.replay_dir / f"game_{game_id_str}.jsonl"

    def record(self, event: GameEvent) -> None:
        game_id_str = str(event.game_id)
        self.events.setdefault(game_id_str, []).append(event)

        if self.replay_dir is None:
            return
        file_path = self.replay_dir / f"game_{game_id_str}.jsonl"
        try:
            file_path = self._get_replay_file_path(game_id_str)
            with open(file_path, "a") as f:
                f.write(event.model_dump_json() + "\n")
        except OSError as e:
            # The in-memory stream stays complete, only the file copy is short
            logger.error(f"Error writing replay event for game {game_id_str} to {file_path}: {e}")

    def events_for(self, game_id: Union[str, UUID]) -> List[GameEvent]:
        return list(self.events.get(str(game_id), []))

    def load_replay(self, game_id: Union[str, UUID]) -> List[GameEvent]:
        """Read a replay file back, for tooling outside the match.

        Returns an empty list when no file exists. Malformed lines are skipped.
        """
        if self.replay_dir is None:
            return []
        file_path = self.replay_dir / f"game_{game_id}.jsonl"
        if not file_path.exists():
            logger.info(f"No replay file found for game {game_id}.")
            return []

        events: List[GameEvent] = []
        with open(file_path, "r") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    events.append(GameEvent.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning(f"Skipping malformed replay line {line_number} in {file_path}: {e}")
        return events

    def clear(self, game_id: Union[str, UUID]) -> None:
        self.events.pop(str(game_id), None)
