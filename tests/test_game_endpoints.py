import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from unittest.mock import patch, MagicMock, AsyncMock
import uuid

from mindwolf.dependencies import get_game_manager
from mindwolf.main import app
from mindwolf.models import GamePhase, GameSettings, NightAbilityAction, PassAction, SpeechAction, VoteAction
from mindwolf.models.player import AbilityKind
from mindwolf.services.action_service import ActionValidationError
from mindwolf.services.game_manager import GameManager
from mindwolf.services.generation_gateway import GenerationGateway
from mindwolf.services.replay_service import ReplayRecorder

from tests.helpers import CLASSIC_ROLES, build_engine

# Use FastAPI's TestClient
client = TestClient(app)


@pytest.fixture
def engine():
    return build_engine(CLASSIC_ROLES, human_seat=6)


# Patch the game_manager instance within the game_endpoints module
@pytest.fixture
def mock_manager():
    with patch('mindwolf.api.game_endpoints.game_manager', new_callable=MagicMock) as manager:
        manager.apply_human_action = AsyncMock()
        yield manager


def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_new_game(mock_manager, engine):
    """POST /api/game returns the human seat's snapshot."""
    mock_manager.create_game.return_value = engine.state

    settings_payload = {
        "player_count": 8,
        "role_distribution": {"werewolf": 2, "villager": 4, "seer": 1, "witch": 1},
        "human_seat": 6,
    }
    response = client.post("/api/game", json=settings_payload)

    assert response.status_code == 201, f"Expected 201 but got {response.status_code}. Response: {response.text}"
    data = response.json()
    assert data["game_id"] == str(engine.state.game_id)
    assert data["viewer"]["role"] == "seer"
    assert len(data["players"]) == 8
    mock_manager.create_game.assert_called_once()
    passed_settings = mock_manager.create_game.call_args.args[0]
    assert isinstance(passed_settings, GameSettings)
    assert passed_settings.human_seat == 6


def test_create_game_with_standard_distribution(mock_manager, engine):
    mock_manager.create_game.return_value = engine.state

    response = client.post("/api/game", json={"player_count": 6, "human_seat": 0, "ai_difficulty": "hard"})

    assert response.status_code == 201
    passed_settings = mock_manager.create_game.call_args.args[0]
    assert sum(passed_settings.role_distribution.values()) == 6
    assert passed_settings.ai_difficulty.value == "hard"


def test_create_game_invalid_settings(mock_manager):
    # Role counts do not add up to the player count
    response = client.post("/api/game", json={"player_count": 8, "role_distribution": {"werewolf": 2, "villager": 1}})

    assert response.status_code == 422
    mock_manager.create_game.assert_not_called()


def test_get_game_defaults_to_human_view(mock_manager, engine):
    mock_manager.get_engine.return_value = engine
    game_id = str(engine.state.game_id)

    response = client.get(f"/api/game/{game_id}")

    assert response.status_code == 200
    assert response.json()["viewer"]["id"] == str(engine.state.player_at(6).id)
    mock_manager.get_engine.assert_called_once_with(game_id)


def test_other_seat_ids_get_the_spectator_view(mock_manager, engine):
    """Player ids are public, so asking for another seat's view must not reveal its role."""
    mock_manager.get_engine.return_value = engine

    for player in engine.state.players:
        if player.is_human:
            continue
        response = client.get(f"/api/game/{engine.state.game_id}", params={"viewer_id": str(player.id)})

        assert response.status_code == 200
        data = response.json()
        assert data["viewer"] is None
        assert all(view["role"] is None for view in data["players"])


def test_analysis_waits_for_the_end(mock_manager, engine):
    mock_manager.get_engine.return_value = engine

    response = client.get(f"/api/game/{engine.state.game_id}/analysis")

    assert response.status_code == 409


def test_analysis_after_the_game(mock_manager, engine):
    mock_manager.get_engine.return_value = engine
    engine.state.phase = GamePhase.OVER

    response = client.get(f"/api/game/{engine.state.game_id}/analysis")

    assert response.status_code == 200
    reports = response.json()
    assert [r["seat"] for r in reports] == [0, 1, 2, 3, 4, 5, 7]
    assert reports[0]["role"] == "werewolf"
    assert len(reports[0]["suspicion_rankings"]) == 7


def test_analysis_for_unknown_game(mock_manager):
    mock_manager.get_engine.return_value = None

    response = client.get(f"/api/game/{uuid.uuid4()}/analysis")

    assert response.status_code == 404


def test_get_game_not_found(mock_manager):
    mock_manager.get_engine.return_value = None
    game_id = str(uuid.uuid4())

    response = client.get(f"/api/game/{game_id}")

    assert response.status_code == 404
    assert response.json()["detail"] == f"Game with ID {game_id} not found"


def test_get_game_invalid_id(mock_manager):
    response = client.get("/api/game/not-a-uuid")

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid game ID format: not-a-uuid"
    mock_manager.get_engine.assert_not_called()


def test_list_games(mock_manager):
    ids = [str(uuid.uuid4()), str(uuid.uuid4())]
    mock_manager.list_games.return_value = ids

    response = client.get("/api/games")

    assert response.status_code == 200
    assert response.json() == ids


def test_submit_night_action(mock_manager):
    game_id = str(uuid.uuid4())
    player_id, target_id = uuid.uuid4(), uuid.uuid4()

    response = client.post(f"/api/game/{game_id}/action", json={
        "player_id": str(player_id), "target_id": str(target_id), "ability": "inspect"
    })

    assert response.status_code == 204
    called_game_id, action = mock_manager.apply_human_action.await_args.args
    assert called_game_id == game_id
    assert isinstance(action, NightAbilityAction)
    assert action.ability == AbilityKind.INSPECT
    assert action.target_id == target_id


def test_submit_unknown_ability(mock_manager):
    response = client.post(f"/api/game/{uuid.uuid4()}/action", json={
        "player_id": str(uuid.uuid4()), "target_id": str(uuid.uuid4()), "ability": "investigate"
    })

    assert response.status_code == 422
    mock_manager.apply_human_action.assert_not_awaited()


def test_submit_message(mock_manager):
    game_id = str(uuid.uuid4())
    player_id = uuid.uuid4()

    response = client.post(f"/api/game/{game_id}/message", json={"player_id": str(player_id), "message": "  I trust Player 3.  "})

    assert response.status_code == 204
    action = mock_manager.apply_human_action.await_args.args[1]
    assert isinstance(action, SpeechAction)
    assert action.message == "I trust Player 3."


def test_submit_empty_message(mock_manager):
    response = client.post(f"/api/game/{uuid.uuid4()}/message", json={"player_id": str(uuid.uuid4()), "message": "   "})

    assert response.status_code == 400
    assert "Invalid message data" in response.json()["detail"]
    mock_manager.apply_human_action.assert_not_awaited()


def test_submit_pass_and_vote(mock_manager):
    game_id = str(uuid.uuid4())
    player_id, target_id = uuid.uuid4(), uuid.uuid4()

    assert client.post(f"/api/game/{game_id}/pass", json={"player_id": str(player_id)}).status_code == 204
    assert isinstance(mock_manager.apply_human_action.await_args.args[1], PassAction)

    response = client.post(f"/api/game/{game_id}/vote", json={"player_id": str(player_id), "target_id": str(target_id)})
    assert response.status_code == 204
    vote = mock_manager.apply_human_action.await_args.args[1]
    assert isinstance(vote, VoteAction)
    assert vote.target_id == target_id


def test_submit_to_unknown_game(mock_manager):
    game_id = str(uuid.uuid4())
    mock_manager.apply_human_action.side_effect = KeyError(game_id)

    response = client.post(f"/api/game/{game_id}/pass", json={"player_id": str(uuid.uuid4())})

    assert response.status_code == 404
    assert response.json()["detail"] == f"Game {game_id} not found."


def test_submit_rejected_action(mock_manager):
    mock_manager.apply_human_action.side_effect = ActionValidationError("Voting is only allowed during the Voting phase.")

    response = client.post(f"/api/game/{uuid.uuid4()}/vote", json={
        "player_id": str(uuid.uuid4()), "target_id": str(uuid.uuid4())
    })

    assert response.status_code == 400
    assert response.json()["detail"] == "Voting is only allowed during the Voting phase."


def test_submit_invalid_game_id(mock_manager):
    response = client.post("/api/game/123/pass", json={"player_id": str(uuid.uuid4())})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid game ID format: 123"
    mock_manager.apply_human_action.assert_not_awaited()


# --- WebSocket ---

def test_websocket_sends_viewer_snapshot_on_connect(engine):
    games = GameManager(gateway=GenerationGateway([]), recorder=ReplayRecorder())
    games.engines[str(engine.state.game_id)] = engine
    app.dependency_overrides[get_game_manager] = lambda: games
    seer = engine.state.player_at(6)
    try:
        with client.websocket_connect(f"/ws/{engine.state.game_id}/{seer.id}") as websocket:
            data = websocket.receive_json()
    finally:
        app.dependency_overrides.clear()

    assert data["game_id"] == str(engine.state.game_id)
    assert data["viewer"]["role"] == "seer"


def test_websocket_rejects_invalid_ids():
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/ws/not-a-game/{uuid.uuid4()}") as websocket:
            websocket.receive_text()


def test_websocket_for_an_ai_seat_gets_the_spectator_view(engine):
    games = GameManager(gateway=GenerationGateway([]), recorder=ReplayRecorder())
    games.engines[str(engine.state.game_id)] = engine
    app.dependency_overrides[get_game_manager] = lambda: games
    wolf = engine.state.player_at(0)
    try:
        with client.websocket_connect(f"/ws/{engine.state.game_id}/{wolf.id}") as websocket:
            data = websocket.receive_json()
    finally:
        app.dependency_overrides.clear()

    assert data["viewer"] is None
    assert all(view["role"] is None for view in data["players"])
