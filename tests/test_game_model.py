import pytest
from uuid import UUID, uuid4
from datetime import datetime

from mindwolf.models.game import GamePhase, GameState, VoteRecord
from mindwolf.models.player import Player, Role, Faction, PlayerStatus


def _player(seat, role=Role.VILLAGER, faction=Faction.VILLAGER, **kwargs):
    return Player(seat=seat, name=f"Player {seat + 1}", role=role, faction=faction, **kwargs)


def test_game_phase_enum():
    """Test that GamePhase enum contains the expected values."""
    assert [phase.value for phase in GamePhase] == [
        "preparation", "night", "discussion", "voting", "last_words", "over"
    ]
    assert GamePhase("last_words") == GamePhase.LAST_WORDS


def test_game_state_creation():
    """Test that a GameState can be created with defaults."""
    game_state = GameState()

    assert isinstance(game_state.game_id, UUID)
    assert game_state.players == []
    assert game_state.phase == GamePhase.PREPARATION
    assert game_state.day_number == 0
    assert game_state.history == []
    assert game_state.night_actions == []
    assert game_state.votes == []
    assert game_state.vote_archive == {}
    assert game_state.pending_kill_target is None
    assert isinstance(game_state.created_at, datetime)
    assert game_state.winner is None


def test_player_lookups():
    wolf = _player(0, Role.WEREWOLF, Faction.WEREWOLF)
    seer = _player(1, Role.SEER, is_human=True)
    dead = _player(2, status=PlayerStatus.DEAD)
    game_state = GameState(players=[wolf, seer, dead])

    assert game_state.get_player(seer.id) is seer
    assert game_state.get_player(uuid4()) is None
    assert game_state.get_player(None) is None
    assert game_state.player_at(2) is dead
    assert game_state.player_at(5) is None
    assert game_state.living_players() == [wolf, seer]
    assert game_state.living_in_faction(Faction.WEREWOLF) == [wolf]
    assert game_state.living_in_faction(Faction.VILLAGER) == [seer]
    assert game_state.human_player is seer


def test_add_to_history_touches_state():
    game_state = GameState()
    before = game_state.updated_at

    game_state.add_to_history("Night 1 begins")

    assert len(game_state.history) == 1
    assert game_state.history[0].endswith("Night 1 begins")
    assert game_state.updated_at >= before


def test_game_state_serialization():
    """Test that GameState serializes UUIDs and enums to JSON-friendly values."""
    wolf = _player(0, Role.WEREWOLF, Faction.WEREWOLF)
    villager = _player(1)
    game_state = GameState(
        players=[wolf, villager],
        phase=GamePhase.VOTING,
        day_number=2,
        votes=[VoteRecord(voter_id=wolf.id, target_id=villager.id, day=2)],
        current_speaker=None,
        winner=Faction.WEREWOLF,
    )

    data = game_state.model_dump()

    assert data["game_id"] == str(game_state.game_id)
    assert data["phase"] == "voting"
    assert data["day_number"] == 2
    assert data["players"][0]["role"] == "werewolf"
    assert data["votes"][0]["voter_id"] == str(wolf.id)
    assert data["votes"][0]["phase"] == "voting"
    assert data["current_speaker"] is None
    assert data["winner"] == "werewolf"
    assert isinstance(data["created_at"], str)


def test_negative_day_number_rejected():
    with pytest.raises(ValueError):
        GameState(day_number=-1)
