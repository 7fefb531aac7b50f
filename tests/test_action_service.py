import pytest
from uuid import uuid4

from mindwolf.models.game import GameState, GamePhase
from mindwolf.models.player import Player, Role, Faction, PlayerStatus, AbilityKind
from mindwolf.models.actions import NightAbilityAction, VoteAction
from mindwolf.models.settings import GameSettings, GuardRules
from mindwolf.services.action_service import ActionService, ActionValidationError


def _player(seat, role, status=PlayerStatus.ALIVE, **kwargs):
    faction = Faction.WEREWOLF if role == Role.WEREWOLF else Faction.VILLAGER
    return Player(seat=seat, name=f"Player {seat + 1}", role=role, faction=faction, status=status, **kwargs)


# Helper fixtures
@pytest.fixture
def action_service():
    return ActionService()

@pytest.fixture
def wolf():
    return _player(0, Role.WEREWOLF)

@pytest.fixture
def other_wolf():
    return _player(1, Role.WEREWOLF)

@pytest.fixture
def seer():
    return _player(2, Role.SEER)

@pytest.fixture
def witch():
    return _player(3, Role.WITCH)

@pytest.fixture
def guard():
    return _player(4, Role.GUARD)

@pytest.fixture
def villager():
    return _player(5, Role.VILLAGER)

@pytest.fixture
def dead_player():
    return _player(6, Role.VILLAGER, status=PlayerStatus.DEAD)

@pytest.fixture
def game_state_night(wolf, other_wolf, seer, witch, guard, villager, dead_player):
    return GameState(
        players=[wolf, other_wolf, seer, witch, guard, villager, dead_player],
        phase=GamePhase.NIGHT,
        day_number=1
    )

@pytest.fixture
def game_state_voting(game_state_night):
    game_state_night.phase = GamePhase.VOTING
    return game_state_night


def night(player, ability, target):
    return NightAbilityAction(player_id=player.id, ability=ability, target_id=target.id)


# --- Test record_night_action ---

def test_record_kill_success(action_service, game_state_night, wolf, villager):
    initial_time = game_state_night.updated_at

    action = action_service.record_night_action(game_state_night, night(wolf, AbilityKind.KILL, villager))

    assert game_state_night.night_actions == [action]
    assert game_state_night.updated_at >= initial_time


def test_record_inspect_and_protect(action_service, game_state_night, seer, guard, wolf, villager):
    action_service.record_night_action(game_state_night, night(seer, AbilityKind.INSPECT, wolf))
    action_service.record_night_action(game_state_night, night(guard, AbilityKind.PROTECT, guard))

    assert [a.ability for a in game_state_night.night_actions] == [AbilityKind.INSPECT, AbilityKind.PROTECT]


def test_night_action_wrong_phase(action_service, game_state_voting, wolf, villager):
    with pytest.raises(ActionValidationError, match="Night phase"):
        action_service.record_night_action(game_state_voting, night(wolf, AbilityKind.KILL, villager))


def test_night_action_unknown_player(action_service, game_state_night, villager):
    action = NightAbilityAction(player_id=uuid4(), ability=AbilityKind.KILL, target_id=villager.id)
    with pytest.raises(ActionValidationError, match="not in this game"):
        action_service.record_night_action(game_state_night, action)


def test_night_action_dead_actor_or_target(action_service, game_state_night, wolf, villager, dead_player):
    with pytest.raises(ActionValidationError, match="Target player must be alive"):
        action_service.record_night_action(game_state_night, night(wolf, AbilityKind.KILL, dead_player))

    wolf.status = PlayerStatus.DEAD
    with pytest.raises(ActionValidationError, match="must be alive"):
        action_service.record_night_action(game_state_night, night(wolf, AbilityKind.KILL, villager))


@pytest.mark.parametrize("role_fixture, ability", [
    ("villager", AbilityKind.KILL),
    ("seer", AbilityKind.PROTECT),
    ("wolf", AbilityKind.INSPECT),
    ("guard", AbilityKind.POISON),
])
def test_night_action_role_mismatch(request, action_service, game_state_night, role_fixture, ability, other_wolf):
    actor = request.getfixturevalue(role_fixture)
    target = request.getfixturevalue("villager") if actor.role != Role.VILLAGER else other_wolf
    with pytest.raises(ActionValidationError, match="cannot use"):
        action_service.record_night_action(game_state_night, night(actor, ability, target))
    assert game_state_night.night_actions == []


def test_one_action_per_seat_per_night(action_service, game_state_night, seer, wolf, villager):
    action_service.record_night_action(game_state_night, night(seer, AbilityKind.INSPECT, wolf))
    with pytest.raises(ActionValidationError, match="already acted"):
        action_service.record_night_action(game_state_night, night(seer, AbilityKind.INSPECT, villager))


def test_wolves_cannot_kill_wolves(action_service, game_state_night, wolf, other_wolf):
    with pytest.raises(ActionValidationError, match="cannot target a werewolf"):
        action_service.record_night_action(game_state_night, night(wolf, AbilityKind.KILL, other_wolf))


def test_seer_cannot_inspect_self(action_service, game_state_night, seer):
    with pytest.raises(ActionValidationError, match="inspect yourself"):
        action_service.record_night_action(game_state_night, night(seer, AbilityKind.INSPECT, seer))


# --- Witch ---

def test_heal_requires_an_attack(action_service, game_state_night, witch, villager):
    with pytest.raises(ActionValidationError, match="Nobody has been attacked"):
        action_service.record_night_action(game_state_night, night(witch, AbilityKind.HEAL, villager))


def test_heal_only_saves_the_victim(action_service, game_state_night, witch, villager, seer):
    game_state_night.pending_kill_target = villager.id

    with pytest.raises(ActionValidationError, match="tonight's victim"):
        action_service.record_night_action(game_state_night, night(witch, AbilityKind.HEAL, seer))

    action_service.record_night_action(game_state_night, night(witch, AbilityKind.HEAL, villager))
    assert game_state_night.night_actions[-1].ability == AbilityKind.HEAL


def test_used_potion_rejected(action_service, game_state_night, witch, wolf):
    witch.used_abilities = [AbilityKind.POISON]
    with pytest.raises(ActionValidationError, match="already been used"):
        action_service.record_night_action(game_state_night, night(witch, AbilityKind.POISON, wolf))


def test_witch_cannot_poison_self(action_service, game_state_night, witch):
    with pytest.raises(ActionValidationError, match="poison yourself"):
        action_service.record_night_action(game_state_night, night(witch, AbilityKind.POISON, witch))


# --- Guard rules ---

def test_guard_no_consecutive(action_service, game_state_night, guard, villager, seer):
    guard.last_protected_id = villager.id

    with pytest.raises(ActionValidationError, match="consecutive"):
        action_service.record_night_action(game_state_night, night(guard, AbilityKind.PROTECT, villager))

    action_service.record_night_action(game_state_night, night(guard, AbilityKind.PROTECT, seer))


def test_guard_no_self_protection(game_state_night, guard):
    service = ActionService(GameSettings(guard_rules=GuardRules.NO_SELF_PROTECTION))
    with pytest.raises(ActionValidationError, match="protect themselves"):
        service.record_night_action(game_state_night, night(guard, AbilityKind.PROTECT, guard))


def test_guard_standard_allows_repeat(game_state_night, guard, villager):
    service = ActionService(GameSettings(guard_rules=GuardRules.STANDARD))
    guard.last_protected_id = villager.id

    service.record_night_action(game_state_night, night(guard, AbilityKind.PROTECT, villager))
    assert len(game_state_night.night_actions) == 1


# --- Test record_vote ---

def test_record_vote_success(action_service, game_state_voting, seer, wolf):
    record = action_service.record_vote(game_state_voting, VoteAction(player_id=seer.id, target_id=wolf.id))

    assert record.voter_id == seer.id
    assert record.target_id == wolf.id
    assert record.day == 1
    assert record.phase == GamePhase.VOTING
    assert game_state_voting.votes == [record]


def test_vote_wrong_phase(action_service, game_state_night, seer, wolf):
    with pytest.raises(ActionValidationError, match="Voting phase"):
        action_service.record_vote(game_state_night, VoteAction(player_id=seer.id, target_id=wolf.id))


def test_vote_rules(action_service, game_state_voting, seer, wolf, dead_player):
    with pytest.raises(ActionValidationError, match="Dead players cannot vote"):
        action_service.record_vote(game_state_voting, VoteAction(player_id=dead_player.id, target_id=wolf.id))

    with pytest.raises(ActionValidationError, match="dead player"):
        action_service.record_vote(game_state_voting, VoteAction(player_id=seer.id, target_id=dead_player.id))

    with pytest.raises(ActionValidationError, match="yourself"):
        action_service.record_vote(game_state_voting, VoteAction(player_id=seer.id, target_id=seer.id))

    action_service.record_vote(game_state_voting, VoteAction(player_id=seer.id, target_id=wolf.id))
    with pytest.raises(ActionValidationError, match="already voted"):
        action_service.record_vote(game_state_voting, VoteAction(player_id=seer.id, target_id=wolf.id))

    assert len(game_state_voting.votes) == 1


def test_vote_unknown_target(action_service, game_state_voting, seer):
    with pytest.raises(ActionValidationError, match="Target player"):
        action_service.record_vote(game_state_voting, VoteAction(player_id=seer.id, target_id=uuid4()))


# --- Test validate_speaker ---

def test_validate_speaker(action_service, game_state_night, seer, villager):
    with pytest.raises(ActionValidationError, match="Discussion or Last Words"):
        action_service.validate_speaker(game_state_night, seer.id)

    game_state_night.phase = GamePhase.DISCUSSION
    game_state_night.current_speaker = seer.id

    assert action_service.validate_speaker(game_state_night, seer.id) is seer
    with pytest.raises(ActionValidationError, match="not your turn"):
        action_service.validate_speaker(game_state_night, villager.id)


def test_eliminated_player_may_give_last_words(action_service, game_state_night, dead_player):
    game_state_night.phase = GamePhase.LAST_WORDS
    game_state_night.current_speaker = dead_player.id

    assert action_service.validate_speaker(game_state_night, dead_player.id) is dead_player

    game_state_night.phase = GamePhase.DISCUSSION
    with pytest.raises(ActionValidationError, match="Dead players cannot speak"):
        action_service.validate_speaker(game_state_night, dead_player.id)


def test_role_mismatch_names_the_ability_owner(action_service, game_state_night, villager, wolf):
    with pytest.raises(ActionValidationError, match="Only the seer can"):
        action_service.record_night_action(game_state_night, night(villager, AbilityKind.INSPECT, wolf))
