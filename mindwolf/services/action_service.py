import logging
from uuid import UUID
from typing import Optional

from ..models.game import GameState, GamePhase, VoteRecord
from ..models.player import Player, Faction, AbilityKind
from ..models.actions import NightAbilityAction, VoteAction
from ..models.settings import GameSettings, GuardRules
from ..models.roles import abilities_of, role_for_ability, SINGLE_USE_ABILITIES

logger = logging.getLogger(__name__)


class ActionValidationError(Exception):
    """Custom exception for action validation errors."""
    pass


class ActionService:
    """Validates and records player actions.

    Human and AI actions go through the same checks. A failed check raises
    ActionValidationError before anything in the game state is touched.
    """

    def __init__(self, settings: Optional[GameSettings] = None) -> None:
        self.settings = settings or GameSettings()

    def _get_player(self, game_state: GameState, player_id: UUID, label: str = "Player") -> Player:
        player = game_state.get_player(player_id)
        if not player:
            raise ActionValidationError(f"{label} with ID {player_id} is not in this game.")
        return player

    def _validate_night_action(
        self,
        game_state: GameState,
        player: Player,
        target: Player,
        ability: AbilityKind,
    ) -> None:
        """Performs validation checks before recording a night action."""
        if game_state.phase != GamePhase.NIGHT:
            raise ActionValidationError("Night abilities can only be used during the Night phase.")

        if not player.is_alive:
            raise ActionValidationError("Player must be alive to use an ability.")

        if not target.is_alive:
            raise ActionValidationError("Target player must be alive.")

        # Check if the player's role holds this ability
        if ability not in abilities_of(player.role):
            owner = role_for_ability(ability)
            hint = f" Only the {owner.value} can." if owner else ""
            raise ActionValidationError(f"Player role '{player.role.value}' cannot use '{ability.value}'.{hint}")

        # One action per seat per night, the witch included
        if any(a.player_id == player.id for a in game_state.night_actions):
            raise ActionValidationError("Player has already acted this night.")

        if ability in SINGLE_USE_ABILITIES and ability in player.used_abilities:
            raise ActionValidationError(f"The {ability.value} potion has already been used.")

        if ability == AbilityKind.KILL and target.faction == Faction.WEREWOLF:
            raise ActionValidationError("Werewolves cannot target a werewolf.")

        if ability in (AbilityKind.INSPECT, AbilityKind.POISON) and target.id == player.id:
            raise ActionValidationError(f"Cannot {ability.value} yourself.")

        if ability == AbilityKind.HEAL:
            if game_state.pending_kill_target is None:
                raise ActionValidationError("Nobody has been attacked tonight yet.")
            if target.id != game_state.pending_kill_target:
                raise ActionValidationError("The healing potion can only save tonight's victim.")

        if ability == AbilityKind.PROTECT:
            rules = self.settings.guard_rules
            if rules == GuardRules.NO_SELF_PROTECTION and target.id == player.id:
                raise ActionValidationError("Guard cannot protect themselves.")
            if rules == GuardRules.NO_CONSECUTIVE and target.id == player.last_protected_id:
                raise ActionValidationError("Guard cannot protect the same player on consecutive nights.")

    def record_night_action(self, game_state: GameState, action: NightAbilityAction) -> NightAbilityAction:
        """
        Records a night ability for a player targeting another player.

        Args:
            game_state: The current game state.
            action: The ability, its user and its target.

        Returns:
            The recorded action.

        Raises:
            ActionValidationError: If the action is invalid (wrong phase, dead player, role mismatch, etc.).
        """
        player = self._get_player(game_state, action.player_id)
        target = self._get_player(game_state, action.target_id, "Target player")

        self._validate_night_action(game_state, player, target, action.ability)

        game_state.night_actions.append(action)
        game_state.touch()
        logger.debug(f"Recorded night action: {action.ability.value} by {player.name} on {target.name}")
        return action

    def record_vote(self, game_state: GameState, action: VoteAction) -> VoteRecord:
        """Append a vote to the current ledger.

        Raises:
            ActionValidationError: wrong phase, dead voter or target, a second vote, or a self-vote.
        """
        if game_state.phase != GamePhase.VOTING:
            raise ActionValidationError("Votes can only be cast during the Voting phase.")

        voter = self._get_player(game_state, action.player_id, "Voter")
        target = self._get_player(game_state, action.target_id, "Target player")

        if not voter.is_alive:
            raise ActionValidationError("Dead players cannot vote.")
        if not target.is_alive:
            raise ActionValidationError("Cannot vote for a dead player.")
        if voter.id == target.id:
            raise ActionValidationError("Cannot vote for yourself.")
        if any(v.voter_id == voter.id for v in game_state.votes):
            raise ActionValidationError("Player has already voted this round.")

        record = VoteRecord(
            voter_id=voter.id,
            target_id=target.id,
            day=game_state.day_number,
            phase=game_state.phase,
        )
        game_state.votes.append(record)
        game_state.touch()
        logger.debug(f"Recorded vote: {voter.name} -> {target.name}")
        return record

    def validate_speaker(self, game_state: GameState, player_id: UUID) -> Player:
        """Check that a player holds the floor right now."""
        if game_state.phase not in (GamePhase.DISCUSSION, GamePhase.LAST_WORDS):
            raise ActionValidationError("Speeches are only allowed during Discussion or Last Words.")

        player = self._get_player(game_state, player_id)
        if game_state.current_speaker != player.id:
            raise ActionValidationError("It is not your turn to speak.")
        if game_state.phase == GamePhase.DISCUSSION and not player.is_alive:
            raise ActionValidationError("Dead players cannot speak.")
        return player
