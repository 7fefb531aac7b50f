"""Authoritative werewolf state machine and match loop.

Preparation -> Night -> Discussion -> Voting -> LastWords -> (Night | Over)

Every state mutation happens in synchronous code. The only await is an AI
speech turn, which goes through the generation gateway under a wall-clock
budget; a turn that overruns it is cancelled and counted as a pass.
"""

import asyncio
import logging
import random
import time
from collections import Counter
from typing import Awaitable, Callable, Dict, List, Optional, Set
from uuid import UUID

from ..models.actions import (
    BaseAction,
    NightAbilityAction,
    PassAction,
    SpeechAction,
    VoteAction,
    ChatMessage,
)
from ..models.events import EventKind, GameEvent
from ..models.game import GamePhase, GameState
from ..models.generation import GenerationAttempt, SessionMode
from ..models.persona import PERSONA_TEMPLATES, personality_for
from ..models.player import AbilityKind, Faction, Player, PlayerStatus, Role
from ..models.roles import faction_of, has_night_ability, SINGLE_USE_ABILITIES
from ..models.settings import GameSettings
from ..models.suspicion import SuspicionWeights
from .action_service import ActionService, ActionValidationError
from .generation_gateway import GenerationGateway
from .prompt_builder import PromptBuilder
from .providers import ProviderError
from .replay_service import ReplayRecorder
from .snapshot_service import GameSnapshot, build_snapshot
from .strategy_engine import AnalysisReport, StrategyEngine
from .suspicion_model import SuspicionModel

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[GameState], Awaitable[None]]


class StateInvariantError(Exception):
    """Match configuration that cannot produce a valid game."""
    pass


def validate_role_distribution(settings: GameSettings) -> None:
    """Raise StateInvariantError unless the distribution fills every seat and both factions."""
    distribution = settings.role_distribution
    if any(count < 0 for count in distribution.values()):
        raise StateInvariantError("Role counts must not be negative")
    total = sum(distribution.values())
    if total != settings.player_count:
        raise StateInvariantError(
            f"Role distribution covers {total} seats but the match has {settings.player_count}"
        )
    for faction in Faction:
        if sum(count for role, count in distribution.items() if faction_of(role) == faction) < 1:
            raise StateInvariantError(f"Role distribution has no {faction.value} seat")


class GamePhaseEngine:
    """Owns one match's GameState and is its only writer.

    Strategies, the snapshot projection and the replay recorder only ever see
    copies or events.
    """

    def __init__(
        self,
        settings: GameSettings,
        gateway: Optional[GenerationGateway] = None,
        recorder: Optional[ReplayRecorder] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        weights: Optional[SuspicionWeights] = None,
        session_mode: SessionMode = SessionMode.REQUEST,
    ):
        validate_role_distribution(settings)

        self.settings = settings
        self.gateway = gateway or GenerationGateway([])
        self.recorder = recorder or ReplayRecorder()
        self.rng = rng or random.Random()
        self.clock = clock
        self.weights = weights or SuspicionWeights()
        self.session_mode = session_mode

        self.actions = ActionService(settings)
        self.prompt_builder = PromptBuilder(reveal_roles=settings.reveal_role_on_death)
        self.state = GameState()
        self.strategies: Dict[UUID, StrategyEngine] = {}

        # Seats that acted or passed in the current phase
        self._acted: Set[UUID] = set()
        self._started = False

    # Read access

    def view(self) -> GameState:
        """Deep copy of the authoritative state."""
        return self.state.model_copy(deep=True)

    def snapshot(self, viewer_id: Optional[UUID] = None) -> GameSnapshot:
        return build_snapshot(self.state, viewer_id, self.settings.reveal_role_on_death)

    def client_snapshot(self, viewer_id: Optional[UUID] = None) -> GameSnapshot:
        """Projection for an outside client.

        Only the human seat gets a private view; any other id, including an AI
        seat's public id, gets the spectator view.
        """
        human = self.state.human_player
        if human is None or viewer_id != human.id:
            viewer_id = None
        return self.snapshot(viewer_id)

    def analysis_reports(self) -> List[AnalysisReport]:
        """Every AI seat's current reads, in seat order."""
        reports = [strategy.analysis_report(self.state) for strategy in self.strategies.values()]
        return sorted(reports, key=lambda report: report.seat)

    @property
    def is_over(self) -> bool:
        return self.state.phase == GamePhase.OVER

    # Events

    def _emit(self, kind: EventKind, player: Optional[Player] = None, **payload) -> None:
        event = GameEvent(
            game_id=self.state.game_id,
            kind=kind,
            seat=player.seat if player else None,
            day=self.state.day_number,
            phase=self.state.phase,
            payload=payload,
        )
        self.recorder.record(event)

    # Preparation

    def _deal_roles(self, roles: Optional[List[Role]]) -> List[Role]:
        expected = Counter({role: count for role, count in self.settings.role_distribution.items() if count})
        if roles is not None:
            if len(roles) != self.settings.player_count or Counter(roles) != expected:
                raise StateInvariantError("Fixed seat roles do not match the role distribution")
            return list(roles)

        deck: List[Role] = []
        for role, count in self.settings.role_distribution.items():
            deck.extend([role] * count)
        self.rng.shuffle(deck)
        return deck

    def start(self, roles: Optional[List[Role]] = None) -> GameState:
        """Run Preparation once and enter the first Night.

        Args:
            roles: Optional role per seat, in seat order, instead of a shuffle.
        """
        if self._started:
            raise StateInvariantError("Preparation has already run for this match")
        dealt = self._deal_roles(roles)
        self._started = True

        players: List[Player] = []
        personas = {}
        for seat, role in enumerate(dealt):
            is_human = seat == self.settings.human_seat
            player = Player(
                seat=seat,
                name=f"Player {seat + 1}",
                role=role,
                faction=faction_of(role),
                is_human=is_human,
            )
            if not is_human:
                template = self.rng.choice(PERSONA_TEMPLATES)
                player.personality = personality_for(template, role, self.settings.ai_difficulty, self.rng)
                player.persona_name = template.name
                personas[player.id] = template
            players.append(player)

        self.state.players = players
        self.state.phase = GamePhase.PREPARATION
        self.state.add_to_history(f"Game created with {len(players)} players")
        self._emit(EventKind.GAME_START, player_count=len(players),
                   role_distribution={r.value: c for r, c in self.settings.role_distribution.items()})

        wolves = [p.id for p in players if p.faction == Faction.WEREWOLF]
        for player in players:
            self._emit(EventKind.ROLE_ASSIGNMENT, player, role=player.role.value, is_human=player.is_human)
            if player.is_human:
                continue
            allies = wolves if player.faction == Faction.WEREWOLF else []
            suspicion = SuspicionModel(player, players, len(wolves), self.weights, known_allies=allies)
            self.strategies[player.id] = StrategyEngine(
                player,
                suspicion,
                self.settings,
                known_allies=allies,
                rng=random.Random(self.rng.random()),
                persona=personas[player.id],
                prompt_builder=self.prompt_builder,
                session_mode=self.session_mode,
            )

        logger.info(f"Game {self.state.game_id} prepared: {len(players)} seats, {len(wolves)} werewolves")
        self._enter_night()
        return self.state

    # Phase entry

    def _enter_phase(self, phase: GamePhase, duration: Optional[float]) -> None:
        previous = self.state.phase
        self.state.phase = phase
        self.state.time_remaining = duration
        self._acted = set()
        self.state.touch()
        logger.info(f"Game {self.state.game_id}: {previous.value} -> {phase.value} (day {self.state.day_number})")
        self._emit(EventKind.PHASE_CHANGE, previous=previous.value, duration=duration)

    def _enter_night(self) -> None:
        self.state.day_number += 1
        self.state.night_actions = []
        self.state.pending_kill_target = None
        self.state.current_speaker = None
        self.state.turn_time_remaining = None
        self.state.speaking_queue = []
        self._enter_phase(GamePhase.NIGHT, self.settings.night_time_limit)
        self.state.add_to_history(f"Night {self.state.day_number} falls.")

    def _enter_discussion(self) -> None:
        queue = [p.id for p in self.state.living_players()]
        human = self.state.human_player
        slot = self.settings.human_speaking_slot
        if human is not None and human.is_alive and slot is not None:
            queue.remove(human.id)
            queue.insert(min(slot, len(queue)), human.id)

        self._enter_phase(GamePhase.DISCUSSION, self.settings.discussion_time_limit)
        self.state.add_to_history(f"Day {self.state.day_number}: discussion begins.")
        self.state.speaking_queue = queue
        self._next_speaker()

    def _enter_voting(self) -> None:
        self.state.votes = []
        self.state.current_speaker = None
        self.state.turn_time_remaining = None
        self.state.speaking_queue = []
        self._enter_phase(GamePhase.VOTING, self.settings.voting_time_limit)
        self.state.add_to_history(f"Day {self.state.day_number}: voting begins.")

    def _enter_last_words(self, player: Player) -> None:
        self._enter_phase(GamePhase.LAST_WORDS, self.settings.last_words_time_limit)
        self.state.speaking_queue = []
        self.state.current_speaker = player.id
        self.state.turn_time_remaining = self.settings.last_words_time_limit

    def _finish(self, winner: Faction) -> None:
        self.state.winner = winner
        self.state.current_speaker = None
        self.state.turn_time_remaining = None
        self.state.speaking_queue = []
        self._enter_phase(GamePhase.OVER, None)
        self.state.add_to_history(f"Game over: the {winner.value} faction wins!")
        logger.info(f"Game {self.state.game_id} over, winner: {winner.value}")
        self._emit(EventKind.GAME_END, winner=winner.value,
                   survivors=[p.seat for p in self.state.living_players()])
        for report in self.analysis_reports():
            payload = report.model_dump(mode="json", exclude={"seat"})
            self._emit(EventKind.AI_ANALYSIS, self.state.player_at(report.seat), **payload)

    # Transitions

    def advance(self) -> GameState:
        """Leave the current phase, resolving whatever it owes, and enter the next."""
        phase = self.state.phase
        if phase == GamePhase.OVER:
            return self.state
        if phase == GamePhase.PREPARATION:
            return self.start()

        if phase == GamePhase.NIGHT:
            if not self._resolve_night():
                self._enter_discussion()
        elif phase == GamePhase.DISCUSSION:
            self._enter_voting()
        elif phase == GamePhase.VOTING:
            eliminated = self._resolve_votes()
            if self.is_over:
                return self.state
            if eliminated is not None:
                self._enter_last_words(eliminated)
            else:
                self._enter_night()
        elif phase == GamePhase.LAST_WORDS:
            self._enter_night()
        return self.state

    def _check_winner(self) -> bool:
        wolves = self.state.living_in_faction(Faction.WEREWOLF)
        villagers = self.state.living_in_faction(Faction.VILLAGER)

        winner: Optional[Faction] = None
        if not wolves:
            winner = Faction.VILLAGER
        elif not villagers:
            winner = Faction.WEREWOLF
        elif self.settings.wolf_parity_wins and len(wolves) >= len(villagers):
            winner = Faction.WEREWOLF

        if winner is not None:
            self._finish(winner)
            return True
        return False

    def _kill(self, player_id: UUID, cause: str) -> Optional[Player]:
        player = self.state.get_player(player_id)
        if player is None or not player.is_alive:
            return None
        player.status = PlayerStatus.DEAD
        self.state.dead_players.append(player.id)

        reveal = f" They were a {player.role.value}." if self.settings.reveal_role_on_death else ""
        self.state.add_to_history(f"{player.name} {cause}.{reveal}")
        logger.info(f"Game {self.state.game_id}: {player.name} ({player.role.value}) {cause}")
        self._emit(EventKind.PLAYER_DEATH, player, cause=cause, role=player.role.value)

        for strategy in self.strategies.values():
            strategy.observe_death(player)
        return player

    def _wolf_target(self) -> Optional[UUID]:
        """Strict majority of wolf votes, else the first wolf vote cast."""
        kills = [a for a in self.state.night_actions if a.ability == AbilityKind.KILL]
        if not kills:
            return None
        counts = Counter(a.target_id for a in kills)
        target, count = counts.most_common(1)[0]
        if count * 2 > len(kills):
            return target
        return kills[0].target_id

    def _resolve_night(self) -> bool:
        """Apply night effects in priority order. Returns True when the game ended.

        Priority: protection > heal > kill > poison > inspect-result delivery.
        Protection and heal only cancel the wolf kill; poison always lands.
        """
        actions = self.state.night_actions
        by_ability: Dict[AbilityKind, List[NightAbilityAction]] = {}
        for action in actions:
            by_ability.setdefault(action.ability, []).append(action)

        protected = {a.target_id for a in by_ability.get(AbilityKind.PROTECT, [])}
        healed = {a.target_id for a in by_ability.get(AbilityKind.HEAL, [])}

        # Guard and witch bookkeeping
        for player in self.state.players:
            if player.role == Role.GUARD:
                player.last_protected_id = None
        for action in by_ability.get(AbilityKind.PROTECT, []):
            self.state.get_player(action.player_id).last_protected_id = action.target_id
        for ability in SINGLE_USE_ABILITIES:
            for action in by_ability.get(ability, []):
                self.state.get_player(action.player_id).used_abilities.append(ability)

        deaths = []
        kill_target = self._wolf_target()
        saved = False
        if kill_target is not None:
            if kill_target in protected or kill_target in healed:
                saved = True
            else:
                deaths.append((kill_target, "was killed during the night"))
        for action in by_ability.get(AbilityKind.POISON, []):
            if all(action.target_id != target for target, _ in deaths):
                deaths.append((action.target_id, "was found poisoned"))

        self.state.night_actions = []
        self.state.pending_kill_target = None

        dead_seats = []
        for target_id, cause in deaths:
            victim = self._kill(target_id, cause)
            if victim:
                dead_seats.append(victim.seat)
            if self._check_winner():
                return True

        if not dead_seats:
            self.state.add_to_history("The night passed peacefully. Nobody died.")
        self._emit(EventKind.NIGHT_RESULT, deaths=dead_seats, attack_prevented=saved)

        for action in by_ability.get(AbilityKind.INSPECT, []):
            seer = self.state.get_player(action.player_id)
            target = self.state.get_player(action.target_id)
            if seer is None or target is None or not seer.is_alive:
                continue
            seer.inspection_results[target.id] = target.faction
            self._emit(EventKind.NIGHT_RESULT, seer, inspected=target.seat, faction=target.faction.value)
            strategy = self.strategies.get(seer.id)
            if strategy:
                strategy.observe_inspection(target.id, target.faction, self.state.day_number)
        return False

    def _resolve_votes(self) -> Optional[Player]:
        """Tally the ledger. Ties go to the tied target whose first vote came earliest."""
        ledger = list(self.state.votes)
        day = self.state.day_number
        self.state.vote_archive[day] = ledger
        self.state.votes = []

        if not ledger:
            self.state.add_to_history(f"Day {day}: nobody voted, nobody is eliminated.")
            self._emit(EventKind.VOTE_RESULT, eliminated=None, tally={})
            return None

        counts = Counter(v.target_id for v in ledger)
        top = max(counts.values())
        first_vote_at: Dict[UUID, int] = {}
        for index, vote in enumerate(ledger):
            first_vote_at.setdefault(vote.target_id, index)
        eliminated_id = min((t for t, c in counts.items() if c == top), key=first_vote_at.__getitem__)

        tally = {str(self.state.get_player(t).seat): c for t, c in counts.items()}
        eliminated = self._kill(eliminated_id, "was voted out by the village")
        self.state.last_eliminated = eliminated_id
        self._emit(EventKind.VOTE_RESULT, eliminated=eliminated.seat, tally=tally)

        view = self.view()
        for strategy in self.strategies.values():
            strategy.observe_votes(view, ledger, eliminated)

        self._check_winner()
        return eliminated

    # Speaking queue

    def _next_speaker(self) -> None:
        if self.state.phase == GamePhase.LAST_WORDS:
            self.state.current_speaker = None
            self.state.turn_time_remaining = None
            self.advance()
            return

        while self.state.speaking_queue:
            candidate = self.state.get_player(self.state.speaking_queue.pop(0))
            if candidate and candidate.is_alive:
                self.state.current_speaker = candidate.id
                self.state.turn_time_remaining = self.settings.speech_time_limit
                return

        self.state.current_speaker = None
        self.state.turn_time_remaining = None
        self.advance()

    def _record_speech(self, player: Player, text: str, **payload) -> None:
        last_words = self.state.phase == GamePhase.LAST_WORDS
        message = ChatMessage(player_id=player.id, message=text, day=self.state.day_number, is_last_words=last_words)
        self.state.chat_history.append(message)
        self.state.touch()
        self._emit(EventKind.LAST_WORDS if last_words else EventKind.SPEECH, player, message=text, **payload)

        view = self.view()
        for seat_id, strategy in self.strategies.items():
            if seat_id != player.id:
                strategy.observe_speech(view, player.id, text)
        self._next_speaker()

    def _pass_turn(self, player: Player, reason: str) -> None:
        logger.debug(f"{player.name} passes ({reason})")
        self._emit(EventKind.PASS, player, reason=reason)
        self._next_speaker()

    # Night bookkeeping

    def _can_act_at_night(self, player: Player) -> bool:
        if not player.is_alive or not has_night_ability(player.role):
            return False
        if player.role == Role.WITCH:
            return any(a not in player.used_abilities for a in SINGLE_USE_ABILITIES)
        return True

    def _wolves_done(self) -> bool:
        return all(p.id in self._acted for p in self.state.living_in_faction(Faction.WEREWOLF))

    def _update_pending_kill(self) -> None:
        if self.state.pending_kill_target is None and self._wolves_done():
            self.state.pending_kill_target = self._wolf_target()

    def _night_complete(self) -> bool:
        return all(p.id in self._acted for p in self.state.players if self._can_act_at_night(p))

    def _voting_complete(self) -> bool:
        return all(p.id in self._acted for p in self.state.living_players())

    def _maybe_complete_phase(self) -> None:
        if self.state.phase == GamePhase.NIGHT and self._night_complete():
            self.advance()
        elif self.state.phase == GamePhase.VOTING and self._voting_complete():
            self.advance()

    # Actions

    def _apply(self, player: Player, action: BaseAction) -> None:
        phase = self.state.phase
        if phase in (GamePhase.PREPARATION, GamePhase.OVER):
            raise ActionValidationError(f"No actions are accepted during {phase.value}.")
        if action.player_id != player.id:
            raise ActionValidationError("Action does not belong to this seat.")

        if isinstance(action, NightAbilityAction):
            self.actions.record_night_action(self.state, action)
            self._acted.add(player.id)
            target = self.state.get_player(action.target_id)
            self._emit(EventKind.NIGHT_ACTION, player, ability=action.ability.value, target=target.seat)
            self._update_pending_kill()

        elif isinstance(action, VoteAction):
            self.actions.record_vote(self.state, action)
            self._acted.add(player.id)
            target = self.state.get_player(action.target_id)
            self._emit(EventKind.VOTE, player, target=target.seat)

        elif isinstance(action, SpeechAction):
            self.actions.validate_speaker(self.state, player.id)
            self._record_speech(player, action.message)

        elif isinstance(action, PassAction):
            if phase in (GamePhase.DISCUSSION, GamePhase.LAST_WORDS):
                self.actions.validate_speaker(self.state, player.id)
                self._pass_turn(player, "explicit")
            else:
                if not player.is_alive:
                    raise ActionValidationError("Dead players cannot act.")
                if player.id in self._acted:
                    raise ActionValidationError("Player has already acted this phase.")
                self._acted.add(player.id)
                self._emit(EventKind.PASS, player, reason="explicit")
                if phase == GamePhase.NIGHT:
                    self._update_pending_kill()
        else:
            raise ActionValidationError(f"Unsupported action type: {action.action_type.value}")

    def apply_human_action(self, action: BaseAction) -> GameState:
        """Validate and apply an action from the human seat.

        Raises:
            ActionValidationError: the action is invalid; the state is unchanged.
        """
        player = self.state.get_player(action.player_id)
        if player is None or not player.is_human:
            raise ActionValidationError("Only the human seat can submit actions.")
        try:
            self._apply(player, action)
        except ActionValidationError as e:
            self._emit(EventKind.ACTION_REJECTED, player, reason=str(e), action=action.action_type.value)
            raise
        self._maybe_complete_phase()
        return self.state

    def apply_ai_action(self, seat: int, action: BaseAction) -> GameState:
        """Apply an AI seat's action. A rejection means a strategy bug; it is logged and dropped."""
        player = self.state.player_at(seat)
        if player is None or player.is_human:
            logger.error(f"Game {self.state.game_id}: AI action for invalid seat {seat} dropped")
            return self.state
        try:
            self._apply(player, action)
        except ActionValidationError as e:
            logger.error(f"Game {self.state.game_id}: rejected AI action from seat {seat}: {e}")
            self._emit(EventKind.ACTION_REJECTED, player, reason=str(e), action=action.action_type.value)
            # Treated as a no-op so the seat does not stall the phase
            self._acted.add(player.id)
        return self.state

    # Clock

    def tick(self, elapsed: float) -> GameState:
        """Consume wall-clock time from the phase and the current speaker's turn."""
        if self.state.phase in (GamePhase.PREPARATION, GamePhase.OVER) or self.state.time_remaining is None:
            return self.state

        self.state.time_remaining = max(0.0, self.state.time_remaining - elapsed)
        if self.state.current_speaker is not None and self.state.turn_time_remaining is not None:
            self.state.turn_time_remaining = max(0.0, self.state.turn_time_remaining - elapsed)

        if self.state.time_remaining <= 0:
            logger.info(f"Game {self.state.game_id}: {self.state.phase.value} timed out")
            speaker = self.state.get_player(self.state.current_speaker)
            if speaker is not None:
                self._emit(EventKind.PASS, speaker, reason="timeout")
            if self.state.phase == GamePhase.LAST_WORDS:
                self.state.current_speaker = None
            self.advance()
        elif self.state.turn_time_remaining is not None and self.state.turn_time_remaining <= 0:
            speaker = self.state.get_player(self.state.current_speaker)
            if speaker is not None:
                self._pass_turn(speaker, "timeout")
        return self.state

    # AI turns

    def _ai_players(self) -> List[Player]:
        return [p for p in self.state.players if not p.is_human and p.is_alive]

    def _ai_night_action(self, player: Player) -> None:
        action = self.strategies[player.id].decide_night_action(self.view())
        if action is None:
            self._acted.add(player.id)
            self._emit(EventKind.PASS, player, reason="no valid target")
            self._update_pending_kill()
        else:
            self.apply_ai_action(player.seat, action)

    def _step_night(self) -> bool:
        changed = False
        # Wolves first, in seat order, so the witch sees tonight's victim
        for player in self._ai_players():
            if player.faction == Faction.WEREWOLF and player.id not in self._acted:
                self._ai_night_action(player)
                changed = True

        wolves_done = self._wolves_done()
        for player in self._ai_players():
            if player.faction == Faction.WEREWOLF or player.id in self._acted:
                continue
            if not self._can_act_at_night(player):
                continue
            if player.role == Role.WITCH and not wolves_done:
                continue
            self._ai_night_action(player)
            changed = True

        if self._night_complete():
            self.advance()
            return True
        return changed

    def _step_voting(self) -> bool:
        changed = False
        for player in self._ai_players():
            if player.id in self._acted:
                continue
            target = self.strategies[player.id].decide_vote(self.view())
            if target is None:
                self._acted.add(player.id)
                self._emit(EventKind.PASS, player, reason="abstain")
            else:
                self.apply_ai_action(player.seat, VoteAction(player_id=player.id, target_id=target))
            changed = True

        if self._voting_complete():
            self.advance()
            return True
        return changed

    async def _run_ai_speech(self, player: Player) -> None:
        phase = self.state.phase
        last_words = phase == GamePhase.LAST_WORDS
        budget = min(self.state.turn_time_remaining or 0.0, self.state.time_remaining or 0.0)
        if budget <= 0:
            self._pass_turn(player, "timeout")
            return

        def record_attempt(attempt: GenerationAttempt) -> None:
            self._emit(
                EventKind.GENERATION_ATTEMPT,
                player,
                provider=attempt.provider,
                attempt=attempt.attempt,
                success=attempt.success,
                latency_ms=round(attempt.latency_ms, 1),
                session_mode=attempt.session_mode.value,
                circuit_state=attempt.circuit_state.value,
                error=attempt.error,
            )

        strategy = self.strategies[player.id]
        started = self.clock()
        try:
            turn = await asyncio.wait_for(
                strategy.speak(self.view(), self.gateway, last_words, listener=record_attempt), timeout=budget
            )
        except asyncio.TimeoutError:
            logger.warning(f"Game {self.state.game_id}: {player.name} timed out after {budget:.1f}s, passing")
            self._spend_phase_time(self.clock() - started)
            self._pass_turn(player, "timeout")
            return
        except Exception as e:
            # ProviderError means the whole chain failed; other errors also log a traceback
            logger.error(f"Game {self.state.game_id}: generation failed for {player.name}: {e}", exc_info=not isinstance(e, ProviderError))
            self._spend_phase_time(self.clock() - started)
            self._pass_turn(player, "generation failed")
            return

        self._spend_phase_time(self.clock() - started)
        if self.state.phase != phase or self.state.current_speaker != player.id:
            logger.debug(f"Dropping stale speech from {player.name}")
            return

        self._emit(EventKind.GENERATION, player, provider=turn.provider, used_fallback=turn.used_fallback,
                   attempts=turn.attempts, latency_ms=round(turn.latency_ms, 1),
                   intent=turn.intent.intent_type.value)
        target = self.state.get_player(turn.intent.target_id)
        self._record_speech(
            player,
            turn.text,
            intent=turn.intent.intent_type.value,
            target=target.seat if target else None,
        )

    def _spend_phase_time(self, elapsed: float) -> None:
        if self.state.time_remaining is not None:
            self.state.time_remaining = max(0.0, self.state.time_remaining - elapsed)

    async def step(self) -> bool:
        """Run the AI work owed in the current phase. Returns True if anything changed."""
        phase = self.state.phase
        if phase == GamePhase.PREPARATION:
            self.start()
            return True
        if phase == GamePhase.OVER:
            return False
        if phase == GamePhase.NIGHT:
            return self._step_night()
        if phase == GamePhase.VOTING:
            return self._step_voting()

        speaker = self.state.get_player(self.state.current_speaker)
        if speaker is None:
            self.advance()
            return True
        if speaker.is_human:
            return False
        await self._run_ai_speech(speaker)
        return True

    async def run(self, tick_interval: float = 0.5, on_update: Optional[UpdateCallback] = None) -> GameState:
        """Drive the match until it is over."""
        if self.state.phase == GamePhase.PREPARATION:
            self.start()
            if on_update:
                await on_update(self.state)

        while not self.is_over:
            before = self.clock()
            changed = await self.step()
            if not changed:
                await asyncio.sleep(tick_interval)
                self.tick(self.clock() - before)
            elif self.state.time_remaining is not None and self.state.time_remaining <= 0:
                self.tick(0.0)
            if on_update:
                await on_update(self.state)
        return self.state
