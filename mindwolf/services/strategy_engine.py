import logging
import random
import re
from collections import Counter
from uuid import UUID
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel

from ..models.actions import IntentType, NightAbilityAction, SpeechIntent
from ..models.game import GameState, VoteRecord
from ..models.generation import SessionMode
from ..models.persona import PersonaTemplate
from ..models.player import AbilityKind, Faction, Player, Role
from ..models.settings import GameSettings, GuardRules
from ..models.suspicion import EvidenceKind
from .prompt_builder import PromptBuilder
from .suspicion_model import SuspicionModel

logger = logging.getLogger(__name__)

# A seat defends itself once public pressure on it exceeds this share of the table
DEFENSE_THRESHOLD = 0.3
# The witch only spends poison on a fairly certain read
POISON_THRESHOLD = 0.75

DEFENSIVE_PHRASES = (
    "not me", "i'm innocent", "i am innocent", "trust me", "i swear",
    "why would i", "believe me", "i'm not a wolf", "i am not a wolf",
)
ACCUSING_PHRASES = (
    "wolf", "werewolf", "suspicious", "lying", "liar", "vote out", "eliminate",
)
PLAYER_MENTION = re.compile(r"\bplayer\s*(\d+)\b", re.IGNORECASE)
ROLE_CLAIM = re.compile(r"\bi(?:'m| am) (?:the |a )?(seer|witch|guard|hunter)\b", re.IGNORECASE)

# Roles only one seat can truthfully claim in the default distributions
UNIQUE_ROLES = {Role.SEER, Role.WITCH, Role.GUARD, Role.HUNTER}


class SpeechTurn(BaseModel):
    """An intent plus the wording the gateway realized for it."""
    intent: SpeechIntent
    text: str
    provider: Optional[str] = None
    used_fallback: bool = False
    attempts: int = 1
    latency_ms: float = 0.0


class AnalysisReport(BaseModel):
    """Post-game read of one AI seat on the rest of the table, by seat index."""
    seat: int
    role: Role
    persona_name: Optional[str] = None
    suspicion_rankings: List[int] = []  # Most suspected first
    trust_rankings: List[int] = []  # Most trusted first
    scores: Dict[int, float] = {}
    inspections: Dict[int, Faction] = {}
    role_claims: Dict[Role, List[int]] = {}


def seat_from_mention(number: str) -> int:
    """'Player 3' sits in seat index 2."""
    return int(number) - 1


class StrategyEngine:
    """Decision policy for one AI seat.

    Reads the seat's own SuspicionModel plus a snapshot of the game and
    proposes night abilities, votes and speech intents. Wording is delegated
    to the generation gateway through ``speak``; the engine never phrases
    anything itself. Every proposal is drawn from valid candidates only.
    """

    def __init__(
        self,
        player: Player,
        suspicion: SuspicionModel,
        settings: GameSettings,
        known_allies: Iterable[UUID] = (),
        rng: Optional[random.Random] = None,
        persona: Optional[PersonaTemplate] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        session_mode: SessionMode = SessionMode.REQUEST,
    ):
        self.player_id = player.id
        self.role = player.role
        self.faction = player.faction
        self.personality = player.personality
        self.suspicion = suspicion
        self.settings = settings
        self.allies: Set[UUID] = set(known_allies) - {player.id}
        self.rng = rng or random.Random()
        self.persona = persona
        self.prompt_builder = prompt_builder or PromptBuilder(reveal_roles=settings.reveal_role_on_death)
        self.session_mode = session_mode

        self.inspections: Dict[UUID, Faction] = {}
        self.role_claims: Dict[Role, List[UUID]] = {}
        # (day, accused) -> number of public accusations
        self.accusations: Counter = Counter()
        # day -> votes cast against this seat
        self.votes_against_me: Dict[int, int] = {}

    @property
    def aggressiveness(self) -> float:
        return self.personality.aggressiveness if self.personality else 0.5

    def _me(self, state: GameState) -> Optional[Player]:
        return state.get_player(self.player_id)

    def _living_others(self, state: GameState, exclude_allies: bool = True) -> List[UUID]:
        return [
            p.id for p in state.living_players()
            if p.id != self.player_id and not (exclude_allies and p.id in self.allies)
        ]

    # Decisions

    def decide_night_action(self, state: GameState) -> Optional[NightAbilityAction]:
        """Pick tonight's ability and target, or None when there is nothing valid to do."""
        me = self._me(state)
        if me is None or not me.is_alive:
            return None

        ability: Optional[AbilityKind] = None
        target: Optional[UUID] = None

        if self.role == Role.WEREWOLF:
            ability = AbilityKind.KILL
            target = self.suspicion.most_suspicious(self._living_others(state))
        elif self.role == Role.SEER:
            ability = AbilityKind.INSPECT
            uninspected = [pid for pid in self._living_others(state) if pid not in self.inspections]
            target = self.suspicion.most_suspicious(uninspected)
        elif self.role == Role.GUARD:
            ability = AbilityKind.PROTECT
            target = self._guard_target(state, me)
        elif self.role == Role.WITCH:
            ability, target = self._witch_choice(state, me)

        if ability is None or target is None:
            return None
        return NightAbilityAction(player_id=self.player_id, ability=ability, target_id=target)

    def _guard_target(self, state: GameState, me: Player) -> Optional[UUID]:
        candidates = self._living_others(state)
        if self.settings.guard_rules == GuardRules.NO_CONSECUTIVE and me.last_protected_id:
            candidates = [pid for pid in candidates if pid != me.last_protected_id]

        target = self.suspicion.most_trusted(candidates)
        if target is not None:
            return target

        can_protect_self = self.settings.guard_rules != GuardRules.NO_SELF_PROTECTION
        if self.settings.guard_rules == GuardRules.NO_CONSECUTIVE and me.last_protected_id == me.id:
            can_protect_self = False
        return me.id if can_protect_self else None

    def _witch_choice(self, state: GameState, me: Player):
        victim = state.get_player(state.pending_kill_target)
        if AbilityKind.HEAL not in me.used_abilities and victim is not None and victim.is_alive:
            return AbilityKind.HEAL, victim.id

        if AbilityKind.POISON not in me.used_abilities:
            suspect = self.suspicion.most_suspicious(self._living_others(state))
            if suspect is not None and self.suspicion.score(suspect) >= POISON_THRESHOLD:
                return AbilityKind.POISON, suspect
        return None, None

    def decide_vote(self, state: GameState) -> Optional[UUID]:
        """Vote for the top suspect. Ties go to a random pick with probability
        equal to aggressiveness, else to the lowest seat."""
        tied = self.suspicion.tied_top(self._living_others(state))
        if not tied:
            return None
        if len(tied) > 1 and self.rng.random() < self.aggressiveness:
            return self.rng.choice(tied)
        return tied[0]

    def pressure(self, state: GameState) -> float:
        """Share of the table publicly pointing at this seat today and in yesterday's vote."""
        others = len(state.living_players()) - 1
        if others <= 0:
            return 0.0
        accused = self.accusations[(state.day_number, self.player_id)]
        voted = self.votes_against_me.get(state.day_number - 1, 0)
        return (accused + voted) / others

    def decide_speech_intent(self, state: GameState) -> SpeechIntent:
        pressure = self.pressure(state)
        if pressure > DEFENSE_THRESHOLD:
            return SpeechIntent(intent_type=IntentType.DEFENSE, target_id=self.player_id, confidence=pressure)

        suspect = self.suspicion.most_suspicious(self._living_others(state))
        if suspect is not None and self.rng.random() < self.aggressiveness:
            return SpeechIntent(
                intent_type=IntentType.ACCUSATION,
                target_id=suspect,
                confidence=self.suspicion.score(suspect),
            )

        # A seer shares a confirmed wolf when it has one
        found = [pid for pid, faction in self.inspections.items()
                 if faction == Faction.WEREWOLF and pid in self._living_others(state)]
        if found:
            return SpeechIntent(intent_type=IntentType.INFORMATION, target_id=found[0], confidence=1.0)
        return SpeechIntent(
            intent_type=IntentType.INFORMATION,
            target_id=suspect,
            confidence=self.suspicion.score(suspect) if suspect else 0.0,
        )

    def decide_last_words_intent(self, state: GameState) -> SpeechIntent:
        suspect = self.suspicion.most_suspicious(self._living_others(state))
        return SpeechIntent(
            intent_type=IntentType.STRATEGY_COMMENT,
            target_id=suspect,
            confidence=self.suspicion.score(suspect) if suspect else 0.0,
        )

    async def speak(self, state: GameState, gateway, last_words: bool = False, listener=None) -> SpeechTurn:
        """Choose what to say and ask the gateway how to say it.

        This is the only awaiting call on a strategy; ``ProviderError`` from an
        exhausted chain propagates to the caller. ``listener`` is handed to the
        gateway and sees every provider attempt for this turn.
        """
        intent = self.decide_last_words_intent(state) if last_words else self.decide_speech_intent(state)
        me = self._me(state)
        prompt = self.prompt_builder.build(
            intent,
            state,
            me,
            persona=self.persona,
            allies=self.allies,
            inspections=self.inspections,
            last_words=last_words,
        )
        result = await gateway.generate(prompt, self.session_mode, listener=listener)
        return SpeechTurn(
            intent=intent,
            text=result.text,
            provider=result.provider,
            used_fallback=result.used_fallback,
            attempts=result.attempts,
            latency_ms=result.latency_ms,
        )

    # Observation: public information only, plus the seer's private results

    def observe_speech(self, state: GameState, speaker_id: UUID, message: str) -> None:
        """Turn one public speech into evidence strengths."""
        if speaker_id == self.player_id:
            return
        day = state.day_number
        lowered = message.lower()

        strength = 0.0
        defensive = sum(1 for phrase in DEFENSIVE_PHRASES if phrase in lowered)
        strength += min(0.6, 0.2 * defensive)
        if len(message) < 15:
            strength += 0.1  # evasive
        elif len(message) > 400:
            strength += 0.1  # rambling
        if strength > 0:
            self.suspicion.update_from_evidence(EvidenceKind.CONTRADICTION_IN_SPEECH, speaker_id, strength, day)

        accusing = any(phrase in lowered for phrase in ACCUSING_PHRASES)
        if accusing:
            for number in PLAYER_MENTION.findall(message):
                accused = state.player_at(seat_from_mention(number))
                if accused is None or not accused.is_alive or accused.id == speaker_id:
                    continue
                self.accusations[(day, accused.id)] += 1
                self._check_accusation_against_known(speaker_id, accused.id, day)

        claim = ROLE_CLAIM.search(message)
        if claim:
            self._record_role_claim(state, speaker_id, Role(claim.group(1).lower()), day)

    def _check_accusation_against_known(self, speaker_id: UUID, accused_id: UUID, day: int) -> None:
        known = self.inspections.get(accused_id)
        if known == Faction.VILLAGER:
            self.suspicion.update_from_evidence(EvidenceKind.CONTRADICTION_IN_SPEECH, speaker_id, 0.5, day)
        elif known == Faction.WEREWOLF:
            self.suspicion.update_from_evidence(EvidenceKind.CONTRADICTION_IN_SPEECH, speaker_id, -0.3, day)

    def _record_role_claim(self, state: GameState, speaker_id: UUID, role: Role, day: int) -> None:
        claimants = self.role_claims.setdefault(role, [])
        if speaker_id in claimants:
            return
        claimants.append(speaker_id)
        if role not in UNIQUE_ROLES:
            return

        if role == self.role:
            # Claiming this seat's own role is a certain lie
            self.suspicion.update_from_evidence(EvidenceKind.ROLE_CLAIM_CONFLICT, speaker_id, 1.0, day)
            return

        revealed_dead = [
            p for p in state.players
            if not p.is_alive and p.role == role and self.settings.reveal_role_on_death
        ]
        if revealed_dead:
            self.suspicion.update_from_evidence(EvidenceKind.ROLE_CLAIM_CONFLICT, speaker_id, 1.0, day)
            return

        if len(claimants) > 1:
            # Counter-claim: at least one of them is lying
            for claimant in claimants:
                self.suspicion.update_from_evidence(EvidenceKind.ROLE_CLAIM_CONFLICT, claimant, 0.5, day)

    def observe_votes(self, state: GameState, ledger: List[VoteRecord], eliminated: Optional[Player]) -> None:
        """Score each voter against the majority and against the revealed result."""
        if not ledger:
            return
        day = ledger[0].day
        tally = Counter(vote.target_id for vote in ledger)
        majority, _ = tally.most_common(1)[0]
        revealed = eliminated is not None and self.settings.reveal_role_on_death

        for vote in ledger:
            if vote.target_id == self.player_id:
                self.votes_against_me[day] = self.votes_against_me.get(day, 0) + 1
            if vote.voter_id == self.player_id:
                continue
            if vote.target_id != majority:
                self.suspicion.update_from_evidence(EvidenceKind.VOTING_PATTERN_DIVERGENCE, vote.voter_id, 0.5, day)
            if revealed and vote.target_id == eliminated.id:
                strength = 0.5 if eliminated.faction == Faction.VILLAGER else -0.5
                self.suspicion.update_from_evidence(EvidenceKind.VOTING_PATTERN_DIVERGENCE, vote.voter_id, strength, day)

    def observe_death(self, player: Player) -> None:
        self.suspicion.observe_death(player.id)

    def observe_inspection(self, target_id: UUID, faction: Faction, day: int) -> None:
        """Private seer result: certain evidence either way."""
        self.inspections[target_id] = faction
        strength = 1.0 if faction == Faction.WEREWOLF else -1.0
        self.suspicion.update_from_evidence(EvidenceKind.NIGHT_RESULT_CONFLICT, target_id, strength, day)

    # Reporting

    def analysis_report(self, state: GameState) -> AnalysisReport:
        """Rank every other seat by this seat's final beliefs."""
        beliefs = self.suspicion.snapshot()
        seats = beliefs.seats

        def seat_of(player_id: UUID) -> int:
            return seats[player_id] if player_id in seats else state.get_player(player_id).seat

        ranked = sorted(beliefs.beliefs.items(), key=lambda item: (-item[1], seats[item[0]]))
        trusted = sorted(beliefs.beliefs.items(), key=lambda item: (item[1], seats[item[0]]))
        me = self._me(state)
        return AnalysisReport(
            seat=me.seat if me else -1,
            role=self.role,
            persona_name=self.persona.name if self.persona else None,
            suspicion_rankings=[seats[pid] for pid, _ in ranked],
            trust_rankings=[seats[pid] for pid, _ in trusted],
            scores={seats[pid]: round(score, 3) for pid, score in beliefs.beliefs.items()},
            inspections={seat_of(pid): faction for pid, faction in self.inspections.items()},
            role_claims={role: [seat_of(pid) for pid in claimants] for role, claimants in self.role_claims.items()},
        )
