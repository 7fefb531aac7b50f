import logging
from uuid import UUID
from typing import Dict, Iterable, Optional

from ..models.actions import IntentType, SpeechIntent
from ..models.game import GameState
from ..models.persona import PersonaTemplate
from ..models.player import AbilityKind, Faction, Player
from ..models.roles import get_role_definition
from ..models.generation import GenerationPrompt

logger = logging.getLogger(__name__)

# How many public chat lines are replayed into each prompt
HISTORY_WINDOW = 12


class PromptBuilder:
    """Turns a speech intent plus a state snapshot into a structured prompt.

    Private knowledge (role, allies, inspection results) goes into the system
    part only; the user part holds public table history and the instruction.
    """

    def __init__(self, history_window: int = HISTORY_WINDOW, reveal_roles: bool = True):
        self.history_window = history_window
        self.reveal_roles = reveal_roles

    def _name(self, state: GameState, player_id: Optional[UUID]) -> Optional[str]:
        player = state.get_player(player_id)
        return player.name if player else None

    def _system_prompt(
        self,
        state: GameState,
        player: Player,
        persona: Optional[PersonaTemplate],
        allies: Iterable[UUID],
        inspections: Dict[UUID, Faction],
    ) -> str:
        role_def = get_role_definition(player.role)
        lines = [
            f"You are {player.name}, a player in a game of Werewolf.",
            role_def.description,
        ]

        if persona:
            style = persona.speech_style
            lines.append(
                f"Your persona is {persona.name}: {persona.description}. "
                f"Speak in a {style.get('tone', 'neutral')} tone, "
                f"{style.get('verbosity', 'moderate')} and {style.get('formality', 'neutral')}."
            )
        if player.personality:
            traits = player.personality
            lines.append(
                f"Personality (0 to 1): aggressiveness {traits.aggressiveness:.1f}, "
                f"logic {traits.logic:.1f}, deception {traits.deception:.1f}, trust {traits.trust:.1f}."
            )

        ally_names = [self._name(state, ally) for ally in allies if ally != player.id]
        if ally_names:
            lines.append(f"Your fellow werewolves: {', '.join(n for n in ally_names if n)}. Never expose them.")

        if inspections:
            findings = [
                f"{self._name(state, pid)} is {'a werewolf' if faction == Faction.WEREWOLF else 'not a werewolf'}"
                for pid, faction in inspections.items()
            ]
            lines.append(f"Your inspections so far: {'; '.join(findings)}.")

        if AbilityKind.HEAL in get_role_definition(player.role).abilities:
            left = [a.value for a in (AbilityKind.HEAL, AbilityKind.POISON) if a not in player.used_abilities]
            lines.append(f"Potions left: {', '.join(left) if left else 'none'}.")

        lines.append(
            "Never mention that you are an AI. Reply with only the words you say out loud "
            "to the table, one to three sentences."
        )
        return "\n".join(lines)

    def _public_history(self, state: GameState) -> str:
        living = ", ".join(p.name for p in state.living_players())
        lines = [f"Day {state.day_number}. Living players: {living}."]

        dead = [state.get_player(pid) for pid in state.dead_players]
        if dead:
            described = []
            for p in dead:
                if p is None:
                    continue
                described.append(f"{p.name} ({p.role.value})" if self.reveal_roles else p.name)
            lines.append(f"Dead: {', '.join(described)}.")

        recent = state.chat_history[-self.history_window:]
        if recent:
            lines.append("Recent discussion:")
            for message in recent:
                speaker = self._name(state, message.player_id) or "Unknown"
                prefix = " (last words)" if message.is_last_words else ""
                lines.append(f"- {speaker}{prefix}: {message.message}")
        else:
            lines.append("Nobody has spoken yet today.")
        return "\n".join(lines)

    def _instruction(self, intent: SpeechIntent, target: Optional[str], last_words: bool) -> str:
        if intent.intent_type == IntentType.ACCUSATION and target:
            return f"Accuse {target} of being a werewolf and give one concrete reason."
        if intent.intent_type == IntentType.DEFENSE:
            return "Others suspect you. Defend yourself and redirect attention with an argument."
        if intent.intent_type == IntentType.INFORMATION and target:
            return f"Share what you have noticed about {target} without overcommitting."
        if intent.intent_type == IntentType.STRATEGY_COMMENT:
            if last_words:
                target_hint = f" Point the village toward {target}." if target else ""
                return f"You have been eliminated. Give your last words to the table.{target_hint}"
            return "Comment on how the village should approach today's vote."
        if intent.intent_type == IntentType.VOTE and target:
            return f"Announce that you are voting for {target} and why."
        return "Share your current read on the table briefly."

    def build(
        self,
        intent: SpeechIntent,
        state: GameState,
        player: Player,
        persona: Optional[PersonaTemplate] = None,
        allies: Iterable[UUID] = (),
        inspections: Optional[Dict[UUID, Faction]] = None,
        last_words: bool = False,
        max_tokens: Optional[int] = None,
    ) -> GenerationPrompt:
        """Build the prompt for one speech turn."""
        target = self._name(state, intent.target_id)
        system = self._system_prompt(state, player, persona, allies, inspections or {})
        user = f"{self._public_history(state)}\n\n{self._instruction(intent, target, last_words)}"

        prompt = GenerationPrompt(
            system=system,
            user=user,
            intent_type=intent.intent_type,
            speaker_name=player.name,
            target_name=target,
            max_tokens=max_tokens,
        )
        logger.debug(f"Prompt for {player.name} ({intent.intent_type.value}): {prompt.user}")
        return prompt

