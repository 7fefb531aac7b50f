# Data models package

# Export all models for easier importing
from .player import Role, Faction, PlayerStatus, AbilityKind, PersonalityTraits, Player
from .roles import RoleDefinition, ROLE_CATALOG, get_role_definition, faction_of
from .actions import (
    ActionType, BaseAction, NightAbilityAction,
    VoteAction, SpeechAction, PassAction,
    ChatMessage, IntentType, SpeechIntent
)
from .game import GamePhase, VoteRecord, GameState
from .settings import GuardRules, AIDifficulty, GameSettings
from .persona import PersonaTemplate, PERSONA_TEMPLATES, personality_for
from .suspicion import EvidenceKind, SuspicionWeights, Evidence, SuspicionState
from .events import EventKind, GameEvent
from .generation import (
    ProviderKind, SessionMode, CircuitState, ProviderConfig,
    GenerationPrompt, GenerationResult, GenerationAttempt
)
