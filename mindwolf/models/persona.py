import random
from pydantic import BaseModel, ConfigDict, model_serializer
from typing import Dict, List, Optional

from .player import PersonalityTraits, Role
from .settings import AIDifficulty


class PersonaTemplate(BaseModel):
    """Template for AI personas: a display name, base traits and a speech style."""
    key: str
    name: str
    description: str
    traits: PersonalityTraits

    # Speech style characteristics, passed to the generation prompt
    speech_style: Dict[str, str] = {
        "verbosity": "moderate",   # concise, moderate, verbose
        "tone": "neutral",         # calm, neutral, heated
        "formality": "neutral",    # casual, neutral, formal
    }

    @model_serializer
    def serialize_model(self) -> dict:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "traits": self.traits.model_dump(),
            "speech_style": self.speech_style
        }

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "key": "analytical",
                "name": "The Analyst",
                "description": "Calm and methodical, builds arguments from the voting record",
                "traits": {
                    "aggressiveness": 0.3,
                    "logic": 0.9,
                    "deception": 0.2,
                    "trust": 0.7
                },
                "speech_style": {
                    "verbosity": "moderate",
                    "tone": "calm",
                    "formality": "formal"
                }
            }
        }
    )

    def instantiate(
        self,
        rng: Optional[random.Random] = None,
        jitter: float = 0.1,
        role: Optional[Role] = None,
        overrides: Optional[Dict[str, float]] = None,
    ) -> PersonalityTraits:
        """Copy the base traits with a small random spread, clamped to [0, 1].

        Args:
            rng: Source of the spread, so a seeded match deals the same personas.
            jitter: Half-width of the uniform spread added to each trait.
            role: When given, the role's trait shifts are applied last.
            overrides: Fixed trait values replacing the jittered ones.
        """
        rng = rng or random.Random()
        values = {}
        for trait, value in self.traits.model_dump().items():
            values[trait] = value + rng.uniform(-jitter, jitter)
        values.update(overrides or {})
        if role is not None:
            for trait, shift in ROLE_TRAIT_SHIFTS.get(role, {}).items():
                values[trait] += shift
        return PersonalityTraits(**{trait: min(1.0, max(0.0, value)) for trait, value in values.items()})


# Wolves lie more, information roles reason harder, protectors trust more
ROLE_TRAIT_SHIFTS: Dict[Role, Dict[str, float]] = {
    Role.WEREWOLF: {"deception": 0.3, "trust": -0.2},
    Role.SEER: {"logic": 0.2, "trust": 0.1},
    Role.WITCH: {"logic": 0.15, "aggressiveness": -0.1},
    Role.HUNTER: {"aggressiveness": 0.2},
    Role.GUARD: {"trust": 0.15, "aggressiveness": -0.1},
    Role.VILLAGER: {"logic": 0.1},
}


class DifficultyPreset(BaseModel):
    """How much an AI difficulty spreads and pins persona traits."""
    jitter: float
    overrides: Dict[str, float] = {}


DIFFICULTY_PRESETS: Dict[AIDifficulty, DifficultyPreset] = {
    AIDifficulty.EASY: DifficultyPreset(jitter=0.3, overrides={"logic": 0.3, "deception": 0.2}),
    AIDifficulty.NORMAL: DifficultyPreset(jitter=0.1),
    AIDifficulty.HARD: DifficultyPreset(jitter=0.1, overrides={"logic": 0.8, "deception": 0.8}),
    AIDifficulty.EXPERT: DifficultyPreset(
        jitter=0.05, overrides={"logic": 0.9, "deception": 0.7, "aggressiveness": 0.8}
    ),
}


def personality_for(
    template: PersonaTemplate,
    role: Role,
    difficulty: AIDifficulty = AIDifficulty.NORMAL,
    rng: Optional[random.Random] = None,
) -> PersonalityTraits:
    """Traits for an AI seat dealt ``role`` at the given difficulty."""
    preset = DIFFICULTY_PRESETS[difficulty]
    return template.instantiate(rng, jitter=preset.jitter, role=role, overrides=preset.overrides)


PERSONA_TEMPLATES: List[PersonaTemplate] = [
    PersonaTemplate(
        key="analytical",
        name="The Analyst",
        description="Calm and methodical, builds arguments from the voting record",
        traits=PersonalityTraits(aggressiveness=0.3, logic=0.9, deception=0.2, trust=0.7),
        speech_style={"verbosity": "moderate", "tone": "calm", "formality": "formal"},
    ),
    PersonaTemplate(
        key="impulsive",
        name="The Hothead",
        description="Emotional and quick to point fingers",
        traits=PersonalityTraits(aggressiveness=0.8, logic=0.4, deception=0.3, trust=0.6),
        speech_style={"verbosity": "verbose", "tone": "heated", "formality": "casual"},
    ),
    PersonaTemplate(
        key="deceptive",
        name="The Fox",
        description="Smooth talker who is comfortable bending the truth",
        traits=PersonalityTraits(aggressiveness=0.5, logic=0.7, deception=0.9, trust=0.3),
        speech_style={"verbosity": "moderate", "tone": "neutral", "formality": "neutral"},
    ),
    PersonaTemplate(
        key="cautious",
        name="The Watcher",
        description="Careful observer who rarely commits early",
        traits=PersonalityTraits(aggressiveness=0.2, logic=0.6, deception=0.4, trust=0.8),
        speech_style={"verbosity": "concise", "tone": "calm", "formality": "formal"},
    ),
    PersonaTemplate(
        key="leader",
        name="The Captain",
        description="Confident organiser who pushes the table toward a decision",
        traits=PersonalityTraits(aggressiveness=0.7, logic=0.7, deception=0.5, trust=0.5),
        speech_style={"verbosity": "moderate", "tone": "neutral", "formality": "neutral"},
    ),
]


def get_persona_template(key: str) -> Optional[PersonaTemplate]:
    return next((t for t in PERSONA_TEMPLATES if t.key == key), None)
