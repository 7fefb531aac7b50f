import random

import pytest

from mindwolf.models.player import PersonalityTraits, Role
from mindwolf.models.persona import (
    DIFFICULTY_PRESETS, PersonaTemplate, PERSONA_TEMPLATES, get_persona_template, personality_for
)
from mindwolf.models.settings import AIDifficulty


def test_persona_template_creation():
    """Test that a PersonaTemplate can be created with valid data."""
    template = PersonaTemplate(
        key="quiet",
        name="The Mouse",
        description="Rarely speaks",
        traits=PersonalityTraits(aggressiveness=0.1, trust=0.9),
    )

    assert template.key == "quiet"
    assert template.traits.aggressiveness == 0.1
    assert template.speech_style["verbosity"] == "moderate"


def test_builtin_templates():
    keys = [template.key for template in PERSONA_TEMPLATES]
    assert keys == ["analytical", "impulsive", "deceptive", "cautious", "leader"]
    assert get_persona_template("impulsive").name == "The Hothead"
    assert get_persona_template("missing") is None


def test_instantiate_is_deterministic_for_a_seed():
    template = get_persona_template("analytical")

    first = template.instantiate(random.Random(3))
    second = template.instantiate(random.Random(3))

    assert first == second


def test_instantiate_stays_near_base_traits():
    template = get_persona_template("deceptive")
    traits = template.instantiate(random.Random(11), jitter=0.1)

    base = template.traits.model_dump()
    for trait, value in traits.model_dump().items():
        assert abs(value - base[trait]) <= 0.1 + 1e-9
        assert 0.0 <= value <= 1.0


def test_instantiate_clamps_to_unit_interval():
    template = PersonaTemplate(
        key="extreme",
        name="The Extreme",
        description="Pinned traits",
        traits=PersonalityTraits(aggressiveness=1.0, logic=0.0, deception=1.0, trust=0.0),
    )

    for seed in range(10):
        traits = template.instantiate(random.Random(seed), jitter=0.5)
        assert 0.0 <= traits.aggressiveness <= 1.0
        assert 0.0 <= traits.logic <= 1.0


def test_persona_serialization():
    data = get_persona_template("cautious").model_dump()

    assert data["key"] == "cautious"
    assert data["traits"]["trust"] == 0.8
    assert data["speech_style"]["verbosity"] == "concise"


def test_role_shifts_traits():
    template = get_persona_template("analytical")

    wolf = template.instantiate(random.Random(1), jitter=0.0, role=Role.WEREWOLF)
    seer = template.instantiate(random.Random(1), jitter=0.0, role=Role.SEER)

    assert wolf.deception == pytest.approx(0.5)
    assert wolf.trust == pytest.approx(0.5)
    assert wolf.logic == pytest.approx(0.9)
    # 0.9 + 0.2 is clamped
    assert seer.logic == 1.0
    assert seer.trust == pytest.approx(0.8)


def test_overrides_replace_jittered_values():
    template = get_persona_template("impulsive")

    traits = template.instantiate(random.Random(4), jitter=0.3, overrides={"logic": 0.3, "deception": 0.2})

    assert traits.logic == 0.3
    assert traits.deception == 0.2
    assert abs(traits.aggressiveness - 0.8) <= 0.3 + 1e-9


def test_every_difficulty_has_a_preset():
    assert set(DIFFICULTY_PRESETS) == set(AIDifficulty)
    assert DIFFICULTY_PRESETS[AIDifficulty.NORMAL].overrides == {}


def test_personality_for_hard_seer():
    traits = personality_for(get_persona_template("cautious"), Role.SEER, AIDifficulty.HARD, random.Random(2))

    assert traits.logic == 1.0
    assert traits.deception == pytest.approx(0.8)


def test_personality_for_easy_wolf():
    traits = personality_for(get_persona_template("leader"), Role.WEREWOLF, AIDifficulty.EASY, random.Random(2))

    assert traits.logic == pytest.approx(0.3)
    assert traits.deception == pytest.approx(0.5)


def test_personality_for_is_deterministic_for_a_seed():
    template = get_persona_template("deceptive")

    first = personality_for(template, Role.GUARD, AIDifficulty.EXPERT, random.Random(8))
    second = personality_for(template, Role.GUARD, AIDifficulty.EXPERT, random.Random(8))

    assert first == second
    assert first.aggressiveness == pytest.approx(0.7)
