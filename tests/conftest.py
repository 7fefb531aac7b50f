import pytest

from mindwolf.services.phase_engine import GamePhaseEngine

from tests.helpers import CLASSIC_ROLES, GUARD_ROLES, build_engine


@pytest.fixture
def classic_engine() -> GamePhaseEngine:
    return build_engine(CLASSIC_ROLES)


@pytest.fixture
def guard_engine() -> GamePhaseEngine:
    return build_engine(GUARD_ROLES)
