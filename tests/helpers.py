import random
from typing import Dict, List, Optional

from mindwolf.models import GameSettings, Role
from mindwolf.services.generation_gateway import GenerationGateway
from mindwolf.services.phase_engine import GamePhaseEngine
from mindwolf.services.replay_service import ReplayRecorder

# 8 seats: two wolves, four villagers, a seer and a witch
CLASSIC_ROLES = [
    Role.WEREWOLF, Role.WEREWOLF,
    Role.VILLAGER, Role.VILLAGER, Role.VILLAGER, Role.VILLAGER,
    Role.SEER, Role.WITCH,
]

# 8 seats with a guard in place of one villager
GUARD_ROLES = [
    Role.WEREWOLF, Role.WEREWOLF,
    Role.VILLAGER, Role.VILLAGER, Role.VILLAGER,
    Role.SEER, Role.WITCH, Role.GUARD,
]


def distribution_for(roles: List[Role]) -> Dict[Role, int]:
    counts: Dict[Role, int] = {}
    for role in roles:
        counts[role] = counts.get(role, 0) + 1
    return counts


def build_engine(
    roles: List[Role],
    human_seat: Optional[int] = None,
    seed: int = 7,
    **settings_overrides,
) -> GamePhaseEngine:
    """Start an engine with fixed seat roles and a local-only gateway."""
    settings = GameSettings(
        player_count=len(roles),
        role_distribution=distribution_for(roles),
        human_seat=human_seat,
        **settings_overrides,
    )
    engine = GamePhaseEngine(
        settings,
        gateway=GenerationGateway([]),
        recorder=ReplayRecorder(),
        rng=random.Random(seed),
    )
    engine.start(roles=roles)
    return engine
