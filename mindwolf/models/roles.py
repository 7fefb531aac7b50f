"""Static role catalog: factions, descriptions and night abilities."""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .player import AbilityKind, Faction, Role


class RoleDefinition(BaseModel):
    """Immutable description of one role."""
    role: Role
    faction: Faction
    description: str
    abilities: Tuple[AbilityKind, ...] = ()
    can_vote: bool = True

    model_config = ConfigDict(frozen=True)

    @property
    def has_night_ability(self) -> bool:
        return bool(self.abilities)


ROLE_CATALOG: Dict[Role, RoleDefinition] = {
    Role.WEREWOLF: RoleDefinition(
        role=Role.WEREWOLF,
        faction=Faction.WEREWOLF,
        description="You are a Werewolf. Each night the wolves agree on one player to kill. Win when no villager-faction player is left.",
        abilities=(AbilityKind.KILL,),
    ),
    Role.VILLAGER: RoleDefinition(
        role=Role.VILLAGER,
        faction=Faction.VILLAGER,
        description="You are a Villager. You have no night ability; use discussion and your vote to find the wolves.",
    ),
    Role.SEER: RoleDefinition(
        role=Role.SEER,
        faction=Faction.VILLAGER,
        description="You are the Seer. Each night you may inspect one player and learn whether they are a werewolf.",
        abilities=(AbilityKind.INSPECT,),
    ),
    Role.WITCH: RoleDefinition(
        role=Role.WITCH,
        faction=Faction.VILLAGER,
        description="You are the Witch. You hold one healing potion that saves tonight's wolf victim and one poison that kills any player. At most one potion per night.",
        abilities=(AbilityKind.HEAL, AbilityKind.POISON),
    ),
    Role.HUNTER: RoleDefinition(
        role=Role.HUNTER,
        faction=Faction.VILLAGER,
        description="You are the Hunter. You have no night ability; stay alive and help the village vote out the wolves.",
    ),
    Role.GUARD: RoleDefinition(
        role=Role.GUARD,
        faction=Faction.VILLAGER,
        description="You are the Guard. Each night you may protect one player from the wolves' attack.",
        abilities=(AbilityKind.PROTECT,),
    ),
}

# Abilities that can be spent only once per match
SINGLE_USE_ABILITIES = (AbilityKind.HEAL, AbilityKind.POISON)


def get_role_definition(role: Role) -> RoleDefinition:
    """Get the catalog entry for a role."""
    return ROLE_CATALOG[role]


def faction_of(role: Role) -> Faction:
    return ROLE_CATALOG[role].faction


def abilities_of(role: Role) -> Tuple[AbilityKind, ...]:
    return ROLE_CATALOG[role].abilities


def has_night_ability(role: Role) -> bool:
    return ROLE_CATALOG[role].has_night_ability


def role_for_ability(ability: AbilityKind) -> Optional[Role]:
    """Return the role that owns an ability, if any."""
    for definition in ROLE_CATALOG.values():
        if ability in definition.abilities:
            return definition.role
    return None


def roles_in_faction(faction: Faction) -> List[Role]:
    return [definition.role for definition in ROLE_CATALOG.values() if definition.faction == faction]
