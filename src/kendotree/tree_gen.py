"""First-stage tree generator.

Pipeline, from a flat list of fighters to persisted rounds:
1. Group fighters by entity (federation, association, club...)
2. Compute the tree size and create the needed byes
3. Repart: interleave entity groups so that fighters of the same
   entity end up as far apart as possible
4. Insert byes homogeneously
5. Chunk the pool by fighting area
6. Split each area into first-stage rounds (preliminary groups,
   elimination pairs or a single round robin) and save them
"""

import logging
import random
from operator import attrgetter
from collections.abc import Hashable
from typing import Callable, Optional, Sequence

from kendotree.models import (
    ENTITY_FIELDS,
    MIN_COMPETITORS_BY_AREA,
    TREE_SIZE_FACTORS,
    Bye,
    Participant,
    Round,
    Slot,
    TournamentSettings,
)
from kendotree.storage import ChampionshipRepository, ParticipantRepository, RoundRepository

logger = logging.getLogger(__name__)

KeyOf = Callable[[Participant], Optional[Hashable]]


class TreeGenerationError(Exception):
    """Raised when a tree cannot be generated for a championship."""

    def __init__(self, fighter_count: int, fighting_areas: int):
        self.fighter_count = fighter_count
        self.fighting_areas = fighting_areas
        super().__init__(
            f"Not enough fighters to generate a tree: {fighter_count} fighters "
            f"for {fighting_areas} area(s), need at least "
            f"{MIN_COMPETITORS_BY_AREA} per area"
        )


# ============================================================================
# Entity grouping
# ============================================================================


def entity_key(entity: str) -> KeyOf:
    """Return the key function grouping fighters by an entity.

    Args:
        entity: One of ENTITY_FIELDS ('federation', 'association', 'club')

    Returns:
        Function returning the fighter's entity id
    """
    if entity not in ENTITY_FIELDS:
        raise ValueError(f"Unknown entity '{entity}', expected one of {ENTITY_FIELDS}")
    return attrgetter(f"{entity}_id")


def group_by_entity(
    fighters: Sequence[Participant], key_of: Optional[KeyOf] = None
) -> list[list[Participant]]:
    """Group fighters by entity.

    Groups keep first-seen order, fighters keep source order within
    their group. Without key_of, every fighter is its own group.

    Examples:
        >>> group_by_entity([1, 2, 3])
        [[1], [2], [3]]
    """
    if key_of is None:
        return [[fighter] for fighter in fighters]

    groups: dict[Hashable, list[Participant]] = {}
    for fighter in fighters:
        groups.setdefault(key_of(fighter), []).append(fighter)
    return list(groups.values())


def get_max_fighters_by_entity(fighter_groups: Sequence[Sequence[Participant]]) -> int:
    """Size of the biggest entity group (0 if there are no groups)."""
    return max((len(group) for group in fighter_groups), default=0)


# ============================================================================
# Byes
# ============================================================================


def get_tree_size(fighter_count: int, group_size: int) -> int:
    """Return the smallest valid tree size that fits all fighters.

    Candidates are group_size * (1, 2, 4, ..., 64). Beyond the last
    candidate the size is capped to 64 * group_size.

    Examples:
        >>> get_tree_size(10, 2)
        16
        >>> get_tree_size(12, 4)
        16
        >>> get_tree_size(3, 3)
        3
    """
    assert group_size > 0, f"Group size must be positive, got {group_size}"

    for factor in TREE_SIZE_FACTORS:
        limit = factor * group_size
        if fighter_count <= limit:
            return limit

    cap = TREE_SIZE_FACTORS[-1] * group_size
    logger.warning(
        "%d fighters exceed the maximum tree size %d (group size %d), capping",
        fighter_count, cap, group_size,
    )
    return cap


def get_bye_count(fighter_count: int, group_size: int) -> int:
    """Number of byes needed to fill the tree (0 when capped)."""
    return max(get_tree_size(fighter_count, group_size) - fighter_count, 0)


def create_bye_group(bye_count: int, is_team: bool = False) -> list[Bye]:
    """Create bye_count placeholders for a competitor or team tree."""
    return [Bye(is_team=is_team) for _ in range(bye_count)]


# ============================================================================
# Redistribution
# ============================================================================


def repart(
    fighter_groups: Sequence[Sequence[Participant]], max_len: Optional[int] = None
) -> list[Participant]:
    """Mix entity groups so that same-entity fighters don't meet early.

    Takes the 1st fighter of each group, then the 2nd of each group, etc.

    Examples:
        >>> repart([["a1", "a2", "a3"], ["b1"], ["c1", "c2"]])
        ['a1', 'b1', 'c1', 'a2', 'c2', 'a3']
    """
    if max_len is None:
        max_len = get_max_fighters_by_entity(fighter_groups)

    fighters = []
    for i in range(max_len):
        for group in fighter_groups:
            if i < len(group):
                fighters.append(group[i])
    return fighters


def insert_byes(fighters: Sequence[Participant], bye_group: Sequence[Bye]) -> list[Slot]:
    """Insert byes homogeneously among fighters.

    A bye goes before every `frequency`-th fighter, where
    frequency = len(fighters) // len(bye_group). With more byes than
    fighters, every fighter gets a bye before it and the rest go last.

    Examples:
        >>> insert_byes(["a", "b", "c", "d"], ["-", "-"])
        ['-', 'a', 'b', '-', 'c', 'd']
    """
    size_byes = len(bye_group)
    if size_byes == 0:
        return list(fighters)

    frequency = len(fighters) // size_byes

    slots: list[Slot] = []
    bye_count = 0
    for i, fighter in enumerate(fighters):
        if bye_count < size_byes and (frequency == 0 or i % frequency == 0):
            slots.append(bye_group[bye_count])
            bye_count += 1
        slots.append(fighter)

    slots.extend(bye_group[bye_count:])
    return slots


# ============================================================================
# Areas and rounds
# ============================================================================


def chunk(items: Sequence, size: int) -> list[list]:
    """Split items into consecutive chunks of `size` (last may be shorter)."""
    assert size > 0, f"Chunk size must be positive, got {size}"
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def chunk_by_area(slots: Sequence[Slot], areas: int) -> list[list[Slot]]:
    """Split the pool into `areas` consecutive chunks.

    Chunk sizes differ by at most one; earlier areas take the extra slot.

    Examples:
        >>> chunk_by_area(list(range(6)), 4)
        [[0, 1], [2, 3], [4], [5]]
    """
    assert areas > 0, f"Fighting areas must be positive, got {areas}"

    size, extra = divmod(len(slots), areas)
    chunks = []
    start = 0
    for area in range(areas):
        end = start + size + (1 if area < extra else 0)
        chunks.append(list(slots[start:end]))
        start = end
    return chunks


def split_area(
    area_slots: Sequence[Slot], settings: TournamentSettings, rng: random.Random
) -> list[list[Slot]]:
    """Split one area into first-stage rounds, in play order.

    - Preliminary: groups of preliminary_group_size, shuffled
    - Direct elimination: pairs, shuffled
    - Round robin: the whole area is a single round
    """
    if settings.has_preliminary:
        groups = chunk(area_slots, settings.preliminary_group_size)
        rng.shuffle(groups)
    elif settings.is_direct_elimination:
        groups = chunk(area_slots, 2)
        rng.shuffle(groups)
    else:
        groups = [list(area_slots)]
    return groups


class TreeGen:
    """Generate the first-stage rounds of a championship.

    Collaborators:
        fighter_source: object with get_participants(championship_id, is_team)
        round_store: object with transaction(), delete_by_championship(),
            create(), attach_members() and to_domain()
    """

    def __init__(
        self,
        championship_id: int,
        settings: TournamentSettings,
        fighter_source,
        round_store,
        is_team: bool = False,
        key_of: Optional[KeyOf] = None,
        random_seed: Optional[int] = None,
    ):
        settings.validate()
        self.championship_id = championship_id
        self.settings = settings
        self.fighter_source = fighter_source
        self.round_store = round_store
        self.is_team = is_team
        self.key_of = key_of
        self.random_seed = random_seed

    def run(self) -> list[Round]:
        """Generate and save the tree, replacing any previous one.

        Returns:
            Created rounds, ordered by area then order

        Raises:
            TreeGenerationError: If there are not enough fighters per area
            StorageError: If saving fails (nothing is changed in that case)
        """
        areas = self.settings.fighting_areas
        fighters = self.get_fighters()

        if len(fighters) / areas < MIN_COMPETITORS_BY_AREA:
            raise TreeGenerationError(len(fighters), areas)

        slots = self.get_fighters_by_entity(fighters)
        slots_by_area = chunk_by_area(slots, areas)

        # One random source per run
        rng = random.Random(self.random_seed)

        with self.round_store.transaction():
            deleted = self.round_store.delete_by_championship(self.championship_id)
            if deleted:
                logger.info(
                    "Deleted %d previous rounds of championship %d",
                    deleted, self.championship_id,
                )
            rounds = self.generate_all_rounds(slots_by_area, rng)

        logger.info(
            "Generated %d rounds in %d area(s) for championship %d",
            len(rounds), areas, self.championship_id,
        )
        return rounds

    def get_fighters(self) -> list[Participant]:
        return list(self.fighter_source.get_participants(self.championship_id, self.is_team))

    def get_bye_group(self, fighter_count: int) -> list[Bye]:
        """Byes needed to fill the tree for this championship's format."""
        bye_count = get_bye_count(fighter_count, self.settings.group_size)
        return create_bye_group(bye_count, self.is_team)

    def get_fighters_by_entity(self, fighters: Sequence[Participant]) -> list[Slot]:
        """Return the padded pool, ordered to separate entities."""
        fighter_groups = group_by_entity(fighters, self.key_of)
        bye_group = self.get_bye_group(len(fighters))
        max_len = get_max_fighters_by_entity(fighter_groups)

        logger.debug(
            "%d fighters in %d entity groups (biggest: %d), %d byes",
            len(fighters), len(fighter_groups), max_len, len(bye_group),
        )

        mixed = repart(fighter_groups, max_len)
        return insert_byes(mixed, bye_group)

    def generate_all_rounds(
        self, slots_by_area: Sequence[Sequence[Slot]], rng: random.Random
    ) -> list[Round]:
        rounds = []
        for area, area_slots in enumerate(slots_by_area, start=1):
            for order, group in enumerate(split_area(area_slots, self.settings, rng), start=1):
                rounds.append(self.save_round(area, order, group, rng))
        return rounds

    def save_round(
        self, area: int, order: int, group: Sequence[Slot], rng: random.Random
    ) -> Round:
        """Shuffle seats, then persist the round and its real members."""
        seats = list(group)
        rng.shuffle(seats)

        member_ids = [slot.id for slot in seats if not slot.is_bye]
        bye_count = len(seats) - len(member_ids)

        round_orm = self.round_store.create(
            area=area, order=order, championship_id=self.championship_id, bye_count=bye_count
        )
        self.round_store.attach_members(round_orm.id, member_ids, self.is_team)
        return self.round_store.to_domain(round_orm, member_ids, self.is_team)


def generate_tree(session, championship_id: int, random_seed: Optional[int] = None) -> list[Round]:
    """Generate the tree of a championship stored in the database.

    Reads the championship's team flag, entity grouping and settings,
    then runs TreeGen with the SQLAlchemy repositories. Without an explicit
    seed, the seed saved with the settings is used.

    Raises:
        ValueError: If the championship does not exist
        TreeGenerationError: If there are not enough fighters per area
        StorageError: If saving fails
    """
    championship_repo = ChampionshipRepository(session)
    championship = championship_repo.get_by_id(championship_id)
    if championship is None:
        raise ValueError(f"Championship {championship_id} not found")
    if random_seed is None:
        random_seed = championship_repo.get_random_seed(championship.id)

    tree_gen = TreeGen(
        championship_id=championship.id,
        settings=championship_repo.get_settings(championship.id),
        fighter_source=ParticipantRepository(session),
        round_store=RoundRepository(session),
        is_team=championship.is_team,
        key_of=entity_key(championship.group_by) if championship.group_by else None,
        random_seed=random_seed,
    )
    return tree_gen.run()
