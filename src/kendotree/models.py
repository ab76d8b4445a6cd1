"""Data models for kendotree.

Domain model hierarchy:
- Championship contains Competitors or Teams (never both)
- Championship has one TournamentSettings
- Championship contains Rounds (first-stage matches), split by fighting area
- Round contains member ids (competitor or team ids)

A Bye is a placeholder slot used to pad the pool up to a valid tree size.
It is never persisted as a real entrant.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Union

# Minimum real participants per fighting area
MIN_COMPETITORS_BY_AREA = 2

# Tree size candidates are group_size * factor
TREE_SIZE_FACTORS = (1, 2, 4, 8, 16, 32, 64)

DEFAULT_PRELIMINARY_GROUP_SIZE = 3
VALID_PRELIMINARY_GROUP_SIZES = (3, 4, 5)
VALID_FIGHTING_AREAS = (1, 2, 4, 8)

# Organizational entities a championship can separate fighters by
ENTITY_FIELDS = ("federation", "association", "club")


class TreeType(IntEnum):
    """Tree format of a championship."""

    ROUND_ROBIN = 0
    DIRECT_ELIMINATION = 1

    @property
    def label(self) -> str:
        return self.name.lower()


# ============================================================================
# Participants
# ============================================================================


@dataclass
class Competitor:
    """Individual competitor registered in a championship."""

    id: int
    first_name: str
    last_name: str
    federation_id: Optional[int] = None
    association_id: Optional[int] = None
    club_id: Optional[int] = None

    is_team = False
    is_bye = False

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __str__(self) -> str:
        return f"{self.display_name} (#{self.id})"


@dataclass
class Team:
    """Team registered in a team championship."""

    id: int
    name: str
    federation_id: Optional[int] = None
    association_id: Optional[int] = None
    club_id: Optional[int] = None

    is_team = True
    is_bye = False

    @property
    def display_name(self) -> str:
        return self.name

    def __str__(self) -> str:
        return f"{self.name} (#{self.id})"


@dataclass(frozen=True)
class Bye:
    """Placeholder slot meaning "no opponent".

    Has no id on purpose: only real participants are attached to rounds.
    """

    is_team: bool = False

    is_bye = True

    @property
    def display_name(self) -> str:
        return "BYE"

    def __str__(self) -> str:
        return "BYE"


Participant = Union[Competitor, Team]
Slot = Union[Competitor, Team, Bye]


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True)
class TournamentSettings:
    """Tree generation settings of a championship.

    Read once at the start of a generation run, never mutated.
    """

    has_preliminary: bool = False
    preliminary_group_size: int = DEFAULT_PRELIMINARY_GROUP_SIZE
    tree_type: TreeType = TreeType.ROUND_ROBIN
    fighting_areas: int = 1

    @property
    def is_direct_elimination(self) -> bool:
        return self.tree_type == TreeType.DIRECT_ELIMINATION

    @property
    def group_size(self) -> int:
        """Size of a first-stage group, used to compute the tree size.

        Preliminary group size if there is a preliminary stage, 2 otherwise
        (a round robin without preliminary is padded the same way as an
        elimination tree).
        """
        if self.has_preliminary:
            return self.preliminary_group_size
        return 2

    def validate(self) -> None:
        """Assert that values are in range.

        Settings come from the configuration layer, which already rejects
        bad values; anything out of range here is a programming error.
        """
        assert self.preliminary_group_size in VALID_PRELIMINARY_GROUP_SIZES, (
            f"Invalid preliminary group size: {self.preliminary_group_size}"
        )
        assert self.fighting_areas in VALID_FIGHTING_AREAS, (
            f"Invalid fighting areas: {self.fighting_areas}"
        )
        assert isinstance(self.tree_type, TreeType), f"Invalid tree type: {self.tree_type}"


# ============================================================================
# Rounds
# ============================================================================


@dataclass
class Round:
    """A first-stage match group in one fighting area.

    member_ids holds competitor ids or team ids depending on is_team,
    in seat order. Byes are only counted, never stored.
    """

    id: int
    championship_id: int
    area: int
    order: int
    member_ids: list[int] = field(default_factory=list)
    is_team: bool = False
    bye_count: int = 0

    @property
    def size(self) -> int:
        """Number of slots in the round, byes included."""
        return len(self.member_ids) + self.bye_count

    def __str__(self) -> str:
        return f"Area {self.area} Round {self.order} ({len(self.member_ids)} fighters)"
