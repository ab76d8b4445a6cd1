"""End-to-end tree generation against an in-memory database."""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from kendotree.models import TournamentSettings, TreeType
from kendotree.storage import (
    ChampionshipRepository,
    ParticipantRepository,
    RoundCompetitorORM,
    RoundORM,
    RoundRepository,
    StorageError,
)
from kendotree.tree_gen import TreeGen, TreeGenerationError, generate_tree

DIRECT_ELIMINATION = TournamentSettings(tree_type=TreeType.DIRECT_ELIMINATION)


def shape(rounds):
    """Structure of a tree, independent of the draw."""
    return [(r.area, r.order, r.size) for r in rounds]


def all_member_ids(rounds):
    return sorted(member_id for r in rounds for member_id in r.member_ids)


class FailingRoundRepository(RoundRepository):
    """Round store whose writes fail after `fail_after` attached rounds."""

    def __init__(self, session, fail_after):
        super().__init__(session)
        self.fail_after = fail_after
        self.attached = 0

    def attach_members(self, round_id, member_ids, is_team=False):
        if self.attached >= self.fail_after:
            raise SQLAlchemyError("disk full")
        self.attached += 1
        super().attach_members(round_id, member_ids, is_team)


def test_direct_elimination_one_area(session, make_championship):
    """10 competitors, direct elimination: tree of 16, 6 byes, 8 rounds."""
    championship = make_championship(10, DIRECT_ELIMINATION)

    rounds = generate_tree(session, championship.id, random_seed=1)

    assert len(rounds) == 8
    assert all(r.area == 1 for r in rounds)
    assert [r.order for r in rounds] == list(range(1, 9))
    assert all(r.size == 2 for r in rounds)
    assert sum(r.bye_count for r in rounds) == 6
    assert all_member_ids(rounds) == sorted(c.id for c in championship.competitors)


def test_minimum_fighters_proceeds(session, make_championship):
    """9 competitors in 1 area passes the minimum check."""
    championship = make_championship(9, DIRECT_ELIMINATION)

    rounds = generate_tree(session, championship.id)

    assert len(all_member_ids(rounds)) == 9


def test_single_fighter_fails_and_keeps_previous_tree(session, make_championship):
    """Not enough fighters: error, previous rounds are left untouched."""
    championship = make_championship(1)
    round_repo = RoundRepository(session)
    previous = round_repo.create(area=1, order=1, championship_id=championship.id)
    session.commit()

    with pytest.raises(TreeGenerationError):
        generate_tree(session, championship.id)

    rounds = round_repo.get_by_championship(championship.id)
    assert [r.id for r in rounds] == [previous.id]


def test_preliminary_groups_of_four(session, make_championship):
    """12 competitors, preliminary groups of 4: tree of 16, 4 groups with one bye each."""
    settings = TournamentSettings(has_preliminary=True, preliminary_group_size=4)
    championship = make_championship(12, settings)

    rounds = generate_tree(session, championship.id)

    assert len(rounds) == 4
    assert all(r.size == 4 for r in rounds)
    assert all(len(r.member_ids) == 3 and r.bye_count == 1 for r in rounds)
    assert len(all_member_ids(rounds)) == 12


def test_two_areas(session, make_championship):
    """9 competitors in 2 areas: 8 slots per area, orders restart per area."""
    championship = make_championship(9, TournamentSettings(
        tree_type=TreeType.DIRECT_ELIMINATION, fighting_areas=2
    ))

    rounds = generate_tree(session, championship.id)

    for area in (1, 2):
        area_rounds = [r for r in rounds if r.area == area]
        assert [r.order for r in area_rounds] == [1, 2, 3, 4]
        assert sum(r.size for r in area_rounds) == 8
    assert len(all_member_ids(rounds)) == 9


def test_round_robin_whole_area(session, make_championship):
    """Round robin without preliminary: one round per area."""
    championship = make_championship(6, TournamentSettings(fighting_areas=2))

    rounds = generate_tree(session, championship.id)

    assert len(rounds) == 2
    assert [r.area for r in rounds] == [1, 2]
    assert all(r.order == 1 for r in rounds)
    assert sum(r.size for r in rounds) == 8
    assert len(all_member_ids(rounds)) == 6


def test_entities_never_meet_in_first_round(session, make_championship):
    """Two balanced clubs: every first-round pair has one fighter of each."""
    clubs = [10, 10, 10, 10, 20, 20, 20, 20]
    championship = make_championship(8, DIRECT_ELIMINATION, group_by="club", clubs=clubs)
    club_of = {c.id: c.club_id for c in championship.competitors}

    rounds = generate_tree(session, championship.id)

    assert len(rounds) == 4
    for r in rounds:
        assert sorted(club_of[member_id] for member_id in r.member_ids) == [10, 20]


def test_team_championship(session, make_championship):
    """Teams are attached with the team association."""
    championship = make_championship(6, DIRECT_ELIMINATION, is_team=True)

    rounds = generate_tree(session, championship.id)

    assert all(r.is_team for r in rounds)
    team_ids = sorted(t.id for t in championship.teams)
    assert all_member_ids(rounds) == team_ids

    stored = RoundRepository(session).get_rounds(championship.id, is_team=True)
    assert all_member_ids(stored) == team_ids
    assert session.query(RoundCompetitorORM).count() == 0


def test_regeneration_replaces_rounds(session, make_championship):
    """Running twice replaces the tree and keeps its shape."""
    championship = make_championship(10, DIRECT_ELIMINATION)

    first = generate_tree(session, championship.id)
    second = generate_tree(session, championship.id)

    assert shape(first) == shape(second)
    assert session.query(RoundORM).count() == 8
    assert session.query(RoundCompetitorORM).count() == 10
    stored = RoundRepository(session).get_by_championship(championship.id)
    assert [r.id for r in stored] == [r.id for r in second]


def test_seeded_draw_is_reproducible(session, make_championship):
    championship = make_championship(16, DIRECT_ELIMINATION)

    first = generate_tree(session, championship.id, random_seed=42)
    second = generate_tree(session, championship.id, random_seed=42)

    assert [r.member_ids for r in first] == [r.member_ids for r in second]


def test_stored_rounds_match_returned_rounds(session, make_championship):
    championship = make_championship(7, DIRECT_ELIMINATION)

    rounds = generate_tree(session, championship.id)
    stored = RoundRepository(session).get_rounds(championship.id)

    assert [(r.area, r.order, r.member_ids, r.bye_count) for r in stored] == [
        (r.area, r.order, r.member_ids, r.bye_count) for r in rounds
    ]


def test_failed_write_rolls_back(session, make_championship):
    """A storage failure mid-run leaves the previous tree intact."""
    championship = make_championship(10, DIRECT_ELIMINATION)
    previous = generate_tree(session, championship.id)

    tree_gen = TreeGen(
        championship_id=championship.id,
        settings=ChampionshipRepository(session).get_settings(championship.id),
        fighter_source=ParticipantRepository(session),
        round_store=FailingRoundRepository(session, fail_after=3),
    )
    with pytest.raises(StorageError):
        tree_gen.run()

    stored = RoundRepository(session).get_rounds(championship.id)
    assert [r.id for r in stored] == [r.id for r in previous]
    assert all_member_ids(stored) == all_member_ids(previous)


def test_unknown_championship(session):
    with pytest.raises(ValueError):
        generate_tree(session, 999)


def test_stored_seed_is_used_without_explicit_seed(session, make_championship):
    """A seed saved with the settings makes plain regeneration reproducible."""
    championship = make_championship(16)
    repo = ChampionshipRepository(session)
    repo.save_settings(championship.id, DIRECT_ELIMINATION, random_seed=7)

    first = generate_tree(session, championship.id)
    second = generate_tree(session, championship.id)
    explicit = generate_tree(session, championship.id, random_seed=7)

    assert [r.member_ids for r in first] == [r.member_ids for r in second]
    assert [r.member_ids for r in first] == [r.member_ids for r in explicit]
