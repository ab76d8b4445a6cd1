"""Shared fixtures: in-memory database and championship factories."""

import pytest

from kendotree.models import Competitor, Team, TournamentSettings
from kendotree.storage import ChampionshipRepository, DatabaseManager, ParticipantRepository


@pytest.fixture
def db():
    manager = DatabaseManager(":memory:")
    manager.create_tables()
    return manager


@pytest.fixture
def session(db):
    session = db.get_session()
    yield session
    session.close()


@pytest.fixture
def make_championship(session):
    """Create a championship with `count` fighters and the given settings.

    clubs, if given, is a list of club ids assigned to fighters in order.
    """

    def _make(count, settings=None, is_team=False, group_by=None, clubs=None):
        championship_repo = ChampionshipRepository(session)
        participant_repo = ParticipantRepository(session)

        championship = championship_repo.create(
            name="Test Championship", is_team=is_team, group_by=group_by
        )
        championship_repo.save_settings(championship.id, settings or TournamentSettings())

        for i in range(count):
            club_id = clubs[i] if clubs else None
            if is_team:
                participant_repo.add_team(Team(id=0, name=f"Team {i + 1}", club_id=club_id), championship.id)
            else:
                participant_repo.add_competitor(
                    Competitor(id=0, first_name=f"Fighter{i + 1}", last_name=f"Last{i + 1}", club_id=club_id),
                    championship.id,
                )
        return championship

    return _make
