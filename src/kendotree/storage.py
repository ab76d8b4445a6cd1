"""SQLite storage layer for kendotree.

Provides ORM models and repository pattern for data persistence.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Union

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from kendotree.models import (
    Competitor,
    Round,
    Team,
    TournamentSettings,
    TreeType,
)
from kendotree.paths import get_data_dir

logger = logging.getLogger(__name__)

Base = declarative_base()


class StorageError(Exception):
    """Raised when a write to the database fails."""

    pass


# ============================================================================
# ORM Models
# ============================================================================


class ChampionshipORM(Base):
    """Championship table.

    A championship is either individual (competitors) or by team (teams).
    group_by names the entity used to separate fighters (club, association,
    federation) or is NULL for no separation.
    """

    __tablename__ = "championships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    is_team = Column(Boolean, nullable=False, default=False)
    group_by = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    settings = relationship(
        "ChampionshipSettingsORM", back_populates="championship", uselist=False,
        cascade="all, delete-orphan",
    )
    competitors = relationship("CompetitorORM", back_populates="championship")
    teams = relationship("TeamORM", back_populates="championship")
    rounds = relationship("RoundORM", back_populates="championship")


class ChampionshipSettingsORM(Base):
    """Tree settings of a championship (one row per championship)."""

    __tablename__ = "championship_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    championship_id = Column(Integer, ForeignKey("championships.id"), nullable=False, unique=True)
    has_preliminary = Column(Boolean, nullable=False, default=False)
    preliminary_group_size = Column(Integer, nullable=False, default=3)
    tree_type = Column(Integer, nullable=False, default=int(TreeType.ROUND_ROBIN))
    fighting_areas = Column(Integer, nullable=False, default=1)
    random_seed = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    championship = relationship("ChampionshipORM", back_populates="settings")


class CompetitorORM(Base):
    """Competitor table."""

    __tablename__ = "competitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    championship_id = Column(Integer, ForeignKey("championships.id"), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    # Entities
    federation_id = Column(Integer, nullable=True)
    association_id = Column(Integer, nullable=True)
    club_id = Column(Integer, nullable=True)

    championship = relationship("ChampionshipORM", back_populates="competitors")


class TeamORM(Base):
    """Team table."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    championship_id = Column(Integer, ForeignKey("championships.id"), nullable=False)
    name = Column(String(100), nullable=False)

    # Entities
    federation_id = Column(Integer, nullable=True)
    association_id = Column(Integer, nullable=True)
    club_id = Column(Integer, nullable=True)

    championship = relationship("ChampionshipORM", back_populates="teams")


class RoundORM(Base):
    """Round table: one first-stage match group in a fighting area."""

    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    championship_id = Column(Integer, ForeignKey("championships.id"), nullable=False)
    area = Column(Integer, nullable=False)
    order = Column("order", Integer, nullable=False)
    bye_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    championship = relationship("ChampionshipORM", back_populates="rounds")
    competitor_links = relationship(
        "RoundCompetitorORM", order_by="RoundCompetitorORM.position",
        cascade="all, delete-orphan",
    )
    team_links = relationship(
        "RoundTeamORM", order_by="RoundTeamORM.position",
        cascade="all, delete-orphan",
    )


class RoundCompetitorORM(Base):
    """Competitor seated in a round."""

    __tablename__ = "round_competitor"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False)
    competitor_id = Column(Integer, ForeignKey("competitors.id"), nullable=False)
    position = Column(Integer, nullable=False)  # Seat order within the round


class RoundTeamORM(Base):
    """Team seated in a round."""

    __tablename__ = "round_team"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    position = Column(Integer, nullable=False)


# ============================================================================
# Database Manager
# ============================================================================


class DatabaseManager:
    """Manages SQLite database connection and session."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file, ":memory:" for an
                in-memory database, or None for the default data directory
        """
        if db_path == ":memory:":
            # Single shared connection, otherwise every session sees an empty db
            self.db_path = None
            self.engine = create_engine(
                "sqlite://",
                echo=False,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            self.db_path = Path(db_path) if db_path else get_data_dir() / "kendotree.sqlite"
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            # Use NullPool for SQLite to avoid connection pool issues
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                poolclass=NullPool,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine)

    def create_tables(self):
        """Create all tables in the database."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self):
        """Drop all tables (use with caution!)."""
        Base.metadata.drop_all(self.engine)

    def get_session(self):
        """Get a new database session."""
        return self.SessionLocal()


# ============================================================================
# Repositories
# ============================================================================


class ChampionshipRepository:
    """Repository for Championship and settings operations."""

    def __init__(self, session):
        self.session = session

    def create(self, name: str, is_team: bool = False, group_by: Optional[str] = None) -> ChampionshipORM:
        """Create a new championship."""
        championship = ChampionshipORM(name=name, is_team=is_team, group_by=group_by)
        self.session.add(championship)
        self.session.commit()
        self.session.refresh(championship)
        return championship

    def get_by_id(self, championship_id: int) -> Optional[ChampionshipORM]:
        """Get championship by ID."""
        return self.session.query(ChampionshipORM).filter(
            ChampionshipORM.id == championship_id
        ).first()

    def get_all(self) -> list[ChampionshipORM]:
        """Get all championships, oldest first."""
        return self.session.query(ChampionshipORM).order_by(ChampionshipORM.id).all()

    def set_group_by(self, championship_id: int, group_by: Optional[str]) -> bool:
        """Change the entity fighters are separated by."""
        result = self.session.query(ChampionshipORM).filter(
            ChampionshipORM.id == championship_id
        ).update({"group_by": group_by})
        self.session.commit()
        return result > 0

    def save_settings(
        self, championship_id: int, settings: TournamentSettings, random_seed: Optional[int] = None
    ) -> ChampionshipSettingsORM:
        """Create or replace the tree settings of a championship.

        Args:
            championship_id: Championship ID
            settings: Validated settings
            random_seed: Seed used by generation when none is given (None for a random draw)

        Returns:
            Saved ChampionshipSettingsORM instance
        """
        settings_orm = self.session.query(ChampionshipSettingsORM).filter(
            ChampionshipSettingsORM.championship_id == championship_id
        ).first()
        if settings_orm is None:
            settings_orm = ChampionshipSettingsORM(championship_id=championship_id)
            self.session.add(settings_orm)

        settings_orm.has_preliminary = settings.has_preliminary
        settings_orm.preliminary_group_size = settings.preliminary_group_size
        settings_orm.tree_type = int(settings.tree_type)
        settings_orm.fighting_areas = settings.fighting_areas
        settings_orm.random_seed = random_seed

        self.session.commit()
        self.session.refresh(settings_orm)
        return settings_orm

    def get_settings(self, championship_id: int) -> TournamentSettings:
        """Get the tree settings of a championship.

        Championships that were never configured get default settings.
        """
        settings_orm = self.session.query(ChampionshipSettingsORM).filter(
            ChampionshipSettingsORM.championship_id == championship_id
        ).first()
        if settings_orm is None:
            return TournamentSettings()

        return TournamentSettings(
            has_preliminary=settings_orm.has_preliminary,
            preliminary_group_size=settings_orm.preliminary_group_size,
            tree_type=TreeType(settings_orm.tree_type),
            fighting_areas=settings_orm.fighting_areas,
        )

    def get_random_seed(self, championship_id: int) -> Optional[int]:
        """Get the stored draw seed of a championship, or None."""
        settings_orm = self.session.query(ChampionshipSettingsORM).filter(
            ChampionshipSettingsORM.championship_id == championship_id
        ).first()
        return settings_orm.random_seed if settings_orm else None


class ParticipantRepository:
    """Repository for Competitor and Team operations.

    Acts as the fighter source of the tree generator.
    """

    def __init__(self, session):
        self.session = session

    def add_competitor(self, competitor: Competitor, championship_id: int) -> CompetitorORM:
        """Register a competitor in a championship (id is auto-generated)."""
        competitor_orm = CompetitorORM(
            championship_id=championship_id,
            first_name=competitor.first_name,
            last_name=competitor.last_name,
            federation_id=competitor.federation_id,
            association_id=competitor.association_id,
            club_id=competitor.club_id,
        )
        self.session.add(competitor_orm)
        self.session.commit()
        self.session.refresh(competitor_orm)
        return competitor_orm

    def add_team(self, team: Team, championship_id: int) -> TeamORM:
        """Register a team in a championship (id is auto-generated)."""
        team_orm = TeamORM(
            championship_id=championship_id,
            name=team.name,
            federation_id=team.federation_id,
            association_id=team.association_id,
            club_id=team.club_id,
        )
        self.session.add(team_orm)
        self.session.commit()
        self.session.refresh(team_orm)
        return team_orm

    def add(self, participant: Union[Competitor, Team], championship_id: int):
        if participant.is_team:
            return self.add_team(participant, championship_id)
        return self.add_competitor(participant, championship_id)

    def get_participants(self, championship_id: int, is_team: bool = False) -> list[Union[Competitor, Team]]:
        """Get the fighters of a championship as domain objects, by id.

        Args:
            championship_id: Championship ID
            is_team: Return teams instead of competitors

        Returns:
            List of Competitor or Team objects
        """
        if is_team:
            teams = self.session.query(TeamORM).filter(
                TeamORM.championship_id == championship_id
            ).order_by(TeamORM.id).all()
            return [
                Team(
                    id=t.id,
                    name=t.name,
                    federation_id=t.federation_id,
                    association_id=t.association_id,
                    club_id=t.club_id,
                )
                for t in teams
            ]

        competitors = self.session.query(CompetitorORM).filter(
            CompetitorORM.championship_id == championship_id
        ).order_by(CompetitorORM.id).all()
        return [
            Competitor(
                id=c.id,
                first_name=c.first_name,
                last_name=c.last_name,
                federation_id=c.federation_id,
                association_id=c.association_id,
                club_id=c.club_id,
            )
            for c in competitors
        ]

    def get_names_by_id(self, championship_id: int, is_team: bool = False) -> dict[int, str]:
        """Map fighter id to display name."""
        return {
            p.id: p.display_name
            for p in self.get_participants(championship_id, is_team)
        }


class RoundRepository:
    """Repository for Round operations.

    Writes only flush; wrap them in transaction() so that a failed
    generation leaves the previous rounds untouched.
    """

    def __init__(self, session):
        self.session = session

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit on success, roll back and raise StorageError on failure."""
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Round transaction rolled back: %s", e)
            raise StorageError(f"Could not save rounds: {e}") from e
        except Exception:
            self.session.rollback()
            raise

    def delete_by_championship(self, championship_id: int) -> int:
        """Delete all rounds of a championship and their members.

        Returns:
            Number of rounds deleted
        """
        rounds = self.get_by_championship(championship_id)
        for round_orm in rounds:
            self.session.delete(round_orm)
        self.session.flush()
        return len(rounds)

    def create(self, area: int, order: int, championship_id: int, bye_count: int = 0) -> RoundORM:
        """Create a round (flushed to get its id, not committed)."""
        round_orm = RoundORM(
            area=area,
            order=order,
            championship_id=championship_id,
            bye_count=bye_count,
        )
        self.session.add(round_orm)
        self.session.flush()
        return round_orm

    def attach_members(self, round_id: int, member_ids: list[int], is_team: bool = False) -> None:
        """Seat fighters in a round, in the given order.

        Args:
            round_id: Round ID
            member_ids: Team ids or competitor ids (never byes)
            is_team: Whether member_ids are team ids
        """
        for position, member_id in enumerate(member_ids, start=1):
            if is_team:
                link = RoundTeamORM(round_id=round_id, team_id=member_id, position=position)
            else:
                link = RoundCompetitorORM(round_id=round_id, competitor_id=member_id, position=position)
            self.session.add(link)
        self.session.flush()

    def get_by_championship(self, championship_id: int) -> list[RoundORM]:
        """Get rounds of a championship ordered by area and order."""
        return self.session.query(RoundORM).filter(
            RoundORM.championship_id == championship_id
        ).order_by(RoundORM.area, RoundORM.order).all()

    def get_member_ids(self, round_orm: RoundORM, is_team: bool = False) -> list[int]:
        """Get fighter ids of a round in seat order."""
        if is_team:
            return [link.team_id for link in round_orm.team_links]
        return [link.competitor_id for link in round_orm.competitor_links]

    def to_domain(self, round_orm: RoundORM, member_ids: Optional[list[int]] = None, is_team: bool = False) -> Round:
        """Convert a RoundORM to a Round domain model."""
        if member_ids is None:
            member_ids = self.get_member_ids(round_orm, is_team)
        return Round(
            id=round_orm.id,
            championship_id=round_orm.championship_id,
            area=round_orm.area,
            order=round_orm.order,
            member_ids=list(member_ids),
            is_team=is_team,
            bye_count=round_orm.bye_count,
        )

    def get_rounds(self, championship_id: int, is_team: bool = False) -> list[Round]:
        """Get rounds of a championship as domain models."""
        return [
            self.to_domain(round_orm, is_team=is_team)
            for round_orm in self.get_by_championship(championship_id)
        ]
