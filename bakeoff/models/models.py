from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Text,
    UniqueConstraint, Enum as SAEnum, JSON
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from bakeoff.core.config import get_settings
from bakeoff.core.database import Base
import enum


# --- Enums ---

class SeasonStatus(str, enum.Enum):
    SETUP = "setup"           # Adding bakers, finalist picks open
    ACTIVE = "active"         # Season airing, scoring weekly
    COMPLETE = "complete"     # Final aired, finalist picks scored


class PickType(str, enum.Enum):
    FINALIST = "FINALIST"          # Season-long, 3 per player, no episode
    STAR_BAKER = "STAR_BAKER"
    ELIMINATION = "ELIMINATION"


class BonusKind(str, enum.Enum):
    TECHNICAL_CHALLENGE = "technical_challenge"  # Singleton on the episode
    HANDSHAKE = "handshake"                      # Multiset, one row per handshake
    SOGGY_BOTTOM = "soggy_bottom"                # Multiset, one row per comment


WEEKLY_PICK_TYPES = (PickType.STAR_BAKER, PickType.ELIMINATION)


def _default_pick_limit():
    return get_settings().star_baker_pick_limit


# --- Models ---

class Season(Base):
    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True, index=True)
    season_number = Column(Integer, unique=True, nullable=False)
    name = Column(String(100), nullable=False)  # e.g. "Series 15"
    status = Column(SAEnum(SeasonStatus), default=SeasonStatus.SETUP, nullable=False)
    star_baker_pick_limit = Column(Integer, default=_default_pick_limit, nullable=False)  # same baker as Star Baker, per player
    finalist_ids = Column(JSON)  # True finalists, null until the season is finalized
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    contestants = relationship("Contestant", back_populates="season", cascade="all, delete-orphan")
    episodes = relationship("Episode", back_populates="season", cascade="all, delete-orphan", order_by="Episode.episode_number")
    picks = relationship("Pick", back_populates="season", cascade="all, delete-orphan")
    scores = relationship("UserScore", back_populates="season", cascade="all, delete-orphan")


class Contestant(Base):
    __tablename__ = "contestants"

    id = Column(Integer, primary_key=True, index=True)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    name = Column(String(100), nullable=False)
    age = Column(Integer)
    occupation = Column(String(200))
    hometown = Column(String(100))
    bio = Column(Text)
    photo_url = Column(Text)
    # Materialized from completed episodes by the ledger; never set by hand
    is_eliminated = Column(Boolean, default=False, nullable=False)

    # Relationships
    season = relationship("Season", back_populates="contestants")

    __table_args__ = (
        UniqueConstraint("season_id", "name", name="uq_contestant_season_name"),
    )


class Episode(Base):
    __tablename__ = "episodes"

    id = Column(Integer, primary_key=True, index=True)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    episode_number = Column(Integer, nullable=False)
    title = Column(String(200))  # e.g. "Cake Week"
    air_date = Column(DateTime)
    notes = Column(Text)
    is_active = Column(Boolean, default=False, nullable=False)     # Open for weekly picks
    is_completed = Column(Boolean, default=False, nullable=False)  # Outcome recorded

    # Outcome, set when the admin records the result
    star_baker_id = Column(Integer, ForeignKey("contestants.id"))
    eliminated_id = Column(Integer, ForeignKey("contestants.id"))
    technical_winner_id = Column(Integer, ForeignKey("contestants.id"))

    # Relationships
    season = relationship("Season", back_populates="episodes")
    star_baker = relationship("Contestant", foreign_keys=[star_baker_id])
    eliminated = relationship("Contestant", foreign_keys=[eliminated_id])
    technical_winner = relationship("Contestant", foreign_keys=[technical_winner_id])
    bonuses = relationship("EpisodeBonus", back_populates="episode", cascade="all, delete-orphan")
    picks = relationship("Pick", back_populates="episode", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("season_id", "episode_number", name="uq_episode_season_number"),
    )


class EpisodeBonus(Base):
    """
    Handshakes and soggy bottoms. Each row is one entry of a multiset, so a
    baker with two handshakes in an episode has two rows. The technical
    challenge winner is a singleton and lives on Episode instead.
    """
    __tablename__ = "episode_bonuses"

    id = Column(Integer, primary_key=True, index=True)
    episode_id = Column(Integer, ForeignKey("episodes.id"), nullable=False)
    contestant_id = Column(Integer, ForeignKey("contestants.id"), nullable=False)
    kind = Column(SAEnum(BonusKind), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    episode = relationship("Episode", back_populates="bonuses")
    contestant = relationship("Contestant")


class Player(Base):
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    display_name = Column(String(100), nullable=False)
    password_hash = Column(String(200), nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)  # Admin picks are never scored
    must_change_password = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    picks = relationship("Pick", back_populates="player")
    scores = relationship("UserScore", back_populates="player")


class Pick(Base):
    """One prediction. Weekly picks point at an episode, finalist picks don't."""
    __tablename__ = "picks"

    id = Column(Integer, primary_key=True, index=True)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    episode_id = Column(Integer, ForeignKey("episodes.id"))  # Null for FINALIST
    pick_type = Column(SAEnum(PickType), nullable=False)
    contestant_id = Column(Integer, ForeignKey("contestants.id"), nullable=False)
    is_correct = Column(Boolean)  # Null until scored
    points = Column(Integer, default=0, nullable=False)  # Signed, written by the scoring engine
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    season = relationship("Season", back_populates="picks")
    player = relationship("Player", back_populates="picks")
    episode = relationship("Episode", back_populates="picks")
    contestant = relationship("Contestant")

    __table_args__ = (
        # NULL episode_id rows (finalists) are not constrained
        UniqueConstraint("player_id", "episode_id", "pick_type", name="uq_pick_player_episode_type"),
    )


class UserScore(Base):
    """Per player per season aggregate. Rebuilt wholesale from scored picks."""
    __tablename__ = "user_scores"

    id = Column(Integer, primary_key=True, index=True)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    total_score = Column(Integer, default=0, nullable=False)
    weekly_score = Column(Integer, default=0, nullable=False)
    finalist_score = Column(Integer, default=0, nullable=False)
    correct_star_baker = Column(Integer, default=0, nullable=False)
    correct_elimination = Column(Integer, default=0, nullable=False)
    wrong_star_baker = Column(Integer, default=0, nullable=False)
    wrong_elimination = Column(Integer, default=0, nullable=False)
    technical_challenge_wins = Column(Integer, default=0, nullable=False)
    handshakes = Column(Integer, default=0, nullable=False)
    soggy_bottoms = Column(Integer, default=0, nullable=False)
    total_episodes = Column(Integer, default=0, nullable=False)  # Completed episodes in the season
    total_episodes_with_picks = Column(Integer, default=0, nullable=False)  # Both weekly picks submitted
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    season = relationship("Season", back_populates="scores")
    player = relationship("Player", back_populates="scores")

    __table_args__ = (
        UniqueConstraint("season_id", "player_id", name="uq_user_score_season_player"),
    )
