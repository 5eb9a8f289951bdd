"""
SQLAlchemy database models.

Defines the search history and preference tables backing the public
gallery, plus the versioned streak state that replaces browser storage.
"""
import datetime
import uuid

from sqlalchemy import Column, Integer, String, Float, Text, JSON, DateTime
from sqlalchemy.sql import func
from .db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class WeatherSearch(Base):
    """
    One recorded search, denormalized for the gallery and activity feed.

    Append-only: rows are never updated once written.
    """
    __tablename__ = "weather_searches"

    id = Column(String(36), primary_key=True, default=_new_id)
    city = Column(String, nullable=False)
    country = Column(String, nullable=False)
    temperature = Column(Float, nullable=False)
    condition = Column(String, nullable=False)
    image_data = Column(Text, nullable=True)  # data: URL of the generated skyline
    prompt = Column(Text, nullable=True)
    search_location = Column(String, nullable=True)
    searched_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


class UserPreference(Base):
    """
    Single-row preferences table.

    Currently single-user (fixed id). For multi-user support,
    add a user_id column with a unique constraint.
    """
    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True)
    favorite_city = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=_utcnow)


class StreakRecord(Base):
    """
    Streak state for one client.

    `version` is bumped on every write; updates only apply when the
    version read is still current.
    """
    __tablename__ = "streak_states"

    id = Column(Integer, primary_key=True)
    client_id = Column(String, nullable=False, unique=True)
    version = Column(Integer, nullable=False, default=1)
    payload = Column(JSON, nullable=False)  # serialized StreakState
    updated_at = Column(DateTime(timezone=True), default=_utcnow)
