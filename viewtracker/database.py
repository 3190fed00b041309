"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for tracked videos and their stats history.
"""

from datetime import datetime
from pathlib import Path

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class Video(Base):
    """Tracked video with its running aggregates."""

    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String, nullable=False, unique=True)  # TikTok video id
    url = Column(String, nullable=False)
    current_views = Column(Integer, nullable=False, default=0)
    current_earnings = Column(Float, nullable=False, default=0.0)
    status = Column(String, nullable=False, default="active")  # active, error, stopped
    last_error = Column(Text, nullable=True)
    last_error_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (
        Index("ix_videos_status_updated_at", "status", "updated_at", "id"),
    )


class VideoStat(Base):
    """Append-only stats journal, one row per successful refresh."""

    __tablename__ = "video_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    video_id = Column(Integer, ForeignKey("videos.id"), nullable=False, index=True)
    captured_at = Column(DateTime, nullable=False, default=datetime.now)
    views = Column(Integer, nullable=False)
    earnings = Column(Float, nullable=False)


def create_db_engine(db_path: Path) -> Engine:
    """
    Create an engine usable from worker threads.

    Args:
        db_path: Path to SQLite database file
    """
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )


def init_database(db_path: Path) -> Engine:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Engine bound to the database
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_db_engine(db_path)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
