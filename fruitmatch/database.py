"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for fruits, match records and the
matching-algorithm registry.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    JSON,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class FruitRow(Base):
    """A stored apple or orange."""

    __tablename__ = "fruits"

    pk = Column(Integer, primary_key=True, autoincrement=True)  # insertion order
    id = Column(String, nullable=False, unique=True, index=True)
    kind = Column(String, nullable=False, index=True)  # apple, orange
    attributes = Column(JSON, nullable=False)
    preferences = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class MatchRow(Base):
    """Score of one incoming fruit against one waiting counterpart."""

    __tablename__ = "matches"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    incoming_fruit_id = Column(String, nullable=False, index=True)
    incoming_kind = Column(String, nullable=False)
    apple_id = Column(String, nullable=False)
    orange_id = Column(String, nullable=False)
    algorithm_key = Column(String, nullable=False)
    algorithm_name = Column(String, nullable=False)
    algorithm_version = Column(String, nullable=False)
    score_apple_on_orange = Column(Float, nullable=False)
    score_orange_on_apple = Column(Float, nullable=False)
    overall_score = Column(Float, nullable=False)
    breakdown = Column(JSON, nullable=False)
    best_match = Column(Boolean, nullable=False, default=False, index=True)
    message_to_incoming = Column(Text)
    message_to_existing = Column(Text)
    status = Column(String, nullable=False, default="proposed")
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class AlgorithmRow(Base):
    """Registered matching algorithm."""

    __tablename__ = "matching_algorithms"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True)
    key = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    version = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default="active")  # active, deprecated
    default_config = Column(JSON)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


def get_engine(db_path: Path) -> Engine:
    """
    Create an engine for a SQLite database file.

    Args:
        db_path: Path to SQLite database file
    """
    # One store may serve pipelines on several threads
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    engine.dispose()

