"""
Persistence gateway for fruits, match records and algorithms.

Every public method runs in its own transaction: it either fully applies
or rolls back and raises StorageError. Nothing here is retried and no
matching decisions are made here.
"""

import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .database import AlgorithmRow, FruitRow, MatchRow, get_engine, init_database
from .models import (
    Attributes,
    Fruit,
    FruitKind,
    MatchingAlgorithm,
    MatchRecord,
    Preferences,
)


class StorageError(Exception):
    """A create, read or update against the database failed."""
    pass


class DuplicateAlgorithmError(StorageError):
    """An algorithm with the same key is already registered."""

    def __init__(self, existing: MatchingAlgorithm):
        self.existing = existing
        super().__init__(f"Algorithm with key '{existing.key}' already exists")


def _new_id(table: str) -> str:
    return f"{table}:{uuid.uuid4().hex}"


def _to_fruit(row: FruitRow) -> Fruit:
    return Fruit(
        id=row.id,
        kind=FruitKind(row.kind),
        attributes=Attributes.from_dict(row.attributes),
        preferences=Preferences.from_dict(row.preferences),
        created_at=row.created_at,
    )


def _to_match(row: MatchRow) -> MatchRecord:
    return MatchRecord(
        id=row.id,
        incoming_fruit_id=row.incoming_fruit_id,
        incoming_kind=FruitKind(row.incoming_kind),
        apple_id=row.apple_id,
        orange_id=row.orange_id,
        algorithm_key=row.algorithm_key,
        algorithm_name=row.algorithm_name,
        algorithm_version=row.algorithm_version,
        score_apple_on_orange=row.score_apple_on_orange,
        score_orange_on_apple=row.score_orange_on_apple,
        overall_score=row.overall_score,
        breakdown=row.breakdown,
        best_match=row.best_match,
        message_to_incoming=row.message_to_incoming,
        message_to_existing=row.message_to_existing,
        status=row.status,
        created_at=row.created_at,
    )


def _to_algorithm(row: AlgorithmRow) -> MatchingAlgorithm:
    return MatchingAlgorithm(
        id=row.id,
        key=row.key,
        name=row.name,
        version=row.version,
        description=row.description,
        status=row.status,
        default_config=row.default_config,
        created_at=row.created_at,
    )


class FruitStore:
    """SQLite-backed store. Safe to share between threads."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        try:
            init_database(db_path)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"open database failed: {e}") from e
        self.engine = get_engine(db_path)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"{action} failed: {e}") from e
        finally:
            session.close()

    # Fruits

    def create_fruit(self, kind: FruitKind, attributes: Attributes, preferences: Preferences) -> Fruit:
        row = FruitRow(
            id=_new_id(kind.value),
            kind=kind.value,
            attributes=attributes.to_dict(),
            preferences=preferences.to_dict(),
            created_at=datetime.now(),
        )
        with self._session("create fruit") as session:
            session.add(row)
            session.flush()
            return _to_fruit(row)

    def get_fruit(self, fruit_id: str) -> Optional[Fruit]:
        with self._session("get fruit") as session:
            row = session.query(FruitRow).filter_by(id=fruit_id).first()
            return _to_fruit(row) if row else None

    def list_fruits(self, kind: FruitKind) -> List[Fruit]:
        """All fruits of one kind, oldest first."""
        with self._session("list fruits") as session:
            rows = session.query(FruitRow).filter_by(kind=kind.value).order_by(FruitRow.pk).all()
            return [_to_fruit(r) for r in rows]

    # Matches

    def create_match(
        self,
        *,
        incoming_fruit_id: str,
        incoming_kind: FruitKind,
        apple_id: str,
        orange_id: str,
        algorithm: MatchingAlgorithm,
        score_apple_on_orange: float,
        score_orange_on_apple: float,
        overall_score: float,
        breakdown: Dict[str, Dict[str, float]],
        best_match: bool = False,
    ) -> MatchRecord:
        now = datetime.now()
        row = MatchRow(
            id=_new_id("match"),
            incoming_fruit_id=incoming_fruit_id,
            incoming_kind=incoming_kind.value,
            apple_id=apple_id,
            orange_id=orange_id,
            algorithm_key=algorithm.key,
            algorithm_name=algorithm.name,
            algorithm_version=algorithm.version,
            score_apple_on_orange=score_apple_on_orange,
            score_orange_on_apple=score_orange_on_apple,
            overall_score=overall_score,
            breakdown=breakdown,
            best_match=best_match,
            status="proposed",
            created_at=now,
            updated_at=now,
        )
        with self._session("create match") as session:
            session.add(row)
            session.flush()
            return _to_match(row)

    def update_match(
        self,
        match_id: str,
        best_match: Optional[bool] = None,
        message_to_incoming: Optional[str] = None,
        message_to_existing: Optional[str] = None,
    ) -> MatchRecord:
        """
        Apply the given fields to a match record. Fields left as None are
        not touched.

        Raises:
            StorageError: If the record does not exist or the write fails
        """
        with self._session("update match") as session:
            row = session.query(MatchRow).filter_by(id=match_id).first()
            if row is None:
                raise StorageError(f"Match record not found: {match_id}")
            if best_match is not None:
                row.best_match = best_match
            if message_to_incoming is not None:
                row.message_to_incoming = message_to_incoming
            if message_to_existing is not None:
                row.message_to_existing = message_to_existing
            session.flush()
            return _to_match(row)

    def get_match(self, match_id: str) -> Optional[MatchRecord]:
        with self._session("get match") as session:
            row = session.query(MatchRow).filter_by(id=match_id).first()
            return _to_match(row) if row else None

    def list_matches(
        self,
        incoming_fruit_id: Optional[str] = None,
        best_only: bool = False,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[MatchRecord]:
        """Match records in creation order (or newest first), optionally filtered."""
        with self._session("list matches") as session:
            query = session.query(MatchRow)
            if incoming_fruit_id is not None:
                query = query.filter_by(incoming_fruit_id=incoming_fruit_id)
            if best_only:
                query = query.filter_by(best_match=True)
            query = query.order_by(MatchRow.pk.desc() if newest_first else MatchRow.pk)
            if limit is not None:
                query = query.limit(limit)
            return [_to_match(r) for r in query.all()]

    # Algorithms

    def add_algorithm(
        self,
        key: str,
        name: str,
        version: str,
        description: str,
        status: str = "active",
        default_config: Optional[Dict[str, Any]] = None,
    ) -> MatchingAlgorithm:
        """
        Register a matching algorithm.

        Raises:
            DuplicateAlgorithmError: If the key is already registered
        """
        existing = self.get_algorithm(key, active_only=False)
        if existing is not None:
            raise DuplicateAlgorithmError(existing)

        row = AlgorithmRow(
            id=_new_id("matching_algorithm"),
            key=key,
            name=name,
            version=version,
            description=description,
            status=status,
            default_config=default_config,
            created_at=datetime.now(),
        )
        try:
            with self._session("add algorithm") as session:
                session.add(row)
                session.flush()
                return _to_algorithm(row)
        except StorageError as e:
            # Lost a race with another writer for the same key
            if isinstance(e.__cause__, IntegrityError):
                raise DuplicateAlgorithmError(self.get_algorithm(key, active_only=False)) from e
            raise

    def get_algorithm(self, key: str, active_only: bool = True) -> Optional[MatchingAlgorithm]:
        with self._session("get algorithm") as session:
            query = session.query(AlgorithmRow).filter_by(key=key)
            if active_only:
                query = query.filter_by(status="active")
            row = query.first()
            return _to_algorithm(row) if row else None

    def list_algorithms(self, active_only: bool = True) -> List[MatchingAlgorithm]:
        with self._session("list algorithms") as session:
            query = session.query(AlgorithmRow)
            if active_only:
                query = query.filter_by(status="active")
            return [_to_algorithm(r) for r in query.order_by(AlgorithmRow.pk).all()]

    # Aggregates

    def summary(self) -> Dict[str, Any]:
        """
        Counts and success rate for reporting.

        success_rate is the mean overall score of best matches as a
        percentage with one decimal, or 0 when there are none.
        """
        with self._session("summary") as session:
            counts = dict(
                session.query(FruitRow.kind, func.count(FruitRow.pk)).group_by(FruitRow.kind).all()
            )
            best_count, best_avg = (
                session.query(func.count(MatchRow.pk), func.avg(MatchRow.overall_score))
                .filter(MatchRow.best_match.is_(True))
                .one()
            )

        return {
            "total_apples": counts.get(FruitKind.APPLE.value, 0),
            "total_oranges": counts.get(FruitKind.ORANGE.value, 0),
            "total_matches": best_count,
            "success_rate": round(best_avg * 100, 1) if best_count else 0,
        }
