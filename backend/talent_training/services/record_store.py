from __future__ import annotations

import logging
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from talent_training.core.errors import StorageError
from talent_training.db.base import Base

log = logging.getLogger(__name__)

M = TypeVar("M", bound=Base)


class RecordStore:
    """Typed record access over one SQLAlchemy session.

    Every write commits its own transaction: a record is either fully
    persisted or, on failure, rolled back and reported as StorageError.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, model: type[M], record_id: Any) -> M | None:
        try:
            return self.db.get(model, record_id)
        except SQLAlchemyError as e:
            raise StorageError(f"failed to load {model.__tablename__}:{record_id}") from e

    def query(
        self,
        model: type[M],
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        **filters: Any,
    ) -> list[M]:
        stmt = select(model)
        for field, value in filters.items():
            stmt = stmt.where(getattr(model, field) == value)
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(int(limit))

        try:
            return list(self.db.scalars(stmt))
        except SQLAlchemyError as e:
            raise StorageError(f"failed to query {model.__tablename__}") from e

    def insert(self, record: M) -> M:
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"failed to insert into {record.__tablename__}") from e
        self.db.refresh(record)
        return record

    def update(self, model: type[M], record_id: Any, patch: dict[str, Any]) -> M | None:
        try:
            record = self.db.get(model, record_id)
            if record is None:
                return None
            for field, value in patch.items():
                setattr(record, field, value)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"failed to update {model.__tablename__}:{record_id}") from e
        self.db.refresh(record)
        return record

    def upsert(
        self,
        model: type[M],
        key: dict[str, Any],
        values: dict[str, Any],
        *,
        on_insert: dict[str, Any] | None = None,
    ) -> M:
        """Insert a row identified by `key`, or patch the existing one.

        `on_insert` fields are written only when the row is created. A unique
        violation from a concurrent insert is retried once as an update.
        """
        for attempt in (1, 2):
            try:
                existing = self.query(model, limit=1, **key)
                if existing:
                    record = existing[0]
                    for field, value in values.items():
                        setattr(record, field, value)
                else:
                    record = model(**key, **values, **(on_insert or {}))
                    self.db.add(record)
                self.db.commit()
                self.db.refresh(record)
                return record
            except IntegrityError as e:
                self.db.rollback()
                if attempt == 2:
                    raise StorageError(f"failed to upsert {model.__tablename__}") from e
                log.info("upsert race on %s %s, retrying as update", model.__tablename__, key)
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageError(f"failed to upsert {model.__tablename__}") from e
        raise StorageError(f"failed to upsert {model.__tablename__}")
