# app/store.py

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ConflictError, StorageError

logger = logging.getLogger(__name__)


class LedgerStore:
    """
    Gateway verso il DB usato dal ledger.

    Contratto "a tabella":
    - find_one / find_many (filtri uguaglianza + IN, sort, paginazione)
    - insert / update / increment / delete
    Ogni errore SQLAlchemy diventa StorageError (con rollback della sessione),
    un vincolo UNIQUE violato diventa ConflictError.
    """

    def __init__(self, db: Session):
        self.db = db

    # ---------------------------------------------------------
    # Gestione errori
    # ---------------------------------------------------------
    @contextmanager
    def _guard(self, op: str):
        try:
            yield
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("DB integrity error during %s: %s", op, str(e.orig))
            raise ConflictError("Duplicate or inconsistent record") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("DB error during %s", op)
            raise StorageError(f"Database error during {op}") from e

    # ---------------------------------------------------------
    # Query helpers
    # ---------------------------------------------------------
    def _query(self, model, filters: Optional[dict[str, Any]], conditions: Sequence[Any] = ()):
        q = self.db.query(model)
        for name, value in (filters or {}).items():
            column = getattr(model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                q = q.filter(column.in_(list(value)))
            else:
                q = q.filter(column == value)
        for cond in conditions:
            q = q.filter(cond)
        return q

    def find_one(self, model, **filters):
        with self._guard(f"find_one({model.__tablename__})"):
            return self._query(model, filters).first()

    def exists(self, model, conditions: Sequence[Any] = (), **filters) -> bool:
        with self._guard(f"exists({model.__tablename__})"):
            return self._query(model, filters, conditions).first() is not None

    def find_many(
        self,
        model,
        filters: Optional[dict[str, Any]] = None,
        conditions: Sequence[Any] = (),
        sort_by: Optional[str] = None,
        ascending: bool = False,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> tuple[list, int]:
        """
        Ritorna (records, total_count). total_count ignora la paginazione.
        """
        with self._guard(f"find_many({model.__tablename__})"):
            q = self._query(model, filters, conditions)
            total = q.order_by(None).count()

            if sort_by:
                column = getattr(model, sort_by)
                q = q.order_by(column.asc() if ascending else column.desc())
                # tie-break stabile
                q = q.order_by(model.id.asc() if ascending else model.id.desc())

            if page is not None and limit is not None:
                q = q.offset((page - 1) * limit).limit(limit)
            elif limit is not None:
                q = q.limit(limit)

            return q.all(), total

    def count_by(self, model, column_name: str, filters: Optional[dict[str, Any]] = None) -> dict[Any, int]:
        with self._guard(f"count_by({model.__tablename__})"):
            column = getattr(model, column_name)
            q = self.db.query(column, func.count(model.id))
            for name, value in (filters or {}).items():
                q = q.filter(getattr(model, name) == value)
            return {key: count for key, count in q.group_by(column).all()}

    # ---------------------------------------------------------
    # Scritture
    # ---------------------------------------------------------
    def insert(self, obj):
        with self._guard(f"insert({obj.__tablename__})"):
            self.db.add(obj)
            self.db.flush()
            return obj

    def insert_many(self, objs: Iterable[Any]) -> None:
        objs = list(objs)
        if not objs:
            return
        with self._guard(f"insert_many({objs[0].__tablename__})"):
            self.db.add_all(objs)
            self.db.flush()

    def update(
        self,
        model,
        filters: dict[str, Any],
        patch: dict[str, Any],
        conditions: Sequence[Any] = (),
    ) -> int:
        """
        UPDATE condizionale: ritorna il numero di righe toccate.
        Un filtro su status (es. status IN (pending, approved)) rende la transizione
        atomica: se qualcun altro l'ha già cambiata, rowcount = 0.
        """
        with self._guard(f"update({model.__tablename__})"):
            self.db.flush()
            rows = self._query(model, filters, conditions).update(patch, synchronize_session=False)
            # gli oggetti già caricati in sessione vanno riletti
            self.db.expire_all()
            return rows

    def increment(self, model, filters: dict[str, Any], column_name: str, amount, patch: Optional[dict[str, Any]] = None) -> int:
        """
        Incremento atomico lato SQL (col = col + :amount), niente read-modify-write.
        """
        column = getattr(model, column_name)
        values = {column_name: column + amount}
        values.update(patch or {})
        with self._guard(f"increment({model.__tablename__}.{column_name})"):
            self.db.flush()
            rows = self._query(model, filters).update(values, synchronize_session=False)
            self.db.expire_all()
            return rows

    def delete(self, obj) -> None:
        with self._guard(f"delete({obj.__tablename__})"):
            self.db.delete(obj)
            self.db.flush()

    def refresh(self, obj):
        with self._guard(f"refresh({obj.__tablename__})"):
            self.db.refresh(obj)
            return obj

    def commit(self) -> None:
        with self._guard("commit"):
            self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
