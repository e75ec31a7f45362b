"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy import Table, create_engine, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ttm_backend import tables
from ttm_backend.errors import ConflictError, ValidationFailed
from ttm_backend.jobs import JobStatus

Row = dict[str, Any]


class DbClient(Protocol):
    """Interface for table access, shaped like the hosted database's query API."""

    def insert(self, table: str, values: Row) -> Row:
        ...

    def get(self, table: str, row_id: str) -> Optional[Row]:
        ...

    def select(
        self,
        table: str,
        *,
        where: Optional[Row] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]:
        ...

    def count(
        self, table: str, *, where: Optional[Row] = None, exclude: Optional[Row] = None
    ) -> int:
        ...

    def update(self, table: str, row_id: str, values: Row) -> Optional[Row]:
        ...

    def update_where(self, table: str, where: Row, values: Row) -> int:
        ...

    def delete(self, table: str, row_id: str) -> bool:
        ...

    def delete_where(self, table: str, where: Row) -> int:
        ...

    def search_herbs(
        self,
        *,
        query: Optional[str] = None,
        category_id: Optional[str] = None,
        in_stock_only: bool = False,
        limit: int = 100,
    ) -> list[Row]:
        ...

    def adjust_stock(self, herb_id: str, delta: int) -> bool:
        ...

    def place_order(
        self, order: Row, quantities: dict[str, int], link_id: str, commission: Row
    ) -> Optional[Row]:
        ...

    def count_recent_contact_submissions(
        self, email: str, ip_address: str, since: float
    ) -> int:
        ...

    def claim_next_waiting_job(self) -> Optional[Row]:
        ...

    def requeue_stale_jobs(self, lock_timeout_seconds: float = 600) -> int:
        ...


def _translate_integrity_error(exc: IntegrityError) -> Exception:
    message = str(exc.orig).lower()
    if "check constraint" in message or "violates check" in message:
        return ValidationFailed(f"Constraint violated: {exc.orig}")
    return ConflictError(f"Duplicate or conflicting record: {exc.orig}")


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        if database_url.startswith("sqlite"):
            # One shared connection so every thread sees the same in-memory data.
            self.engine = create_engine(
                database_url,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                database_url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        tables.metadata.create_all(self.engine)

    def _table(self, name: str) -> Table:
        try:
            return tables.metadata.tables[name]
        except KeyError:
            raise ValueError(f"Unknown table: {name}") from None

    def _conditions(self, table: Table, where: Optional[Row]) -> list:
        conditions = []
        for key, value in (where or {}).items():
            column = table.c[key]
            if value is None:
                conditions.append(column.is_(None))
            elif isinstance(value, (list, tuple, set)):
                conditions.append(column.in_(list(value)))
            else:
                conditions.append(column == value)
        return conditions

    def _execute(self, session: Session, stmt):
        try:
            result = session.execute(stmt)
            session.commit()
            return result
        except IntegrityError as exc:
            session.rollback()
            raise _translate_integrity_error(exc) from exc

    def insert(self, table: str, values: Row) -> Row:
        tbl = self._table(table)
        now = time.time()
        row = dict(values)
        row.setdefault("id", uuid.uuid4().hex)
        if "created_at" in tbl.c:
            row.setdefault("created_at", now)
        if "updated_at" in tbl.c:
            row.setdefault("updated_at", now)
        with self.Session() as session:
            self._execute(session, tbl.insert().values(**row))
        return self.get(table, row["id"])

    def get(self, table: str, row_id: str) -> Optional[Row]:
        tbl = self._table(table)
        with self.Session() as session:
            row = session.execute(select(tbl).where(tbl.c.id == row_id)).first()
            return dict(row._mapping) if row else None

    def select(
        self,
        table: str,
        *,
        where: Optional[Row] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]:
        tbl = self._table(table)
        stmt = select(tbl).where(*self._conditions(tbl, where))
        if order_by:
            column = tbl.c[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.Session() as session:
            return [dict(row._mapping) for row in session.execute(stmt)]

    def count(
        self, table: str, *, where: Optional[Row] = None, exclude: Optional[Row] = None
    ) -> int:
        """Counts rows matching `where` and differing from every value in `exclude`."""
        tbl = self._table(table)
        stmt = select(func.count()).select_from(tbl).where(
            *self._conditions(tbl, where),
            *(~condition for condition in self._conditions(tbl, exclude)),
        )
        with self.Session() as session:
            return session.execute(stmt).scalar_one()

    def update(self, table: str, row_id: str, values: Row) -> Optional[Row]:
        tbl = self._table(table)
        changes = dict(values)
        changes.pop("id", None)
        if "updated_at" in tbl.c:
            changes["updated_at"] = time.time()
        with self.Session() as session:
            result = self._execute(
                session, update(tbl).where(tbl.c.id == row_id).values(**changes)
            )
            if not result.rowcount:
                return None
        return self.get(table, row_id)

    def update_where(self, table: str, where: Row, values: Row) -> int:
        tbl = self._table(table)
        changes = dict(values)
        if "updated_at" in tbl.c:
            changes["updated_at"] = time.time()
        with self.Session() as session:
            result = self._execute(
                session,
                update(tbl).where(*self._conditions(tbl, where)).values(**changes),
            )
            return result.rowcount or 0

    def delete(self, table: str, row_id: str) -> bool:
        tbl = self._table(table)
        with self.Session() as session:
            result = self._execute(session, delete(tbl).where(tbl.c.id == row_id))
            return bool(result.rowcount)

    def delete_where(self, table: str, where: Row) -> int:
        if not where:
            raise ValueError("delete_where requires at least one condition")
        tbl = self._table(table)
        with self.Session() as session:
            result = self._execute(
                session, delete(tbl).where(*self._conditions(tbl, where))
            )
            return result.rowcount or 0

    def search_herbs(
        self,
        *,
        query: Optional[str] = None,
        category_id: Optional[str] = None,
        in_stock_only: bool = False,
        limit: int = 100,
    ) -> list[Row]:
        tbl = tables.herbs
        stmt = select(tbl)
        if query:
            pattern = f"%{query.strip()}%"
            stmt = stmt.where(
                or_(
                    tbl.c.name.ilike(pattern),
                    tbl.c.thai_name.ilike(pattern),
                    tbl.c.scientific_name.ilike(pattern),
                )
            )
        if category_id:
            stmt = stmt.where(tbl.c.category_id == category_id)
        if in_stock_only:
            stmt = stmt.where(tbl.c.stock_quantity > 0)
        stmt = stmt.order_by(tbl.c.name.asc()).limit(limit)
        with self.Session() as session:
            return [dict(row._mapping) for row in session.execute(stmt)]

    def adjust_stock(self, herb_id: str, delta: int) -> bool:
        """Atomically add `delta` units; False when the herb is missing or stock would go negative."""
        tbl = tables.herbs
        stmt = (
            update(tbl)
            .where(tbl.c.id == herb_id, tbl.c.stock_quantity + delta >= 0)
            .values(
                stock_quantity=tbl.c.stock_quantity + delta,
                updated_at=time.time(),
            )
        )
        with self.Session() as session:
            result = self._execute(session, stmt)
            return bool(result.rowcount)

    def place_order(
        self, order: Row, quantities: dict[str, int], link_id: str, commission: Row
    ) -> Optional[Row]:
        """
        Writes an order in a single transaction: insert the order and its
        commission, take stock for each herb, and consume the checkout link.

        Returns None with nothing written when a herb is short or the link has
        already been used.
        """
        now = time.time()
        order_row = {"id": uuid.uuid4().hex, "created_at": now, "updated_at": now, **order}
        commission_row = {
            "id": uuid.uuid4().hex,
            "created_at": now,
            "updated_at": now,
            **commission,
            "order_id": order_row["id"],
        }
        herbs, links = tables.herbs, tables.recommendation_links
        with self.Session() as session:
            try:
                session.execute(tables.orders.insert().values(**order_row))
                for herb_id, quantity in quantities.items():
                    taken = session.execute(
                        update(herbs)
                        .where(herbs.c.id == herb_id, herbs.c.stock_quantity >= quantity)
                        .values(stock_quantity=herbs.c.stock_quantity - quantity, updated_at=now)
                    )
                    if not taken.rowcount:
                        session.rollback()
                        return None
                consumed = session.execute(
                    update(links)
                    .where(links.c.id == link_id, links.c.used_at.is_(None))
                    .values(used_at=now, updated_at=now)
                )
                if not consumed.rowcount:
                    session.rollback()
                    return None
                session.execute(tables.sales_analytics.insert().values(**commission_row))
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise _translate_integrity_error(exc) from exc
        return self.get("orders", order_row["id"])

    def count_recent_contact_submissions(
        self, email: str, ip_address: str, since: float
    ) -> int:
        tbl = tables.contact_submissions
        stmt = (
            select(func.count())
            .select_from(tbl)
            .where(
                or_(tbl.c.email == email, tbl.c.ip_address == ip_address),
                tbl.c.created_at >= since,
            )
        )
        with self.Session() as session:
            return session.execute(stmt).scalar_one()

    def claim_next_waiting_job(self) -> Optional[Row]:
        tbl = tables.notification_jobs
        now = time.time()
        with self.Session() as session:
            stmt = (
                select(tbl)
                .where(tbl.c.status == JobStatus.WAITING.value)
                .order_by(tbl.c.created_at.asc())
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            row = session.execute(stmt).first()
            if not row:
                return None
            job_id = row._mapping["id"]
            session.execute(
                update(tbl)
                .where(tbl.c.id == job_id)
                .values(
                    status=JobStatus.SENDING.value,
                    locked_at=now,
                    updated_at=now,
                    attempts=tbl.c.attempts + 1,
                )
            )
            session.commit()
        return self.get("notification_jobs", job_id)

    def requeue_stale_jobs(self, lock_timeout_seconds: float = 600) -> int:
        tbl = tables.notification_jobs
        cutoff = time.time() - lock_timeout_seconds
        with self.Session() as session:
            result = self._execute(
                session,
                update(tbl)
                .where(
                    tbl.c.status == JobStatus.SENDING.value,
                    tbl.c.locked_at.is_not(None),
                    tbl.c.locked_at < cutoff,
                )
                .values(
                    status=JobStatus.WAITING.value,
                    locked_at=None,
                    updated_at=time.time(),
                ),
            )
            return result.rowcount or 0


class InMemoryDbClient(PostgresDbClient):
    """Simple in-memory database for development and tests."""

    def __init__(self):
        super().__init__("sqlite+pysqlite:///:memory:")

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self.Session() as session:
            for table in reversed(tables.metadata.sorted_tables):
                session.execute(delete(table))
            session.commit()


def rows_by_id(rows: Iterable[Row]) -> dict[str, Row]:
    return {row["id"]: row for row in rows}
