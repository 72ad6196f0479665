"""
Usage row store.

The ledger only needs get/upsert on a row keyed by user id; SqlUsageStore
backs that with the user_usage table.
"""

from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine

from manzai.core.database import create_all_tables, get_db_session, user_usage
from manzai.models.usage import UsageRecord


class UsageStore(Protocol):
    """Row store contract used by the credit ledger."""

    def get(self, user_id: str) -> UsageRecord:
        """Return the user's row, or a zero row when none exists."""
        ...

    def upsert(self, record: UsageRecord) -> UsageRecord:
        """Insert or overwrite the user's row (last write wins)."""
        ...


class SqlUsageStore:
    """SQLAlchemy-backed usage rows."""

    def __init__(self, engine: Engine, create_tables: bool = True):
        self.engine = engine
        if create_tables:
            create_all_tables(engine)

    def get(self, user_id: str) -> UsageRecord:
        with get_db_session(self.engine) as session:
            row = session.execute(
                select(user_usage).where(user_usage.c.user_id == user_id)
            ).first()
        if row is None:
            return UsageRecord(user_id=user_id)
        return UsageRecord(
            user_id=row.user_id,
            output_count=row.output_count,
            paid_credits=row.paid_credits,
            updated_at=row.updated_at,
        )

    def upsert(self, record: UsageRecord) -> UsageRecord:
        now = datetime.now(timezone.utc)
        values = {
            "output_count": record.output_count,
            "paid_credits": record.paid_credits,
            "updated_at": now,
        }
        with get_db_session(self.engine) as session:
            result = session.execute(
                update(user_usage).where(user_usage.c.user_id == record.user_id).values(**values)
            )
            if result.rowcount == 0:
                session.execute(insert(user_usage).values(user_id=record.user_id, **values))
        return record.model_copy(update={"updated_at": now})
