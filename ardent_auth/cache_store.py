"""
Cache Store: most recent successful CAPI response per (account, resource).
Freshness is decided by the caller from updated_at; the store never expires entries itself.
"""
import logging

from sqlalchemy import func, select

from ardent_auth.database import Database
from ardent_auth.models import CachedResponse, Table, utc_now
from ardent_auth.sql import StatementCache

logger = logging.getLogger(__name__)


class CacheStore:
    table = Table.CACHE

    def __init__(self, db: Database) -> None:
        self.db = db
        self.statements = StatementCache(identity=f"{db.name}/{self.table.value}")
        self._columns = self.table.table.c

    def get(self, account_id: str, resource: str) -> CachedResponse | None:
        c = self._columns
        with self.db.engine.connect() as conn:
            row = conn.execute(
                select(c.payload, c.content_type, c.updated_at).where(
                    c.account_id == account_id, c.resource == resource
                )
            ).mappings().first()
        if row is None:
            return None
        return CachedResponse(**row)

    def set(self, account_id: str, resource: str, payload: bytes, content_type: str) -> None:
        with self.db.engine.begin() as conn:
            self.statements.insert_or_replace(
                conn,
                self.table,
                {
                    "account_id": account_id,
                    "resource": resource,
                    "payload": payload,
                    "content_type": content_type,
                    "updated_at": utc_now(),
                },
            )

    def delete_all(self, account_id: str) -> int:
        """Remove every cached response for the account in one statement. Returns rows deleted."""
        with self.db.engine.begin() as conn:
            count = self.statements.delete(conn, self.table, where={"account_id": account_id})
        logger.info("Deleted %d cached response(s) for account %s", count, account_id)
        return count

    def count(self) -> int:
        with self.db.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(self.table.table)).scalar_one()
