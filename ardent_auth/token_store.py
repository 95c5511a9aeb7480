"""
Token Store: one session record per account. Sole owner of refresh-token state.
Every write is a single atomic statement; concurrent writers to the same account race benignly (last write wins).
"""
import dataclasses
import logging
from datetime import datetime

from sqlalchemy import func, select

from ardent_auth.database import Database
from ardent_auth.models import Session, Table, utc_now
from ardent_auth.sql import StatementCache

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {"access_token", "refresh_token", "access_token_expires_at", "updated_at"}


class TokenStore:
    table = Table.SESSIONS

    def __init__(self, db: Database) -> None:
        self.db = db
        self.statements = StatementCache(identity=f"{db.name}/{self.table.value}")
        self._columns = self.table.table.c

    def upsert(self, session: Session) -> None:
        """Insert or replace the whole record for session.account_id."""
        with self.db.engine.begin() as conn:
            self.statements.insert_or_replace(conn, self.table, dataclasses.asdict(session))
        logger.debug("Stored session for account %s", session.account_id)

    def get(self, account_id: str) -> Session | None:
        with self.db.engine.connect() as conn:
            row = conn.execute(
                select(self.table.table).where(self._columns.account_id == account_id)
            ).mappings().first()
        if row is None:
            return None
        return Session(**row)

    def update_fields(self, account_id: str, /, **fields) -> bool:
        """
        Update only the given fields of an existing record; updated_at is set to now unless given.
        Returns False if there is no record for the account.
        """
        invalid = set(fields) - _UPDATABLE_FIELDS
        if invalid:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(invalid))}")
        if not fields:
            raise ValueError("No fields to update")
        fields.setdefault("updated_at", utc_now())
        with self.db.engine.begin() as conn:
            count = self.statements.update(conn, self.table, fields, where={"account_id": account_id})
        return count > 0

    def delete(self, account_id: str) -> bool:
        with self.db.engine.begin() as conn:
            count = self.statements.delete(conn, self.table, where={"account_id": account_id})
        if count:
            logger.info("Deleted session for account %s", account_id)
        return count > 0

    def expiring_before(self, cutoff: datetime) -> list[Session]:
        """Sessions whose access token expires at or before cutoff, soonest first."""
        expires_at = self._columns.access_token_expires_at
        with self.db.engine.connect() as conn:
            rows = conn.execute(
                select(self.table.table).where(expires_at <= cutoff).order_by(expires_at)
            ).mappings().all()
        return [Session(**row) for row in rows]

    def count(self) -> int:
        with self.db.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(self.table.table)).scalar_one()
