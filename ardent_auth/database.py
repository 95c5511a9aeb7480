"""
SQLite engine for the auth database.
WAL journal so readers (including an external backup process) never block the single writer;
busy_timeout bounds how long a writer waits for the lock before the conflict surfaces as an error.
"""
import logging
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from ardent_auth.models import Base

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, url: str, *, busy_timeout_ms: int = 5000, read_only: bool = False) -> None:
        self.url = url
        self.busy_timeout_ms = busy_timeout_ms
        self.read_only = read_only
        self.name = make_url(url).database or ":memory:"
        self.engine = self._create_engine()
        event.listen(self.engine, "connect", self._set_pragmas)

    def _create_engine(self):
        connect_args = {"check_same_thread": False, "timeout": self.busy_timeout_ms / 1000}
        # In-memory needs StaticPool so all connections share the same DB (tests)
        if self.name == ":memory:":
            return create_engine(self.url, connect_args=connect_args, poolclass=StaticPool)
        if self.read_only:
            return create_engine(f"sqlite:///file:{self.name}?mode=ro&uri=true", connect_args=connect_args)
        Path(self.name).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(self.url, connect_args=connect_args)

    def _set_pragmas(self, dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        try:
            if not self.read_only:
                cursor.execute("PRAGMA journal_mode = WAL")
                cursor.execute("PRAGMA synchronous = NORMAL")
            cursor.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        finally:
            cursor.close()

    def init_db(self) -> None:
        """Create tables and indexes if missing."""
        if self.read_only:
            raise RuntimeError("Cannot initialize a read-only database")
        logger.info("[%s] Ensuring tables exist and indexes present", self.name)
        Base.metadata.create_all(bind=self.engine)

    def close(self) -> None:
        self.engine.dispose()
