"""
Prepared write statements keyed by write shape.
Each distinct (table, set of columns) is built into a TextClause once and reused for later writes
with the same shape. The cache belongs to one store instance; its key includes the store identity.
"""
import hashlib
import logging
import threading

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.sql.elements import TextClause

from ardent_auth.models import Table

logger = logging.getLogger(__name__)

# A statement plus its bind parameters as (bind name, column name) pairs
Statement = tuple[str, tuple[tuple[str, str], ...]]


def _columns(table: Table, keys) -> list[str]:
    if not isinstance(table, Table):
        raise ValueError(f"Invalid table: {table!r}")
    keys = list(keys)
    if not keys:
        raise ValueError("No columns given")
    known = table.table.c
    unknown = [k for k in keys if k not in known]
    if unknown:
        raise ValueError(f"Invalid column(s) for {table.value}: {', '.join(unknown)}")
    return keys


def _where(table: Table, keys) -> tuple[str, list[tuple[str, str]]]:
    keys = _columns(table, keys)
    condition = " AND ".join(f"{k} = :where_{k}" for k in keys)
    return condition, [(f"where_{k}", k) for k in keys]


def insert_or_replace_stmt(table: Table, keys) -> Statement:
    keys = _columns(table, keys)
    stmt = f"INSERT OR REPLACE INTO {table.value} ({', '.join(keys)}) VALUES ({', '.join(':' + k for k in keys)})"
    return stmt, tuple((k, k) for k in keys)


def update_stmt(table: Table, keys, where_keys) -> Statement:
    keys = _columns(table, keys)
    condition, where_binds = _where(table, where_keys)
    assignments = ", ".join(f"{k} = :{k}" for k in keys)
    stmt = f"UPDATE {table.value} SET {assignments} WHERE {condition}"
    return stmt, tuple([(k, k) for k in keys] + where_binds)


def delete_stmt(table: Table, where_keys) -> Statement:
    condition, where_binds = _where(table, where_keys)
    return f"DELETE FROM {table.value} WHERE {condition}", tuple(where_binds)


def _where_params(where: dict) -> dict:
    return {f"where_{k}": v for k, v in where.items()}


class StatementCache:
    def __init__(self, identity: str) -> None:
        self.identity = identity
        self._statements: dict[str, TextClause] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._statements)

    def fingerprint(self, stmt: str) -> str:
        return hashlib.sha1(f"{self.identity}/{stmt}".encode("utf-8")).hexdigest()

    def prepare(self, table: Table, statement: Statement) -> TextClause:
        """Return the compiled statement for this shape, building it on first use."""
        stmt, binds = statement
        key = self.fingerprint(stmt)
        prepared = self._statements.get(key)
        if prepared is not None:
            return prepared
        with self._lock:
            prepared = self._statements.get(key)
            if prepared is None:
                columns = table.table.c
                # Typed binds so values go through the column types (e.g. UTCDateTime)
                prepared = text(stmt).bindparams(
                    *[bindparam(name, type_=columns[column].type) for name, column in binds]
                )
                self._statements[key] = prepared
                logger.debug("[%s] Prepared statement %s", self.identity, key[:12])
        return prepared

    def insert_or_replace(self, conn: Connection, table: Table, values: dict) -> int:
        stmt = self.prepare(table, insert_or_replace_stmt(table, values.keys()))
        return conn.execute(stmt, values).rowcount

    def update(self, conn: Connection, table: Table, values: dict, where: dict) -> int:
        stmt = self.prepare(table, update_stmt(table, values.keys(), where.keys()))
        return conn.execute(stmt, {**values, **_where_params(where)}).rowcount

    def delete(self, conn: Connection, table: Table, where: dict) -> int:
        stmt = self.prepare(table, delete_stmt(table, where.keys()))
        return conn.execute(stmt, _where_params(where)).rowcount
