"""Tests for the shape-keyed statement cache and the table allowlist."""
from datetime import datetime, timedelta, timezone

import pytest

from ardent_auth.models import Table
from ardent_auth.sql import StatementCache, delete_stmt, insert_or_replace_stmt, update_stmt
from fakes import make_session


def test_insert_or_replace_statement_text():
    stmt, binds = insert_or_replace_stmt(Table.CACHE, ["account_id", "resource"])
    assert stmt == "INSERT OR REPLACE INTO cache (account_id, resource) VALUES (:account_id, :resource)"
    assert binds == (("account_id", "account_id"), ("resource", "resource"))


def test_update_statement_text():
    stmt, binds = update_stmt(Table.SESSIONS, ["access_token"], ["account_id"])
    assert stmt == "UPDATE sessions SET access_token = :access_token WHERE account_id = :where_account_id"
    assert ("where_account_id", "account_id") in binds


def test_rejects_table_outside_enumeration():
    with pytest.raises(ValueError, match="Invalid table"):
        insert_or_replace_stmt("sessions; DROP TABLE cache", ["account_id"])
    with pytest.raises(ValueError, match="Invalid table"):
        delete_stmt("users", ["account_id"])


def test_rejects_unknown_column():
    with pytest.raises(ValueError, match="Invalid column"):
        insert_or_replace_stmt(Table.SESSIONS, ["account_id", "password"])
    with pytest.raises(ValueError, match="Invalid column"):
        update_stmt(Table.CACHE, ["payload"], ["1=1 OR account_id"])


def test_same_shape_compiled_once(token_store):
    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    token_store.upsert(make_session("A1", expires))
    token_store.upsert(make_session("A2", expires))
    assert len(token_store.statements) == 1
    token_store.update_fields("A1", access_token="new")
    token_store.update_fields("A2", access_token="newer")
    assert len(token_store.statements) == 2
    token_store.update_fields("A1", access_token="x", refresh_token="y")
    assert len(token_store.statements) == 3


def test_prepare_returns_cached_statement():
    cache = StatementCache("db/sessions")
    statement = update_stmt(Table.SESSIONS, ["access_token"], ["account_id"])
    first = cache.prepare(Table.SESSIONS, statement)
    assert cache.prepare(Table.SESSIONS, statement) is first
    assert len(cache) == 1


def test_fingerprint_includes_store_identity():
    stmt = "DELETE FROM cache WHERE account_id = :where_account_id"
    a = StatementCache("one.db/cache")
    b = StatementCache("two.db/cache")
    assert a.fingerprint(stmt) != b.fingerprint(stmt)
    assert a.fingerprint(stmt) == StatementCache("one.db/cache").fingerprint(stmt)


def test_stores_do_not_share_statements(token_store, cache_store):
    assert token_store.statements is not cache_store.statements
    assert token_store.statements.identity != cache_store.statements.identity
    cache_store.set("A1", "market", b"{}", "application/json")
    assert len(token_store.statements) == 0
    assert len(cache_store.statements) == 1
