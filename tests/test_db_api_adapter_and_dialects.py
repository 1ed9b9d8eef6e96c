from __future__ import annotations

import sqlite3
import threading
import time
import unittest
from datetime import datetime, timedelta, timezone

from safe_dal.ports.db_api.database import Database, row_to_mapping
from safe_dal.ports.db_api.dialects import (
    Dialect,
    MySQLDialect,
    PostgresDialect,
    SQLiteDialect,
    dialect_for,
)
from safe_dal.ports.db_api.pool_connector import PoolConnector


class _DummyCursor:
    def __init__(self, description=None, lastrowid=None):
        self.description = description
        self.lastrowid = lastrowid


class _QmarkDialect(Dialect):
    paramstyle = "qmark"


class _InvalidDialect(Dialect):
    paramstyle = "invalid"


class _FakeCleanupCursor:
    def __init__(self, conn):
        self._conn = conn
        self.closed = False

    def execute(self, sql, _params=None):  # noqa: ANN001,ANN201
        self._conn.executed_sql.append(sql)
        return None

    def close(self) -> None:
        self.closed = True


class _FakeBaseConn:
    def __init__(self, *, in_transaction: bool = False, has_rollback: bool = True):
        self.in_transaction = in_transaction
        self.executed_sql: list[str] = []
        self.rollback_calls = 0
        self.commit_calls = 0
        self.close_calls = 0
        self._has_rollback = has_rollback

    def cursor(self) -> _FakeCleanupCursor:
        return _FakeCleanupCursor(self)

    def rollback(self) -> None:
        if not self._has_rollback:
            raise AttributeError("rollback is unavailable")
        self.rollback_calls += 1
        self.in_transaction = False

    def commit(self) -> None:
        self.commit_calls += 1
        self.in_transaction = False

    def close(self) -> None:
        self.close_calls += 1


class _FakePgConn(_FakeBaseConn):
    __module__ = "psycopg"


class _FakeMySQLConn(_FakeBaseConn):
    __module__ = "pymysql.connections"


class _FakePsycopgInfo:
    def __init__(self, transaction_status: int):
        self.transaction_status = transaction_status


class _FakePsycopgInfoConn(_FakeBaseConn):
    __module__ = "psycopg"

    def __init__(self, *, transaction_status: int):
        super().__init__(in_transaction=False)
        self.in_transaction = None
        self.info = _FakePsycopgInfo(transaction_status)


class DialectTests(unittest.TestCase):
    def test_builtin_dialect_properties(self) -> None:
        self.assertEqual(SQLiteDialect().placeholder("x"), ":x")
        self.assertEqual(PostgresDialect().placeholder("x"), "%s")
        self.assertEqual(MySQLDialect().placeholder("x"), "%s")
        self.assertEqual(_QmarkDialect().placeholder("x"), "?")
        self.assertEqual(SQLiteDialect().auto_pk_sql("id"), '"id" INTEGER PRIMARY KEY')
        self.assertEqual(PostgresDialect().auto_pk_sql("id"), '"id" SERIAL PRIMARY KEY')
        self.assertEqual(
            MySQLDialect().auto_pk_sql("id"), "`id` INT AUTO_INCREMENT PRIMARY KEY"
        )

    def test_invalid_paramstyle_raises(self) -> None:
        with self.assertRaises(ValueError):
            _InvalidDialect().placeholder("x")

    def test_returning_clause_and_lastrowid(self) -> None:
        self.assertEqual(SQLiteDialect().returning_clause(), " RETURNING *")
        self.assertEqual(PostgresDialect().returning_clause(), " RETURNING *")
        self.assertEqual(MySQLDialect().returning_clause(), "")

        cursor = _DummyCursor(lastrowid=99)
        self.assertEqual(SQLiteDialect().get_lastrowid(cursor), 99)

    def test_adapt_timestamp(self) -> None:
        aware = datetime(2024, 5, 1, 12, 30, tzinfo=timezone(timedelta(hours=2)))

        self.assertEqual(
            SQLiteDialect().adapt_timestamp(aware), "2024-05-01 12:30:00+02:00"
        )
        self.assertIs(PostgresDialect().adapt_timestamp(aware), aware)
        self.assertEqual(
            MySQLDialect().adapt_timestamp(aware), datetime(2024, 5, 1, 10, 30)
        )

    def test_dialect_for(self) -> None:
        self.assertIsInstance(dialect_for("sqlite"), SQLiteDialect)
        self.assertIsInstance(dialect_for(" PostgreSQL "), PostgresDialect)
        self.assertIsInstance(dialect_for("pymysql"), MySQLDialect)
        with self.assertRaises(ValueError):
            dialect_for("oracle")


class DatabaseAdapterTests(unittest.TestCase):
    def test_execute_fetchone_fetchall(self) -> None:
        conn = sqlite3.connect(":memory:")
        db = Database(conn, SQLiteDialect())
        db.execute('CREATE TABLE "t" ("id" INTEGER, "name" TEXT);')
        db.execute('INSERT INTO "t" ("id", "name") VALUES (:id, :name);', {"id": 1, "name": "a"})
        db.execute('INSERT INTO "t" ("id", "name") VALUES (:id, :name);', {"id": 2, "name": "b"})

        row = db.fetchone('SELECT * FROM "t" WHERE "id" = :id;', {"id": 1})
        rows = db.fetchall('SELECT * FROM "t" ORDER BY "id" ASC;')
        missing = db.fetchone('SELECT * FROM "t" WHERE "id" = :id;', {"id": 3})

        self.assertEqual(row["name"], "a")
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[1]["name"], "b")
        self.assertIsNone(missing)
        conn.close()

    def test_row_factory_mapping_is_supported(self) -> None:
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        db = Database(conn, SQLiteDialect())
        db.execute('CREATE TABLE "t" ("id" INTEGER);')
        db.execute('INSERT INTO "t" ("id") VALUES (1);')
        row = db.fetchone('SELECT * FROM "t";')
        self.assertEqual(row["id"], 1)
        conn.close()

    def test_transaction_rolls_back_on_error(self) -> None:
        conn = sqlite3.connect(":memory:")
        db = Database(conn, SQLiteDialect())
        db.execute('CREATE TABLE "t" ("id" INTEGER);')

        with self.assertRaises(RuntimeError):
            with db.transaction():
                db.execute('INSERT INTO "t" ("id") VALUES (1);')
                raise RuntimeError("boom")

        count = db.fetchone('SELECT COUNT(*) AS "count" FROM "t";')
        self.assertEqual(count["count"], 0)
        conn.close()

    def test_transaction_begins_explicitly_in_autocommit_mode(self) -> None:
        conn = sqlite3.connect(":memory:", isolation_level=None)
        db = Database(conn, SQLiteDialect())
        db.execute('CREATE TABLE "t" ("id" INTEGER);')

        with self.assertRaises(RuntimeError):
            with db.transaction():
                db.execute('INSERT INTO "t" ("id") VALUES (1);')
                self.assertTrue(conn.in_transaction)
                raise RuntimeError("boom")

        self.assertEqual(db.fetchall('SELECT * FROM "t";'), [])
        conn.close()

    def test_nested_transaction_joins_outer_scope(self) -> None:
        conn = sqlite3.connect(":memory:")
        db = Database(conn, SQLiteDialect())
        db.execute('CREATE TABLE "t" ("id" INTEGER);')

        with self.assertRaises(RuntimeError):
            with db.transaction():
                with db.transaction():
                    db.execute('INSERT INTO "t" ("id") VALUES (1);')
                self.assertTrue(db.in_transaction)
                raise RuntimeError("outer failure")

        self.assertFalse(db.in_transaction)
        self.assertEqual(db.fetchall('SELECT * FROM "t";'), [])
        conn.close()

    def test_row_to_mapping_tuple_without_description_raises(self) -> None:
        with self.assertRaises(TypeError):
            row_to_mapping(_DummyCursor(description=None), (1,))

    def test_row_to_mapping_fallback_dict_and_unsupported_type(self) -> None:
        mapped = row_to_mapping(_DummyCursor(), {("id", 1)})
        self.assertEqual(mapped["id"], 1)

        with self.assertRaises(TypeError):
            row_to_mapping(_DummyCursor(), 12345)

    def test_close_dedicated_connection(self) -> None:
        db = Database(sqlite3.connect(":memory:"), SQLiteDialect())
        with db:
            db.execute("SELECT 1;")
        with self.assertRaises(RuntimeError):
            db.execute("SELECT 1;")

    def test_database_borrows_from_pool_per_statement(self) -> None:
        pool = PoolConnector(sqlite3.connect, ":memory:", max_size=1, isolation_level=None)
        db = Database(pool, SQLiteDialect())
        try:
            db.execute('CREATE TABLE "t" ("id" INTEGER, "name" TEXT);')
            db.execute(
                'INSERT INTO "t" ("id", "name") VALUES (:id, :name);',
                {"id": 1, "name": "pool"},
            )
            self.assertEqual(pool.stats().in_use, 0)
            row = db.fetchone('SELECT * FROM "t" WHERE "id" = :id;', {"id": 1})
            self.assertEqual(row["name"], "pool")
        finally:
            db.close(close_pool=True)

    def test_transaction_pins_one_pooled_connection(self) -> None:
        pool = PoolConnector(sqlite3.connect, ":memory:", max_size=1, isolation_level=None)
        db = Database(pool, SQLiteDialect())
        db.execute('CREATE TABLE "t" ("id" INTEGER);')
        try:
            with db.transaction():
                db.execute('INSERT INTO "t" ("id") VALUES (1);')
                db.execute('INSERT INTO "t" ("id") VALUES (2);')
                self.assertEqual(pool.stats().in_use, 1)
                rows = db.fetchall('SELECT * FROM "t";')
                self.assertEqual(len(rows), 2)
            self.assertEqual(pool.stats().in_use, 0)
            self.assertEqual(len(db.fetchall('SELECT * FROM "t";')), 2)
        finally:
            db.close(close_pool=True)

    def test_writes_outside_transaction_are_rolled_back_on_release(self) -> None:
        pool = PoolConnector(sqlite3.connect, ":memory:", max_size=1)
        db = Database(pool, SQLiteDialect())
        try:
            db.execute('CREATE TABLE "t" ("id" INTEGER);')
            db.execute('INSERT INTO "t" ("id") VALUES (1);')
            self.assertEqual(db.fetchall('SELECT * FROM "t";'), [])
        finally:
            db.close(close_pool=True)

    def test_database_close_with_close_pool_true_closes_pool(self) -> None:
        pool = PoolConnector(sqlite3.connect, ":memory:", max_size=1)
        db = Database(pool, SQLiteDialect())
        db.close(close_pool=True)
        with self.assertRaises(RuntimeError):
            db.execute("SELECT 1;")
        with self.assertRaises(RuntimeError):
            pool.acquire()


class PoolConnectorTests(unittest.TestCase):
    def test_acquire_release_reuses_connection(self) -> None:
        created = 0

        def _factory() -> sqlite3.Connection:
            nonlocal created
            created += 1
            return sqlite3.connect(":memory:")

        pool = PoolConnector(_factory, max_size=1)
        first = pool.acquire()
        pool.release(first)
        second = pool.acquire()
        self.assertIs(first, second)
        pool.release(second)
        pool.close()
        self.assertEqual(created, 1)

    def test_size_validation(self) -> None:
        with self.assertRaises(ValueError):
            PoolConnector(sqlite3.connect, ":memory:", max_size=0)
        with self.assertRaises(ValueError):
            PoolConnector(_FakeBaseConn, min_size=3, max_size=2)
        with self.assertRaises(ValueError):
            PoolConnector(sqlite3.connect, ":memory:", transaction_guard="invalid")

    def test_prefill_opens_min_size_connections(self) -> None:
        pool = PoolConnector(_FakeBaseConn, min_size=2, max_size=3, reset_session=False)
        self.assertEqual(pool.prefill(), 2)
        self.assertEqual(pool.prefill(), 0)
        stats = pool.stats()
        self.assertEqual((stats.idle, stats.in_use, stats.max_size), (2, 0, 3))
        pool.close()
        self.assertTrue(pool.stats().closed)

    def test_idle_connections_past_timeout_are_evicted(self) -> None:
        pool = PoolConnector(_FakeBaseConn, max_size=2, idle_timeout=0.01, reset_session=False)
        first = pool.acquire()
        pool.release(first)
        time.sleep(0.05)

        second = pool.acquire()
        self.assertIsNot(second, first)
        self.assertEqual(first.close_calls, 1)
        pool.release(second)
        pool.close()

    def test_idle_eviction_keeps_min_size(self) -> None:
        pool = PoolConnector(
            _FakeBaseConn, min_size=1, max_size=2, idle_timeout=0.01, reset_session=False
        )
        pool.prefill()
        time.sleep(0.05)

        conn = pool.acquire()
        self.assertEqual(conn.close_calls, 0)
        pool.release(conn)
        pool.close()

    def test_acquire_timeout_raises_when_pool_is_exhausted(self) -> None:
        pool = PoolConnector(sqlite3.connect, ":memory:", max_size=1)
        conn = pool.acquire()
        try:
            with self.assertRaises(TimeoutError):
                pool.acquire(timeout=0.01)
        finally:
            pool.release(conn)
            pool.close()

    def test_default_acquire_timeout_is_used(self) -> None:
        pool = PoolConnector(_FakeBaseConn, max_size=1, acquire_timeout=0.01, reset_session=False)
        conn = pool.acquire()
        with self.assertRaises(TimeoutError):
            pool.acquire()
        pool.release(conn)
        pool.close()

    def test_acquire_factory_error_does_not_poison_pool_state(self) -> None:
        calls = 0

        def _factory() -> _FakeBaseConn:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("connect failed")
            return _FakeBaseConn(in_transaction=False)

        pool = PoolConnector(_factory, max_size=1, reset_session=False)
        with self.assertRaises(RuntimeError):
            pool.acquire()

        conn = pool.acquire()
        pool.release(conn)
        pool.close()
        self.assertEqual(calls, 2)

    def test_waiting_acquire_is_unblocked_when_pool_closes(self) -> None:
        pool = PoolConnector(_FakeBaseConn, max_size=1, reset_session=False)
        conn = pool.acquire()
        errors: list[type[BaseException]] = []

        def _waiter() -> None:
            try:
                pool.acquire()
            except BaseException as exc:  # noqa: BLE001
                errors.append(type(exc))

        waiter = threading.Thread(target=_waiter)
        waiter.start()
        time.sleep(0.05)
        pool.close()
        waiter.join(timeout=1)
        self.assertFalse(waiter.is_alive())
        self.assertEqual(errors, [RuntimeError])
        pool.release(conn)
        self.assertEqual(conn.close_calls, 1)

    def test_connection_context_manager_releases_connection(self) -> None:
        pool = PoolConnector(sqlite3.connect, ":memory:", max_size=1)
        with pool.connection() as borrowed:
            self.assertIsNotNone(borrowed)
        reacquired = pool.acquire()
        self.assertIs(reacquired, borrowed)
        pool.release(reacquired)
        pool.close()

    def test_release_unknown_connection_raises(self) -> None:
        pool = PoolConnector(sqlite3.connect, ":memory:", max_size=1)
        outside_conn = sqlite3.connect(":memory:")
        try:
            with self.assertRaises(ValueError):
                pool.release(outside_conn)
        finally:
            outside_conn.close()
            pool.close()

    def test_sqlite_private_memory_with_max_size_gt_1_raises(self) -> None:
        with self.assertRaises(ValueError):
            PoolConnector(sqlite3.connect, ":memory:", max_size=2)
        with self.assertRaises(ValueError):
            PoolConnector(
                sqlite3.connect,
                "file:private_memdb?mode=memory",
                uri=True,
                max_size=2,
            )

    def test_sqlite_shared_memory_uri_allows_max_size_gt_1(self) -> None:
        db_name = f"file:shared_memdb_{time.monotonic_ns()}?mode=memory&cache=shared"
        pool = PoolConnector(
            sqlite3.connect,
            db_name,
            uri=True,
            check_same_thread=False,
            max_size=2,
        )
        conn1 = pool.acquire()
        conn2 = pool.acquire()
        try:
            conn1.execute('CREATE TABLE "t" ("id" INTEGER);')
            conn1.execute('INSERT INTO "t" ("id") VALUES (1);')
            conn1.commit()
            row = conn2.execute('SELECT COUNT(*) FROM "t";').fetchone()
            self.assertEqual(row[0], 1)
        finally:
            pool.release(conn2)
            pool.release(conn1)
            pool.close()

    def test_dirty_transaction_is_rolled_back_by_default(self) -> None:
        pool = PoolConnector(_FakeBaseConn, max_size=1, reset_session=False)
        conn = pool.acquire()
        conn.in_transaction = True
        pool.release(conn)

        self.assertEqual(conn.rollback_calls, 1)
        reused = pool.acquire()
        self.assertIs(reused, conn)
        pool.release(reused)
        pool.close()

    def test_transaction_guard_raise_discards_dirty_connection(self) -> None:
        pool = PoolConnector(
            _FakeBaseConn,
            max_size=1,
            transaction_guard="raise",
            reset_session=False,
        )
        conn = pool.acquire()
        conn.in_transaction = True

        with self.assertRaises(RuntimeError):
            pool.release(conn)
        self.assertEqual(conn.close_calls, 1)

        conn2 = pool.acquire()
        self.assertIsNot(conn2, conn)
        pool.release(conn2)
        pool.close()

    def test_transaction_guard_discard_discards_dirty_connection(self) -> None:
        pool = PoolConnector(
            _FakeBaseConn,
            max_size=1,
            transaction_guard="discard",
            reset_session=False,
        )
        conn = pool.acquire()
        conn.in_transaction = True
        pool.release(conn)

        self.assertEqual(conn.rollback_calls, 0)
        self.assertEqual(conn.close_calls, 1)
        conn2 = pool.acquire()
        self.assertIsNot(conn2, conn)
        pool.release(conn2)
        pool.close()

    def test_session_reset_hook_error_discards_connection(self) -> None:
        reset_calls = 0

        def _reset(_conn) -> None:  # noqa: ANN001,ANN202
            nonlocal reset_calls
            reset_calls += 1
            if reset_calls == 1:
                raise ValueError("reset failed")

        pool = PoolConnector(_FakeBaseConn, max_size=1, session_reset_hook=_reset)
        conn = pool.acquire()
        with self.assertRaises(RuntimeError):
            pool.release(conn)
        self.assertEqual(conn.close_calls, 1)

        fresh = pool.acquire()
        self.assertIsNot(fresh, conn)
        pool.release(fresh)
        pool.close()

    def test_dirty_detection_uses_psycopg_info_transaction_status(self) -> None:
        pool = PoolConnector(
            lambda: _FakePsycopgInfoConn(transaction_status=2),
            max_size=1,
            reset_session=False,
        )
        conn = pool.acquire()
        pool.release(conn)
        self.assertEqual(conn.rollback_calls, 1)
        pool.close()

    def test_default_session_reset_statements(self) -> None:
        pg_pool = PoolConnector(_FakePgConn, max_size=1)
        pg_conn = pg_pool.acquire()
        pg_pool.release(pg_conn)
        self.assertEqual(pg_conn.executed_sql, ["RESET ALL", "UNLISTEN *", "DEALLOCATE ALL"])
        self.assertEqual(pg_conn.commit_calls, 1)
        pg_pool.close()

        mysql_pool = PoolConnector(_FakeMySQLConn, max_size=1)
        mysql_conn = mysql_pool.acquire()
        mysql_pool.release(mysql_conn)
        self.assertEqual(
            mysql_conn.executed_sql,
            ["SET SESSION sql_mode = DEFAULT", "SET SESSION time_zone = DEFAULT"],
        )
        mysql_pool.close()


if __name__ == "__main__":
    unittest.main()
