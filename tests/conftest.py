"""Shared fixtures: an in-process stand-in for an Oracle database.

The stand-in is a sqlite connection with the source tables attached as
schema ``SRC`` and the change log as schema ``CDC``. It reports oracledb
type codes in ``cursor.description`` and records CREATE TRIGGER statements
in an ``all_triggers`` table instead of executing them.
"""

import re
import sqlite3
from decimal import Decimal

import oracledb
import pytest

from oracle_cdc_connect.changelog import ChangeLog
from oracle_cdc_connect.client import OracleClient
from oracle_cdc_connect.mapping.schema import SOURCE_ROWID_FIELD
from oracle_cdc_connect.mapping.store import MappingStore
from oracle_cdc_connect.mapping.table_mapping import ColumnMapping, TableMapping
from oracle_cdc_connect.producer import ChangeSink, OracleProducer, ProducerConfig

_CREATE_TRIGGER = re.compile(
    r'^\s*CREATE TRIGGER\s+"(?P<name>[^"]+)"\s+AFTER\s+\w+\s+ON\s+"(?P<owner>[^"]+)"\."(?P<table>[^"]+)"',
    re.IGNORECASE,
)


class FakeCursor:
    """DB-API cursor over sqlite reporting oracledb type codes."""

    def __init__(self, connection):
        self._connection = connection
        self._cursor = connection.sqlite.cursor()
        self._description = None

    def execute(self, sql, params=None):
        self._connection.statements.append(sql)
        trigger = _CREATE_TRIGGER.match(sql)
        if trigger:
            self._connection.create_trigger(trigger.group("owner"), trigger.group("table"),
                                            trigger.group("name"), sql)
            self._description = None
            return self
        if params is None:
            self._cursor.execute(sql)
        else:
            self._cursor.execute(sql, params)
        if self._cursor.description is None:
            self._description = None
        else:
            self._description = [
                (column[0], self._connection.type_code(column[0]), None, None, None, None, True)
                for column in self._cursor.description
            ]
        return self

    @property
    def description(self):
        return self._description

    @property
    def rowcount(self):
        return self._cursor.rowcount

    def _row(self, row):
        # NUMBER columns arrive as Decimal, as with decimal_output_type_handler
        if row is None or self._description is None:
            return row
        return tuple(
            Decimal(str(value)) if column[1] is oracledb.DB_TYPE_NUMBER and isinstance(value, float) else value
            for value, column in zip(row, self._description)
        )

    def fetchall(self):
        return [self._row(row) for row in self._cursor.fetchall()]

    def fetchone(self):
        return self._row(self._cursor.fetchone())

    def __iter__(self):
        return (self._row(row) for row in self._cursor)

    def close(self):
        self._cursor.close()


class FakeOracleConnection:
    """Connection object handed to ``OracleClient.from_connection``."""

    def __init__(self):
        self.sqlite = sqlite3.connect(":memory:")
        self.sqlite.execute("attach database ':memory:' as SRC")
        self.sqlite.execute("attach database ':memory:' as CDC")
        self.sqlite.execute("create table CDC.SCN_CLOCK (SCN integer)")
        self.sqlite.execute("insert into CDC.SCN_CLOCK values (1)")
        self.sqlite.execute("create table main.all_triggers (table_owner text, table_name text, trigger_name text)")
        self.sqlite.commit()
        self.type_codes = {SOURCE_ROWID_FIELD: oracledb.DB_TYPE_ROWID}
        self.statements = []
        self.trigger_ddl = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def type_code(self, label):
        return self.type_codes.get(label, oracledb.DB_TYPE_VARCHAR)

    def create_trigger(self, owner, table, name, ddl):
        self.sqlite.execute(
            "insert into main.all_triggers values (?, ?, ?)", (owner, table, name))
        self.trigger_ddl.append(ddl)

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1
        self.sqlite.commit()

    def rollback(self):
        self.rollbacks += 1
        self.sqlite.rollback()

    def close(self):
        self.closed = True
        self.sqlite.close()


class SqliteChangeLog(ChangeLog):
    """The change log with its dialect specific statements in sqlite syntax."""

    table_exists_sql = "select 1 from CDC.sqlite_master where type = 'table' and name = :table_name"
    current_scn_sql = "select scn from CDC.SCN_CLOCK"
    upper_bound_sql = "select scn from CDC.SCN_CLOCK"
    purge_sql_template = (
        "delete from {table} where change_ts < datetime('now', '-' || :retention_days || ' days')"
    )

    def ddl(self):
        pk_columns = "".join(f"PK{i} text, " for i in range(1, 7))
        return (
            f"create table {self.qualified_name} ("
            "CHANGE_TS timestamp, SCHEMA_NAME text, CHANGE_TYPE text, "
            f"{pk_columns}"
            "SCN integer, EXECUTIONORDER integer primary key autoincrement, "
            "PROCESSED_SEQ integer, TABLE_NAME text)"
        )


class SourceDatabase:
    """DML on the source tables, writing the change log rows the triggers would write."""

    def __init__(self, connection: FakeOracleConnection, change_log: ChangeLog):
        self.connection = connection
        self.change_log = change_log

    @property
    def scn(self) -> int:
        return self.connection.sqlite.execute("select scn from CDC.SCN_CLOCK").fetchone()[0]

    def set_scn(self, scn: int) -> None:
        self.connection.sqlite.execute("update CDC.SCN_CLOCK set scn = ?", (scn,))
        self.connection.sqlite.commit()

    def _tick(self) -> int:
        # the DML gets the next SCN, the clock moves past it
        scn = self.scn + 1
        self.set_scn(scn + 1)
        return scn

    def log(self, scn, change_type, *keys, owner="SRC", table="ORDERS", change_ts=None):
        columns = ", ".join(f"PK{i + 1}" for i in range(len(keys)))
        marks = ", ".join("?" for _ in keys)
        ts = "datetime('now')" if change_ts is None else "?"
        params = [owner, table, change_type, scn] + list(keys)
        if change_ts is not None:
            params.insert(0, change_ts)
        self.connection.sqlite.execute(
            f"insert into {self.change_log.qualified_name} "
            f"(change_ts, schema_name, table_name, change_type, scn, {columns}) "
            f"values ({ts}, ?, ?, ?, ?, {marks})",
            params,
        )

    def insert(self, order_id, customer, amount):
        scn = self._tick()
        self.connection.sqlite.execute(
            "insert into SRC.ORDERS values (?, ?, ?)", (str(order_id), customer, amount))
        self.log(scn, "I", str(order_id))
        self.connection.sqlite.commit()
        return scn

    def update(self, order_id, new_order_id=None, customer=None, amount=None):
        scn = self._tick()
        key = str(order_id)
        new_key = str(new_order_id) if new_order_id is not None else key
        self.connection.sqlite.execute(
            "update SRC.ORDERS set ORDER_ID = ?, CUSTOMER = coalesce(?, CUSTOMER), "
            "AMOUNT = coalesce(?, AMOUNT) where ORDER_ID = ?",
            (new_key, customer, amount, key),
        )
        self.log(scn, "U", new_key)
        if new_key != key:
            self.log(scn, "U", key)
        self.connection.sqlite.commit()
        return scn

    def delete(self, order_id):
        scn = self._tick()
        self.connection.sqlite.execute("delete from SRC.ORDERS where ORDER_ID = ?", (str(order_id),))
        self.log(scn, "D", str(order_id))
        self.connection.sqlite.commit()
        return scn


class RecordingSink(ChangeSink):
    """Sink keeping every call for inspection."""

    def __init__(self, fail_on_emit=None):
        self.events = []
        self.records = []
        self.fail_on_emit = fail_on_emit

    def get_or_create_output_stream(self, name):
        self.events.append(("stream", name))
        return f"stream:{name}"

    def emit(self, stream, schema, record, change_kind):
        if self.fail_on_emit is not None and len(self.records) + 1 >= self.fail_on_emit:
            raise RuntimeError("sink rejected the record")
        self.records.append((schema.name, change_kind, record))

    def begin_delta_transaction(self, watermark):
        self.events.append(("begin_delta", watermark))

    def commit_delta_transaction(self):
        self.events.append(("commit_delta",))

    def begin_initial_load_transaction(self, watermark, mapping_name):
        self.events.append(("begin_initial_load", watermark, mapping_name))

    def commit_initial_load_transaction(self, row_count):
        self.events.append(("commit_initial_load", row_count))

    def abort_transaction(self):
        self.events.append(("abort",))

    def event_names(self):
        return [event[0] for event in self.events]


def orders_mapping(name="SRC_ORDERS") -> TableMapping:
    return TableMapping(
        name=name,
        owner="SRC",
        table_name="ORDERS",
        columns=(
            ColumnMapping(alias="ORDER_ID", sql='d."ORDER_ID"', source_data_type="NUMBER(10, 0)"),
            ColumnMapping(alias="CUSTOMER", sql='d."CUSTOMER"', source_data_type="VARCHAR2(40)"),
            ColumnMapping(alias="AMOUNT", sql='d."AMOUNT"', source_data_type="NUMBER(10, 2)"),
        ),
        primary_key_columns=("ORDER_ID",),
    )


@pytest.fixture
def fake_connection():
    conn = FakeOracleConnection()
    conn.sqlite.execute(
        "create table SRC.ORDERS (ORDER_ID text primary key, CUSTOMER text, AMOUNT real)")
    conn.sqlite.commit()
    conn.type_codes["AMOUNT"] = oracledb.DB_TYPE_NUMBER
    yield conn
    if not conn.closed:
        conn.sqlite.close()


@pytest.fixture
def client(fake_connection):
    return OracleClient.from_connection(fake_connection, user="cdc")


@pytest.fixture
def change_log():
    return SqliteChangeLog("CDC")


@pytest.fixture
def source(fake_connection, change_log, client):
    change_log.ensure(client)
    return SourceDatabase(fake_connection, change_log)


@pytest.fixture
def store(tmp_path):
    store = MappingStore(tmp_path / "mappings")
    store.write(orders_mapping())
    return store


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def producer_config():
    return ProducerConfig(
        name="orders-producer",
        topic_name="orders",
        mapping_names=["SRC_ORDERS"],
        log_owner="CDC",
    )


@pytest.fixture
def producer(producer_config, client, sink, store, change_log):
    return OracleProducer(producer_config, client, sink, store=store, change_log=change_log)
