"""Core Oracle client for executing SQL over a single held connection."""

from __future__ import annotations
import logging
from contextlib import closing, contextmanager
from decimal import Decimal
from typing import Any, Generator, Optional, Union

import oracledb
from pydantic import BaseModel, field_validator

from .exceptions import ClientConnectionError


logger = logging.getLogger(__name__)

Params = Optional[Union[dict, tuple, list]]


def decimal_output_type_handler(cursor, metadata):
    """Fetch NUMBER columns as Decimal instead of float.

    Installed as ``outputtypehandler`` on every connection the client holds.
    """
    if metadata.type_code is oracledb.DB_TYPE_NUMBER:
        return cursor.var(Decimal, arraysize=cursor.arraysize)
    return None


class OracleConfig(BaseModel):
    """Configuration for the Oracle source connection."""

    host: str = "localhost"
    port: int = 1521
    service_name: Optional[str] = "FREEPDB1"
    sid: Optional[str] = None
    user: str
    password: Optional[str] = None

    # Full Easy Connect string or TNS alias, overrides host/port/service_name
    dsn: Optional[str] = None
    connect_timeout: int = 30

    @field_validator('host')
    @classmethod
    def validate_host(cls, v):
        """Validate hostname."""
        if not v or not v.strip():
            raise ValueError("host is required")
        return v

    @field_validator('user')
    @classmethod
    def validate_user(cls, v):
        """Validate username."""
        if not v or not v.strip():
            raise ValueError("user is required")
        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Validate port number."""
        if not (1 <= v <= 65535):
            raise ValueError("port must be between 1 and 65535")
        return v

    def dsn_string(self) -> str:
        """Build the Easy Connect string for oracledb."""
        if self.dsn:
            return self.dsn
        if self.sid:
            return oracledb.makedsn(self.host, self.port, sid=self.sid)
        dsn = f"{self.host}:{self.port}/{self.service_name or ''}"
        if self.connect_timeout != 30:  # Only add if not default
            dsn += f"?connect_timeout={self.connect_timeout}"
        return dsn


class OracleClient:
    """Client holding one Oracle connection for DDL, queries and DML.

    The connection runs with autocommit off; callers decide when to commit
    or roll back.
    """

    def __init__(
        self,
        config: Optional[OracleConfig] = None,
        *,
        host: str = "localhost",
        port: int = 1521,
        service_name: Optional[str] = "FREEPDB1",
        user: Optional[str] = None,
        password: Optional[str] = None,
        dsn: Optional[str] = None,
    ):
        """Initialize the Oracle client.

        Args:
            config: Connection configuration, if provided overrides other params
            host: Oracle host
            port: Oracle listener port
            service_name: Service name of the (pluggable) database
            user: Username
            password: Password
            dsn: Easy Connect string or TNS alias
        """
        if config is None:
            if not user:
                raise ValueError("user is required when no config is given")
            config = OracleConfig(
                host=host,
                port=port,
                service_name=service_name,
                user=user,
                password=password,
                dsn=dsn,
            )
        self.config = config
        self._conn = None

    @classmethod
    def from_connection(cls, conn: Any, user: str) -> "OracleClient":
        """Wrap an already opened DB-API connection owned by the host."""
        if isinstance(conn, oracledb.Connection):
            conn.outputtypehandler = decimal_output_type_handler
        client = cls(OracleConfig(user=user, dsn="external"))
        client._conn = conn
        return client

    @property
    def user(self) -> str:
        return self.config.user

    @property
    def connection(self):
        """The held connection, opened on first use."""
        if self._conn is None:
            self._conn = self._connect()
        return self._conn

    def _connect(self):
        dsn = self.config.dsn_string()
        logger.info(f"Connecting to Oracle at {dsn} as {self.config.user}")
        try:
            conn = oracledb.connect(
                user=self.config.user,
                password=self.config.password,
                dsn=dsn,
            )
        except oracledb.Error as e:
            raise ClientConnectionError(
                "Failed to establish a database connection",
                "Check host, service name, username and password",
                dsn,
            ) from e
        conn.autocommit = False
        conn.outputtypehandler = decimal_output_type_handler
        return conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @contextmanager
    def cursor(self) -> Generator[Any, None, None]:
        """Get a cursor context manager on the held connection."""
        with closing(self.connection.cursor()) as cur:
            yield cur

    def execute(self, sql: str, params: Params = None) -> int:
        """Execute SQL statement without returning results.

        Args:
            sql: SQL statement to execute
            params: Optional bind values

        Returns:
            Number of affected rows as reported by the driver
        """
        logger.debug(f"Executing SQL: {sql}")
        with self.cursor() as cur:
            if params is None:
                cur.execute(sql)
            else:
                cur.execute(sql, params)
            return cur.rowcount

    def fetch_all(self, sql: str, params: Params = None) -> list[tuple]:
        """Execute SQL and fetch all results.

        Args:
            sql: SQL query to execute
            params: Optional bind values

        Returns:
            List of result tuples
        """
        logger.debug(f"Fetching SQL: {sql}")
        with self.cursor() as cur:
            if params is None:
                cur.execute(sql)
            else:
                cur.execute(sql, params)
            return cur.fetchall()

    def fetch_one(self, sql: str, params: Params = None) -> Optional[tuple]:
        """Execute SQL and fetch one result.

        Args:
            sql: SQL query to execute
            params: Optional bind values

        Returns:
            Single result tuple or None
        """
        logger.debug(f"Fetching one SQL: {sql}")
        with self.cursor() as cur:
            if params is None:
                cur.execute(sql)
            else:
                cur.execute(sql, params)
            return cur.fetchone()

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        """Roll back the open transaction, if a connection exists."""
        if self._conn is not None:
            self._conn.rollback()

    def close(self) -> None:
        """Close the held connection. Safe to call repeatedly."""
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def health_check(self) -> bool:
        """Check if Oracle is healthy and responsive.

        Returns:
            True if Oracle is healthy, False otherwise
        """
        try:
            result = self.fetch_one("select 1 from dual")
            return result == (1,)
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return False

    def get_version(self) -> str:
        """Get the Oracle version banner.

        Returns:
            Version string
        """
        try:
            result = self.fetch_one(
                "select banner from v$version where rownum = 1")
            return result[0] if result else "Unknown"
        except Exception as e:
            logger.warning(f"Failed to get version: {e}")
            return "Unknown"
