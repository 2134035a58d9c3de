"""Tests for the Oracle client and its configuration."""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import oracledb
import pytest

from oracle_cdc_connect.client import OracleClient, OracleConfig, decimal_output_type_handler
from oracle_cdc_connect.exceptions import ClientConnectionError


class TestOracleConfig:
    """Test Oracle configuration."""

    def test_valid_config(self):
        """Test valid configuration."""
        config = OracleConfig(host="db.example.com", user="cdc", password="secret")
        assert config.port == 1521
        assert config.service_name == "FREEPDB1"

    def test_empty_user(self):
        """Test that an empty user fails validation."""
        with pytest.raises(ValueError, match="user is required"):
            OracleConfig(user=" ")

    def test_empty_host(self):
        with pytest.raises(ValueError, match="host is required"):
            OracleConfig(host="", user="cdc")

    def test_invalid_port(self):
        with pytest.raises(ValueError, match="port must be between"):
            OracleConfig(user="cdc", port=70000)

    def test_dsn_string(self):
        """Test Easy Connect string generation."""
        config = OracleConfig(host="db", port=1522, service_name="ORCLPDB1", user="cdc")
        assert config.dsn_string() == "db:1522/ORCLPDB1"

    def test_dsn_string_with_timeout(self):
        config = OracleConfig(host="db", user="cdc", connect_timeout=5)
        assert config.dsn_string() == "db:1521/FREEPDB1?connect_timeout=5"

    def test_explicit_dsn_wins(self):
        config = OracleConfig(host="db", user="cdc", dsn="PRODTNS")
        assert config.dsn_string() == "PRODTNS"


class TestOracleClient:
    """Test the client against a mocked driver."""

    def test_requires_user(self):
        with pytest.raises(ValueError, match="user is required"):
            OracleClient(host="db")

    @patch("oracle_cdc_connect.client.oracledb.connect")
    def test_connects_lazily(self, mock_connect):
        """Test that the connection is opened on first use only."""
        client = OracleClient(host="db", user="cdc", password="secret")
        assert not client.is_open
        mock_connect.assert_not_called()

        conn = client.connection
        assert client.connection is conn
        mock_connect.assert_called_once_with(user="cdc", password="secret", dsn="db:1521/FREEPDB1")
        assert conn.autocommit is False

    @patch("oracle_cdc_connect.client.oracledb.connect")
    def test_connect_failure(self, mock_connect):
        mock_connect.side_effect = oracledb.Error("ORA-12541: no listener")
        client = OracleClient(host="db", user="cdc")
        with pytest.raises(ClientConnectionError) as exc_info:
            client.connection
        assert exc_info.value.context == "db:1521/FREEPDB1"

    def test_fetch_with_binds(self):
        conn = MagicMock()
        cursor = conn.cursor.return_value
        cursor.fetchall.return_value = [("SRC",)]
        client = OracleClient.from_connection(conn, "cdc")

        assert client.fetch_all("select :x from dual", {"x": 1}) == [("SRC",)]
        cursor.execute.assert_called_once_with("select :x from dual", {"x": 1})
        cursor.close.assert_called_once()

    def test_execute_returns_rowcount(self):
        conn = MagicMock()
        conn.cursor.return_value.rowcount = 3
        client = OracleClient.from_connection(conn, "cdc")
        assert client.execute("delete from t") == 3
        conn.cursor.return_value.execute.assert_called_once_with("delete from t")

    def test_close_is_idempotent(self):
        conn = MagicMock()
        client = OracleClient.from_connection(conn, "cdc")
        client.close()
        client.close()
        conn.close.assert_called_once()
        assert not client.is_open

    def test_rollback_without_connection(self):
        client = OracleClient(user="cdc")
        client.rollback()
        assert not client.is_open

    def test_health_check_failure(self):
        conn = MagicMock()
        conn.cursor.return_value.execute.side_effect = RuntimeError("ORA-03113")
        client = OracleClient.from_connection(conn, "cdc")
        assert client.health_check() is False
        assert client.get_version() == "Unknown"


class TestDecimalFetching:
    """Test that NUMBER columns are fetched without losing digits."""

    def test_number_fetched_as_decimal(self):
        cursor = MagicMock()
        cursor.arraysize = 100
        metadata = MagicMock()
        metadata.type_code = oracledb.DB_TYPE_NUMBER

        var = decimal_output_type_handler(cursor, metadata)

        assert var is cursor.var.return_value
        cursor.var.assert_called_once_with(Decimal, arraysize=100)

    def test_other_types_untouched(self):
        cursor = MagicMock()
        metadata = MagicMock()
        metadata.type_code = oracledb.DB_TYPE_VARCHAR
        assert decimal_output_type_handler(cursor, metadata) is None
        cursor.var.assert_not_called()

    @patch("oracle_cdc_connect.client.oracledb.connect")
    def test_handler_installed_on_connect(self, mock_connect):
        client = OracleClient(host="db", user="cdc")
        assert client.connection.outputtypehandler is decimal_output_type_handler
