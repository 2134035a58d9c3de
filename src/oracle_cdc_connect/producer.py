"""Change capture engine: change logging setup, initial loads and delta polls."""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator

from .changelog import ChangeLog
from .client import OracleClient
from .directory import MappingDirectory
from .exceptions import (
    ConnectorError,
    InitialLoadError,
    PollError,
    ProducerStateError,
)
from .mapping.schema import CanonicalSchema
from .mapping.sql import delta_binds
from .mapping.store import MappingStore
from .mapping.table_mapping import MappingBundle, TableMapping
from .mapping.triggers import TriggerSet
from .mapping.types import convert_row
from .models import ChangeKind, ProducerState

logger = logging.getLogger(__name__)


def enable_change_logging(client: OracleClient, change_log: ChangeLog, mappings: List[TableMapping]) -> List[str]:
    """Create the change log table and the missing triggers of all mappings.

    Returns:
        Names of the created triggers
    """
    change_log.ensure(client)
    created = []
    for mapping in mappings:
        names = TriggerSet(mapping, change_log.qualified_name).ensure(client)
        if names:
            logger.info(f"Change logging for mapping {mapping.name} enabled with triggers {names}")
        created.extend(names)
    return created


def render_trigger_script(client: OracleClient, change_log: ChangeLog, mappings: List[TableMapping]) -> str:
    """DDL of the change log table and all triggers, existing objects commented out."""
    ddl = change_log.ddl()
    if change_log.exists(client):
        parts = [f"/* Table {change_log.qualified_name} exists already\n{ddl}\n*/\n"]
    else:
        parts = [f"{ddl};\n"]
    for mapping in mappings:
        trigger_set = TriggerSet(mapping, change_log.qualified_name)
        trigger_set.probe(client)
        parts.append(f"-- Mapping {mapping.name}\n{trigger_set.sql_script()}")
    return "\n".join(parts)


class ChangeSink(ABC):
    """Receiver of the produced change records, implemented by the hosting pipeline."""

    @abstractmethod
    def get_or_create_output_stream(self, name: str) -> Any:
        """Get the handle of the named output stream, creating it if needed."""
        pass

    @abstractmethod
    def emit(self, stream: Any, schema: CanonicalSchema, record: Dict[str, Any], change_kind: ChangeKind) -> None:
        """Hand over one record of the open transaction."""
        pass

    @abstractmethod
    def begin_delta_transaction(self, watermark: str) -> None:
        pass

    @abstractmethod
    def commit_delta_transaction(self) -> None:
        pass

    @abstractmethod
    def begin_initial_load_transaction(self, watermark: str, mapping_name: str) -> None:
        pass

    @abstractmethod
    def commit_initial_load_transaction(self, row_count: int) -> None:
        pass

    @abstractmethod
    def abort_transaction(self) -> None:
        pass


class ProducerConfig(BaseModel):
    """Configuration of one producer instance."""

    name: str
    topic_name: str
    mapping_names: List[str] = Field(default_factory=list)
    mapping_directory: str = "mappings"

    # Schema holding the change log table, the connected user if not set
    log_owner: Optional[str] = None
    log_table: str = "PKLOG"
    retention_days: int = 7
    poll_interval: int = 10

    @field_validator('name', 'topic_name')
    @classmethod
    def validate_required(cls, v):
        """Validate required names."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator('retention_days', 'poll_interval')
    @classmethod
    def validate_positive(cls, v):
        """Validate positive intervals."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v


class OracleProducer:
    """Produces change records of the configured table mappings.

    One producer holds one database connection. The host serialises all
    calls, at most one initial load, poll or maintenance run is active at
    a time.
    """

    _READY_STATES = (ProducerState.LOGGING_STARTED, ProducerState.POLLING_IDLE)

    def __init__(
        self,
        config: ProducerConfig,
        client: OracleClient,
        sink: ChangeSink,
        store: Optional[MappingStore] = None,
        change_log: Optional[ChangeLog] = None,
    ):
        """Initialize the producer and build all mapping bundles.

        Args:
            config: Producer configuration
            client: Client owning the source database connection
            sink: Receiver of the change records
            store: Mapping definitions, defaults to ``config.mapping_directory``
            change_log: Change log table, defaults to the one named in the config

        Raises:
            MappingDefinitionError: When a configured mapping cannot be read
            MappingValidationError: When a mapping has an incomplete primary key
        """
        self.config = config
        self.client = client
        self.sink = sink
        self.store = store or MappingStore(config.mapping_directory)
        if change_log is None:
            owner = config.log_owner or client.user.upper()
            change_log = ChangeLog(owner, config.log_table, config.retention_days)
        self.change_log = change_log

        mappings = [self.store.read(name) for name in config.mapping_names]
        self.directory = MappingDirectory.from_mappings(mappings, self.change_log.qualified_name)
        self._stream = None
        self._state = ProducerState.UNINITIALIZED
        logger.info(f"Producer {config.name} created for mappings {self.directory.names()}")

    @property
    def state(self) -> ProducerState:
        return self._state

    def _set_state(self, state: ProducerState) -> None:
        logger.debug(f"Producer {self.config.name} state {self._state.value} -> {state.value}")
        self._state = state

    def _require(self, operation: str, allowed: Iterable[ProducerState]) -> None:
        allowed = tuple(allowed)
        if self._state not in allowed:
            raise ProducerStateError(
                f"Cannot {operation} while the producer is {self._state.value}",
                f"Allowed in states: {', '.join(s.value for s in allowed)}",
                self.config.name,
            )

    def _output_stream(self) -> Any:
        if self._stream is None:
            self._stream = self.sink.get_or_create_output_stream(self.config.topic_name)
        return self._stream

    def _abort(self, transaction_open: bool) -> None:
        if transaction_open:
            try:
                self.sink.abort_transaction()
            except Exception as e:
                logger.error(f"Aborting the sink transaction failed: {e}")
        try:
            self.client.rollback()
        except Exception as e:
            logger.error(f"Rolling back the database transaction failed: {e}")

    def start_change_logging(self) -> None:
        """Create the change log table and all missing triggers.

        Safe to call again, existing objects are kept.

        Raises:
            SetupError: When any of the DDL statements fails
        """
        self._require("start change logging", (ProducerState.UNINITIALIZED,) + self._READY_STATES)
        enable_change_logging(self.client, self.change_log, [b.mapping for b in self.directory])
        if self._state == ProducerState.UNINITIALIZED:
            self._set_state(ProducerState.LOGGING_STARTED)

    def get_current_transaction_id(self) -> str:
        """The current SCN, for seeding the first watermark."""
        self._require("read the current SCN", (ProducerState.UNINITIALIZED,) + self._READY_STATES)
        return str(self.change_log.current_scn(self.client))

    def execute_initial_load(self, mapping_name: str, transaction_id: str) -> int:
        """Emit every row of a mapping as an INSERT.

        Args:
            mapping_name: The mapping to load
            transaction_id: Watermark the load corresponds to

        Returns:
            Number of emitted rows

        Raises:
            InitialLoadError: When reading or converting fails, the sink
                transaction is aborted then
        """
        self._require("execute an initial load", self._READY_STATES)
        bundle = self.directory.get(mapping_name)
        previous = self._state
        self._set_state(ProducerState.INITIAL_LOAD_IN_FLIGHT)
        logger.info(f"Initial load for mapping \"{mapping_name}\" is about to start")
        stream = self._output_stream()
        transaction_open = False
        row_count = 0
        try:
            self.sink.begin_initial_load_transaction(transaction_id, mapping_name)
            transaction_open = True
            with self.client.cursor() as cur:
                cur.execute(bundle.initial_sql)
                description = cur.description
                for row in cur:
                    record = convert_row(row, description, bundle.schema)
                    self.sink.emit(stream, bundle.schema, record, ChangeKind.INSERT)
                    row_count += 1
            self.sink.commit_initial_load_transaction(row_count)
        except Exception as e:
            self._abort(transaction_open)
            self._set_state(previous)
            if isinstance(e, ConnectorError):
                hint = e.hint
            else:
                hint = f"Execute the sql as Oracle user \"{self.client.user}\""
            raise InitialLoadError(
                f"Initial load of mapping \"{mapping_name}\" failed: {e}",
                hint,
                bundle.initial_sql,
            ) from e
        self._set_state(ProducerState.POLLING_IDLE)
        logger.info(f"Initial load for mapping \"{mapping_name}\" is completed, loaded {row_count} rows")
        return row_count

    @staticmethod
    def _parse_watermark(watermark: str) -> int:
        try:
            return int(str(watermark).strip())
        except ValueError as e:
            raise PollError(
                f"Watermark \"{watermark}\" is not an SCN",
                "Seed the watermark with get_current_transaction_id()",
            ) from e

    def poll(self, from_watermark: str) -> str:
        """Emit all changes after ``from_watermark`` and return the new watermark.

        The returned watermark is only moved forward when all changes of the
        window got committed to the sink. A failed poll can be repeated with
        the same watermark.

        Raises:
            PollError: When reading or converting the changes fails
        """
        self._require("poll", self._READY_STATES)
        low_scn = self._parse_watermark(from_watermark)
        self._set_state(ProducerState.POLL_IN_FLIGHT)
        transaction_open = False
        sql = None
        try:
            high_scn = self.change_log.upper_bound_scn(self.client, low_scn)
            if high_scn == low_scn:
                logger.debug(f"No new SCN since \"{low_scn}\", nothing to read")
                return from_watermark

            logger.debug(f"Reading change data from SCN \"{low_scn}\" to SCN \"{high_scn}\"")
            sql = self.change_log.changed_tables_sql()
            changed = self.change_log.changed_tables(self.client, low_scn, high_scn)
            impacted = self.directory.resolve(changed)
            if impacted:
                logger.debug(f"Found changes for mappings {sorted(b.name for b in impacted)}")
                stream = self._output_stream()
                self.sink.begin_delta_transaction(str(high_scn))
                transaction_open = True
                for bundle in sorted(impacted, key=lambda b: b.name):
                    sql = bundle.delta_sql
                    self._emit_delta(stream, bundle, low_scn, high_scn)
                self.sink.commit_delta_transaction()
                transaction_open = False
                self.client.commit()
            logger.info(f"Moved the watermark from SCN \"{low_scn}\" to \"{high_scn}\"")
            return str(high_scn)
        except PollError:
            self._abort(transaction_open)
            raise
        except Exception as e:
            self._abort(transaction_open)
            hint = e.hint if isinstance(e, ConnectorError) else "Check the connection and the grants on the change log"
            raise PollError(f"Selecting the changes ran into an error: {e}", hint, sql) from e
        finally:
            self._set_state(ProducerState.POLLING_IDLE)

    def _emit_delta(self, stream: Any, bundle: MappingBundle, low_scn: int, high_scn: int) -> int:
        count = 0
        with self.client.cursor() as cur:
            cur.execute(bundle.delta_sql, delta_binds(bundle.mapping, low_scn, high_scn))
            description = cur.description
            for row in cur:
                record = convert_row(row, description, bundle.schema)
                kind = ChangeKind.from_indicator(row[0])
                self.sink.emit(stream, bundle.schema, record, kind)
                logger.debug(f"Sending {kind.value} row {record}")
                count += 1
        return count

    def execute_periodic_task(self) -> None:
        """Delete change log rows older than the retention window.

        Failures are logged, the producer stays usable.
        """
        self._require("run maintenance", (ProducerState.UNINITIALIZED,) + self._READY_STATES)
        try:
            deleted = self.change_log.purge(self.client)
            self.client.commit()
            logger.info(f"Deleted {deleted} outdated rows from the change log")
        except Exception as e:
            logger.error(f"Deleting outdated data from the change log failed: {e}")
            try:
                self.client.rollback()
            except Exception as rollback_error:
                logger.error(f"Failed to roll back: {rollback_error}")

    def close(self) -> None:
        """Release the database connection."""
        if self._state == ProducerState.CLOSED:
            return
        try:
            self.client.close()
        except Exception as e:
            logger.warning(f"Closing the database connection failed: {e}")
        self._set_state(ProducerState.CLOSED)

    def get_all_schemas(self) -> List[str]:
        """Names of all configured mappings."""
        return self.directory.names()

    def get_schema(self, name: str) -> CanonicalSchema:
        return self.directory.get(name).schema

    def trigger_script(self) -> str:
        """DDL of the change log table and all triggers, for manual review."""
        self._require("render the trigger script", (ProducerState.UNINITIALIZED,) + self._READY_STATES)
        return render_trigger_script(self.client, self.change_log, [b.mapping for b in self.directory])
