"""Logical replication client that batches decoded changes for handlers."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from walstream.log import get_logger
from walstream.operation import Operation
from walstream.parser import ParseError
from walstream.waldata import WalData, WalMessage, decode_wal

__all__ = [
    "Config",
    "Handler",
    "ServerHeartbeat",
    "ReplicationMessage",
    "StandbyStatus",
    "ReplicationConnection",
    "DuplicateSlotError",
    "Client",
]

_PLUGIN = "test_decoding"
_FLUSH_THRESHOLD = 20000
_HEARTBEAT_INTERVAL = 5.0
_POLL_INTERVAL = 1.0


@dataclass
class Config:
    """Connection settings and the table and slot to follow."""

    host: str
    port: int
    user: str
    password: str
    database: str
    table: str
    slot: str


class Handler(ABC):
    """Receives each flushed batch of decoded changes."""

    @abstractmethod
    def deal(self, records: Sequence[WalData]) -> None:
        """Process one batch of records."""


@dataclass
class ServerHeartbeat:
    """Keepalive sent by the server."""

    server_wal_end: int
    server_time: int = 0
    reply_requested: bool = False


@dataclass
class ReplicationMessage:
    """A message from the replication stream: data, heartbeat, or both."""

    wal_message: WalMessage | None = None
    server_heartbeat: ServerHeartbeat | None = None


@dataclass
class StandbyStatus:
    """Positions reported back to the server."""

    wal_write_position: int
    wal_flush_position: int
    wal_apply_position: int
    client_time: int = field(default_factory=lambda: time.time_ns() // 1000)
    reply_requested: bool = False


class DuplicateSlotError(Exception):
    """Raised by a connection when the replication slot already exists."""


class ReplicationConnection(ABC):
    """A replication-protocol connection to the database server."""

    @abstractmethod
    def create_replication_slot(self, slot: str, plugin: str) -> str:
        """Create a logical slot and return its snapshot name."""

    @abstractmethod
    def start_replication(self, slot: str, start_lsn: int, timeline: int) -> None:
        """Begin streaming changes from ``slot``."""

    @abstractmethod
    def send_standby_status(self, status: StandbyStatus) -> None:
        """Report positions to the server."""

    @abstractmethod
    def wait_for_message(self, timeout: float) -> ReplicationMessage | None:
        """Return the next message, or None when ``timeout`` passes."""

    @abstractmethod
    def is_alive(self) -> bool:
        """Whether the connection can still be used."""

    @abstractmethod
    def close(self) -> None:
        """Close the connection."""


Connector = Callable[[Config], ReplicationConnection]


class Client:
    """Follows one table through a logical slot and hands batches to handlers."""

    def __init__(self, config: Config, *handlers: Handler, connector: Connector) -> None:
        self.config = config
        self.table = config.table
        self.slot = config.slot
        self.handlers = list(handlers)
        self._connector = connector
        self._connection: ReplicationConnection | None = None
        self._position_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._receive_position = 0
        self._reply_position = 0
        self._max_position = 0
        self._records: list[WalData] = []
        self._stop = threading.Event()

    @property
    def receive_position(self) -> int:
        with self._position_lock:
            return self._receive_position

    @property
    def reply_position(self) -> int:
        with self._position_lock:
            return self._reply_position

    @property
    def connection(self) -> ReplicationConnection | None:
        return self._connection

    def status(self) -> StandbyStatus:
        """Current standby status built from the tracked positions."""
        with self._position_lock:
            receive, reply = self._receive_position, self._reply_position
        return StandbyStatus(receive, reply, reply)

    def heartbeat(self) -> None:
        """Send the current standby status to the server."""
        with self._send_lock:
            status = self.status()
            get_logger().debug("send heartbeat")
            if self._connection is None:
                raise RuntimeError("not connected")
            self._connection.send_standby_status(status)

    def connect(self) -> str:
        """Open a replication connection, ensure the slot and start streaming."""
        self._connection = connection = self._connector(self.config)
        log = get_logger()
        log.info("connect slot", extra={"fields": {"slot": self.slot}})
        snapshot = ""
        try:
            snapshot = connection.create_replication_slot(self.slot, _PLUGIN)
        except DuplicateSlotError:
            pass
        except Exception as exc:
            raise ConnectionError(f"failed to create replication slot: {exc}") from exc
        log.info("start replication", extra={"fields": {"slot": self.slot}})
        try:
            connection.start_replication(self.slot, 0, -1)
        except Exception:
            connection.close()
            raise
        return snapshot

    def handle_message(self, message: ReplicationMessage) -> None:
        """Apply one replication message; raises ParseError on bad output."""
        beat = message.server_heartbeat
        if beat is not None:
            with self._position_lock:
                if beat.server_wal_end > self._receive_position:
                    self._receive_position = beat.server_wal_end
            if beat.reply_requested:
                try:
                    self.heartbeat()
                except Exception:
                    pass
        if message.wal_message is not None:
            try:
                data = decode_wal(message.wal_message, self.table)
            except ParseError as exc:
                raise ParseError(f"invalid postgres output message: {exc}") from exc
            if data.timestamp > 0:
                self.commit(data)

    def commit(self, data: WalData) -> None:
        """Buffer a change; flush the buffer to handlers on COMMIT or when full."""
        flush = False
        if data.operation_type is Operation.COMMIT:
            flush = True
        elif data.operation_type not in (Operation.BEGIN, Operation.UNKNOWN):
            self._records.append(data)
            flush = len(self._records) > _FLUSH_THRESHOLD
            self._max_position = max(self._max_position, data.pos)
        if flush and self._records:
            records, self._records = self._records, []
            for handler in self.handlers:
                handler.deal(records)
            with self._position_lock:
                self._reply_position = self._max_position

    def _timer(self, stop: threading.Event) -> None:
        while not stop.wait(_HEARTBEAT_INTERVAL):
            try:
                self.heartbeat()
            except Exception:
                pass

    def start(self, stop_event: threading.Event | None = None) -> None:
        """Stream changes until ``stop_event`` is set or :meth:`stop` is called."""
        if not self.handlers:
            raise ValueError("handler is empty")
        if stop_event is not None:
            self._stop = stop_event
        stop = self._stop

        self.connect()
        self.heartbeat()

        timer_stop = threading.Event()
        timer = threading.Thread(target=self._timer, args=(timer_stop,), daemon=True)
        timer.start()
        log = get_logger()
        try:
            while not stop.is_set():
                connection = self._connection
                try:
                    if connection is None:
                        raise ConnectionError("no replication connection")
                    message = connection.wait_for_message(_POLL_INTERVAL)
                except Exception as exc:
                    if stop.is_set():
                        return
                    log.error(
                        "wait for replication message error",
                        extra={"fields": {"error": str(exc)}},
                    )
                    if self._connection is None or not self._connection.is_alive():
                        try:
                            self.connect()
                        except Exception as reset_exc:
                            raise ConnectionError(
                                f"reset replication connection error: {reset_exc}"
                            ) from reset_exc
                    continue
                if message is None:
                    continue
                try:
                    self.handle_message(message)
                except ParseError as exc:
                    log.debug(str(exc))
        finally:
            timer_stop.set()

    def stop(self) -> None:
        """Stop streaming and close the connection."""
        get_logger().info("stop replication connect")
        self._stop.set()
        if self._connection is not None:
            self._connection.close()