"""Decoded write-ahead-log records and conversion of their column values."""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from walstream.operation import Operation, parse_operation
from walstream.parser import parse_message

__all__ = ["WalMessage", "WalData", "decode_wal", "convert_value"]

_INT64_MAX = 2**63 - 1
_INT64_MIN = -(2**63)
_INT_RE = re.compile(r"[+-]?[0-9]+")
_TIMESTAMP_RE = re.compile(r"(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?")
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_INTEGER_TYPES = frozenset(
    {"smallint", "integer", "bigint", "smallserial", "serial", "bigserial", "interval"}
)
_FLOAT_TYPES = frozenset({"float", "decimal", "numeric", "double precision", "real"})


@dataclass
class WalMessage:
    """One chunk of logical decoding output as received from the server."""

    wal_start: int
    wal_data: bytes | str
    server_wal_end: int = 0
    server_time: int = 0


@dataclass
class WalData:
    """A decoded change; ``timestamp`` stays 0 when the change was filtered out."""

    operation_type: Operation = Operation.UNKNOWN
    schema: str = ""
    table: str = ""
    data: dict[str, Any] | None = None
    timestamp: int = 0
    pos: int = 0
    rule: str = ""


def _parse_int(value: str) -> int:
    if not _INT_RE.fullmatch(value):
        return 0
    return max(_INT64_MIN, min(_INT64_MAX, int(value)))


def _parse_float(value: str) -> float:
    if "_" in value or value.strip() != value:
        return 0.0
    try:
        return float(value)
    except ValueError:
        return 0.0


def _parse_json(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return {}


def _parse_timestamp(value: str) -> datetime:
    match = _TIMESTAMP_RE.fullmatch(value)
    if match is None:
        return _ZERO_TIME
    try:
        base = datetime.strptime(match[1], "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return _ZERO_TIME
    microsecond = int((match[2] or "0").ljust(9, "0")[:6])
    return base.replace(microsecond=microsecond, tzinfo=timezone.utc)


def convert_value(value: str, type_name: str) -> Any:
    """Convert a textual column value to a Python value according to its type.

    Malformed numbers fall back to zero, malformed JSON to an empty dict and
    malformed timestamps to the zero time, as the decoder never rejects a row.
    """
    if value == "null":
        return None
    if type_name == "boolean":
        return value in _TRUE_WORDS
    if type_name in _INTEGER_TYPES:
        return _parse_int(value)
    if type_name in _FLOAT_TYPES:
        return _parse_float(value)
    if type_name == "character varying[]":
        return value[1:-1].split(",")
    if type_name == "jsonb":
        return _parse_json(value)
    if type_name == "timestamp without time zone":
        return _parse_timestamp(value)
    return value


def decode_wal(message: WalMessage, table_name: str) -> WalData:
    """Decode a WAL message, keeping only changes to ``table_name``.

    Raises :class:`walstream.parser.ParseError` when the message is malformed.
    """
    raw = message.wal_data
    text = bytes(raw).decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
    result = parse_message(text)

    record = WalData()
    if result.relation:
        schema, sep, rest = result.relation.partition(".")
        if sep:
            table = rest.replace('"', "")
        else:
            schema, table = "", result.relation
        if table != table_name:
            return record
        record.schema = schema
        record.table = table

    record.pos = message.wal_start
    record.operation_type = parse_operation(result.operation)
    record.timestamp = time.time_ns() // 1_000_000
    if not result.columns:
        return record

    data = {name: convert_value(cell.value, cell.type) for name, cell in result.columns.items()}
    data["operate"] = str(record.operation_type)
    record.data = data
    return record