from datetime import datetime, timezone

import pytest

from walstream.operation import Operation
from walstream.parser import ParseError
from walstream.waldata import WalData, WalMessage, convert_value, decode_wal


def test_decode_insert_row():
    message = WalMessage(
        wal_start=77,
        wal_data=b"table public.users: INSERT: id[integer]:1 name[text]:'alice' active[boolean]:true",
    )
    record = decode_wal(message, "users")
    assert record.schema == "public"
    assert record.table == "users"
    assert record.operation_type is Operation.INSERT
    assert record.pos == 77
    assert record.timestamp > 0
    assert record.data == {"id": 1, "name": "alice", "active": True, "operate": "INSERT"}


def test_decode_accepts_text():
    message = WalMessage(wal_start=5, wal_data="table public.users: DELETE: id[bigint]:9")
    record = decode_wal(message, "users")
    assert record.operation_type is Operation.DELETE
    assert record.data == {"id": 9, "operate": "DELETE"}


def test_decode_other_table_is_filtered():
    message = WalMessage(wal_start=3, wal_data=b"table public.orders: INSERT: id[integer]:1")
    record = decode_wal(message, "users")
    assert record == WalData()
    assert record.timestamp == 0


def test_decode_quoted_table_name():
    message = WalMessage(wal_start=1, wal_data=b'table public."Users": UPDATE: id[integer]:4')
    record = decode_wal(message, "Users")
    assert record.table == "Users"
    assert record.operation_type is Operation.UPDATE


def test_decode_transaction_message():
    record = decode_wal(WalMessage(wal_start=12, wal_data=b"BEGIN 529"), "users")
    assert record.operation_type is Operation.BEGIN
    assert record.pos == 12
    assert record.data is None
    assert record.timestamp > 0


def test_decode_no_tuple_data_has_no_columns():
    message = WalMessage(wal_start=2, wal_data=b"table public.users: DELETE: (no-tuple-data)")
    record = decode_wal(message, "users")
    assert record.operation_type is Operation.DELETE
    assert record.data is None


def test_decode_invalid_message_raises():
    with pytest.raises(ParseError):
        decode_wal(WalMessage(wal_start=0, wal_data=b"hello world"), "users")


@pytest.mark.parametrize(
    ("value", "type_name", "expected"),
    [
        ("null", "integer", None),
        ("null", "text", None),
        ("42", "bigint", 42),
        ("-7", "smallint", -7),
        ("abc", "integer", 0),
        ("1.5", "numeric", 1.5),
        ("oops", "real", 0.0),
        ("true", "boolean", True),
        ("false", "boolean", False),
        ("{a,b}", "character varying[]", ["a", "b"]),
        ('{"k": 1}', "jsonb", {"k": 1}),
        ("hello", "text", "hello"),
    ],
)
def test_convert_value(value, type_name, expected):
    assert convert_value(value, type_name) == expected


def test_convert_invalid_jsonb_is_empty_dict():
    assert convert_value("{not json", "jsonb") == {}


def test_convert_int_out_of_range_is_clamped():
    assert convert_value("99999999999999999999", "bigint") == 2**63 - 1


def test_convert_timestamp():
    value = convert_value("2024-01-02 03:04:05", "timestamp without time zone")
    assert value == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_convert_timestamp_with_fraction():
    value = convert_value("2024-01-02 03:04:05.123456789", "timestamp without time zone")
    assert value == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)


def test_convert_bad_timestamp_is_zero_time():
    value = convert_value("yesterday", "timestamp without time zone")
    assert value == datetime(1, 1, 1, tzinfo=timezone.utc)