# walstream

`walstream` reads the text output of PostgreSQL's `test_decoding` logical
decoding plugin. It turns each line into a structured row change and passes
committed batches of changes to handlers that you write.

The package has no third-party dependencies.

## Modules

- `walstream.parser` parses a single `test_decoding` line into a `ParseResult`.
- `walstream.operation` defines the `Operation` enum and `parse_operation`.
- `walstream.waldata` decodes a `WalMessage` into a `WalData` record. It
  filters by table name and converts column values to Python types.
- `walstream.client` drives a replication connection. It creates the slot,
  sends standby status heartbeats, batches changes up to each `COMMIT` and
  calls your `Handler` objects.
- `walstream.log` writes JSON log lines.

## Parsing a message

```python
from walstream.parser import ParseError, parse_message

result = parse_message("table public.users: INSERT: id[integer]:1 name[text]:'alice'")
result.relation       # "public.users"
result.operation      # "INSERT"
result.columns["id"]  # ColumnValue(value="1", type="integer", quoted=False)
result.columns["name"]  # ColumnValue(value="alice", type="text", quoted=True)

try:
    parse_message("bogus")
except ParseError as exc:
    print(exc)
```

Transaction lines such as `BEGIN 529` and `COMMIT 529` fill `operation` and
`transaction`. In quoted values, a doubled `''` is unescaped to a single `'`.
Columns that follow an `old-key:` marker are stored in `old_columns`, not in
`columns`. A line that ends in `(no-tuple-data)` sets `no_tuple_data`.

To parse only the relation and operation, for example to filter by table
before doing the rest of the work, build a `ParseResult` yourself and call
`parse_prelude()`:

```python
from walstream.parser import ParseResult

prelude = ParseResult("table public.users: DELETE: id[integer]:1").parse_prelude()
prelude.operation  # "DELETE"
prelude.columns    # {}
```

`ParseError` is a subclass of `ValueError`.

## Operations

`Operation` is an `IntEnum` with the members `UNKNOWN`, `BEGIN`, `INSERT`,
`DELETE`, `UPDATE` and `COMMIT`. `str()` of a member gives its name.
`parse_operation(name)` maps an exact name such as `"INSERT"` to its member.
Any other name maps to `UNKNOWN`.

## Decoding row changes

`decode_wal(message, table_name)` takes a `WalMessage` and returns a `WalData`.
`wal_data` may be `bytes` or `str`. A malformed line raises `ParseError`.

If a change belongs to a table other than `table_name`, the record that comes
back has `timestamp == 0`. This also applies to a relation in the form
`schema."table"`, because quotes are removed from the table part before the
names are compared.

Otherwise the record carries the following:

- `schema` and `table`
- `pos`, taken from `wal_start`
- `operation_type`
- `timestamp` in milliseconds
- `data` when the line had columns. It holds the converted columns, plus an
  `"operate"` key that gives the operation name.

`convert_value(value, type_name)` converts one textual column value:

| PostgreSQL type | Python value | On malformed input |
| --- | --- | --- |
| `boolean` | `bool`. `1`, `t`, `T`, `true`, `True` and `TRUE` are true | `False` |
| `smallint`, `integer`, `bigint`, `smallserial`, `serial`, `bigserial`, `interval` | `int`, clamped to the 64-bit range | `0` |
| `float`, `decimal`, `numeric`, `double precision`, `real` | `float` | `0.0` |
| `character varying[]` | `list` of strings, split on `,` | |
| `jsonb` | the decoded JSON value | `{}` |
| `timestamp without time zone` | UTC `datetime` | `datetime(1, 1, 1, tzinfo=UTC)` |

The literal `null` becomes `None`. Any other type is kept as text.

## Streaming changes

Subclass `Handler` and implement `deal(records)`. It receives the list of
buffered `WalData` records each time a `COMMIT` arrives. A batch is also
flushed early once it grows past 20,000 records. `BEGIN` and `UNKNOWN` changes
are never buffered.

`Client` needs a *connector*. This is a callable that takes the `Config` and
returns a `ReplicationConnection`. `ReplicationConnection` is an abstract base
class with these methods:

- `create_replication_slot(slot, plugin)`. Raise `DuplicateSlotError` if the
  slot already exists.
- `start_replication(slot, start_lsn, timeline)`
- `send_standby_status(status)`
- `wait_for_message(timeout)`. Return a `ReplicationMessage`, or `None` on
  timeout.
- `is_alive()`
- `close()`

```python
import threading

from walstream.client import Client, Config, Handler


class PrintHandler(Handler):
    def deal(self, records):
        for record in records:
            print(record.operation_type, record.table, record.data)


password = "password"
config = Config(
    host="localhost",
    port=5432,
    user="user",
    password=password,
    database="app",
    table="users",
    slot="walstream_slot",
)

# open_connection is your own function returning a ReplicationConnection.
client = Client(config, PrintHandler(), connector=open_connection)
stop_event = threading.Event()
client.start(stop_event)
```

`start` raises `ValueError` if no handler was given. It does the following, in
order:

1. Connects and creates the slot with the `test_decoding` plugin. An existing
   slot is reused.
2. Starts replication.
3. Sends a standby status.
4. Consumes messages until `stop_event` is set or `stop()` is called.

While it runs, a background thread sends a standby status every five seconds.
The client also sends one whenever a server heartbeat asks for a reply. If
waiting for a message fails and the connection is no longer alive, the client
reconnects. If that fails, `start` raises `ConnectionError`. Lines that cannot
be parsed are logged at debug level and skipped.

`stop()` sets the stop event and closes the connection.

The client reports three positions in each `StandbyStatus`:

- The write position is the highest server WAL end seen in heartbeats.
- The flush and apply positions are the highest `pos` of the last batch
  handed to handlers.

You can also feed messages yourself with `handle_message(message)`. It raises
`ParseError` for malformed output. To buffer a decoded record directly, call
`commit(data)`.

## Logging

`walstream.log.setup(level, stream=None)` sends the package logger's output to
`stream`, or to standard output if no stream is given, as one JSON object per
line. The accepted levels are:

- `debug`
- `info`, which is also used for an empty string
- `warn`
- `error`
- `dpanic`, `panic` and `fatal`, which all map to critical

Any other name raises `ValueError`.

Each line has the keys `time`, `level`, `logger`, `caller` and `message`. Any
`extra={"fields": {...}}` values are merged into the object. A `stacktrace`
key is added when exception information is attached.

`get_logger()` returns the package logger. `JsonFormatter` can be used with
any `logging` handler.

## What is not included

`walstream` ships no PostgreSQL driver and no concrete
`ReplicationConnection`. You must provide the connector that opens the
replication connection.

There is no command-line program. The package is used as a library.