"""Parser for messages produced by the ``test_decoding`` logical decoding plugin."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto

__all__ = ["ParseError", "ColumnValue", "ParseResult", "parse_message"]

_NUL = "\0"


class ParseError(ValueError):
    """Raised when a decoding message cannot be parsed."""


class _State(Enum):
    INITIAL = auto()
    RELATION = auto()
    OPERATION = auto()
    ESCAPED_IDENTIFIER = auto()
    COLUMN_NAME = auto()
    COLUMN_TYPE = auto()
    OPEN_SQUARE_BRACKET = auto()
    COLUMN_VALUE = auto()
    COLUMN_QUOTED_VALUE = auto()
    END = auto()
    NULL = auto()


@dataclass(frozen=True)
class ColumnValue:
    """A column value with its Postgres type and whether it was quoted."""

    value: str
    type: str
    quoted: bool


@dataclass
class ParseResult:
    """The parts of one decoding message, filled by :meth:`parse`."""

    message: str
    transaction: str = ""
    relation: str = ""
    operation: str = ""
    no_tuple_data: bool = False
    columns: dict[str, ColumnValue] = field(default_factory=dict)
    old_columns: dict[str, ColumnValue] = field(default_factory=dict)

    def parse(self) -> ParseResult:
        """Parse the whole message, including column data."""
        self._parse(prelude_only=False)
        return self

    def parse_prelude(self) -> ParseResult:
        """Parse only the transaction or relation and operation."""
        self._parse(prelude_only=True)
        return self

    def _parse(self, prelude_only: bool) -> None:
        message = self.message
        length = len(message)

        if length < 5:
            raise ParseError(f"message too short: {message}")

        head = message[:5]
        if head in ("BEGIN", "COMMI"):
            fields = message.split()
            if len(fields) != 2:
                raise ParseError(f"unknown transaction message: {message}")
            self.operation, self.transaction = fields
            return
        if head != "table":
            raise ParseError(f"unknown logical message received: {message}")

        current = _State.RELATION
        prev = _State.INITIAL
        token_start = 6
        old_key = False
        column_name = ""
        column_type = ""

        i = 0
        while i <= length:
            if i < token_start:
                i = token_start
                continue

            chr_ = message[i] if i < length else _NUL
            chr_next = message[i + 1] if i + 1 < length else _NUL

            if current is _State.NULL:
                raise ParseError(f"invalid parse state null at {i}")

            elif current is _State.RELATION:
                if chr_ == ":":
                    if chr_next != " ":
                        raise ParseError(f"invalid character ' ' at {i + 1}")
                    self.relation = message[token_start:i]
                    token_start = i + 2
                    current = _State.OPERATION
                elif chr_ == '"':
                    prev, current = current, _State.ESCAPED_IDENTIFIER

            elif current is _State.OPERATION:
                if chr_ == ":":
                    if chr_next != " ":
                        raise ParseError(f"invalid character ' ' at {i + 1}")
                    self.operation = message[token_start:i]
                    token_start = i + 2
                    current = _State.COLUMN_NAME
                    if prelude_only:
                        break

            elif current is _State.COLUMN_NAME:
                if chr_ == "[":
                    column_name = message[token_start:i]
                    token_start = i + 1
                    current = _State.COLUMN_TYPE
                elif chr_ == ":":
                    marker = message[token_start:i]
                    if marker == "old-key":
                        old_key = True
                    elif marker == "new-tuple":
                        old_key = False
                    token_start = i + 2
                elif chr_ == "(" and message[token_start:] == "(no-tuple-data)":
                    self.no_tuple_data = True
                    current = _State.END
                elif chr_ == '"':
                    prev, current = current, _State.ESCAPED_IDENTIFIER

            elif current is _State.COLUMN_TYPE:
                if chr_ == "]":
                    if chr_next != ":":
                        raise ParseError(f"invalid character '{chr_next}' at {i + 1}")
                    column_type = message[token_start:i]
                    token_start = i + 2
                    current = _State.COLUMN_VALUE
                elif chr_ == '"':
                    prev, current = current, _State.ESCAPED_IDENTIFIER
                elif chr_ == "[":
                    prev, current = current, _State.OPEN_SQUARE_BRACKET

            elif current is _State.COLUMN_VALUE:
                if chr_ in (_NUL, " "):
                    quoted = prev is _State.COLUMN_QUOTED_VALUE
                    if quoted:
                        value = message[token_start + 1 : i - 1].replace("''", "'")
                    else:
                        value = message[token_start:i]
                    cell = ColumnValue(value=value, type=column_type, quoted=quoted)
                    target = self.old_columns if old_key else self.columns
                    target[column_name] = cell

                if chr_ == _NUL:
                    current = _State.END
                elif chr_ == " ":
                    token_start = i + 1
                    prev, current = current, _State.COLUMN_NAME
                elif chr_ == "'":
                    prev, current = current, _State.COLUMN_QUOTED_VALUE

            elif current is _State.OPEN_SQUARE_BRACKET:
                if chr_ == "]":
                    current, prev = prev, _State.NULL

            elif current is _State.ESCAPED_IDENTIFIER:
                if chr_ == '"':
                    if chr_next == '"':
                        i += 1
                    else:
                        current, prev = prev, _State.NULL

            elif current is _State.COLUMN_QUOTED_VALUE:
                if chr_ == "'":
                    if chr_next == "'":
                        i += 1
                    else:
                        prev, current = current, prev

            i += 1

        expected = _State.COLUMN_NAME if prelude_only else _State.END
        if current is not expected:
            raise ParseError(f"invalid parser end state: {current.name}")


def parse_message(message: str) -> ParseResult:
    """Parse a complete decoding message and return its result."""
    return ParseResult(message).parse()