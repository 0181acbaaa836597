"""Kinds of change carried by a decoding message."""

from __future__ import annotations

from enum import IntEnum

__all__ = ["Operation", "parse_operation"]


class Operation(IntEnum):
    """Operation of a decoded change."""

    UNKNOWN = 0
    BEGIN = 1
    INSERT = 2
    DELETE = 3
    UPDATE = 4
    COMMIT = 5

    def __str__(self) -> str:
        return self.name


def parse_operation(name: str) -> Operation:
    """Map an operation name such as ``"INSERT"`` to its member; else UNKNOWN."""
    return Operation.__members__.get(name, Operation.UNKNOWN)