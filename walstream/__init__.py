"""Decode PostgreSQL test_decoding logical replication output into batched row changes."""

__version__ = "0.1.0"

__all__ = ["client", "log", "operation", "parser", "waldata"]