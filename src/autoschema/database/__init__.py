"""
Database integration package for autoschema.

This package provides:
- The driver capability interface
- SQLite and PostgreSQL drivers
- Live schema introspection
- Driver selection from a database URL
"""

from .base import DatabaseDriver
from .introspection import LiveSchema, SchemaIntrospector
from .sqlite import SQLiteDriver
from .connection import ConnectionConfig, ConnectionPool
from .postgres import PostgresDriver
from .factory import create_driver

__all__ = [
    "DatabaseDriver",
    "LiveSchema",
    "SchemaIntrospector",
    "SQLiteDriver",
    "ConnectionConfig",
    "ConnectionPool",
    "PostgresDriver",
    "create_driver",
]
