"""Local SQLite storage for syssla_sync records."""

from .schema import SCHEMA_VERSION, table_for
from .sqlite import LocalStore

__all__ = ["LocalStore", "SCHEMA_VERSION", "table_for"]
