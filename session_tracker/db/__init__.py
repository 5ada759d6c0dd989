"""Database module for PostgreSQL persistence."""
from .connection import db, Database
from .models import init_db, SESSION_RECORD_COLUMNS, STAKE_COLUMNS

__all__ = ["db", "Database", "init_db", "SESSION_RECORD_COLUMNS", "STAKE_COLUMNS"]
