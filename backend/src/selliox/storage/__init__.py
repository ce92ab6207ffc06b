"""Persistence layer."""

from selliox.storage.db import Database, db
from selliox.storage.models import Base

__all__ = ["Base", "Database", "db"]
