"""
Database layer: connection management and ORM models.
"""

from .connection import Base, DatabaseManager

__all__ = ["Base", "DatabaseManager"]
