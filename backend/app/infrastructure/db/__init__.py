"""
Database Infrastructure Package for CoachBridge

Exports database management and the unit of work.
"""

from app.infrastructure.db.database import DatabaseManager, resolve_database_url
from app.infrastructure.db.unit_of_work import UnitOfWork


__all__ = [
    "DatabaseManager",
    "resolve_database_url",
    "UnitOfWork",
]
