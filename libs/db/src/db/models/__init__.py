"""Shared SQLAlchemy models registry for the tracker database.

Currently holds the collection store used by ``finance_tracker.persistence``.
"""

from .finance import Base, FtCollection

__all__ = [
    "Base",
    "FtCollection",
]
