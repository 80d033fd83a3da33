from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Storage: ft_collections
# ---------------------------


class FtCollection(Base):
    """One named application collection stored wholesale as JSON.

    Keys are the collection names used by the tracker (``transactions``,
    ``accounts``, ``reconciliationRules``...). Saves overwrite the whole
    payload; there is no per-record storage.
    """

    __tablename__ = "ft_collections"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    # List for most collections; objects (settings, profiles) are allowed.
    payload: Mapped[Any] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


__all__ = [
    "Base",
    "FtCollection",
]
