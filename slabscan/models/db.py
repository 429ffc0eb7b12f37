"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ScanRecordDB(Base):
    """
    A stored scan.

    Identity and valuation are stored as JSON in the shape of their
    dataclass to_dict() output.
    """

    __tablename__ = "scans"

    scan_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    identity: Mapped[dict[str, Any]] = mapped_column(JSON)
    valuation: Mapped[dict[str, Any]] = mapped_column(JSON)
    needs_user_confirmation: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<ScanRecordDB(scan_id={self.scan_id}, status={self.status})>"
