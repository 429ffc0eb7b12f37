"""
Database CRUD operations.

Provides async functions for creating, reading and confirming stored
scans.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slabscan.models.card import ResolvedIdentity
from slabscan.models.db import ScanRecordDB
from slabscan.models.scan import ScanAnalysis, ScanRecord, ScanStatus, Valuation


async def get_scan_record(session: AsyncSession, scan_id: str) -> ScanRecordDB | None:
    """
    Get a stored scan by id.

    Returns None if no scan exists with this id.
    """
    result = await session.execute(select(ScanRecordDB).where(ScanRecordDB.scan_id == scan_id))
    return result.scalar_one_or_none()


async def create_scan_record(
    session: AsyncSession,
    scan_id: str,
    analysis: ScanAnalysis,
    now: datetime,
) -> ScanRecordDB:
    """Insert a new scan in the analyzed state."""
    record = ScanRecordDB(
        scan_id=scan_id,
        identity=analysis.identity.to_dict(),
        valuation=analysis.valuation.to_dict(),
        needs_user_confirmation=analysis.needs_user_confirmation,
        status=ScanStatus.ANALYZED.value,
        created_at=now,
        updated_at=now,
    )
    session.add(record)
    await session.flush()
    return record


async def confirm_scan_record(
    session: AsyncSession,
    scan_id: str,
    now: datetime,
) -> ScanRecordDB | None:
    """
    Mark a scan confirmed.

    Confirming an already confirmed scan leaves it untouched.

    Returns:
        The stored scan, or None if no scan exists with this id
    """
    record = await get_scan_record(session, scan_id)
    if not record:
        return None

    if record.status != ScanStatus.CONFIRMED.value:
        record.status = ScanStatus.CONFIRMED.value
        record.updated_at = now
        await session.flush()

    return record


def scan_record_to_model(record: ScanRecordDB) -> ScanRecord:
    """Convert a database scan to a domain model."""
    return ScanRecord(
        scan_id=record.scan_id,
        identity=ResolvedIdentity.from_dict(record.identity),
        valuation=Valuation.from_dict(record.valuation),
        needs_user_confirmation=record.needs_user_confirmation,
        status=ScanStatus(record.status),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
