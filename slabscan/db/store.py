"""
Scan storage.

A ScanStore keeps analyzed scans so they can be fetched and confirmed
later. Two implementations:

- InMemoryScanStore: a dict guarded by an asyncio.Lock. Used when no
  database is configured; contents are lost on restart.
- SqlScanStore: SQLAlchemy async sessions over the scans table.

The store is built once at startup and shared by every request.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from slabscan.config import Settings
from slabscan.db.database import build_engine, build_session_factory, init_db
from slabscan.db.operations import (
    confirm_scan_record,
    create_scan_record,
    get_scan_record,
    scan_record_to_model,
)
from slabscan.models.scan import ScanAnalysis, ScanRecord, ScanStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def new_scan_id() -> str:
    return str(uuid.uuid4())


class ScanStore(Protocol):
    """Persistence for analyzed scans."""

    backend: str

    async def create_scan(self, analysis: ScanAnalysis) -> ScanRecord: ...

    async def get_scan(self, scan_id: str) -> ScanRecord | None: ...

    async def confirm_scan(self, scan_id: str) -> ScanRecord | None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class InMemoryScanStore:
    """Process-local scan store."""

    backend = "memory"

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._scans: dict[str, ScanRecord] = {}
        self._lock = asyncio.Lock()

    async def create_scan(self, analysis: ScanAnalysis) -> ScanRecord:
        now = self._clock()
        record = ScanRecord(
            scan_id=new_scan_id(),
            identity=analysis.identity,
            valuation=analysis.valuation,
            needs_user_confirmation=analysis.needs_user_confirmation,
            status=ScanStatus.ANALYZED,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._scans[record.scan_id] = record
        return record

    async def get_scan(self, scan_id: str) -> ScanRecord | None:
        async with self._lock:
            return self._scans.get(scan_id)

    async def confirm_scan(self, scan_id: str) -> ScanRecord | None:
        """Confirm a scan; a second confirm returns the record unchanged."""
        async with self._lock:
            record = self._scans.get(scan_id)
            if record is None or record.status == ScanStatus.CONFIRMED:
                return record

            confirmed = replace(record, status=ScanStatus.CONFIRMED, updated_at=self._clock())
            self._scans[scan_id] = confirmed
            return confirmed

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class SqlScanStore:
    """
    Scan store backed by a SQL database.

    Each operation runs in its own session and commits on success.
    """

    backend = "sql"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.engine = engine
        self._clock = clock

    async def create_scan(self, analysis: ScanAnalysis) -> ScanRecord:
        async with self.session_factory() as session:
            try:
                record = await create_scan_record(session, new_scan_id(), analysis, self._clock())
                model = scan_record_to_model(record)
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                raise
        return model

    async def get_scan(self, scan_id: str) -> ScanRecord | None:
        async with self.session_factory() as session:
            record = await get_scan_record(session, scan_id)
            return scan_record_to_model(record) if record else None

    async def confirm_scan(self, scan_id: str) -> ScanRecord | None:
        async with self.session_factory() as session:
            try:
                record = await confirm_scan_record(session, scan_id, self._clock())
                model = scan_record_to_model(record) if record else None
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                raise
        return model

    async def ping(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning("SCAN_STORE_PING_FAILED", extra={"error": str(e)})
            return False

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


async def build_scan_store(settings: Settings) -> ScanStore:
    """
    Build the scan store for the configured environment.

    Uses SQL when settings.database_url is set, creating tables if needed.
    """
    if not settings.database_url:
        logger.info("SCAN_STORE_SELECTED", extra={"backend": "memory"})
        return InMemoryScanStore()

    engine = build_engine(settings.database_url, echo=settings.debug)
    await init_db(engine)
    logger.info("SCAN_STORE_SELECTED", extra={"backend": "sql"})
    return SqlScanStore(build_session_factory(engine), engine=engine)
