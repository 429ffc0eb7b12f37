"""Tests for scan storage backends."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from slabscan.config import Settings
from slabscan.db.database import build_engine, build_session_factory, drop_db, init_db
from slabscan.db.store import (
    InMemoryScanStore,
    ScanStore,
    SqlScanStore,
    build_scan_store,
)
from slabscan.market.comps import fallback_valuation
from slabscan.models.card import GradingCompany, ResolvedIdentity
from slabscan.models.scan import ScanAnalysis, ScanStatus


@pytest.fixture
def analysis(charizard_identity: ResolvedIdentity) -> ScanAnalysis:
    return ScanAnalysis(
        identity=charizard_identity,
        valuation=fallback_valuation("4/102", 9.0, GradingCompany.PSA),
        needs_user_confirmation=True,
    )


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await drop_db(engine)
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
async def store(request: pytest.FixtureRequest, async_engine: AsyncEngine) -> ScanStore:
    """Every test runs against both backends."""
    if request.param == "memory":
        return InMemoryScanStore()
    return SqlScanStore(build_session_factory(async_engine))


class TestScanStore:
    async def test_create_and_get(self, store: ScanStore, analysis: ScanAnalysis) -> None:
        created = await store.create_scan(analysis)

        fetched = await store.get_scan(created.scan_id)

        assert fetched is not None
        assert fetched.scan_id == created.scan_id
        assert fetched.identity == analysis.identity
        assert fetched.valuation == analysis.valuation
        assert fetched.needs_user_confirmation is True
        assert fetched.status == ScanStatus.ANALYZED

    async def test_ids_are_unique(self, store: ScanStore, analysis: ScanAnalysis) -> None:
        first = await store.create_scan(analysis)
        second = await store.create_scan(analysis)

        assert first.scan_id != second.scan_id

    async def test_get_unknown(self, store: ScanStore) -> None:
        assert await store.get_scan("no-such-scan") is None

    async def test_confirm_unknown(self, store: ScanStore) -> None:
        """Confirming a missing scan reports not found."""
        assert await store.confirm_scan("no-such-scan") is None

    async def test_confirm(self, store: ScanStore, analysis: ScanAnalysis) -> None:
        created = await store.create_scan(analysis)

        confirmed = await store.confirm_scan(created.scan_id)

        assert confirmed is not None
        assert confirmed.status == ScanStatus.CONFIRMED
        fetched = await store.get_scan(created.scan_id)
        assert fetched is not None
        assert fetched.status == ScanStatus.CONFIRMED

    async def test_confirm_is_idempotent(self, store: ScanStore, analysis: ScanAnalysis) -> None:
        """Confirming twice leaves the scan confirmed."""
        created = await store.create_scan(analysis)

        await store.confirm_scan(created.scan_id)
        again = await store.confirm_scan(created.scan_id)

        assert again is not None
        assert again.status == ScanStatus.CONFIRMED

    async def test_ping(self, store: ScanStore) -> None:
        assert await store.ping() is True


class TestInMemoryScanStore:
    async def test_confirm_bumps_updated_at_once(self, analysis: ScanAnalysis) -> None:
        """Only the first confirmation changes updated_at."""
        times = iter(
            datetime(2025, 1, 1, tzinfo=UTC) + timedelta(minutes=m) for m in range(3)
        )
        store = InMemoryScanStore(clock=lambda: next(times))

        created = await store.create_scan(analysis)
        confirmed = await store.confirm_scan(created.scan_id)
        again = await store.confirm_scan(created.scan_id)

        assert confirmed is not None and again is not None
        assert confirmed.updated_at > created.updated_at
        assert again.updated_at == confirmed.updated_at
        assert confirmed.created_at == created.created_at


class TestSqlScanStore:
    async def test_ping_fails_when_database_unreachable(self, tmp_path) -> None:
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/scans.db")
        store = SqlScanStore(build_session_factory(engine), engine=engine)

        assert await store.ping() is False

        await store.close()


class TestBuildScanStore:
    async def test_memory_without_database_url(self) -> None:
        store = await build_scan_store(Settings(database_url=""))

        assert isinstance(store, InMemoryScanStore)

    async def test_sql_with_database_url(self) -> None:
        store = await build_scan_store(Settings(database_url="sqlite+aiosqlite:///:memory:"))

        try:
            assert isinstance(store, SqlScanStore)
            assert await store.ping() is True
        finally:
            await store.close()
