from slabscan.db.database import build_engine, build_session_factory, drop_db, init_db
from slabscan.db.operations import (
    confirm_scan_record,
    create_scan_record,
    get_scan_record,
    scan_record_to_model,
)
from slabscan.db.store import (
    InMemoryScanStore,
    ScanStore,
    SqlScanStore,
    build_scan_store,
)

__all__ = [
    "InMemoryScanStore",
    "ScanStore",
    "SqlScanStore",
    "build_engine",
    "build_scan_store",
    "build_session_factory",
    "confirm_scan_record",
    "create_scan_record",
    "drop_db",
    "get_scan_record",
    "init_db",
    "scan_record_to_model",
]
