"""
Storage Layer for the Organ Matching Service

Provides:
- RecordStore abstraction (InMemory for dev, Postgres for prod)
- Units of work with optimistic version checks
- Environment-based configuration
"""

from .store import (
    RecordStore,
    UnitOfWork,
    InMemoryRecordStore,
    PostgresRecordStore,
    StoreError,
    ConcurrencyError,
    RecordExistsError,
    LockTimeoutError,
    SCHEMA_SQL,
)
from .config import (
    DatabaseConfig,
    RecordStoreDriver,
    get_database_url,
    get_recordstore_driver,
    create_record_store,
)

__all__ = [
    "RecordStore",
    "UnitOfWork",
    "InMemoryRecordStore",
    "PostgresRecordStore",
    "StoreError",
    "ConcurrencyError",
    "RecordExistsError",
    "LockTimeoutError",
    "SCHEMA_SQL",
    "DatabaseConfig",
    "RecordStoreDriver",
    "get_database_url",
    "get_recordstore_driver",
    "create_record_store",
]
