"""Storage collaborator: Protocols plus the async SQLAlchemy implementation."""

from .interfaces import AccountStore, ExecutionRecordStore, PreferenceStore
from .sql import (
    SqlAccountStore,
    SqlExecutionRecordStore,
    SqlPreferenceStore,
    SqlStoreBundle,
    build_sql_stores,
    create_all,
    create_engine,
    create_sessionmaker,
)

__all__ = [
    "AccountStore",
    "ExecutionRecordStore",
    "PreferenceStore",
    "SqlAccountStore",
    "SqlExecutionRecordStore",
    "SqlPreferenceStore",
    "SqlStoreBundle",
    "build_sql_stores",
    "create_all",
    "create_engine",
    "create_sessionmaker",
]
