"""Query executors: the boundary between the engine and client data sources."""

from conferkit.executors.connections import (
    ConnectionCheck,
    ConnectionStatus,
    DataConnection,
    ExecutorPool,
    validate_connection,
)
from conferkit.executors.sql import SQLAlchemyQueryExecutor
from conferkit.executors.types import QueryExecutor, QueryResult

__all__ = [
    "ConnectionCheck",
    "ConnectionStatus",
    "DataConnection",
    "ExecutorPool",
    "QueryExecutor",
    "QueryResult",
    "SQLAlchemyQueryExecutor",
    "validate_connection",
]
