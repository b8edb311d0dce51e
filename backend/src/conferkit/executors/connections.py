"""Data-source connections.

Each conference points at the connection its item queries run against. A
connection is a named SQLAlchemy URL; the ExecutorPool keeps one executor per
connection so engines (and their connection pools) are reused across
evaluations.

Usage:
    pool = ExecutorPool(SQLAlchemyQueryExecutor)
    executor = pool.get(connection)
    result = await executor.execute("SELECT 1")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from conferkit.executors.types import QueryExecutor
from conferkit.templates.inputs import ConfigurationIssue
from conferkit.templates.types import new_id

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[str], QueryExecutor]


class ConnectionStatus(str, Enum):
    """Result of the last connectivity check."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


@dataclass
class DataConnection:
    """A named data source.

    Attributes:
        name: Display name ("Produção - Loja Central")
        url: SQLAlchemy database URL, credentials included
        status: ``inactive`` until a connectivity check succeeds
    """

    name: str
    url: str
    status: ConnectionStatus = ConnectionStatus.INACTIVE
    id: str = field(default_factory=new_id)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None

    @property
    def masked_url(self) -> str:
        """The URL with its password replaced by ``***``."""
        try:
            return make_url(self.url).render_as_string(hide_password=True)
        except ArgumentError:
            return self.url

    def to_dict(self, hide_password: bool = False) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.masked_url if hide_password else self.url,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "createdBy": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DataConnection":
        created = data.get("createdAt")
        updated = data.get("updatedAt")
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            url=data.get("url", ""),
            status=ConnectionStatus(data.get("status") or "inactive"),
            created_at=datetime.fromisoformat(created) if created else None,
            updated_at=datetime.fromisoformat(updated) if updated else None,
            created_by=data.get("createdBy"),
        )


def validate_connection(connection: DataConnection) -> list[ConfigurationIssue]:
    """Check that a connection has a name and a URL SQLAlchemy can parse."""
    issues: list[ConfigurationIssue] = []
    if not (connection.name or "").strip():
        issues.append(
            ConfigurationIssue(message="Connection name is required", code="MISSING_NAME", path="name")
        )
    try:
        make_url(connection.url or "")
    except ArgumentError:
        issues.append(
            ConfigurationIssue(
                message=f"Could not parse database URL for connection '{connection.name}'",
                code="INVALID_URL",
                path="url",
            )
        )
    return issues


class ExecutorPool:
    """One executor per connection, created on first use."""

    def __init__(self, factory: ExecutorFactory):
        self.factory = factory
        self._executors: dict[str, tuple[str, QueryExecutor]] = {}

    def get(self, connection: DataConnection) -> QueryExecutor:
        """Executor for a connection; rebuilt when the connection's URL changed."""
        cached = self._executors.get(connection.id)
        if cached is not None:
            url, executor = cached
            if url == connection.url:
                return executor
            self._dispose(executor)

        executor = self.factory(connection.url)
        self._executors[connection.id] = (connection.url, executor)
        logger.info("Created executor for connection %s (%s)", connection.id, connection.masked_url)
        return executor

    def discard(self, connection_id: str) -> None:
        cached = self._executors.pop(connection_id, None)
        if cached is not None:
            self._dispose(cached[1])

    def dispose(self) -> None:
        for connection_id in list(self._executors):
            self.discard(connection_id)

    @staticmethod
    def _dispose(executor: QueryExecutor) -> None:
        dispose = getattr(executor, "dispose", None)
        if callable(dispose):
            dispose()


@dataclass
class ConnectionCheck:
    """Outcome of a connectivity check."""

    connection: DataConnection
    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "connection": self.connection.to_dict(hide_password=True),
        }
