"""Query executor interface.

The executor is the one asynchronous collaborator of the engine: it runs a
concrete query against a client's data source and returns rows. Executions
for different items are independent and may run concurrently.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class QueryResult:
    """Rows returned by a query, each a column -> scalar mapping."""

    rows: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"rows": self.rows}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryResult":
        return cls(rows=list(data.get("rows", [])))


@runtime_checkable
class QueryExecutor(Protocol):
    """Protocol for running concrete queries.

    Implementations raise ``conferkit.engine.errors.ExecutionError`` on
    connectivity problems, malformed queries and timeouts.
    """

    async def execute(self, query: str) -> QueryResult:
        """Run a query.

        Args:
            query: Concrete query text, placeholders already substituted

        Returns:
            The rows produced by the query
        """
        ...
