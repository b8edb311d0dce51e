"""In-memory repository, used by tests and ``memory://`` configurations."""

from typing import Any

from conferkit.conference.types import Conference
from conferkit.executors.connections import DataConnection
from conferkit.templates.types import ChecklistTemplate


class InMemoryRepository:
    """Keeps serialized aggregates in dicts.

    Storing ``to_dict`` output rather than the objects themselves means a
    caller can never mutate stored state without calling ``save_*``.
    """

    def __init__(self):
        self._templates: dict[str, dict[str, Any]] = {}
        self._conferences: dict[str, dict[str, Any]] = {}
        self._connections: dict[str, dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def get_template(self, template_id: str) -> ChecklistTemplate | None:
        data = self._templates.get(template_id)
        return ChecklistTemplate.from_dict(data) if data is not None else None

    def save_template(self, template: ChecklistTemplate) -> ChecklistTemplate:
        self._templates[template.id] = template.to_dict()
        return self.get_template(template.id)  # type: ignore[return-value]

    def delete_template(self, template_id: str) -> bool:
        return self._templates.pop(template_id, None) is not None

    def list_templates(self) -> list[ChecklistTemplate]:
        templates = [ChecklistTemplate.from_dict(d) for d in self._templates.values()]
        return sorted(templates, key=lambda t: t.name.lower())

    # ------------------------------------------------------------------
    # Conferences
    # ------------------------------------------------------------------

    def get_conference(self, conference_id: str) -> Conference | None:
        data = self._conferences.get(conference_id)
        return Conference.from_dict(data) if data is not None else None

    def get_conference_by_token(self, token: str) -> Conference | None:
        for data in self._conferences.values():
            if data.get("linkToken") == token:
                return Conference.from_dict(data)
        return None

    def save_conference(self, conference: Conference) -> Conference:
        self._conferences[conference.id] = conference.to_dict()
        return self.get_conference(conference.id)  # type: ignore[return-value]

    def delete_conference(self, conference_id: str) -> bool:
        return self._conferences.pop(conference_id, None) is not None

    def list_conferences(
        self,
        template_id: str | None = None,
        connection_id: str | None = None,
    ) -> list[Conference]:
        conferences = [
            Conference.from_dict(d)
            for d in self._conferences.values()
            if (template_id is None or d.get("templateId") == template_id)
            and (connection_id is None or d.get("connectionId") == connection_id)
        ]
        return sorted(conferences, key=lambda c: c.created_at, reverse=True)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def get_connection(self, connection_id: str) -> DataConnection | None:
        data = self._connections.get(connection_id)
        return DataConnection.from_dict(data) if data is not None else None

    def save_connection(self, connection: DataConnection) -> DataConnection:
        self._connections[connection.id] = connection.to_dict()
        return self.get_connection(connection.id)  # type: ignore[return-value]

    def delete_connection(self, connection_id: str) -> bool:
        return self._connections.pop(connection_id, None) is not None

    def list_connections(self) -> list[DataConnection]:
        connections = [DataConnection.from_dict(d) for d in self._connections.values()]
        return sorted(connections, key=lambda c: c.name.lower())
