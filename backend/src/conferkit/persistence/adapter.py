"""Repository Protocol: shared interface for template, conference and connection storage."""

from typing import Protocol, runtime_checkable

from conferkit.conference.types import Conference
from conferkit.executors.connections import DataConnection
from conferkit.templates.types import ChecklistTemplate


@runtime_checkable
class Repository(Protocol):
    """Interface all repositories must implement.

    Getters return independent copies; mutating a returned aggregate has no
    effect until it is saved again.
    """

    def get_template(self, template_id: str) -> ChecklistTemplate | None: ...

    def save_template(self, template: ChecklistTemplate) -> ChecklistTemplate: ...

    def delete_template(self, template_id: str) -> bool: ...

    def list_templates(self) -> list[ChecklistTemplate]: ...

    def get_conference(self, conference_id: str) -> Conference | None: ...

    def get_conference_by_token(self, token: str) -> Conference | None: ...

    def save_conference(self, conference: Conference) -> Conference: ...

    def delete_conference(self, conference_id: str) -> bool: ...

    def list_conferences(
        self,
        template_id: str | None = None,
        connection_id: str | None = None,
    ) -> list[Conference]: ...

    def get_connection(self, connection_id: str) -> DataConnection | None: ...

    def save_connection(self, connection: DataConnection) -> DataConnection: ...

    def delete_connection(self, connection_id: str) -> bool: ...

    def list_connections(self) -> list[DataConnection]: ...
