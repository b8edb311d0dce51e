"""Storage for templates and conferences."""

from conferkit.persistence.adapter import Repository
from conferkit.persistence.config import DatabaseConfig, create_repository
from conferkit.persistence.memory import InMemoryRepository
from conferkit.persistence.sql import SQLRepository

__all__ = [
    "DatabaseConfig",
    "InMemoryRepository",
    "Repository",
    "SQLRepository",
    "create_repository",
]
