"""Database configuration and repository factory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from conferkit.persistence.adapter import Repository

MEMORY_URL = "memory://"


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:/// and postgresql:// URL schemes, plus ``memory://``
    for a process-local store.
    """

    url: str

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. DATABASE_URL env var (standard)
        2. CONFERKIT_DB_PATH env var (converted to sqlite:/// URL)
        3. Default: sqlite:///{base_path}/data/conferkit.db
        """
        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url)

        db_path = os.environ.get("CONFERKIT_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}")

        if base_path:
            return cls(url=f"sqlite:///{base_path / 'data' / 'conferkit.db'}")

        return cls(url="sqlite:///conferkit.db")

    @property
    def is_memory(self) -> bool:
        return self.url == MEMORY_URL

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def sqlite_path(self) -> Path | None:
        """Filesystem path of a file-backed SQLite URL, None otherwise."""
        if not self.is_sqlite:
            return None
        path = self.url.removeprefix("sqlite:///")
        if not path or path == ":memory:" or path == self.url:
            return None
        return Path(path)


def create_repository(config: DatabaseConfig) -> Repository:
    """Create a repository based on the database URL scheme.

    Raises:
        ValueError: For unsupported URL schemes.
    """
    if config.is_memory:
        from conferkit.persistence.memory import InMemoryRepository

        return InMemoryRepository()

    if config.is_sqlite or config.is_postgresql:
        from conferkit.persistence.sql import SQLRepository

        sqlite_path = config.sqlite_path
        if sqlite_path is not None:
            sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        return SQLRepository(config.url)

    raise ValueError(
        f"Unsupported database URL scheme: {config.url}. "
        "Use sqlite:///, postgresql:// or memory://"
    )
