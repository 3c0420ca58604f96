"""Engine error taxonomy.

Services raise these; the HTTP layer maps each class to a status code
in main.py. Nothing here knows about HTTP.
"""

from __future__ import annotations

from collections.abc import Iterable


class EngineError(Exception):
    """Base class for every error raised by the core."""


class NotFoundError(EngineError):
    """A project, entity, attribute, state or record does not exist."""


class ValidationError(EngineError):
    """Input rejected before any storage mutation took place."""


class SchemaDriftError(EngineError):
    """The physical record table lacks columns the metadata expects.

    Raised instead of letting the query fail on an unknown column, since
    it means metadata and storage have diverged.
    """

    def __init__(
        self,
        table_name: str,
        missing_columns: Iterable[str],
        message: str | None = None,
    ) -> None:
        self.table_name = table_name
        self.missing_columns = sorted(missing_columns)
        super().__init__(
            message
            or f"Table {table_name!r} is missing columns: {', '.join(self.missing_columns)}"
        )


class TableNotProvisionedError(SchemaDriftError):
    """The record table has not been compiled yet."""

    def __init__(self, table_name: str, missing_columns: Iterable[str] = ()) -> None:
        super().__init__(
            table_name,
            missing_columns,
            message=f"Record table {table_name!r} has not been provisioned",
        )


class StorageError(EngineError):
    """Underlying engine failure (I/O, constraint violation)."""
