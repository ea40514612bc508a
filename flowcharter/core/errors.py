"""
Error types shared by the editor core and backend.

Geometry and graph operations never raise for unknown shapes, duplicate
edges or stale ids; they degrade to no-ops. Only persistence and snapshot
loading surface errors to the user.
"""


class FlowchartError(Exception):
    """Base class for all flowchart errors."""


class MalformedSnapshotError(FlowchartError, ValueError):
    """Snapshot data is missing required collections or has invalid fields."""


class PersistenceError(FlowchartError):
    """Base class for saved-flowchart storage failures."""

    user_message = "Storage operation failed"


class StorageQuotaExceededError(PersistenceError):
    """Writing would exceed the storage quota."""

    user_message = "Storage quota exceeded. Try deleting some flowcharts first."


class StorageWriteError(PersistenceError):
    """The underlying storage rejected a write."""

    user_message = "Failed to save flowchart"


class FlowchartNotFoundError(PersistenceError, KeyError):
    """No flowchart is saved under the requested name."""

    user_message = "Flowchart not found"

    def __init__(self, name: str):
        super().__init__(f'Flowchart "{name}" not found')
        self.name = name

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]
