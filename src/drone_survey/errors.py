from __future__ import annotations


class MissionError(Exception):
    """Base for every error the engine reports back to a caller."""

    def __init__(self, message: str, *, operation: str | None = None, entity_id: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.entity_id = entity_id


class InvalidBoundary(MissionError):
    pass


class InvalidParameters(MissionError):
    pass


class InvalidStateTransition(MissionError):
    def __init__(self, operation: str, entity_id: str | None, status: str) -> None:
        super().__init__(
            f"Cannot {operation} mission in {status} status",
            operation=operation,
            entity_id=entity_id,
        )
        self.status = status


class NotFound(MissionError):
    pass


class DependencyFailure(MissionError):
    pass
