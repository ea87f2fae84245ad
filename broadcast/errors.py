from __future__ import annotations


class BroadcastError(RuntimeError):
    pass


class ValidationError(BroadcastError):
    """Malformed identity, counter or feed fields.

    ``fields`` maps each offending field name to a short reason.
    """

    def __init__(self, message: str, fields: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.fields = dict(fields or {})


class NotFoundError(BroadcastError):
    pass


class NotUndoableError(BroadcastError):
    pass


class ConsistencyError(BroadcastError):
    pass


class FeedError(BroadcastError):
    """The roster feed snapshot could not be read at all."""
