"""Error taxonomy raised by the recommendation and statistics engine."""

from typing import Optional


class EncoreError(Exception):
    """Base class for engine errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class NotFoundError(EncoreError):
    """The user or album has no data to operate on."""

    code = "NOT_FOUND"


class InternalError(EncoreError):
    """A data store failed; the whole operation is aborted."""

    code = "INTERNAL_ERROR"
