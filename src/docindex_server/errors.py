"""Error taxonomy shared by the index core and the HTTP adapter.

Every error carries the HTTP status and a short machine code so the adapter
can render it without a lookup table. Type mismatches inside queries are not
errors: mismatching documents are simply excluded from the result.
"""

from __future__ import annotations


class DocIndexError(Exception):
    """Base class for all index errors."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class NotFoundError(DocIndexError):
    """Referenced index or document does not exist."""

    status_code = 404
    code = "not_found"


class InvalidInputError(DocIndexError):
    """Malformed request body or parameter reaching the core."""

    status_code = 400
    code = "invalid_input"


class CorruptDataError(DocIndexError):
    """Persisted bytes failed to decode."""

    status_code = 503
    code = "corrupt_data"


class IOFailureError(DocIndexError):
    """Reading or writing the data directory failed."""

    status_code = 503
    code = "io_failure"
