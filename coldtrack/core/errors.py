"""
Error taxonomy for the monitor core.

Everything here is recoverable: callers surface the message and carry on.
"""
from enum import Enum
from typing import Optional


class ColdTrackError(Exception):
    """Base class for all monitor errors."""


class AuthError(ColdTrackError):
    """The backend rejected the identity token (401) or no session is active."""

    def __init__(self, message: str = "Sesión expirada. Inicie sesión nuevamente."):
        super().__init__(message)
        self.message = message


class TransportError(ColdTrackError):
    """The backend could not be reached or answered with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BackendTimeout(TransportError):
    """The backend did not answer within the configured timeout."""


class QueryErrorKind(str, Enum):
    MISSING_RANGE = "missing_range"
    INVERTED_RANGE = "inverted_range"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    AUTH = "auth"


_QUERY_MESSAGES = {
    QueryErrorKind.MISSING_RANGE: "Por favor seleccione las fechas de inicio y fin para realizar la búsqueda.",
    QueryErrorKind.INVERTED_RANGE: "La fecha de inicio no puede ser mayor que la fecha de fin.",
    QueryErrorKind.TIMEOUT: "El servidor no respondió a tiempo. Por favor intente nuevamente.",
    QueryErrorKind.TRANSPORT: "Error al cargar los datos. Por favor intente nuevamente.",
    QueryErrorKind.AUTH: "Sesión expirada. Inicie sesión nuevamente.",
}


class QueryError(ColdTrackError):
    """
    An analytics query failed.

    `missing_range` and `inverted_range` are raised before any network call;
    the remaining kinds wrap a backend failure.
    """

    def __init__(self, kind: QueryErrorKind, message: Optional[str] = None):
        self.kind = QueryErrorKind(kind)
        self.message = message or _QUERY_MESSAGES[self.kind]
        super().__init__(self.message)

    @property
    def is_validation(self) -> bool:
        return self.kind in (QueryErrorKind.MISSING_RANGE, QueryErrorKind.INVERTED_RANGE)

    @classmethod
    def from_exception(cls, exc: Exception) -> "QueryError":
        """Map a backend exception onto the query error it surfaces as."""
        if isinstance(exc, QueryError):
            return exc
        if isinstance(exc, AuthError):
            return cls(QueryErrorKind.AUTH, exc.message)
        if isinstance(exc, BackendTimeout):
            return cls(QueryErrorKind.TIMEOUT)
        return cls(QueryErrorKind.TRANSPORT)


class ReportError(ColdTrackError):
    """A report artifact could not be produced."""
