# order_service/core/errors.py
from typing import Iterable, Optional

from sqlalchemy.exc import DataError, IntegrityError


def storage_detail(exc: Exception) -> str:
    """The driver's own message, without the SQL statement or bound parameters."""
    return str(getattr(exc, "orig", None) or exc)


class ServiceError(Exception):
    status_code = 500

    def __init__(self, error: str, detail: Optional[str] = None, **extra):
        super().__init__(error if detail is None else f"{error}: {detail}")
        self.error = error
        self.detail = detail
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.detail is not None:
            body["detail"] = self.detail
        body.update(self.extra)
        return body


class InvalidPayloadError(ServiceError):
    """The request body is malformed or violates a field rule."""
    status_code = 400


class AuthenticationError(ServiceError):
    """Missing or invalid bearer credential."""
    status_code = 401


class AccessDeniedError(ServiceError):
    """A referenced resource does not exist or is not owned by the caller."""
    status_code = 403


class InvalidReferenceError(ServiceError):
    """A referenced variant is unknown or the order cannot be priced."""
    status_code = 400


class CurrencyMismatchError(InvalidReferenceError):
    pass


class NegativeTotalError(InvalidReferenceError):
    pass


class StockConflictError(ServiceError):
    """Insufficient stock or a concurrent inventory write. Safe to retry."""
    status_code = 409


class PersistenceError(ServiceError):
    status_code = 500

    @classmethod
    def from_exc(
        cls,
        error: str,
        exc: Exception,
        *,
        server_generated: Iterable[str] = (),
    ) -> "PersistenceError":
        """Build an error whose status reflects who caused the failure.

        Constraint violations and malformed values come from client input
        and map to 400, unless they name one of the ``server_generated``
        columns. Anything else is an infrastructure failure.
        """
        detail = storage_detail(exc)
        err = cls(error, detail=detail)
        if isinstance(exc, (IntegrityError, DataError)) and not any(
            column in detail for column in server_generated
        ):
            err.status_code = 400
        return err


class AggregationError(ServiceError):
    """The supplementary order statistic could not be computed."""
    status_code = 500
