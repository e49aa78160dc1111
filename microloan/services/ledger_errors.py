from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class LedgerErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_STATE = "INVALID_STATE"
    HAS_DEPENDENTS = "HAS_DEPENDENTS"
    STORAGE_FAILURE = "STORAGE_FAILURE"


HTTP_STATUS_BY_KIND = {
    LedgerErrorKind.NOT_FOUND: 404,
    LedgerErrorKind.CONFLICT: 409,
    LedgerErrorKind.INVALID_STATE: 400,
    LedgerErrorKind.HAS_DEPENDENTS: 409,
    LedgerErrorKind.STORAGE_FAILURE: 503,
}


# Not frozen: the exception machinery assigns __traceback__ and __context__ while it propagates.
@dataclass(eq=False)
class LedgerError(ValueError):
    kind: LedgerErrorKind
    code: str
    message: str
    details: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]


def not_found(entity: str, entity_id) -> LedgerError:
    label = entity.replace("_", " ").capitalize()
    return LedgerError(
        kind=LedgerErrorKind.NOT_FOUND,
        code=f"{entity}_not_found",
        message=f"{label} not found",
        details={f"{entity}_id": str(entity_id)},
    )


def conflict(code: str, message: str, **details) -> LedgerError:
    return LedgerError(kind=LedgerErrorKind.CONFLICT, code=code, message=message, details=details)


def invalid_state(code: str, message: str, **details) -> LedgerError:
    return LedgerError(kind=LedgerErrorKind.INVALID_STATE, code=code, message=message, details=details)


def has_dependents(code: str, message: str, **details) -> LedgerError:
    return LedgerError(kind=LedgerErrorKind.HAS_DEPENDENTS, code=code, message=message, details=details)


def storage_failure(message: str = "Storage operation failed", **details) -> LedgerError:
    return LedgerError(
        kind=LedgerErrorKind.STORAGE_FAILURE,
        code="storage_failure",
        message=message,
        details=details,
    )


def from_storage_error(exc: Exception) -> LedgerError:
    """Translate a SQLAlchemy failure into the ledger's error vocabulary."""
    # Imported here so the error types stay usable without a database driver loaded.
    from sqlalchemy.exc import IntegrityError
    from sqlalchemy.orm.exc import StaleDataError

    if isinstance(exc, StaleDataError):
        return conflict(
            "concurrent_update",
            "The loan was updated by another request. Please refresh and retry.",
        )
    if isinstance(exc, IntegrityError):
        return conflict("integrity_conflict", "The change conflicts with existing records")
    return storage_failure()
