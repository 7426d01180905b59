"""Domain Exceptions

Business-rule violations raised by the allocation engine. All of them are
final: callers get them back as typed failures and nothing retries them.
ConcurrencyConflictError is the one transient signal and never leaves the
application layer.
"""
from typing import Optional


class DomainError(ValueError):
    """Base class for business-rule violations"""

    error_code = "DOMAIN_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        super().__init__(message)


class NotFoundError(DomainError):
    """Referenced room, client or reservation does not exist"""

    error_code = "NOT_FOUND"


class InvalidRequestError(DomainError):
    """Malformed mode, non-positive bed count or missing field"""

    error_code = "INVALID_REQUEST"


class InvalidDateError(DomainError):
    """Entry/exit dates break the date rules"""

    error_code = "INVALID_DATE"


class InvalidStateError(DomainError):
    """Operation is illegal for the current lifecycle status"""

    error_code = "INVALID_STATE"


class CapacityExceededError(DomainError):
    """Committing the request would overbook the room"""

    error_code = "CAPACITY_EXCEEDED"


class DuplicateError(DomainError):
    """Unique room number or client document already taken"""

    error_code = "DUPLICATE"


class ConcurrencyConflictError(Exception):
    """Stored version changed between read and write"""

    def __init__(self, entity_id, expected_version: int, actual_version: int):
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {entity_id}: expected {expected_version}, found {actual_version}"
        )
