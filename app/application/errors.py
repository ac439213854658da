"""
Ledger error taxonomy.

ValidationError   - a documented rule failed (400), recoverable
NotFoundError     - unknown entry id (404), ledger untouched
PersistenceError  - ledger file unreadable/unwritable; caught at the store boundary
InternalError     - anything unanticipated (500), message kept generic
"""
from typing import Any


class LedgerError(Exception):
    status_code = 500
    code = "LEDGER_ERROR"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(LedgerError, ValueError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(LedgerError, LookupError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str | None = None):
        message = f"{resource} not found" + (f": {resource_id}" if resource_id else "")
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class PersistenceError(LedgerError):
    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message, details={"path": path} if path else None)
        self.path = path


class InternalError(LedgerError):
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str = "Internal server error", details: Any = None):
        super().__init__(message, details)
