"""QuickBooks sync errors"""

from typing import Optional


class QuickBooksError(Exception):
    """Base class for sync-domain failures surfaced to the caller"""

    error_type = "quickbooks_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"success": False, "error": self.message, "errorType": self.error_type}


class NotConnected(QuickBooksError):
    """No active QuickBooks connection. Not retryable until the user reconnects."""

    error_type = "not_connected"

    def __init__(self, message: str = "QuickBooks not connected"):
        super().__init__(message)


class TokenRefreshFailed(QuickBooksError):
    """OAuth refresh was rejected. Retryable on the next call."""

    error_type = "token_refresh_failed"

    def __init__(self, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Failed to refresh QuickBooks token ({status_code}): {body}")


class RemoteApiError(QuickBooksError):
    """Non-2xx response from the QuickBooks accounting API"""

    error_type = "remote_api_error"

    def __init__(self, status_code: int, body: str, operation: str = "request"):
        self.status_code = status_code
        self.body = body
        self.operation = operation
        super().__init__(f"QuickBooks {operation} failed ({status_code}): {body}")


class UnmappedReference(QuickBooksError):
    """A remote customer or vendor has no local counterpart"""

    error_type = "unmapped_reference"

    def __init__(self, entity_type: str, remote_id: Optional[str], name: Optional[str] = None):
        self.entity_type = entity_type
        self.remote_id = remote_id
        self.name = name or f"Unknown {entity_type} ({remote_id})"
        super().__init__(f"No local {entity_type} mapped to QuickBooks {entity_type} {self.name}")


class PartialBatchFailure(QuickBooksError):
    """Some records of a batch failed while others succeeded"""

    error_type = "partial_batch_failure"

    def __init__(self, errors: list[str], result=None):
        self.errors = errors
        self.result = result
        super().__init__(f"{len(errors)} record(s) failed during sync")


class MappingConflict(QuickBooksError):
    """The QuickBooks record is already mapped to a different local row"""

    error_type = "mapping_conflict"

    def __init__(self, entity_type: str, quickbooks_id: str, entity_id: int):
        self.entity_type = entity_type
        self.quickbooks_id = quickbooks_id
        self.entity_id = entity_id
        super().__init__(
            f"QuickBooks {entity_type} {quickbooks_id} is already linked to local {entity_type} {entity_id}"
        )
