"""Release Manager Pipeline - Error taxonomy.

Errors raised by the gateway, the object store and the use cases. Each carries
a stable error_code that the API maps to an HTTP status. The schedulers never
let these escape a tick: they are converted into job state transitions.
"""

from enum import StrEnum


class ErrorCode(StrEnum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    STORAGE_FAILED = "STORAGE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ReleaseManagerError(Exception):
    """Base exception for release manager errors."""

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"{error_code}: {message}")


class ResourceNotFoundError(ReleaseManagerError):
    """A release, track or job does not exist."""

    def __init__(self, resource: str, resource_id: str | None = None):
        if resource_id:
            message = f"{resource} with id {resource_id} not found"
        else:
            message = f"{resource} not found"
        super().__init__(ErrorCode.NOT_FOUND, message)
        self.resource = resource
        self.resource_id = resource_id


class InvalidStateError(ReleaseManagerError):
    """The requested transition is not allowed from the current status."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.INVALID_STATE, message)


class UploadValidationError(ReleaseManagerError):
    """Rejected file type or size."""


class ObjectStoreError(ReleaseManagerError):
    """The object store could not complete an upload or delete."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.STORAGE_FAILED, message)
