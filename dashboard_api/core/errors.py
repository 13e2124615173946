from typing import Dict, Optional


class StoreError(Exception):
    """Base class for failures raised by the store, blob and schema layers"""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFound(StoreError):
    """An id-addressed entity does not exist"""

    status_code = 404


class ValidationFailed(StoreError):
    """A schema rule was violated at the edit boundary"""

    status_code = 422

    def __init__(self, message: str = "Validation failed", errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class StoreUnavailable(StoreError):
    """The backing database or object store could not be reached"""

    status_code = 503


class UploadFailed(StoreError):
    """A blob upload failed in transport; callers re-invoke to retry"""

    status_code = 502


class BatchFailed(StoreError):
    """An all-or-nothing batch was rejected and nothing was applied"""

    status_code = 409


class Unauthenticated(StoreError):
    """Missing, malformed or expired bearer credential"""

    status_code = 401
