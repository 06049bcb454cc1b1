"""Failures raised by the share services.

Each error carries a stable ``code`` and the HTTP status the API layer maps
it to, so routes never have to translate them one by one.
"""

from __future__ import annotations


class ShareError(Exception):
    code = "share-error"
    status_code = 500
    default_message = "Share operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ShareError):
    code = "validation-error"
    status_code = 400
    default_message = "Invalid upload"


class PayloadTooLarge(ValidationError):
    code = "payload-too-large"
    status_code = 413
    default_message = "File too large"


class NotFound(ShareError):
    code = "not-found"
    status_code = 404
    default_message = "Share not found"


class OutOfRange(NotFound):
    code = "out-of-range"
    default_message = "File not found in share"


class Gone(ShareError):
    code = "gone"
    status_code = 410
    default_message = "Share is no longer available"


class Unauthorized(ShareError):
    code = "unauthorized"
    status_code = 401
    default_message = "Invalid or missing password"


class StorageFailure(ShareError):
    code = "storage-failure"
    status_code = 500
    default_message = "Storage error"


class DuplicateKey(ShareError):
    code = "duplicate-key"
    status_code = 409
    default_message = "Share id already exists"
