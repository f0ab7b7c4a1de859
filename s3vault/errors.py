"""Error taxonomy shared by the vault, registry and storage layers.

Every failure a caller can act on is an ``S3VaultError``. The HTTP layer turns
them into ``{"error": ..., "code": ...}`` bodies; nothing here knows about HTTP
beyond the status code each class maps to.
"""
from typing import Any, Dict, Optional


class S3VaultError(Exception):
    status_code = 500
    code = "SERVER_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class Unauthorized(S3VaultError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class ValidationError(S3VaultError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class InvalidName(ValidationError):
    code = "INVALID_NAME"
    default_message = "Invalid folder name. Use only letters, numbers, spaces, hyphens, and underscores."


class NotFound(S3VaultError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class ObjectNotFound(NotFound):
    code = "OBJECT_NOT_FOUND"
    default_message = "File not found"


class NotConfigured(S3VaultError):
    status_code = 400
    code = "NOT_CONFIGURED"
    default_message = "S3 configuration not found"


class DuplicateBucket(S3VaultError):
    status_code = 409
    code = "DUPLICATE_BUCKET"
    default_message = (
        "A bucket with this name already exists in your account. "
        "Please use a different bucket name."
    )

    def __init__(self, bucket_name: str):
        super().__init__(bucket_name=bucket_name)


class QuotaExceeded(S3VaultError):
    status_code = 409
    code = "BUCKET_LIMIT_EXCEEDED"

    def __init__(self, current_count: int, max_allowed: int):
        super().__init__(
            f"Bucket limit reached. You can only have {max_allowed} buckets.",
            current_count=current_count,
            max_allowed=max_allowed,
        )
        self.current_count = current_count
        self.max_allowed = max_allowed


class CredentialError(S3VaultError):
    """Stored credentials for a bucket connection cannot be recovered."""

    status_code = 500
    code = "CREDENTIAL_ERROR"
    default_message = "Stored credentials for this bucket are unreadable. Please re-register the bucket."


class MalformedCiphertext(CredentialError):
    code = "MALFORMED_CIPHERTEXT"


class DecryptionFailed(CredentialError):
    code = "DECRYPTION_FAILED"


class UpstreamStorageError(S3VaultError):
    status_code = 502
    code = "UPSTREAM_STORAGE_ERROR"
    default_message = "Storage backend rejected the request"

    def __init__(self, message: Optional[str] = None, backend_code: Optional[str] = None):
        super().__init__(message, backend_code=backend_code)
        self.backend_code = backend_code


class ConcurrentUpdate(S3VaultError):
    status_code = 409
    code = "CONCURRENT_UPDATE"
    default_message = "Your buckets were modified by another request. Please try again."
