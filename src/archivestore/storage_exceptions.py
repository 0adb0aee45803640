"""ArchiveStore custom exception module.

Every backend translates its own faults (OS errors, YAML errors, HTTP status codes
and transport failures) into exactly one of the exceptions below before they leave
a `StorageService` method.
"""


class StorageServiceException(Exception):
    """Base exception thrown by every `StorageService` implementation. The `code`
    class attribute identifies the kind of failure independent of the backend."""

    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors


class NotFound(StorageServiceException):
    """Custom exception thrown when no entity exists at a given storage path."""

    code = "NOT_FOUND"


class AlreadyExists(StorageServiceException):
    """Custom exception thrown when creating (or copying/moving to) a storage path
    that is already occupied and replacement was not requested."""

    code = "ALREADY_EXISTS"


class Forbidden(StorageServiceException):
    """Custom exception thrown when the backend refuses access to an entity."""

    code = "FORBIDDEN"


class RequestInvalid(StorageServiceException):
    """Custom exception thrown when a request is malformed, e.g. an invalid storage
    path or asking for a binary at a path that holds a directory."""

    code = "BAD_REQUEST"


# The remote protocol calls this condition a bad request
BadRequest = RequestInvalid


class InternalError(StorageServiceException):
    """Custom exception thrown for any other failure (I/O errors, timeouts,
    unexpected server responses). The original error is kept as `__cause__`."""

    code = "INTERNAL_SERVER_ERROR"


class UnsupportedAlgorithm(RequestInvalid):
    """Custom exception thrown when a given algorithm is not supported for
    calculating hashes/checksums."""


class NonMatchingChecksum(StorageServiceException):
    """Custom exception thrown when verifying a binary and the expected checksum
    does not match what has been calculated."""

    code = "CHECKSUM_MISMATCH"
