"""Exception hierarchy for reqcache.

All exceptions inherit from :class:`ReqcacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`reqcache.exit_codes`.

Inside the cache layer these errors never reach the client application:
storage errors degrade to cache misses, network errors trigger the fallback
chain, a failed install leaves the previous generation active, and a bad push
payload is dropped. Only the CLI entry point in :func:`reqcache.app.main`
turns them into process exit codes.

Subclass hierarchy::

    ReqcacheError (exit 1)
    +-- InvalidUsageError         (exit 2)
    +-- StorageUnavailable        (exit 3)
    +-- NetworkFailure            (exit 4)
    +-- InstallPopulationFailure  (exit 5)
    +-- MalformedPushPayload      (exit 6)
    +-- ConfigError               (exit 1)
"""

from reqcache.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INSTALL_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_MALFORMED_PAYLOAD,
    EXIT_STORAGE_UNAVAILABLE,
)


class ReqcacheError(Exception):
    """Base exception for all reqcache errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`reqcache.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(ReqcacheError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class StorageUnavailable(ReqcacheError):
    """Raised when the backing medium of a store cannot be read or written.

    Strategies treat this exactly like a cache miss.
    """

    exit_code = EXIT_STORAGE_UNAVAILABLE


class NetworkFailure(ReqcacheError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class InstallPopulationFailure(ReqcacheError):
    """Raised when the static manifest could not be provisioned in full.

    The half-written store is discarded and the previously active generation
    keeps serving clients.
    """

    exit_code = EXIT_INSTALL_FAILURE


class MalformedPushPayload(ReqcacheError):
    """Raised when a push payload is not a decodable JSON object."""

    exit_code = EXIT_MALFORMED_PAYLOAD


class ConfigError(ReqcacheError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE
