"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~reqcache.exceptions.ReqcacheError` subclass.
Deploy scripts can inspect the exit code to tell a failed install apart
from a broken configuration without parsing stderr.

Example::

    $ reqcache install --generation 4
    $ echo $?
    5   # EXIT_INSTALL_FAILURE -- the manifest could not be fully cached
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_STORAGE_UNAVAILABLE = 3
"""The persistent store directory could not be read or written."""

EXIT_CONNECTION_ERROR = 4
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_INSTALL_FAILURE = 5
"""The static manifest could not be fully provisioned; the old generation stays active."""

EXIT_MALFORMED_PAYLOAD = 6
"""A push payload could not be decoded."""
