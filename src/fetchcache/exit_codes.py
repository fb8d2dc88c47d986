"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~fetchcache.exceptions.FetchError` subclass.
Shell scripts wrapping ``fetchcache`` can inspect the exit code to
determine the failure class without parsing stderr.

Example::

    $ fetchcache get https://api.example.com/missing
    $ echo $?
    4   # EXIT_NOT_FOUND -- the remote returned a 4xx status
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or options."""

EXIT_NOT_FOUND = 4
"""The remote returned a 4xx status."""

EXIT_REQUEST_FAILED = 5
"""The remote returned a non-2xx, non-4xx status."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_DECODER_ERROR = 7
"""The response body could not be decoded."""

EXIT_CACHE_ERROR = 8
"""The cache backend could not perform the requested operation."""
