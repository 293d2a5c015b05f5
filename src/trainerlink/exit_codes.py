"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~trainerlink.exceptions.TrainerlinkError` subclass.
Shell wrappers can inspect the exit code to determine the failure class
without parsing stderr.

Example::

    $ trainerlink auth whoami
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the session could not be renewed
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or the session was lost."""

EXIT_PROFILE_UNAVAILABLE = 4
"""The user profile could not be fetched and no cached copy exists."""

EXIT_REMOTE_ERROR = 5
"""The remote API rejected the request with an HTTP error status."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STORAGE_ERROR = 7
"""The local persistent store could not be read or written."""
