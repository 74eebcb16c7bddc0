"""Application-level exception types.

Convention:
- ``InternalServerError``: for errors whose details must never reach clients.
  The global handler logs the full message at ERROR and returns a generic
  "Internal server error" (500) to the client.
- ``ConfigurationError``: something the operator has to fix before a sync can
  run (no GitHub token, registry not connected, missing permission). Surfaced
  immediately as 400 and never retried.
- ``NotFoundError``: unknown registry, item or binding (404).
- ``ValueError``: for *business logic* validation errors that are safe to
  forward to clients.  The global ``ValueError`` handler returns ``str(exc)``
  as the 422 detail.

Errors raised by the remote Git host live in ``backend.githost.base``.
"""

from __future__ import annotations


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    The global exception handler in ``backend/main.py`` catches this, logs
    the full message server-side, and returns HTTP 500 with a generic
    ``"Internal server error"`` detail.
    """


class ConfigurationError(Exception):
    """Raised when a required credential, binding or permission is missing."""


class NotFoundError(Exception):
    """Raised when a requested registry, item or binding does not exist."""


class EmptyPublishError(ValueError):
    """Raised when a publish would delete every file and was not confirmed."""
