"""Holder of the single current session token.

Pattern: Synchronized Cell
---------------------------
The session token is the only shared mutable value in the client.  It lives
in one ``SessionTokenStore`` and every other component reads it for the
duration of a single call instead of keeping its own copy.  Logging out or
re-authenticating replaces the value wholesale: last writer wins, there is
nothing to merge.

The lock guards an attribute swap and nothing else.  Network calls that
*produce* a new token happen outside the critical section, so a slow login
never blocks readers.
"""

from __future__ import annotations

import logging
import threading

from vault_courier.auth.credentials import redact

logger = logging.getLogger(__name__)


class SessionTokenStore:
    """Thread-safe read/replace cell for the current session token."""

    def __init__(self, token: str | None = None) -> None:
        self._lock = threading.Lock()
        self._token = token

    def read(self) -> str | None:
        """Return the current token, or ``None`` when unauthenticated."""
        with self._lock:
            return self._token

    def replace(self, token: str | None) -> None:
        """Atomically set the token.  ``None`` logs the client out."""
        with self._lock:
            self._token = token
        logger.debug("Session token replaced with %s", redact(token))

    @property
    def is_authenticated(self) -> bool:
        return self.read() is not None

    def __repr__(self) -> str:
        return f"SessionTokenStore(token={redact(self.read())})"
