"""Session Registry: identity -> live connection.

One live connection per identity; a new login by the same identity replaces
the previous entry (last write wins). Entries are also dropped when their
connection closes, but callers of ``get`` must still tolerate a dead
connection: pushes to it simply fail and are ignored.

The registry is the only long-lived shared mutable state of the service. It
is guarded by a ``threading.Lock`` so it is safe from the event loop and from
worker threads alike.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Concurrency-safe mapping from identity to its current connection.

    Examples
    --------
    >>> registry = SessionRegistry()
    >>> registry.set("alice", "conn-a")
    >>> registry.set("alice", "conn-b")
    >>> registry.get("alice")
    'conn-b'
    >>> registry.get("bob") is None
    True
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, Any] = {}

    def set(self, identity: str, connection: Any) -> None:
        """Bind ``connection`` to ``identity``, replacing any previous one."""
        with self._lock:
            previous = self._sessions.get(identity)
            self._sessions[identity] = connection
        if previous is not None and previous is not connection:
            logger.debug("Replaced live session for %s", identity)

    def get(self, identity: str) -> Any | None:
        """Return the current connection of ``identity``, or None."""
        with self._lock:
            return self._sessions.get(identity)

    def discard(self, identity: str, connection: Any) -> bool:
        """Remove the entry only if it still points at ``connection``.

        Returns
        -------
        bool
            True if an entry was removed.
        """
        with self._lock:
            if self._sessions.get(identity) is connection:
                del self._sessions[identity]
                return True
            return False

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
