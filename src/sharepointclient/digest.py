"""Form digest caching for mutating SharePoint requests.

SharePoint uses the ``X-RequestDigest`` header as a CSRF-like security token.
A digest is obtained by POSTing to ``/_api/contextinfo`` and stays valid for
the number of seconds the server announces in the same response.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class DigestContext(Protocol):
    """What TokenContext needs from an acquired context object."""

    form_digest_value: str

    def is_up_to_date(self) -> bool:
        ...  # pragma: no cover


class TokenContext:
    """Holds the current form digest context of a Site.

    At most one context is cached. It is replaced whenever it is absent or
    reports itself stale, and never modified in place.
    """

    def __init__(self):
        self._context: Optional[DigestContext] = None
        self._lock: threading.RLock = threading.RLock()
        self._local = threading.local()

    @property
    def context(self) -> Optional[DigestContext]:
        return self._context

    @property
    def acquiring(self) -> bool:
        """True while the calling thread is inside an acquisition."""
        return getattr(self._local, "acquiring", False)

    def is_fresh(self) -> bool:
        context = self._context
        return context is not None and context.is_up_to_date()

    def invalidate(self) -> None:
        """Drop the cached context so that the next mutating request re-acquires."""
        with self._lock:
            self._context = None

    def ensure_fresh(self, acquire: Callable[[], DigestContext]) -> str:
        """Return a valid digest, calling ``acquire`` first if needed.

        Args:
            acquire: Performs the acquisition round trip and returns the new
                context. Called at most once per stale period, even when many
                threads ask for a digest at the same time.

        Returns:
            str: The form digest value.

        Raises:
            Whatever ``acquire`` raises. The cached context is left untouched.
        """
        with self._lock:
            if not self.is_fresh():
                logger.info("Acquiring a new form digest")
                self._local.acquiring = True
                try:
                    context = acquire()
                finally:
                    self._local.acquiring = False
                self._context = context
            return self._context.form_digest_value
