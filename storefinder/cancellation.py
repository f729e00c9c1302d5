"""Cancellation tokens shared by the pipeline and every upstream client."""
from __future__ import annotations

import threading
import time
from typing import List, Optional

from .errors import SearchCancelledError


class CancellationToken:
    """Set by the caller when a search is abandoned.

    Child tokens are cancelled with their parent but can also be cancelled on
    their own, which lets one timed-out stage stop without ending the request.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: List[CancellationToken] = []

    def child(self) -> "CancellationToken":
        child = CancellationToken()
        with self._lock:
            self._children.append(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel()
        return child

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SearchCancelledError("search cancelled by caller")

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)


def check_cancelled(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()


def sleep_or_cancel(delay: float, token: Optional[CancellationToken]) -> None:
    """Sleep for ``delay`` seconds, aborting early if ``token`` is cancelled."""
    if token is None:
        time.sleep(max(0.0, delay))
        return
    if token.wait(max(0.0, delay)):
        raise SearchCancelledError("search cancelled by caller")
