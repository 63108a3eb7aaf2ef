"""
Cooperative cancellation shared by the operations of a command.
"""

import asyncio
import threading
import weakref
from typing import List, Optional, Tuple

from ..exceptions import OperationCancelledError


class CancellationToken:
    """A one-way armed -> triggered signal.

    ``cancel()`` may be called from any thread or from a signal handler and is
    idempotent. Observers poll ``is_cancelled`` or await ``wait()``. A child
    token is triggered with its parent but never triggers the parent.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []
        self._children: "weakref.WeakSet[CancellationToken]" = weakref.WeakSet()
        self.reason: Optional[str] = None

        if parent is not None:
            parent._adopt(self)

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "interrupted") -> bool:
        """Trigger the token.

        Returns:
            True if this call triggered it, False if it already was
        """
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            waiters, self._waiters = self._waiters, []
            children = list(self._children)

        for loop, future in waiters:
            if not loop.is_closed():
                loop.call_soon_threadsafe(_resolve, future)
        for child in children:
            child.cancel(reason)
        return True

    def child(self) -> "CancellationToken":
        """A token triggered when this one is, cancellable on its own."""
        return CancellationToken(parent=self)

    def raise_if_cancelled(self, cluster_id: Optional[str] = None) -> None:
        if self._event.is_set():
            raise OperationCancelledError(cluster_id)

    async def wait(self) -> None:
        """Suspend until the token is triggered."""
        if self._event.is_set():
            return
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        with self._lock:
            if self._event.is_set():
                return
            entry = (loop, future)
            self._waiters.append(entry)
        try:
            await future
        finally:
            with self._lock:
                if entry in self._waiters:
                    self._waiters.remove(entry)

    def _adopt(self, child: "CancellationToken") -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.add(child)
                return
        child.cancel(self.reason or "interrupted")

    def __repr__(self) -> str:
        state = "triggered" if self.is_cancelled else "armed"
        return f"<CancellationToken {state}>"


def _resolve(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)
