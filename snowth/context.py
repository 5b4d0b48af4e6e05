"""
Cancellable request contexts

A RequestContext carries an optional deadline and a cancellation flag for one
logical operation. Children inherit the tighter deadline and are cancelled
together with their parent.
"""

import threading
import time
from typing import Callable, List, Optional

from .errors import RequestCancelledError


class RequestContext:
    """Deadline and cancellation state for a request"""

    def __init__(self, timeout: Optional[float] = None,
                 parent: Optional["RequestContext"] = None):
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._children: List["RequestContext"] = []

        deadline = None
        if timeout is not None:
            deadline = time.monotonic() + timeout
        if parent is not None and parent.deadline is not None:
            if deadline is None or parent.deadline < deadline:
                deadline = parent.deadline
        self.deadline = deadline

        if parent is not None:
            parent._add_child(self)

    def _add_child(self, child: "RequestContext"):
        with self._lock:
            if not self._cancelled.is_set():
                self._children.append(child)
                return
        child.cancel()

    def child(self, timeout: Optional[float] = None) -> "RequestContext":
        """Create a context cancelled with this one and bounded by its deadline"""
        return RequestContext(timeout=timeout, parent=self)

    def cancel(self):
        """Cancel this context and every child derived from it"""
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            callbacks = list(self._callbacks)
            children = list(self._children)
            self._children.clear()

        for callback in callbacks:
            callback()
        for child in children:
            child.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or the timeout elapses; returns True if cancelled"""
        return self._cancelled.wait(timeout)

    def add_done_callback(self, callback: Callable[[], None]):
        """Register a callback run on cancellation (immediately if already cancelled)"""
        with self._lock:
            if not self._cancelled.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_done_callback(self, callback: Callable[[], None]):
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def raise_if_cancelled(self):
        if self.cancelled:
            raise RequestCancelledError()
