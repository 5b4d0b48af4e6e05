"""
Request dispatch for the snowth client

The dispatcher turns a logical operation into a request against a concrete
node. It selects candidates from the registry (an explicit node, the ring
owners of a key, or any active node), runs each attempt on a worker pool so
the caller can be woken by cancellation, fails over on transient errors and
hands the response body to the operation's decode step.
"""

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from .context import RequestContext
from .errors import (
    DecodeError,
    EmptyRingError,
    ExplicitNodeError,
    NoActiveNodeError,
    RequestCancelledError,
    RequestTimeoutError,
    SnowthError,
    TransientError,
)
from .registry import NodeRecord, NodeRegistry, RegistryView
from .transport import HTTPTransport, TransportResponse

logger = logging.getLogger(__name__)

DecodeFunc = Callable[[bytes, Mapping[str, str]], Any]


class SelectorKind(Enum):
    EXPLICIT = "explicit"
    KEY = "key"
    ANY_ACTIVE = "any_active"


@dataclass(frozen=True)
class TargetSelector:
    """Which node(s) a request may be sent to"""
    kind: SelectorKind
    node: Optional[NodeRecord] = None
    key: Optional[str] = None

    @classmethod
    def explicit(cls, node: NodeRecord) -> "TargetSelector":
        """Send to this node only, with no failover"""
        return cls(SelectorKind.EXPLICIT, node=node)

    @classmethod
    def for_key(cls, key: str) -> "TargetSelector":
        """Send to the ring owners of a key, substituting active nodes as needed"""
        return cls(SelectorKind.KEY, key=key)

    @classmethod
    def any_active(cls) -> "TargetSelector":
        return cls(SelectorKind.ANY_ACTIVE)


@dataclass
class Operation:
    """A logical request: method, path, opaque body and a decode step"""
    method: str
    path: str
    body: Optional[bytes] = None
    headers: Optional[Dict[str, str]] = None
    decode: Optional[DecodeFunc] = None


class Dispatcher:
    """Selects nodes for operations and applies the retry/failover policy"""

    def __init__(self, registry: NodeRegistry, transport: HTTPTransport,
                 request_timeout: float = 10.0, max_attempts: int = 3,
                 max_workers: int = 32):
        self.registry = registry
        self.transport = transport
        self.request_timeout = request_timeout
        self.max_attempts = max_attempts
        self.max_workers = max_workers

        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._rotation = itertools.count()

    # Node selection

    def candidates(self, selector: TargetSelector) -> List[NodeRecord]:
        """
        Get the ordered nodes a request may be tried against.

        Raises:
            EmptyRingError: key routing with no ring loaded
            NoActiveNodeError: no active node to route to
        """
        if selector.kind == SelectorKind.EXPLICIT:
            return [selector.node]

        view = self.registry.snapshot()
        if selector.kind == SelectorKind.KEY:
            return self._key_candidates(view, selector.key)

        active = list(view.active)
        if not active:
            raise NoActiveNodeError()
        start = next(self._rotation) % len(active)
        return active[start:] + active[:start]

    def _key_candidates(self, view: RegistryView, key: str) -> List[NodeRecord]:
        ring = view.ring
        if ring is None or not len(ring):
            raise EmptyRingError()
        owners = ring.locate(key)

        active = view.active
        if not active:
            raise NoActiveNodeError(f"No active node available for key {key!r}")

        candidates = []
        used: Set[str] = set()
        for owner in owners:
            record = view.get(owner.node_id)
            if record is None or not record.is_active or record.node_id in used:
                substitute = self._next_active_after(view, owner.node_id, used)
                if substitute is not None:
                    logger.debug(f"Owner {owner.node_id} of key {key!r} unavailable, "
                                 f"substituting {substitute.node_id}")
                record = substitute
            if record is not None and record.node_id not in used:
                candidates.append(record)
                used.add(record.node_id)

        # Remaining active nodes are failover candidates
        for record in active:
            if record.node_id not in used:
                candidates.append(record)
                used.add(record.node_id)
        return candidates

    @staticmethod
    def _next_active_after(view: RegistryView, node_id: str,
                           used: Set[str]) -> Optional[NodeRecord]:
        """Next active node after node_id in registry order, wrapping around"""
        records = view.records
        start = view.index_of(node_id)
        for i in range(len(records)):
            record = records[(start + 1 + i) % len(records)]
            if record.is_active and record.node_id not in used:
                return record
        return None

    # Execution

    def execute(self, operation: Operation, selector: Optional[TargetSelector] = None,
                ctx: Optional[RequestContext] = None) -> Any:
        """
        Run an operation and decode its response.

        Args:
            operation: What to send and how to decode the answer
            selector: Target selection, any active node by default
            ctx: Cancellation and deadline for the whole call

        Returns:
            The decoded result, or the raw TransportResponse when the
            operation has no decode step
        """
        selector = selector or TargetSelector.any_active()
        ctx = ctx or RequestContext()
        ctx.raise_if_cancelled()

        candidates = self.candidates(selector)
        explicit = selector.kind == SelectorKind.EXPLICIT
        attempts = 1 if explicit else min(self.max_attempts, len(candidates))

        last_error: Optional[TransientError] = None
        for attempt, node in enumerate(candidates[:attempts], 1):
            try:
                response = self._attempt(node, operation, ctx)
            except TransientError as e:
                if explicit:
                    raise ExplicitNodeError(node.node_id, e) from e
                last_error = e
                logger.warning(f"{operation.method} {operation.path} attempt {attempt}/{attempts} "
                               f"on node {node.node_id} failed: {e}")
                if ctx.expired:
                    break
                continue
            return self._decode(operation, response)

        raise last_error

    def _attempt(self, node: NodeRecord, operation: Operation,
                 ctx: RequestContext) -> TransportResponse:
        ctx.raise_if_cancelled()
        timeout = self.request_timeout
        remaining = ctx.remaining()
        if remaining is not None:
            if remaining <= 0:
                raise RequestTimeoutError(node.node_id, 0.0)
            timeout = min(timeout, remaining)

        finished = threading.Event()
        future = self._get_executor().submit(
            self.transport.perform_request, node, operation.method, operation.path,
            operation.body, operation.headers, timeout)
        future.add_done_callback(lambda _: finished.set())
        ctx.add_done_callback(finished.set)
        try:
            finished.wait(timeout)
            if ctx.cancelled:
                future.cancel()
                raise RequestCancelledError()
            if not future.done():
                # The worker keeps running until its own timeout; its result is dropped
                future.cancel()
                raise RequestTimeoutError(node.node_id, timeout)
            return future.result()
        finally:
            ctx.remove_done_callback(finished.set)

    @staticmethod
    def _decode(operation: Operation, response: TransportResponse) -> Any:
        if operation.decode is None:
            return response
        try:
            return operation.decode(response.body, response.headers)
        except SnowthError:
            raise
        except Exception as e:
            raise DecodeError(
                f"Unable to decode response from node {response.node_id}: {e}") from e

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                                    thread_name_prefix="snowth-dispatch")
            return self._executor

    def close(self):
        """Release the worker pool; the next request starts a new one"""
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None
