"""
Health Monitor for the snowth client

Runs two independent background cadences against the node registry:

* probe: every probe_interval, probe every known node concurrently and
  classify it active or inactive as each result arrives; while no ring is
  loaded, also fetch one from a reachable node
* discovery (optional): every discovery_interval, fetch the topology and
  ring documents from a reachable node and replace the registry contents

Failures here are logged and only ever affect registry state.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional

from .config import ClientConfig
from .errors import SnowthError
from .registry import NodeRecord, NodeRegistry, NodeStatus
from .transport import HTTPTransport

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Keeps the node registry's health and topology fresh"""

    def __init__(self, registry: NodeRegistry, transport: HTTPTransport, config: ClientConfig):
        self.registry = registry
        self.transport = transport
        self.config = config

        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

        # Consecutive probe failures per node, for hysteresis
        self._failures: Dict[str, int] = {}
        self._failures_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads) and not self._stop_event.is_set()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.probe_concurrency,
                    thread_name_prefix="snowth-probe")
            return self._executor

    # Probe cadence

    def probe_node(self, node: NodeRecord) -> bool:
        """Probe one node and record the result; returns whether it is healthy"""
        try:
            healthy, topology_id = self.transport.fetch_node_health(
                node, timeout=self.config.probe_timeout)
        except SnowthError as e:
            logger.warning(f"Node {node.node_id} health check failed: {e}")
            healthy, topology_id = False, None

        if healthy:
            with self._failures_lock:
                self._failures.pop(node.node_id, None)
            self.registry.apply_health_result(node.node_id, True, topology_id)
            return True

        with self._failures_lock:
            failures = self._failures.get(node.node_id, 0) + 1
            self._failures[node.node_id] = failures

        current = self.registry.get(node.node_id)
        if (current is not None and current.status == NodeStatus.ACTIVE
                and failures < self.config.failure_threshold):
            logger.info(f"Node {node.node_id} failed {failures}/"
                        f"{self.config.failure_threshold} probes, keeping it active")
            return False

        self.registry.apply_health_result(node.node_id, False)
        return False

    def probe_all(self, nodes: Optional[List[NodeRecord]] = None) -> Dict[str, bool]:
        """
        Probe nodes concurrently, every registered node by default.

        Each probe updates the registry as soon as it completes; this call
        returns once all probes have finished.

        Returns:
            Dict of node_id -> healthy
        """
        if nodes is None:
            nodes = self.registry.all_nodes()
        if not nodes:
            return {}

        executor = self._get_executor()
        futures = {executor.submit(self.probe_node, node): node.node_id for node in nodes}
        wait(futures)

        results = {}
        for future, node_id in futures.items():
            results[node_id] = future.result()

        active = sum(1 for healthy in results.values() if healthy)
        logger.debug(f"Probe round complete: {active}/{len(results)} nodes healthy")
        return results

    # Discovery cadence

    def _discovery_candidates(self) -> List[NodeRecord]:
        view = self.registry.snapshot()
        active = list(view.active)
        rest = [r for r in view.records if r.status != NodeStatus.ACTIVE]
        return active + rest

    def discover(self) -> bool:
        """
        Refresh membership and ring from the first node able to serve them.

        Returns:
            True if the registry was replaced, False if every node failed and
            the previous state was kept
        """
        for node in self._discovery_candidates():
            topology_id = node.current_topology_id or self.registry.topology_id
            if not topology_id:
                logger.debug(f"Skipping discovery via {node.node_id}: topology unknown")
                continue

            try:
                topology = self.transport.fetch_topology_document(
                    node, topology_id, timeout=self.config.request_timeout)
                ring = self.transport.fetch_ring_document(
                    node, topology_id, timeout=self.config.request_timeout,
                    replication_factor=self.config.replication_factor)
            except SnowthError as e:
                logger.warning(f"Discovery via node {node.node_id} failed: {e}")
                continue

            if not topology.nodes or not len(ring):
                logger.warning(f"Discovery via node {node.node_id} returned an empty "
                               f"topology or ring for {topology_id}, ignoring it")
                continue

            if self.config.replication_factor is None and ring.replication_factor == 1:
                ring = ring.with_replication_factor(topology.replication_count)

            records = [
                NodeRecord(node_id=n.node_id, endpoint=n.endpoint(self.config.scheme),
                           weight=n.weight, current_topology_id=topology_id)
                for n in topology.nodes
            ]
            previous = set(self.registry.snapshot().node_ids)
            view = self.registry.replace_topology(records, ring, topology_id)
            logger.info(f"Loaded topology {topology_id} from node {node.node_id}: "
                        f"{len(records)} nodes, {len(ring)} virtual nodes")

            with self._failures_lock:
                for node_id in set(self._failures) - set(view.node_ids):
                    del self._failures[node_id]

            # Classify added nodes now rather than at the next probe round
            added = [r for r in view.records
                     if r.node_id not in previous and r.status == NodeStatus.UNKNOWN]
            if added:
                self.probe_all(added)
            return True

        logger.warning("Discovery skipped: no node could serve the topology")
        return False

    def load_ring(self) -> bool:
        """
        Fetch the ring for the topology the nodes report, keeping membership.

        Used when discovery is disabled so key routing still has a ring.

        Returns:
            True if a ring was installed
        """
        for node in self._discovery_candidates():
            topology_id = node.current_topology_id or self.registry.topology_id
            if not topology_id:
                continue

            try:
                ring = self.transport.fetch_ring_document(
                    node, topology_id, timeout=self.config.request_timeout,
                    replication_factor=self.config.replication_factor)
            except SnowthError as e:
                logger.warning(f"Ring fetch via node {node.node_id} failed: {e}")
                continue

            if not len(ring):
                logger.warning(f"Node {node.node_id} returned an empty ring for {topology_id}")
                continue

            self.registry.replace_ring(ring, topology_id)
            return True

        logger.warning("Ring load skipped: no node could serve the ring")
        return False

    # Background loops

    def _probe_loop(self):
        """Background task to probe node health"""
        while not self._stop_event.wait(self.config.probe_interval):
            try:
                self.probe_all()
                if self.registry.ring is None:
                    self.load_ring()
            except Exception as e:
                logger.error(f"Health check error: {e}")

    def _discovery_loop(self):
        """Background task to refresh the topology"""
        while not self._stop_event.wait(self.config.discovery_interval):
            try:
                self.discover()
            except Exception as e:
                logger.error(f"Discovery error: {e}")

    def start(self):
        """Start the background cadences"""
        if self.running:
            return
        self._stop_event.clear()

        loops = [("snowth-probe-loop", self._probe_loop)]
        if self.config.discover:
            loops.append(("snowth-discovery-loop", self._discovery_loop))

        self._threads = []
        for name, target in loops:
            thread = threading.Thread(target=target, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)

        discovery = f"every {self.config.discovery_interval}s" if self.config.discover else "disabled"
        logger.info(f"Health monitor started (probe every {self.config.probe_interval}s, "
                    f"discovery {discovery})")

    def stop(self, timeout: Optional[float] = None):
        """Stop the background cadences and release the probe pool"""
        self._stop_event.set()
        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=timeout)
        self._threads = []

        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None
        logger.info("Health monitor stopped")
