"""
Snowth client

Ties the routing and health layer together: a registry seeded from the
configured nodes, a health monitor keeping it fresh, an HTTP transport and a
dispatcher routing operations. Store operations are thin wrappers that build
an Operation and pick a target selector.
"""

import logging
import posixpath
from typing import Any, List, Mapping, Optional, Sequence

from .config import ClientConfig
from .context import RequestContext
from .decoding import decode_json_object
from .dispatcher import Dispatcher, Operation, TargetSelector
from .errors import PermanentError
from .health import HealthMonitor
from .registry import NodeRecord, NodeRegistry, RegistryView
from .rollup import RollupValue, Timestamp, decode_rollup_values, rollup_path
from .tags import (
    FindTagsOptions,
    FindTagsResult,
    find_tags_headers,
    find_tags_path,
    make_find_tags_decoder,
)
from .topology import Topology
from .toporing import Ring, metric_key
from .transport import HTTPTransport, TransportResponse

logger = logging.getLogger(__name__)


class SnowthClient:
    """
    Client for a sharded time-series store cluster.

    Args:
        config: Client settings, including the seed node URLs
        transport: HTTP transport, a requests based one by default

    Usage:
        config = ClientConfig(seeds=["http://10.8.20.1:8112"], discover=True)
        with SnowthClient(config) as client:
            values = client.read_rollup_values(check_uuid, "cpu", 60, start, end)
    """

    def __init__(self, config: ClientConfig, transport: Optional[HTTPTransport] = None):
        self.config = config
        self.transport = transport or HTTPTransport(user_agent=config.user_agent)
        self.registry = NodeRegistry(NodeRecord.from_url(url) for url in config.seeds)
        self.monitor = HealthMonitor(self.registry, self.transport, config)
        self.dispatcher = Dispatcher(
            self.registry,
            self.transport,
            request_timeout=config.request_timeout,
            max_attempts=config.max_attempts,
            max_workers=config.dispatch_workers,
        )
        self.running = False

    @classmethod
    def from_seeds(cls, *seeds: str, discover: bool = False, **kwargs: Any) -> "SnowthClient":
        """Create a client from seed node URLs"""
        return cls(ClientConfig(seeds=list(seeds), discover=discover, **kwargs))

    # Lifecycle

    def start(self):
        """
        Probe the seed nodes, load the topology and start monitoring.

        With discovery enabled the registry is replaced by the advertised
        membership and ring. Otherwise, or if discovery fails, only the ring
        is fetched and the seeds stay the known nodes.
        """
        if self.running:
            return
        logger.info(f"Starting snowth client with seeds {self.config.seeds}")

        self.monitor.probe_all()
        discovered = self.config.discover and self.monitor.discover()
        if not discovered and self.registry.ring is None:
            self.monitor.load_ring()

        self.monitor.start()
        self.running = True

        active = len(self.registry.active_nodes())
        if active == 0:
            logger.warning("No active nodes after initial probe; requests will fail until one recovers")
        else:
            logger.info(f"Snowth client ready: {active}/{len(self.registry)} nodes active")

    def stop(self):
        """Stop monitoring and release worker pools and connections"""
        self.monitor.stop()
        self.dispatcher.close()
        self.transport.close()
        self.running = False
        logger.info("Snowth client stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    # Routing state

    def snapshot(self) -> RegistryView:
        return self.registry.snapshot()

    def active_nodes(self) -> List[NodeRecord]:
        return self.registry.active_nodes()

    def get_active_node(self) -> Optional[NodeRecord]:
        """First active node, or None when every node is down"""
        nodes = self.registry.active_nodes()
        return nodes[0] if nodes else None

    def find_metric_nodes(self, check_uuid: str, metric: str) -> List[NodeRecord]:
        """Nodes owning a metric stream according to the current ring, primary first"""
        view = self.registry.snapshot()
        if view.ring is None:
            return []
        owners = view.ring.locate(metric_key(check_uuid, metric))
        return [record for record in (view.get(o.node_id) for o in owners) if record is not None]

    # Generic requests

    @staticmethod
    def _selector(node: Optional[NodeRecord] = None, key: Optional[str] = None) -> TargetSelector:
        if node is not None:
            return TargetSelector.explicit(node)
        if key is not None:
            return TargetSelector.for_key(key)
        return TargetSelector.any_active()

    def execute(self, operation: Operation, selector: Optional[TargetSelector] = None,
                ctx: Optional[RequestContext] = None) -> Any:
        return self.dispatcher.execute(operation, selector, ctx)

    def do_request(self, method: str, path: str, body: Optional[bytes] = None,
                   headers: Optional[Mapping[str, str]] = None,
                   node: Optional[NodeRecord] = None, key: Optional[str] = None,
                   ctx: Optional[RequestContext] = None) -> TransportResponse:
        """Send a raw request; routed to node, else by key, else to any active node"""
        operation = Operation(method, path, body, dict(headers) if headers else None)
        return self.dispatcher.execute(operation, self._selector(node, key), ctx)

    # Node and topology operations

    def get_node_state(self, node: Optional[NodeRecord] = None,
                       ctx: Optional[RequestContext] = None) -> dict:
        """Get a node's state document"""
        operation = Operation("GET", "/state", decode=decode_json_object)
        return self.dispatcher.execute(operation, self._selector(node), ctx)

    def _topology_id_for(self, node: Optional[NodeRecord]) -> str:
        topology_id = node.current_topology_id if node is not None else ""
        topology_id = topology_id or self.registry.topology_id
        if not topology_id:
            raise PermanentError("Current topology is unknown; no node has reported one yet")
        return topology_id

    def get_topology_info(self, node: Optional[NodeRecord] = None,
                          ctx: Optional[RequestContext] = None) -> Topology:
        """Get the topology document currently served"""
        topology_id = self._topology_id_for(node)
        operation = Operation(
            "GET", posixpath.join("/topology/xml", topology_id),
            decode=lambda body, headers: Topology.from_xml(body, topology_id))
        return self.dispatcher.execute(operation, self._selector(node), ctx)

    def get_topo_ring_info(self, topology_id: Optional[str] = None,
                           node: Optional[NodeRecord] = None,
                           ctx: Optional[RequestContext] = None) -> Ring:
        """Get the ring document for a topology, the current one by default"""
        topology_id = topology_id or self._topology_id_for(node)
        replication_factor = self.config.replication_factor
        operation = Operation(
            "GET", posixpath.join("/toporing/xml", topology_id),
            decode=lambda body, headers: Ring.from_xml(body, replication_factor))
        return self.dispatcher.execute(operation, self._selector(node), ctx)

    def load_topology(self, topology_id: str, topology: Topology, node: NodeRecord,
                      ctx: Optional[RequestContext] = None) -> None:
        """Load a new topology on a node without activating it"""
        operation = Operation(
            "POST", posixpath.join("/topology", topology_id),
            body=topology.to_xml(),
            headers={"Content-Type": "application/xml"})
        self.dispatcher.execute(operation, TargetSelector.explicit(node), ctx)

    def activate_topology(self, topology_id: str, node: NodeRecord,
                          ctx: Optional[RequestContext] = None) -> None:
        """Activate a loaded topology on a node. This changes data placement."""
        logger.warning(f"Activating topology {topology_id} on node {node.node_id}")
        operation = Operation("GET", posixpath.join("/activate", topology_id))
        self.dispatcher.execute(operation, TargetSelector.explicit(node), ctx)

    # Data operations

    def read_rollup_values(self, check_uuid: str, metric: str, rollup_span: int,
                           start: Timestamp, end: Timestamp,
                           tags: Optional[Sequence[str]] = None,
                           node: Optional[NodeRecord] = None,
                           ctx: Optional[RequestContext] = None) -> List[RollupValue]:
        """
        Read rollup values for a metric stream.

        Routed to the metric's ring owners unless a node is given.

        Args:
            check_uuid: Check the metric belongs to
            metric: Metric name
            rollup_span: Span in seconds
            start: Range start (datetime or epoch seconds)
            end: Range end (datetime or epoch seconds)
            tags: Stream tags
        """
        operation = Operation(
            "GET", rollup_path(check_uuid, metric, rollup_span, start, end, tags),
            decode=decode_rollup_values)
        selector = self._selector(node, metric_key(check_uuid, metric))
        return self.dispatcher.execute(operation, selector, ctx)

    def find_tags(self, account_id: int, query: str,
                  options: Optional[FindTagsOptions] = None,
                  node: Optional[NodeRecord] = None,
                  ctx: Optional[RequestContext] = None) -> FindTagsResult:
        """Find metrics matching a tag query"""
        options = options or FindTagsOptions()
        operation = Operation(
            "GET", find_tags_path(account_id, query, options),
            headers=find_tags_headers(options) or None,
            decode=make_find_tags_decoder(bool(options.count_only)))
        return self.dispatcher.execute(operation, self._selector(node), ctx)
