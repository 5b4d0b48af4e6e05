"""
Node Registry for the snowth client

Holds the known store nodes, their health classification, the topology each
node serves and the current ring. Writers serialise on a lock and publish a
new immutable RegistryView; readers take the current view without locking,
so they always see either the previous or the next complete state.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from .toporing import Ring

logger = logging.getLogger(__name__)


class NodeStatus(Enum):
    """Health classification of a store node"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class NodeRecord:
    """Information about a store node"""
    node_id: str
    endpoint: str
    weight: int = 1
    current_topology_id: str = ""
    status: NodeStatus = NodeStatus.UNKNOWN
    last_checked: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.status == NodeStatus.ACTIVE

    def url(self, path: str = "") -> str:
        """Absolute URL for a path on this node"""
        if path and not path.startswith("/"):
            path = "/" + path
        return self.endpoint + path

    def to_dict(self):
        return {
            "node_id": self.node_id,
            "endpoint": self.endpoint,
            "weight": self.weight,
            "current_topology_id": self.current_topology_id,
            "status": self.status.value,
            "last_checked": self.last_checked,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            node_id=data["node_id"],
            endpoint=data["endpoint"],
            weight=data.get("weight", 1),
            current_topology_id=data.get("current_topology_id", ""),
            status=NodeStatus(data.get("status", NodeStatus.UNKNOWN.value)),
            last_checked=data.get("last_checked"),
        )

    @classmethod
    def from_url(cls, url: str) -> "NodeRecord":
        """Seed record for a node known only by its URL"""
        url = url.rstrip("/")
        node_id = urlsplit(url).netloc or url
        return cls(node_id=node_id, endpoint=url)


@dataclass(frozen=True)
class RegistryView:
    """Immutable snapshot of the registry"""
    records: Tuple[NodeRecord, ...] = field(default_factory=tuple)
    ring: Optional[Ring] = None
    topology_id: str = ""
    version: int = 0

    def __len__(self):
        return len(self.records)

    @property
    def active(self) -> Tuple[NodeRecord, ...]:
        return tuple(r for r in self.records if r.status == NodeStatus.ACTIVE)

    @property
    def node_ids(self) -> List[str]:
        return [r.node_id for r in self.records]

    def get(self, node_id: str) -> Optional[NodeRecord]:
        for record in self.records:
            if record.node_id == node_id:
                return record
        return None

    def index_of(self, node_id: str) -> int:
        for i, record in enumerate(self.records):
            if record.node_id == node_id:
                return i
        return -1

    def to_dict(self):
        return {
            "topology_id": self.topology_id,
            "version": self.version,
            "nodes": [r.to_dict() for r in self.records],
            "ring_vnodes": len(self.ring) if self.ring is not None else 0,
        }


class NodeRegistry:
    """Thread-safe registry of known store nodes"""

    def __init__(self, seeds: Iterable[NodeRecord] = (), ring: Optional[Ring] = None,
                 topology_id: str = ""):
        records = []
        seen = set()
        for record in seeds:
            if record.node_id in seen:
                continue
            seen.add(record.node_id)
            records.append(record)

        self._write_lock = threading.Lock()
        self._view = RegistryView(tuple(records), ring, topology_id, 0)

    def snapshot(self) -> RegistryView:
        """Current immutable view of the registry"""
        return self._view

    def active_nodes(self) -> List[NodeRecord]:
        """Active nodes in registry order"""
        return list(self._view.active)

    def all_nodes(self) -> List[NodeRecord]:
        return list(self._view.records)

    def get(self, node_id: str) -> Optional[NodeRecord]:
        return self._view.get(node_id)

    @property
    def ring(self) -> Optional[Ring]:
        return self._view.ring

    @property
    def topology_id(self) -> str:
        return self._view.topology_id

    def __len__(self):
        return len(self._view.records)

    def _publish(self, records: Tuple[NodeRecord, ...], ring: Optional[Ring], topology_id: str):
        self._view = RegistryView(records, ring, topology_id, self._view.version + 1)

    def apply_health_result(self, node_id: str, healthy: bool,
                            topology_id: Optional[str] = None) -> Optional[NodeRecord]:
        """
        Record the outcome of a health probe for one node.

        Args:
            node_id: The probed node
            healthy: Whether the probe succeeded
            topology_id: Topology the node reported serving, if known

        Returns:
            The updated record, or None if the node is no longer registered
        """
        with self._write_lock:
            view = self._view
            index = view.index_of(node_id)
            if index < 0:
                logger.debug(f"Ignoring health result for unregistered node {node_id}")
                return None

            old = view.records[index]
            changes = {
                "status": NodeStatus.ACTIVE if healthy else NodeStatus.INACTIVE,
                "last_checked": time.time(),
            }
            if topology_id:
                changes["current_topology_id"] = topology_id
            new = replace(old, **changes)

            if old.status != new.status:
                logger.info(f"Node {node_id} status {old.status.value} -> {new.status.value}")

            records = view.records[:index] + (new,) + view.records[index + 1:]
            cluster_topology = view.topology_id or (topology_id or "")
            self._publish(records, view.ring, cluster_topology)
            return new

    def replace_topology(self, nodes: Iterable[NodeRecord], ring: Optional[Ring],
                         topology_id: Optional[str] = None) -> RegistryView:
        """
        Atomically replace membership and ring after discovery.

        Nodes missing from the new list are dropped. Surviving nodes keep
        their health state and take the new endpoint and weight. A new node
        served at the endpoint of a dropped node (a seed known only by its
        URL) inherits that node's health state; other new nodes start as
        UNKNOWN until their first probe.
        """
        nodes = list(nodes)
        if not nodes:
            raise ValueError("Refusing to replace topology with an empty node list")

        with self._write_lock:
            view = self._view
            new_ids = {node.node_id for node in nodes}
            dropped_by_endpoint = {
                r.endpoint: r for r in view.records if r.node_id not in new_ids
            }

            records = []
            seen = set()
            for node in nodes:
                if node.node_id in seen:
                    continue
                seen.add(node.node_id)
                existing = view.get(node.node_id)
                if existing is not None:
                    records.append(replace(existing, endpoint=node.endpoint, weight=node.weight))
                    continue
                previous = dropped_by_endpoint.pop(node.endpoint, None)
                if previous is not None:
                    records.append(replace(node, status=previous.status,
                                           last_checked=previous.last_checked))
                else:
                    records.append(replace(node, status=NodeStatus.UNKNOWN, last_checked=None))

            removed = [r.node_id for r in view.records if r.node_id not in seen]
            added = [r.node_id for r in records if view.get(r.node_id) is None]
            if removed:
                logger.info(f"Topology refresh removed nodes: {removed}")
            if added:
                logger.info(f"Topology refresh added nodes: {added}")

            self._publish(tuple(records), ring, topology_id or view.topology_id)
            return self._view

    def replace_ring(self, ring: Ring, topology_id: Optional[str] = None) -> RegistryView:
        """Install a ring without touching membership or health state"""
        with self._write_lock:
            view = self._view
            self._publish(view.records, ring, topology_id or view.topology_id)
            logger.info(f"Installed ring for topology {self._view.topology_id}: "
                        f"{len(ring)} virtual nodes")
            return self._view
