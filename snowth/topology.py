"""
Cluster topology documents

A topology lists the physical store nodes, their addresses and weights, and
how many copies of each metric the cluster writes. Nodes serve the topology
identified by a hash; documents are fetched and loaded by that hash.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .decoding import int_attr, parse_xml
from .errors import MalformedDocumentError


@dataclass(frozen=True)
class TopologyNode:
    """A physical node as described by the topology document"""
    node_id: str
    address: str
    port: int
    api_port: int
    weight: int = 1

    def endpoint(self, scheme: str = "http") -> str:
        """Base URL of this node's API"""
        return f"{scheme}://{self.address}:{self.api_port}"

    def to_dict(self):
        return {
            "id": self.node_id,
            "address": self.address,
            "port": self.port,
            "apiport": self.api_port,
            "weight": self.weight,
        }

    @classmethod
    def from_dict(cls, data):
        try:
            return cls(
                node_id=str(data["id"]),
                address=str(data["address"]),
                port=int(data["port"]),
                api_port=int(data.get("apiport", data["port"])),
                weight=int(data.get("weight", 1)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedDocumentError(f"Invalid topology node entry {data!r}: {e}") from e


@dataclass(frozen=True)
class Topology:
    """Snapshot of the cluster's membership"""
    topology_id: str
    nodes: Tuple[TopologyNode, ...] = field(default_factory=tuple)
    replication_count: int = 1

    def __len__(self):
        return len(self.nodes)

    @property
    def node_ids(self) -> List[str]:
        return [node.node_id for node in self.nodes]

    def get_node(self, node_id: str) -> Optional[TopologyNode]:
        for node in self.nodes:
            if node.node_id == node_id:
                return node
        return None

    @classmethod
    def from_nodes(cls, topology_id: str, nodes: Iterable[TopologyNode],
                   replication_count: int = 1) -> "Topology":
        return cls(topology_id, tuple(nodes), replication_count)

    @classmethod
    def from_xml(cls, body: bytes, topology_id: str = "") -> "Topology":
        """
        Parse a topology document.

        Expected shape::

            <nodes n="2">
              <node id="..." address="10.8.20.1" port="8112" apiport="8112" weight="32"/>
              ...
            </nodes>
        """
        root = parse_xml(body, "nodes")
        nodes = []
        for element in root.findall("node"):
            node_id = element.get("id")
            address = element.get("address")
            if not node_id or not address:
                raise MalformedDocumentError("<node> requires 'id' and 'address' attributes")
            port = int_attr(element, "port")
            nodes.append(TopologyNode(
                node_id=node_id,
                address=address,
                port=port,
                api_port=int_attr(element, "apiport", port),
                weight=int_attr(element, "weight", 1),
            ))
        return cls(topology_id, tuple(nodes), max(1, int_attr(root, "n", 1)))

    @classmethod
    def from_list(cls, entries: List[dict], topology_id: str = "") -> "Topology":
        """Build a topology from the JSON list form, where each entry carries ``n``"""
        if not isinstance(entries, list):
            raise MalformedDocumentError("Topology JSON must be a list of node entries")
        nodes = tuple(TopologyNode.from_dict(entry) for entry in entries)
        replication_count = 1
        if entries and isinstance(entries[0], dict):
            replication_count = max(1, int(entries[0].get("n", 1)))
        return cls(topology_id, nodes, replication_count)

    def to_xml(self) -> bytes:
        """Serialise to the XML document form accepted by the load endpoint"""
        root = ET.Element("nodes", {"n": str(self.replication_count)})
        for node in self.nodes:
            ET.SubElement(root, "node", {
                "id": node.node_id,
                "address": node.address,
                "port": str(node.port),
                "apiport": str(node.api_port),
                "weight": str(node.weight),
            })
        return ET.tostring(root, encoding="utf-8")

    def to_list(self) -> List[dict]:
        entries = []
        for node in self.nodes:
            entry = node.to_dict()
            entry["n"] = self.replication_count
            entries.append(entry)
        return entries
