"""
Topology ring lookup for consistent hashing

The store advertises its ring as a list of virtual nodes, each owned by a
physical node and placed at a location on the ring. A key is owned by the
first virtual node at or after the key's hash, walking clockwise and wrapping
around past the highest location.
"""

import bisect
import hashlib
import struct
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from .decoding import int_attr, parse_xml
from .errors import EmptyRingError, MalformedDocumentError

HASH_SPACE = float(2 ** 64)


def key_hash(key: str) -> float:
    """Hash a routing key into the ring's location space [0, 1)"""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return struct.unpack(">Q", digest[:8])[0] / HASH_SPACE


def metric_key(check_uuid: str, metric: str) -> str:
    """Build the routing key for a metric stream"""
    return f"{check_uuid.lower()}|{metric}"


@dataclass(frozen=True)
class RingDescriptor:
    """A virtual node: one share of a physical node's ownership of the ring"""
    node_id: str
    index: int
    position: float

    def to_dict(self):
        return {"id": self.node_id, "idx": self.index, "location": self.position}

    @classmethod
    def from_dict(cls, data):
        return cls(str(data["id"]), int(data["idx"]), float(data["location"]))


class Ring:
    """
    Immutable consistent hash ring.

    Descriptors are sorted by position once, on construction. The sort is
    stable, so descriptors sharing a position keep their load order and the
    first one loaded wins a lookup.
    """

    def __init__(self, descriptors: Iterable[RingDescriptor], replication_factor: int = 1,
                 hash_func: Callable[[str], float] = key_hash):
        if replication_factor < 1:
            raise ValueError(f"replication_factor must be >= 1, got {replication_factor}")

        self._descriptors: Tuple[RingDescriptor, ...] = tuple(
            sorted(descriptors, key=lambda d: d.position))
        self._positions: List[float] = [d.position for d in self._descriptors]
        self.replication_factor = replication_factor
        self.hash_func = hash_func

    def __len__(self):
        return len(self._descriptors)

    def __iter__(self):
        return iter(self._descriptors)

    def __repr__(self):
        return (f"Ring(vnodes={len(self._descriptors)}, nodes={len(self.node_ids)}, "
                f"replication_factor={self.replication_factor})")

    @property
    def descriptors(self) -> Tuple[RingDescriptor, ...]:
        return self._descriptors

    @property
    def node_ids(self) -> List[str]:
        """Distinct physical node ids in ring order"""
        seen = set()
        ordered = []
        for descriptor in self._descriptors:
            if descriptor.node_id not in seen:
                seen.add(descriptor.node_id)
                ordered.append(descriptor.node_id)
        return ordered

    def locate(self, key: str) -> List[RingDescriptor]:
        """Get the owning virtual nodes for a key, primary owner first"""
        return self.locate_hash(self.hash_func(key))

    def locate_hash(self, key_hash_value: float) -> List[RingDescriptor]:
        """
        Get the owning virtual nodes for a precomputed key hash.

        Returns up to replication_factor descriptors naming distinct nodes.
        Fewer are returned when the ring holds fewer distinct nodes.
        """
        if not self._descriptors:
            raise EmptyRingError()

        count = len(self._descriptors)
        start = bisect.bisect_left(self._positions, key_hash_value)
        if start == count:
            start = 0  # past the highest position, wrap around

        result = []
        seen_nodes = set()
        for i in range(count):
            descriptor = self._descriptors[(start + i) % count]
            if descriptor.node_id in seen_nodes:
                continue
            result.append(descriptor)
            seen_nodes.add(descriptor.node_id)
            if len(result) >= self.replication_factor:
                break

        return result

    def with_replication_factor(self, replication_factor: int) -> "Ring":
        return Ring(self._descriptors, replication_factor, self.hash_func)

    @classmethod
    def from_xml(cls, body: bytes, replication_factor: Optional[int] = None,
                 hash_func: Callable[[str], float] = key_hash) -> "Ring":
        """
        Parse a ring document.

        Expected shape::

            <vnodes n="2">
              <vnode id="<node uuid>" idx="0" location="0.0123"/>
              ...
            </vnodes>

        The document's ``n`` attribute is the replication factor unless one
        is given explicitly.
        """
        root = parse_xml(body, "vnodes")
        descriptors = []
        for element in root.findall("vnode"):
            node_id = element.get("id")
            if not node_id:
                raise MalformedDocumentError("<vnode> is missing attribute 'id'")
            location = element.get("location")
            try:
                position = float(location)
            except (TypeError, ValueError) as e:
                raise MalformedDocumentError(
                    f"<vnode id={node_id!r}> has invalid location {location!r}") from e
            descriptors.append(RingDescriptor(node_id, int_attr(element, "idx", 0), position))

        if replication_factor is None:
            replication_factor = max(1, int_attr(root, "n", 1))
        return cls(descriptors, replication_factor, hash_func)
