"""
snowth - Topology-aware client for a sharded time-series store

Routes requests to the nodes owning a metric on the cluster's consistent hash
ring, tracks node health in the background and fails over between nodes.
"""

import logging

from .client import SnowthClient
from .config import ClientConfig
from .context import RequestContext
from .dispatcher import Dispatcher, Operation, SelectorKind, TargetSelector
from .errors import (
    ClientRequestError,
    ConfigurationError,
    DecodeError,
    EmptyRingError,
    ExplicitNodeError,
    MalformedDocumentError,
    NodeConnectionError,
    NoActiveNodeError,
    PermanentError,
    RequestCancelledError,
    RequestTimeoutError,
    ServerError,
    SnowthError,
    TransientError,
)
from .health import HealthMonitor
from .registry import NodeRecord, NodeRegistry, NodeStatus, RegistryView
from .rollup import RollupValue
from .tags import FindTagsItem, FindTagsOptions, FindTagsResult
from .topology import Topology, TopologyNode
from .toporing import Ring, RingDescriptor, key_hash, metric_key
from .transport import HTTPTransport, TransportResponse

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Client
    "SnowthClient",
    "ClientConfig",
    "RequestContext",
    # Routing and health
    "Dispatcher",
    "Operation",
    "SelectorKind",
    "TargetSelector",
    "HealthMonitor",
    "NodeRecord",
    "NodeRegistry",
    "NodeStatus",
    "RegistryView",
    "Ring",
    "RingDescriptor",
    "key_hash",
    "metric_key",
    "Topology",
    "TopologyNode",
    "HTTPTransport",
    "TransportResponse",
    # Data
    "RollupValue",
    "FindTagsItem",
    "FindTagsOptions",
    "FindTagsResult",
    # Errors
    "SnowthError",
    "ConfigurationError",
    "EmptyRingError",
    "NoActiveNodeError",
    "TransientError",
    "RequestTimeoutError",
    "NodeConnectionError",
    "ServerError",
    "PermanentError",
    "DecodeError",
    "MalformedDocumentError",
    "ClientRequestError",
    "ExplicitNodeError",
    "RequestCancelledError",
]
