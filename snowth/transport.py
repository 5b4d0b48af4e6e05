"""
HTTP transport for talking to store nodes

Wraps a requests Session and maps network and HTTP failures onto the client's
error types: connection problems, timeouts and 5xx answers are transient,
4xx answers and unusable URLs are permanent.
"""

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

import requests

from .decoding import decode_json_object
from .errors import (
    ClientRequestError,
    MalformedDocumentError,
    NodeConnectionError,
    RequestTimeoutError,
    ServerError,
    TransientError,
)
from .registry import NodeRecord
from .topology import Topology
from .toporing import Ring

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "snowth-python"


@dataclass
class TransportResponse:
    """Raw response from a node"""
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    status_code: int = 200
    node_id: Optional[str] = None

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class HTTPTransport:
    """Performs HTTP requests against store nodes"""

    def __init__(self, session: Optional[requests.Session] = None,
                 user_agent: str = DEFAULT_USER_AGENT):
        self.session = session or requests.Session()
        self.user_agent = user_agent

    def perform_request(self, node: NodeRecord, method: str, path: str,
                        body: Optional[bytes] = None,
                        headers: Optional[Mapping[str, str]] = None,
                        timeout: Optional[float] = None) -> TransportResponse:
        """
        Issue one request to a node.

        Args:
            node: Target node
            method: HTTP method
            path: Path (and query) relative to the node's endpoint
            body: Opaque request body
            headers: Extra request headers
            timeout: Seconds before the request is abandoned

        Returns:
            The response body, headers and status code
        """
        url = node.url(path)
        request_headers = {"User-Agent": self.user_agent}
        if headers:
            request_headers.update(headers)

        logger.debug(f"{method} {url} (timeout={timeout})")
        try:
            response = self.session.request(
                method, url, data=body, headers=request_headers, timeout=timeout)
        except requests.Timeout as e:
            raise RequestTimeoutError(node.node_id, timeout) from e
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            raise ClientRequestError(node.node_id, None, f"invalid URL {url}: {e}") from e
        except requests.ConnectionError as e:
            raise NodeConnectionError(node.node_id, str(e)) from e
        except requests.RequestException as e:
            raise TransientError(node.node_id, str(e)) from e

        status = response.status_code
        if status >= 500:
            raise ServerError(node.node_id, status, response.text[:512])
        if status >= 400:
            raise ClientRequestError(node.node_id, status, response.text[:512])

        return TransportResponse(
            body=response.content,
            headers=dict(response.headers),
            status_code=status,
            node_id=node.node_id,
        )

    def fetch_node_state(self, node: NodeRecord, timeout: Optional[float] = None) -> dict:
        """Get a node's state document"""
        response = self.perform_request(node, "GET", "/state", timeout=timeout)
        return decode_json_object(response.body, response.headers)

    def fetch_node_health(self, node: NodeRecord,
                          timeout: Optional[float] = None) -> Tuple[bool, Optional[str]]:
        """
        Probe a node's health.

        Returns:
            Tuple of (healthy, topology id the node currently serves)
        """
        state = self.fetch_node_state(node, timeout=timeout)
        current = state.get("current")
        return True, str(current) if current else None

    def fetch_topology_document(self, node: NodeRecord, topology_id: str,
                                timeout: Optional[float] = None) -> Topology:
        """Get the topology document a node serves"""
        if not topology_id:
            raise MalformedDocumentError(f"Node {node.node_id} reports no current topology")
        response = self.perform_request(
            node, "GET", posixpath.join("/topology/xml", topology_id), timeout=timeout)
        return Topology.from_xml(response.body, topology_id)

    def fetch_ring_document(self, node: NodeRecord, topology_id: str,
                            timeout: Optional[float] = None,
                            replication_factor: Optional[int] = None) -> Ring:
        """Get the ring document for a topology"""
        if not topology_id:
            raise MalformedDocumentError(f"Node {node.node_id} reports no current topology")
        response = self.perform_request(
            node, "GET", posixpath.join("/toporing/xml", topology_id), timeout=timeout)
        return Ring.from_xml(response.body, replication_factor)

    def close(self):
        self.session.close()
