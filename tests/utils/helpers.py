"""
Test helper utilities: a fake store node and polling helpers
"""

import threading
import time
import xml.etree.ElementTree as ET
from typing import Callable, Dict, List, Optional, Tuple

import requests
from flask import Flask, Response, jsonify, request
from werkzeug.serving import make_server

from snowth.registry import NodeRecord, NodeStatus


def make_record(node_id: str, status: NodeStatus = NodeStatus.ACTIVE, port: int = 8112) -> NodeRecord:
    """Build a node record with a loopback endpoint"""
    return NodeRecord(node_id=node_id, endpoint=f"http://127.0.0.1:{port}", status=status)


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.05) -> bool:
    """
    Poll a condition until it holds

    Args:
        predicate: Condition to check
        timeout: Maximum time to wait in seconds
        interval: Check interval in seconds

    Returns:
        True if the condition held, False if timeout
    """
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def wait_for_service(url: str, timeout: float = 10.0, interval: float = 0.1) -> bool:
    """Wait for a URL to answer 200"""
    def answered():
        try:
            return requests.get(url, timeout=1).status_code == 200
        except requests.RequestException:
            return False
    return wait_for(answered, timeout, interval)


def topology_xml(nodes: List[Tuple[str, int]], replication: int = 2, address: str = "127.0.0.1") -> bytes:
    """Topology document for (node_id, api_port) pairs"""
    root = ET.Element("nodes", {"n": str(replication)})
    for node_id, port in nodes:
        ET.SubElement(root, "node", {
            "id": node_id, "address": address, "port": str(port),
            "apiport": str(port), "weight": "32",
        })
    return ET.tostring(root, encoding="utf-8")


def ring_xml(vnodes: List[Tuple[str, float]], replication: int = 2) -> bytes:
    """Ring document for (node_id, location) pairs"""
    root = ET.Element("vnodes", {"n": str(replication)})
    for idx, (node_id, location) in enumerate(vnodes):
        ET.SubElement(root, "vnode", {"id": node_id, "idx": str(idx), "location": repr(location)})
    return ET.tostring(root, encoding="utf-8")


class FakeSnowthNode:
    """
    Minimal store node served by Flask in a background thread.

    Serves the state, topology, ring, rollup and tag search endpoints. Set
    ``failing`` to answer every request with a 500, or ``delay`` to stall
    every request.
    """

    def __init__(self, node_id: str, topology_id: str = ""):
        self.node_id = node_id
        self.topology_id = topology_id
        self.topology_doc = b""
        self.ring_doc = b""
        self.failing = False
        self.delay = 0.0
        self.requests: List[str] = []
        self.loaded: Dict[str, bytes] = {}
        self.activated: List[str] = []

        self.app = Flask(__name__)
        self._setup_routes()
        self.server = make_server("127.0.0.1", 0, self.app, threaded=True)
        self.port = self.server.server_port
        self.url = f"http://127.0.0.1:{self.port}"
        self._thread: Optional[threading.Thread] = None

    def _setup_routes(self):
        @self.app.before_request
        def _record():
            self.requests.append(request.path)
            if self.delay:
                time.sleep(self.delay)
            if self.failing:
                return Response("node unavailable", status=500)
            return None

        @self.app.route('/state', methods=['GET'])
        def state():
            return jsonify({"id": self.node_id, "current": self.topology_id, "features": {}})

        @self.app.route('/topology/xml/<topology_id>', methods=['GET'])
        def topology(topology_id):
            if topology_id != self.topology_id or not self.topology_doc:
                return Response("unknown topology", status=404)
            return Response(self.topology_doc, mimetype="application/xml")

        @self.app.route('/toporing/xml/<topology_id>', methods=['GET'])
        def toporing(topology_id):
            if topology_id != self.topology_id or not self.ring_doc:
                return Response("unknown topology", status=404)
            return Response(self.ring_doc, mimetype="application/xml")

        @self.app.route('/topology/<topology_id>', methods=['POST'])
        def load_topology(topology_id):
            self.loaded[topology_id] = request.get_data()
            return Response("", status=200)

        @self.app.route('/activate/<topology_id>', methods=['GET'])
        def activate(topology_id):
            self.activated.append(topology_id)
            return Response("", status=200)

        @self.app.route('/rollup/<check_uuid>/<path:metric>', methods=['GET'])
        def rollup(check_uuid, metric):
            start = int(request.args["start_ts"])
            end = int(request.args["end_ts"])
            span = int(request.args["rollup_span"].rstrip("s"))
            return jsonify([[ts, 1.5] for ts in range(start, end, span)])

        @self.app.route('/find/<int:account_id>/tags', methods=['GET'])
        def find_tags(account_id):
            items = [{
                "uuid": "0d2f4c1e-6b7a-4f3e-9a51-2c1d7e8f9a01",
                "check_name": "web",
                "metric_name": "cpu",
                "type": "numeric",
                "account_id": account_id,
                "check_tags": ["env:prod"],
                "activity": [[1700000000, 1700003600]],
            }]
            response = jsonify(items)
            response.headers["X-Snowth-Search-Result-Count"] = "42"
            return response

    def start(self):
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()
        wait_for_service(f"{self.url}/state", timeout=5)
        return self

    def stop(self):
        self.server.shutdown()
        self.server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=2)
