"""
Pytest configuration and shared fixtures for snowth client tests
"""

import pytest
import os
import sys
from typing import List
from unittest.mock import Mock

# Add the project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from snowth.config import ClientConfig
from snowth.registry import NodeRecord, NodeRegistry
from snowth.toporing import Ring, RingDescriptor
from snowth.transport import HTTPTransport

from tests.utils.helpers import make_record


@pytest.fixture
def abc_ring():
    """Ring with nodes A@0.10, B@0.40, C@0.90 and two copies per key"""
    return Ring([
        RingDescriptor("A", 0, 0.10),
        RingDescriptor("B", 0, 0.40),
        RingDescriptor("C", 0, 0.90),
    ], replication_factor=2)


@pytest.fixture
def sample_records() -> List[NodeRecord]:
    """Three active nodes A, B, C"""
    return [
        make_record("A", port=8112),
        make_record("B", port=8113),
        make_record("C", port=8114),
    ]


@pytest.fixture
def registry(sample_records, abc_ring):
    """Registry with A, B, C active and the A/B/C ring loaded"""
    return NodeRegistry(sample_records, ring=abc_ring, topology_id="topo-1")


@pytest.fixture
def mock_transport():
    """Transport double; tests set perform_request / fetch_* behaviour"""
    return Mock(spec=HTTPTransport)


@pytest.fixture
def config():
    """Client configuration with short timings for tests"""
    return ClientConfig(
        seeds=["http://127.0.0.1:8112"],
        probe_interval=0.2,
        discovery_interval=0.5,
        probe_timeout=0.5,
        request_timeout=1.0,
    )


@pytest.fixture
def routing_keys():
    """Metric stream routing keys for distribution tests"""
    return [
        f"{uuid}|{metric}"
        for uuid in ("0d2f4c1e-6b7a-4f3e-9a51-2c1d7e8f9a01", "7e0c55b2-13a9-4d6f-8e2a-b4c3d2e1f0a9")
        for metric in ("cpu", "memory", "disk.used", "net.rx", "net.tx", "load|ST[env:prod]")
    ]


# Pytest configuration
def pytest_configure(config):
    """Configure pytest"""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on their location"""
    for item in items:
        # Add unit marker to unit tests
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Add integration marker to integration tests
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)
