"""
Unit tests for ClientConfig
"""

import pytest

from snowth.config import ClientConfig
from snowth.errors import ConfigurationError


class TestClientConfig:
    """Test configuration validation"""

    def test_defaults(self):
        config = ClientConfig(seeds=["http://10.8.20.1:8112"])

        assert config.discover is False
        assert config.probe_interval == 30.0
        assert config.discovery_interval == 300.0
        assert config.probe_timeout < config.request_timeout
        assert config.max_attempts == 3
        assert config.replication_factor is None
        assert config.failure_threshold == 1

    def test_seed_normalisation(self):
        """Test seeds get a scheme and lose trailing slashes"""
        config = ClientConfig(seeds=["10.8.20.1:8112/", "https://10.8.20.2:8112"])
        assert config.seeds == ["http://10.8.20.1:8112", "https://10.8.20.2:8112"]

    def test_single_seed_string(self):
        config = ClientConfig(seeds="http://10.8.20.1:8112")
        assert config.seeds == ["http://10.8.20.1:8112"]

    def test_add_seed(self):
        config = ClientConfig(seeds=["http://a:1"])
        config.add_seed("b:2")
        config.add_seed("http://a:1/")
        assert config.seeds == ["http://a:1", "http://b:2"]

    @pytest.mark.parametrize("kwargs", [
        {"seeds": []},
        {"seeds": [" "]},
        {"seeds": ["a:1"], "probe_interval": 0},
        {"seeds": ["a:1"], "request_timeout": -1},
        {"seeds": ["a:1"], "probe_timeout": 10.0, "request_timeout": 10.0},
        {"seeds": ["a:1"], "max_attempts": 0},
        {"seeds": ["a:1"], "failure_threshold": 0},
        {"seeds": ["a:1"], "replication_factor": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            ClientConfig(**kwargs)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            ClientConfig(seeds=[])


class TestConfigFromEnv:
    """Test environment configuration"""

    def test_from_env(self):
        config = ClientConfig.from_env(environ={
            "SNOWTH_SEEDS": "http://a:8112, http://b:8112\nhttp://c:8112",
            "SNOWTH_DISCOVER": "true",
            "SNOWTH_PROBE_INTERVAL": "5",
            "SNOWTH_REQUEST_TIMEOUT": "3.5",
            "SNOWTH_MAX_ATTEMPTS": "2",
            "SNOWTH_REPLICATION_FACTOR": "2",
            "SNOWTH_SCHEME": "https",
        })

        assert config.seeds == ["http://a:8112", "http://b:8112", "http://c:8112"]
        assert config.discover is True
        assert config.probe_interval == 5.0
        assert config.request_timeout == 3.5
        assert config.max_attempts == 2
        assert config.replication_factor == 2
        assert config.scheme == "https"

    def test_from_env_prefix(self):
        config = ClientConfig.from_env(prefix="IRONDB_", environ={"IRONDB_SEEDS": "a:1"})
        assert config.seeds == ["http://a:1"]
        assert config.discover is False

    def test_from_env_bad_number(self):
        with pytest.raises(ConfigurationError):
            ClientConfig.from_env(environ={"SNOWTH_SEEDS": "a:1", "SNOWTH_MAX_ATTEMPTS": "lots"})

    def test_from_env_missing_seeds(self):
        with pytest.raises(ConfigurationError):
            ClientConfig.from_env(environ={})
