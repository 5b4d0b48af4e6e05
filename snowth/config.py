"""
Configuration for the snowth client
"""

import os
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .errors import ConfigurationError
from .transport import DEFAULT_USER_AGENT

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class ClientConfig:
    """Settings consumed by the routing and health layer"""
    seeds: List[str] = field(default_factory=list)  # ["http://host:port", ...]
    discover: bool = False

    # Health monitoring
    probe_interval: float = 30.0      # seconds between probe rounds
    discovery_interval: float = 300.0  # seconds between topology refreshes
    probe_timeout: float = 2.0        # must stay below request_timeout
    probe_concurrency: int = 8
    failure_threshold: int = 1        # consecutive failures before ACTIVE -> INACTIVE

    # Dispatch
    request_timeout: float = 10.0
    max_attempts: int = 3
    dispatch_workers: int = 32
    replication_factor: Optional[int] = None  # None: use the ring document's value

    scheme: str = "http"
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self):
        """Validate settings and normalise seed URLs"""
        if isinstance(self.seeds, str):
            self.seeds = [self.seeds]
        if not self.seeds:
            raise ConfigurationError("At least one seed node is required")
        self.seeds = [self._normalise_url(seed) for seed in self.seeds]

        for name in ("probe_interval", "discovery_interval", "probe_timeout", "request_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        if self.probe_timeout >= self.request_timeout:
            raise ConfigurationError(
                f"probe_timeout ({self.probe_timeout}s) must be shorter than "
                f"request_timeout ({self.request_timeout}s)")
        for name in ("max_attempts", "probe_concurrency", "dispatch_workers", "failure_threshold"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.replication_factor is not None and self.replication_factor < 1:
            raise ConfigurationError(
                f"replication_factor must be >= 1, got {self.replication_factor}")

    def _normalise_url(self, url: str) -> str:
        url = url.strip().rstrip("/")
        if not url:
            raise ConfigurationError("Seed node URL must not be empty")
        if "://" not in url:
            url = f"{self.scheme}://{url}"
        return url

    def add_seed(self, url: str):
        """Add a seed node URL"""
        url = self._normalise_url(url)
        if url not in self.seeds:
            self.seeds.append(url)

    @classmethod
    def from_env(cls, prefix: str = "SNOWTH_",
                 environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """
        Build a configuration from environment variables.

        SNOWTH_SEEDS holds whitespace or comma separated node URLs; the other
        settings use their upper-cased field names, e.g. SNOWTH_PROBE_INTERVAL.
        """
        env = os.environ if environ is None else environ

        seeds_str = env.get(f"{prefix}SEEDS", "")
        kwargs = {"seeds": [s for s in re.split(r"[\s,]+", seeds_str) if s]}

        discover = env.get(f"{prefix}DISCOVER")
        if discover is not None:
            kwargs["discover"] = discover.strip().lower() in _TRUE_VALUES

        float_fields = ("probe_interval", "discovery_interval", "probe_timeout", "request_timeout")
        int_fields = ("probe_concurrency", "failure_threshold", "max_attempts",
                      "dispatch_workers", "replication_factor")
        for name in float_fields + int_fields:
            value = env.get(f"{prefix}{name.upper()}")
            if value is None or value == "":
                continue
            try:
                kwargs[name] = float(value) if name in float_fields else int(value)
            except ValueError as e:
                raise ConfigurationError(f"{prefix}{name.upper()} is not a number: {value!r}") from e

        for name in ("scheme", "user_agent"):
            value = env.get(f"{prefix}{name.upper()}")
            if value:
                kwargs[name] = value

        return cls(**kwargs)
