"""Tunable constants for a discovery session."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path

from lanssh.models import DEFAULT_SSH_PORT

logger = logging.getLogger(__name__)

DEFAULT_SCAN_DURATION = 6.0  # whole-session bound, seconds
DEFAULT_PROBE_TIMEOUT = 0.35
DEFAULT_CONCURRENCY = 24
DEFAULT_RESOLVE_TIMEOUT = 2.0
DEFAULT_MAX_HOSTS = 200
SSH_SERVICE_TYPES: tuple[str, ...] = ("_ssh._tcp.local.", "_sftp-ssh._tcp.local.")

# env var → (field, type)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "LANSSH_SCAN_DURATION": ("scan_duration", float),
    "LANSSH_PROBE_TIMEOUT": ("probe_timeout", float),
    "LANSSH_PROBE_CONCURRENCY": ("probe_concurrency", int),
    "LANSSH_RESOLVE_TIMEOUT": ("resolve_timeout", float),
    "LANSSH_SSH_PORT": ("ssh_port", int),
    "LANSSH_MAX_HOSTS": ("max_hosts", int),
}


class DiscoveryConfigError(ValueError):
    """Raised when a configuration value is out of range."""


@dataclass
class DiscoveryConfig:
    """Discovery configuration, loaded from config.json and LANSSH_* variables."""

    scan_duration: float = DEFAULT_SCAN_DURATION
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    probe_concurrency: int = DEFAULT_CONCURRENCY
    resolve_timeout: float = DEFAULT_RESOLVE_TIMEOUT
    ssh_port: int = DEFAULT_SSH_PORT
    max_hosts: int = DEFAULT_MAX_HOSTS
    service_types: tuple[str, ...] = SSH_SERVICE_TYPES

    @classmethod
    def load(cls, path: str | Path) -> DiscoveryConfig:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            known = {k for k in cls.__dataclass_fields__}
            filtered = {k: v for k, v in data.items() if k in known}
            if "service_types" in filtered:
                filtered["service_types"] = tuple(filtered["service_types"])
            return cls(**filtered)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    @classmethod
    def from_env(cls, base: DiscoveryConfig | None = None) -> DiscoveryConfig:
        """Return a copy of *base* (or defaults) with ``LANSSH_*`` variables applied."""
        config = replace(base) if base is not None else cls()
        for var, (name, cast) in _ENV_OVERRIDES.items():
            raw = os.environ.get(var)
            if raw is None:
                continue
            try:
                setattr(config, name, cast(raw))
            except ValueError:
                logger.warning("Ignoring %s=%r — not a valid %s", var, raw, cast.__name__)
        return config

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = asdict(self)
        data["service_types"] = list(self.service_types)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

    def validate(self) -> DiscoveryConfig:
        for name in ("scan_duration", "probe_timeout", "resolve_timeout"):
            if getattr(self, name) <= 0:
                raise DiscoveryConfigError(f"{name} must be positive")
        if self.probe_concurrency < 1:
            raise DiscoveryConfigError("probe_concurrency must be at least 1")
        if not 0 < self.ssh_port < 65536:
            raise DiscoveryConfigError(f"ssh_port out of range: {self.ssh_port}")
        if self.max_hosts < 1:
            raise DiscoveryConfigError("max_hosts must be at least 1")
        if not self.service_types:
            raise DiscoveryConfigError("service_types must not be empty")
        return self
