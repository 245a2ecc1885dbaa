"""Tests for value types and configuration."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from lanssh.config import DiscoveryConfig, DiscoveryConfigError
from lanssh.discovery.browser import ServiceDiscoverySource
from lanssh.discovery.manager import HostAggregator
from lanssh.discovery.scheduler import ProbeScheduler
from lanssh.models import (
    DiscoveredHost,
    DiscoveryEvent,
    DiscoverySource,
    EventKind,
    ServerFormPrefill,
)

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


class TestDiscoveredHost:
    def test_identity_key(self):
        host = DiscoveredHost(display_name="pi", host="raspberrypi.local", port=2222)
        assert host.identity_key == "raspberrypi.local:2222"

    def test_defaults(self):
        host = DiscoveredHost(display_name="", host="10.0.0.4")
        assert host.port == 22
        assert host.display_name == "10.0.0.4"
        assert host.latency_ms is None
        assert host.sources == set()

    def test_merge_unions_sources_and_keeps_latest(self):
        first = DiscoveredHost(
            display_name="10.0.0.4", host="10.0.0.4",
            sources={DiscoverySource.ACTIVE_PROBE}, latency_ms=8, last_seen_at=T0,
        )
        later = DiscoveredHost(
            display_name="nas", host="10.0.0.4",
            sources={DiscoverySource.SERVICE_DISCOVERY}, last_seen_at=T0 + timedelta(seconds=3),
        )
        first.merge(later)
        assert first.sources == set(DiscoverySource)
        assert first.last_seen_at == T0 + timedelta(seconds=3)
        assert first.latency_ms == 8
        assert first.display_name == "nas"

    def test_older_observation_does_not_rewind_last_seen(self):
        host = DiscoveredHost(display_name="a", host="h", last_seen_at=T0 + timedelta(seconds=5))
        host.merge(DiscoveredHost(display_name="a", host="h", last_seen_at=T0))
        assert host.last_seen_at == T0 + timedelta(seconds=5)

    def test_newer_latency_wins(self):
        host = DiscoveredHost(display_name="h", host="h", latency_ms=50, last_seen_at=T0)
        host.merge(DiscoveredHost(display_name="h", host="h", latency_ms=20,
                                  last_seen_at=T0 + timedelta(seconds=1)))
        assert host.latency_ms == 20

    def test_source_labels(self):
        assert DiscoverySource.SERVICE_DISCOVERY.label == "Bonjour"
        assert DiscoverySource.ACTIVE_PROBE.label == "Port Scan"


class TestServerFormPrefill:
    def test_from_discovered_host(self):
        host = DiscoveredHost(display_name="raspberrypi", host="raspberrypi.local")
        prefill = ServerFormPrefill.from_discovered_host(host)
        assert prefill == ServerFormPrefill(name="raspberrypi", host="raspberrypi.local", port=22)
        assert prefill.username is None


class TestDiscoveryEvent:
    def test_constructors(self):
        host = DiscoveredHost(display_name="x", host="x")
        assert DiscoveryEvent.host_found(host).host is host
        assert DiscoveryEvent.failed("nope").message == "nope"
        assert DiscoveryEvent.permission_denied().kind is EventKind.PERMISSION_DENIED


class TestDiscoveryConfig:
    def test_defaults(self):
        config = DiscoveryConfig()
        assert config.scan_duration == 6.0
        assert config.probe_timeout == 0.35
        assert config.probe_concurrency == 24
        assert config.resolve_timeout == 2.0
        assert config.ssh_port == 22
        assert config.max_hosts == 200

    def test_component_defaults_match_config(self):
        config = DiscoveryConfig()
        source = ServiceDiscoverySource(browser=None)
        scheduler = ProbeScheduler(prober=None, interfaces=None)
        assert source.service_types == config.service_types
        assert source.resolve_timeout == config.resolve_timeout
        assert scheduler.concurrency == config.probe_concurrency
        assert scheduler.timeout == config.probe_timeout
        assert HostAggregator().max_hosts == config.max_hosts

    def test_load_ignores_unknown_keys(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"probe_timeout": 0.5, "colour": "blue"}))
        config = DiscoveryConfig.load(path)
        assert config.probe_timeout == 0.5

    def test_load_missing_file_uses_defaults(self, tmp_path):
        assert DiscoveryConfig.load(tmp_path / "missing.json") == DiscoveryConfig()

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        DiscoveryConfig(probe_concurrency=8, service_types=("_ssh._tcp.local.",)).save(path)
        loaded = DiscoveryConfig.load(path)
        assert loaded.probe_concurrency == 8
        assert loaded.service_types == ("_ssh._tcp.local.",)

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("LANSSH_PROBE_CONCURRENCY", "12")
        monkeypatch.setenv("LANSSH_SCAN_DURATION", "not-a-number")
        config = DiscoveryConfig.from_env()
        assert config.probe_concurrency == 12
        assert config.scan_duration == 6.0

    @pytest.mark.parametrize("field,value", [
        ("scan_duration", 0),
        ("probe_timeout", -1),
        ("probe_concurrency", 0),
        ("ssh_port", 70000),
        ("max_hosts", 0),
    ])
    def test_validate_rejects(self, field, value):
        config = DiscoveryConfig(**{field: value})
        with pytest.raises(DiscoveryConfigError):
            config.validate()

    def test_env_overrides_leave_base_untouched(self, monkeypatch):
        monkeypatch.setenv("LANSSH_SSH_PORT", "2222")
        base = DiscoveryConfig(probe_concurrency=8)
        config = DiscoveryConfig.from_env(base)
        assert config is not base
        assert config.ssh_port == 2222
        assert config.probe_concurrency == 8
        assert base.ssh_port == 22
