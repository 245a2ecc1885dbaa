"""Tests for the command-line entry point."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

import lanssh.__main__ as cli
from lanssh.discovery.manager import ScanState
from lanssh.models import DiscoveredHost, DiscoverySource

SEEN = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _hosts():
    return [
        DiscoveredHost(
            display_name="raspberrypi",
            host="192.168.1.20",
            sources={DiscoverySource.SERVICE_DISCOVERY, DiscoverySource.ACTIVE_PROBE},
            last_seen_at=SEEN,
            latency_ms=12,
        ),
        DiscoveredHost(display_name="nas", host="nas.local", port=2222, last_seen_at=SEEN),
    ]


@pytest.fixture
def fake_run(monkeypatch):
    """Replace the network scan with a canned result and record the config used."""
    seen = {}

    async def run(self):
        seen["config"] = self.config
        self.scan_state = ScanState.COMPLETED
        for host in _hosts():
            self.aggregator.upsert(host)
        return self.hosts

    monkeypatch.setattr(cli.DiscoveryManager, "run", run)
    for var in ("LANSSH_SCAN_DURATION", "LANSSH_SSH_PORT"):
        monkeypatch.delenv(var, raising=False)
    return seen


class TestMain:
    def test_json_output(self, monkeypatch, capsys, fake_run):
        monkeypatch.setattr("sys.argv", ["lanssh", "--json", "--duration", "0.1"])
        cli.main()

        rows = json.loads(capsys.readouterr().out)
        assert [r["id"] for r in rows] == ["192.168.1.20:22", "nas.local:2222"]
        pi = rows[0]
        assert set(pi) == {"id", "name", "host", "port", "sources", "latency_ms", "last_seen_at"}
        assert pi["name"] == "raspberrypi"
        assert pi["port"] == 22
        assert pi["sources"] == ["active_probe", "service_discovery"]
        assert pi["latency_ms"] == 12
        assert pi["last_seen_at"] == "2026-01-01T12:00:00+00:00"
        assert rows[1]["latency_ms"] is None
        assert rows[1]["sources"] == []
        assert fake_run["config"].scan_duration == 0.1

    def test_text_output(self, monkeypatch, capsys, fake_run):
        monkeypatch.setattr("sys.argv", ["lanssh"])
        cli.main()

        out = capsys.readouterr().out
        assert out.splitlines()[0] == "2 SSH host(s) found."
        assert "192.168.1.20:22" in out
        assert "12 ms" in out
        assert "[Bonjour, Port Scan]" in out

    def test_zero_duration_rejected(self, monkeypatch, capsys, fake_run):
        monkeypatch.setattr("sys.argv", ["lanssh", "--duration", "0"])
        with pytest.raises(SystemExit) as exc:
            cli.main()
        assert exc.value.code == 2
        assert "scan_duration must be positive" in capsys.readouterr().err
        assert "config" not in fake_run

    def test_config_file_and_env(self, monkeypatch, tmp_path, fake_run):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"scan_duration": 3.0, "ssh_port": 2200}))
        monkeypatch.setenv("LANSSH_SSH_PORT", "2022")
        monkeypatch.setattr("sys.argv", ["lanssh", "--config", str(path), "--json"])
        cli.main()

        assert fake_run["config"].scan_duration == 3.0
        assert fake_run["config"].ssh_port == 2022
