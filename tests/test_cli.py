"""
Tests for the nutwatch CLI.
"""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nutwatch.cli.main import app
from nutwatch.history.models import HistoryEntry
from nutwatch.history.store import HistoryStore
from nutwatch.nut.client import NUTCommandError, NUTConnectionError
from nutwatch.nut.models import UPSData


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "cli.db")
    store = HistoryStore(path)
    now = int(time.time())
    for offset in (0, 30, 60):
        store.insert(HistoryEntry(timestamp=now - offset, status="OL", input_voltage=230.0, load_percent=20.0))
    store.insert(HistoryEntry(timestamp=now - 90, status="OB DISCHRG", input_voltage=0.0, battery_charge=80.0))
    store.insert(HistoryEntry(timestamp=now - 40 * 86400, status="OL"))
    store.close()
    return path


@pytest.fixture
def nut_client():
    client = MagicMock()
    client.connect = AsyncMock()
    client.disconnect = AsyncMock()
    with patch("nutwatch.cli.ups.NUTClient", return_value=client):
        yield client


class TestHistoryCLI:
    def test_show(self, cli_runner, db_path):
        result = cli_runner.invoke(app, ["history", "--db", db_path, "show", "--hours", "1"])
        assert result.exit_code == 0, result.output
        assert "4 entries" in result.output

    def test_stats(self, cli_runner, db_path):
        result = cli_runner.invoke(app, ["history", "--db", db_path, "stats", "--hours", "1"])
        assert result.exit_code == 0, result.output
        assert "Data Points: 4" in result.output
        assert "Outages: 1" in result.output

    def test_compact(self, cli_runner, db_path):
        result = cli_runner.invoke(app, ["history", "--db", db_path, "compact"])
        assert result.exit_code == 0, result.output
        assert "Compaction removed" in result.output

    def test_prune(self, cli_runner, db_path):
        result = cli_runner.invoke(app, ["history", "--db", db_path, "prune", "--days", "30"])
        assert result.exit_code == 0, result.output
        assert "Pruned 1 entries" in result.output

        store = HistoryStore(db_path)
        try:
            assert len(store.query_range(24 * 365)) == 4
        finally:
            store.close()


class TestUpsCLI:
    def test_list(self, cli_runner, nut_client):
        nut_client.list_devices = AsyncMock(return_value={"ups": "Rack UPS"})
        result = cli_runner.invoke(app, ["ups", "list", "--host", "nut.local"])
        assert result.exit_code == 0, result.output
        assert "Rack UPS" in result.output
        nut_client.disconnect.assert_awaited_once()

    def test_vars(self, cli_runner, nut_client):
        nut_client.fetch_telemetry = AsyncMock(
            return_value=UPSData(status="OL", battery_charge=97.0, extended_vars={"device.mfr": "APC"})
        )
        result = cli_runner.invoke(app, ["ups", "vars", "ups"])
        assert result.exit_code == 0, result.output
        assert "battery_charge" in result.output
        assert "device.mfr" in result.output
        nut_client.fetch_telemetry.assert_awaited_once_with("ups")

    def test_run_rejected(self, cli_runner, nut_client):
        nut_client.run_command = AsyncMock(side_effect=NUTCommandError("ERR CMD-NOT-SUPPORTED"))
        result = cli_runner.invoke(app, ["ups", "run", "ups", "shutdown.stayoff"])
        assert result.exit_code == 1
        assert "NUT error" in result.output
        nut_client.disconnect.assert_awaited_once()

    def test_connection_failure(self, cli_runner, nut_client):
        nut_client.connect.side_effect = NUTConnectionError("Connection refused")
        result = cli_runner.invoke(app, ["ups", "commands"])
        assert result.exit_code == 1
        assert "Connection refused" in result.output
