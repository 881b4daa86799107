"""Tests for the command line interface."""

import json
from pathlib import Path

from settlement_engine.cli import SettlementCli

SNAPSHOT = str(Path(__file__).parent / "data" / "snapshot.json")


class TestSettlementCli:
    """Test CLI commands against the sample snapshot."""

    def test_compute_json(self, capsys):
        code = SettlementCli().run(
            ["compute", "--snapshot", SNAPSHOT, "--period", "2024-03", "--json"]
        )

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["period"] == "2024-03"
        assert output["total"] == "3013.00"
        assert [row["worker_id"] for row in output["rows"]] == ["alice", "bob", "carol"]

    def test_compute_table(self, capsys):
        code = SettlementCli().run(
            ["compute", "--snapshot", SNAPSHOT, "--period", "2024-03", "--role", "smm"]
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "Settlements for 2024-03 (smm)" in out
        assert "Bob" in out
        assert "Alice" not in out

    def test_drill_down_json(self, capsys):
        code = SettlementCli().run(
            ["drill-down", "--snapshot", SNAPSHOT, "--period", "2024-03",
             "--worker-id", "bob", "--json"]
        )

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["kpi_total"] == "134.00"
        assert output["bonuses"][0]["condition_met"] is True

    def test_drill_down_unknown_worker(self, capsys):
        code = SettlementCli().run(
            ["drill-down", "--snapshot", SNAPSHOT, "--period", "2024-03", "--worker-id", "zed"]
        )

        assert code == 1
        assert "Unknown worker" in capsys.readouterr().err

    def test_no_command_prints_help(self, capsys):
        assert SettlementCli().run([]) == 1
