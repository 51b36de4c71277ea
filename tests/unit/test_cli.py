"""Tests for the command line entry point."""

import json

import pytest

from plan_tracker.cli import build_parser, main


def _run(capsys, *argv):
    code = main(list(argv))
    return code, json.loads(capsys.readouterr().out)


class TestCli:
    @pytest.fixture(autouse=True)
    def _env(self, monkeypatch, tmp_path):
        monkeypatch.delenv("PLAN_TRACKER_DATA_DIR", raising=False)
        self.config_dir = tmp_path / "config"
        self.config_dir.mkdir()
        self.data_dir = tmp_path / "data"

    def _args(self, *rest):
        return ["--data-dir", str(self.data_dir), "--config-dir", str(self.config_dir), *rest]

    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_evaluate_without_decision(self, capsys):
        code, payload = _run(capsys, *self._args("evaluate", "--symbol", "BTC-USDT"))

        assert code == 1
        assert payload["ok"] is False
        assert "not_found" in payload["error"]

    def test_evaluate(self, capsys, write_json, grid_decision_doc):
        write_json(self.data_dir / "latest_decision.json", grid_decision_doc)

        code, payload = _run(capsys, *self._args("evaluate"))

        assert code == 0
        assert payload["symbol"] == "BTC-USDT"
        assert payload["states"]["plan_state"] == "WAIT_SWEEP_UP"

    def test_log_empty(self, capsys):
        code, payload = _run(capsys, *self._args("log", "--limit", "5"))

        assert code == 0
        assert payload == {"ok": True, "count": 0, "events": []}

    def test_validate_config_ok(self, capsys):
        code, payload = _run(capsys, *self._args("validate-config"))

        assert code == 0
        assert payload["ok"] is True
        assert set(payload["results"]) == {"default", "BTC-USDT"}

    def test_validate_config_reports_errors(self, capsys):
        (self.config_dir / "symbols.yaml").write_text(
            "symbols:\n  ETH-USDT:\n    exchange:\n      max_attempts: 5\n", encoding="utf-8")

        code, payload = _run(capsys, *self._args("validate-config", "--symbol", "ETH-USDT"))

        assert code == 1
        assert payload["results"]["default"] == []
        assert payload["results"]["ETH-USDT"][0]["field"] == "exchange.max_attempts"

    def test_log_filters_by_symbol(self, capsys, write_json, grid_decision_doc):
        write_json(self.data_dir / "latest_decision.json", grid_decision_doc)
        main(self._args("evaluate", "--symbol", "BTC-USDT"))
        main(self._args("evaluate", "--symbol", "ETH-USDT"))
        capsys.readouterr()

        code, payload = _run(capsys, *self._args("log", "--symbol", "ETH-USDT"))

        assert code == 0
        assert payload["count"] == 2
        assert {e["symbol"] for e in payload["events"]} == {"ETH-USDT"}
