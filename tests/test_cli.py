"""
CLI tests.

Each invocation loads the chain from a state file in tmp_path and writes it
back, so a sequence of `main()` calls behaves like a shell session.
"""

import json
import sys

import pytest

from puzzlenft.chain.cli import CLIError, OutputFormat, format_output, main, parse_amount
from puzzlenft.chain.runtime import Chain


@pytest.fixture
def cli(tmp_path, monkeypatch, capsys):
    """Run the CLI against a state file and return (exit code, parsed JSON)."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    state = tmp_path / "chain.json"

    def run(*argv):
        code = main(["--state", str(state), *argv])
        captured = capsys.readouterr()
        out = captured.out
        sys.stderr.write(captured.err)
        return code, json.loads(out) if out.strip() else None

    run.state = state
    return run


@pytest.fixture
def deployed(cli):
    code, result = cli("deploy", "--base-uri", "ipfs://base/")
    assert code == 0
    code, _ = cli("puzzle", "add", "ipfs://whole.json", "10", "0.01ether")
    assert code == 0
    return result["address"]


class TestDeploy:
    """Tests for deployment and accounts."""

    def test_deploy_persists_state(self, cli):
        code, result = cli("deploy")
        assert code == 0
        assert result["contract"] == "Puzzle"
        assert cli.state.exists()

        chain = Chain.load(cli.state)
        assert chain.deployments["Puzzle"] == result["address"]

    def test_accounts(self, cli):
        code, result = cli("accounts")
        accounts = result["accounts"]
        assert code == 0
        assert len(accounts) == 20
        assert accounts[0]["index"] == 0
        assert accounts[0]["balance"] == str(10_000 * 10 ** 18)

    def test_table_format(self, cli, capsys):
        assert main(["--state", str(cli.state), "--format", "table", "accounts"]) == 0
        header = capsys.readouterr().out.splitlines()[0]
        assert header.split(" | ")[:2] == ["index", "address".ljust(42)]


class TestPuzzleCommands:
    """Tests for the puzzle subcommands."""

    def test_info(self, cli, deployed):
        code, info = cli("puzzle", "info", "0")
        assert code == 0
        assert info == {
            "uri": "ipfs://whole.json",
            "total_pieces": 10,
            "price": str(10 ** 16),
            "pieces_found": 0,
            "active": True,
            "finished": False,
            "puzzle_id": 0,
        }

    def test_find_pays_price_by_default(self, cli, deployed):
        code, receipt = cli("puzzle", "find", "0", "2", "--from", "1")
        assert code == 0
        assert receipt["status"] is True
        assert receipt["return_value"] == [0, 1]

        _, info = cli("puzzle", "info", "0")
        assert info["pieces_found"] == 2

        _, owner = cli("token", "owner", "1")
        _, accounts = cli("accounts")
        assert owner["owner"] == accounts["accounts"][1]["address"]

    def test_find_revert_exits_nonzero(self, cli, deployed, capsys):
        code, _ = cli("puzzle", "find", "0", "4")
        assert code == 1
        assert "You cannot find more than 3 pieces" in capsys.readouterr().err

    def test_owner_only_commands(self, cli, deployed):
        assert cli("puzzle", "price", "0", "1gwei")[0] == 0
        assert cli("puzzle", "info", "0")[1]["price"] == str(10 ** 9)

        assert cli("puzzle", "activate", "0", "--inactive")[0] == 0
        assert cli("puzzle", "info", "0")[1]["active"] is False

        assert cli("puzzle", "max-pieces", "5")[0] == 0
        assert cli("puzzle", "price", "0", "1", "--from", "2", "--quiet")[0] == 1

    def test_finish(self, cli, deployed):
        cli("puzzle", "add", "ipfs://small.json", "2", "0")
        cli("puzzle", "find", "1", "2")
        code, receipt = cli("puzzle", "finish", "1")
        assert code == 0
        assert [log["event"] for log in receipt["logs"]][-1] == "PuzzleFinished"

    def test_no_deployment(self, cli, capsys):
        code, _ = cli("puzzle", "info", "0")
        assert code == 1
        assert "No Puzzle deployment found" in capsys.readouterr().err


class TestTokenCommands:
    """Tests for token queries and transfers."""

    def test_transfer_and_balance(self, cli, deployed):
        cli("puzzle", "find", "0", "1", "--value", "0.01 ether")
        code, receipt = cli("token", "transfer", "3", "0")
        assert code == 0
        assert receipt["function"] == "safeTransferFrom"

        assert cli("token", "balance", "3")[1]["balance"] == 1
        assert cli("token", "balance", "0")[1]["balance"] == 0

    def test_uri(self, cli, deployed):
        cli("puzzle", "find", "0", "1")
        code, result = cli("token", "uri", "0")
        assert code == 0
        assert result == {"token_id": 0, "uri": "ipfs://base/0"}


class TestLogsAndGas:
    """Tests for logs and the gas report."""

    def test_logs_filter(self, cli, deployed):
        cli("puzzle", "find", "0", "2")
        code, result = cli("logs", "--event", "Transfer")
        assert code == 0
        assert [entry["event"] for entry in result["logs"]] == ["Transfer", "Transfer"]

        _, added = cli("logs", "--event", "NewPuzzleAdded")
        assert len(added["logs"]) == 1

    def test_gas_report(self, cli, deployed):
        code, result = cli("gas", "report")
        assert code == 0
        methods = [row["method"] for row in result["methods"]]
        assert "addPuzzle" in methods


class TestConfigCommands:
    """Tests for the config subcommands."""

    def test_get(self, cli, monkeypatch):
        assert cli("config", "get", "puzzle.max_pieces_per_owner")[1]["value"] == 3
        monkeypatch.setenv("PUZZLENFT_MAX_PIECES_PER_OWNER", "7")
        assert cli("config", "get", "puzzle.max_pieces_per_owner")[1]["value"] == 7

    def test_invalid_path(self, cli, capsys):
        code, _ = cli("config", "get", "puzzle.colour")
        assert code == 1
        assert "Invalid config path" in capsys.readouterr().err

    def test_show_masks_mnemonic(self, cli):
        _, shown = cli("config", "show")
        assert shown["chain"]["mnemonic"] == "********"

    def test_validate(self, cli, monkeypatch):
        assert cli("config", "validate")[1] == {"valid": True, "errors": []}
        monkeypatch.setenv("PUZZLENFT_LOG_FORMAT", "xml")
        assert cli("config", "validate")[0] == 1

    def test_config_file_option(self, cli, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("puzzle:\n  symbol: JIG\n")
        code, result = cli("--config", str(path), "config", "get", "puzzle.symbol")
        assert code == 0
        assert result["value"] == "JIG"


class TestHelpers:
    """Tests for amount parsing and output formatting."""

    @pytest.mark.parametrize("text,expected", [
        ("1000", 1000),
        ("0x3e8", 1000),
        ("0.5ether", 5 * 10 ** 17),
        ("20 gwei", 20 * 10 ** 9),
        ("1eth", 10 ** 18),
    ])
    def test_parse_amount(self, text, expected):
        assert parse_amount(text) == expected

    @pytest.mark.parametrize("text", ["-1", "1.5", "1 finney", "lots"])
    def test_parse_amount_rejects(self, text):
        with pytest.raises(CLIError):
            parse_amount(text)

    def test_format_output(self):
        assert format_output({"a": 1}, OutputFormat.TEXT) == "a: 1"
        assert format_output({"a": 1}, OutputFormat.YAML) == "a: 1\n"
        assert format_output({"rows": [{"a": 1}]}, OutputFormat.TABLE) == "a\n-\n1"

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: puzzlenft" in capsys.readouterr().out
