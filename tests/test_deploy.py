"""
Deploy script tests.
"""

import runpy
import sys
from pathlib import Path

import pytest

from puzzlenft.chain.config import DEFAULT_BASE_URI
from puzzlenft.chain.factory import get_contract_at
from puzzlenft.chain.network import get_chain
from puzzlenft.chain.runtime import Chain
from puzzlenft.deploy import main, run_main

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "deploy.py"


class TestMain:
    """Tests for deploying onto a chain."""

    def test_deploys_to_default_chain(self, capsys):
        token = main()
        assert capsys.readouterr().out.strip() == f"Contract deployed to: {token.address}"

        chain = get_chain()
        assert chain.deployments["Puzzle"] == token.address
        assert token.owner() == chain.get_signers()[0].address

    def test_uses_configured_base_uri(self, chain, capsys):
        token = main(chain)
        token.addPuzzle("", 1, 0)
        token.findPuzzlePieces(0, 1)
        assert token.tokenURI(0) == f"{DEFAULT_BASE_URI}0"

    def test_explicit_base_uri(self, chain, capsys):
        token = main(chain, "ipfs://other/")
        token.addPuzzle("", 1, 0)
        token.findPuzzlePieces(0, 1)
        assert token.tokenURI(0) == "ipfs://other/0"


class TestRunMain:
    """Tests for the script entry point."""

    @pytest.fixture(autouse=True)
    def _isolated_cwd(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        monkeypatch.chdir(tmp_path)

    def test_state_file_round_trip(self, tmp_path, capsys):
        state = tmp_path / "chain.json"
        assert run_main(["--state", str(state)]) == 0
        first = Chain.load(state).deployments["Puzzle"]

        assert run_main(["--state", str(state)]) == 0
        chain = Chain.load(state)
        assert chain.deployments["Puzzle"] != first
        assert chain.block_number == 2

    def test_configured_state_file(self, tmp_path, monkeypatch, capsys):
        state = tmp_path / "configured.json"
        monkeypatch.setenv("PUZZLENFT_STATE_FILE", str(state))
        assert run_main([]) == 0
        assert state.exists()

    def test_failure_returns_one(self, tmp_path, capsys):
        state = tmp_path / "chain.json"
        state.write_text("{not json")
        assert run_main(["--state", str(state)]) == 1
        assert "not valid JSON" in capsys.readouterr().out

    def test_reads_project_config_file(self, tmp_path, capsys):
        (tmp_path / "puzzlenft.yaml").write_text("puzzle:\n  base_uri: ipfs://fromfile/\n")
        assert run_main([]) == 0

        chain = get_chain()
        token = get_contract_at("Puzzle", chain.deployments["Puzzle"], chain)
        assert token.baseURI() == "ipfs://fromfile/"

    def test_script(self, tmp_path, monkeypatch, capsys):
        state = tmp_path / "chain.json"
        monkeypatch.setattr(sys, "argv", [str(SCRIPT), "--state", str(state), "--base-uri", "ipfs://x/"])
        with pytest.raises(SystemExit) as exc:
            runpy.run_path(str(SCRIPT), run_name="__main__")
        assert exc.value.code == 0
        assert "Contract deployed to: 0x" in capsys.readouterr().out
