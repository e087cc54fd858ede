"""
Development chain runtime tests.

Covers signers, transaction verification, revert handling, blocks,
snapshots, logs and the persisted state file.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import json
import re

import pytest

from puzzlenft.chain.contract import UNKNOWN_SELECTOR
from puzzlenft.chain.factory import get_contract_factory
from puzzlenft.chain.hardening import (
    ChainError,
    ContractRevert,
    InsufficientFunds,
    InvalidSignature,
    NonceError,
    UnknownContract,
    ValidationError,
)
from puzzlenft.chain.runtime import Chain, Transaction, validate_state
from puzzlenft.chain.state import WorldState
from puzzlenft.testing import reverts

ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


# =============================================================================
# SIGNERS
# =============================================================================

class TestSigners:
    """Tests for deterministic development accounts."""

    def test_signers_are_deterministic(self, chain):
        """Two chains from the same mnemonic hand out the same accounts."""
        other = Chain()
        assert [s.address for s in chain.get_signers()] == [s.address for s in other.get_signers()]

    def test_signer_addresses(self, chain):
        signers = chain.get_signers()
        assert len(signers) == 20
        assert all(ADDRESS_RE.match(s.address) for s in signers)
        assert len({s.address for s in signers}) == 20

    def test_different_mnemonic_gives_different_accounts(self, chain):
        other = Chain(mnemonic="another mnemonic entirely", account_count=2)
        assert other.get_signers()[0].address != chain.get_signers()[0].address

    def test_genesis_balances(self, chain):
        assert chain.get_balance(chain.get_signers()[0]) == 10_000 * 10 ** 18
        assert chain.block_number == 0

    def test_get_signer_by_index_and_address(self, chain):
        second = chain.get_signers()[1]
        assert chain.get_signer(1) is second
        assert chain.get_signer(second.address.upper().replace("0X", "0x")) is second

    def test_unknown_signer(self, chain):
        with pytest.raises(ChainError):
            chain.get_signer(99)
        with pytest.raises(ChainError):
            chain.get_signer("0x" + "1" * 40)
        with pytest.raises(ChainError):
            chain.get_signer("not-an-address")


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TestTransactions:
    """Tests for transaction verification and execution."""

    def test_value_transfer(self, chain, signers):
        owner, alice = signers[:2]
        before = chain.get_balance(alice)
        receipt = chain.send_value(owner, alice, 1234)
        assert receipt.status
        assert chain.get_balance(alice) == before + 1234
        assert chain.get_nonce(owner) == 1
        assert chain.block_number == 1

    def test_receipt_and_transaction_lookup(self, chain, signers):
        receipt = chain.send_value(signers[0], signers[1], 1)
        assert chain.get_receipt(receipt.tx_hash) is receipt
        tx = chain.get_transaction(receipt.tx_hash)
        assert tx.hash == receipt.tx_hash
        assert chain.latest_block.tx_hashes == [receipt.tx_hash]

    def test_tampered_transaction_is_rejected(self, chain, signers):
        """Changing a signed field invalidates the signature."""
        owner, alice = signers[:2]
        tx = owner.sign_transaction(chain.build_transaction(owner, alice, value=1, gas_limit=21000))
        tx.value = 10 ** 18
        with pytest.raises(InvalidSignature):
            chain.send_transaction(tx)
        assert chain.block_number == 0

    def test_foreign_key_is_rejected(self, chain, signers):
        """A transaction signed by one account cannot claim another sender."""
        owner, alice = signers[:2]
        tx = alice.sign_transaction(chain.build_transaction(alice, owner, value=1, gas_limit=21000))
        tx.sender = owner.address
        with pytest.raises(InvalidSignature):
            chain.send_transaction(tx)

    def test_signer_refuses_other_sender(self, chain, signers):
        owner, alice = signers[:2]
        tx = chain.build_transaction(owner, alice, value=1)
        with pytest.raises(InvalidSignature):
            alice.sign_transaction(tx)

    def test_nonce_must_match(self, chain, signers):
        owner, alice = signers[:2]
        tx = owner.sign_transaction(chain.build_transaction(owner, alice, value=1, gas_limit=21000))
        chain.send_transaction(tx)
        with pytest.raises(NonceError, match="Nonce too low"):
            chain.send_transaction(tx)

    def test_insufficient_funds(self):
        """Senders must cover value plus the maximum fee; nothing is mined otherwise."""
        chain = Chain(gas_price=1, initial_balance=1000)
        owner, alice = chain.get_signers()[:2]
        with pytest.raises(InsufficientFunds):
            chain.send_value(owner, alice, 1)
        assert chain.block_number == 0
        assert chain.get_nonce(owner) == 0

    def test_wrong_chain_id(self, chain, signers):
        owner, alice = signers[:2]
        tx = chain.build_transaction(owner, alice, value=1, gas_limit=21000)
        tx.chain_id = 1
        with pytest.raises(ChainError, match="chain 1"):
            chain.send_transaction(owner.sign_transaction(tx))

    def test_gas_limit_above_block_limit(self, chain, signers):
        with pytest.raises(ChainError, match="exceeds block gas limit"):
            chain.send_value(signers[0], signers[1], 1, gas_limit=chain.block_gas_limit + 1)

    def test_invalid_argument_is_rejected_before_mining(self, setup, chain):
        """Arguments that do not fit the ABI raise without mining a block."""
        token, owner, *_ = setup
        height = chain.block_number
        nonce = chain.get_nonce(owner)

        with pytest.raises(ValidationError):
            token.addPuzzle("test", -1, 0)

        assert chain.block_number == height
        assert chain.get_nonce(owner) == nonce

    def test_bool_is_not_a_uint(self, setup):
        token, *_ = setup
        with pytest.raises(ValidationError):
            token.findPuzzlePieces(0, True)


# =============================================================================
# REVERTS
# =============================================================================

class TestReverts:
    """Tests for revert handling across calls and transactions."""

    def test_revert_rolls_back_but_is_mined(self, chain, setup):
        """A reverted transaction still produces a block and a failed receipt."""
        token, owner, addr1, _ = setup
        height = chain.block_number

        with pytest.raises(ContractRevert) as excinfo:
            token.connect(addr1).addPuzzle("test", 1, 0)

        err = excinfo.value
        assert err.reason == "Ownable: caller is not the owner"
        assert "reverted with reason string 'Ownable: caller is not the owner'" in str(err)
        assert err.receipt.status is False
        assert err.receipt.revert_reason == err.reason
        assert chain.block_number == height + 1
        assert chain.get_nonce(addr1) == 1
        assert token.puzzleCount() == 1

    def test_unknown_function(self, chain, setup):
        token, owner, *_ = setup
        with reverts(UNKNOWN_SELECTOR):
            chain.transact(owner, token.address, "mintEverything()", [])

    def test_value_to_non_payable_function(self, setup):
        token, *_ = setup
        with reverts("non-payable function was called with value 5"):
            token.addPuzzle("test", 1, 0, value=5)

    def test_call_to_account_without_code(self, chain, signers):
        with reverts("function call to a non-contract account"):
            chain.transact(signers[0], signers[1], "owner()", [])

    def test_value_to_contract_without_receive(self, chain, setup):
        token, owner, *_ = setup
        with reverts(UNKNOWN_SELECTOR):
            chain.send_value(owner, token, 1)

    def test_call_discards_state_changes(self, chain, setup):
        """`call` runs state-changing code without committing it."""
        token, *_ = setup
        height = chain.block_number
        assert token.addPuzzle.call("dry run", 5, 0) == 1
        assert token.puzzleCount() == 1
        assert chain.block_number == height

    def test_call_leaves_state_root_unchanged(self, chain, setup):
        token, owner, *_ = setup
        root = chain.state.root()
        assert token.findPuzzlePieces.call(0, 2) == [0, 1]
        assert chain.state.root() == root
        assert token.balanceOf(owner) == 0

    def test_view_revert_raises_contract_revert(self, setup):
        token, *_ = setup
        with pytest.raises(ContractRevert) as excinfo:
            token.ownerOf(7)
        assert excinfo.value.reason == "ERC721: owner query for nonexistent token"
        assert excinfo.value.receipt is None

    def test_unknown_contract_name(self, chain):
        with pytest.raises(UnknownContract):
            get_contract_factory("NotAContract", chain)


# =============================================================================
# BLOCKS AND TIME
# =============================================================================

class TestBlocks:
    """Tests for block production."""

    def test_blocks_link_to_parents(self, chain, setup):
        blocks = [chain.get_block(n) for n in range(chain.block_number + 1)]
        for parent, child in zip(blocks, blocks[1:]):
            assert child.parent_hash == parent.hash
            assert child.timestamp > parent.timestamp

    def test_state_root_tracks_state(self, chain, setup):
        token, *_ = setup
        root = chain.state_root()
        assert chain.latest_block.state_root == root
        token.findPuzzlePieces(0, 1)
        assert chain.state_root() != root

    def test_mine_empty_block(self, chain):
        block = chain.mine()
        assert block.number == 1
        assert block.tx_hashes == []

    def test_increase_time(self, chain):
        start = chain.latest_block.timestamp
        chain.increase_time(3600)
        assert chain.mine().timestamp >= start + 3600
        with pytest.raises(ValueError):
            chain.increase_time(-1)

    def test_source_date_epoch_pins_timestamps(self, monkeypatch):
        monkeypatch.setenv("SOURCE_DATE_EPOCH", "1700000000")
        first = Chain()
        second = Chain()
        assert first.latest_block.timestamp == 1700000000
        assert first.latest_block.hash == second.latest_block.hash

    def test_unknown_block(self, chain):
        with pytest.raises(ChainError):
            chain.get_block(5)


# =============================================================================
# SNAPSHOTS
# =============================================================================

class TestSnapshots:
    """Tests for evm_snapshot / evm_revert style snapshots."""

    def test_revert_restores_state(self, chain, setup):
        token, *_ = setup
        snap = chain.snapshot()
        token.addPuzzle("extra", 1, 0)
        assert token.puzzleCount() == 2

        assert chain.revert(snap) is True
        assert token.puzzleCount() == 1

    def test_snapshot_is_single_use(self, chain):
        snap = chain.snapshot()
        assert chain.revert(snap) is True
        assert chain.revert(snap) is False

    def test_revert_drops_later_snapshots(self, chain):
        first = chain.snapshot()
        second = chain.snapshot()
        assert chain.revert(first) is True
        assert chain.revert(second) is False

    def test_revert_restores_nonces_and_blocks(self, chain, signers):
        owner, alice = signers[:2]
        snap = chain.snapshot()
        chain.send_value(owner, alice, 5)
        chain.revert(snap)
        assert chain.block_number == 0
        assert chain.get_nonce(owner) == 0


# =============================================================================
# LOGS
# =============================================================================

class TestLogs:
    """Tests for log queries."""

    def test_logs_are_stamped(self, chain, setup):
        token, owner, *_ = setup
        receipt = token.findPuzzlePieces(0, 2)
        events = receipt.events("Transfer")
        assert [e.log_index for e in events] == [0, 1]
        assert all(e.block_number == receipt.block_number for e in events)
        assert all(e.tx_hash == receipt.tx_hash for e in events)
        assert all(e.address == token.address for e in events)

    def test_get_logs_filters(self, chain, setup):
        token, owner, *_ = setup
        token.findPuzzlePieces(0, 1)
        added = chain.get_logs(address=token, event="NewPuzzleAdded")
        assert [e.puzzle_id for e in added] == [0]
        assert len(chain.get_logs(event="Transfer")) == 1
        assert token.events("OwnershipTransferred")[0].new_owner == owner.address

    def test_get_logs_block_range(self, chain, setup):
        token, *_ = setup
        token.addPuzzle("later", 1, 0)
        latest = chain.block_number
        assert [e.puzzle_id for e in chain.get_logs(event="NewPuzzleAdded", from_block=latest)] == [1]
        assert chain.get_logs(event="NewPuzzleAdded", to_block=latest - 1)[-1].puzzle_id == 0


# =============================================================================
# WORLD STATE
# =============================================================================

class TestWorldState:
    """Tests for copies and copy-on-write overlays of the account set."""

    def test_overlay_copies_accounts_on_write(self):
        state = WorldState()
        state.get("0xAB").balance = 5
        view = state.overlay()

        view.get("0xab").balance = 9
        view.get("0xcd").nonce = 1

        assert state.peek("0xab").balance == 5
        assert "0xcd" not in state
        assert view.peek("0xab").balance == 9
        assert "0xcd" in view
        assert sorted(view.to_dict()) == ["0xab", "0xcd"]

    def test_overlay_reads_through(self):
        state = WorldState()
        state.get("0xab").storage["owner"] = "0x01"
        view = state.overlay()
        assert view.peek("0xab") is state.peek("0xab")
        assert view.root() == state.root()

    def test_copy_is_independent(self):
        state = WorldState()
        state.get("0xab").storage["owner"] = "0x01"
        clone = state.overlay().copy()
        clone.get("0xab").storage["owner"] = "0x02"
        assert state.peek("0xab").storage == {"owner": "0x01"}


# =============================================================================
# PERSISTENCE
# =============================================================================

class TestPersistence:
    """Tests for the JSON state file."""

    def test_save_and_load(self, chain, setup, tmp_path):
        token, owner, addr1, _ = setup
        token.findPuzzlePieces(0, 2)
        path = chain.save(tmp_path / "chain.json")

        loaded = Chain.load(path)
        assert loaded.state_root() == chain.state_root()
        assert loaded.block_number == chain.block_number
        assert loaded.latest_block.hash == chain.latest_block.hash
        assert loaded.deployments == chain.deployments
        assert len(loaded.get_logs(event="Transfer")) == 2

        again = get_contract_factory("Puzzle", loaded).attach(token.address)
        assert again.ownerOf(1) == owner.address
        again.connect(addr1).findPuzzlePieces(0, 1)
        assert again.totalSupply() == 3

    def test_state_file_validates(self, chain, setup):
        assert validate_state(chain.to_dict()) == []

    def test_invalid_state_is_rejected(self, chain, tmp_path):
        data = chain.to_dict()
        data["format"] = "something-else"
        data["accounts"]["0xnot-an-address"] = {"balance": "1", "nonce": 0}
        errors = validate_state(data)
        assert len(errors) >= 2

        path = tmp_path / "bad.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        with pytest.raises(ChainError, match="Invalid chain state"):
            Chain.load(path)

    def test_missing_and_corrupt_files(self, tmp_path):
        with pytest.raises(ChainError, match="not found"):
            Chain.load(tmp_path / "missing.json")
        broken = tmp_path / "broken.json"
        broken.write_text("{not json", encoding="utf-8")
        with pytest.raises(ChainError, match="not valid JSON"):
            Chain.load(broken)

    def test_mnemonic_mismatch(self, chain, tmp_path):
        path = chain.save(tmp_path / "chain.json")
        with pytest.raises(ChainError, match="different mnemonic"):
            Chain.load(path, mnemonic="some other words")

    def test_transactions_round_trip_hashes(self, chain, setup):
        for tx_hash, tx in chain.transactions.items():
            assert Transaction.from_dict(tx.to_dict()).hash == tx_hash
