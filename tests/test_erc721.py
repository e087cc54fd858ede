"""
ERC-721 behaviour of the Puzzle token: approvals, transfers, safe transfers
to contracts, enumeration and ownership.

Run with: pytest tests/test_erc721.py -v
"""

import pytest

from puzzlenft.chain.factory import get_contract_factory
from puzzlenft.contracts import ERC721_RECEIVED
from puzzlenft.contracts.erc721 import (
    INTERFACE_ERC165,
    INTERFACE_ERC721,
    INTERFACE_ERC721_ENUMERABLE,
    INTERFACE_ERC721_METADATA,
)
from puzzlenft.keys import ZERO_ADDRESS
from puzzlenft.testing import assert_emitted, reverts

SAFE_TRANSFER = "safeTransferFrom(address,address,uint256)"


@pytest.fixture
def minted(setup):
    """The owner holds pieces 0, 1 and 2."""
    token, owner, addr1, addr2 = setup
    token.findPuzzlePieces(0, 3)
    return setup


class TestApprovals:
    """Tests for single-token and operator approvals."""

    def test_approved_account_can_transfer(self, minted):
        token, owner, addr1, addr2 = minted
        assert_emitted(token.approve(addr1, 0), "Approval", owner, addr1, 0)
        assert token.getApproved(0) == addr1.address

        token.connect(addr1).transferFrom(owner, addr2, 0)
        assert token.ownerOf(0) == addr2.address
        # approvals are cleared on transfer
        assert token.getApproved(0) == ZERO_ADDRESS

    def test_operator_can_transfer_any_token(self, minted):
        token, owner, addr1, addr2 = minted
        assert_emitted(token.setApprovalForAll(addr1, True), "ApprovalForAll", owner, addr1, True)
        assert token.isApprovedForAll(owner, addr1) is True

        token.connect(addr1).transferFrom(owner, addr2, 1)
        token.connect(addr1)[SAFE_TRANSFER](owner, addr2, 2)
        assert token.balanceOf(addr2) == 2

    def test_operator_can_approve(self, minted):
        token, owner, addr1, addr2 = minted
        token.setApprovalForAll(addr1, True)
        token.connect(addr1).approve(addr2, 0)
        assert token.getApproved(0) == addr2.address

    def test_approve_rules(self, minted):
        token, owner, addr1, addr2 = minted
        with reverts("ERC721: approval to current owner"):
            token.approve(owner, 0)
        with reverts("ERC721: approve caller is not owner nor approved for all"):
            token.connect(addr1).approve(addr2, 0)
        with reverts("ERC721: approve to caller"):
            token.setApprovalForAll(owner, True)
        with reverts("ERC721: approved query for nonexistent token"):
            token.getApproved(99)


class TestTransfers:
    """Tests for transfer validation."""

    def test_wrong_from_address(self, minted):
        token, owner, addr1, addr2 = minted
        with reverts("ERC721: transfer of token that is not own"):
            token.transferFrom(addr1, addr2, 0)

    def test_transfer_to_zero_address(self, minted):
        token, owner, *_ = minted
        with reverts("ERC721: transfer to the zero address"):
            token.transferFrom(owner, ZERO_ADDRESS, 0)

    def test_balance_of_zero_address(self, setup):
        token, *_ = setup
        with reverts("ERC721: balance query for the zero address"):
            token.balanceOf(ZERO_ADDRESS)

    def test_owner_of_nonexistent_token(self, setup):
        token, *_ = setup
        with reverts("ERC721: owner query for nonexistent token"):
            token.ownerOf(0)


class TestSafeTransfers:
    """Tests for receiver checks on safe transfers and mints."""

    def test_safe_transfer_to_holder_contract(self, chain, minted):
        token, owner, addr1, addr2 = minted
        holder = get_contract_factory("ERC721Holder", chain).deploy()

        token[SAFE_TRANSFER](owner, holder, 0)
        assert token.ownerOf(0) == holder.address
        assert token.balanceOf(holder) == 1

    def test_safe_transfer_to_non_receiver_contract(self, chain, minted):
        token, owner, addr1, addr2 = minted
        other = get_contract_factory("Puzzle", chain).deploy()

        with reverts("ERC721: transfer to non ERC721Receiver implementer"):
            token[SAFE_TRANSFER](owner, other, 0)
        assert token.ownerOf(0) == owner.address

    def test_plain_transfer_skips_receiver_check(self, chain, minted):
        """transferFrom does not ask the recipient, so tokens can get stuck."""
        token, owner, addr1, addr2 = minted
        other = get_contract_factory("Puzzle", chain).deploy()

        token.transferFrom(owner, other, 0)
        assert token.ownerOf(0) == other.address

    def test_holder_returns_selector(self, chain):
        holder = get_contract_factory("ERC721Holder", chain).deploy()
        result = holder.onERC721Received.call(ZERO_ADDRESS, ZERO_ADDRESS, 0, b"")
        assert result == ERC721_RECEIVED == bytes.fromhex("150b7a02")


class TestEnumeration:
    """Tests for the Enumerable extension."""

    def test_owner_enumeration_after_transfer(self, minted):
        """Moving a token out swaps the last token into its slot."""
        token, owner, addr1, addr2 = minted
        token[SAFE_TRANSFER](owner, addr1, 0)

        owned = [token.tokenOfOwnerByIndex(owner, i) for i in range(token.balanceOf(owner))]
        assert owned == [2, 1]
        assert token.tokenOfOwnerByIndex(addr1, 0) == 0

    def test_global_enumeration(self, minted):
        token, *_ = minted
        assert token.totalSupply() == 3
        assert [token.tokenByIndex(i) for i in range(3)] == [0, 1, 2]

    def test_index_bounds(self, minted):
        token, owner, addr1, addr2 = minted
        with reverts("ERC721Enumerable: global index out of bounds"):
            token.tokenByIndex(3)
        with reverts("ERC721Enumerable: owner index out of bounds"):
            token.tokenOfOwnerByIndex(addr1, 0)


class TestInterfaces:
    """Tests for ERC-165 support."""

    @pytest.mark.parametrize("interface_id", [
        INTERFACE_ERC165,
        INTERFACE_ERC721,
        INTERFACE_ERC721_METADATA,
        INTERFACE_ERC721_ENUMERABLE,
    ])
    def test_supported(self, setup, interface_id):
        token, *_ = setup
        assert token.supportsInterface(interface_id) is True

    def test_unsupported(self, setup):
        token, *_ = setup
        assert token.supportsInterface("0xffffffff") is False


class TestOwnable:
    """Tests for ownership management."""

    def test_renounce_ownership(self, setup):
        token, owner, addr1, addr2 = setup
        assert_emitted(token.renounceOwnership(), "OwnershipTransferred", owner, ZERO_ADDRESS)
        assert token.owner() == ZERO_ADDRESS
        with reverts("Ownable: caller is not the owner"):
            token.addPuzzle("orphan", 1, 0)

    def test_transfer_to_zero_address(self, setup):
        token, *_ = setup
        with reverts("Ownable: new owner is the zero address"):
            token.transferOwnership(ZERO_ADDRESS)
