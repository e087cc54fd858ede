"""
ERC-721 Non-Fungible Token Standard

Ownable, ERC721 and ERC721Enumerable with OpenZeppelin 4.x behaviour and
revert strings, written against the puzzle chain contract model. Concrete
tokens inherit from these and call the `_init_*` helpers from their
constructor.

Storage layout:
    owner                                  Ownable owner
    name, symbol                           token metadata
    owners/<tokenId>                       token owner
    balances/<owner>                       token count per owner
    tokenApprovals/<tokenId>               approved address
    operatorApprovals/<owner>/<operator>   operator flag
    ownedTokens/<owner>/<index>            enumeration, per owner
    ownedTokensIndex/<tokenId>
    allTokens/<index>                      enumeration, global
    allTokensIndex/<tokenId>
    allTokensLength

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Callable

from puzzlenft.chain.contract import (
    UNKNOWN_SELECTOR,
    Contract,
    external,
    register_contract,
    require,
    view,
)
from puzzlenft.chain.events import ContractEvent, param
from puzzlenft.chain.hardening import Revert
from puzzlenft.keys import ZERO_ADDRESS

ERC721_RECEIVED = bytes.fromhex("150b7a02")

INTERFACE_ERC165 = bytes.fromhex("01ffc9a7")
INTERFACE_ERC721 = bytes.fromhex("80ac58cd")
INTERFACE_ERC721_METADATA = bytes.fromhex("5b5e139f")
INTERFACE_ERC721_ENUMERABLE = bytes.fromhex("780e9d63")


# =============================================================================
# EVENTS
# =============================================================================

@dataclass
class Transfer(ContractEvent):
    from_: str = param("address", indexed=True)
    to: str = param("address", indexed=True)
    token_id: int = param("uint256", indexed=True)


@dataclass
class Approval(ContractEvent):
    owner: str = param("address", indexed=True)
    approved: str = param("address", indexed=True)
    token_id: int = param("uint256", indexed=True)


@dataclass
class ApprovalForAll(ContractEvent):
    owner: str = param("address", indexed=True)
    operator: str = param("address", indexed=True)
    approved: bool = param("bool")


@dataclass
class OwnershipTransferred(ContractEvent):
    previous_owner: str = param("address", indexed=True)
    new_owner: str = param("address", indexed=True)


# =============================================================================
# OWNABLE
# =============================================================================

def only_owner(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Restrict a contract function to the current owner."""
    @functools.wraps(fn)
    def wrapper(self: "Ownable", *args: Any) -> Any:
        require(self.owner() == self.msg.sender, "Ownable: caller is not the owner")
        return fn(self, *args)
    return wrapper


class Ownable(Contract):
    """Single-owner access control."""

    def _init_ownable(self) -> None:
        self._transfer_ownership(self.msg.sender)

    @view("owner()")
    def owner(self) -> str:
        return self.storage.load("owner") or ZERO_ADDRESS

    @external("renounceOwnership()")
    @only_owner
    def renounce_ownership(self) -> None:
        self._transfer_ownership(ZERO_ADDRESS)

    @external("transferOwnership(address)")
    @only_owner
    def transfer_ownership(self, new_owner: str) -> None:
        require(new_owner != ZERO_ADDRESS, "Ownable: new owner is the zero address")
        self._transfer_ownership(new_owner)

    def _transfer_ownership(self, new_owner: str) -> None:
        old_owner = self.owner()
        self.storage.store("owner", new_owner, ZERO_ADDRESS)
        self.emit(OwnershipTransferred(previous_owner=old_owner, new_owner=new_owner))


# =============================================================================
# ERC721
# =============================================================================

class ERC721(Contract):
    """Core ERC-721 with the metadata extension."""

    def _init_erc721(self, name: str, symbol: str) -> None:
        self.storage.store("name", name, "")
        self.storage.store("symbol", symbol, "")

    @property
    def _owners(self):
        return self.storage.mapping("owners")

    @property
    def _balances(self):
        return self.storage.mapping("balances", 0)

    @property
    def _token_approvals(self):
        return self.storage.mapping("tokenApprovals")

    @property
    def _operator_approvals(self):
        return self.storage.mapping("operatorApprovals", False)

    # ------------------------------------------------------------------
    # ERC165
    # ------------------------------------------------------------------

    @view("supportsInterface(bytes4)")
    def supports_interface(self, interface_id: bytes) -> bool:
        return interface_id in (INTERFACE_ERC165, INTERFACE_ERC721, INTERFACE_ERC721_METADATA)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @view("balanceOf(address)")
    def balance_of(self, owner: str) -> int:
        require(owner != ZERO_ADDRESS, "ERC721: balance query for the zero address")
        return self._balances[owner]

    @view("ownerOf(uint256)")
    def owner_of(self, token_id: int) -> str:
        owner = self._owners[token_id]
        require(owner is not None, "ERC721: owner query for nonexistent token")
        return owner

    @view("name()")
    def name(self) -> str:
        return self.storage.load("name", "")

    @view("symbol()")
    def symbol(self) -> str:
        return self.storage.load("symbol", "")

    @view("tokenURI(uint256)")
    def token_uri(self, token_id: int) -> str:
        require(self._exists(token_id), "ERC721Metadata: URI query for nonexistent token")
        base = self._base_uri()
        return f"{base}{token_id}" if base else ""

    def _base_uri(self) -> str:
        return ""

    @view("getApproved(uint256)")
    def get_approved(self, token_id: int) -> str:
        require(self._exists(token_id), "ERC721: approved query for nonexistent token")
        return self._token_approvals[token_id] or ZERO_ADDRESS

    @view("isApprovedForAll(address,address)")
    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self._operator_approvals[owner, operator]

    # ------------------------------------------------------------------
    # Approvals and transfers
    # ------------------------------------------------------------------

    @external("approve(address,uint256)")
    def approve(self, to: str, token_id: int) -> None:
        owner = self.owner_of(token_id)
        require(to != owner, "ERC721: approval to current owner")
        require(
            self.msg.sender == owner or self.is_approved_for_all(owner, self.msg.sender),
            "ERC721: approve caller is not owner nor approved for all",
        )
        self._approve(to, token_id)

    @external("setApprovalForAll(address,bool)")
    def set_approval_for_all(self, operator: str, approved: bool) -> None:
        self._set_approval_for_all(self.msg.sender, operator, approved)

    @external("transferFrom(address,address,uint256)")
    def transfer_from(self, from_: str, to: str, token_id: int) -> None:
        require(
            self._is_approved_or_owner(self.msg.sender, token_id),
            "ERC721: transfer caller is not owner nor approved",
        )
        self._transfer(from_, to, token_id)

    @external("safeTransferFrom(address,address,uint256)")
    @external("safeTransferFrom(address,address,uint256,bytes)")
    def safe_transfer_from(self, from_: str, to: str, token_id: int, data: bytes = b"") -> None:
        require(
            self._is_approved_or_owner(self.msg.sender, token_id),
            "ERC721: transfer caller is not owner nor approved",
        )
        self._safe_transfer(from_, to, token_id, data)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _exists(self, token_id: int) -> bool:
        return self._owners[token_id] is not None

    def _is_approved_or_owner(self, spender: str, token_id: int) -> bool:
        require(self._exists(token_id), "ERC721: operator query for nonexistent token")
        owner = self.owner_of(token_id)
        return (
            spender == owner
            or self.get_approved(token_id) == spender
            or self.is_approved_for_all(owner, spender)
        )

    def _safe_transfer(self, from_: str, to: str, token_id: int, data: bytes) -> None:
        self._transfer(from_, to, token_id)
        require(
            self._check_on_erc721_received(from_, to, token_id, data),
            "ERC721: transfer to non ERC721Receiver implementer",
        )

    def _safe_mint(self, to: str, token_id: int, data: bytes = b"") -> None:
        self._mint(to, token_id)
        require(
            self._check_on_erc721_received(ZERO_ADDRESS, to, token_id, data),
            "ERC721: transfer to non ERC721Receiver implementer",
        )

    def _mint(self, to: str, token_id: int) -> None:
        require(to != ZERO_ADDRESS, "ERC721: mint to the zero address")
        require(not self._exists(token_id), "ERC721: token already minted")

        self._before_token_transfer(ZERO_ADDRESS, to, token_id)
        self._balances[to] += 1
        self._owners[token_id] = to
        self.emit(Transfer(from_=ZERO_ADDRESS, to=to, token_id=token_id))

    def _burn(self, token_id: int) -> None:
        owner = self.owner_of(token_id)

        self._before_token_transfer(owner, ZERO_ADDRESS, token_id)
        self._approve(ZERO_ADDRESS, token_id)
        self._balances[owner] -= 1
        del self._owners[token_id]
        self.emit(Transfer(from_=owner, to=ZERO_ADDRESS, token_id=token_id))

    def _transfer(self, from_: str, to: str, token_id: int) -> None:
        require(self.owner_of(token_id) == from_, "ERC721: transfer of token that is not own")
        require(to != ZERO_ADDRESS, "ERC721: transfer to the zero address")

        self._before_token_transfer(from_, to, token_id)
        # Clear approvals from the previous owner
        self._approve(ZERO_ADDRESS, token_id)
        self._balances[from_] -= 1
        self._balances[to] += 1
        self._owners[token_id] = to
        self.emit(Transfer(from_=from_, to=to, token_id=token_id))

    def _approve(self, to: str, token_id: int) -> None:
        self._token_approvals[token_id] = None if to == ZERO_ADDRESS else to
        self.emit(Approval(owner=self.owner_of(token_id), approved=to, token_id=token_id))

    def _set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        require(owner != operator, "ERC721: approve to caller")
        self._operator_approvals[owner, operator] = approved
        self.emit(ApprovalForAll(owner=owner, operator=operator, approved=approved))

    def _check_on_erc721_received(self, from_: str, to: str, token_id: int, data: bytes) -> bool:
        if not self.is_contract(to):
            return True
        try:
            retval = self.call_contract(
                to,
                "onERC721Received(address,address,uint256,bytes)",
                self.msg.sender,
                from_,
                token_id,
                data,
            )
        except Revert as e:
            if not e.reason or e.reason == UNKNOWN_SELECTOR:
                raise Revert("ERC721: transfer to non ERC721Receiver implementer") from None
            raise
        return retval == ERC721_RECEIVED

    def _before_token_transfer(self, from_: str, to: str, token_id: int) -> None:
        """Hook called before any mint, burn or transfer."""


# =============================================================================
# ERC721 ENUMERABLE
# =============================================================================

class ERC721Enumerable(ERC721):
    """Adds enumerability of all token ids and of each owner's tokens."""

    @property
    def _owned_tokens(self):
        return self.storage.mapping("ownedTokens")

    @property
    def _owned_tokens_index(self):
        return self.storage.mapping("ownedTokensIndex", 0)

    @property
    def _all_tokens(self):
        return self.storage.mapping("allTokens")

    @property
    def _all_tokens_index(self):
        return self.storage.mapping("allTokensIndex", 0)

    @view("supportsInterface(bytes4)")
    def supports_interface(self, interface_id: bytes) -> bool:
        return interface_id == INTERFACE_ERC721_ENUMERABLE or super().supports_interface(interface_id)

    @view("totalSupply()")
    def total_supply(self) -> int:
        return self.storage.load("allTokensLength", 0)

    @view("tokenByIndex(uint256)")
    def token_by_index(self, index: int) -> int:
        require(index < self.total_supply(), "ERC721Enumerable: global index out of bounds")
        return self._all_tokens[index]

    @view("tokenOfOwnerByIndex(address,uint256)")
    def token_of_owner_by_index(self, owner: str, index: int) -> int:
        require(index < self.balance_of(owner), "ERC721Enumerable: owner index out of bounds")
        return self._owned_tokens[owner, index]

    def _before_token_transfer(self, from_: str, to: str, token_id: int) -> None:
        super()._before_token_transfer(from_, to, token_id)

        if from_ == ZERO_ADDRESS:
            self._add_token_to_all_tokens_enumeration(token_id)
        elif from_ != to:
            self._remove_token_from_owner_enumeration(from_, token_id)
        if to == ZERO_ADDRESS:
            self._remove_token_from_all_tokens_enumeration(token_id)
        elif to != from_:
            self._add_token_to_owner_enumeration(to, token_id)

    def _add_token_to_owner_enumeration(self, to: str, token_id: int) -> None:
        length = self.balance_of(to)
        self._owned_tokens[to, length] = token_id
        self._owned_tokens_index[token_id] = length

    def _add_token_to_all_tokens_enumeration(self, token_id: int) -> None:
        length = self.total_supply()
        self._all_tokens_index[token_id] = length
        self._all_tokens[length] = token_id
        self.storage.store("allTokensLength", length + 1, 0)

    def _remove_token_from_owner_enumeration(self, from_: str, token_id: int) -> None:
        # Swap-and-pop: move the last token into the slot being vacated
        last_token_index = self.balance_of(from_) - 1
        token_index = self._owned_tokens_index[token_id]

        if token_index != last_token_index:
            last_token_id = self._owned_tokens[from_, last_token_index]
            self._owned_tokens[from_, token_index] = last_token_id
            self._owned_tokens_index[last_token_id] = token_index

        del self._owned_tokens_index[token_id]
        del self._owned_tokens[from_, last_token_index]

    def _remove_token_from_all_tokens_enumeration(self, token_id: int) -> None:
        last_token_index = self.total_supply() - 1
        token_index = self._all_tokens_index[token_id]

        last_token_id = self._all_tokens[last_token_index]
        self._all_tokens[token_index] = last_token_id
        self._all_tokens_index[last_token_id] = token_index

        del self._all_tokens_index[token_id]
        del self._all_tokens[last_token_index]
        self.storage.store("allTokensLength", last_token_index, 0)


# =============================================================================
# RECEIVER
# =============================================================================

@register_contract
class ERC721Holder(Contract):
    """Accepts every ERC-721 token sent to it with a safe transfer."""

    @external("onERC721Received(address,address,uint256,bytes)")
    def on_erc721_received(self, operator: str, from_: str, token_id: int, data: bytes) -> bytes:
        return ERC721_RECEIVED
