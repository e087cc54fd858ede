"""
Puzzle Chain World State

Accounts and the flat, gas-metered slot storage that backs every contract.

Storage layout:
    Each contract owns one flat map of slot key -> JSON value. Scalars live
    under their own name ("owner", "baseURI"); mappings live under
    "<name>/<key>[/<key>...]" ("owners/7", "ownedTokens/0xab.../2").
    Writing a slot's default value clears the slot, so an untouched mapping
    entry and a zeroed one are indistinguishable, as in the EVM.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import copy
import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from puzzlenft.chain.gas import GasCosts, GasMeter
from puzzlenft.chain.hardening import CryptoUtils
from puzzlenft.keys import jcs_canonicalize

Key = Union[str, int, Tuple[Any, ...]]


class Storage:
    """
    Flat slot storage for one contract account.

    Reads and writes are charged to `meter` when one is attached (the runtime
    attaches the transaction's meter before running contract code).
    """

    def __init__(self, slots: Optional[Dict[str, Any]] = None, meter: Optional[GasMeter] = None):
        self._slots: Dict[str, Any] = slots if slots is not None else {}
        self.meter = meter

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, key: str) -> bool:
        return key in self._slots

    def load(self, key: str, default: Any = None) -> Any:
        """Read a slot; container values are returned as copies."""
        if self.meter is not None:
            self.meter.consume(GasCosts.SLOAD, f"SLOAD {key}")
        if key not in self._slots:
            return default
        value = self._slots[key]
        if isinstance(value, (dict, list)):
            return copy.deepcopy(value)
        return value

    def store(self, key: str, value: Any, default: Any = None) -> None:
        """Write a slot; writing `default` (or None) clears it."""
        had_value = key in self._slots
        clears = value is None or value == default
        if self.meter is not None:
            cost, refund = GasCosts.for_store(had_value, not clears)
            self.meter.consume(cost, f"SSTORE {key}")
            if refund:
                self.meter.refund(refund)
        if clears:
            self._slots.pop(key, None)
        else:
            self._slots[key] = copy.deepcopy(value) if isinstance(value, (dict, list)) else value

    def delete(self, key: str) -> None:
        self.store(key, None)

    def mapping(self, name: str, default: Any = None) -> "StorageMapping":
        return StorageMapping(self, name, default)

    def slots(self) -> Dict[str, Any]:
        """Snapshot of all slots (deep copy)."""
        return copy.deepcopy(self._slots)

    def root(self) -> str:
        """Merkle root over sorted (key, value) leaves."""
        leaves = [
            hashlib.sha256(jcs_canonicalize([key, self._slots[key]])).hexdigest()
            for key in sorted(self._slots)
        ]
        return CryptoUtils.merkle_root(leaves)


class StorageMapping:
    """
    Mapping view over a `Storage` prefix.

    Keys may be scalars or tuples (nested mappings):

        balances = storage.mapping("balances", default=0)
        balances[owner] += 1
        owned = storage.mapping("ownedTokens")
        owned[owner, index] = token_id
    """

    SEPARATOR = "/"

    def __init__(self, storage: Storage, name: str, default: Any = None):
        self._storage = storage
        self.name = name
        self.default = default

    def slot(self, key: Key) -> str:
        parts = key if isinstance(key, tuple) else (key,)
        return self.SEPARATOR.join([self.name] + [str(p).lower() if isinstance(p, str) else str(p) for p in parts])

    def __getitem__(self, key: Key) -> Any:
        return self._storage.load(self.slot(key), self.default)

    def __setitem__(self, key: Key, value: Any) -> None:
        self._storage.store(self.slot(key), value, self.default)

    def __delitem__(self, key: Key) -> None:
        self._storage.delete(self.slot(key))

    def __contains__(self, key: Key) -> bool:
        return self.slot(key) in self._storage


@dataclass
class Account:
    """World-state entry for an address."""
    address: str
    balance: int = 0
    nonce: int = 0
    contract: Optional[str] = None
    storage: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_contract(self) -> bool:
        return self.contract is not None

    def storage_root(self) -> str:
        return Storage(self.storage).root()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "balance": str(self.balance),
            "nonce": self.nonce,
        }
        if self.contract is not None:
            data["contract"] = self.contract
            data["storage"] = copy.deepcopy(self.storage)
        return data

    @classmethod
    def from_dict(cls, address: str, data: Dict[str, Any]) -> "Account":
        return cls(
            address=address,
            balance=int(data.get("balance", "0")),
            nonce=int(data.get("nonce", 0)),
            contract=data.get("contract"),
            storage=copy.deepcopy(data.get("storage", {})),
        )


class WorldState:
    """
    All accounts, keyed by lowercase address.

    An overlay (`overlay()`) reads through to its base and copies an account
    into itself on the first `get`, so the base is never written.
    """

    def __init__(self, accounts: Optional[Dict[str, Account]] = None, base: Optional["WorldState"] = None):
        self._accounts: Dict[str, Account] = accounts or {}
        self._base = base

    def _all(self) -> Dict[str, Account]:
        if self._base is None:
            return self._accounts
        merged = dict(self._base._all())
        merged.update(self._accounts)
        return merged

    def __iter__(self) -> Iterator[Account]:
        return iter(self._all().values())

    def __contains__(self, address: str) -> bool:
        return self.peek(address) is not None

    def get(self, address: str) -> Account:
        """Get an account for writing, creating an empty one on first touch."""
        address = address.lower()
        account = self._accounts.get(address)
        if account is None:
            inherited = self._base.peek(address) if self._base is not None else None
            account = copy.deepcopy(inherited) if inherited is not None else Account(address=address)
            self._accounts[address] = account
        return account

    def peek(self, address: str) -> Optional[Account]:
        """Read-only lookup; the result must not be mutated."""
        address = address.lower()
        account = self._accounts.get(address)
        if account is None and self._base is not None:
            return self._base.peek(address)
        return account

    def copy(self) -> "WorldState":
        return WorldState(copy.deepcopy(self._all()))

    def overlay(self) -> "WorldState":
        """Copy-on-write view; discard it to drop every change made through it."""
        return WorldState(base=self)

    def root(self) -> str:
        accounts = self._all()
        leaves = []
        for address in sorted(accounts):
            account = accounts[address]
            leaf = {
                "address": address,
                "balance": str(account.balance),
                "nonce": account.nonce,
                "contract": account.contract,
                "storage_root": account.storage_root(),
            }
            leaves.append(hashlib.sha256(jcs_canonicalize(leaf)).hexdigest())
        return CryptoUtils.merkle_root(leaves)

    def to_dict(self) -> Dict[str, Any]:
        accounts = self._all()
        return {address: accounts[address].to_dict() for address in sorted(accounts)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorldState":
        return cls({address.lower(): Account.from_dict(address.lower(), entry) for address, entry in data.items()})
