"""
Puzzle Chain: an in-process development chain for Python contracts.

Architecture
────────────

    ┌──────────────────────────────────────────────────────────────┐
    │  factory.py   ContractFactory / ContractHandle (ABI access)   │
    │  network.py   default chain, state file                       │
    ├──────────────────────────────────────────────────────────────┤
    │  runtime.py   signers, signed transactions, blocks, receipts  │
    │  contract.py  Contract base, ABI decorators, registry         │
    │  state.py     accounts, gas-metered slot storage              │
    │  gas.py       gas costs, meter, gas reporter                  │
    ├──────────────────────────────────────────────────────────────┤
    │  events.py  hardening.py  config.py  observability.py  cli.py │
    └──────────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from puzzlenft.chain.contract import (
    Contract,
    external,
    payable,
    register_contract,
    require,
    view,
)
from puzzlenft.chain.events import ContractEvent, EventBus, param
from puzzlenft.chain.hardening import (
    ChainError,
    ContractRevert,
    InsufficientFunds,
    InvalidSignature,
    NonceError,
    Revert,
    UnknownContract,
    ValidationError,
)
from puzzlenft.chain.runtime import Block, Chain, Receipt, Signer, Transaction

__all__ = [
    "Block",
    "Chain",
    "ChainError",
    "Contract",
    "ContractEvent",
    "ContractRevert",
    "EventBus",
    "InsufficientFunds",
    "InvalidSignature",
    "NonceError",
    "Receipt",
    "Revert",
    "Signer",
    "Transaction",
    "UnknownContract",
    "ValidationError",
    "external",
    "param",
    "payable",
    "register_contract",
    "require",
    "view",
]
