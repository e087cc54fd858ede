"""
Puzzle Chain Runtime

A deterministic, in-process development chain. It holds the world state,
hands out unlocked signer accounts, executes signed transactions against
Python contracts, and mines one block per transaction.

Transaction lifecycle:
    1. Verify: chain id, signature over the canonical unsigned payload,
       nonce, gas limit, and that the sender can cover
       `value + gas_limit * gas_price`. Failures raise before any state
       changes and nothing is mined.
    2. Execute: bump the sender nonce, charge intrinsic gas, move value and
       run contract code with a gas meter attached to storage.
    3. Revert handling: a `Revert` raised anywhere in the call tree restores
       the pre-transaction state; the nonce bump and gas fee still apply.
    4. Mine: a block is appended with the receipt, logs are stamped with the
       block number and transaction hash, then published on the event bus.
       Reverted transactions surface as `ContractRevert` after mining.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from jsonschema import Draft202012Validator

from puzzlenft.chain.config import ChainConfig, get_config
from puzzlenft.chain.contract import FunctionABI, get_contract_class
from puzzlenft.chain.events import BlockMined, ContractEvent, EventBus, TransactionMined
from puzzlenft.chain.gas import GasCosts, GasMeter
from puzzlenft.chain.hardening import (
    ChainError,
    ContractRevert,
    InsufficientFunds,
    InvalidSignature,
    NonceError,
    Revert,
    ValidationError,
    Validators,
)
from puzzlenft.chain.observability import ChainLayer, get_logger, tx_context
from puzzlenft.chain.state import Storage, WorldState
from puzzlenft.keys import (
    ZERO_ADDRESS,
    _coerce_json_types,
    address_from_public_key,
    contract_address,
    derive_private_key,
    jcs_canonicalize,
    public_key_bytes,
    sha256_hex,
    sign_payload,
    verify_payload,
)

log = get_logger("runtime", ChainLayer.CHAIN)

STATE_FORMAT = "puzzlenft-chain/1"
SCHEMA_PATH = Path(__file__).parent / "schemas" / "chain-state.schema.json"
ZERO_HASH = "0x" + "0" * 64
MAX_CALL_DEPTH = 1024

# an address string, or anything with an `address` attribute (Signer, ContractHandle)
AddressLike = Any


def _address_of(value: AddressLike, field_name: str = "address") -> str:
    value = getattr(value, "address", value)
    return Validators.validate_address(value, field_name).unwrap()


def _normalize_arg(value: Any) -> Any:
    # signers and contract handles are passed by address
    if hasattr(value, "address") and not isinstance(value, (str, bytes)):
        return value.address.lower()
    if isinstance(value, (list, tuple)):
        return [_normalize_arg(v) for v in value]
    return value


# =============================================================================
# SIGNERS
# =============================================================================

class Signer:
    """An unlocked development account."""

    def __init__(self, index: int, private_key: Ed25519PrivateKey):
        self.index = index
        self._private_key = private_key
        self.public_key = public_key_bytes(private_key).hex()
        self.address = address_from_public_key(bytes.fromhex(self.public_key))

    @classmethod
    def derive(cls, mnemonic: str, index: int) -> "Signer":
        return cls(index, derive_private_key(mnemonic, index))

    def sign(self, payload: Dict[str, Any]) -> str:
        return sign_payload(self._private_key, payload)

    def sign_transaction(self, tx: "Transaction") -> "Transaction":
        if tx.sender != self.address:
            raise InvalidSignature(f"Signer {self.address} cannot sign for {tx.sender}")
        tx.public_key = self.public_key
        tx.signature = self.sign(tx.unsigned())
        return tx

    def __repr__(self) -> str:
        return f"Signer(index={self.index}, address={self.address})"


# =============================================================================
# TRANSACTIONS, RECEIPTS, BLOCKS
# =============================================================================

@dataclass
class Transaction:
    """
    A signed transaction.

    `to` is None for deployments, in which case `contract` names the contract
    to create and `args` are its constructor arguments. An empty `function`
    is a plain value transfer.
    """
    sender: str
    to: Optional[str]
    function: str = ""
    args: List[Any] = field(default_factory=list)
    value: int = 0
    nonce: int = 0
    gas_limit: int = 0
    gas_price: int = 0
    chain_id: int = 0
    contract: Optional[str] = None
    public_key: str = ""
    signature: str = ""

    @property
    def is_deployment(self) -> bool:
        return self.contract is not None

    def unsigned(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "to": self.to,
            "contract": self.contract,
            "function": self.function,
            "args": _coerce_json_types(self.args),
            "value": str(self.value),
            "nonce": self.nonce,
            "gas_limit": self.gas_limit,
            "gas_price": self.gas_price,
            "chain_id": self.chain_id,
        }

    @property
    def hash(self) -> str:
        return "0x" + sha256_hex(jcs_canonicalize(self.unsigned()))

    def to_dict(self) -> Dict[str, Any]:
        data = self.unsigned()
        data["public_key"] = self.public_key
        data["signature"] = self.signature
        data["hash"] = self.hash
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            sender=data["sender"],
            to=data.get("to"),
            function=data.get("function", ""),
            args=list(data.get("args", [])),
            value=int(data.get("value", "0")),
            nonce=data["nonce"],
            gas_limit=data["gas_limit"],
            gas_price=data["gas_price"],
            chain_id=data["chain_id"],
            contract=data.get("contract"),
            public_key=data.get("public_key", ""),
            signature=data.get("signature", ""),
        )


@dataclass
class Receipt:
    """Outcome of a mined transaction."""
    tx_hash: str
    block_number: int
    sender: str
    to: Optional[str]
    status: bool
    gas_used: int = 0
    contract_address: Optional[str] = None
    contract_name: Optional[str] = None
    function: Optional[str] = None
    logs: List[ContractEvent] = field(default_factory=list)
    return_value: Any = None
    revert_reason: Optional[str] = None

    def events(self, name: Optional[str] = None, address: Optional[str] = None) -> List[ContractEvent]:
        """Logs of this receipt, optionally filtered by event name and emitter."""
        return [
            event for event in self.logs
            if (name is None or event.event_type == name)
            and (address is None or event.address == address.lower())
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "sender": self.sender,
            "to": self.to,
            "status": self.status,
            "gas_used": self.gas_used,
            "contract_address": self.contract_address,
            "contract_name": self.contract_name,
            "function": self.function,
            "logs": [_coerce_json_types(event.to_dict()) for event in self.logs],
            "return_value": _coerce_json_types(self.return_value),
            "revert_reason": self.revert_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Receipt":
        return cls(
            tx_hash=data["tx_hash"],
            block_number=data["block_number"],
            sender=data["sender"],
            to=data.get("to"),
            status=data["status"],
            gas_used=data["gas_used"],
            contract_address=data.get("contract_address"),
            contract_name=data.get("contract_name"),
            function=data.get("function"),
            logs=[ContractEvent.from_dict(entry) for entry in data.get("logs", [])],
            return_value=data.get("return_value"),
            revert_reason=data.get("revert_reason"),
        )


@dataclass
class Block:
    number: int
    parent_hash: str
    timestamp: int
    tx_hashes: List[str] = field(default_factory=list)
    state_root: str = ZERO_HASH
    gas_used: int = 0
    hash: str = ""

    def header(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "parent_hash": self.parent_hash,
            "timestamp": self.timestamp,
            "tx_hashes": list(self.tx_hashes),
            "state_root": self.state_root,
            "gas_used": self.gas_used,
        }

    def seal(self) -> "Block":
        self.hash = "0x" + sha256_hex(jcs_canonicalize(self.header()))
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = self.header()
        data["hash"] = self.hash
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Block":
        return cls(
            number=data["number"],
            parent_hash=data["parent_hash"],
            timestamp=data["timestamp"],
            tx_hashes=list(data["tx_hashes"]),
            state_root=data["state_root"],
            gas_used=data["gas_used"],
            hash=data["hash"],
        )


# =============================================================================
# EXECUTION
# =============================================================================

@dataclass
class ExecutionContext:
    """
    Context for contract execution.

    The `msg` and `block` values a contract sees are read from here.
    """
    caller: str
    origin: str
    value: int = 0
    timestamp: int = 0
    block_height: int = 0
    gas_limit: int = 0
    gas_price: int = 0
    chain_id: int = 0


class CallFrame:
    """The runtime services available to one executing contract call."""

    def __init__(
        self,
        chain: "Chain",
        context: ExecutionContext,
        address: str,
        meter: GasMeter,
        logs: List[ContractEvent],
        depth: int = 0,
    ):
        self.chain = chain
        self.context = context
        self.address = address
        self.meter = meter
        self.logs = logs
        self.depth = depth

    def balance_of(self, address: str) -> int:
        account = self.chain.state.peek(address)
        return account.balance if account else 0

    def is_contract(self, address: str) -> bool:
        account = self.chain.state.peek(address)
        return bool(account and account.is_contract)

    def emit(self, event: ContractEvent) -> None:
        self.meter.consume(GasCosts.for_log(event.topic_count, event.data_size), f"LOG {event.event_type}")
        event.address = self.address
        event.log_index = len(self.logs)
        self.logs.append(event)

    def transfer_value(self, to: str, amount: int) -> None:
        to = _address_of(to, "to")
        if self.is_contract(to):
            self.call(to, "receive", [], amount)
            return
        self.meter.consume(GasCosts.CALL_VALUE, "value transfer")
        self.chain._move_value(self.address, to, amount)

    def call(self, to: str, function: str, args: List[Any], value: int = 0) -> Any:
        to = _address_of(to, "to")
        self.meter.consume(GasCosts.CALL + (GasCosts.CALL_VALUE if value else 0), f"CALL {function}")
        context = replace(self.context, caller=self.address, value=value)
        result, _ = self.chain._invoke(context, to, function, args, self.meter, self.logs, self.depth + 1)
        return result


@dataclass
class _Snapshot:
    state: WorldState
    blocks: List[Block]
    receipts: Dict[str, Receipt]
    transactions: Dict[str, Transaction]
    deployments: Dict[str, str]
    time_offset: int


# =============================================================================
# CHAIN
# =============================================================================

class Chain:
    """
    In-process development chain.

    Example:
        chain = Chain()
        owner, alice = chain.get_signers()[:2]
        receipt = chain.deploy("Puzzle", owner, ["ipfs://base/"])
        chain.transact(owner, receipt.contract_address, "addPuzzle", ["test", 100, 0])
        chain.call(receipt.contract_address, "puzzleCount")
    """

    def __init__(
        self,
        config: Optional[ChainConfig] = None,
        *,
        mnemonic: Optional[str] = None,
        chain_id: Optional[int] = None,
        account_count: Optional[int] = None,
        initial_balance: Optional[int] = None,
        gas_price: Optional[int] = None,
        block_gas_limit: Optional[int] = None,
        genesis: bool = True,
    ):
        config = config or get_config().chain
        self.chain_id = chain_id if chain_id is not None else config.chain_id.get()
        self.gas_price = gas_price if gas_price is not None else config.gas_price.get()
        self.block_gas_limit = block_gas_limit if block_gas_limit is not None else config.block_gas_limit.get()
        self.initial_balance = initial_balance if initial_balance is not None else config.initial_balance_wei
        mnemonic = mnemonic or config.mnemonic.get()
        count = account_count if account_count is not None else config.account_count.get()

        self.signers: List[Signer] = [Signer.derive(mnemonic, i) for i in range(count)]
        self._signers_by_address = {s.address: s for s in self.signers}

        self.state = WorldState()
        self.blocks: List[Block] = []
        self.receipts: Dict[str, Receipt] = {}
        self.transactions: Dict[str, Transaction] = {}
        self.deployments: Dict[str, str] = {}
        self.bus = EventBus()

        self._time_offset = 0
        self._snapshots: Dict[int, _Snapshot] = {}
        self._next_snapshot_id = 1

        if genesis:
            for signer in self.signers:
                self.state.get(signer.address).balance = self.initial_balance
            self._mine([], self._next_timestamp())
            log.debug("genesis created", chain_id=self.chain_id, accounts=count)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_signers(self) -> List[Signer]:
        return list(self.signers)

    def get_signer(self, who: Union[int, AddressLike]) -> Signer:
        """Look up a signer by index or address."""
        if isinstance(who, int) and not isinstance(who, bool):
            if not 0 <= who < len(self.signers):
                raise ChainError(f"No signer with index {who}")
            return self.signers[who]
        if isinstance(who, Signer):
            return who
        try:
            address = _address_of(who, "sender")
        except ValidationError as e:
            raise ChainError(f"Unknown sender: {who!r}") from e
        signer = self._signers_by_address.get(address)
        if signer is None:
            raise ChainError(f"Unknown sender: {address} is not an unlocked account")
        return signer

    def get_balance(self, address: AddressLike) -> int:
        account = self.state.peek(_address_of(address))
        return account.balance if account else 0

    def get_nonce(self, address: AddressLike) -> int:
        account = self.state.peek(_address_of(address))
        return account.nonce if account else 0

    def get_code(self, address: AddressLike) -> Optional[str]:
        """Name of the contract deployed at `address`, or None."""
        account = self.state.peek(_address_of(address))
        return account.contract if account else None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def build_transaction(
        self,
        sender: AddressLike,
        to: Optional[AddressLike],
        function: str = "",
        args: Sequence[Any] = (),
        value: int = 0,
        gas_limit: Optional[int] = None,
        contract: Optional[str] = None,
    ) -> Transaction:
        """Build an unsigned transaction with the sender's current nonce."""
        sender_address = _address_of(sender, "sender")
        return Transaction(
            sender=sender_address,
            to=_address_of(to, "to") if to is not None else None,
            function=function,
            args=[_normalize_arg(a) for a in args],
            value=Validators.validate_uint(value, "value").unwrap(),
            nonce=self.get_nonce(sender_address),
            gas_limit=gas_limit if gas_limit is not None else self.block_gas_limit,
            gas_price=self.gas_price,
            chain_id=self.chain_id,
            contract=contract,
        )

    def deploy(
        self,
        contract_name: str,
        sender: AddressLike,
        args: Sequence[Any] = (),
        value: int = 0,
        gas_limit: Optional[int] = None,
    ) -> Receipt:
        """Deploy a registered contract; the receipt carries `contract_address`."""
        cls = get_contract_class(contract_name)
        signer = self.get_signer(sender)
        tx = self.build_transaction(signer.address, None, "constructor", args, value, gas_limit, cls.__name__)
        return self.send_transaction(signer.sign_transaction(tx))

    def transact(
        self,
        sender: AddressLike,
        to: AddressLike,
        function: str,
        args: Sequence[Any] = (),
        value: int = 0,
        gas_limit: Optional[int] = None,
    ) -> Receipt:
        """Sign and execute a contract call from an unlocked signer."""
        signer = self.get_signer(sender)
        tx = self.build_transaction(signer.address, to, function, args, value, gas_limit)
        return self.send_transaction(signer.sign_transaction(tx))

    def send_value(self, sender: AddressLike, to: AddressLike, value: int, gas_limit: Optional[int] = None) -> Receipt:
        """Plain value transfer; a contract recipient must accept it in `receive()`."""
        signer = self.get_signer(sender)
        limit = gas_limit if gas_limit is not None else GasCosts.TX_BASE if not self._is_contract(to) else None
        tx = self.build_transaction(signer.address, to, "", (), value, limit)
        return self.send_transaction(signer.sign_transaction(tx))

    def send_transaction(self, tx: Transaction) -> Receipt:
        """Execute and mine a signed transaction."""
        self._verify(tx)
        tx_hash = tx.hash
        with tx_context(tx_hash, len(self.blocks)):
            receipt, block = self._execute(tx)
            self._publish(receipt, block)
            if not receipt.status:
                log.info(
                    "transaction reverted",
                    function=receipt.function,
                    reason=receipt.revert_reason,
                    gas_used=receipt.gas_used,
                )
                raise ContractRevert(receipt.revert_reason or "", receipt)
            log.info(
                "transaction mined",
                contract=receipt.contract_name,
                function=receipt.function,
                gas_used=receipt.gas_used,
            )
        return receipt

    def call(
        self,
        to: AddressLike,
        function: str,
        args: Sequence[Any] = (),
        sender: Optional[AddressLike] = None,
        value: int = 0,
    ) -> Any:
        """Read-only execution; every state change is discarded."""
        caller = _address_of(sender, "sender") if sender is not None else ZERO_ADDRESS
        context = ExecutionContext(
            caller=caller,
            origin=caller,
            value=value,
            timestamp=self._next_timestamp(),
            block_height=len(self.blocks),
            gas_limit=self.block_gas_limit,
            gas_price=0,
            chain_id=self.chain_id,
        )
        saved = self.state
        self.state = saved.overlay()
        try:
            result, _ = self._invoke(
                context,
                _address_of(to, "to"),
                function,
                [_normalize_arg(a) for a in args],
                GasMeter(self.block_gas_limit),
                [],
                0,
            )
        except Revert as e:
            raise ContractRevert(e.reason) from None
        finally:
            self.state = saved
        return result

    # ------------------------------------------------------------------
    # Execution internals
    # ------------------------------------------------------------------

    def _is_contract(self, address: AddressLike) -> bool:
        account = self.state.peek(_address_of(address))
        return bool(account and account.is_contract)

    def _verify(self, tx: Transaction) -> None:
        if tx.chain_id != self.chain_id:
            raise ChainError(f"Transaction is for chain {tx.chain_id}, this chain is {self.chain_id}")
        try:
            signer_address = address_from_public_key(bytes.fromhex(tx.public_key))
        except ValueError as e:
            raise InvalidSignature(f"Malformed public key on transaction from {tx.sender}") from e
        if signer_address != tx.sender:
            raise InvalidSignature(f"Public key does not belong to sender {tx.sender}")
        if not verify_payload(tx.public_key, tx.unsigned(), tx.signature):
            raise InvalidSignature(f"Invalid signature on transaction from {tx.sender}")

        expected_nonce = self.get_nonce(tx.sender)
        if tx.nonce != expected_nonce:
            raise NonceError(tx.sender, expected_nonce, tx.nonce)
        if tx.gas_limit > self.block_gas_limit:
            raise ChainError(f"Transaction gas limit {tx.gas_limit} exceeds block gas limit {self.block_gas_limit}")
        if tx.gas_limit < GasCosts.TX_BASE:
            raise ChainError(f"Transaction gas limit {tx.gas_limit} is below the intrinsic cost {GasCosts.TX_BASE}")

        required = tx.value + tx.gas_limit * tx.gas_price
        available = self.get_balance(tx.sender)
        if available < required:
            raise InsufficientFunds(tx.sender, required, available)

    def _describe(self, tx: Transaction) -> Tuple[Optional[str], Optional[str]]:
        """(contract name, function name) for gas reporting."""
        if tx.is_deployment:
            return tx.contract, None
        target = self.state.peek(tx.to) if tx.to else None
        if target is None or not target.is_contract:
            return None, tx.function or None
        return target.contract, (tx.function.split("(")[0] if tx.function else "receive")

    def _execute(self, tx: Transaction) -> Tuple[Receipt, Block]:
        timestamp = self._next_timestamp()
        context = ExecutionContext(
            caller=tx.sender,
            origin=tx.sender,
            value=tx.value,
            timestamp=timestamp,
            block_height=len(self.blocks),
            gas_limit=tx.gas_limit,
            gas_price=tx.gas_price,
            chain_id=self.chain_id,
        )
        contract_name, function = self._describe(tx)
        receipt = Receipt(
            tx_hash=tx.hash,
            block_number=len(self.blocks),
            sender=tx.sender,
            to=tx.to,
            status=True,
            contract_name=contract_name,
            function=function,
        )

        checkpoint = self.state.copy()
        meter = GasMeter(tx.gas_limit)
        logs: List[ContractEvent] = []
        self.state.get(tx.sender).nonce += 1
        try:
            meter.consume(GasCosts.TX_BASE + GasCosts.for_calldata(tx.args), "intrinsic")
            if tx.is_deployment:
                receipt.contract_address = self._create(tx, context, meter, logs)
            elif tx.function:
                receipt.return_value, _ = self._invoke(context, tx.to, tx.function, tx.args, meter, logs, 0)
            elif self._is_contract(tx.to):
                self._invoke(context, tx.to, "receive", [], meter, logs, 0)
            else:
                self._move_value(tx.sender, tx.to, tx.value)
        except Revert as e:
            self.state = checkpoint
            self.state.get(tx.sender).nonce += 1
            meter.refunded = 0
            receipt.status = False
            receipt.revert_reason = e.reason
            logs = []
        except Exception:
            self.state = checkpoint
            raise

        receipt.gas_used = meter.finalize()
        self.state.get(tx.sender).balance -= receipt.gas_used * tx.gas_price
        receipt.logs = logs
        if receipt.status and receipt.contract_address:
            self.deployments[tx.contract] = receipt.contract_address

        self.transactions[receipt.tx_hash] = tx
        block = self._mine([receipt], timestamp)
        return receipt, block

    def _create(self, tx: Transaction, context: ExecutionContext, meter: GasMeter, logs: List[ContractEvent]) -> str:
        meter.consume(GasCosts.TX_CREATE, "create")
        cls = get_contract_class(tx.contract)
        if tx.value and not cls.PAYABLE_CONSTRUCTOR:
            raise Revert(f"non-payable constructor was called with value {tx.value}")
        args = cls.coerce_constructor_args(tx.args)

        address = contract_address(tx.sender, tx.nonce)
        account = self.state.get(address)
        if account.is_contract:
            raise Revert(f"contract address collision at {address}")
        account.contract = cls.__name__
        self._move_value(tx.sender, address, tx.value)

        frame = CallFrame(self, context, address, meter, logs)
        cls(address, Storage(account.storage, meter), frame).constructor(*args)
        return address

    def _invoke(
        self,
        context: ExecutionContext,
        to: str,
        function: str,
        args: List[Any],
        meter: GasMeter,
        logs: List[ContractEvent],
        depth: int,
    ) -> Tuple[Any, FunctionABI]:
        if depth > MAX_CALL_DEPTH:
            raise Revert("max call depth exceeded")
        account = self.state.peek(to)
        if account is None or not account.is_contract:
            raise Revert("function call to a non-contract account")
        account = self.state.get(to)

        cls = get_contract_class(account.contract)
        fn_abi = cls.resolve(function, len(args))
        if context.value and not fn_abi.payable:
            raise Revert(f"non-payable function was called with value {context.value}")
        call_args = fn_abi.coerce_args(args)
        self._move_value(context.caller, account.address, context.value)

        frame = CallFrame(self, context, account.address, meter, logs, depth)
        instance = cls(account.address, Storage(account.storage, meter), frame)
        return getattr(instance, fn_abi.attr)(*call_args), fn_abi

    def _move_value(self, source: str, destination: str, amount: int) -> None:
        if not amount:
            return
        src = self.state.get(source)
        if src.balance < amount:
            raise Revert("sender doesn't have enough funds to send tx")
        src.balance -= amount
        self.state.get(destination).balance += amount

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    @property
    def block_number(self) -> int:
        return len(self.blocks) - 1

    @property
    def latest_block(self) -> Block:
        return self.blocks[-1]

    def get_block(self, number: int) -> Block:
        if not 0 <= number < len(self.blocks):
            raise ChainError(f"Block {number} does not exist")
        return self.blocks[number]

    def state_root(self) -> str:
        return "0x" + self.state.root()

    def increase_time(self, seconds: int) -> None:
        """Shift the timestamp of subsequent blocks forward."""
        if seconds < 0:
            raise ValueError("Cannot move time backwards")
        self._time_offset += seconds

    def mine(self) -> Block:
        """Mine an empty block."""
        block = self._mine([], self._next_timestamp())
        self.bus.publish(BlockMined(block=block))
        return block

    def _next_timestamp(self) -> int:
        epoch = os.environ.get("SOURCE_DATE_EPOCH")
        now = (int(epoch) if epoch else int(time.time())) + self._time_offset
        if self.blocks:
            now = max(now, self.blocks[-1].timestamp + 1)
        return now

    def _mine(self, receipts: List[Receipt], timestamp: int) -> Block:
        number = len(self.blocks)
        block = Block(
            number=number,
            parent_hash=self.blocks[-1].hash if self.blocks else ZERO_HASH,
            timestamp=timestamp,
            tx_hashes=[r.tx_hash for r in receipts],
            state_root=self.state_root(),
            gas_used=sum(r.gas_used for r in receipts),
        ).seal()
        for receipt in receipts:
            receipt.block_number = number
            for event in receipt.logs:
                event.block_number = number
                event.tx_hash = receipt.tx_hash
            self.receipts[receipt.tx_hash] = receipt
        self.blocks.append(block)
        return block

    def _publish(self, receipt: Receipt, block: Block) -> None:
        for event in receipt.logs:
            self.bus.publish(event)
        self.bus.publish(TransactionMined(receipt=receipt))
        self.bus.publish(BlockMined(block=block))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        return self.receipts.get(tx_hash.lower())

    def get_transaction(self, tx_hash: str) -> Optional[Transaction]:
        return self.transactions.get(tx_hash.lower())

    def get_logs(
        self,
        address: Optional[AddressLike] = None,
        event: Union[None, str, Type[ContractEvent]] = None,
        from_block: int = 0,
        to_block: Optional[int] = None,
    ) -> List[ContractEvent]:
        """Committed logs in block order."""
        emitter = _address_of(address) if address is not None else None
        name = event if event is None or isinstance(event, str) else event.__name__
        last = self.block_number if to_block is None else to_block

        found: List[ContractEvent] = []
        for block in self.blocks[from_block:last + 1]:
            for tx_hash in block.tx_hashes:
                for entry in self.receipts[tx_hash].logs:
                    if emitter is not None and entry.address != emitter:
                        continue
                    if name is not None and entry.event_type != name:
                        continue
                    found.append(entry)
        return found

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> int:
        """Take a snapshot; returns its id (`evm_snapshot`)."""
        snapshot_id = self._next_snapshot_id
        self._next_snapshot_id += 1
        self._snapshots[snapshot_id] = _Snapshot(
            state=self.state.copy(),
            blocks=list(self.blocks),
            receipts=dict(self.receipts),
            transactions=dict(self.transactions),
            deployments=dict(self.deployments),
            time_offset=self._time_offset,
        )
        return snapshot_id

    def revert(self, snapshot_id: int) -> bool:
        """
        Restore a snapshot (`evm_revert`).

        The snapshot is consumed, together with every snapshot taken after it.
        Returns False if the id is unknown or already used.
        """
        snap = self._snapshots.get(snapshot_id)
        if snap is None:
            return False
        self.state = snap.state
        self.blocks = snap.blocks
        self.receipts = snap.receipts
        self.transactions = snap.transactions
        self.deployments = snap.deployments
        self._time_offset = snap.time_offset
        for sid in [s for s in self._snapshots if s >= snapshot_id]:
            del self._snapshots[sid]
        log.debug("reverted to snapshot", snapshot_id=snapshot_id, block_number=self.block_number)
        return True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": STATE_FORMAT,
            "chain_id": self.chain_id,
            "gas_price": self.gas_price,
            "block_gas_limit": self.block_gas_limit,
            "time_offset": self._time_offset,
            "signers": [s.address for s in self.signers],
            "accounts": self.state.to_dict(),
            "blocks": [b.to_dict() for b in self.blocks],
            "transactions": [tx.to_dict() for tx in self.transactions.values()],
            "receipts": [r.to_dict() for r in self.receipts.values()],
            "deployments": dict(self.deployments),
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        config: Optional[ChainConfig] = None,
        mnemonic: Optional[str] = None,
    ) -> "Chain":
        errors = validate_state(data)
        if errors:
            raise ChainError("Invalid chain state:\n  " + "\n  ".join(errors))

        # event classes register on import
        import puzzlenft.contracts  # noqa: F401

        chain = cls(
            config,
            mnemonic=mnemonic,
            chain_id=data["chain_id"],
            account_count=len(data["signers"]),
            gas_price=data["gas_price"],
            block_gas_limit=data["block_gas_limit"],
            genesis=False,
        )
        if [s.address for s in chain.signers] != data["signers"]:
            raise ChainError("Chain state was created with a different mnemonic")

        chain.state = WorldState.from_dict(data["accounts"])
        chain.blocks = [Block.from_dict(b) for b in data["blocks"]]
        chain.transactions = {t["hash"]: Transaction.from_dict(t) for t in data["transactions"]}
        chain.receipts = {r["tx_hash"]: Receipt.from_dict(r) for r in data["receipts"]}
        chain.deployments = dict(data.get("deployments", {}))
        chain._time_offset = data.get("time_offset", 0)
        return chain

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
        tmp.replace(path)
        log.debug("chain state saved", path=str(path), block_number=self.block_number)
        return path

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        config: Optional[ChainConfig] = None,
        mnemonic: Optional[str] = None,
    ) -> "Chain":
        path = Path(path)
        if not path.exists():
            raise ChainError(f"Chain state file not found: {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ChainError(f"Chain state file is not valid JSON: {path}: {e}") from e
        chain = cls.from_dict(data, config, mnemonic)
        log.debug("chain state loaded", path=str(path), block_number=chain.block_number)
        return chain


# =============================================================================
# STATE FILE SCHEMA
# =============================================================================

_STATE_VALIDATOR: Optional[Draft202012Validator] = None


def state_validator() -> Draft202012Validator:
    global _STATE_VALIDATOR
    if _STATE_VALIDATOR is None:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        _STATE_VALIDATOR = Draft202012Validator(schema)
    return _STATE_VALIDATOR


def validate_state(data: Any) -> List[str]:
    """Schema errors for a persisted chain state, as `path: message` strings."""
    errors = []
    for e in sorted(state_validator().iter_errors(data), key=str):
        errors.append(f"{list(e.absolute_path)}: {e.message}")
    return errors
