"""
Puzzle Chain Contract Model

Contracts are Python classes whose externally callable functions are
declared with ABI signatures:

    @register_contract
    class Counter(Contract):
        CONSTRUCTOR = ("uint256",)

        def constructor(self, start):
            self.storage.store("count", start, 0)

        @external("increment(uint256)")
        def increment(self, by):
            require(by > 0, "Nothing to add")
            self.storage.store("count", self.count() + by, 0)

        @view("count()")
        def count(self):
            return self.storage.load("count", 0)

Only declared functions are reachable from transactions and calls. Arguments
are checked and normalized against the declared ABI types before the function
body runs (addresses are lowercased, integers range-checked).

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
)

from puzzlenft.chain.hardening import Revert, UnknownContract, ValidationError, Validators
from puzzlenft.chain.state import Storage

if TYPE_CHECKING:
    from puzzlenft.chain.events import ContractEvent
    from puzzlenft.chain.runtime import CallFrame


UNKNOWN_SELECTOR = "function selector was not recognized and there's no fallback function"

_SIGNATURE_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\(([^()]*)\)$")


def require(condition: Any, reason: str = "") -> None:
    """Revert the current call with `reason` unless `condition` holds."""
    if not condition:
        raise Revert(reason)


# =============================================================================
# ABI
# =============================================================================

@dataclass(frozen=True)
class FunctionABI:
    """One externally callable function signature."""
    name: str
    inputs: Tuple[str, ...]
    attr: str
    mutability: str = "nonpayable"  # view | nonpayable | payable

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def is_view(self) -> bool:
        return self.mutability == "view"

    @property
    def payable(self) -> bool:
        return self.mutability == "payable"

    def coerce_args(self, args: Sequence[Any]) -> List[Any]:
        """Check and normalize call arguments against the declared types."""
        if len(args) != len(self.inputs):
            raise ValidationError(
                self.signature,
                f"expected {len(self.inputs)} argument(s), got {len(args)}",
                list(args),
            )
        return [coerce_arg(abi_type, value, f"{self.name}[{i}]")
                for i, (abi_type, value) in enumerate(zip(self.inputs, args))]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "signature": self.signature,
            "inputs": list(self.inputs),
            "stateMutability": self.mutability,
        }


def coerce_arg(abi_type: str, value: Any, field_name: str) -> Any:
    """Normalize a single argument for `abi_type`."""
    if abi_type == "address":
        # signers and contract handles stand in for their address
        value = getattr(value, "address", value)
        return Validators.validate_address(value, field_name).unwrap()
    if abi_type.startswith("uint"):
        bits = int(abi_type[4:] or 256)
        return Validators.validate_uint(value, field_name, bits).unwrap()
    if abi_type == "bool":
        if not isinstance(value, bool):
            raise ValidationError(field_name, f"Expected bool, got {type(value).__name__}", value)
        return value
    if abi_type == "string":
        return Validators.validate_string(value, field_name).unwrap()
    if abi_type.startswith("bytes"):
        if isinstance(value, str):
            hex_str = value[2:] if value.startswith("0x") else value
            try:
                value = bytes.fromhex(hex_str)
            except ValueError as e:
                raise ValidationError(field_name, "Invalid hex string", value) from e
        if not isinstance(value, (bytes, bytearray)):
            raise ValidationError(field_name, f"Expected bytes, got {type(value).__name__}", value)
        size = abi_type[5:]
        if size and len(value) != int(size):
            raise ValidationError(field_name, f"Expected {size} bytes, got {len(value)}", value)
        return bytes(value)
    raise ValidationError(field_name, f"Unsupported ABI type: {abi_type}", value)


def parse_signature(signature: str) -> Tuple[str, Tuple[str, ...]]:
    match = _SIGNATURE_RE.match(signature.replace(" ", ""))
    if not match:
        raise ValueError(f"Invalid function signature: {signature!r}")
    name, types = match.groups()
    return name, tuple(t for t in types.split(",") if t)


def _abi_decorator(signature: str, mutability: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    name, inputs = parse_signature(signature)

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        declared = list(getattr(fn, "__abi__", []))
        declared.append((name, inputs, mutability))
        fn.__abi__ = declared  # type: ignore[attr-defined]
        return fn
    return decorator


def external(signature: str, payable: bool = False) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Declare a state-changing external function."""
    return _abi_decorator(signature, "payable" if payable else "nonpayable")


def payable(signature: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Declare an external function that accepts value."""
    return _abi_decorator(signature, "payable")


def view(signature: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Declare a read-only external function."""
    return _abi_decorator(signature, "view")


# =============================================================================
# CONTRACT BASE
# =============================================================================

@dataclass(frozen=True)
class Message:
    sender: str
    value: int


@dataclass(frozen=True)
class BlockInfo:
    number: int
    timestamp: int
    chain_id: int


class Contract:
    """
    Base class for contracts.

    An instance is created per call, bound to the account's storage and to
    the runtime call frame; all persistent state lives in `storage`.
    """

    ABI: ClassVar[Dict[str, FunctionABI]] = {}
    CONSTRUCTOR: ClassVar[Tuple[str, ...]] = ()
    PAYABLE_CONSTRUCTOR: ClassVar[bool] = False

    def __init__(self, address: str, storage: Storage, frame: "CallFrame"):
        self.address = address
        self.storage = storage
        self._frame = frame

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        abi: Dict[str, FunctionABI] = {}
        for klass in reversed(cls.__mro__):
            for attr, member in vars(klass).items():
                for name, inputs, mutability in getattr(member, "__abi__", []):
                    fn_abi = FunctionABI(name=name, inputs=inputs, attr=attr, mutability=mutability)
                    abi[fn_abi.signature] = fn_abi
        cls.ABI = abi

    # ------------------------------------------------------------------
    # ABI lookup
    # ------------------------------------------------------------------

    @classmethod
    def functions_named(cls, name: str) -> List[FunctionABI]:
        return [f for f in cls.ABI.values() if f.name == name]

    @classmethod
    def resolve(cls, function: str, arg_count: Optional[int] = None) -> FunctionABI:
        """
        Resolve a full signature (`safeTransferFrom(address,address,uint256)`)
        or a bare name; overloaded names are disambiguated by argument count.
        """
        if "(" in function:
            fn_abi = cls.ABI.get(function.replace(" ", ""))
            if fn_abi is None:
                raise Revert(UNKNOWN_SELECTOR)
            return fn_abi

        candidates = cls.functions_named(function)
        if arg_count is not None and len(candidates) > 1:
            candidates = [f for f in candidates if len(f.inputs) == arg_count]
        if len(candidates) != 1:
            raise Revert(UNKNOWN_SELECTOR)
        return candidates[0]

    @classmethod
    def abi_json(cls) -> List[Dict[str, Any]]:
        return [cls.ABI[sig].to_dict() for sig in sorted(cls.ABI)]

    @classmethod
    def coerce_constructor_args(cls, args: Sequence[Any]) -> List[Any]:
        """Trailing constructor arguments may be omitted."""
        if len(args) > len(cls.CONSTRUCTOR):
            raise ValidationError(
                f"{cls.__name__}.constructor",
                f"expected at most {len(cls.CONSTRUCTOR)} argument(s), got {len(args)}",
                list(args),
            )
        return [coerce_arg(abi_type, value, f"constructor[{i}]")
                for i, (abi_type, value) in enumerate(zip(cls.CONSTRUCTOR, args))]

    # ------------------------------------------------------------------
    # Execution environment
    # ------------------------------------------------------------------

    def constructor(self, *args: Any) -> None:
        """Runs once, at deployment."""

    @property
    def msg(self) -> Message:
        ctx = self._frame.context
        return Message(sender=ctx.caller, value=ctx.value)

    @property
    def block(self) -> BlockInfo:
        ctx = self._frame.context
        return BlockInfo(number=ctx.block_height, timestamp=ctx.timestamp, chain_id=ctx.chain_id)

    @property
    def this(self) -> str:
        return self.address

    @property
    def balance(self) -> int:
        return self._frame.balance_of(self.address)

    def is_contract(self, address: str) -> bool:
        return self._frame.is_contract(address)

    def emit(self, event: "ContractEvent") -> None:
        self._frame.emit(event)

    def transfer_value(self, to: str, amount: int) -> None:
        """Send `amount` wei from this contract; reverts on failure."""
        self._frame.transfer_value(to, amount)

    def call_contract(self, address: str, function: str, *args: Any, value: int = 0) -> Any:
        """Call another contract with this contract as `msg.sender`."""
        return self._frame.call(address, function, list(args), value)


# =============================================================================
# REGISTRY
# =============================================================================

CONTRACT_REGISTRY: Dict[str, Type[Contract]] = {}


def register_contract(cls: Type[Contract]) -> Type[Contract]:
    """Make `cls` deployable by name."""
    CONTRACT_REGISTRY[cls.__name__] = cls
    return cls


def get_contract_class(name: str) -> Type[Contract]:
    if name not in CONTRACT_REGISTRY:
        # contracts register themselves on import
        import puzzlenft.contracts  # noqa: F401
    try:
        return CONTRACT_REGISTRY[name]
    except KeyError:
        raise UnknownContract(f"No contract named {name!r}") from None
