"""
Contract factories and handles.

    factory = get_contract_factory("Puzzle")
    token = factory.deploy("ipfs://base/")
    token.deployed()

    token.addPuzzle("test", 100, 0)          # state-changing: returns a Receipt
    token.balanceOf(owner)                   # view: returns the value
    token.connect(alice).findPuzzlePieces(0, 1, value=price)
    token["safeTransferFrom(address,address,uint256)"](owner, alice, 0)

Handles talk to a `Chain`; by default the shared one from `get_chain()`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type

from puzzlenft.chain.contract import Contract, FunctionABI, get_contract_class
from puzzlenft.chain.events import ContractEvent
from puzzlenft.chain.hardening import ChainError, Revert, UnknownContract, ValidationError
from puzzlenft.chain.network import get_chain
from puzzlenft.chain.observability import ChainLayer, get_logger
from puzzlenft.chain.runtime import AddressLike, Chain, Receipt, Signer

log = get_logger("factory", ChainLayer.DEPLOY)


class ContractFunction:
    """A contract function bound to a handle; resolves overloads by arity."""

    def __init__(self, handle: "ContractHandle", selector: str):
        self.handle = handle
        self.selector = selector

    def resolve(self, arg_count: int) -> FunctionABI:
        try:
            return self.handle.contract_class.resolve(self.selector, arg_count)
        except Revert:
            raise ValidationError(
                self.selector,
                f"no function of {self.handle.contract_name} matches {arg_count} argument(s)",
            ) from None

    def __call__(self, *args: Any, value: int = 0, gas_limit: Optional[int] = None) -> Any:
        fn_abi = self.resolve(len(args))
        if fn_abi.is_view:
            return self.call(*args, value=value)
        return self.handle.chain.transact(
            self.handle.signer,
            self.handle.address,
            fn_abi.signature,
            args,
            value=value,
            gas_limit=gas_limit,
        )

    def call(self, *args: Any, value: int = 0) -> Any:
        """Execute without committing, even for state-changing functions."""
        fn_abi = self.resolve(len(args))
        return self.handle.chain.call(
            self.handle.address,
            fn_abi.signature,
            args,
            sender=self.handle.signer,
            value=value,
        )

    def __repr__(self) -> str:
        return f"<ContractFunction {self.handle.contract_name}.{self.selector}>"


class ContractHandle:
    """A deployed contract, seen through one signer."""

    def __init__(
        self,
        chain: Chain,
        contract_name: str,
        address: str,
        signer: Signer,
        deploy_receipt: Optional[Receipt] = None,
    ):
        self.chain = chain
        self.contract_name = contract_name
        self.contract_class: Type[Contract] = get_contract_class(contract_name)
        self.address = address
        self.signer = signer
        self.deploy_receipt = deploy_receipt

    def __getattr__(self, name: str) -> ContractFunction:
        # only reached for names that are not regular attributes
        contract_class = self.__dict__.get("contract_class")
        if name.startswith("_") or contract_class is None or not contract_class.functions_named(name):
            raise AttributeError(f"{self.contract_name} has no function {name!r}")
        return ContractFunction(self, name)

    def __getitem__(self, signature: str) -> ContractFunction:
        if signature.replace(" ", "") not in self.contract_class.ABI:
            raise KeyError(f"{self.contract_name} has no function {signature!r}")
        return ContractFunction(self, signature.replace(" ", ""))

    def connect(self, signer: AddressLike) -> "ContractHandle":
        """The same contract, sending transactions from another signer."""
        return ContractHandle(
            self.chain,
            self.contract_name,
            self.address,
            self.chain.get_signer(signer),
            self.deploy_receipt,
        )

    def deployed(self) -> "ContractHandle":
        code = self.chain.get_code(self.address)
        if code != self.contract_name:
            raise ChainError(f"No {self.contract_name} contract at {self.address}")
        return self

    def events(self, name: Optional[str] = None, from_block: int = 0) -> List[ContractEvent]:
        return self.chain.get_logs(address=self.address, event=name, from_block=from_block)

    @property
    def abi(self) -> List[Dict[str, Any]]:
        return self.contract_class.abi_json()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContractHandle):
            return NotImplemented
        return self.address == other.address and self.chain is other.chain

    def __hash__(self) -> int:
        return hash(self.address)

    def __repr__(self) -> str:
        return f"<{self.contract_name} at {self.address}>"


class ContractFactory:
    """Deploys and attaches to contracts of one registered class."""

    def __init__(self, contract_name: str, chain: Chain, signer: Signer):
        self.contract_class = get_contract_class(contract_name)
        self.contract_name = self.contract_class.__name__
        self.chain = chain
        self.signer = signer

    def deploy(self, *args: Any, value: int = 0, gas_limit: Optional[int] = None) -> ContractHandle:
        receipt = self.chain.deploy(self.contract_name, self.signer, args, value=value, gas_limit=gas_limit)
        log.info(
            "contract deployed",
            contract=self.contract_name,
            address=receipt.contract_address,
            gas_used=receipt.gas_used,
        )
        return ContractHandle(self.chain, self.contract_name, receipt.contract_address, self.signer, receipt)

    def attach(self, address: AddressLike) -> ContractHandle:
        address = getattr(address, "address", address)
        code = self.chain.get_code(address)
        if code != self.contract_name:
            raise UnknownContract(f"No {self.contract_name} contract at {address}")
        return ContractHandle(self.chain, self.contract_name, address.lower(), self.signer)

    def connect(self, signer: AddressLike) -> "ContractFactory":
        return ContractFactory(self.contract_name, self.chain, self.chain.get_signer(signer))

    @property
    def abi(self) -> List[Dict[str, Any]]:
        return self.contract_class.abi_json()


def get_contract_factory(
    contract_name: str,
    chain: Optional[Chain] = None,
    signer: Optional[AddressLike] = None,
) -> ContractFactory:
    """Factory for `contract_name`, signing with the first account by default."""
    chain = chain or get_chain()
    return ContractFactory(contract_name, chain, chain.get_signer(signer if signer is not None else 0))


def get_contract_at(
    contract_name: str,
    address: AddressLike,
    chain: Optional[Chain] = None,
    signer: Optional[AddressLike] = None,
) -> ContractHandle:
    return get_contract_factory(contract_name, chain, signer).attach(address)
