"""
puzzle-nft: the Puzzle NFT contract with a deterministic in-process
development chain to deploy it to and test it against.

    from puzzlenft import get_contract_factory, get_chain

    owner, alice = get_chain().get_signers()[:2]
    token = get_contract_factory("Puzzle").deploy("ipfs://base/")
    token.addPuzzle("sunset", 4, 10**16)
    token.connect(alice).findPuzzlePieces(0, 2, value=2 * 10**16)
"""

__version__ = "0.2.0"

from puzzlenft.chain.factory import ContractFactory, ContractHandle, get_contract_at, get_contract_factory
from puzzlenft.chain.network import get_chain, reset_chain
from puzzlenft.chain.runtime import Chain, Receipt, Signer

__all__ = [
    "Chain",
    "ContractFactory",
    "ContractHandle",
    "Receipt",
    "Signer",
    "get_chain",
    "get_contract_at",
    "get_contract_factory",
    "reset_chain",
]
