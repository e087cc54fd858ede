"""
Contracts deployable on the puzzle chain.

Importing this package registers every contract class by name.
"""

from puzzlenft.contracts.erc721 import (
    ERC721,
    ERC721_RECEIVED,
    ERC721Enumerable,
    ERC721Holder,
    Ownable,
)
from puzzlenft.contracts.puzzle import Puzzle, PuzzleInfo

__all__ = [
    "ERC721",
    "ERC721_RECEIVED",
    "ERC721Enumerable",
    "ERC721Holder",
    "Ownable",
    "Puzzle",
    "PuzzleInfo",
]
