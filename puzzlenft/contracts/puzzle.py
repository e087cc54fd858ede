"""
Puzzle NFT

Each puzzle is split into a fixed number of pieces. Collectors find (mint)
pieces for a price; whoever holds every piece of a puzzle can finish it,
burning the pieces to mint a single finished-puzzle token.

Puzzle lifecycle:

    addPuzzle ──► ACTIVE ◄──► INACTIVE        (activatePuzzle)
                    │
                    │  findPuzzlePieces, until all pieces are minted
                    ▼
                 ALL PIECES MINTED ──► FINISHED  (finishPuzzle, by the holder
                                                  of every piece)

Pieces and finished tokens share one token id counter.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Tuple

from puzzlenft.chain.config import get_config
from puzzlenft.chain.contract import external, payable, register_contract, require, view
from puzzlenft.chain.events import ContractEvent, param
from puzzlenft.contracts.erc721 import ERC721Enumerable, Ownable, only_owner


@dataclass
class NewPuzzleAdded(ContractEvent):
    owner: str = param("address", indexed=True)
    puzzle_id: int = param("uint256")


@dataclass
class PuzzleFinished(ContractEvent):
    owner: str = param("address", indexed=True)
    puzzle_id: int = param("uint256")


@dataclass
class PuzzlePriceChanged(ContractEvent):
    puzzle_id: int = param("uint256", indexed=True)
    price: int = param("uint256")


@dataclass
class PuzzleSaleStateChanged(ContractEvent):
    puzzle_id: int = param("uint256", indexed=True)
    active: bool = param("bool")


class PuzzleInfo(NamedTuple):
    uri: str
    total_pieces: int
    price: int
    pieces_found: int
    active: bool
    finished: bool


@register_contract
class Puzzle(ERC721Enumerable, Ownable):
    """
    The puzzle collection contract.

    Constructor arguments: `(baseURI)`, optional. Token name, symbol and the
    initial per-address piece cap come from the `puzzle.*` configuration.
    """

    CONSTRUCTOR = ("string",)

    def constructor(self, base_uri: str = "") -> None:
        settings = get_config().puzzle
        self._init_erc721(settings.name.get(), settings.symbol.get())
        self._init_ownable()
        self.storage.store("baseURI", base_uri, "")
        self.storage.store("maxPiecesPerOwner", settings.max_pieces_per_owner.get(), 0)

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------

    @property
    def _puzzles(self):
        return self.storage.mapping("puzzles")

    @property
    def _puzzle_pieces(self):
        return self.storage.mapping("puzzlePieces")

    @property
    def _pieces_found(self):
        return self.storage.mapping("piecesFound", 0)

    @property
    def _token_puzzle(self):
        return self.storage.mapping("tokenPuzzle")

    @property
    def _finished_tokens(self):
        return self.storage.mapping("finishedTokens", False)

    def _puzzle(self, puzzle_id: int) -> Dict[str, Any]:
        puzzle = self._puzzles[puzzle_id]
        require(puzzle is not None, "Puzzle does not exist")
        return puzzle

    def _next_token_id(self) -> int:
        token_id = self.storage.load("nextTokenId", 0)
        self.storage.store("nextTokenId", token_id + 1, 0)
        return token_id

    def _base_uri(self) -> str:
        return self.storage.load("baseURI", "")

    # ------------------------------------------------------------------
    # Owner functions
    # ------------------------------------------------------------------

    @external("addPuzzle(string,uint256,uint256)")
    @only_owner
    def add_puzzle(self, uri: str, total_pieces: int, price: int) -> int:
        require(total_pieces > 0, "Puzzle must have at least one piece")

        puzzle_id = self.storage.load("puzzleCount", 0)
        self._puzzles[puzzle_id] = {
            "uri": uri,
            "total_pieces": total_pieces,
            "price": price,
            "pieces_found": 0,
            "active": True,
            "finished": False,
            "finished_token": None,
        }
        self.storage.store("puzzleCount", puzzle_id + 1, 0)

        self.emit(NewPuzzleAdded(owner=self.msg.sender, puzzle_id=puzzle_id))
        return puzzle_id

    @external("setPuzzlePrice(uint256,uint256)")
    @only_owner
    def set_puzzle_price(self, puzzle_id: int, price: int) -> None:
        puzzle = self._puzzle(puzzle_id)
        puzzle["price"] = price
        self._puzzles[puzzle_id] = puzzle
        self.emit(PuzzlePriceChanged(puzzle_id=puzzle_id, price=price))

    @external("activatePuzzle(uint256)")
    @external("activatePuzzle(uint256,bool)")
    @only_owner
    def activate_puzzle(self, puzzle_id: int, active: bool = True) -> None:
        puzzle = self._puzzle(puzzle_id)
        require(not puzzle["finished"], "Puzzle has been finished")
        puzzle["active"] = active
        self._puzzles[puzzle_id] = puzzle
        self.emit(PuzzleSaleStateChanged(puzzle_id=puzzle_id, active=active))

    @external("setPuzzleURI(uint256,string)")
    @only_owner
    def set_puzzle_uri(self, puzzle_id: int, uri: str) -> None:
        puzzle = self._puzzle(puzzle_id)
        puzzle["uri"] = uri
        self._puzzles[puzzle_id] = puzzle

    @external("setMaxPiecesPerOwner(uint256)")
    @only_owner
    def set_max_pieces_per_owner(self, max_pieces: int) -> None:
        require(max_pieces > 0, "Max pieces must be greater than zero")
        self.storage.store("maxPiecesPerOwner", max_pieces, 0)

    @external("setBaseURI(string)")
    @only_owner
    def set_base_uri(self, base_uri: str) -> None:
        self.storage.store("baseURI", base_uri, "")

    @external("withdraw()")
    @only_owner
    def withdraw(self) -> int:
        amount = self.balance
        self.transfer_value(self.msg.sender, amount)
        return amount

    # ------------------------------------------------------------------
    # Collector functions
    # ------------------------------------------------------------------

    @payable("findPuzzlePieces(uint256,uint256)")
    def find_puzzle_pieces(self, puzzle_id: int, count: int) -> List[int]:
        puzzle = self._puzzle(puzzle_id)
        require(not puzzle["finished"], "Puzzle has been finished")
        require(puzzle["active"], "Puzzle is not active")
        require(count > 0, "You must find at least one piece")

        max_pieces = self.max_pieces_per_owner()
        found = self._pieces_found[puzzle_id, self.msg.sender]
        require(found + count <= max_pieces, f"You cannot find more than {max_pieces} pieces")
        require(
            puzzle["pieces_found"] + count <= puzzle["total_pieces"],
            "This would exceed the total amount of pieces",
        )
        require(self.msg.value == puzzle["price"] * count, "Ether value sent is not correct")

        # Record every piece before minting; minting calls out to receivers
        first_index = puzzle["pieces_found"]
        token_ids = [self._next_token_id() for _ in range(count)]
        for offset, token_id in enumerate(token_ids):
            self._puzzle_pieces[puzzle_id, first_index + offset] = token_id
            self._token_puzzle[token_id] = puzzle_id
        puzzle["pieces_found"] += count
        self._puzzles[puzzle_id] = puzzle
        self._pieces_found[puzzle_id, self.msg.sender] = found + count

        for token_id in token_ids:
            self._safe_mint(self.msg.sender, token_id)
        return token_ids

    @external("finishPuzzle(uint256)")
    def finish_puzzle(self, puzzle_id: int) -> int:
        puzzle = self._puzzle(puzzle_id)
        require(not puzzle["finished"], "Puzzle has been finished")

        pieces = [self._puzzle_pieces[puzzle_id, i] for i in range(puzzle["pieces_found"])]
        collected = (
            len(pieces) == puzzle["total_pieces"]
            and all(self._owners[piece] == self.msg.sender for piece in pieces)
        )
        require(collected, "You have not collected all the pieces")

        token_id = self._next_token_id()
        puzzle["finished"] = True
        puzzle["finished_token"] = token_id
        self._puzzles[puzzle_id] = puzzle
        self._token_puzzle[token_id] = puzzle_id
        self._finished_tokens[token_id] = True

        for piece in pieces:
            self._burn(piece)
        self._safe_mint(self.msg.sender, token_id)

        self.emit(PuzzleFinished(owner=self.msg.sender, puzzle_id=puzzle_id))
        return token_id

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @view("puzzleCount()")
    def puzzle_count(self) -> int:
        return self.storage.load("puzzleCount", 0)

    @view("getPuzzle(uint256)")
    def get_puzzle(self, puzzle_id: int) -> PuzzleInfo:
        puzzle = self._puzzle(puzzle_id)
        return PuzzleInfo(
            uri=puzzle["uri"],
            total_pieces=puzzle["total_pieces"],
            price=puzzle["price"],
            pieces_found=puzzle["pieces_found"],
            active=puzzle["active"],
            finished=puzzle["finished"],
        )

    @view("maxPiecesPerOwner()")
    def max_pieces_per_owner(self) -> int:
        return self.storage.load("maxPiecesPerOwner", 0)

    @view("baseURI()")
    def base_uri(self) -> str:
        return self._base_uri()

    @view("piecesFound(uint256,address)")
    def pieces_found(self, puzzle_id: int, owner: str) -> int:
        self._puzzle(puzzle_id)
        return self._pieces_found[puzzle_id, owner]

    @view("puzzleOfToken(uint256)")
    def puzzle_of_token(self, token_id: int) -> Tuple[int, bool]:
        require(self._exists(token_id), "Puzzle: query for nonexistent token")
        return self._token_puzzle[token_id], self._finished_tokens[token_id]

    @view("finishedTokenOf(uint256)")
    def finished_token_of(self, puzzle_id: int) -> int:
        puzzle = self._puzzle(puzzle_id)
        require(puzzle["finished"], "Puzzle has not been finished")
        return puzzle["finished_token"]

    @view("tokenURI(uint256)")
    def token_uri(self, token_id: int) -> str:
        require(self._exists(token_id), "ERC721Metadata: URI query for nonexistent token")
        if self._finished_tokens[token_id]:
            uri = self._puzzles[self._token_puzzle[token_id]]["uri"]
            if uri:
                return uri
        return super().token_uri(token_id)
