"""
Event bus tests: contract events, system events and handler failures.
"""

from puzzlenft.chain.events import (
    BlockMined,
    ContractEvent,
    EventBus,
    EventHandlerError,
    TransactionMined,
)
from puzzlenft.contracts.erc721 import Transfer
from puzzlenft.contracts.puzzle import NewPuzzleAdded
from puzzlenft.testing import reverts


class TestContractEvents:
    """Tests for events published by the runtime."""

    def test_subscriber_sees_stamped_event(self, chain, setup):
        token, owner, *_ = setup
        seen = []
        chain.bus.subscribe(NewPuzzleAdded)(seen.append)

        receipt = token.addPuzzle("second", 1, 0)

        assert len(seen) == 1
        event = seen[0]
        assert event.owner == owner.address
        assert event.puzzle_id == 1
        assert event.address == token.address
        assert event.block_number == receipt.block_number
        assert event.tx_hash == receipt.tx_hash

    def test_signature(self):
        assert NewPuzzleAdded.signature() == "NewPuzzleAdded(address,uint256)"
        assert Transfer.signature() == "Transfer(address,address,uint256)"
        assert Transfer(from_="a", to="b", token_id=3).args == ("a", "b", 3)

    def test_dict_round_trip(self, setup):
        token, *_ = setup
        event = token.addPuzzle("x", 1, 0).logs[0]
        assert ContractEvent.from_dict(event.to_dict()) == event

    def test_transaction_mined_on_revert(self, chain, setup):
        token, owner, addr1, _ = setup
        mined = []
        chain.bus.subscribe(TransactionMined)(mined.append)

        with reverts("Ownable: caller is not the owner"):
            token.connect(addr1).addPuzzle("x", 1, 0)

        assert len(mined) == 1
        assert mined[0].receipt.status is False
        assert mined[0].receipt.logs == []

    def test_filter_and_priority(self, chain, setup):
        token, owner, *_ = setup
        order = []

        @chain.bus.subscribe(Transfer, priority=1, filter_func=lambda e: e.token_id == 1)
        def second_piece(event):
            order.append(("second", event.token_id))

        @chain.bus.subscribe(Transfer, priority=5)
        def every_piece(event):
            order.append(("every", event.token_id))

        token.findPuzzlePieces(0, 2)
        assert order == [("every", 0), ("every", 1), ("second", 1)]

    def test_empty_block_is_published(self, chain):
        blocks = []
        chain.bus.subscribe(BlockMined)(blocks.append)
        block = chain.mine()
        assert blocks[0].block is block


class TestEventBus:
    """Tests for the bus itself."""

    def test_handler_failure_is_reported(self):
        errors = []
        bus = EventBus(on_error=errors.append)

        @bus.subscribe(BlockMined)
        def broken(event):
            raise RuntimeError("boom")

        bus.publish(BlockMined())

        assert isinstance(errors[0], EventHandlerError)
        assert "boom" in str(errors[0])
        assert bus.metrics["error_count"] == 1

    def test_failing_handler_keeps_transaction(self, chain, setup):
        token, *_ = setup

        @chain.bus.subscribe(NewPuzzleAdded)
        def broken(event):
            raise RuntimeError("boom")

        token.addPuzzle("kept", 1, 0)
        assert token.puzzleCount() == 2

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        bus.subscribe()(seen.append)
        assert bus.unsubscribe(seen.append) is True
        bus.publish(BlockMined())
        assert seen == []
        assert bus.metrics == {
            "published_count": 1,
            "handled_count": 0,
            "error_count": 0,
            "handler_count": 0,
        }
