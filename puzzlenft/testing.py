"""
Test helpers for contracts on the puzzle chain.

    def deploy(chain):
        token = get_contract_factory("Puzzle", chain).deploy()
        return token

    token = load_fixture(deploy, chain)       # deploys once, then reverts

    with reverts("Puzzle does not exist"):
        token.findPuzzlePieces(9, 1)

    assert_emitted(token.addPuzzle("test", 1, 0), "NewPuzzleAdded", owner, 1)
"""

from __future__ import annotations

import weakref
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from puzzlenft.chain.events import ContractEvent
from puzzlenft.chain.hardening import ContractRevert
from puzzlenft.chain.runtime import Chain, Receipt

_FIXTURES: "weakref.WeakKeyDictionary[Chain, Dict[Callable[..., Any], Tuple[int, Any]]]" = weakref.WeakKeyDictionary()


def load_fixture(fixture: Callable[[Chain], Any], chain: Chain) -> Any:
    """
    Run `fixture(chain)` once per chain and snapshot the result.

    Later calls revert the chain to that snapshot (taking a fresh one, since a
    snapshot can only be reverted to once) and return the cached result.
    """
    cache = _FIXTURES.setdefault(chain, {})
    cached = cache.get(fixture)
    if cached is not None:
        snapshot_id, result = cached
        if chain.revert(snapshot_id):
            cache[fixture] = (chain.snapshot(), result)
            return result

    result = fixture(chain)
    cache[fixture] = (chain.snapshot(), result)
    return result


def clear_fixtures() -> None:
    _FIXTURES.clear()


class RevertCatcher:
    """What `reverts()` caught."""

    def __init__(self) -> None:
        self.error: Optional[ContractRevert] = None

    @property
    def reason(self) -> Optional[str]:
        return self.error.reason if self.error else None

    @property
    def receipt(self) -> Optional[Receipt]:
        return self.error.receipt if self.error else None


@contextmanager
def reverts(reason: Optional[str] = None) -> Iterator[RevertCatcher]:
    """Assert that the block raises `ContractRevert`, with `reason` if given."""
    caught = RevertCatcher()
    try:
        yield caught
    except ContractRevert as e:
        caught.error = e
        if reason is not None and e.reason != reason:
            raise AssertionError(
                f"Expected transaction to be reverted with reason '{reason}', "
                f"but it reverted with reason '{e.reason}'"
            ) from e
        return
    raise AssertionError(
        f"Expected transaction to be reverted with reason '{reason}', but it didn't revert"
        if reason is not None
        else "Expected transaction to be reverted, but it didn't revert"
    )


def _normalize(value: Any) -> Any:
    value = getattr(value, "address", value)
    if isinstance(value, str) and value.startswith("0x"):
        return value.lower()
    return value


def find_events(
    receipt: Receipt,
    event_name: str,
    contract: Any = None,
) -> List[ContractEvent]:
    address = getattr(contract, "address", contract)
    return receipt.events(event_name, address=address)


def assert_emitted(receipt: Receipt, event_name: str, *args: Any, contract: Any = None) -> ContractEvent:
    """
    Assert that `receipt` carries an `event_name` log with exactly `args`.

    With no `args` any log of that name matches. Signers and contract handles
    may be passed in place of addresses. Returns the matching event.
    """
    events = find_events(receipt, event_name, contract)
    if not events:
        raise AssertionError(f'Expected event "{event_name}" to be emitted, but it wasn\'t')
    if not args:
        return events[0]

    expected = tuple(_normalize(a) for a in args)
    for event in events:
        if tuple(_normalize(a) for a in event.args) == expected:
            return event
    raise AssertionError(
        f'Expected "{event_name}" event with args {list(expected)}, '
        f"emitted with {[list(e.args) for e in events]}"
    )


def assert_not_emitted(receipt: Receipt, event_name: str, contract: Any = None) -> None:
    if find_events(receipt, event_name, contract):
        raise AssertionError(f'Expected event "{event_name}" not to be emitted')
