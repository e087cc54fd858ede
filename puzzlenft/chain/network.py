"""
The default network.

`get_chain()` hands out one process-wide `Chain`, built from the `chain.*`
configuration. When `chain.state_file` names an existing file the chain is
loaded from it, so separate CLI invocations share one chain.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

from puzzlenft.chain.config import get_config
from puzzlenft.chain.gas import GasReporter
from puzzlenft.chain.observability import ChainLayer, get_logger
from puzzlenft.chain.runtime import Chain

log = get_logger("network", ChainLayer.CHAIN)

_lock = threading.Lock()
_chain: Optional[Chain] = None
_gas_reporter: Optional[GasReporter] = None


def get_chain() -> Chain:
    """Get the default chain, creating or loading it on first use."""
    global _chain
    with _lock:
        if _chain is None:
            state_file = get_config().chain.state_file.get()
            if state_file and Path(state_file).exists():
                _chain = Chain.load(state_file)
                log.info("chain loaded", path=state_file, block_number=_chain.block_number)
            else:
                _chain = Chain()
            if get_config().observability.gas_report.get():
                get_gas_reporter().attach(_chain)
        return _chain


def use_chain(chain: Chain) -> Chain:
    """Make `chain` the default network."""
    global _chain
    with _lock:
        _chain = chain
    return chain


def reset_chain() -> None:
    """Forget the default chain; the next `get_chain()` starts over."""
    global _chain, _gas_reporter
    with _lock:
        _chain = None
        _gas_reporter = None


def save_chain(path: Optional[str] = None) -> Optional[Path]:
    """Persist the default chain to `path` or `chain.state_file`, if either is set."""
    target = path or get_config().chain.state_file.get()
    if not target:
        return None
    return get_chain().save(target)


def get_gas_reporter() -> GasReporter:
    global _gas_reporter
    if _gas_reporter is None:
        _gas_reporter = GasReporter()
    return _gas_reporter
