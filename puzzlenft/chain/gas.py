"""
Puzzle Chain Gas Accounting

Gas is metered per transaction. The runtime charges the intrinsic cost up
front; storage reads and writes, emitted logs and value transfers are charged
as contract code touches them. A `GasReporter` aggregates the gas used by
mined transactions per contract method, in the shape of a gas-reporter table.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from puzzlenft.chain.hardening import OutOfGas


# =============================================================================
# GAS COSTS
# =============================================================================

class GasCosts:
    """Gas costs for chain operations."""

    # Intrinsic
    TX_BASE = 21000
    TX_CREATE = 32000
    CALLDATA_WORD = 16

    # Storage
    SLOAD = 2100
    SSTORE_SET = 20000
    SSTORE_RESET = 2900
    SSTORE_CLEAR_REFUND = 4800

    # Logs
    LOG = 375
    LOG_TOPIC = 375
    LOG_DATA_BYTE = 8

    # Calls
    CALL = 700
    CALL_VALUE = 9000

    @classmethod
    def for_store(cls, had_value: bool, has_value: bool) -> Tuple[int, int]:
        """Return (cost, refund) for a storage write."""
        if not had_value and has_value:
            return cls.SSTORE_SET, 0
        if had_value and not has_value:
            return cls.SSTORE_RESET, cls.SSTORE_CLEAR_REFUND
        return cls.SSTORE_RESET, 0

    @classmethod
    def for_log(cls, topics: int, data_bytes: int) -> int:
        return cls.LOG + cls.LOG_TOPIC * topics + cls.LOG_DATA_BYTE * data_bytes

    @classmethod
    def for_calldata(cls, args: Iterable[Any]) -> int:
        return cls.CALLDATA_WORD * 32 * len(list(args))


# =============================================================================
# GAS METER
# =============================================================================

class GasMeter:
    """Per-transaction gas counter with a hard limit."""

    # Refunds are capped at a fifth of the gas used (EIP-3529)
    MAX_REFUND_QUOTIENT = 5

    def __init__(self, limit: int):
        self.limit = limit
        self.used = 0
        self.refunded = 0

    @property
    def remaining(self) -> int:
        return self.limit - self.used

    def consume(self, amount: int, reason: str = "") -> None:
        if amount < 0:
            raise ValueError(f"Gas amount must be non-negative, got {amount} ({reason})")
        if self.used + amount > self.limit:
            needed = self.used + amount
            self.used = self.limit
            raise OutOfGas(self.limit, needed)
        self.used += amount

    def refund(self, amount: int) -> None:
        self.refunded += amount

    def finalize(self) -> int:
        """Gas charged to the sender after refunds."""
        return self.used - min(self.refunded, self.used // self.MAX_REFUND_QUOTIENT)


# =============================================================================
# GAS REPORTER
# =============================================================================

@dataclass
class MethodGasStats:
    """Gas statistics for one contract method."""
    contract: str
    method: str
    samples: List[int] = field(default_factory=list)

    def record(self, gas_used: int) -> None:
        self.samples.append(gas_used)

    @property
    def calls(self) -> int:
        return len(self.samples)

    @property
    def min(self) -> int:
        return min(self.samples) if self.samples else 0

    @property
    def max(self) -> int:
        return max(self.samples) if self.samples else 0

    @property
    def avg(self) -> int:
        return sum(self.samples) // len(self.samples) if self.samples else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract": self.contract,
            "method": self.method,
            "calls": self.calls,
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
        }


class GasReporter:
    """
    Aggregates gas used by successful transactions per (contract, method).

    Example:
        reporter = GasReporter()
        reporter.attach(chain)
        ...
        print(reporter.render())
    """

    DEPLOYMENT = "<deployment>"

    def __init__(self):
        self._stats: Dict[Tuple[str, str], MethodGasStats] = {}

    def attach(self, chain: Any) -> None:
        """Record every transaction mined on `chain` from now on."""
        from puzzlenft.chain.events import TransactionMined

        @chain.bus.subscribe(TransactionMined)
        def _on_mined(event: TransactionMined) -> None:
            self.record(event.receipt)

    def record(self, receipt: Any) -> None:
        """Record a mined receipt; reverted transactions are not counted."""
        if not receipt.status or not receipt.contract_name:
            return
        method = receipt.function or self.DEPLOYMENT
        key = (receipt.contract_name, method)
        stats = self._stats.get(key)
        if stats is None:
            stats = self._stats[key] = MethodGasStats(contract=receipt.contract_name, method=method)
        stats.record(receipt.gas_used)

    def record_all(self, receipts: Iterable[Any]) -> None:
        for receipt in receipts:
            self.record(receipt)

    def get(self, contract: str, method: str) -> Optional[MethodGasStats]:
        return self._stats.get((contract, method))

    def rows(self) -> List[Dict[str, Any]]:
        return [self._stats[k].to_dict() for k in sorted(self._stats)]

    def render(self) -> str:
        """Render the report as an ASCII table."""
        rows = self.rows()
        if not rows:
            return "No gas usage recorded"

        headers = ["contract", "method", "calls", "min", "max", "avg"]
        cells = [[str(row[h]) for h in headers] for row in rows]
        widths = [max(len(h), max(len(r[i]) for r in cells)) for i, h in enumerate(headers)]

        lines = [" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))]
        lines.append("-+-".join("-" * w for w in widths))
        for row in cells:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
