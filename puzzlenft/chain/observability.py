"""
Puzzle Chain Observability

Structured logging for the chain runtime, the contracts and the tooling
around them. Every record carries the layer it came from and, while a
transaction is executing, that transaction's hash and block number.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │        Runtime / Contracts / Deploy / CLI               │
    │  log.info("mined", gas_used=n)   with tx_context(...)   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                     ChainLogger                          │
    │   layer tag, tx hash / block context, structured data    │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │          StructuredHandler (json) │ text formatter       │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import traceback
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional

ROOT_LOGGER = "puzzlenft"

# Context variables for transaction-scoped data
tx_hash_var: contextvars.ContextVar[str] = contextvars.ContextVar("tx_hash", default="")
block_number_var: contextvars.ContextVar[Optional[int]] = contextvars.ContextVar(
    "block_number", default=None
)


class ChainLayer(Enum):
    """Layers of the project, for categorization."""
    CHAIN = "chain"
    CONTRACT = "contract"
    GAS = "gas"
    DEPLOY = "deploy"
    CLI = "cli"
    CONFIG = "config"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    tx_hash: str = ""
    block_number: Optional[int] = None
    layer: str = ""
    operation: str = ""
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


@contextmanager
def tx_context(tx_hash: str, block_number: Optional[int] = None) -> Iterator[None]:
    """Bind a transaction hash and block number to log records in this scope."""
    hash_token = tx_hash_var.set(tx_hash)
    block_token = block_number_var.set(block_number)
    try:
        yield
    finally:
        tx_hash_var.reset(hash_token)
        block_number_var.reset(block_token)


def _build_event(record: logging.LogRecord) -> LogEvent:
    event = LogEvent(
        timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        level=record.levelname.lower(),
        logger=record.name,
        message=record.getMessage(),
        tx_hash=tx_hash_var.get(),
        block_number=block_number_var.get(),
        layer=getattr(record, "layer", ""),
        operation=getattr(record, "operation", ""),
        error_code=getattr(record, "error_code", ""),
        context=getattr(record, "context", {}),
    )
    if record.exc_info:
        event.exception = "".join(traceback.format_exception(*record.exc_info))
    return event


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON lines."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.stream.write(_build_event(record).to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextFormatter(logging.Formatter):
    """Single-line human readable format with the structured context appended."""

    def format(self, record: logging.LogRecord) -> str:
        event = _build_event(record)
        parts = [event.timestamp, event.level.upper().ljust(7), f"[{event.layer or record.name}]", event.message]
        if event.tx_hash:
            parts.append(f"tx={event.tx_hash[:18]}")
        if event.context:
            parts.append(" ".join(f"{k}={v}" for k, v in event.context.items()))
        line = " ".join(parts)
        if event.exception:
            line += "\n" + event.exception.rstrip()
        return line


def configure_logging(level: str = "warning", fmt: str = "text", stream: Any = None) -> logging.Logger:
    """
    Install a single handler on the `puzzlenft` root logger.

    Safe to call repeatedly; the previous handler is replaced.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper()))
    for handler in list(root.handlers):
        if getattr(handler, "_puzzlenft", False):
            root.removeHandler(handler)

    if fmt == "json":
        handler: logging.Handler = StructuredHandler(stream)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(TextFormatter())
    handler._puzzlenft = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    return root


def configure_from_config() -> logging.Logger:
    """Configure logging from `observability.*` settings."""
    from puzzlenft.chain.config import get_config

    obs = get_config().observability
    return configure_logging(obs.log_level.get(), obs.log_format.get())


class ChainLogger:
    """
    Structured logger for project components.

    Records go through the standard `logging` hierarchy under
    `puzzlenft.<layer>.<name>` and carry the layer, the operation and any
    keyword context.
    """

    def __init__(self, name: str, layer: ChainLayer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"{ROOT_LOGGER}.{layer.value}.{name}")

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)


def get_logger(name: str, layer: ChainLayer) -> ChainLogger:
    return ChainLogger(name, layer)
