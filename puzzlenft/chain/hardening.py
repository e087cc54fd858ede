"""
Puzzle Chain Validation and Hardening

Error types, input validators and hashing utilities shared by the chain
runtime, the contract model and the CLI.

Error model:
    - Contract code signals failure with `Revert` (usually via `require`).
      The runtime rolls back state and surfaces it to callers as
      `ContractRevert`, carrying the reason string and the failed receipt.
    - Transactions that can never be mined (unknown sender, bad nonce,
      insufficient funds, bad signature) raise before any state is touched.
    - Malformed inputs at the edges (CLI, config, persisted state) raise
      `ValidationError` with the offending field.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional


# =============================================================================
# ERROR TYPES
# =============================================================================

class ValidationError(Exception):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class SecurityViolation(Exception):
    """Security constraint violated."""
    pass


class InvalidSignature(SecurityViolation):
    """Transaction signature does not match the sender."""
    pass


class Revert(Exception):
    """Raised inside contract code to abort the current call."""

    def __init__(self, reason: str = ""):
        self.reason = reason
        super().__init__(reason)


class OutOfGas(Revert):
    """Gas limit exhausted during execution."""

    def __init__(self, limit: int, needed: int):
        self.limit = limit
        self.needed = needed
        super().__init__("Transaction ran out of gas")


class ChainError(Exception):
    """Base class for errors surfaced by the chain runtime."""
    pass


class ContractRevert(ChainError):
    """A transaction or call reverted."""

    def __init__(self, reason: str, receipt: Any = None):
        self.reason = reason
        self.receipt = receipt
        if reason:
            message = f"VM Exception while processing transaction: reverted with reason string '{reason}'"
        else:
            message = "VM Exception while processing transaction: reverted without a reason string"
        super().__init__(message)


class InsufficientFunds(ChainError):
    """Sender cannot cover value plus maximum gas fee."""

    def __init__(self, address: str, required: int, available: int):
        self.address = address
        self.required = required
        self.available = available
        super().__init__(
            f"sender doesn't have enough funds to send tx. "
            f"The max upfront cost is: {required} and the sender's account only has: {available}"
        )


class NonceError(ChainError):
    """Transaction nonce does not match the sender's account nonce."""

    def __init__(self, address: str, expected: int, got: int):
        self.address = address
        self.expected = expected
        self.got = got
        relation = "too low" if got < expected else "too high"
        super().__init__(f"Nonce {relation}. Expected nonce to be {expected} but got {got}.")


class UnknownContract(ChainError):
    """No contract registered under the requested name or address."""
    pass


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def unwrap(self) -> Any:
        """Return the sanitized value or raise the first error."""
        if not self.is_valid:
            raise self.errors[0]
        return self.sanitized_value

    @classmethod
    def success(cls, sanitized_value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    HEX40_PATTERN = re.compile(r'^0x[a-f0-9]{40}$')
    UINT256_MAX = (1 << 256) - 1
    MAX_STRING_LENGTH = 4096

    @classmethod
    def validate_address(cls, value: Any, field_name: str = "address") -> ValidationResult:
        """Validate an account address (0x + 40 hex); returns it lowercased."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])

        lower = value.strip().lower()
        if not cls.HEX40_PATTERN.match(lower):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be a valid address (0x + 40 hex)", value)
            ])

        return ValidationResult.success(lower)

    @classmethod
    def validate_uint(cls, value: Any, field_name: str = "value", bits: int = 256) -> ValidationResult:
        """Validate an unsigned integer that fits in `bits` bits."""
        # bool is an int subclass; it is never a valid uint argument
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])
        if value < 0:
            return ValidationResult.failure([
                ValidationError(field_name, "Must be non-negative", value)
            ])
        if value > (1 << bits) - 1:
            return ValidationResult.failure([
                ValidationError(field_name, f"Exceeds uint{bits} range", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_string(
        cls,
        value: Any,
        field_name: str,
        max_length: Optional[int] = None,
    ) -> ValidationResult:
        """Validate a string argument (may be empty, no null bytes)."""
        max_length = max_length or cls.MAX_STRING_LENGTH
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])
        if "\x00" in value:
            return ValidationResult.failure([
                ValidationError(field_name, "Contains null bytes", value)
            ])
        if len(value) > max_length:
            return ValidationResult.failure([
                ValidationError(field_name, f"Too long (max {max_length} chars)", value)
            ])
        return ValidationResult.success(value)


# =============================================================================
# CRYPTOGRAPHIC UTILITIES
# =============================================================================

class CryptoUtils:
    """Merkle roots over hex digests, used for state roots."""

    @staticmethod
    def merkle_root(leaves: List[str]) -> str:
        """
        Compute Merkle root with proper handling of odd leaf counts.

        Uses the convention of duplicating the last leaf when odd.
        """
        current_level = list(leaves)

        if not current_level:
            return "0" * 64

        while len(current_level) > 1:
            if len(current_level) % 2 == 1:
                current_level.append(current_level[-1])

            next_level = []
            for i in range(0, len(current_level), 2):
                combined = current_level[i] + current_level[i + 1]
                next_level.append(hashlib.sha256(combined.encode()).hexdigest())

            current_level = next_level

        return current_level[0]
