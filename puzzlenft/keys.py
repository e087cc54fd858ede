"""puzzlenft.keys

Deterministic development keys and transaction signing for the puzzle chain.

Profile / invariants:
- Signer keys are Ed25519, derived from `(mnemonic, index)` so every fresh chain
  built from the same mnemonic hands out the same accounts in the same order.
- Addresses are `0x` + the last 20 bytes of sha3-256 over the raw public key.
- Signing input is the canonical JSON bytes of the unsigned transaction. The
  canonical form MUST be byte-for-byte stable; transaction hashes and the
  persisted chain file both depend on it.
"""

from __future__ import annotations

import base64
import hashlib
import json
from datetime import date, datetime, timezone
from typing import Any, Dict, Union

from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey


ZERO_ADDRESS = "0x" + "0" * 40


def _coerce_json_types(obj: Any) -> Any:
    """Coerce Python objects into strict JSON types.

    - bytes become `0x`-prefixed hex (calldata, interface ids)
    - datetimes become RFC3339 strings
    - floats are rejected; wei amounts are integers and must stay exact
    """
    if obj is None:
        return None
    if isinstance(obj, (str, bool, int)):
        return obj
    if isinstance(obj, float):
        raise ValueError("Floats are not allowed in canonical JSON. Use integers (wei) or strings.")
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, (datetime, date)):
        if isinstance(obj, datetime):
            if obj.tzinfo is None:
                obj = obj.replace(tzinfo=timezone.utc)
            return obj.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
        return obj.isoformat()
    if isinstance(obj, (list, tuple)):
        return [_coerce_json_types(x) for x in obj]
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            out[str(k)] = _coerce_json_types(v)
        return out
    return str(obj)


def jcs_canonicalize(obj: Any) -> bytes:
    """Canonicalize JSON using a JCS-like subset (sorted keys, no whitespace, UTF-8)."""
    clean = _coerce_json_types(obj)
    return json.dumps(clean, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sha256_hex(data: Union[str, bytes]) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    pad = "=" * ((4 - len(s) % 4) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("ascii"))


# ---------------------------------------------------------------------------
# Keys and addresses
# ---------------------------------------------------------------------------


def derive_private_key(mnemonic: str, index: int) -> Ed25519PrivateKey:
    """Derive the development key for account `index` of `mnemonic`."""

    if index < 0:
        raise ValueError(f"Account index must be non-negative, got {index}")
    seed = hashlib.sha256(f"{mnemonic}/m/44'/60'/0'/0/{index}".encode("utf-8")).digest()
    return Ed25519PrivateKey.from_private_bytes(seed)


def public_key_bytes(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def address_from_public_key(pub: bytes) -> str:
    if len(pub) != 32:
        raise ValueError(f"Ed25519 public key must be 32 bytes, got {len(pub)}")
    return "0x" + hashlib.sha3_256(pub).hexdigest()[-40:]


def contract_address(deployer: str, nonce: int) -> str:
    """Address of the contract created by `deployer` at `nonce` (CREATE-style)."""

    digest = hashlib.sha3_256(jcs_canonicalize([deployer.lower(), nonce])).hexdigest()
    return "0x" + digest[-40:]


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def sign_payload(private_key: Ed25519PrivateKey, payload: Dict[str, Any]) -> str:
    """Sign the canonical bytes of `payload`; returns a base64url signature."""

    return b64url_encode(private_key.sign(jcs_canonicalize(payload)))


def verify_payload(public_key_hex: str, payload: Dict[str, Any], signature: str) -> bool:
    try:
        raw = bytes.fromhex(public_key_hex)
        sig = b64url_decode(signature)
    except ValueError:
        return False
    if len(raw) != 32 or len(sig) != 64:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(raw).verify(sig, jcs_canonicalize(payload))
    except _CryptoInvalidSignature:
        return False
    return True
