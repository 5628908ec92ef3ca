"""
usdm/core/crypto.py

Ed25519 keys and account addresses.

Key contracts:
    public_key_hex          : @property → 64-char lowercase hex
    address                 : @property → "usdm" + 40 lowercase hex chars
    sign(data)              : bytes → base64url str, no padding
    verify_detached(...)    : @staticmethod, verifies with ONLY a pubkey hex string

Address derivation (locked):
    address = ADDRESS_PREFIX + SHA-256(raw_public_key)[:20].hex()

Oracle sources, burn requesters and the journal signer are all identified
by addresses derived this way. is_valid_address() is the only format check.
"""

import base64
import hashlib
import re
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
)


ADDRESS_PREFIX = "usdm"
_ADDRESS_BYTES = 20

_ADDRESS_RE = re.compile(
    rf"^{ADDRESS_PREFIX}[0-9a-f]{{{_ADDRESS_BYTES * 2}}}$"
)


def address_from_public_key(public_key_hex: str) -> str:
    """
    Derive the account address for a 64-char Ed25519 public key hex.
    Raises ValueError if the key is not 32 bytes of valid hex.
    """
    raw = bytes.fromhex(public_key_hex)
    if len(raw) != 32:
        raise ValueError(f"Ed25519 public key must be 32 bytes, got {len(raw)}")
    digest = hashlib.sha256(raw).digest()[:_ADDRESS_BYTES]
    return ADDRESS_PREFIX + digest.hex()


def module_address(module_name: str) -> str:
    """Deterministic address for a protocol-owned module account."""
    digest = hashlib.sha256(f"module/{module_name}".encode()).digest()[:_ADDRESS_BYTES]
    return ADDRESS_PREFIX + digest.hex()


def is_valid_address(address) -> bool:
    """True iff address is a well-formed account address string."""
    return isinstance(address, str) and bool(_ADDRESS_RE.match(address))


class Ed25519KeyManager:
    """
    Ed25519 key manager for oracle sources, account holders and the
    journal signer.

    Public surface:
        Ed25519KeyManager.generate()                        → new random key
        Ed25519KeyManager.verify_detached(data, sig, hex)   → @staticmethod

        key.public_key_hex          (@property) → 64-char lowercase hex
        key.address                 (@property) → account address
        key.sign(data: bytes)                   → base64url str (no padding)
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key:    Ed25519PrivateKey = private_key
        self._public_key:     Ed25519PublicKey  = private_key.public_key()
        self._public_key_hex: str = (
            self._public_key
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
            .hex()
        )
        self._address: str = address_from_public_key(self._public_key_hex)

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        """Generate a new random Ed25519 key pair."""
        return cls(Ed25519PrivateKey.generate())

    # ── Identity ──────────────────────────────────────────────

    @property
    def public_key_hex(self) -> str:
        """64-character lowercase hex of the raw Ed25519 public key."""
        return self._public_key_hex

    @property
    def address(self) -> str:
        """Account address derived from the public key."""
        return self._address

    # ── Signing ───────────────────────────────────────────────

    def sign(self, data: bytes) -> str:
        """
        Sign data with Ed25519. Returns base64url string, no '=' padding.
        Caller is responsible for canonicalization.
        """
        raw_sig = self._private_key.sign(data)
        return base64.urlsafe_b64encode(raw_sig).rstrip(b"=").decode("ascii")

    @staticmethod
    def verify_detached(
        data:           bytes,
        signature_b64:  Optional[str],
        public_key_hex: str,
    ) -> bool:
        """
        Verify an Ed25519 signature using ONLY a public key hex string.

        Returns:
            True if the signature is valid over data with the given key.
            False for ANY failure: wrong key, bad encoding, wrong length,
            missing or corrupted signature. Never raises.
        """
        try:
            if not signature_b64:
                return False
            if not isinstance(public_key_hex, str) or len(public_key_hex) != 64:
                return False

            pub = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))

            # Re-add base64url padding if stripped
            padding = 4 - len(signature_b64) % 4
            raw_sig = base64.urlsafe_b64decode(signature_b64 + "=" * (padding % 4))

            if len(raw_sig) != 64:
                return False

            pub.verify(raw_sig, data)
            return True

        except Exception:
            return False

    def __repr__(self) -> str:
        return f"Ed25519KeyManager(address={self._address})"
