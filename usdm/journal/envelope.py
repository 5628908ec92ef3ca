"""
usdm/journal/envelope.py

Transition journal entry.

═══════════════════════════════════════════════════════════════════
JOURNAL CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1 — Signing
    bytes_signed = canonicalize(env.to_signing_dict())
    algorithm    = Ed25519
    encoding     = base64url, no padding

CONTRACT 2 — Chain
    causal_hash  = SHA-256(canonicalize(prev.to_chain_dict()))
    first_entry  = GENESIS_HASH ("0" * 64)
    payload      IN chain dict  → payload mutation breaks forward chain

CONTRACT 3 — Time
    block_time is the host block time of the transition, in wire format.
    It is never the wall clock: replaying the journal must reproduce it.

CONTRACT 4 — Vocabulary
    record_type must be a RecordType constant.
    enforced at create() → ValueError
    validated at from_dict() time via validate_schema()

CONTRACT 5 — Version
    journal_version travels inside every envelope and all envelopes in a
    journal share it.
═══════════════════════════════════════════════════════════════════
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from usdm.core.canonical import canonicalize
from usdm.core.crypto import Ed25519KeyManager
from usdm.core.time import format_block_time, is_block_time


JOURNAL_VERSION = "1.0"
GENESIS_HASH    = "0" * 64

_PUBLIC_KEY_HEX_LENGTH = 64


class RecordType:
    """
    The ONLY valid values for TransitionEnvelope.record_type.
    One constant per accepted state transition.
    """
    GENESIS        = "genesis"
    PRICE_POSTED   = "price_posted"
    ORACLE_ADDED   = "oracle_added"
    ORACLE_REMOVED = "oracle_removed"
    RATIO_SET      = "ratio_set"
    ACCOUNT_FUNDED = "account_funded"
    RESERVE_FUNDED = "reserve_funded"
    BURN           = "burn"


_VALID_RECORD_TYPES: Set[str] = {
    RecordType.GENESIS,
    RecordType.PRICE_POSTED,
    RecordType.ORACLE_ADDED,
    RecordType.ORACLE_REMOVED,
    RecordType.RATIO_SET,
    RecordType.ACCOUNT_FUNDED,
    RecordType.RESERVE_FUNDED,
    RecordType.BURN,
}


@dataclass
class SchemaValidationResult:
    """
    Result of TransitionEnvelope.validate_schema().
    bool(result) is True iff valid.
    """
    valid:  bool
    errors: List[str]

    def __bool__(self) -> bool:
        return self.valid


@dataclass
class TransitionEnvelope:
    """One signed, chained record of an accepted state transition."""

    journal_version:   str
    sequence:          int
    record_type:       str
    block_time:        str
    signer_public_key: str
    causal_hash:       str
    payload:           Dict[str, Any]
    signature:         Optional[str] = None

    # ── Constructor ───────────────────────────────────────────

    @classmethod
    def create(
        cls,
        record_type:       str,
        signer_public_key: str,
        sequence:          int,
        payload:           Dict[str, Any],
        block_time:        datetime,
        prev:              Optional["TransitionEnvelope"] = None,
    ) -> "TransitionEnvelope":
        """
        Create an unsigned envelope with the correct causal_hash.
        Call .sign(key_manager) immediately after.
        """
        if record_type not in _VALID_RECORD_TYPES:
            raise ValueError(
                f"Invalid record_type '{record_type}'. "
                f"Valid: {sorted(_VALID_RECORD_TYPES)}"
            )
        if not isinstance(payload, dict):
            raise TypeError(f"payload must be dict, got {type(payload).__name__}")
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(f"sequence must be non-negative int, got {sequence!r}")
        if (
            not isinstance(signer_public_key, str)
            or len(signer_public_key) != _PUBLIC_KEY_HEX_LENGTH
        ):
            raise ValueError(
                f"signer_public_key must be {_PUBLIC_KEY_HEX_LENGTH}-char hex string"
            )

        return cls(
            journal_version=   JOURNAL_VERSION,
            sequence=          sequence,
            record_type=       record_type,
            block_time=        format_block_time(block_time),
            signer_public_key= signer_public_key,
            causal_hash=       cls._compute_causal_hash(prev),
            payload=           payload,
            signature=         None,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransitionEnvelope":
        """
        Deserialize from a JSONL line dict. Trusts persisted data;
        callers MUST call validate_schema().
        """
        return cls(
            journal_version=   data["journal_version"],
            sequence=          data["sequence"],
            record_type=       data["record_type"],
            block_time=        data["block_time"],
            signer_public_key= data["signer_public_key"],
            causal_hash=       data["causal_hash"],
            payload=           data.get("payload", {}),
            signature=         data.get("signature"),
        )

    # ── Schema Validation ─────────────────────────────────────

    def validate_schema(self) -> SchemaValidationResult:
        errors: List[str] = []

        if self.journal_version != JOURNAL_VERSION:
            errors.append(
                f"journal_version: expected '{JOURNAL_VERSION}', got '{self.journal_version}'"
            )
        if self.record_type not in _VALID_RECORD_TYPES:
            errors.append(f"record_type '{self.record_type}' not in valid set")
        if not isinstance(self.sequence, int) or self.sequence < 0:
            errors.append(f"sequence must be non-negative int, got {self.sequence!r}")
        if not is_block_time(self.block_time):
            errors.append(
                f"block_time {self.block_time!r} does not match YYYY-MM-DDTHH:MM:SS.mmmZ"
            )
        if not _is_hex(self.signer_public_key, _PUBLIC_KEY_HEX_LENGTH):
            errors.append("signer_public_key must be 64 hex chars")
        if not _is_hex(self.causal_hash, 64):
            errors.append("causal_hash must be 64 hex chars")
        if not isinstance(self.payload, dict):
            errors.append(f"payload must be dict, got {type(self.payload).__name__}")

        return SchemaValidationResult(valid=len(errors) == 0, errors=errors)

    # ── Canonical Contracts ───────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        return {
            "block_time":        self.block_time,
            "causal_hash":       self.causal_hash,
            "journal_version":   self.journal_version,
            "payload":           self.payload,
            "record_type":       self.record_type,
            "sequence":          self.sequence,
            "signer_public_key": self.signer_public_key,
        }

    def to_chain_dict(self) -> Dict[str, Any]:
        """Same fields as to_signing_dict(); kept separate so each contract reads on its own."""
        return self.to_signing_dict()

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_signing_dict().copy()
        d["signature"] = self.signature
        return d

    def canonical_bytes_for_signing(self) -> bytes:
        return canonicalize(self.to_signing_dict())

    # ── Chain Hash ────────────────────────────────────────────

    @staticmethod
    def _compute_causal_hash(prev: Optional["TransitionEnvelope"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return hashlib.sha256(canonicalize(prev.to_chain_dict())).hexdigest()

    def expected_causal_hash_from(self, prev: Optional["TransitionEnvelope"]) -> str:
        return TransitionEnvelope._compute_causal_hash(prev)

    # ── Signing / Verification ────────────────────────────────

    def sign(self, key_manager: Ed25519KeyManager) -> "TransitionEnvelope":
        """Sign in place. Returns self for chaining."""
        self.signature = key_manager.sign(self.canonical_bytes_for_signing())
        return self

    def verify_signature(self, override_public_key_hex: Optional[str] = None) -> bool:
        """False for unsigned, tampered or wrongly-keyed envelopes. Never raises."""
        if not self.signature:
            return False
        return Ed25519KeyManager.verify_detached(
            self.canonical_bytes_for_signing(),
            self.signature,
            override_public_key_hex or self.signer_public_key,
        )

    def verify_chain(self, prev: Optional["TransitionEnvelope"]) -> bool:
        return self.causal_hash == self.expected_causal_hash_from(prev)

    def verify_sequence(self, expected: int) -> bool:
        return self.sequence == expected

    def is_signed(self) -> bool:
        return bool(self.signature)


def _is_hex(value, length: int) -> bool:
    if not isinstance(value, str) or len(value) != length:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True
