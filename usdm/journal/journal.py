"""
usdm/journal/journal.py

Transition Journal.

append() MUST, in this exact order:
  1. Build the envelope via TransitionEnvelope.create(..., prev=last)
  2. Sign it
  3. Assert chain invariants  — causal_hash, sequence
  4. Append to the JSONL file  — when a path is configured
  5. Advance internal state   — only after confirmed write
  6. Return the signed envelope

Only accepted transitions are journaled. The bank transaction has already
committed by the time append() runs, so a JournalError here reports a lost
audit record, not a lost state change.
"""

import json
import warnings
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from usdm.core.crypto import Ed25519KeyManager
from usdm.core.exceptions import JournalError
from usdm.journal.envelope import (
    GENESIS_HASH,
    JOURNAL_VERSION,
    TransitionEnvelope,
)


class TransitionJournal:
    """
    Append-only, hash-chained, signed record of state transitions.

    Kept in memory; mirrored to a JSONL file when path is given. State
    survives restart by reading the last line of an existing file.
    """

    def __init__(
        self,
        key_manager: Ed25519KeyManager,
        path:        Optional[Union[str, Path]] = None,
    ) -> None:
        self.key_manager = key_manager
        self.entries:    List[TransitionEnvelope] = []

        self._sequence:      int                          = 0
        self._last_envelope: Optional[TransitionEnvelope] = None
        self._path:          Optional[Path]               = Path(path) if path else None

        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._restore_state()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # ── Public API ────────────────────────────────────────────

    def append(
        self,
        record_type: str,
        payload:     Dict[str, Any],
        block_time:  datetime,
    ) -> TransitionEnvelope:
        """
        Append one signed envelope.

        Raises:
            ValueError   — unknown record_type or malformed payload
            JournalError — chain invariant violated or file write failed
        """
        envelope = TransitionEnvelope.create(
            record_type=       record_type,
            signer_public_key= self.key_manager.public_key_hex,
            sequence=          self._sequence,
            payload=           payload,
            block_time=        block_time,
            prev=              self._last_envelope,
        ).sign(self.key_manager)

        self._assert_chain_invariants(envelope)

        if self._path is not None:
            self._append_to_file(envelope)

        self.entries.append(envelope)
        self._sequence      += 1
        self._last_envelope  = envelope
        return envelope

    def get_entries_by_type(self, record_type: str) -> List[TransitionEnvelope]:
        return [e for e in self.entries if e.record_type == record_type]

    def get_stats(self) -> Dict[str, Any]:
        """Current journal state snapshot."""
        return {
            "signer":           self.key_manager.address,
            "next_sequence":    self._sequence,
            "last_causal_hash": (
                self._last_envelope.causal_hash
                if self._last_envelope else GENESIS_HASH
            ),
            "journal_file":     str(self._path) if self._path else None,
            "journal_version":  JOURNAL_VERSION,
        }

    # ── Internal ──────────────────────────────────────────────

    def _restore_state(self) -> None:
        """
        Restore sequence and last envelope from an existing file.
        A corrupted last line leaves state at genesis and issues a
        RuntimeWarning; verify the file with JournalReplayer before
        appending to it.
        """
        if not self._path.exists():
            return

        last_line = None
        with open(self._path, "r", encoding="utf-8") as f:
            for line in f:
                stripped = line.strip()
                if stripped:
                    last_line = stripped

        if not last_line:
            return

        try:
            env    = TransitionEnvelope.from_dict(json.loads(last_line))
            schema = env.validate_schema()
            if not schema:
                raise ValueError(f"schema violation in last journal line: {schema.errors}")
            self._sequence      = env.sequence + 1
            self._last_envelope = env
        except (KeyError, ValueError) as exc:
            warnings.warn(
                f"TransitionJournal: could not restore state from {self._path}: {exc}. "
                "Last line may be corrupted. Verify the journal before appending.",
                RuntimeWarning,
                stacklevel=3,
            )

    def _assert_chain_invariants(self, envelope: TransitionEnvelope) -> None:
        if not envelope.verify_sequence(self._sequence):
            raise JournalError(
                "sequence mismatch",
                {"expected": self._sequence, "got": envelope.sequence},
            )
        if not envelope.verify_chain(self._last_envelope):
            expected = envelope.expected_causal_hash_from(self._last_envelope)
            raise JournalError(
                "causal_hash mismatch",
                {"expected": f"...{expected[-12:]}", "got": f"...{envelope.causal_hash[-12:]}"},
            )

    def _append_to_file(self, envelope: TransitionEnvelope) -> None:
        try:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(json.dumps(envelope.to_dict()) + "\n")
        except OSError as exc:
            raise JournalError(f"journal write failed: {exc}") from exc
