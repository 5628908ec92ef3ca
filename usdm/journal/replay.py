"""
usdm/journal/replay.py

Journal Replayer.

Two independent checks over a transition journal:

    verify()           — integrity. Schema, sequence, causal chain and
                         Ed25519 signature of every entry.

    reexecute(genesis) — determinism. Builds a fresh StablecoinApp from
                         the genesis config, feeds it every journaled
                         transition at its journaled block time, and
                         compares each burn result with the recorded one.

Loading rules:
    1. Load    → TransitionEnvelope.from_dict(line)  — no other deserialization
    2. Schema  → env.validate_schema()               — fail fast
    3. Order   → sorted by sequence

This file contains no chain hash computation and no canonicalization;
both live on TransitionEnvelope.
"""

import json
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from usdm.core.exceptions import UsdmError
from usdm.core.time import parse_block_time
from usdm.journal.envelope import RecordType, TransitionEnvelope


# ─────────────────────────────────────────────────────────────
# Result / Summary Types
# ─────────────────────────────────────────────────────────────

@dataclass
class ChainViolation:
    """A single detected violation in the journal."""
    at_sequence:    int
    record_type:    str
    violation_type: str   # "sequence_gap" | "chain_break" | "invalid_signature"
                          # | "foreign_signer" | "genesis_mismatch"
                          # | "reexecution_error" | "result_mismatch"
    detail:         str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "at_sequence":    self.at_sequence,
            "record_type":    self.record_type,
            "violation_type": self.violation_type,
            "detail":         self.detail,
        }


@dataclass
class ReplaySummary:
    """Aggregate result of a verification or re-execution pass."""
    total_entries:      int
    chain_valid:        bool
    violations:         List[ChainViolation]
    valid_signatures:   int
    invalid_signatures: int
    record_type_counts: Dict[str, int]
    signers_seen:       List[str]
    journal_version:    Optional[str]
    first_block_time:   Optional[str]
    last_block_time:    Optional[str]
    reexecuted:         int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries":      self.total_entries,
            "chain_valid":        self.chain_valid,
            "valid_signatures":   self.valid_signatures,
            "invalid_signatures": self.invalid_signatures,
            "record_type_counts": self.record_type_counts,
            "signers_seen":       self.signers_seen,
            "journal_version":    self.journal_version,
            "first_block_time":   self.first_block_time,
            "last_block_time":    self.last_block_time,
            "reexecuted":         self.reexecuted,
            "violations":         [v.to_dict() for v in self.violations],
        }


# ─────────────────────────────────────────────────────────────
# Replayer
# ─────────────────────────────────────────────────────────────

class JournalReplayer:
    """
    Usage:
        replayer = JournalReplayer()
        replayer.load(Path("journal.jsonl"))
        summary = replayer.verify()
        summary = replayer.reexecute(GenesisConfig.from_yaml("genesis.yaml"))

    expected_signer, when given, is the public key hex every entry must be
    signed by. Without it any valid Ed25519 signer is accepted and listed
    in signers_seen.
    """

    def __init__(self, expected_signer: Optional[str] = None):
        self.envelopes:     List[TransitionEnvelope] = []
        self.violations:    List[ChainViolation]     = []
        self.expected_signer = expected_signer
        self._journal_path: Optional[Path]           = None

    # ── Load ──────────────────────────────────────────────────

    def load(self, journal_path: Union[str, Path]) -> None:
        """
        Load a journal JSONL file.

        Raises:
            FileNotFoundError — journal file does not exist
            ValueError        — malformed JSON, missing field or schema violation
        """
        journal_path       = Path(journal_path)
        self._journal_path = journal_path
        self.envelopes     = []
        self.violations    = []

        if not journal_path.exists():
            raise FileNotFoundError(f"journal not found: {journal_path}")

        with open(journal_path, "r", encoding="utf-8") as f:
            for line_num, raw in enumerate(f, 1):
                raw = raw.strip()
                if not raw:
                    continue

                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise ValueError(f"malformed JSON at journal line {line_num}: {e}") from e

                try:
                    env = TransitionEnvelope.from_dict(data)
                except (KeyError, TypeError) as e:
                    raise ValueError(f"missing journal field at line {line_num}: {e}") from e

                schema = env.validate_schema()
                if not schema:
                    raise ValueError(
                        f"journal schema violation at line {line_num}: {schema.errors}"
                    )

                self.envelopes.append(env)

        self.envelopes.sort(key=lambda e: e.sequence)

    def load_entries(self, envelopes: List[TransitionEnvelope]) -> None:
        """Use an in-memory entry list, e.g. TransitionJournal.entries."""
        self._journal_path = None
        self.envelopes     = sorted(envelopes, key=lambda e: e.sequence)
        self.violations    = []

    # ── Verify ────────────────────────────────────────────────

    def verify(self) -> ReplaySummary:
        """
        Integrity pass over every loaded entry.

        Per entry, in order:
            1. verify_sequence(i)      — gap check
            2. verify_chain(prev)      — causal_hash integrity
            3. verify_signature()      — Ed25519 over the signing dict
            4. signer check            — only with expected_signer
        """
        self.violations = []

        if not self.envelopes:
            return self._summary(valid_sigs=0, invalid_sigs=0)

        valid_sigs   = 0
        invalid_sigs = 0

        for i, env in enumerate(self.envelopes):
            prev = self.envelopes[i - 1] if i > 0 else None

            if not env.verify_sequence(i):
                self._violation(env, "sequence_gap", f"expected sequence {i}, got {env.sequence}")

            if not env.verify_chain(prev):
                expected = env.expected_causal_hash_from(prev)
                self._violation(
                    env, "chain_break",
                    f"causal_hash mismatch: expected ...{expected[-12:]}, "
                    f"got ...{env.causal_hash[-12:]}",
                )

            if env.verify_signature():
                valid_sigs += 1
            else:
                invalid_sigs += 1
                self._violation(
                    env, "invalid_signature",
                    f"signature invalid (signer: {env.signer_public_key[:16]}...)",
                )

            if self.expected_signer and env.signer_public_key != self.expected_signer:
                self._violation(
                    env, "foreign_signer",
                    f"signed by {env.signer_public_key[:16]}..., "
                    f"expected {self.expected_signer[:16]}...",
                )

        return self._summary(valid_sigs=valid_sigs, invalid_sigs=invalid_sigs)

    # ── Re-execute ────────────────────────────────────────────

    def reexecute(self, genesis) -> ReplaySummary:
        """
        verify(), then rebuild state from genesis and re-apply every entry.

        A transition that the rebuilt app rejects is a reexecution_error.
        A burn whose recomputed payout differs from the journaled one is a
        result_mismatch. Re-execution keeps going after a violation so the
        report lists every divergence.

        Args:
            genesis: GenesisConfig the journal was started from
        """
        from usdm.app import StablecoinApp

        summary    = self.verify()
        violations = list(summary.violations)
        app        = StablecoinApp.from_genesis(genesis)
        applied    = 0

        for env in self.envelopes:
            try:
                app.clock.set(parse_block_time(env.block_time))
                if env.record_type == RecordType.GENESIS:
                    mismatch = _check_genesis(genesis, env)
                else:
                    mismatch = _HANDLERS[env.record_type](app, env)
            except (UsdmError, KeyError, TypeError, ValueError) as exc:
                violations.append(ChainViolation(
                    at_sequence=    env.sequence,
                    record_type=    env.record_type,
                    violation_type= "reexecution_error",
                    detail=         f"{type(exc).__name__}: {exc}",
                ))
                continue

            applied += 1
            if mismatch:
                violations.append(ChainViolation(
                    at_sequence=    env.sequence,
                    record_type=    env.record_type,
                    violation_type= (
                        "genesis_mismatch" if env.record_type == RecordType.GENESIS
                        else "result_mismatch"
                    ),
                    detail=         mismatch,
                ))

        self.violations       = violations
        summary.violations    = violations
        summary.chain_valid   = len(violations) == 0
        summary.reexecuted    = applied
        return summary

    # ── Internal ──────────────────────────────────────────────

    def _violation(self, env: TransitionEnvelope, violation_type: str, detail: str) -> None:
        self.violations.append(ChainViolation(
            at_sequence=    env.sequence,
            record_type=    env.record_type,
            violation_type= violation_type,
            detail=         detail,
        ))

    def _summary(self, valid_sigs: int, invalid_sigs: int) -> ReplaySummary:
        counts: Dict[str, int] = defaultdict(int)
        for env in self.envelopes:
            counts[env.record_type] += 1

        first = self.envelopes[0] if self.envelopes else None
        last  = self.envelopes[-1] if self.envelopes else None

        return ReplaySummary(
            total_entries=      len(self.envelopes),
            chain_valid=        len(self.violations) == 0,
            violations=         list(self.violations),
            valid_signatures=   valid_sigs,
            invalid_signatures= invalid_sigs,
            record_type_counts= dict(counts),
            signers_seen=       sorted({e.signer_public_key for e in self.envelopes}),
            journal_version=    first.journal_version if first else None,
            first_block_time=   first.block_time if first else None,
            last_block_time=    last.block_time if last else None,
        )


# ── Per-record re-execution ───────────────────────────────────
# Each returns None when the rebuilt state agrees with the entry, or a
# description of the divergence.

def _check_genesis(genesis, env: TransitionEnvelope) -> Optional[str]:
    if env.payload != genesis.to_dict():
        return "journaled genesis differs from the supplied genesis config"
    return None


def _apply_price_posted(app, env: TransitionEnvelope) -> Optional[str]:
    from usdm.pricefeed.ingress import SignedPricePost

    post = env.payload.get("post")
    sub  = env.payload["submission"]
    if post:
        accepted = app.submit_price(SignedPricePost.from_dict(post))
    else:
        accepted = app.submit_price(sub["market_id"], sub["source"], sub["price"], sub["expiry"])
    if accepted.to_dict() != sub:
        return f"price post from {sub['source']}: journaled {sub}, accepted {accepted.to_dict()}"
    return None


def _apply_oracle_added(app, env: TransitionEnvelope) -> Optional[str]:
    app.add_oracle(env.payload["market_id"], env.payload["source"])
    return None


def _apply_oracle_removed(app, env: TransitionEnvelope) -> Optional[str]:
    app.remove_oracle(env.payload["market_id"], env.payload["source"])
    return None


def _apply_ratio_set(app, env: TransitionEnvelope) -> Optional[str]:
    app.set_collateral_ratio(env.payload["ratio"])
    return None


def _apply_account_funded(app, env: TransitionEnvelope) -> Optional[str]:
    app.fund_account(env.payload["account"], env.payload["coins"])
    return None


def _apply_reserve_funded(app, env: TransitionEnvelope) -> Optional[str]:
    app.fund_reserve(env.payload["coins"])
    return None


def _apply_burn(app, env: TransitionEnvelope) -> Optional[str]:
    from usdm.core.models import BurnResult

    recorded = BurnResult.from_dict(env.payload)
    result   = app.burn_stable(env.payload["requester"], env.payload["stable_amount"])
    if result != recorded:
        return (
            f"burn by {env.payload['requester']}: journaled {recorded.to_dict()}, "
            f"recomputed {result.to_dict()}"
        )
    return None


_HANDLERS: Dict[str, Callable[[Any, TransitionEnvelope], Optional[str]]] = {
    RecordType.PRICE_POSTED:   _apply_price_posted,
    RecordType.ORACLE_ADDED:   _apply_oracle_added,
    RecordType.ORACLE_REMOVED: _apply_oracle_removed,
    RecordType.RATIO_SET:      _apply_ratio_set,
    RecordType.ACCOUNT_FUNDED: _apply_account_funded,
    RecordType.RESERVE_FUNDED: _apply_reserve_funded,
    RecordType.BURN:           _apply_burn,
}
