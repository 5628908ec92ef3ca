"""
USDM Journal - signed, hash-chained record of accepted transitions.

Components:
- TransitionEnvelope: one signed, chained entry
- TransitionJournal: append-only writer (memory + optional JSONL file)
- JournalReplayer: integrity verification and deterministic re-execution
"""

from usdm.journal.envelope import (
    GENESIS_HASH,
    JOURNAL_VERSION,
    RecordType,
    SchemaValidationResult,
    TransitionEnvelope,
)
from usdm.journal.journal import TransitionJournal
from usdm.journal.replay import ChainViolation, JournalReplayer, ReplaySummary

__all__ = [
    "TransitionEnvelope",
    "TransitionJournal",
    "JournalReplayer",
    "ChainViolation",
    "ReplaySummary",
    "RecordType",
    "SchemaValidationResult",
    "GENESIS_HASH",
    "JOURNAL_VERSION",
]
