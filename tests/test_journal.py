"""
tests/test_journal.py

Transition journal laws.

  SIGNING   Every entry verifies; mutating any signed field breaks it.
  CHAIN     First causal_hash is GENESIS_HASH; each later one commits to
            the previous entry; tampering breaks the next link.
  SCHEMA    Unknown record types and malformed fields are rejected.
  FILE      Entries persist as JSONL and a reopened journal continues
            the chain.
  REPLAY    JournalReplayer finds gaps, breaks and forged signatures,
            and re-execution from genesis reproduces every burn.
"""

import hashlib
import json
from datetime import timedelta
from typing import List

import pytest

from usdm.app import StablecoinApp
from usdm.config import GenesisConfig
from usdm.core.canonical import canonicalize
from usdm.core.exceptions import InvalidExpiryError, NoLivePriceError
from usdm.core.models import COLL_PRICE_POOL, GOV_PRICE_POOL
from usdm.core.time import parse_block_time
from usdm.journal.envelope import (
    GENESIS_HASH,
    JOURNAL_VERSION,
    RecordType,
    TransitionEnvelope,
)
from usdm.journal.journal import TransitionJournal
from usdm.journal.replay import JournalReplayer
from usdm.pricefeed.ingress import SignedPricePost

from conftest import GENESIS_TIME, later


def make_chain(key, n: int) -> List[TransitionEnvelope]:
    journal = TransitionJournal(key)
    for i in range(n):
        journal.append(RecordType.RATIO_SET, {"ratio": f"0.{i}"}, later(i))
    return journal.entries


def write_journal(envelopes: List[TransitionEnvelope], path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        for env in envelopes:
            f.write(json.dumps(env.to_dict()) + "\n")


def run_session(app, oracle_key, requester):
    """A short but complete session: prices, governance, burns."""
    expiry = later(120)
    app.submit_price(SignedPricePost.create(COLL_PRICE_POOL, "1", expiry, oracle_key))
    app.submit_price(SignedPricePost.create(GOV_PRICE_POOL, "10", expiry, oracle_key))
    app.clock.advance(seconds=5)
    app.burn_stable(requester, 10_000_000)
    app.set_collateral_ratio("0.5")
    app.clock.advance(seconds=5)
    app.burn_stable(requester, 3_333_333)
    app.fund_reserve({"uust": 1_000})


# ─────────────────────────────────────────────────────────────
# SIGNING
# ─────────────────────────────────────────────────────────────

class TestSigning:

    def test_entry_verifies(self, journal_key):
        env = make_chain(journal_key, 1)[0]
        assert env.is_signed()
        assert env.verify_signature()

    @pytest.mark.parametrize("field, value", [
        ("payload",         {"ratio": "1"}),
        ("record_type",     RecordType.BURN),
        ("block_time",      "2000-01-01T00:00:00.000Z"),
        ("sequence",        99),
        ("journal_version", "9.9"),
    ])
    def test_mutation_breaks_signature(self, journal_key, field, value):
        env = make_chain(journal_key, 1)[0]
        setattr(env, field, value)
        assert not env.verify_signature()

    def test_wrong_key(self, journal_key, oracle_key):
        env = make_chain(journal_key, 1)[0]
        assert not env.verify_signature(oracle_key.public_key_hex)

    def test_unsigned(self, journal_key):
        env = TransitionEnvelope.create(
            record_type=       RecordType.RATIO_SET,
            signer_public_key= journal_key.public_key_hex,
            sequence=          0,
            payload=           {"ratio": "0.5"},
            block_time=        GENESIS_TIME,
        )
        assert not env.verify_signature()


# ─────────────────────────────────────────────────────────────
# CHAIN
# ─────────────────────────────────────────────────────────────

class TestChain:

    def test_first_entry_genesis_hash(self, journal_key):
        assert make_chain(journal_key, 1)[0].causal_hash == GENESIS_HASH

    def test_second_entry_commits_to_first(self, journal_key):
        first, second = make_chain(journal_key, 2)
        expected = hashlib.sha256(canonicalize(first.to_chain_dict())).hexdigest()
        assert second.causal_hash == expected

    def test_payload_tamper_breaks_next_link(self, journal_key):
        chain = make_chain(journal_key, 3)
        chain[1].payload = {"ratio": "TAMPERED"}
        assert chain[1].verify_chain(chain[0])
        assert not chain[2].verify_chain(chain[1])

    def test_signing_and_chain_dicts_match(self, journal_key):
        env = make_chain(journal_key, 1)[0]
        assert env.to_signing_dict() == env.to_chain_dict()
        assert "signature" not in env.to_signing_dict()


# ─────────────────────────────────────────────────────────────
# SCHEMA
# ─────────────────────────────────────────────────────────────

class TestSchema:

    def test_unknown_record_type_rejected_at_create(self, journal_key):
        with pytest.raises(ValueError):
            TransitionEnvelope.create("mint", journal_key.public_key_hex, 0, {}, GENESIS_TIME)

    def test_non_dict_payload_rejected(self, journal_key):
        with pytest.raises(TypeError):
            TransitionEnvelope.create(RecordType.BURN, journal_key.public_key_hex, 0, [], GENESIS_TIME)

    def test_negative_sequence_rejected(self, journal_key):
        with pytest.raises(ValueError):
            TransitionEnvelope.create(RecordType.BURN, journal_key.public_key_hex, -1, {}, GENESIS_TIME)

    def test_validate_schema_flags_fields(self, journal_key):
        env = make_chain(journal_key, 1)[0]
        assert env.validate_schema()

        env.block_time  = "2026-01-01T00:00:00+00:00"
        env.record_type = "mint"
        env.causal_hash = "xyz"
        result = env.validate_schema()
        assert not result
        assert len(result.errors) == 3

    def test_round_trip(self, journal_key):
        env = make_chain(journal_key, 1)[0]
        again = TransitionEnvelope.from_dict(json.loads(json.dumps(env.to_dict())))
        assert again == env
        assert again.verify_signature()
        assert again.journal_version == JOURNAL_VERSION


# ─────────────────────────────────────────────────────────────
# FILE
# ─────────────────────────────────────────────────────────────

class TestJournalFile:

    def test_entries_persist_as_jsonl(self, journal_key, tmp_path):
        path    = tmp_path / "journal.jsonl"
        journal = TransitionJournal(journal_key, path)
        journal.append(RecordType.RATIO_SET, {"ratio": "0.5"}, GENESIS_TIME)
        journal.append(RecordType.RATIO_SET, {"ratio": "0.6"}, later(1))

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["sequence"] == 1

    def test_reopen_continues_chain(self, journal_key, tmp_path):
        path = tmp_path / "journal.jsonl"
        first = TransitionJournal(journal_key, path)
        first.append(RecordType.RATIO_SET, {"ratio": "0.5"}, GENESIS_TIME)
        first.append(RecordType.RATIO_SET, {"ratio": "0.6"}, later(1))

        reopened = TransitionJournal(journal_key, path)
        assert reopened.get_stats()["next_sequence"] == 2
        reopened.append(RecordType.RATIO_SET, {"ratio": "0.7"}, later(2))

        replayer = JournalReplayer()
        replayer.load(path)
        summary = replayer.verify()
        assert summary.total_entries == 3
        assert summary.chain_valid, summary.violations

    def test_corrupt_last_line_warns(self, journal_key, tmp_path):
        path = tmp_path / "journal.jsonl"
        path.write_text('{"sequence": 0}\n', encoding="utf-8")
        with pytest.warns(RuntimeWarning, match="could not restore state"):
            journal = TransitionJournal(journal_key, path)
        assert journal.get_stats()["next_sequence"] == 0


# ─────────────────────────────────────────────────────────────
# REPLAY
# ─────────────────────────────────────────────────────────────

class TestVerify:

    def _verify(self, envelopes, tmp_path, **kwargs):
        path = tmp_path / "journal.jsonl"
        write_journal(envelopes, path)
        replayer = JournalReplayer(**kwargs)
        replayer.load(path)
        return replayer.verify()

    def test_clean_journal(self, journal_key, tmp_path):
        summary = self._verify(make_chain(journal_key, 5), tmp_path)
        assert summary.chain_valid
        assert summary.valid_signatures == 5
        assert summary.record_type_counts == {RecordType.RATIO_SET: 5}
        assert summary.signers_seen == [journal_key.public_key_hex]
        assert summary.first_block_time == "2026-01-01T00:00:00.000Z"
        assert summary.last_block_time == "2026-01-01T00:00:04.000Z"

    def test_chain_break(self, journal_key, tmp_path):
        chain = make_chain(journal_key, 4)
        chain[1].payload = {"ratio": "TAMPERED"}
        summary = self._verify(chain, tmp_path)
        types = {v.violation_type for v in summary.violations}
        assert "chain_break" in types
        assert "invalid_signature" in types

    def test_forged_signature(self, journal_key, oracle_key, tmp_path):
        chain = make_chain(journal_key, 3)
        chain[1].signature = oracle_key.sign(chain[1].canonical_bytes_for_signing())
        summary = self._verify(chain, tmp_path)
        assert [v.violation_type for v in summary.violations] == ["invalid_signature"]
        assert summary.invalid_signatures == 1

    def test_sequence_gap(self, journal_key, tmp_path):
        chain = make_chain(journal_key, 5)
        summary = self._verify([e for e in chain if e.sequence != 2], tmp_path)
        assert any(v.violation_type == "sequence_gap" for v in summary.violations)

    def test_foreign_signer(self, journal_key, oracle_key, tmp_path):
        summary = self._verify(
            make_chain(journal_key, 2), tmp_path,
            expected_signer=oracle_key.public_key_hex,
        )
        assert {v.violation_type for v in summary.violations} == {"foreign_signer"}

    def test_schema_violation_fails_load(self, journal_key, tmp_path):
        chain = make_chain(journal_key, 2)
        chain[1].journal_version = "9.9"
        path = tmp_path / "journal.jsonl"
        write_journal(chain, path)
        with pytest.raises(ValueError, match="schema"):
            JournalReplayer().load(path)

    def test_malformed_json_fails_load(self, tmp_path):
        path = tmp_path / "journal.jsonl"
        path.write_text("{not json\n", encoding="utf-8")
        with pytest.raises(ValueError, match="malformed JSON"):
            JournalReplayer().load(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            JournalReplayer().load(tmp_path / "absent.jsonl")

    def test_empty_journal(self, tmp_path):
        path = tmp_path / "journal.jsonl"
        path.write_text("", encoding="utf-8")
        replayer = JournalReplayer()
        replayer.load(path)
        summary = replayer.verify()
        assert summary.total_entries == 0
        assert summary.chain_valid


class TestReexecute:

    def test_session_reproduces_exactly(self, genesis, journal_key, oracle_key, requester, tmp_path):
        path = tmp_path / "journal.jsonl"
        app  = StablecoinApp.from_genesis(genesis, journal_path=path, key=journal_key)
        run_session(app, oracle_key, requester)

        replayer = JournalReplayer(expected_signer=journal_key.public_key_hex)
        replayer.load(path)
        summary = replayer.reexecute(genesis)

        assert summary.violations == []
        assert summary.chain_valid
        assert summary.reexecuted == summary.total_entries == len(app.journal.entries)
        assert summary.record_type_counts[RecordType.BURN] == 2

    def test_falsified_burn_result(self, genesis, journal_key, oracle_key, requester):
        app = StablecoinApp.from_genesis(genesis, key=journal_key)
        run_session(app, oracle_key, requester)

        # Re-sign every entry with a doctored first burn, so only re-execution can tell
        forged = TransitionJournal(journal_key)
        doctored = False
        for env in app.journal.entries:
            payload = dict(env.payload)
            if env.record_type == RecordType.BURN and not doctored:
                payload["gov_amount"] += 1
                doctored = True
            forged.append(env.record_type, payload, parse_block_time(env.block_time))

        replayer = JournalReplayer()
        replayer.load_entries(forged.entries)
        assert replayer.verify().chain_valid

        summary = replayer.reexecute(genesis)
        assert [v.violation_type for v in summary.violations] == ["result_mismatch"]
        assert not summary.chain_valid

    def test_different_genesis(self, genesis, genesis_dict, journal_key, oracle_key, requester):
        app = StablecoinApp.from_genesis(genesis, key=journal_key)
        run_session(app, oracle_key, requester)

        genesis_dict["collateral_ratio"] = "1"
        other = GenesisConfig.from_dict(genesis_dict)

        replayer = JournalReplayer()
        replayer.load_entries(app.journal.entries)
        types = [v.violation_type for v in replayer.reexecute(other).violations]

        assert types[0] == "genesis_mismatch"
        assert "result_mismatch" in types

    def test_rejected_transition_reported(self, genesis, journal_key, oracle_key, requester):
        """A burn that the rebuilt state cannot settle is a reexecution_error."""
        app = StablecoinApp.from_genesis(genesis, key=journal_key)
        run_session(app, oracle_key, requester)

        poorer = dict(genesis.to_dict())
        poorer["accounts"] = {requester: {"uusdm": 5}}

        replayer = JournalReplayer()
        replayer.load_entries(app.journal.entries)
        summary = replayer.reexecute(GenesisConfig.from_dict(poorer))

        errors = [v for v in summary.violations if v.violation_type == "reexecution_error"]
        assert len(errors) == 2
        assert all(v.record_type == RecordType.BURN for v in errors)
        assert "insufficient funds" in errors[0].detail

    def test_sub_millisecond_block_times(self, genesis, journal_key, oracle_key, requester):
        """Live decisions are made at the millisecond times the journal records."""
        app = StablecoinApp.from_genesis(genesis, key=journal_key)
        src = oracle_key.address

        app.clock.advance(seconds=0.0004)
        with pytest.raises(InvalidExpiryError):
            app.submit_price(COLL_PRICE_POOL, src, "1", app.clock.now() + timedelta(microseconds=300))

        app.submit_price(COLL_PRICE_POOL, src, "1", later(0.0019))
        app.submit_price(GOV_PRICE_POOL, src, "10", later(0.0019))
        app.clock.advance(seconds=0.0004)
        assert app.burn_stable(requester, 10_000_000).collateral == 9_000_000

        app.clock.advance(seconds=0.0004)
        with pytest.raises(NoLivePriceError):
            app.burn_stable(requester, 1_000)

        replayer = JournalReplayer()
        replayer.load_entries(app.journal.entries)
        summary = replayer.reexecute(genesis)

        assert summary.violations == []
        assert summary.reexecuted == summary.total_entries == 4
        assert app.journal.entries[-1].block_time == "2026-01-01T00:00:00.000Z"
