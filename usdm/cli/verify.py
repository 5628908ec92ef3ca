"""
usdm/cli/verify.py

usdm verify — Transition Journal Verification CLI
=================================================

Usage:
    usdm verify <journal>                          Human output (default)
    usdm verify <journal> --format json            Machine-readable JSON
    usdm verify <journal> --genesis genesis.yaml   Also re-execute every transition
    usdm verify <journal> --signer <pubkey hex>    Require one journal signer
    usdm verify <journal> --quiet                  Exit code only

Exit codes:
    0  Journal fully valid  (chain + signatures [+ re-execution])
    1  Journal has violations
    2  Error  (file missing, malformed JSON, schema or genesis failure)
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from usdm.config import GenesisConfig
from usdm.core.canonical import canonical_hash
from usdm.core.exceptions import UsdmError
from usdm.journal.replay import JournalReplayer, ReplaySummary


def _head_hash(replayer: JournalReplayer) -> Optional[str]:
    """
    The causal_hash the next appended entry would carry:
        hex(SHA-256(JCS(chain_dict(last_entry))))
    A commitment to the whole journal, usable for external anchoring.
    """
    if not replayer.envelopes:
        return None
    return canonical_hash(replayer.envelopes[-1].to_chain_dict())


@click.command(name="verify")
@click.argument("journal", type=click.Path(exists=False))
@click.option(
    "--genesis",
    "genesis_path",
    type=click.Path(),
    default=None,
    metavar="PATH",
    help="Genesis YAML. When given, every transition is re-executed and burn results compared.",
)
@click.option(
    "--signer",
    type=str,
    default=None,
    metavar="PUBKEY_HEX",
    help="Require every entry to be signed by this Ed25519 public key.",
)
@click.option(
    "--format", "fmt",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    show_default=True,
    help="Output format: text (default) or json (CI/automation).",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
def verify_command(
    journal:      str,
    genesis_path: Optional[str],
    signer:       Optional[str],
    fmt:          str,
    quiet:        bool,
) -> None:
    """
    Verify a transition journal — chain integrity, signatures, schema.

    JOURNAL is the path to a .jsonl transition journal.

    \b
    Examples:
      usdm verify journal.jsonl
      usdm verify journal.jsonl --genesis genesis.yaml
      usdm verify journal.jsonl --format json
      usdm verify journal.jsonl --quiet && echo "clean"
    """
    journal_path = Path(journal)

    if not journal_path.exists():
        _emit_error(f"Journal not found: {journal}", fmt, quiet)
        sys.exit(2)

    genesis = None
    if genesis_path:
        try:
            genesis = GenesisConfig.from_yaml(genesis_path)
        except UsdmError as e:
            _emit_error(f"Genesis: {e}", fmt, quiet)
            sys.exit(2)

    replayer = JournalReplayer(expected_signer=signer)
    try:
        replayer.load(journal_path)
    except (FileNotFoundError, ValueError) as e:
        _emit_error(str(e), fmt, quiet)
        sys.exit(2)

    summary = replayer.reexecute(genesis) if genesis is not None else replayer.verify()
    journal_valid = len(summary.violations) == 0

    if quiet:
        sys.exit(0 if journal_valid else 1)

    if fmt == "json":
        out = {"usdm_verify": summary.to_dict()}
        out["usdm_verify"].update({
            "journal":         str(journal_path),
            "journal_valid":   journal_valid,
            "reexecuted_from": genesis_path,
            "head_hash":       _head_hash(replayer),
            "violation_count": len(summary.violations),
        })
        click.echo(json.dumps(out, indent=2))
    else:
        _output_text(summary, journal_path, genesis_path, _head_hash(replayer), journal_valid)

    sys.exit(0 if journal_valid else 1)


# ── Text output ───────────────────────────────────────────────────────────────

def _row(label: str, value: str) -> str:
    return f"  {label:<16}  {value}"


def _output_text(
    summary:       ReplaySummary,
    journal_path:  Path,
    genesis_path:  Optional[str],
    head_hash:     Optional[str],
    journal_valid: bool,
) -> None:
    bar = "─" * 68

    click.echo()
    click.echo(_row("Journal", str(journal_path)))
    click.echo(_row("Entries", f"{summary.total_entries:,}"))
    click.echo(_row("Version", summary.journal_version or "unknown"))
    click.echo(_row("Signers", ", ".join(s[:16] + "..." for s in summary.signers_seen) or "-"))

    chain_v = [v for v in summary.violations if v.violation_type == "chain_break"]
    seq_v   = [v for v in summary.violations if v.violation_type == "sequence_gap"]

    click.echo(_row("Chain", "intact" if not chain_v else f"{len(chain_v)} break(s)"))
    click.echo(_row("Sequence", "no gaps" if not seq_v else f"{len(seq_v)} gap(s)"))
    click.echo(_row(
        "Signatures",
        f"{summary.valid_signatures:,} / {summary.total_entries:,} valid",
    ))
    if genesis_path:
        click.echo(_row("Re-executed", f"{summary.reexecuted:,} from {genesis_path}"))

    if summary.first_block_time:
        click.echo(_row("First entry", summary.first_block_time))
        click.echo(_row("Last entry", summary.last_block_time))
    if head_hash:
        click.echo(_row("Chain head", head_hash))

    if summary.record_type_counts:
        click.echo(_row("Record types", "  ".join(
            f"{k}: {v:,}" for k, v in sorted(summary.record_type_counts.items())
        )))

    click.echo()
    if summary.violations:
        click.echo(f"  {bar}")
        for v in summary.violations:
            click.echo(f"  {v.at_sequence:>6}  {v.violation_type:<20}  {v.detail}")
        click.echo(f"  {bar}")

    if journal_valid:
        click.echo("  VALID  ·  0 violations")
    else:
        click.echo(f"  INVALID  ·  {len(summary.violations)} violation(s)")
    click.echo()


# ── Error output ──────────────────────────────────────────────────────────────

def _emit_error(msg: str, fmt: str, quiet: bool) -> None:
    """Emit error in the correct format. Never raises."""
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({
            "usdm_verify": {
                "error":         msg,
                "journal_valid": False,
            }
        }))
    else:
        click.echo(f"\n  ERROR: {msg}\n", err=True)
