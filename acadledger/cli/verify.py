"""
acadledger/cli/verify.py

acadledger verify: transaction log verification
================================================

Usage:
    acadledger verify <log>                       Human output (default)
    acadledger verify <log> --format json         Machine-readable JSON
    acadledger verify <log> --reexecute           Also re-run every operation
    acadledger verify <log> --export report.json  Export full report

LOG may be the ledger.jsonl file or the state directory holding it.

Exit codes:
    0  Log fully valid  (sequence + chain + signatures [+ re-execution])
    1  Log has violations
    2  Error  (file missing, malformed JSON, schema violation, bad config)
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from acadledger.core.config import LedgerConfig
from acadledger.core.exceptions import AcadLedgerError
from acadledger.ledger.replay import ReplayEngine, ReplaySummary
from acadledger.ledger.txlog import TransactionLog


# ── ANSI color ────────────────────────────────────────────────────────────────

class _Color:
    """Auto-disables when not a TTY or --no-color is passed."""
    _on: bool = True

    @classmethod
    def configure(cls, enabled: bool) -> None:
        cls._on = enabled and sys.stdout.isatty()

    @classmethod
    def green(cls, s: str) -> str:
        return f"\033[32m{s}\033[0m" if cls._on else s

    @classmethod
    def red(cls, s: str) -> str:
        return f"\033[31m{s}\033[0m" if cls._on else s

    @classmethod
    def yellow(cls, s: str) -> str:
        return f"\033[33m{s}\033[0m" if cls._on else s

    @classmethod
    def bold(cls, s: str) -> str:
        return f"\033[1m{s}\033[0m" if cls._on else s

    @classmethod
    def dim(cls, s: str) -> str:
        return f"\033[2m{s}\033[0m" if cls._on else s


def _row_ok(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}  {_Color.green('OK  ')}  {value}"

def _row_fail(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}  {_Color.red('FAIL')}  {value}"

def _row_info(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}        {value}"


def resolve_log_path(path: Path) -> Path:
    path = Path(path)
    if path.is_dir():
        return path / TransactionLog.FILE_NAME
    return path


# ── CLI command ───────────────────────────────────────────────────────────────

@click.command(name="verify")
@click.argument("log", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format: human (default) or json (CI/automation).",
)
@click.option(
    "--reexecute",
    is_flag=True,
    default=False,
    help="Re-run every logged operation and compare its write set.",
)
@click.option(
    "--config", "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Ledger configuration YAML used for re-execution.",
)
@click.option(
    "--export", "export_path",
    type=click.Path(),
    default=None,
    metavar="PATH",
    help="Export the full report to a JSON file.",
)
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
def verify_command(
    log:         str,
    fmt:         str,
    reexecute:   bool,
    config_file: Optional[str],
    export_path: Optional[str],
    no_color:    bool,
) -> None:
    """
    Verify a transaction log: sequence, causal chain, signatures.

    \b
    Examples:
      acadledger verify .acadledger/ledger.jsonl
      acadledger verify .acadledger --reexecute --format json
    """
    _Color.configure(not no_color)
    log_path = resolve_log_path(Path(log))

    try:
        config = LedgerConfig.from_yaml(Path(config_file)) if config_file else LedgerConfig()
        engine = ReplayEngine()
        engine.load(log_path)
    except (FileNotFoundError, AcadLedgerError) as e:
        _emit_error(str(e), fmt)
        sys.exit(2)

    summary = engine.verify()
    summary.state_hash = engine.rebuild().state_hash()

    if reexecute:
        divergences = engine.reexecute(config)
        summary.violations.extend(divergences)
        summary.reexecuted = True

    log_valid = len(summary.violations) == 0

    if export_path:
        engine.export_json(Path(export_path), summary)

    if fmt == "json":
        out = {"acadledger_verify": {"log": str(log_path), "log_valid": log_valid, **summary.to_dict()}}
        click.echo(json.dumps(out, indent=2))
    else:
        _output_human(summary, log_path, log_valid, export_path)

    sys.exit(0 if log_valid else 1)


# ── Human output ──────────────────────────────────────────────────────────────

def _output_human(
    summary:     ReplaySummary,
    log_path:    Path,
    log_valid:   bool,
    export_path: Optional[str],
) -> None:
    BAR_HEAVY = "═" * 68
    BAR_LIGHT = "─" * 68
    total = summary.total_entries

    click.echo()
    click.echo(_Color.bold(f"  {BAR_HEAVY}"))
    click.echo(_Color.bold(  "  acadledger  ·  Transaction Log Verification"))
    click.echo(_Color.bold(f"  {BAR_HEAVY}"))
    click.echo()

    click.echo(_row_info("Log", str(log_path)))
    click.echo(_row_info("Entries", f"{total:,}"))
    click.echo(_row_info("Signers", ", ".join(s[:16] + "..." for s in summary.signers_seen) or "-"))
    click.echo()

    by_type = {}
    for v in summary.violations:
        by_type.setdefault(v.violation_type, []).append(v)

    if "sequence_gap" in by_type:
        click.echo(_row_fail("Sequence", _Color.red(f"{len(by_type['sequence_gap'])} gap(s) detected")))
    else:
        click.echo(_row_ok("Sequence", f"0 → {total - 1:,}  (no gaps)" if total else "empty log"))

    if "chain_break" in by_type:
        click.echo(_row_fail("Chain", _Color.red(f"{len(by_type['chain_break'])} break(s) detected")))
    else:
        click.echo(_row_ok("Chain", "intact, all causal hashes valid"))

    if summary.invalid_signatures:
        click.echo(_row_fail(
            "Signatures",
            f"{summary.valid_signatures:,} valid  "
            + _Color.red(f"{summary.invalid_signatures:,} INVALID"),
        ))
    else:
        click.echo(_row_ok("Signatures", f"{summary.valid_signatures:,} / {total:,} valid"))

    if summary.reexecuted:
        replayed = by_type.get("divergence", []) + by_type.get("execution_failed", [])
        if replayed:
            click.echo(_row_fail("Re-execution", _Color.red(f"{len(replayed)} divergence(s)")))
        else:
            click.echo(_row_ok("Re-execution", "every write set reproduced"))

    click.echo()
    if summary.first_timestamp:
        click.echo(_row_info("First entry", summary.first_timestamp))
        click.echo(_row_info("Last entry", summary.last_timestamp))
    click.echo(_row_info("State hash", summary.state_hash or "-"))
    if summary.operation_counts:
        click.echo(_row_info("Operations", "  ".join(
            f"{k}: {v:,}" for k, v in sorted(summary.operation_counts.items())
        )))
    if export_path:
        click.echo(_row_info("Exported", export_path))
    click.echo()

    if summary.violations:
        click.echo(f"  {BAR_LIGHT}")
        for v in summary.violations:
            click.echo(
                f"  {_Color.red(str(v.at_sequence)):>6}  "
                f"{_Color.yellow(f'{v.violation_type:<18}')}  {v.detail}"
            )
        click.echo(f"  {BAR_LIGHT}")
        click.echo()

    click.echo(f"  {BAR_LIGHT}")
    if log_valid:
        click.echo(_Color.green(_Color.bold("  VALID  ·  0 violations")))
    else:
        click.echo(_Color.red(_Color.bold(
            f"  INVALID  ·  {len(summary.violations)} violation(s)"
        )))
    click.echo(f"  {BAR_LIGHT}")
    click.echo()


# ── Error output ──────────────────────────────────────────────────────────────

def _emit_error(msg: str, fmt: str) -> None:
    if fmt == "json":
        click.echo(json.dumps({
            "acadledger_verify": {"error": msg, "log_valid": False}
        }))
    else:
        click.echo(_Color.red(f"\n  ERROR: {msg}\n"), err=True)
