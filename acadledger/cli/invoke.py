"""
acadledger/cli/invoke.py

acadledger invoke: submit one operation against a local state directory.

The state directory holds the node key and the transaction log. World
state is rebuilt from the log on every call, the operation is submitted,
and a committed operation is appended to the log.

Exit codes:
    0  Operation succeeded; payload printed as JSON
    1  Ledger failure; {"error": kind, "message": ..., "details": ...} printed
    2  Usage or I/O error (bad config, unreadable identity, corrupt log)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import click

from acadledger.core.config import LedgerConfig
from acadledger.core.crypto import Ed25519KeyManager
from acadledger.core.exceptions import AcadLedgerError, LedgerError
from acadledger.core.time import parse_instant
from acadledger.ledger.replay import ReplayEngine
from acadledger.ledger.txlog import TransactionLog
from acadledger.runtime.executor import OperationExecutor
from acadledger.store.memory import WorldState

logger = logging.getLogger(__name__)

KEY_FILE_NAME = "node.key"


def open_state(state_dir: Path, config: LedgerConfig) -> OperationExecutor:
    """Executor over the world state rebuilt from state_dir's log."""
    state_dir = Path(state_dir)
    key = Ed25519KeyManager.load_or_create(state_dir / KEY_FILE_NAME)
    tx_log = TransactionLog(key, state_dir)

    world = WorldState(structured_queries=config.query_backend != "range")
    if tx_log.path.exists():
        engine = ReplayEngine()
        engine.load(tx_log.path)
        engine.rebuild(world)
        logger.debug("Rebuilt %d keys from %d envelopes", len(world.items()), len(engine.envelopes))

    return OperationExecutor(world=world, config=config, tx_log=tx_log)


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(2)


@click.command(name="invoke")
@click.argument("operation")
@click.argument("args", nargs=-1)
@click.option(
    "--identity", "identity_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Serialized identity file (JSON with mspid and certificate). Omit for anonymous.",
)
@click.option(
    "--at", "at",
    default=None,
    metavar="INSTANT",
    help="Operation instant (ISO 8601). Defaults to the current time.",
)
@click.option(
    "--state", "state_dir",
    type=click.Path(file_okay=False),
    default=".acadledger",
    show_default=True,
    help="State directory holding the node key and transaction log.",
)
@click.option(
    "--config", "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Ledger configuration YAML.",
)
@click.option("--tx-id", default=None, help="Transaction id (generated when omitted).")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log to stderr.")
def invoke_command(
    operation:     str,
    args:          Tuple[str, ...],
    identity_file: Optional[str],
    at:            Optional[str],
    state_dir:     str,
    config_file:   Optional[str],
    tx_id:         Optional[str],
    verbose:       bool,
) -> None:
    """
    Submit OPERATION with positional ARGS.

    \b
    Examples:
      acadledger invoke ListClasses
      acadledger invoke CreateClass C1 "Algorithms" "Year 2" --identity prof.json
      acadledger invoke EnrollStudent C1 alice --identity alice.json --at 2024-02-01T10:00:00Z
    """
    if verbose:
        logging.basicConfig(
            level=  logging.INFO,
            stream= sys.stderr,
            format= "%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    try:
        config = LedgerConfig.from_yaml(Path(config_file)) if config_file else LedgerConfig()
    except (AcadLedgerError, OSError) as e:
        _fail(str(e))

    credential = b""
    if identity_file:
        try:
            credential = Path(identity_file).read_bytes()
        except OSError as e:
            _fail(f"Cannot read identity file: {e}")

    if at is None:
        instant = datetime.now(timezone.utc)
    else:
        try:
            instant = parse_instant(at, "at")
        except AcadLedgerError as e:
            _fail(e.message)

    try:
        executor = open_state(Path(state_dir), config)
    except (LedgerError, OSError, ValueError) as e:
        _fail(f"Cannot open state directory {state_dir}: {e}")

    try:
        result = executor.submit(operation, list(args), credential, instant, tx_id=tx_id)
    except LedgerError as e:
        _fail(str(e))
    except AcadLedgerError as e:
        click.echo(json.dumps(e.to_dict(), indent=2, sort_keys=True))
        sys.exit(1)

    click.echo(json.dumps(result.payload, indent=2, sort_keys=True))
