"""
acadledger/cli/__init__.py

acadledger CLI: root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    acadledger = "acadledger.cli:cli"

Adding a new command:
    1. Create acadledger/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import click

from acadledger.cli.invoke import invoke_command
from acadledger.cli.verify import verify_command


@click.group()
@click.version_option(package_name="acadledger")
def cli() -> None:
    """
    acadledger: academic records ledger.

    \b
    Commands:
      invoke    Submit one operation against a local state directory.
      verify    Verify a transaction log: chain, signatures, re-execution.

    \b
    Quick start:
      acadledger invoke CreateClass C1 "Algorithms" "" --identity prof.json
      acadledger invoke ListClasses
      acadledger verify .acadledger --reexecute
    """
    pass


cli.add_command(invoke_command)
cli.add_command(verify_command)
