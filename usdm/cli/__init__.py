"""
usdm/cli/__init__.py

USDM CLI — root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    usdm = "usdm.cli:cli"

Adding a new command:
    1. Create usdm/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import click

from usdm.cli.quote import quote_command
from usdm.cli.verify import verify_command


@click.group()
@click.version_option(package_name="usdm")
def cli() -> None:
    """
    USDM — stablecoin settlement CLI.

    \b
    Commands:
      quote     Split a burn into collateral and governance payouts.
      verify    Verify a transition journal, optionally re-executing it.

    \b
    Quick start:
      usdm quote --stable 10000000 --coll-price 1 --gov-price 10 --ratio 0.9
      usdm verify journal.jsonl
      usdm verify journal.jsonl --genesis genesis.yaml --format json
      usdm verify journal.jsonl --quiet && echo "clean"
    """
    pass


cli.add_command(quote_command)
cli.add_command(verify_command)
