"""
usdm quote — offline burn payout calculator.

Runs the same pure rule the settlement engine uses, with the prices and
ratio given on the command line instead of read from live state.

Exit codes:
    0  Quote printed
    2  Invalid input (amount, price or ratio)
"""

import json
import sys

import click

from usdm.core.exceptions import UsdmError
from usdm.core.fixedpoint import Dec
from usdm.core.models import Denoms
from usdm.stablecoin.ratio import parse_ratio
from usdm.stablecoin.settlement import compute_burn


def _parse_price(name: str, value: str) -> Dec:
    try:
        return Dec.from_str(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint=name) from exc


@click.command(name="quote")
@click.option("--stable", "stable_amount", type=click.IntRange(min=0), required=True,
              help="Stablecoin amount to burn, in base units.")
@click.option("--coll-price", required=True, metavar="DEC",
              help="Collateral price in stablecoin.")
@click.option("--gov-price", required=True, metavar="DEC",
              help="Governance asset price in collateral.")
@click.option("--ratio", required=True, metavar="DEC",
              help="Collateral ratio in [0, 1].")
@click.option(
    "--format", "fmt",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    show_default=True,
)
def quote_command(
    stable_amount: int,
    coll_price:    str,
    gov_price:     str,
    ratio:         str,
    fmt:           str,
) -> None:
    """
    Split a burn of --stable into collateral and governance payouts.

    \b
    Example:
      usdm quote --stable 10000000 --coll-price 1 --gov-price 10 --ratio 0.9
    """
    coll = _parse_price("--coll-price", coll_price)
    gov  = _parse_price("--gov-price", gov_price)

    try:
        breakdown = compute_burn(stable_amount, coll, gov, parse_ratio(ratio))
    except UsdmError as exc:
        click.echo(f"error: {exc}", err=True)
        sys.exit(2)

    denoms = Denoms()

    if fmt == "json":
        out = {"stable_amount": stable_amount}
        out.update(breakdown.result.to_dict())
        out["collateral_equivalent"] = str(breakdown.collateral_equivalent)
        out["governance_value"]      = str(breakdown.governance_value)
        out["ratio"]                 = str(breakdown.ratio)
        click.echo(json.dumps(out, indent=2))
        return

    click.echo(f"  burn                   {stable_amount}{denoms.stable}")
    click.echo(f"  collateral equivalent  {breakdown.collateral_equivalent}")
    click.echo(f"  ratio                  {breakdown.ratio}")
    click.echo(f"  collateral payout      {breakdown.collateral_portion}{denoms.collateral}")
    click.echo(f"  governance value       {breakdown.governance_value}")
    click.echo(f"  governance payout      {breakdown.governance_portion}{denoms.governance}")
