#!/usr/bin/python3

import click

from diamond_deploy.context import project_error_signatures
from diamond_deploy.types import FunctionSelector


@click.command(name="error-signatures")
@click.option(
    "--selector",
    "-s",
    "selectors",
    help="Only show these error selectors.",
    type=FunctionSelector(),
    multiple=True,
)
def cli(selectors):
    """Print the custom error selectors declared across the project's contracts."""
    signatures = project_error_signatures()
    if not signatures:
        click.secho("No custom errors found in the project.", fg="yellow")
        return

    for selector in selectors or sorted(signatures):
        signature = signatures.get(selector)
        if signature is None:
            click.secho(f"{selector}  <unknown>", fg="red")
        else:
            click.secho(f"{selector}  {signature}", fg="cyan")


if __name__ == "__main__":
    cli()
