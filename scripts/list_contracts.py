#!/usr/bin/python3

from pathlib import Path

import click

from diamond_deploy.constants import ADDRESS_BOOK_FILENAME, ARTIFACTS_DIR, SUPPORTED_NETWORKS
from diamond_deploy.registry import AddressBook


def _display_section(network: str, entries: dict) -> None:
    click.secho(f"\n{network}", fg="green")
    for index, (name, value) in enumerate(entries.items(), start=1):
        click.secho(f"    {index}. {name} {value}", fg="cyan")


@click.command(name="list-contracts")
@click.option(
    "--network-name",
    "-n",
    help="Only list contracts recorded for this network.",
    type=click.Choice(SUPPORTED_NETWORKS),
)
@click.option(
    "--address-book",
    "-f",
    "address_book_filepath",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    default=ARTIFACTS_DIR / ADDRESS_BOOK_FILENAME,
    show_default=True,
)
def cli(network_name, address_book_filepath):
    """List all contracts in the address book. Optionally filter by network."""
    book = AddressBook(address_book_filepath).read()
    for network, entries in book.items():
        if network_name and network != network_name:
            continue
        _display_section(network, entries)


if __name__ == "__main__":
    cli()
