#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from diamond_deploy.context import prepare_run
from diamond_deploy.errors import DeploymentError
from diamond_deploy.options import address_book_option, autosign_option, params_option
from diamond_deploy.upgrade import FacetUpgrade


@click.command(cls=ConnectedProviderCommand, name="diamond-upgrade")
@account_option()
@network_option(required=True)
@params_option
@autosign_option
@address_book_option
def cli(account, network, params_filepath, autosign, address_book_filepath):
    """
    Deploys new facet code and moves the Diamond's selectors onto it with a single cut.
    The cut is computed against the Diamond's current on-chain function table.

    ape run diamond_upgrade --network sei:testnet:node --account deployer
        --params diamond_deploy/constructor_params/upgrades/seiTestnet-vault.yml
    """
    context, config, deployer = prepare_run(
        account=account,
        params_filepath=params_filepath,
        autosign=autosign,
        address_book_filepath=address_book_filepath,
    )
    try:
        records = FacetUpgrade(context=context, config=config, deployer=deployer).run()
    except DeploymentError as error:
        raise click.ClickException(str(error)) from error

    click.secho(f"\nUpgraded {context.network} with {len(records)} new contract(s).", fg="green")


if __name__ == "__main__":
    cli()
