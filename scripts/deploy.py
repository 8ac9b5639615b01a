#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from diamond_deploy.bootstrap import DiamondBootstrap
from diamond_deploy.context import prepare_run
from diamond_deploy.errors import DeploymentError
from diamond_deploy.options import (
    address_book_option,
    autosign_option,
    params_option,
    resume_option,
    wiring_start_option,
)


@click.command(cls=ConnectedProviderCommand, name="deploy")
@account_option()
@network_option(required=True)
@params_option
@autosign_option
@resume_option
@wiring_start_option
@address_book_option
def cli(
    account,
    network,
    params_filepath,
    autosign,
    resume,
    wiring_start,
    address_book_filepath,
):
    """
    Deploys satellites and facets, constructs the Diamond, performs its initial cut
    and wires the protocol together.

    ape run deploy --network sei:testnet:node --account deployer
        --params diamond_deploy/constructor_params/seiTestnet.yml
    """
    context, config, deployer = prepare_run(
        account=account,
        params_filepath=params_filepath,
        autosign=autosign,
        address_book_filepath=address_book_filepath,
    )
    bootstrap = DiamondBootstrap(
        context=context,
        config=config,
        deployer=deployer,
        resume=resume,
        wiring_start=wiring_start,
    )
    try:
        records = bootstrap.run()
    except DeploymentError as error:
        raise click.ClickException(str(error)) from error

    click.secho(
        f"\nDeployed {len(records)} contract(s) to {context.network}; "
        f"address book at {context.address_book.filepath}",
        fg="green",
    )


if __name__ == "__main__":
    cli()
