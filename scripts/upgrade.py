#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from diamond_deploy.context import prepare_run
from diamond_deploy.errors import DeploymentError
from diamond_deploy.options import address_book_option, autosign_option, params_option
from diamond_deploy.planner import check_deployer
from diamond_deploy.utils import get_contract_container, verify_contracts


@click.command(cls=ConnectedProviderCommand, name="upgrade")
@account_option()
@network_option(required=True)
@params_option
@autosign_option
@address_book_option
@click.option(
    "--contract-name",
    "-c",
    help="Satellite to upgrade, as named in the parameters file.",
    type=click.STRING,
    required=True,
)
def cli(account, network, params_filepath, autosign, address_book_filepath, contract_name):
    """
    Deploys a new implementation of a satellite contract and upgrades its
    transparent proxy to it.

    ape run upgrade --network sei:testnet:node --account deployer -c Keeper
        --params diamond_deploy/constructor_params/seiTestnet.yml
    """
    context, config, deployer = prepare_run(
        account=account,
        params_filepath=params_filepath,
        autosign=autosign,
        address_book_filepath=address_book_filepath,
    )
    try:
        check_deployer(context.signer_address, config.deployer)
    except DeploymentError as error:
        raise click.ClickException(str(error)) from error

    try:
        satellite = config.satellites[contract_name]
    except KeyError:
        raise click.BadParameter(f"'{contract_name}' is not a satellite in {params_filepath}")
    if satellite.external:
        raise click.BadParameter(f"'{contract_name}' is an external contract")

    proxy_address = context.address_book.resolve(context.network, contract_name)
    if not proxy_address:
        raise click.ClickException(
            f"No {contract_name} recorded for '{context.network}' in {context.address_book.filepath}"
        )

    try:
        upgraded = deployer.upgrade(get_contract_container(satellite.contract), proxy_address)
    except DeploymentError as error:
        raise click.ClickException(str(error)) from error
    click.secho(f"\n{contract_name} at {upgraded.address} upgraded.", fg="green")

    if config.verify:
        verify_contracts([upgraded])


if __name__ == "__main__":
    cli()
