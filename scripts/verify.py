#!/usr/bin/python3

import click
from ape import networks
from ape.cli import ConnectedProviderCommand, network_option

from diamond_deploy.options import contract_names_option, params_option
from diamond_deploy.params import NetworkConfig
from diamond_deploy.registry import AddressBook
from diamond_deploy.utils import get_contract_container, verify_contracts


def _contract_types(config: NetworkConfig) -> dict:
    """Maps recorded names to the contract type deployed under that name."""
    contract_types = {name: s.contract for name, s in config.satellites.items() if not s.external}
    contract_types.update({facet.name: facet.contract for facet in config.facets})
    if config.diamond is not None:
        contract_types[config.diamond.name] = config.diamond.contract
        if config.diamond.init:
            contract_types[config.diamond.init] = config.diamond.init
    return contract_types


@click.command(cls=ConnectedProviderCommand, name="verify")
@network_option(required=True)
@params_option
@contract_names_option
def cli(network, params_filepath, contract_names):
    """Verify contracts recorded in the address book; all deployed ones by default."""
    config = NetworkConfig.from_yaml(params_filepath)
    address_book = AddressBook(config.artifacts_filepath)
    section = address_book.section(config.network)
    contract_types = _contract_types(config)

    contract_instances = []
    for contract_name in contract_names or contract_types:
        address = section.get(contract_name)
        if not address:
            raise click.ClickException(
                f"Contract '{contract_name}' not found in address book, "
                f"'{address_book.filepath}', for network {config.network}"
            )
        contract_type = contract_types.get(contract_name, contract_name)
        contract_container = get_contract_container(contract_type)

        # check whether contract is a proxy
        proxy_info = networks.provider.network.ecosystem.get_proxy_info(address)
        if proxy_info:
            # we have the address of a proxy contract, but need the underlying implementation
            print(
                f"Proxy contract detected; verifying implementation contract at {proxy_info.target}"
            )
            address = proxy_info.target

        contract_instances.append(contract_container.at(address))

    verify_contracts(contract_instances)


if __name__ == "__main__":
    cli()
