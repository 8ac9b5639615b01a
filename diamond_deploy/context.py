from pathlib import Path
from typing import NamedTuple, Optional, Tuple

from ape import networks, project
from ape.api import AccountAPI

from diamond_deploy.facets import error_signatures
from diamond_deploy.params import Deployer, NetworkConfig
from diamond_deploy.registry import AddressBook, ChainId, NetworkName
from diamond_deploy.tracker import ConfirmationTracker
from diamond_deploy.utils import check_plugins, validate_chain_id


class RunContext(NamedTuple):
    """Everything a run needs to know about where and as whom it is executing."""

    signer: AccountAPI
    network: NetworkName
    chain_id: ChainId
    address_book: AddressBook

    @property
    def signer_address(self) -> str:
        return self.signer.address


def project_error_signatures():
    """Custom error selectors of every contract compiled in the project."""
    return error_signatures(contract_type.abi for contract_type in project.contracts.values())


def prepare_run(
    account: AccountAPI,
    params_filepath: Path,
    autosign: bool = False,
    address_book_filepath: Optional[Path] = None,
) -> Tuple[RunContext, NetworkConfig, Deployer]:
    """Loads the network parameters and binds them to the connected provider and signer."""
    config = NetworkConfig.from_yaml(params_filepath)
    validate_chain_id(config.chain_id)
    check_plugins(verify=config.verify)

    tracker = ConfirmationTracker(
        provider=networks.provider,
        confirmations=config.confirmations,
        timeout=config.timeout,
        error_signatures=project_error_signatures(),
    )
    deployer = Deployer(account=account, tracker=tracker, autosign=autosign)
    context = RunContext(
        signer=account,
        network=config.network,
        chain_id=config.chain_id,
        address_book=AddressBook(address_book_filepath or config.artifacts_filepath),
    )
    return context, config, deployer
