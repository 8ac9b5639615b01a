import json
import os
from pathlib import Path
from typing import Dict, List

import yaml
from ape import networks, project
from ape.contracts import ContractContainer, ContractInstance
from ape_etherscan.utils import API_KEY_ENV_KEY_MAP

from diamond_deploy.constants import LOCAL_NETWORKS


def _load_yaml(filepath: Path) -> dict:
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    with open(filepath, "r") as file:
        return json.load(file)


def is_local_network() -> bool:
    return networks.provider.network.name in LOCAL_NETWORKS


def validate_chain_id(config_chain_id: int) -> None:
    """Checks that the params file targets the chain of the connected provider."""
    provider_chain_id = networks.provider.network.chain_id
    if int(config_chain_id) != provider_chain_id and not is_local_network():
        raise ValueError(
            f"chain_id in params file ({config_chain_id}) does not match "
            f"chain_id of current network ({provider_chain_id})."
        )


def check_explorer_api_key() -> None:
    """Verification needs the explorer API key of the connected ecosystem, if it has one."""
    ecosystem_name = networks.provider.network.ecosystem.name
    envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name)
    if envvar and not os.environ.get(envvar):
        raise ValueError(f"{envvar} is not set; it is required to verify contracts.")


def check_plugins(verify: bool) -> None:
    if verify and not is_local_network():
        print("Checking explorer plugin...")
        check_explorer_api_key()


def verify_contracts(contracts: List[ContractInstance]) -> None:
    explorer = networks.provider.network.explorer
    if explorer is None:
        print("(i) No explorer configured for this network; skipping verification.")
        return
    for instance in contracts:
        print(f"(i) Verifying {instance.contract_type.name} at {instance.address}...")
        try:
            explorer.publish_contract(instance.address)
        except Exception as error:
            if "already verified" not in str(error).lower():
                raise
            print(f"(i) {instance.contract_type.name} already verified!")


def oz_dependency():
    return project.dependencies["openzeppelin"]["5.0.0"]


def get_contract_container(contract: str) -> ContractContainer:
    """
    Looks a contract up in the project first, then in its installed dependencies
    (e.g. interfaces and proxies shipped with OpenZeppelin).
    """
    if hasattr(project, contract):
        return getattr(project, contract)

    matches = list()
    for dependency_name, versions in project.dependencies.items():
        for dependency in versions.values():
            if hasattr(dependency, contract):
                matches.append((dependency_name, getattr(dependency, contract)))
    if not matches:
        raise ValueError(f"No contract found with name '{contract}'.")
    if len(matches) > 1:
        sources = ", ".join(name for name, _ in matches)
        raise ValueError(f"Ambiguous contract '{contract}' found in: {sources}")
    return matches[0][1]


def print_table(entries: Dict[str, object]) -> None:
    width = max((len(name) for name in entries), default=0)
    for name, value in entries.items():
        print(f"\t{name.ljust(width)}  {value}")
