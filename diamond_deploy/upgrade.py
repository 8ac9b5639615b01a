from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from ape.contracts import ContractContainer

from diamond_deploy.bootstrap import address_names, load_registry
from diamond_deploy.constants import DIAMOND, DIAMOND_CUT_INTERFACE, DIAMOND_LOUPE_INTERFACE
from diamond_deploy.context import RunContext
from diamond_deploy.cut import CutExecutor
from diamond_deploy.errors import InvalidNetworkConfig
from diamond_deploy.facets import facet_selectors
from diamond_deploy.params import Deployer, NetworkConfig
from diamond_deploy.planner import check_deployer
from diamond_deploy.registry import DeploymentRecord
from diamond_deploy.selectors import Facet, SelectorRegistry, normalize_selector
from diamond_deploy.utils import get_contract_container, print_table


def target_facets(
    current: List[Facet],
    new_facets: List[Facet],
    remove=(),
    prune: bool = False,
) -> List[Facet]:
    """
    Overlays new facets onto the current configuration.

    Selectors served by a new facet move to it; selectors listed in `remove` are dropped.
    With `prune`, selectors left on a previous version of a new facet (same name,
    other address) are dropped as well instead of staying with the old code.
    """
    claimed = {selector for facet in new_facets for selector in facet.selectors}
    claimed.update(normalize_selector(selector) for selector in remove)
    superseded = {facet.name for facet in new_facets} if prune else set()
    new_addresses = {facet.address for facet in new_facets}

    target = list()
    for facet in current:
        if facet.name in superseded and facet.address not in new_addresses:
            continue
        selectors = tuple(s for s in facet.selectors if s not in claimed)
        if selectors:
            target.append(facet._replace(selectors=selectors))
    target.extend(new_facets)
    return target


class FacetUpgrade:
    """Deploys new facet code and moves the Diamond's function table onto it with one cut."""

    def __init__(
        self,
        context: RunContext,
        config: NetworkConfig,
        deployer: Deployer,
        containers: Callable[[str], ContractContainer] = get_contract_container,
    ):
        if config.upgrade is None:
            raise InvalidNetworkConfig("upgrade is not set in params file.")
        self.context = context
        self.config = config
        self.deployer = deployer
        self.containers = containers
        self.records: List[DeploymentRecord] = list()
        self.registry: Optional[SelectorRegistry] = None

    @property
    def diamond_name(self) -> str:
        return self.config.diamond.name if self.config.diamond else DIAMOND

    def _deploy(self, name: str, contract: str):
        instance = self.deployer.deploy(self.containers(contract), name=name)
        self.records.append(DeploymentRecord(name, instance.address, self.context.chain_id))
        return instance

    def run(self) -> List[DeploymentRecord]:
        check_deployer(self.context.signer_address, self.config.deployer)
        section = self.context.address_book.section(self.context.network)
        diamond_address = section.get(self.diamond_name)
        if not diamond_address:
            raise InvalidNetworkConfig(
                f"No {self.diamond_name} recorded for '{self.context.network}' "
                f"in {self.context.address_book.filepath}"
            )

        loupe = self.containers(DIAMOND_LOUPE_INTERFACE).at(diamond_address)
        self.registry = load_registry(loupe, names=address_names(section))
        if self.registry is None:
            raise InvalidNetworkConfig(f"{self.diamond_name} at {diamond_address} was never cut")

        print(f"(i) {self.diamond_name} at {diamond_address} serves {len(self.registry)} selectors")
        upgrade = self.config.upgrade
        try:
            new_facets = list()
            for params in upgrade.facets:
                instance = self._deploy(params.name, params.contract)
                selectors = facet_selectors(
                    params.name,
                    container=self.containers(params.contract),
                    declared=params.selectors,
                    exclude=params.exclude,
                )
                new_facets.append(Facet.create(params.name, instance.address, selectors))

            init_address, init_calldata = None, b""
            if upgrade.init:
                initializer = self._deploy(upgrade.init, upgrade.init)
                init_address = initializer.address
                init_calldata = getattr(initializer, upgrade.init_method).encode_input()

            target = target_facets(
                self.registry.facets(), new_facets, remove=upgrade.remove, prune=upgrade.prune
            )
            executor = CutExecutor(
                transactor=self.deployer,
                diamond=self.containers(DIAMOND_CUT_INTERFACE).at(diamond_address),
                registry=self.registry,
            )
            executor.execute(
                self.registry.diff(target),
                init_address=init_address,
                init_calldata=init_calldata,
                names={facet.address: facet.name for facet in new_facets},
            )
        finally:
            self.finalize()
        return self.records

    def finalize(self) -> None:
        if not self.records:
            return
        entries: Dict[str, str] = OrderedDict(
            (record.contract_name, record.address) for record in self.records
        )
        self.context.address_book.record(self.context.network, entries)
        print_table(entries)
