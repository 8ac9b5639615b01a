from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from ape.contracts import ContractContainer, ContractInstance
from ape.exceptions import ContractLogicError
from eth_utils import to_checksum_address

from diamond_deploy.constants import (
    BASE_TOKEN,
    DIAMOND_CUT_INTERFACE,
    DIAMOND_CUT_SELECTOR,
    DIAMOND_LOUPE_INTERFACE,
    MULTISIG_WALLET,
    OWNERSHIP_FACET,
    START_BLOCK_ENTRY,
    SUBGRAPH_ENTRY,
    VAULT_FACET,
    ModuleKind,
)
from diamond_deploy.context import RunContext
from diamond_deploy.cut import CutExecutor
from diamond_deploy.errors import InvalidNetworkConfig
from diamond_deploy.facets import facet_selectors
from diamond_deploy.params import Deployer, NetworkConfig
from diamond_deploy.planner import Module, build_protocol_graph, check_deployer, plan
from diamond_deploy.registry import DeploymentRecord
from diamond_deploy.selectors import Facet, SelectorRegistry
from diamond_deploy.utils import get_contract_container, print_table, verify_contracts
from diamond_deploy.wiring import (
    WiringOrchestrator,
    ownership_transfer_steps,
    protocol_wiring_steps,
)


def address_names(section: Dict) -> Dict[str, str]:
    """Inverts an address book section into address -> contract name."""
    names = dict()
    for name, value in section.items():
        if isinstance(value, str) and value.startswith("0x") and len(value) == 42:
            names[to_checksum_address(value)] = name
    return names


def load_registry(loupe, names: Dict[str, str]) -> Optional[SelectorRegistry]:
    """Returns None for a Diamond that was never cut, since it has no loupe facet yet."""
    try:
        return SelectorRegistry.from_loupe(loupe, names=names)
    except ContractLogicError:
        print("(i) Diamond has no loupe facet yet; treating it as freshly constructed.")
        return None


class DiamondBootstrap:
    """
    Executes a full protocol bootstrap plan against one network: satellites, facets,
    the Diamond itself, its initial cut, wiring and (optionally) the ownership handover.

    Contracts deployed before a failure are still written to the address book, so an
    operator can inspect (or `--resume`) a partial deployment.
    """

    def __init__(
        self,
        context: RunContext,
        config: NetworkConfig,
        deployer: Deployer,
        resume: bool = False,
        wiring_start: int = 0,
        containers: Callable[[str], ContractContainer] = get_contract_container,
        start_block: Optional[int] = None,
    ):
        self.context = context
        self.config = config
        self.deployer = deployer
        self.tracker = deployer.tracker
        self.resume = resume
        self.wiring_start = wiring_start
        self.containers = containers
        self.start_block = start_block

        self.deployments: Dict[str, str] = OrderedDict()
        self.instances: Dict[str, ContractInstance] = OrderedDict()
        self.records: List[DeploymentRecord] = list()
        self.facets: List[Facet] = list()
        self.registry: Optional[SelectorRegistry] = None
        self.fresh_diamond = False

        self._handlers = {
            ModuleKind.EXTERNAL: self._external,
            ModuleKind.SATELLITE: self._satellite,
            ModuleKind.FACET: self._facet,
            ModuleKind.CONTRACT: self._contract,
            ModuleKind.PROXY: self._diamond,
            ModuleKind.CUT: self._cut,
            ModuleKind.WIRING: self._wiring,
            ModuleKind.OWNERSHIP: self._ownership,
        }

    def _print_deployment_info(self, modules: List[Module]):
        print(
            f"Account: {self.context.signer_address}",
            f"Config: {self.config.path}",
            f"Address book: {self.context.address_book.filepath}",
            f"Verify: {self.config.verify}",
            f"Network: {self.context.network}",
            f"Chain ID: {self.context.chain_id}",
            f"Resume: {self.resume}",
            sep="\n",
        )
        print("\nDeployment plan:")
        for index, module in enumerate(modules, start=1):
            print(f"\t{index:>2}. {module.name} ({module.kind.value})")

    def run(self) -> List[DeploymentRecord]:
        check_deployer(self.context.signer_address, self.config.deployer)
        modules = plan(build_protocol_graph(self.config))
        self._print_deployment_info(modules)
        if self.start_block is None:
            self.start_block = self.tracker.provider.get_block("latest").number

        completed = False
        try:
            for module in modules:
                self._handlers[module.kind](module)
            completed = True
        finally:
            self.finalize(completed)

        if self.config.verify:
            verify_contracts(contracts=list(self.instances.values()))
        return self.records

    def finalize(self, completed: bool) -> None:
        """Writes everything deployed so far to the address book."""
        if not self.deployments:
            print("(i) Nothing was deployed; address book left untouched.")
            return

        entries = OrderedDict(self.deployments)
        entries[START_BLOCK_ENTRY] = self.start_block
        if self.config.subgraph:
            entries[SUBGRAPH_ENTRY] = self.config.subgraph

        if not completed:
            print("\n(!) Deployment aborted; recording contracts deployed so far.")
        self.context.address_book.record(self.context.network, entries)
        print()
        print_table(entries)

    #
    # Helpers
    #

    def _resolve(self, value):
        return self.config.resolve(value, self.context.signer_address, self.deployments)

    def _reusable(self, name: str) -> Optional[str]:
        if not self.resume:
            return None
        return self.context.address_book.resolve(self.context.network, name)

    def _track(self, name: str, instance: ContractInstance, deployed: bool = True) -> None:
        address = to_checksum_address(instance.address)
        self.deployments[name] = address
        self.instances[name] = instance
        if deployed:
            self.records.append(DeploymentRecord(name, address, self.context.chain_id))

    def _deploy(self, name: str, contract: str, deploy) -> ContractInstance:
        container = self.containers(contract)
        address = self._reusable(name)
        if address:
            print(f"(i) Reusing {name} at {address}")
            instance = container.at(address)
            self._track(name, instance, deployed=False)
        else:
            instance = deploy(container)
            self._track(name, instance)
        return instance

    #
    # Module handlers
    #

    def _external(self, module: Module) -> None:
        satellite = self.config.satellites[module.name]
        address = to_checksum_address(self._resolve(satellite.address))
        print(f"(i) Using external {module.name} at {address}")
        self.deployments[module.name] = address

    def _satellite(self, module: Module) -> None:
        satellite = self.config.satellites[module.name]
        args = self._resolve(satellite.initialize)
        self._deploy(
            module.name,
            satellite.contract,
            lambda container: self.deployer.deploy_proxy(container, *args, name=module.name),
        )

    def _facet(self, module: Module) -> None:
        params = next(f for f in self.config.facets if f.name == module.name)
        instance = self._deploy(
            module.name,
            params.contract,
            lambda container: self.deployer.deploy(container, name=module.name),
        )
        selectors = facet_selectors(
            module.name,
            container=self.containers(params.contract),
            declared=params.selectors,
            exclude=params.exclude,
        )
        self.facets.append(Facet.create(module.name, instance.address, selectors))

    def _contract(self, module: Module) -> None:
        args = list()
        if module.name == MULTISIG_WALLET:
            args = [self.config.multisig.owners, self.config.multisig.confirmations]
        self._deploy(
            module.name,
            module.name,
            lambda container: self.deployer.deploy(container, *args, name=module.name),
        )

    def _diamond(self, module: Module) -> None:
        diamond = self.config.diamond
        args = self._resolve(diamond.constructor)
        reused = self._reusable(module.name)
        instance = self._deploy(
            module.name,
            diamond.contract,
            lambda container: self.deployer.deploy(container, *args, name=module.name),
        )

        if reused:
            loupe = self.containers(DIAMOND_LOUPE_INTERFACE).at(instance.address)
            self.registry = load_registry(loupe, names=address_names(self.deployments))
            if self.registry is not None:
                return

        self.fresh_diamond = True
        constructor_addresses = {a for a in args if isinstance(a, str)}
        for facet in self.facets:
            if facet.address in constructor_addresses and DIAMOND_CUT_SELECTOR in facet.selectors:
                self.registry = SelectorRegistry.for_new_diamond(facet)
                return
        raise InvalidNetworkConfig(
            f"{module.name} constructor must reference the facet serving diamondCut"
        )

    def _cut(self, module: Module) -> None:
        diamond = self.config.diamond
        diamond_address = self.deployments[diamond.name]
        batch = self.registry.diff(self.facets)

        init_address, init_calldata = None, b""
        if diamond.init and self.fresh_diamond:
            initializer = self.instances[diamond.init]
            init_address = initializer.address
            init_calldata = getattr(initializer, diamond.init_method).encode_input()

        executor = CutExecutor(
            transactor=self.deployer,
            diamond=self.containers(DIAMOND_CUT_INTERFACE).at(diamond_address),
            registry=self.registry,
        )
        executor.execute(
            batch,
            init_address=init_address,
            init_calldata=init_calldata,
            names={facet.address: facet.name for facet in self.facets},
        )

    def _wiring(self, module: Module) -> None:
        diamond_address = self.deployments[self.config.diamond.name]
        if BASE_TOKEN not in self.deployments:
            raise InvalidNetworkConfig(f"{BASE_TOKEN} must be declared as a satellite")
        if self.resume and not self.fresh_diamond and self.wiring_start == 0:
            print(
                "(!) Resuming an already cut Diamond: wiring restarts at step 0 and will "
                "resubmit steps that may already be confirmed. Use --wiring-start to skip them."
            )
        steps = protocol_wiring_steps(
            transactor=self.deployer,
            vault=self.containers(VAULT_FACET).at(diamond_address),
            satellites=self.instances,
            base_token=self.deployments[BASE_TOKEN],
            protocol=self.config.protocol,
        )
        WiringOrchestrator(self.tracker).run(steps, start=self.wiring_start)

    def _ownership(self, module: Module) -> None:
        new_owner = to_checksum_address(self._resolve(self.config.transfer_ownership_to))
        diamond_address = self.deployments[self.config.diamond.name]
        steps = ownership_transfer_steps(
            transactor=self.deployer,
            ownership=self.containers(OWNERSHIP_FACET).at(diamond_address),
            satellites=self.instances,
            new_owner=new_owner,
        )
        WiringOrchestrator(self.tracker).run(steps)
