from collections import OrderedDict
from typing import Iterator, List, NamedTuple, Optional, Tuple

from diamond_deploy.constants import (
    CUT_MODULE,
    MULTISIG_WALLET,
    OWNERSHIP_MODULE,
    WIRING_MODULE,
    ModuleKind,
)
from diamond_deploy.errors import (
    CyclicDependency,
    InvalidNetworkConfig,
    UnauthorizedDeployer,
    UnresolvedDependency,
)
from diamond_deploy.params import NetworkConfig, references


class Module(NamedTuple):
    """A unit of deployment work and the modules it needs to have completed first."""

    name: str
    kind: ModuleKind
    depends_on: Tuple[str, ...] = ()


class ModuleGraph:
    def __init__(self):
        self._modules: "OrderedDict[str, Module]" = OrderedDict()

    def __iter__(self) -> Iterator[Module]:
        return iter(self._modules.values())

    def __len__(self) -> int:
        return len(self._modules)

    def __contains__(self, name: str) -> bool:
        return name in self._modules

    def __getitem__(self, name: str) -> Module:
        return self._modules[name]

    def add(self, name: str, kind: ModuleKind, depends_on=()) -> Module:
        if name in self._modules:
            raise InvalidNetworkConfig(f"Module '{name}' is declared more than once")
        module = Module(name=name, kind=ModuleKind(kind), depends_on=tuple(depends_on))
        self._modules[name] = module
        return module


def _find_cycle(pending: List[Module]) -> List[str]:
    """Walks unresolved dependencies until a module repeats."""
    remaining = {module.name: module for module in pending}
    path = [pending[0].name]
    while True:
        module = remaining[path[-1]]
        blocked_on = next(dep for dep in module.depends_on if dep in remaining)
        if blocked_on in path:
            return path[path.index(blocked_on):] + [blocked_on]
        path.append(blocked_on)


def plan(graph: ModuleGraph) -> List[Module]:
    """
    Returns the modules in an order where every module comes after all of its dependencies.

    The order is stable: among modules that are ready, the one declared first goes first,
    so a graph declared in a valid order is planned exactly as declared.
    """
    for module in graph:
        for dependency in module.depends_on:
            if dependency not in graph:
                raise UnresolvedDependency(module=module.name, dependency=dependency)

    ordered: "OrderedDict[str, Module]" = OrderedDict()
    pending = list(graph)
    while pending:
        for module in pending:
            if all(dependency in ordered for dependency in module.depends_on):
                break
        else:
            raise CyclicDependency(_find_cycle(pending))
        ordered[module.name] = module
        pending.remove(module)

    return list(ordered.values())


def check_deployer(signer: str, configured: Optional[str]) -> None:
    """The active signer must be the deployer named in the network's parameters."""
    if not configured or signer.lower() != configured.lower():
        raise UnauthorizedDeployer(signer=signer, expected=configured)


def build_protocol_graph(config: NetworkConfig) -> ModuleGraph:
    """Derives the module graph of a full protocol bootstrap from the network parameters."""
    if config.diamond is None:
        raise InvalidNetworkConfig("diamond is not set in params file.")
    if not config.facets:
        raise InvalidNetworkConfig("facets are not set in params file.")

    graph = ModuleGraph()
    for satellite in config.satellites.values():
        kind = ModuleKind.EXTERNAL if satellite.external else ModuleKind.SATELLITE
        graph.add(satellite.name, kind, satellite.depends_on)

    for facet in config.facets:
        graph.add(facet.name, ModuleKind.FACET)

    diamond = config.diamond
    if diamond.init:
        graph.add(diamond.init, ModuleKind.CONTRACT)
    graph.add(diamond.name, ModuleKind.PROXY, diamond.depends_on)

    cut_dependencies = [diamond.name] + [facet.name for facet in config.facets]
    if diamond.init:
        cut_dependencies.append(diamond.init)
    graph.add(CUT_MODULE, ModuleKind.CUT, cut_dependencies)
    last = CUT_MODULE

    if config.protocol is not None:
        graph.add(
            WIRING_MODULE,
            ModuleKind.WIRING,
            [CUT_MODULE, diamond.name] + list(config.satellites),
        )
        last = WIRING_MODULE

    if config.multisig is not None:
        graph.add(MULTISIG_WALLET, ModuleKind.CONTRACT, [last])

    if config.transfer_ownership_to is not None:
        dependencies = [last] + references(config.transfer_ownership_to)
        graph.add(OWNERSHIP_MODULE, ModuleKind.OWNERSHIP, OrderedDict.fromkeys(dependencies))

    return graph
