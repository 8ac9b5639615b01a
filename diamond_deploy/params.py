import typing
from abc import ABC, abstractmethod
from collections import OrderedDict, namedtuple
from pathlib import Path
from typing import Any, List, Mapping, NamedTuple, Optional, Tuple

from ape.api import AccountAPI, ReceiptAPI
from ape.cli.choices import select_account
from ape.contracts.base import ContractContainer, ContractInstance, ContractTransactionHandler
from ape.exceptions import ContractLogicError
from ape.utils import EMPTY_BYTES32, ZERO_ADDRESS
from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address
from ethpm_types import MethodABI
from web3.auto import w3

from diamond_deploy.confirm import _confirm_resolution, _continue
from diamond_deploy.constants import (
    ADDRESS_BOOK_FILENAME,
    ARTIFACTS_DIR,
    DEFAULT_CONFIRMATIONS,
    DEFAULT_RECEIPT_TIMEOUT,
    DIAMOND,
    EIP1967_ADMIN_SLOT,
    MULTISIG_WALLET,
)
from diamond_deploy.errors import (
    InvalidArguments,
    InvalidNetworkConfig,
    TransactionReverted,
    UnauthorizedDeployer,
)
from diamond_deploy.tracker import ConfirmationTracker
from diamond_deploy.utils import _load_yaml, oz_dependency

CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
CONTRACT_INITIALIZER_PARAMETER_KEY = "initialize"
CONTRACT_ADDRESS_PARAMETER_KEY = "address"
CONTRACT_TYPE_PARAMETER_KEY = "contract"
DEPENDS_ON_PARAMETER_KEY = "depends_on"

BASIS_POINTS = 10_000

TRADE_FEE_FIELDS = ("referralPortion", "lp", "protocolTreasury", "filamentTokenStakers", "insurance")
BORROW_FEE_FIELDS = ("lp", "protocolTreasury")
INTEREST_RATE_FIELDS = ("Bs", "S1", "S2", "Uo")
RISK_FIELDS = ("liquidation_leverage", "optimal_utilization", "adl_percentage")


class VariableContext:
    def __init__(self, contract_names: List[str], constants: typing.Dict[str, Any] = None):
        self.contract_names = contract_names or list()
        self.constants = constants or dict()


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self, deployer: Optional[str], deployments: Mapping[str, str]) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, deployer: Optional[str], deployments: Mapping[str, str]) -> Any:
        if deployer is None:
            return ZERO_ADDRESS
        return deployer

    def __repr__(self) -> str:
        return f"${self.DEPLOYER_INDICATOR}"


class Constant(Variable):
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            self.constant_value = context.constants[constant_name]
        except KeyError:
            raise InvalidNetworkConfig(f"Constant '{constant_name}' not found in deployment file.")
        self.constant_name = constant_name

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()

    def resolve(self, deployer: Optional[str], deployments: Mapping[str, str]) -> Any:
        return self.constant_value

    def __repr__(self) -> str:
        return f"${self.constant_name}"


class ContractName(Variable):
    def __init__(self, contract_name: str, context: VariableContext):
        if contract_name not in context.contract_names:
            raise InvalidNetworkConfig(f"Contract name {contract_name} not found")
        self.contract_name = contract_name

    def resolve(self, deployer: Optional[str], deployments: Mapping[str, str]) -> Any:
        """Resolves a contract address."""
        try:
            return deployments[self.contract_name]
        except KeyError:
            raise ValueError(f"{self.contract_name} has not been deployed yet")

    def __repr__(self) -> str:
        return f"${self.contract_name}"


def _resolve_param(
    value: Any, deployer: Optional[str] = None, deployments: Mapping[str, str] = None
) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    deployments = deployments or dict()
    if isinstance(value, list):
        return [_resolve_param(v, deployer, deployments) for v in value]

    if isinstance(value, Variable):
        return value.resolve(deployer, deployments)

    return value  # literally a value


def _variable_from_value(variable: Any, context: VariableContext) -> Variable:
    variable = variable.strip(Variable.VARIABLE_PREFIX)
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif variable in context.contract_names:
        return ContractName(variable, context)
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        return ContractName(variable, context)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, variable_context) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, variable_context)

    return value


def _process_constant_value(value: Any, variable_context: VariableContext) -> Any:
    """Like _process_raw_value, but only constants are allowed and they are resolved eagerly."""
    value = _process_raw_value(value, variable_context)
    if isinstance(value, list):
        return [_process_constant_value(v, variable_context) for v in value]
    if isinstance(value, Variable):
        if not isinstance(value, Constant):
            raise InvalidNetworkConfig(f"Only constants may be referenced here, got {value}")
        return value.constant_value
    return value


def references(value: Any) -> List[str]:
    """Returns the contract names a processed parameter value refers to."""
    if isinstance(value, list):
        return [name for v in value for name in references(v)]
    if isinstance(value, ContractName):
        return [value.contract_name]
    return []


def _entries(config: typing.Dict, section: str) -> List[Tuple[str, typing.Dict]]:
    """Normalizes a YAML list of `Name` / `{Name: {...}}` items."""
    entries = list()
    for item in config.get(section) or list():
        if isinstance(item, str):
            entries.append((item, dict()))
        elif isinstance(item, dict) and len(item) == 1:
            name = list(item.keys())[0]  # only one entry
            entries.append((name, item[name] or dict()))
        else:
            raise InvalidNetworkConfig(f"Malformed '{section}' entry in parameters YAML: {item}")
    return entries


def _checksum(value: Any, field: str) -> ChecksumAddress:
    if not isinstance(value, str) or not is_address(value):
        raise InvalidNetworkConfig(f"'{field}' must be an address, got {value!r}")
    return to_checksum_address(value)


def _integer(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidNetworkConfig(f"'{field}' must be an integer, got {value!r}")


def get_artifact_filepath(config: typing.Dict) -> Path:
    """Returns the filepath of the address book."""
    artifact_config = config.get("artifacts") or dict()
    artifact_dir = Path(artifact_config.get("dir", ARTIFACTS_DIR))
    filename = artifact_config.get("filename", ADDRESS_BOOK_FILENAME)
    return artifact_dir / filename


# Sections


class SatelliteParams(NamedTuple):
    name: str
    contract: str
    address: Any
    initialize: List[Any]
    depends_on: Tuple[str, ...]

    @property
    def external(self) -> bool:
        return self.address is not None


class FacetParams(NamedTuple):
    name: str
    contract: str
    selectors: Optional[List[str]]
    exclude: Tuple[str, ...]


class DiamondParams(NamedTuple):
    name: str
    contract: str
    constructor: List[Any]
    init: Optional[str]
    init_method: str

    @property
    def depends_on(self) -> Tuple[str, ...]:
        return tuple(references(self.constructor))


class AssetParams(NamedTuple):
    symbol: str
    address: ChecksumAddress
    weight: int
    liquidation_leverage: int
    optimal_utilization: int
    adl_percentage: int


class ProtocolParams(NamedTuple):
    """Operating parameters applied to the Diamond and its satellites during wiring."""

    assets: List[AssetParams]
    sequencers: List[ChecksumAddress]
    liquidators: List[ChecksumAddress]
    interest_rate: Tuple[int, ...]
    trade_fee_distribution: Tuple[int, ...]
    borrow_fee_distribution: Tuple[int, ...]
    comb_pool_limit: int
    compartmentalization_time: int
    epoch_duration: Optional[int]
    pause_deposit: bool

    @property
    def asset_addresses(self) -> List[ChecksumAddress]:
        return [asset.address for asset in self.assets]

    @property
    def asset_weights(self) -> List[int]:
        return [asset.weight for asset in self.assets]

    @classmethod
    def from_config(cls, data: typing.Dict, context: VariableContext) -> "ProtocolParams":
        data = {k: _process_constant_value(v, context) for k, v in data.items()}

        risk_defaults = data.get("risk") or dict()
        assets = list()
        for index, asset in enumerate(data.get("assets") or list()):
            asset = {k: _process_constant_value(v, context) for k, v in asset.items()}
            risk = dict()
            for field in RISK_FIELDS:
                value = asset.get(field, risk_defaults.get(field))
                if value is None:
                    raise InvalidNetworkConfig(f"'{field}' is not set for asset #{index}")
                risk[field] = _integer(value, field)
            assets.append(
                AssetParams(
                    symbol=asset.get("symbol", str(index)),
                    address=_checksum(asset.get("address"), f"assets[{index}].address"),
                    weight=_integer(asset.get("weight"), f"assets[{index}].weight"),
                    **risk,
                )
            )
        if not assets:
            raise InvalidNetworkConfig("'protocol.assets' must list at least one asset.")

        epoch_duration = data.get("epoch_duration")
        return cls(
            assets=assets,
            sequencers=[_checksum(a, "sequencers") for a in data.get("sequencers") or list()],
            liquidators=[_checksum(a, "liquidators") for a in data.get("liquidators") or list()],
            interest_rate=_struct(data.get("interest_rate"), INTEREST_RATE_FIELDS, "interest_rate"),
            trade_fee_distribution=_distribution(
                data.get("trade_fee_distribution"), TRADE_FEE_FIELDS, "trade_fee_distribution"
            ),
            borrow_fee_distribution=_distribution(
                data.get("borrow_fee_distribution"), BORROW_FEE_FIELDS, "borrow_fee_distribution"
            ),
            comb_pool_limit=_integer(data.get("comb_pool_limit"), "comb_pool_limit"),
            compartmentalization_time=_integer(
                data.get("compartmentalization_time"), "compartmentalization_time"
            ),
            epoch_duration=None if epoch_duration is None else _integer(epoch_duration, "epoch"),
            pause_deposit=bool(data.get("pause_deposit", False)),
        )


def _struct(data: Optional[typing.Dict], fields: Tuple[str, ...], name: str) -> Tuple[int, ...]:
    """Returns a struct's values in ABI field order."""
    if not isinstance(data, dict):
        raise InvalidNetworkConfig(f"'{name}' must be a mapping of {', '.join(fields)}")
    missing = [field for field in fields if field not in data]
    if missing:
        raise InvalidNetworkConfig(f"'{name}' is missing {', '.join(missing)}")
    return tuple(_integer(data[field], f"{name}.{field}") for field in fields)


def _distribution(data: Optional[typing.Dict], fields: Tuple[str, ...], name: str) -> Tuple[int, ...]:
    values = _struct(data, fields, name)
    if sum(values) != BASIS_POINTS:
        raise InvalidNetworkConfig(f"'{name}' must sum to {BASIS_POINTS}, got {sum(values)}")
    return values


class MultisigParams(NamedTuple):
    owners: List[ChecksumAddress]
    confirmations: int


def validate_multisig(owners: List[Any], confirmations: Any) -> MultisigParams:
    """
    A multisig needs at least one owner and a confirmation threshold
    between one and the number of owners (inclusive).
    """
    if not owners:
        raise InvalidNetworkConfig("'multisig.owners' must list at least one owner.")
    owners = [_checksum(owner, "multisig.owners") for owner in owners]
    if len(set(owners)) != len(owners):
        raise InvalidNetworkConfig("'multisig.owners' contains duplicate owners.")
    confirmations = _integer(confirmations, "multisig.confirmations")
    if not 1 <= confirmations <= len(owners):
        raise InvalidNetworkConfig(
            f"'multisig.confirmations' must be between 1 and {len(owners)}, got {confirmations}"
        )
    return MultisigParams(owners=owners, confirmations=confirmations)


class UpgradeParams(NamedTuple):
    """A diff-based change to the Diamond's function table."""

    facets: List[FacetParams]
    remove: List[str]
    prune: bool
    init: Optional[str]
    init_method: str


def _get_contract_names(config: typing.Dict) -> List[str]:
    contract_names = [name for name, _ in _entries(config, "satellites")]
    contract_names.extend(name for name, _ in _entries(config, "facets"))
    diamond = config.get("diamond")
    if diamond is not None:
        contract_names.append(diamond.get("name", DIAMOND))
        if diamond.get("init"):
            contract_names.append(diamond["init"])
    if config.get("multisig"):
        contract_names.append(MULTISIG_WALLET)
    upgrade = config.get("upgrade") or dict()
    contract_names.extend(name for name, _ in _entries(upgrade, "facets"))
    return contract_names


class NetworkConfig:
    """Validated deployment parameters for a single network."""

    def __init__(self, config: typing.Dict, path: Optional[Path] = None):
        self.path = path
        deployment = config.get("deployment")
        if not deployment:
            raise InvalidNetworkConfig("deployment is not set in params file.")
        if not deployment.get("network"):
            raise InvalidNetworkConfig("network is not set in params file.")
        if not deployment.get("chain_id"):
            raise InvalidNetworkConfig("chain_id is not set in params file.")

        self.network = deployment["network"]
        self.chain_id = _integer(deployment["chain_id"], "chain_id")
        self.deployer = _checksum(deployment.get("deployer"), "deployer")
        self.confirmations = _integer(
            deployment.get("confirmations", DEFAULT_CONFIRMATIONS), "confirmations"
        )
        self.timeout = _integer(deployment.get("timeout", DEFAULT_RECEIPT_TIMEOUT), "timeout")
        self.verify = bool(deployment.get("verify", False))
        self.artifacts_filepath = get_artifact_filepath(config)
        self.subgraph = config.get("subgraph")

        # Little trick to expose constants as attributes (e.g., config.constants.FOO)
        constants = config.get("constants") or dict()
        _Constants = namedtuple("_Constants", list(constants))
        self.constants = _Constants(**constants)

        context = VariableContext(contract_names=_get_contract_names(config), constants=constants)
        self.satellites = self._process_satellites(config, context)
        self.facets = self._process_facets(config, context)
        self.diamond = self._process_diamond(config.get("diamond"), context)

        self.protocol = None
        if config.get("protocol"):
            self.protocol = ProtocolParams.from_config(config["protocol"], context)

        self.multisig = None
        if config.get("multisig"):
            multisig = config["multisig"]
            self.multisig = validate_multisig(
                owners=_process_constant_value(multisig.get("owners"), context),
                confirmations=multisig.get("confirmations"),
            )

        self.transfer_ownership_to = None
        if config.get("transfer_ownership_to"):
            self.transfer_ownership_to = _process_raw_value(config["transfer_ownership_to"], context)

        self.upgrade = None
        if config.get("upgrade"):
            self.upgrade = self._process_upgrade(config["upgrade"], context)

    @classmethod
    def from_yaml(cls, filepath: Path) -> "NetworkConfig":
        config = _load_yaml(filepath)
        if not isinstance(config, dict):
            raise InvalidNetworkConfig(f"Malformed parameters YAML at {filepath}.")
        return cls(config=config, path=filepath)

    @staticmethod
    def _process_satellites(config, context) -> typing.OrderedDict[str, SatelliteParams]:
        satellites = OrderedDict()
        for name, data in _entries(config, "satellites"):
            address = data.get(CONTRACT_ADDRESS_PARAMETER_KEY)
            initialize = _process_raw_value(
                list(data.get(CONTRACT_INITIALIZER_PARAMETER_KEY) or list()), context
            )
            depends_on = list(data.get(DEPENDS_ON_PARAMETER_KEY) or list())
            depends_on.extend(references(initialize))
            satellites[name] = SatelliteParams(
                name=name,
                contract=data.get(CONTRACT_TYPE_PARAMETER_KEY, name),
                address=None if address is None else _process_raw_value(address, context),
                initialize=initialize,
                depends_on=tuple(OrderedDict.fromkeys(depends_on)),
            )
        return satellites

    @staticmethod
    def _process_facets(config, context) -> List[FacetParams]:
        facets = list()
        for name, data in _entries(config, "facets"):
            selectors = data.get("selectors")
            facets.append(
                FacetParams(
                    name=name,
                    contract=data.get(CONTRACT_TYPE_PARAMETER_KEY, name),
                    selectors=None if selectors is None else list(selectors),
                    exclude=tuple(data.get("exclude") or ()),
                )
            )
        return facets

    @staticmethod
    def _process_diamond(data, context) -> Optional[DiamondParams]:
        if data is None:
            return None
        return DiamondParams(
            name=data.get("name", DIAMOND),
            contract=data.get(CONTRACT_TYPE_PARAMETER_KEY, DIAMOND),
            constructor=_process_raw_value(
                list(data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or list()), context
            ),
            init=data.get("init"),
            init_method=data.get("init_method", "init"),
        )

    @classmethod
    def _process_upgrade(cls, data, context) -> UpgradeParams:
        return UpgradeParams(
            facets=cls._process_facets(data, context),
            remove=list(data.get("remove") or list()),
            prune=bool(data.get("prune", False)),
            init=data.get("init"),
            init_method=data.get("init_method", "init"),
        )

    def resolve(self, value: Any, deployer: Optional[str], deployments: Mapping[str, str]) -> Any:
        return _resolve_param(value, deployer, deployments)


def _validate_method_args(
    method_abis: List[MethodABI], args: typing.Sequence[Any]
) -> typing.Dict[str, Any]:
    """Validates the transaction arguments against the function ABI."""
    if len(method_abis) == 0:
        raise InvalidArguments("No method abis provided for validation of args")

    abis_matching_args_length = [abi for abi in method_abis if len(abi.inputs) == len(args)]
    for abi in abis_matching_args_length:
        named_args = {}
        for arg, abi_input in zip(args, abi.inputs):
            if not w3.is_encodable(abi_input.canonical_type, arg):
                break
            named_args[abi_input.name] = arg
        else:
            return named_args
    raise InvalidArguments(
        f"Could not find ABI for '{method_abis[0].name}' with {len(args)} arg(s) and given type(s)"
    )


def _validate_constructor_abi_inputs(
    contract_name: str,
    abi_inputs: List[Any],
    resolved_parameters: typing.Sequence[Any],
) -> OrderedDict:
    """Validates the constructor parameters against the constructor ABI."""
    if len(resolved_parameters) != len(abi_inputs):
        raise InvalidNetworkConfig(
            f"Constructor parameters length mismatch - "
            f"{contract_name} ABI requires {len(abi_inputs)}, Got {len(resolved_parameters)}."
        )

    named_parameters = OrderedDict()
    for position, (abi_input, value) in enumerate(zip(abi_inputs, resolved_parameters)):
        if not w3.is_encodable(abi_input.canonical_type, value):
            raise InvalidNetworkConfig(
                f"Constructor param name '{abi_input.name}' at position {position} has a value "
                f"'{value}' whose type does not match expected ABI type "
                f"'{abi_input.canonical_type}'"
            )
        named_parameters[abi_input.name or str(position)] = value
    return named_parameters


class Transactor:
    """
    Signs and submits contract transactions for one account. Every submission is printed
    with its named arguments and, unless autosign is on, confirmed by the operator first.
    """

    def __init__(
        self,
        account: typing.Optional[AccountAPI] = None,
        tracker: typing.Optional[ConfirmationTracker] = None,
        autosign: bool = False,
    ):
        self._account = account or select_account()
        self.tracker = tracker or ConfirmationTracker()
        self._autosign = autosign
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        if hasattr(self._account, "set_autosign"):
            self._account.set_autosign(autosign)

    @property
    def address(self) -> ChecksumAddress:
        return to_checksum_address(self._account.address)

    def transact(self, method: ContractTransactionHandler, *args) -> ReceiptAPI:
        """Submits a contract transaction; the returned receipt is not yet confirmed."""
        named_args = _validate_method_args(method_abis=method.abis, args=args)
        target = f"{method.contract.contract_type.name}[{method.contract.address[:10]}].{method}"
        if named_args:
            pretty_args = "\n\t".join(f"{k}={v}" for k, v in named_args.items())
            print(f"\nTransacting {target} with arguments:\n\t{pretty_args}")
        else:
            print(f"\nTransacting {target} with no arguments")
        if not self._autosign:
            _continue()

        return self.tracker.submit(method, *args, sender=self._account, description=str(method))

    def confirm(self, receipt: ReceiptAPI, description: str) -> ReceiptAPI:
        """Waits for a submitted transaction and raises unless it succeeded."""
        result = self.tracker.confirm(receipt)
        if not result.success:
            raise TransactionReverted(description, txn_hash=result.txn_hash, reason=result.reason)
        return result.receipt


class Deployer(Transactor):
    """
    Deploys contracts for one account, including satellites behind transparent
    proxies, after validating constructor arguments against the contract ABI.
    """

    def deploy(self, container: ContractContainer, *args, name: str = None) -> ContractInstance:
        contract_name = name or container.contract_type.name
        constructor = container.contract_type.constructor
        resolved_params = _validate_constructor_abi_inputs(
            contract_name=contract_name,
            abi_inputs=constructor.inputs if constructor else list(),
            resolved_parameters=args,
        )
        if not self._autosign:
            _confirm_resolution(resolved_params, contract_name)

        try:
            instance = self._account.deploy(container, *args, required_confirmations=0)
        except ContractLogicError as error:
            raise TransactionReverted(
                f"Deployment of {contract_name}", reason=self.tracker.decode_reason(error)
            ) from error

        result = self.tracker.await_confirmations(instance.txn_hash)
        if not result.success:
            raise TransactionReverted(
                f"Deployment of {contract_name}", txn_hash=result.txn_hash, reason=result.reason
            )
        print(f"{contract_name} deployed to: {instance.address}")
        return instance

    def deploy_proxy(
        self,
        container: ContractContainer,
        *initializer_args,
        initializer: str = "initialize",
        name: str = None,
    ) -> ContractInstance:
        """
        Deploys an implementation behind a TransparentUpgradeableProxy owned by the deployer,
        calling the initializer in the proxy's constructor.
        """
        contract_name = name or container.contract_type.name
        implementation = self.deploy(container, name=f"{contract_name} implementation")

        initializer_method = getattr(implementation, initializer)
        _validate_method_args(method_abis=initializer_method.abis, args=initializer_args)
        data = initializer_method.encode_input(*initializer_args)

        proxy_container = oz_dependency().TransparentUpgradeableProxy
        print(
            f"\nDeploying {proxy_container.contract_type.name} "
            f"contract to proxy {contract_name}."
        )
        proxy_contract = self.deploy(
            proxy_container,
            implementation.address,
            self.address,
            data,
            name=f"{contract_name} proxy",
        )
        print(
            f"\nWrapping {contract_name} into {proxy_container.contract_type.name} "
            f"(as type {container.contract_type.name}) at {proxy_contract.address}."
        )
        return container.at(proxy_contract.address)

    def proxy_admin(self, proxy_address) -> ContractInstance:
        """Returns the ProxyAdmin recorded in the proxy's EIP-1967 admin slot."""
        admin_slot = self.tracker.provider.get_storage_at(
            address=proxy_address, slot=EIP1967_ADMIN_SLOT
        )
        if admin_slot == EMPTY_BYTES32:
            raise InvalidNetworkConfig(
                f"{proxy_address} has an empty EIP-1967 admin slot; it is not a satellite proxy"
            )
        return oz_dependency().ProxyAdmin.at(to_checksum_address(admin_slot[-20:]))

    def upgrade(self, container: ContractContainer, proxy_address, data=b"") -> ContractInstance:
        """
        Deploys a new implementation of a satellite and points its transparent proxy at it.
        Only the owner of the proxy's ProxyAdmin may upgrade; any other signer is rejected
        before the new implementation is deployed.
        """
        proxy_admin = self.proxy_admin(proxy_address)
        admin_owner = to_checksum_address(proxy_admin.owner())
        if admin_owner != self.address:
            raise UnauthorizedDeployer(signer=self.address, expected=admin_owner)

        contract_name = container.contract_type.name
        implementation = self.deploy(container, name=f"{contract_name} implementation")
        receipt = self.transact(
            proxy_admin.upgradeAndCall, proxy_address, implementation.address, data
        )
        self.confirm(receipt, f"Upgrade of {contract_name} proxy at {proxy_address}")
        return container.at(proxy_address)
