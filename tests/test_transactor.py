from types import SimpleNamespace

import pytest
from ape.utils import EMPTY_BYTES32, ZERO_ADDRESS
from ethpm_types import ConstructorABI, MethodABI

from diamond_deploy import params
from diamond_deploy.constants import (
    CONSTRUCTOR_PARAMS_DIR,
    DIAMOND_CUT_SELECTOR,
    EIP1967_ADMIN_SLOT,
    FacetCutAction,
)
from diamond_deploy.cut import CutExecutor
from diamond_deploy.errors import (
    CutFailed,
    DeploymentError,
    InvalidArguments,
    InvalidNetworkConfig,
    TransactionReverted,
    UnauthorizedDeployer,
)
from diamond_deploy.params import (
    INTEREST_RATE_FIELDS,
    TRADE_FEE_FIELDS,
    Deployer,
    NetworkConfig,
    _validate_method_args,
)
from diamond_deploy.selectors import CutBatch, FacetCut, SelectorRegistry
from tests.conftest import DEPLOYER, OTHER_ACCOUNT, FakeAccount, address, facet


def method_abi(name, *inputs):
    return MethodABI.model_validate(
        {
            "type": "function",
            "name": name,
            "stateMutability": "nonpayable",
            "inputs": list(inputs),
            "outputs": [],
        }
    )


def constructor_abi(*inputs):
    return ConstructorABI.model_validate(
        {"type": "constructor", "stateMutability": "nonpayable", "inputs": list(inputs)}
    )


def uint256(name):
    return {"name": name, "type": "uint256"}


def address_input(name):
    return {"name": name, "type": "address"}


DIAMOND_CUT_ABI = method_abi(
    "diamondCut",
    {
        "name": "_diamondCut",
        "type": "tuple[]",
        "internalType": "struct IDiamondCut.FacetCut[]",
        "components": [
            address_input("facetAddress"),
            {"name": "action", "type": "uint8", "internalType": "enum IDiamondCut.FacetCutAction"},
            {"name": "functionSelectors", "type": "bytes4[]"},
        ],
    },
    address_input("_init"),
    {"name": "_calldata", "type": "bytes"},
)

INTEREST_RATE_ABI = method_abi(
    "addInterestRateParams",
    {
        "name": "_params",
        "type": "tuple[]",
        "components": [address_input("asset")] + [uint256(f) for f in INTEREST_RATE_FIELDS],
    },
)

TRADE_FEE_ABI = method_abi(
    "updateTradingFeeDistribution",
    {
        "name": "_distribution",
        "type": "tuple",
        "components": [uint256(f) for f in TRADE_FEE_FIELDS],
    },
)

BORROW_FEE_ABI = method_abi(
    "updateBorrowingFeeDistribution",
    {
        "name": "_distribution",
        "type": "tuple",
        "components": [uint256("lp"), uint256("protocolTreasury")],
    },
)

UPGRADE_AND_CALL_ABI = method_abi(
    "upgradeAndCall",
    address_input("proxy"),
    address_input("implementation"),
    {"name": "data", "type": "bytes"},
)


@pytest.fixture
def deployer(chain, tracker):
    return Deployer(account=FakeAccount(chain), tracker=tracker, autosign=True)


@pytest.fixture
def protocol():
    return NetworkConfig.from_yaml(CONSTRUCTOR_PARAMS_DIR / "hardhat.yml").protocol


@pytest.fixture
def diamond(chain):
    return chain.container("IDiamondCut", abis={"diamondCut": [DIAMOND_CUT_ABI]}).at(address(100))


def add_batch(*selectors):
    return CutBatch(cuts=(FacetCut(address(2), FacetCutAction.ADD, tuple(selectors)),))


def test_diamond_cut_payload_matches_abi():
    batch = add_batch("0x00000001", "0x00000002")

    named = _validate_method_args([DIAMOND_CUT_ABI], (batch.encode(), ZERO_ADDRESS, b""))

    assert list(named) == ["_diamondCut", "_init", "_calldata"]
    assert named["_diamondCut"] == batch.encode()


def test_protocol_structs_match_abi(protocol):
    interest_rates = [(asset, *protocol.interest_rate) for asset in protocol.asset_addresses]

    assert _validate_method_args([INTEREST_RATE_ABI], (interest_rates,))
    assert _validate_method_args([TRADE_FEE_ABI], (protocol.trade_fee_distribution,))
    assert _validate_method_args([BORROW_FEE_ABI], (protocol.borrow_fee_distribution,))


def test_mismatched_struct_is_a_deployment_error(protocol):
    # a distribution with a field missing
    with pytest.raises(InvalidArguments) as error:
        _validate_method_args([TRADE_FEE_ABI], (protocol.trade_fee_distribution[:4],))
    assert isinstance(error.value, DeploymentError)


def test_cut_submitted_through_transactor(deployer, chain, diamond):
    registry = SelectorRegistry.for_new_diamond(facet("DiamondCutFacet", 1, DIAMOND_CUT_SELECTOR))
    batch = add_batch("0x00000001")

    CutExecutor(transactor=deployer, diamond=diamond, registry=registry).execute(batch)

    assert chain.method_calls("diamondCut") == [(batch.encode(), ZERO_ADDRESS, b"")]
    (submission,) = chain.submissions
    assert submission["sender"].address == DEPLOYER
    assert submission["required_confirmations"] == 0
    assert submission["raise_on_revert"] is False
    assert registry.owner("0x00000001") == address(2)


def test_reverted_cut_through_transactor(deployer, chain, diamond):
    registry = SelectorRegistry.for_new_diamond(facet("DiamondCutFacet", 1, DIAMOND_CUT_SELECTOR))
    chain.reverts.add(("IDiamondCut", "diamondCut"))

    with pytest.raises(CutFailed) as error:
        CutExecutor(transactor=deployer, diamond=diamond, registry=registry).execute(
            add_batch("0x00000001")
        )

    assert error.value.txn_hash in chain.provider.receipts
    assert "0x00000001" not in registry


def test_call_rejected_before_broadcast(deployer, chain, protocol):
    keeper = chain.container("Keeper", abis={"updateTradingFeeDistribution": [TRADE_FEE_ABI]})
    chain.rejects.add(("Keeper", "updateTradingFeeDistribution"))

    with pytest.raises(TransactionReverted) as error:
        deployer.transact(
            keeper.at(address(5)).updateTradingFeeDistribution, protocol.trade_fee_distribution
        )

    assert error.value.txn_hash is None
    assert "Unauthorized()" in error.value.reason
    assert not chain.calls


def test_deploy_validates_constructor_and_waits(deployer, chain):
    multisig = chain.container(
        "MultiSigWallet",
        constructor=constructor_abi(
            {"name": "_owners", "type": "address[]"}, uint256("_required")
        ),
    )

    instance = deployer.deploy(multisig, [DEPLOYER, OTHER_ACCOUNT], 2)

    assert chain.deployments == [
        ("MultiSigWallet", "MultiSigWallet", ([DEPLOYER, OTHER_ACCOUNT], 2))
    ]
    assert chain.provider.queries[-1][0] == instance.txn_hash

    with pytest.raises(InvalidNetworkConfig):
        deployer.deploy(multisig, "not-an-address-list", 2)
    assert len(chain.deployments) == 1


def test_deploy_proxy(deployer, chain, monkeypatch):
    proxy = chain.container(
        "TransparentUpgradeableProxy",
        constructor=constructor_abi(
            address_input("_logic"),
            address_input("initialOwner"),
            {"name": "_data", "type": "bytes"},
        ),
    )
    monkeypatch.setattr(
        params, "oz_dependency", lambda: SimpleNamespace(TransparentUpgradeableProxy=proxy)
    )
    initialize = method_abi("initialize", *(address_input(f"_a{i}") for i in range(3)))
    keeper = chain.container("Keeper", abis={"initialize": [initialize]})

    instance = deployer.deploy_proxy(keeper, address(1), address(2), address(3), name="Keeper")

    (implementation, _, _), (proxy_name, _, proxy_args) = chain.deployments
    assert (implementation, proxy_name) == ("Keeper", "TransparentUpgradeableProxy")
    assert proxy_args[1:] == (DEPLOYER, b"initialize")
    assert instance.contract_type.name == "Keeper"
    assert instance.address != proxy_args[0]


@pytest.fixture
def proxy_admin(chain, monkeypatch):
    """A ProxyAdmin at address(7), recorded in the admin slot of the proxy at address(8)."""
    admin = chain.container("ProxyAdmin", abis={"upgradeAndCall": [UPGRADE_AND_CALL_ABI]}).at(
        address(7)
    )
    admin.owner = lambda: DEPLOYER
    chain.provider.storage[(address(8), EIP1967_ADMIN_SLOT)] = bytes(12) + bytes.fromhex(
        address(7)[2:]
    )
    monkeypatch.setattr(
        params,
        "oz_dependency",
        lambda: SimpleNamespace(ProxyAdmin=SimpleNamespace(at=lambda _: admin)),
    )
    return admin


def test_upgrade_by_admin_owner(deployer, chain, proxy_admin):
    keeper = chain.container("Keeper")

    upgraded = deployer.upgrade(keeper, address(8))

    assert len(chain.deployments) == 1
    ((proxy, implementation, data),) = chain.method_calls("upgradeAndCall")
    assert (proxy, data) == (address(8), b"")
    assert implementation != address(8)
    assert upgraded.address == address(8)


def test_upgrade_rejects_signer_not_owning_proxy_admin(deployer, chain, proxy_admin):
    proxy_admin.owner = lambda: OTHER_ACCOUNT

    with pytest.raises(UnauthorizedDeployer) as error:
        deployer.upgrade(chain.container("Keeper"), address(8))

    assert error.value.expected == OTHER_ACCOUNT
    assert not chain.deployments
    assert not chain.calls


def test_upgrade_requires_eip1967_proxy(deployer, chain, proxy_admin):
    chain.provider.storage[(address(9), EIP1967_ADMIN_SLOT)] = EMPTY_BYTES32

    with pytest.raises(InvalidNetworkConfig):
        deployer.upgrade(chain.container("Keeper"), address(9))
    assert not chain.deployments
