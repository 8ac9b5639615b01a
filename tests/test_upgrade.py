import pytest
from ape.utils import ZERO_ADDRESS

from diamond_deploy.bootstrap import DiamondBootstrap
from diamond_deploy.constants import CONSTRUCTOR_PARAMS_DIR, FacetCutAction
from diamond_deploy.context import RunContext
from diamond_deploy.errors import InvalidNetworkConfig
from diamond_deploy.facets import TRADE_FACET_SELECTORS, VAULT_FACET_SELECTORS
from diamond_deploy.params import NetworkConfig
from diamond_deploy.upgrade import FacetUpgrade, target_facets
from diamond_deploy.utils import _load_yaml
from tests.conftest import DEPLOYER, FakeDeployer, facet

NEW_VAULT_SELECTOR = "0xeed18491"


def upgrade_config(**upgrade):
    return NetworkConfig(
        {
            "deployment": {"network": "hardhat", "chain_id": 31337, "deployer": DEPLOYER},
            "upgrade": upgrade,
        }
    )


@pytest.fixture
def context(signer, address_book):
    return RunContext(signer=signer, network="hardhat", chain_id=31337, address_book=address_book)


@pytest.fixture
def deployed(chain, tracker, context):
    """A wired deployment whose VaultFacet does not serve moveCollateralFromRemovedAsset yet."""
    raw_config = _load_yaml(CONSTRUCTOR_PARAMS_DIR / "hardhat.yml")
    facets = raw_config["facets"]
    facets[facets.index("VaultFacet")] = {"VaultFacet": {"exclude": [NEW_VAULT_SELECTOR]}}
    DiamondBootstrap(
        context=context,
        config=NetworkConfig(raw_config),
        deployer=FakeDeployer(chain, tracker),
        containers=chain.container,
    ).run()
    assert NEW_VAULT_SELECTOR not in chain.table
    return context.address_book.section("hardhat")


def run_upgrade(chain, tracker, context, config):
    return FacetUpgrade(
        context=context,
        config=config,
        deployer=FakeDeployer(chain, tracker),
        containers=chain.container,
    ).run()


def test_target_facets_overlay():
    current = [facet("A", 1, "0x00000001", "0x00000002"), facet("B", 2, "0x00000003")]
    new = [facet("A", 3, "0x00000002", "0x00000004")]

    assert target_facets(current, new) == [
        facet("A", 1, "0x00000001"),
        facet("B", 2, "0x00000003"),
        facet("A", 3, "0x00000002", "0x00000004"),
    ]
    assert target_facets(current, new, prune=True) == [
        facet("B", 2, "0x00000003"),
        facet("A", 3, "0x00000002", "0x00000004"),
    ]
    assert target_facets(current, new, remove=["0x00000003"]) == [
        facet("A", 1, "0x00000001"),
        facet("A", 3, "0x00000002", "0x00000004"),
    ]


def test_vault_upgrade_adds_selector(chain, tracker, context, deployed):
    before = dict(chain.table)
    config = NetworkConfig.from_yaml(CONSTRUCTOR_PARAMS_DIR / "upgrades" / "seiTestnet-vault.yml")
    config.network = "hardhat"
    config.chain_id = 31337
    config.deployer = DEPLOYER

    (record,) = run_upgrade(chain, tracker, context, config)

    cuts, init_address, _ = chain.method_calls("diamondCut")[-1]
    assert cuts == [(record.address, FacetCutAction.ADD, [bytes.fromhex(NEW_VAULT_SELECTOR[2:])])]
    assert init_address == ZERO_ADDRESS
    assert chain.table[NEW_VAULT_SELECTOR] == record.address
    assert {s: a for s, a in chain.table.items() if s != NEW_VAULT_SELECTOR} == before
    assert chain.table[VAULT_FACET_SELECTORS[0]] == deployed["VaultFacet"]

    # latest VaultFacet wins in the address book
    assert context.address_book.resolve("hardhat", "VaultFacet") == record.address


def test_trade_upgrade_with_prune(chain, tracker, context, deployed):
    kept = TRADE_FACET_SELECTORS[:10]
    config = upgrade_config(facets=[{"TradeFacet": {"selectors": kept}}], prune=True)

    (record,) = run_upgrade(chain, tracker, context, config)

    cuts = chain.method_calls("diamondCut")[-1][0]
    assert [(facet_address, action) for facet_address, action, _ in cuts] == [
        (record.address, FacetCutAction.REPLACE),
        (ZERO_ADDRESS, FacetCutAction.REMOVE),
    ]
    assert all(chain.table[s] == record.address for s in kept)
    assert not any(s in chain.table for s in TRADE_FACET_SELECTORS[10:])
    assert deployed["TradeFacet"] not in chain.table.values()


def test_upgrade_with_initializer(chain, tracker, context, deployed):
    config = upgrade_config(facets=["ViewFacet"], init="DiamondInit")

    records = run_upgrade(chain, tracker, context, config)

    assert [r.contract_name for r in records] == ["ViewFacet", "DiamondInit"]
    _, init_address, init_calldata = chain.method_calls("diamondCut")[-1]
    assert init_address == records[1].address
    assert init_calldata == b"init"


def test_upgrade_requires_recorded_diamond(chain, tracker, context):
    with pytest.raises(InvalidNetworkConfig, match="No Diamond recorded"):
        run_upgrade(chain, tracker, context, upgrade_config(facets=["ViewFacet"]))
    assert not chain.deployments


def test_remove_selectors(chain, tracker, context, deployed):
    config = upgrade_config(remove=[TRADE_FACET_SELECTORS[0]])

    assert run_upgrade(chain, tracker, context, config) == []

    cuts = chain.method_calls("diamondCut")[-1][0]
    assert cuts == [(ZERO_ADDRESS, FacetCutAction.REMOVE, [bytes.fromhex(TRADE_FACET_SELECTORS[0][2:])])]
    assert TRADE_FACET_SELECTORS[0] not in chain.table
