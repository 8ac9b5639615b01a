import pytest

from diamond_deploy.bootstrap import DiamondBootstrap
from diamond_deploy.constants import (
    CONSTRUCTOR_PARAMS_DIR,
    DIAMOND_CUT_SELECTOR,
    START_BLOCK_ENTRY,
)
from diamond_deploy.context import RunContext
from diamond_deploy.errors import (
    CutFailed,
    TransactionReverted,
    UnauthorizedDeployer,
    WiringStepFailed,
)
from diamond_deploy.facets import FACET_SELECTORS
from diamond_deploy.params import NetworkConfig
from tests.conftest import DEPLOYER, OTHER_ACCOUNT, FakeDeployer

SATELLITES = ["USDC", "LpToken", "Keeper", "Deposit", "Router", "Escrow", "IncentiveAlloc"]
FACETS = list(FACET_SELECTORS)


@pytest.fixture
def config():
    return NetworkConfig.from_yaml(CONSTRUCTOR_PARAMS_DIR / "hardhat.yml")


@pytest.fixture
def context(signer, address_book):
    return RunContext(signer=signer, network="hardhat", chain_id=31337, address_book=address_book)


@pytest.fixture
def bootstrap(chain, tracker, context, config):
    def _bootstrap(deployer=None, **kwargs):
        return DiamondBootstrap(
            context=context,
            config=config,
            deployer=deployer or FakeDeployer(chain, tracker),
            containers=chain.container,
            **kwargs,
        )

    return _bootstrap


def test_fresh_deployment(bootstrap, chain, address_book):
    records = bootstrap().run()

    assert [r.contract_name for r in records] == SATELLITES + FACETS + ["DiamondInit", "Diamond"]
    assert {r.chain_id for r in records} == {31337}
    book = address_book.section("hardhat")
    for record in records:
        assert book[record.contract_name] == record.address
    assert book[START_BLOCK_ENTRY] == chain.provider.block_number

    # the Diamond is constructed with the deployer as owner and the cut facet
    diamond_args = next(args for name, _, args in chain.deployments if name == "Diamond")
    assert list(diamond_args) == [DEPLOYER, book["DiamondCutFacet"]]

    # one cut installs every declared facet and runs the initializer
    (cut,) = chain.method_calls("diamondCut")
    assert cut[1] == book["DiamondInit"]
    assert cut[2] == b"init"
    assert len(chain.table) == sum(len(s) for s in FACET_SELECTORS.values())
    assert chain.table[DIAMOND_CUT_SELECTOR] == book["DiamondCutFacet"]
    assert chain.table["0x7a0ed627"] == book["DiamondLoupeFacet"]

    # wiring starts right after the cut and points satellites at the Diamond
    first_wiring_call = chain.calls[1]
    assert first_wiring_call == ("Router", "setDiamondContract", (book["Diamond"],))
    assert chain.calls[-1][:2] == ("Deposit", "pause")


def test_unauthorized_signer_deploys_nothing(bootstrap, chain, context, address_book):
    context.signer.address = OTHER_ACCOUNT

    with pytest.raises(UnauthorizedDeployer):
        bootstrap().run()

    assert not chain.deployments
    assert not address_book.filepath.exists()


def test_failed_deployment_still_records(bootstrap, chain, tracker, address_book):
    deployer = FakeDeployer(chain, tracker, fail_on="TradeFacet")

    with pytest.raises(TransactionReverted):
        bootstrap(deployer=deployer).run()

    book = address_book.section("hardhat")
    assert "OwnershipFacet" in book
    assert "TradeFacet" not in book
    assert "Diamond" not in book
    assert START_BLOCK_ENTRY in book


def test_failed_wiring_step_stops_and_records(bootstrap, chain, address_book):
    chain.reverts.add(("VaultFacet", "addRouter"))

    with pytest.raises(WiringStepFailed) as error:
        bootstrap().run()

    assert error.value.description == "Vault.addRouter"
    assert chain.calls[-1][:2] == ("VaultFacet", "addRouter")
    assert "Diamond" in address_book.section("hardhat")


def test_resume_reuses_recorded_contracts(bootstrap, chain, address_book, capsys):
    bootstrap().run()
    deployed = len(chain.deployments)
    book = address_book.section("hardhat")
    wiring_calls = len(chain.calls) - 1

    records = bootstrap(resume=True).run()

    assert not records
    assert len(chain.deployments) == deployed
    assert len(chain.method_calls("diamondCut")) == 1
    assert address_book.section("hardhat") == book

    # without --wiring-start every wiring step is submitted again, with a warning
    assert len(chain.calls) == 1 + 2 * wiring_calls
    assert len(chain.method_calls("addNewAsset")) == 2
    assert "wiring restarts at step 0" in capsys.readouterr().out


def test_resume_with_wiring_start_skips_confirmed_steps(bootstrap, chain, capsys):
    bootstrap().run()
    wiring_calls = len(chain.calls) - 1

    bootstrap(resume=True, wiring_start=wiring_calls).run()

    assert len(chain.calls) == 1 + wiring_calls
    assert len(chain.method_calls("addNewAsset")) == 1
    assert "wiring restarts at step 0" not in capsys.readouterr().out


def test_resume_after_failed_cut(bootstrap, chain, address_book):
    chain.reverts.add(("IDiamondCut", "diamondCut"))
    with pytest.raises(CutFailed):
        bootstrap().run()
    deployed = len(chain.deployments)
    chain.reverts.clear()

    bootstrap(resume=True).run()

    assert len(chain.deployments) == deployed
    cut = chain.method_calls("diamondCut")[-1]
    assert cut[1] == address_book.resolve("hardhat", "DiamondInit")
    assert len(chain.table) == sum(len(s) for s in FACET_SELECTORS.values())
