from types import SimpleNamespace

import pytest
from ape.exceptions import ContractLogicError
from eth_utils import to_checksum_address

from diamond_deploy.constants import DIAMOND, DIAMOND_CUT_SELECTOR, FacetCutAction
from diamond_deploy.errors import TransactionReverted
from diamond_deploy.registry import AddressBook
from diamond_deploy.selectors import Facet
from diamond_deploy.tracker import ConfirmationTracker

# Common constants
DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OTHER_ACCOUNT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
ZERO = "0x0000000000000000000000000000000000000000"


# Utility functions
def address(n: int) -> str:
    return to_checksum_address(f"0x{n:040x}")


def facet(name: str, n: int, *selectors) -> Facet:
    return Facet.create(name, address(n), selectors)


# Fakes
class FakeReceipt:
    def __init__(self, txn_hash: str, status: int = 1, error=None):
        self.txn_hash = txn_hash
        self.status = status
        self.error = error


class FakeProvider:
    """Serves receipts by hash; `failures` queues exceptions raised by the next queries."""

    def __init__(self):
        self.receipts = dict()
        self.failures = list()
        self.queries = list()
        self.block_number = 100
        self.storage = dict()

    def get_receipt(self, txn_hash, required_confirmations=0, timeout=None):
        self.queries.append((txn_hash, required_confirmations, timeout))
        if self.failures:
            raise self.failures.pop(0)
        return self.receipts[txn_hash]

    def get_block(self, block_id):
        return SimpleNamespace(number=self.block_number)

    def get_storage_at(self, address, slot):
        return self.storage[(address, slot)]


class FakeMethod:
    def __init__(self, contract, name):
        self.contract = contract
        self.name = name
        self.abis = contract.abis.get(name, [])

    def __call__(self, *args, **kwargs):
        self.contract.chain.submissions.append(kwargs)
        return self.contract.chain.call(self.contract, self.name, args)

    def encode_input(self, *args) -> bytes:
        return self.name.encode()

    def __str__(self):
        return f"{self.name}()"


class FakeContract:
    def __init__(self, chain, name, address, abis=None):
        self.chain = chain
        self.address = address
        self.abis = abis or dict()
        self.contract_type = SimpleNamespace(name=name)

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return FakeMethod(self, name)


class FakeContainer:
    """`abis` maps method names to their MethodABIs; `constructor` is a ConstructorABI."""

    def __init__(self, chain, name, abis=None, constructor=None):
        self.chain = chain
        self.abis = abis or dict()
        self.contract_type = SimpleNamespace(name=name, constructor=constructor)

    def at(self, address):
        return FakeContract(self.chain, self.contract_type.name, address, abis=self.abis)


class FakeChain:
    """
    A single in-memory chain: contract calls become receipts served by the provider,
    and the Diamond's function table follows the diamondCut calls it receives.
    """

    def __init__(self):
        self.provider = FakeProvider()
        self.calls = list()
        self.submissions = list()
        self.deployments = list()
        self.reverts = set()
        self.rejects = set()
        self.table = dict()
        self.cut = False
        self._next_address = 0x1000

    def new_address(self) -> str:
        self._next_address += 1
        return address(self._next_address)

    def container(self, name: str, abis=None, constructor=None) -> FakeContainer:
        return FakeContainer(self, name, abis=abis, constructor=constructor)

    def receipt(self, status: int = 1) -> FakeReceipt:
        receipt = FakeReceipt(f"0x{len(self.provider.receipts) + 1:064x}", status=status)
        self.provider.receipts[receipt.txn_hash] = receipt
        return receipt

    def call(self, contract, method, args):
        if method == "facets":
            if not self.cut:
                raise ContractLogicError("Diamond: Function does not exist")
            grouped = dict()
            for selector, owner in self.table.items():
                grouped.setdefault(owner, []).append(bytes.fromhex(selector[2:]))
            return list(grouped.items())

        if (contract.contract_type.name, method) in self.rejects:
            raise ContractLogicError("execution reverted: Unauthorized()")
        self.calls.append((contract.contract_type.name, method, args))
        status = 0 if (contract.contract_type.name, method) in self.reverts else 1
        if method == "diamondCut" and status:
            self._apply(args[0])
        return self.receipt(status=status)

    def _apply(self, cuts):
        self.cut = True
        for facet_address, action, selectors in cuts:
            for selector in selectors:
                selector = "0x" + selector.hex()
                if action == FacetCutAction.REMOVE:
                    del self.table[selector]
                else:
                    self.table[selector] = facet_address

    def method_calls(self, method: str):
        return [args for _, name, args in self.calls if name == method]


class FakeAccount:
    """Signs for the chain; deployments are confirmed like any other transaction."""

    def __init__(self, chain, address=DEPLOYER):
        self.chain = chain
        self.address = address

    def deploy(self, container, *args, **kwargs):
        instance = container.at(self.chain.new_address())
        instance.txn_hash = self.chain.receipt().txn_hash
        name = container.contract_type.name
        self.chain.deployments.append((name, name, args))
        return instance


class FakeDeployer:
    """Deploys fake contracts; transactions go straight to the chain."""

    def __init__(self, chain, tracker, fail_on=None):
        self.chain = chain
        self.tracker = tracker
        self.fail_on = fail_on

    def deploy(self, container, *args, name=None):
        name = name or container.contract_type.name
        if name == self.fail_on:
            raise TransactionReverted(f"Deployment of {name}", txn_hash="0xdead", reason="out of gas")
        instance = container.at(self.chain.new_address())
        self.chain.deployments.append((name, container.contract_type.name, args))
        if container.contract_type.name == DIAMOND:
            self.chain.table = {DIAMOND_CUT_SELECTOR: args[1]}
        return instance

    def deploy_proxy(self, container, *args, initializer="initialize", name=None):
        return self.deploy(container, *args, name=name)

    def transact(self, method, *args):
        return method(*args)


# Fixtures
@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def provider(chain):
    return chain.provider


@pytest.fixture
def tracker(provider):
    return ConfirmationTracker(provider=provider, sleep=lambda seconds: None)


@pytest.fixture
def transactor(chain, tracker):
    return FakeDeployer(chain, tracker)


@pytest.fixture
def address_book(tmp_path):
    return AddressBook(tmp_path / "artifacts" / "networkMapping.json")


@pytest.fixture
def signer():
    return SimpleNamespace(address=DEPLOYER)
