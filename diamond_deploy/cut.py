from typing import Mapping, Optional

from ape.api import ReceiptAPI
from eth_utils import to_checksum_address

from diamond_deploy.confirm import _print_cut
from diamond_deploy.errors import CutFailed, TransactionReverted
from diamond_deploy.selectors import CutBatch, SelectorRegistry


class CutExecutor:
    """
    Installs, replaces and removes Diamond functions with a single diamondCut transaction.

    Cuts are checked against the registry's view of the current table before anything is
    submitted. The registry only changes once the cut transaction is confirmed successful.
    """

    def __init__(self, transactor, diamond, registry: SelectorRegistry, tracker=None):
        self.transactor = transactor
        self.diamond = diamond
        self.registry = registry
        self.tracker = tracker or transactor.tracker

    def _describe(self, names: Mapping[str, str]):
        names = {to_checksum_address(a): n for a, n in names.items()}

        def describe(address: str) -> str:
            if address in names:
                return f"{names[address]} ({address})"
            return self.registry.describe(address)

        return describe

    def execute(
        self,
        batch: CutBatch,
        init_address: Optional[str] = None,
        init_calldata: bytes = b"",
        names: Optional[Mapping[str, str]] = None,
    ) -> Optional[ReceiptAPI]:
        names = names or dict()
        if init_address is not None:
            batch = batch.with_initializer(init_address, init_calldata)
        if batch.is_empty:
            print("(i) Function table already matches the requested facets; nothing to cut.")
            return None

        # raises before submission if any cut would be rejected on-chain
        self.registry.validate(batch)
        _print_cut(batch, describe=self._describe(names))

        try:
            receipt = self.transactor.transact(
                self.diamond.diamondCut,
                batch.encode(),
                batch.init_address,
                batch.init_calldata,
            )
        except TransactionReverted as error:
            raise CutFailed(txn_hash=error.txn_hash, batch=batch, reason=error.reason) from error

        print(f"Diamond cut tx: {receipt.txn_hash}")
        result = self.tracker.confirm(receipt)
        if not result.success:
            raise CutFailed(txn_hash=result.txn_hash, batch=batch, reason=result.reason)

        self.registry.apply(batch, names=names)
        print("Completed diamond cut")
        return result.receipt
