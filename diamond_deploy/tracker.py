import time
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional

import requests
from ape import networks
from ape.api import ReceiptAPI
from ape.exceptions import ContractLogicError, ProviderError, TransactionNotFoundError
from web3.exceptions import TimeExhausted

from diamond_deploy.constants import (
    DEFAULT_CONFIRMATIONS,
    DEFAULT_RECEIPT_TIMEOUT,
    RECEIPT_QUERY_BACKOFF,
    RECEIPT_QUERY_RETRIES,
    SUCCESS_STATUS,
)
from diamond_deploy.errors import TransactionDropped, TransactionReverted

# Failures while *querying* a receipt; never a reason to resubmit.
TRANSIENT_QUERY_ERRORS = (
    ProviderError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


class TxOutcome(Enum):
    # a dropped transaction has no result; it raises TransactionDropped
    SUCCESS = "success"
    REVERTED = "reverted"


class TransactionResult(NamedTuple):
    outcome: TxOutcome
    txn_hash: str
    receipt: Optional[ReceiptAPI]
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == TxOutcome.SUCCESS


class ConfirmationTracker:
    """
    Submits transactions for a single signer and waits for them to reach a terminal state.

    Only receipt *queries* are retried. A transaction that never shows up within the
    timeout is reported as dropped and is never resubmitted with a fresh nonce.
    """

    def __init__(
        self,
        provider=None,
        confirmations: int = DEFAULT_CONFIRMATIONS,
        timeout: int = DEFAULT_RECEIPT_TIMEOUT,
        query_retries: int = RECEIPT_QUERY_RETRIES,
        backoff: float = RECEIPT_QUERY_BACKOFF,
        error_signatures: Optional[Dict[str, str]] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self._provider = provider
        self.confirmations = confirmations
        self.timeout = timeout
        self.query_retries = query_retries
        self.backoff = backoff
        self.error_signatures = error_signatures or dict()
        self._sleep = sleep

    @property
    def provider(self):
        return self._provider or networks.provider

    def submit(self, method, *args, sender, description: str = None, **kwargs) -> ReceiptAPI:
        """Sends a contract transaction without waiting for confirmations."""
        try:
            return method(
                *args,
                sender=sender,
                required_confirmations=0,
                raise_on_revert=False,
                **kwargs,
            )
        except ContractLogicError as error:
            # rejected before broadcast (e.g. during gas estimation)
            raise TransactionReverted(
                description=description or str(method),
                txn_hash=None,
                reason=self.decode_reason(error),
            ) from error

    def await_confirmations(
        self, txn_hash: str, min_confirmations: Optional[int] = None
    ) -> TransactionResult:
        confirmations = self.confirmations if min_confirmations is None else min_confirmations
        attempt = 0
        while True:
            try:
                receipt = self.provider.get_receipt(
                    txn_hash, required_confirmations=confirmations, timeout=self.timeout
                )
                break
            except (TransactionNotFoundError, TimeExhausted) as error:
                raise TransactionDropped(txn_hash=txn_hash, timeout=self.timeout) from error
            except TRANSIENT_QUERY_ERRORS as error:
                attempt += 1
                if attempt > self.query_retries:
                    raise
                print(
                    f"(!) Receipt query for {txn_hash} failed ({error}); "
                    f"retrying {attempt}/{self.query_retries}..."
                )
                self._sleep(self.backoff)

        return self.classify(receipt)

    def confirm(self, receipt: ReceiptAPI) -> TransactionResult:
        return self.await_confirmations(receipt.txn_hash)

    def classify(self, receipt: ReceiptAPI) -> TransactionResult:
        if receipt.status == SUCCESS_STATUS:
            return TransactionResult(TxOutcome.SUCCESS, receipt.txn_hash, receipt)
        reason = self.decode_reason(getattr(receipt, "error", None))
        return TransactionResult(TxOutcome.REVERTED, receipt.txn_hash, receipt, reason)

    def decode_reason(self, error) -> Optional[str]:
        """Returns a readable revert reason, resolving custom error selectors when known."""
        if error is None:
            return None
        message = getattr(error, "revert_message", None) or str(error)
        candidate = message.strip().lower()
        if candidate.startswith("0x") and len(candidate) >= 10:
            signature = self.error_signatures.get(candidate[:10])
            if signature:
                return signature
        return message
