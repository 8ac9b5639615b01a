from typing import Iterable, Optional


class DeploymentError(Exception):
    """Base class for every fatal orchestration error."""


class InvalidNetworkConfig(DeploymentError):
    """Raised when a network parameters file is malformed or inconsistent."""


class InvalidArguments(DeploymentError, ValueError):
    """Raised when call or constructor arguments do not match any ABI of the target."""


class UnauthorizedDeployer(DeploymentError):
    def __init__(self, signer: str, expected: str):
        self.signer = signer
        self.expected = expected
        super().__init__(
            f"Deployer must be the owner: active signer {signer} does not match "
            f"configured deployer {expected}"
        )


class InvalidCut(DeploymentError):
    """Raised when a facet cut violates its precondition against the current table."""

    def __init__(self, selector: str, message: str):
        self.selector = selector
        super().__init__(f"{selector}: {message}")


class SelectorCollision(InvalidCut):
    def __init__(self, selector: str, existing_facet: str, new_facet: str):
        self.existing_facet = existing_facet
        self.new_facet = new_facet
        super().__init__(
            selector,
            f"selector already assigned to facet {existing_facet}; cannot assign to {new_facet}",
        )


class CyclicDependency(DeploymentError):
    def __init__(self, modules: Iterable[str]):
        self.modules = list(modules)
        super().__init__(f"No deployment order exists; cycle among {', '.join(self.modules)}")


class UnresolvedDependency(DeploymentError):
    def __init__(self, module: str, dependency: str):
        self.module = module
        self.dependency = dependency
        super().__init__(f"{module} depends on unknown module '{dependency}'")


class TransactionReverted(DeploymentError):
    def __init__(self, description: str, txn_hash: Optional[str] = None, reason: str = None):
        self.description = description
        self.txn_hash = txn_hash
        self.reason = reason
        message = f"{description} reverted"
        if txn_hash:
            message += f" (tx {txn_hash})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class TransactionDropped(DeploymentError):
    def __init__(self, txn_hash: str, timeout: int):
        self.txn_hash = txn_hash
        self.timeout = timeout
        super().__init__(
            f"Transaction {txn_hash} was not confirmed within {timeout}s; it was either dropped "
            "or replaced. Inspect the signer's nonce before resubmitting anything."
        )


class CutFailed(DeploymentError):
    def __init__(self, txn_hash: Optional[str], batch, reason: str = None):
        self.txn_hash = txn_hash
        self.batch = batch
        self.reason = reason
        message = f"Diamond cut failed: {txn_hash}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class WiringStepFailed(DeploymentError):
    def __init__(self, index: int, description: str, txn_hash: Optional[str], reason: str = None):
        self.index = index
        self.description = description
        self.txn_hash = txn_hash
        self.reason = reason
        message = f"Wiring step #{index} '{description}' failed (tx {txn_hash})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class RecorderWriteFailed(DeploymentError):
    def __init__(self, filepath, cause: Exception):
        self.filepath = filepath
        self.cause = cause
        super().__init__(f"Could not write address book {filepath}: {cause}")
