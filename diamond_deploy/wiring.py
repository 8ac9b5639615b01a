from functools import partial
from typing import Callable, List, Mapping, NamedTuple, Sequence

from ape.api import ReceiptAPI

from diamond_deploy.constants import DEPOSIT, ESCROW, KEEPER, LP_TOKEN, ROUTER
from diamond_deploy.errors import TransactionReverted, WiringStepFailed
from diamond_deploy.params import ProtocolParams
from diamond_deploy.tracker import ConfirmationTracker


class WiringStep(NamedTuple):
    """One configuration call; `invoke` submits it and returns the unconfirmed receipt."""

    description: str
    invoke: Callable[[], ReceiptAPI]


def _step(transactor, description: str, method, *args) -> WiringStep:
    return WiringStep(description=description, invoke=partial(transactor.transact, method, *args))


class WiringOrchestrator:
    """
    Runs configuration steps strictly one after another.

    A step is only started once the previous step's transaction has been confirmed
    successful; the first failure stops the run and no later step is submitted.
    """

    def __init__(self, tracker: ConfirmationTracker):
        self.tracker = tracker

    def run(self, steps: Sequence[WiringStep], start: int = 0) -> List[ReceiptAPI]:
        if not 0 <= start <= len(steps):
            raise ValueError(f"Wiring start index {start} is out of range (0-{len(steps)})")
        if start and start == len(steps):
            print("(i) All wiring steps already completed.")
        elif start:
            print(f"(i) Resuming wiring at step #{start}: {steps[start].description}")

        receipts = list()
        for index in range(start, len(steps)):
            step = steps[index]
            print(f"\n[{index + 1}/{len(steps)}] {step.description}")
            try:
                receipt = step.invoke()
            except TransactionReverted as error:
                raise WiringStepFailed(
                    index=index,
                    description=step.description,
                    txn_hash=error.txn_hash,
                    reason=error.reason,
                ) from error

            result = self.tracker.confirm(receipt)
            if not result.success:
                raise WiringStepFailed(
                    index=index,
                    description=step.description,
                    txn_hash=result.txn_hash,
                    reason=result.reason,
                )
            receipts.append(result.receipt)
        return receipts


def protocol_wiring_steps(
    transactor,
    vault,
    satellites: Mapping,
    base_token: str,
    protocol: ProtocolParams,
) -> List[WiringStep]:
    """
    Builds the protocol's post-cut configuration sequence.

    `vault` is the Diamond addressed through the vault facet's ABI and `satellites`
    maps satellite names to their (proxied) contract instances.
    """
    diamond_address = vault.address
    router = satellites[ROUTER]
    escrow = satellites[ESCROW]
    lp_token = satellites[LP_TOKEN]
    keeper = satellites[KEEPER]
    deposit = satellites[DEPOSIT]

    steps = [
        _step(transactor, "Router.setDiamondContract", router.setDiamondContract, diamond_address),
        _step(transactor, "Escrow.setDiamondContract", escrow.setDiamondContract, diamond_address),
        _step(
            transactor,
            "Vault.addNewAsset",
            vault.addNewAsset,
            protocol.asset_addresses,
            protocol.asset_weights,
        ),
        _step(
            transactor,
            "Vault.addInterestRateParams",
            vault.addInterestRateParams,
            [(asset, *protocol.interest_rate) for asset in protocol.asset_addresses],
        ),
        _step(transactor, "Vault.addSequencer", vault.addSequencer, protocol.sequencers),
        _step(transactor, "Vault.addRouter", vault.addRouter, router.address),
    ]

    for liquidator in protocol.liquidators:
        steps.append(
            _step(
                transactor,
                f"Vault.addProtocolLiquidator({liquidator})",
                vault.addProtocolLiquidator,
                liquidator,
            )
        )

    steps.extend(
        [
            _step(transactor, "Vault.addLpTokenContract", vault.addLpTokenContract, lp_token.address),
            _step(transactor, "Vault.addKeeperContract", vault.addKeeperContract, keeper.address),
            _step(transactor, "Vault.addDepositContract", vault.addDepositContract, deposit.address),
            _step(transactor, "Vault.setUSDCContract", vault.setUSDCContract, base_token),
            _step(
                transactor,
                "Vault.addCompartmentalizationTime",
                vault.addCompartmentalizationTime,
                protocol.compartmentalization_time,
            ),
        ]
    )

    if protocol.epoch_duration is not None:
        steps.append(
            _step(
                transactor,
                "Vault.updateEpochDuration",
                vault.updateEpochDuration,
                protocol.epoch_duration,
            )
        )

    for asset in protocol.assets:
        steps.extend(
            [
                _step(
                    transactor,
                    f"Vault.updateLiquidationLeverage({asset.symbol})",
                    vault.updateLiquidationLeverage,
                    asset.address,
                    asset.liquidation_leverage,
                ),
                _step(
                    transactor,
                    f"Vault.addOptimalUtilization({asset.symbol})",
                    vault.addOptimalUtilization,
                    asset.optimal_utilization,
                    asset.address,
                ),
                _step(
                    transactor,
                    f"Vault.setADLPercentage({asset.symbol})",
                    vault.setADLPercentage,
                    asset.address,
                    asset.adl_percentage,
                ),
            ]
        )

    steps.extend(
        [
            _step(transactor, "Vault.addEscrow", vault.addEscrow, escrow.address),
            _step(
                transactor,
                "Vault.updateCombPoolLimit",
                vault.updateCombPoolLimit,
                protocol.comb_pool_limit,
            ),
            _step(transactor, "LpToken.setDiamondAddress", lp_token.setDiamondAddress, diamond_address),
            _step(transactor, "Keeper.setDiamondContract", keeper.setDiamondContract, diamond_address),
            _step(
                transactor,
                "Keeper.updateTradingFeeDistribution",
                keeper.updateTradingFeeDistribution,
                protocol.trade_fee_distribution,
            ),
            _step(
                transactor,
                "Keeper.updateBorrowingFeeDistribution",
                keeper.updateBorrowingFeeDistribution,
                protocol.borrow_fee_distribution,
            ),
            _step(transactor, "Deposit.setDiamondContract", deposit.setDiamondContract, diamond_address),
        ]
    )

    if protocol.pause_deposit:
        steps.append(_step(transactor, "Deposit.pause", deposit.pause))

    return steps


# Contracts whose ownership moves together with the Diamond's.
OWNED_SATELLITES = (DEPOSIT, ROUTER, ESCROW, KEEPER, LP_TOKEN)


def ownership_transfer_steps(
    transactor,
    ownership,
    satellites: Mapping,
    new_owner: str,
) -> List[WiringStep]:
    """`ownership` is the Diamond addressed through the ownership facet's ABI."""
    steps = [
        _step(
            transactor,
            f"Diamond.transferOwnership({new_owner})",
            ownership.transferOwnership,
            new_owner,
        )
    ]
    for name in OWNED_SATELLITES:
        if name not in satellites:
            continue
        steps.append(
            _step(
                transactor,
                f"{name}.transferOwnership({new_owner})",
                satellites[name].transferOwnership,
                new_owner,
            )
        )
    return steps
