import sys
from typing import Mapping

from ape.utils import ZERO_ADDRESS

from diamond_deploy.constants import FacetCutAction


def _ask(question: str) -> None:
    """Stops the run unless the operator answers anything but N."""
    answer = input(f"{question} Y/N? ")
    if answer.strip().lower() == "n":
        print("Aborting deployment!")
        sys.exit(-1)


def _continue() -> None:
    _ask("Continue")


def _confirm_resolution(resolved_params: Mapping, contract_name: str) -> None:
    """Shows the resolved constructor arguments of a contract before it is deployed."""
    if resolved_params:
        print(f"\nConstructor parameters for {contract_name}")
        for name, value in resolved_params.items():
            print(f"\t{name}={value}")
    else:
        print(f"\n(i) No constructor parameters for {contract_name}")

    _ask(f"Deploy {contract_name}")
    zero_params = [name for name, value in resolved_params.items() if value == ZERO_ADDRESS]
    if zero_params:
        _ask(f"{', '.join(zero_params)} resolved to the zero address; continue")


def _print_cut(batch, describe=str) -> None:
    print(f"\nDiamond cut with {len(batch.cuts)} facet cut(s):")
    for cut in batch.cuts:
        action = FacetCutAction(cut.action).name
        print(f"\t{action:<7} {len(cut.selectors):>3} selector(s) -> {describe(cut.facet_address)}")
    if batch.init_address != ZERO_ADDRESS:
        print(f"\tinit    {batch.init_address} ({len(batch.init_calldata)} bytes calldata)")
