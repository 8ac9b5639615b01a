from pathlib import Path

import click

from diamond_deploy.types import StepIndex

params_option = click.option(
    "--params",
    "-p",
    "params_filepath",
    help="Network parameters YAML file.",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
    required=True,
)

autosign_option = click.option(
    "--autosign",
    help="Automatically sign transactions.",
    is_flag=True,
)

address_book_option = click.option(
    "--address-book",
    "-f",
    "address_book_filepath",
    help="Address book filepath; defaults to the one named in the parameters file.",
    type=click.Path(dir_okay=False, path_type=Path),
    required=False,
)

wiring_start_option = click.option(
    "--wiring-start",
    help="Index of the first wiring step to run (resumes a partially wired deployment).",
    type=StepIndex(),
    default=0,
    show_default=True,
)

contract_names_option = click.option(
    "--contract-name",
    "-c",
    "contract_names",
    help="Contract name as recorded in the address book.",
    type=click.STRING,
    multiple=True,
)

resume_option = click.option(
    "--resume",
    help=(
        "Reuse contracts already recorded in the address book instead of redeploying them. "
        "Wiring still restarts at step 0; pass --wiring-start to skip steps already confirmed."
    ),
    is_flag=True,
)
