from enum import Enum, IntEnum
from pathlib import Path

import diamond_deploy

#
# Filesystem
#

DEPLOYMENT_DIR = Path(diamond_deploy.__file__).parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYMENT_DIR / "constructor_params"
ARTIFACTS_DIR = DEPLOYMENT_DIR / "artifacts"
ADDRESS_BOOK_FILENAME = "networkMapping.json"

#
# Networks
#

HARDHAT = "hardhat"
LOCALHOST = "localhost"
SEI_TESTNET = "seiTestnet"
SEI_MAINNET = "seiMainnet"

SUPPORTED_NETWORKS = [HARDHAT, LOCALHOST, SEI_TESTNET, SEI_MAINNET]
LOCAL_NETWORKS = ["local", "hardhat", "foundry", "localhost"]

#
# Transactions
#

SUCCESS_STATUS = 1
DEFAULT_CONFIRMATIONS = 1
DEFAULT_RECEIPT_TIMEOUT = 300  # seconds
RECEIPT_QUERY_RETRIES = 3
RECEIPT_QUERY_BACKOFF = 5  # seconds

#
# Diamond
#


class FacetCutAction(IntEnum):
    ADD = 0
    REPLACE = 1
    REMOVE = 2


# diamondCut((address,uint8,bytes4[])[],address,bytes)
DIAMOND_CUT_SELECTOR = "0x1f931c1c"

DIAMOND = "Diamond"
DIAMOND_CUT_FACET = "DiamondCutFacet"
DIAMOND_LOUPE_FACET = "DiamondLoupeFacet"
OWNERSHIP_FACET = "OwnershipFacet"
MULTISIG_WALLET = "MultiSigWallet"

DIAMOND_CUT_INTERFACE = "IDiamondCut"
DIAMOND_LOUPE_INTERFACE = "IDiamondLoupe"

#
# Satellites
#

BASE_TOKEN = "USDC"
LP_TOKEN = "LpToken"
KEEPER = "Keeper"
DEPOSIT = "Deposit"
ROUTER = "Router"
ESCROW = "Escrow"

VAULT_FACET = "VaultFacet"

# Entries recorded next to contract addresses
START_BLOCK_ENTRY = "StartBlock"
SUBGRAPH_ENTRY = "Goldsky_Subgraph"

#
# Planning
#


class ModuleKind(str, Enum):
    EXTERNAL = "external"
    SATELLITE = "satellite"
    FACET = "facet"
    CONTRACT = "contract"
    PROXY = "proxy"
    CUT = "cut"
    WIRING = "wiring"
    OWNERSHIP = "ownership"


CUT_MODULE = "DiamondCut"
WIRING_MODULE = "Wiring"
OWNERSHIP_MODULE = "OwnershipTransfer"

# EIP1967 Admin slot - https://eips.ethereum.org/EIPS/eip-1967#admin-address
EIP1967_ADMIN_SLOT = 0xB53127684A568B3173AE13B9F8A6016E243E63B6E8EE1178D6A717850B5D6103
