"""Application constants."""

# EIP-712 domain of the smart account contract
SMART_ACCOUNT_DOMAIN_NAME = "SmartAccount"
SMART_ACCOUNT_DOMAIN_VERSION = "1"

# Fallback RPC URLs by chain ID
DEFAULT_RPC_URLS = {
    1: "https://eth.llamarpc.com",  # Mainnet
    137: "https://polygon-rpc.com",  # Polygon
    80001: "https://rpc-mumbai.maticvigil.com",  # Mumbai
    80002: "https://rpc-amoy.polygon.technology",  # Amoy
    11155111: "https://rpc.sepolia.org",  # Sepolia
    31337: "http://localhost:8545",  # Local node
}

# Known smart account factory deployments by chain ID
DEFAULT_FACTORY_ADDRESSES = {
    11155111: "0x752F888650A57cd7c7C2B6B658012d3c9239Cc03",  # Sepolia
}

# Retry settings for view RPC calls
RPC_MAX_RETRIES = 3
RPC_INITIAL_DELAY = 2.0  # seconds

# Signature sizes
SIGNATURE_LENGTH = 65
COMPACT_SIGNATURE_LENGTH = 64

# Maximum uint256 value (unlimited ERC20 approval)
MAX_UINT256 = 2**256 - 1


def default_rpc_url(chain_id: int) -> str:
    """Return the fallback RPC URL for a chain, or raise if none is known."""
    try:
        return DEFAULT_RPC_URLS[chain_id]
    except KeyError:
        raise ValueError(f"No RPC URL configured for chain ID {chain_id}") from None


def default_factory_address(chain_id: int) -> str:
    """Return the known factory address for a chain, or raise if none is known."""
    try:
        return DEFAULT_FACTORY_ADDRESSES[chain_id]
    except KeyError:
        raise ValueError(f"Smart account factory not available for chain ID {chain_id}") from None
