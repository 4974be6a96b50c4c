from typing import List, Dict, Any

from .config import NETWORK_ID, RPC_URL

# Known EVM networks the agent can operate on
NETWORKS: List[Dict[str, Any]] = [
    {
        "id": "base-sepolia",
        "name": "Base Sepolia",
        "chain_id": 84532,
        "rpc_url": "https://sepolia.base.org",
        "explorer": "https://sepolia.basescan.org",
        "faucet": "https://www.coinbase.com/faucets/base-ethereum-sepolia-faucet",
        "ens_registry": None,
        "testnet": True,
        "aliases": ["base_sepolia", "84532"],
    },
    {
        "id": "base-mainnet",
        "name": "Base",
        "chain_id": 8453,
        "rpc_url": "https://mainnet.base.org",
        "explorer": "https://basescan.org",
        "faucet": None,
        "ens_registry": None,
        "testnet": False,
        "aliases": ["base", "8453"],
    },
    {
        "id": "ethereum-mainnet",
        "name": "Ethereum",
        "chain_id": 1,
        "rpc_url": "https://eth.llamarpc.com",
        "explorer": "https://etherscan.io",
        "faucet": None,
        "ens_registry": "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e",
        "testnet": False,
        "aliases": ["mainnet", "ethereum", "1"],
    },
]


def find_network(network_id: str) -> Dict[str, Any]:
    s = str(network_id).strip().lower()
    for n in NETWORKS:
        if n["id"] == s:
            return n
    for n in NETWORKS:
        if s in n.get("aliases", []):
            return n
    allowed = [n["id"] for n in NETWORKS]
    raise ValueError(f"Unsupported network '{network_id}'. Allowed: {allowed}")


def active_network() -> Dict[str, Any]:
    net = dict(find_network(NETWORK_ID))
    if RPC_URL:
        net["rpc_url"] = RPC_URL
    return net


def ens_network() -> Dict[str, Any]:
    """
    Network used for forward/reverse name resolution. ENS lives on L1.
    """
    return find_network("ethereum-mainnet")
