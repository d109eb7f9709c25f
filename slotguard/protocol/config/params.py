# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict, Optional

# Environment overrides
ENV_NETWORK = "SLOTGUARD_NETWORK"
ENV_RPC_URL = "SLOTGUARD_RPC_URL"
ENV_SENDER = "SLOTGUARD_SENDER"
ENV_HOME = "SLOTGUARD_HOME"

DEFAULT_NETWORK = "anvil"
DEFAULT_HOME = "./.slotguard"

# Layout of the working directory (relative to SLOTGUARD_HOME)
LAYOUTS_DIR_NAME = "layouts"
SCRATCH_DIR_NAME = ".scratch"
DEPLOYMENTS_DB_NAME = "deployments.db"

# Foundry project defaults
FORGE_OUT_DIR = "out"
FORGE_BINARY = "forge"

# Seconds to wait for a transaction receipt
TX_RECEIPT_TIMEOUT = 120

class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 chain_id: Optional[int],
                 rpc_url: str,
                 receipt_timeout_sec: int = TX_RECEIPT_TIMEOUT):
        self.network_id = network_id
        self.chain_id = chain_id
        self.rpc_url = rpc_url
        self.receipt_timeout_sec = receipt_timeout_sec

    def __repr__(self) -> str:
        return f"NetworkConfig({self.network_id}, chain_id={self.chain_id})"

NETWORKS: Dict[str, NetworkConfig] = {
    "anvil": NetworkConfig(
        network_id="anvil",
        chain_id=31337,
        rpc_url="http://127.0.0.1:8545",
        receipt_timeout_sec=30,
    ),
    "sepolia": NetworkConfig(
        network_id="sepolia",
        chain_id=11155111,
        rpc_url="https://rpc.sepolia.org",
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        chain_id=1,
        rpc_url="https://eth.llamarpc.com",
        receipt_timeout_sec=600,
    ),
}

def get_network(name: Optional[str] = None, rpc_url: Optional[str] = None) -> NetworkConfig:
    """
    Resolve a network by name.

    Unknown names are accepted as custom networks as long as an RPC URL is
    available (argument or SLOTGUARD_RPC_URL); their chain id is unknown (None).
    """
    name = name or os.environ.get(ENV_NETWORK, DEFAULT_NETWORK)
    rpc_url = rpc_url or os.environ.get(ENV_RPC_URL)

    base = NETWORKS.get(name)
    if base is None:
        if not rpc_url:
            raise ValueError(
                f"Unknown network '{name}' (known: {', '.join(NETWORKS)}); pass an RPC URL"
            )
        return NetworkConfig(network_id=name, chain_id=None, rpc_url=rpc_url)

    if rpc_url and rpc_url != base.rpc_url:
        return NetworkConfig(
            network_id=base.network_id,
            chain_id=base.chain_id,
            rpc_url=rpc_url,
            receipt_timeout_sec=base.receipt_timeout_sec,
        )
    return base

def get_home_dir(home: Optional[str] = None) -> str:
    return home or os.environ.get(ENV_HOME, DEFAULT_HOME)
