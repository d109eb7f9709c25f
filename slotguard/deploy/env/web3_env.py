# MIT License
# Copyright (c) 2025 Hashborn

"""
Web3 execution environment.

Sends transactions from an account the node already manages (anvil,
hardhat, or a node-side signer). Key custody is out of scope.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from web3 import Web3

from ...protocol.config.params import NetworkConfig, TX_RECEIPT_TIMEOUT
from ...protocol.crypto.addresses import normalize_address
from ...protocol.types.common import TransactionReverted
from ...protocol.types.deployment import ContractArtifact

logger = logging.getLogger(__name__)

# keccak256("eip1967.proxy.implementation") - 1
ERC1967_IMPLEMENTATION_SLOT = 0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc
# keccak256("eip1967.proxy.admin") - 1
ERC1967_ADMIN_SLOT = 0xb53127684a568b3173ae13b9f8a6016e243e63b6e8ee1178d6a717850b5d6103

# ERC1967 upgradeable proxies (UUPS): upgradeToAndCall(address,bytes)
UUPS_UPGRADE_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "upgradeToAndCall",
        "stateMutability": "payable",
        "inputs": [
            {"name": "newImplementation", "type": "address"},
            {"name": "data", "type": "bytes"},
        ],
        "outputs": [],
    },
]

# OpenZeppelin v5 ProxyAdmin: upgradeAndCall(address proxy, address implementation, bytes data)
PROXY_ADMIN_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "upgradeAndCall",
        "stateMutability": "payable",
        "inputs": [
            {"name": "proxy", "type": "address"},
            {"name": "implementation", "type": "address"},
            {"name": "data", "type": "bytes"},
        ],
        "outputs": [],
    },
]


class Web3Environment:
    """
    ExecutionEnvironment backed by a web3.py connection.

    Upgrades go through the proxy itself (UUPS) or, when an admin address
    is supplied, through the ProxyAdmin contract (transparent proxies).
    """

    def __init__(self, web3: Web3, receipt_timeout: int = TX_RECEIPT_TIMEOUT):
        self.web3 = web3
        self.receipt_timeout = receipt_timeout
        self.labels: Dict[str, str] = {}

    @classmethod
    def from_network(cls, network: NetworkConfig) -> "Web3Environment":
        web3 = Web3(Web3.HTTPProvider(network.rpc_url))
        return cls(web3, receipt_timeout=network.receipt_timeout_sec)

    def get_transaction_count(self, address: str) -> int:
        return self.web3.eth.get_transaction_count(normalize_address(address))

    def deploy(self, artifact: ContractArtifact, args: Sequence[Any], sender: str) -> str:
        contract = self.web3.eth.contract(abi=artifact.abi, bytecode=artifact.bytecode)
        logger.info(f"Deploying {artifact.name} from {sender}")

        tx_hash = contract.constructor(*args).transact({"from": normalize_address(sender)})
        receipt = self._wait(tx_hash, f"deploy {artifact.name}")

        address = receipt["contractAddress"]
        logger.info(f"{artifact.name} deployed at {address} (tx {tx_hash.hex()})")
        return normalize_address(address)

    def upgrade(self, proxy: str, implementation: str, sender: str,
                admin: Optional[str] = None) -> None:
        # Plain upgrade is upgradeToAndCall with empty calldata
        self.upgrade_and_call(proxy, implementation, b"", sender, admin=admin)

    def upgrade_and_call(self, proxy: str, implementation: str, data: bytes, sender: str,
                         admin: Optional[str] = None) -> None:
        proxy = normalize_address(proxy)
        implementation = normalize_address(implementation)

        if admin:
            admin_contract = self.web3.eth.contract(address=normalize_address(admin), abi=PROXY_ADMIN_ABI)
            call = admin_contract.functions.upgradeAndCall(proxy, implementation, data)
        else:
            proxy_contract = self.web3.eth.contract(address=proxy, abi=UUPS_UPGRADE_ABI)
            call = proxy_contract.functions.upgradeToAndCall(implementation, data)

        logger.info(f"Upgrading proxy {proxy} -> {implementation}" + (" (with call)" if data else ""))
        tx_hash = call.transact({"from": normalize_address(sender)})
        self._wait(tx_hash, f"upgrade {proxy}")

    def has_code(self, address: str) -> bool:
        return len(self.web3.eth.get_code(normalize_address(address))) > 0

    def implementation_of(self, proxy: str) -> Optional[str]:
        return self._read_address_slot(proxy, ERC1967_IMPLEMENTATION_SLOT)

    def proxy_admin(self, proxy: str) -> Optional[str]:
        return self._read_address_slot(proxy, ERC1967_ADMIN_SLOT)

    def label(self, address: str, name: str) -> None:
        self.labels[normalize_address(address)] = name
        logger.info(f"{name}: {address}")

    def _wait(self, tx_hash, what: str):
        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt["status"] != 1:
            raise TransactionReverted(f"Transaction {tx_hash.hex()} ({what}) reverted")
        return receipt

    def _read_address_slot(self, address: str, slot: int) -> Optional[str]:
        raw = bytes(self.web3.eth.get_storage_at(normalize_address(address), slot))
        word = raw[-20:]
        if not any(word):
            return None
        return normalize_address("0x" + word.hex())
