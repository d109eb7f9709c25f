"""Shared fixtures: an in-memory chain spy and layout builders."""

import pytest
from typing import Any, Dict, List, Optional, Sequence, Set
from unittest.mock import Mock

from slotguard.deploy.core.events import EventBus
from slotguard.deploy.core.orchestrator import DeploymentOrchestrator
from slotguard.deploy.core.records import DeploymentLog
from slotguard.deploy.layout.store import LayoutSnapshotStore
from slotguard.deploy.upgrade.controller import UpgradeController
from slotguard.protocol.crypto.addresses import contract_address, normalize_address
from slotguard.protocol.types.common import ProxyKind
from slotguard.protocol.types.deployment import ContractArtifact
from slotguard.protocol.types.layout import StorageLayoutSnapshot

# First anvil/hardhat dev account
DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
ADMIN = normalize_address("0x70997970c51812dc3a04c302636b92e1e7b6e0b4")
NETWORK = "anvil"


def layout(*entries, name=None) -> StorageLayoutSnapshot:
    """layout((0, 0, "uint256", "x"), ...)"""
    return StorageLayoutSnapshot.from_entries(entries, contract_name=name)


class FakeChain:
    """
    ExecutionEnvironment double.

    Deployments land at the real CREATE address for the sender nonce.
    Proxy artifacts fill the ERC-1967 slots the way the OpenZeppelin
    contracts do; a transparent proxy creates its ProxyAdmin at
    CREATE(proxy, 1). Upgrade entry points and labels are Mocks so tests
    can assert on calls.
    """

    def __init__(self):
        self.nonces: Dict[str, int] = {}
        self.deployed: List[Dict[str, Any]] = []
        self.code: Set[str] = set()
        self.implementations: Dict[str, str] = {}
        self.admins: Dict[str, str] = {}
        self.upgrade = Mock(name="upgrade", side_effect=self._upgrade)
        self.upgrade_and_call = Mock(name="upgrade_and_call", side_effect=self._upgrade_and_call)
        self.label = Mock(name="label")
        # Extra transactions sent by "someone else" between nonce read and deploy
        self.interleaved_txs = 0
        # Upgrade transactions succeed without touching the proxy (call sent to an EOA)
        self.ignore_upgrades = False

    def get_transaction_count(self, address: str) -> int:
        return self.nonces.get(normalize_address(address), 0)

    def deploy(self, artifact: ContractArtifact, args: Sequence[Any], sender: str) -> str:
        sender = normalize_address(sender)
        self.nonces[sender] = self.nonces.get(sender, 0) + self.interleaved_txs
        self.interleaved_txs = 0

        nonce = self.nonces.get(sender, 0)
        address = contract_address(sender, nonce)
        self.nonces[sender] = nonce + 1
        self.code.add(address)
        self.deployed.append({"name": artifact.name, "args": list(args), "address": address})

        if artifact.name in (ProxyKind.UUPS.artifact_name, ProxyKind.TRANSPARENT.artifact_name):
            self.implementations[address] = normalize_address(args[0])
        if artifact.name == ProxyKind.TRANSPARENT.artifact_name:
            admin = contract_address(address, 1)
            self.admins[address] = admin
            self.code.add(admin)
        return address

    def has_code(self, address: str) -> bool:
        return normalize_address(address) in self.code

    def implementation_of(self, proxy: str) -> Optional[str]:
        return self.implementations.get(normalize_address(proxy))

    def proxy_admin(self, proxy: str) -> Optional[str]:
        return self.admins.get(normalize_address(proxy))

    def _upgrade(self, proxy, implementation, sender, admin=None):
        if not self.ignore_upgrades:
            self.implementations[normalize_address(proxy)] = normalize_address(implementation)

    def _upgrade_and_call(self, proxy, implementation, data, sender, admin=None):
        self._upgrade(proxy, implementation, sender, admin=admin)


class FakeCompiler:
    """Artifact and layout provider with layouts set per test."""

    def __init__(self):
        self.layouts: Dict[str, StorageLayoutSnapshot] = {}

    def load_artifact(self, contract_name: str) -> ContractArtifact:
        return ContractArtifact(name=contract_name, abi=[], bytecode="0x6080")

    def storage_layout(self, contract_name: str) -> StorageLayoutSnapshot:
        return self.layouts[contract_name]


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def compiler():
    return FakeCompiler()


@pytest.fixture
def store(tmp_path):
    return LayoutSnapshotStore(str(tmp_path / "layouts"))


@pytest.fixture
def deployments():
    log = DeploymentLog(":memory:")
    yield log
    log.close()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def orchestrator(chain, compiler, deployments, bus):
    return DeploymentOrchestrator(chain, compiler, deployments, events=bus)


@pytest.fixture
def controller(chain, compiler, store, orchestrator, bus):
    return UpgradeController(chain, orchestrator, compiler, store, events=bus)
