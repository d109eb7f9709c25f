# MIT License
# Copyright (c) 2025 Hashborn

"""
Deployment Orchestrator

Deploys plain contracts and proxy-wrapped implementations and records
every deployment in the append-only log.
"""

import logging
from typing import Any, Optional, Sequence, Union

from ...protocol.crypto.addresses import normalize_address
from ...protocol.types.common import DeploymentAction, MissingAdmin, ProxyKind
from ...protocol.types.deployment import DeploymentRecord
from ..env.interfaces import ArtifactProvider, ExecutionEnvironment, LayoutProvider
from ..layout.store import LayoutSnapshotStore
from ..observability.metrics import record_deployment
from .events import CONTRACT_DEPLOYED, CONTRACT_LABELED, EventBus, event_bus
from .records import DeploymentLog

logger = logging.getLogger(__name__)


class DeploymentOrchestrator:
    """
    Responsibilities:
    - Deploy raw contracts
    - Deploy implementations behind uups or transparent proxies
    - Append a DeploymentRecord per deployment
    - Label deployed addresses for downstream tooling
    - Record the implementation layout as baseline for new proxies (optional)
    """

    def __init__(self,
                 env: ExecutionEnvironment,
                 artifacts: ArtifactProvider,
                 deployments: DeploymentLog,
                 layout_store: Optional[LayoutSnapshotStore] = None,
                 layouts: Optional[LayoutProvider] = None,
                 events: EventBus = event_bus):
        """
        Args:
            env: Chain collaborator
            artifacts: Compiled artifact source
            deployments: Deployment record log
            layout_store: Where to record baselines for new proxies
            layouts: Layout source used together with layout_store
            events: Event bus for label/deploy notifications
        """
        self.env = env
        self.artifacts = artifacts
        self.deployments = deployments
        self.layout_store = layout_store
        self.layouts = layouts
        self.events = events

    def deploy_raw(self, contract_name: str, constructor_args: Sequence[Any],
                   network_id: str, sender: str) -> str:
        """
        Deploy a non-proxied contract.

        Returns:
            Address of the new contract
        """
        address = self._deploy(contract_name, constructor_args, sender)

        self.deployments.append(DeploymentRecord(
            contract_name=contract_name,
            network_id=network_id,
            implementation_address=address,
            proxy_address=None,
            action=DeploymentAction.DEPLOY,
        ))
        record_deployment("raw")
        self.label(address, contract_name)
        self.events.emit(CONTRACT_DEPLOYED, contract_name=contract_name, network_id=network_id,
                         address=address, proxy_address=None)
        return address

    def deploy_proxy(self, contract_name: str, init_data: bytes,
                     kind: Union[ProxyKind, str], admin: Optional[str],
                     network_id: str, sender: str) -> str:
        """
        Deploy an implementation and a proxy of the requested kind in front of it.

        Args:
            contract_name: Implementation contract
            init_data: ABI-encoded initializer call forwarded by the proxy constructor
            kind: "uups" or "transparent"
            admin: Proxy admin owner, required for transparent proxies
            network_id: Network the deployment targets
            sender: Deployer address

        Returns:
            Proxy address

        Raises:
            UnsupportedProxyKind: Unknown kind (fatal, nothing deployed)
            MissingAdmin: Transparent proxy without an admin (fatal, nothing deployed)
        """
        kind = ProxyKind.parse(kind)
        if kind.requires_admin and not admin:
            raise MissingAdmin(f"Transparent proxy for {contract_name} requires an admin address")
        if admin:
            admin = normalize_address(admin)

        implementation = self._deploy(contract_name, [], sender)
        proxy_args = kind.constructor_args(implementation, init_data, admin)
        proxy = self._deploy(kind.artifact_name, proxy_args, sender)

        # A transparent proxy creates its own ProxyAdmin, owned by `admin`;
        # upgrades must be sent to that contract, not to the owner.
        proxy_admin = None
        if kind is ProxyKind.TRANSPARENT:
            proxy_admin = self.env.proxy_admin(proxy)
            if proxy_admin is None:
                logger.warning(f"Proxy {proxy} has no ERC-1967 admin; upgrades will need --admin")

        self.deployments.append(DeploymentRecord(
            contract_name=contract_name,
            network_id=network_id,
            implementation_address=implementation,
            proxy_address=proxy,
            proxy_kind=kind,
            admin_address=proxy_admin,
            action=DeploymentAction.DEPLOY_PROXY,
        ))
        record_deployment(kind.value)

        self.label(implementation, f"{contract_name} (implementation)")
        self.label(proxy, f"{contract_name} ({kind.value} proxy)")
        if proxy_admin:
            self.label(proxy_admin, f"{contract_name} (proxy admin)")
        self.events.emit(CONTRACT_DEPLOYED, contract_name=contract_name, network_id=network_id,
                         address=implementation, proxy_address=proxy)

        if self.layout_store is not None and self.layouts is not None:
            self.layout_store.write_baseline(
                contract_name, network_id, self.layouts.storage_layout(contract_name)
            )

        logger.info(f"{contract_name} deployed behind {kind.value} proxy {proxy} (impl {implementation})")
        return proxy

    def label(self, address: str, name: str):
        """Associate a human readable name with an address (observational only)."""
        self.env.label(address, name)
        self.events.emit(CONTRACT_LABELED, address=address, name=name)

    def _deploy(self, contract_name: str, args: Sequence[Any], sender: str) -> str:
        artifact = self.artifacts.load_artifact(contract_name)
        address = self.env.deploy(artifact, list(args), sender)
        return normalize_address(address)
