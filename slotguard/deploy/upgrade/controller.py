# MIT License
# Copyright (c) 2025 Hashborn

"""
Upgrade Controller

Drives one proxy upgrade: captures the baseline layout, compares the
candidate against it, and either upgrades (operator override) or reports
the comparison and leaves the proxy untouched.
"""

import logging
from typing import Optional

from ...protocol.crypto.addresses import normalize_address, same_address
from ...protocol.types.common import (
    AddressMismatch, DeploymentAction, DeploymentError, MissingAdmin, NotAContract, ProxyKind,
    UpgradeNotApplied,
)
from ...protocol.types.deployment import DeploymentRecord
from ...protocol.types.layout import StorageLayoutSnapshot
from ..core.events import UPGRADE_BLOCKED, UPGRADE_COMPLETED, EventBus, event_bus
from ..core.orchestrator import DeploymentOrchestrator
from ..core.predictor import AddressPredictor
from ..env.interfaces import ExecutionEnvironment, LayoutProvider
from ..layout.collision import CollisionDetector, CollisionReport
from ..layout.store import LayoutSnapshotStore
from ..observability.metrics import record_address_mismatch, record_upgrade_attempt
from .types import UpgradeAttempt, UpgradeOutcome, UpgradeState

logger = logging.getLogger(__name__)


class UpgradeController:
    """
    Upgrade workflow.

    Without override the run is advisory: the layout diff is reported and no
    upgrade transaction is sent, whatever the comparison says. With override
    the new implementation is deployed and installed; a collision is logged
    as a warning but does not stop the upgrade. The deployed address must
    match the one predicted from the sender nonce, otherwise the run aborts
    before touching the proxy.
    """

    def __init__(self,
                 env: ExecutionEnvironment,
                 orchestrator: DeploymentOrchestrator,
                 layouts: LayoutProvider,
                 layout_store: LayoutSnapshotStore,
                 detector: Optional[CollisionDetector] = None,
                 predictor: Optional[AddressPredictor] = None,
                 events: EventBus = event_bus):
        self.env = env
        self.orchestrator = orchestrator
        self.layouts = layouts
        self.layout_store = layout_store
        self.detector = detector or CollisionDetector()
        self.predictor = predictor or AddressPredictor()
        self.events = events

    def upgrade(self, proxy_address: str, contract_name: str, network_id: str, sender: str,
                override: bool = False, admin: Optional[str] = None) -> UpgradeAttempt:
        """Upgrade a proxy to a fresh deployment of `contract_name`."""
        return self.run(proxy_address, contract_name, network_id, sender,
                        init_data=None, override=override, admin=admin)

    def upgrade_and_call(self, proxy_address: str, contract_name: str, init_data: bytes,
                         network_id: str, sender: str, override: bool = False,
                         admin: Optional[str] = None) -> UpgradeAttempt:
        """Upgrade a proxy and call the new implementation with `init_data`."""
        return self.run(proxy_address, contract_name, network_id, sender,
                        init_data=init_data, override=override, admin=admin)

    def check(self, contract_name: str, network_id: str) -> CollisionReport:
        """Compare the compiled layout with the recorded baseline. Touches nothing."""
        baseline = self._load_baseline(contract_name, network_id)
        candidate = self.layouts.storage_layout(contract_name)
        return self.detector.compare(baseline, candidate)

    def run(self, proxy_address: str, contract_name: str, network_id: str, sender: str,
            init_data: Optional[bytes] = None, override: bool = False,
            admin: Optional[str] = None) -> UpgradeAttempt:
        """
        Execute one upgrade attempt.

        Args:
            proxy_address: Proxy to upgrade
            contract_name: New implementation contract
            network_id: Target network
            sender: Account sending deployment and upgrade transactions
            init_data: Calldata for upgradeAndCall; None for a plain upgrade
            override: Operator authorises the upgrade regardless of collisions
            admin: ProxyAdmin address (transparent proxies)

        Returns:
            The finished UpgradeAttempt (state upgraded or blocked)

        Raises:
            AddressMismatch: Deployed implementation is not at the predicted address
            MissingAdmin / NotAContract: No usable ProxyAdmin for a transparent proxy
            UpgradeNotApplied: Proxy implementation slot unchanged after the upgrade
        """
        attempt = UpgradeAttempt(
            contract_name=contract_name,
            network_id=network_id,
            proxy_address=normalize_address(proxy_address),
            override_requested=override,
            init_data=init_data,
        )
        logger.info(
            f"Upgrade attempt: {contract_name} behind {attempt.proxy_address} on {network_id} "
            f"(override={override})"
        )

        previous = self._proxy_record(attempt.proxy_address, network_id)
        baseline = self._load_baseline(contract_name, network_id, previous)

        try:
            with self.layout_store.scratch(contract_name, network_id, baseline) as captured:
                attempt.baseline = captured
                attempt.state = UpgradeState.BASELINE_CAPTURED

                candidate = self.layouts.storage_layout(contract_name)
                report = self.detector.compare(captured, candidate)
                attempt.candidate = candidate
                attempt.compatible = report.compatible
                attempt.diff_lines = list(report.diff_lines)

                if override:
                    self._fast_path(attempt, report, sender, admin, previous)
                else:
                    self._diff_path(attempt, report)
        except DeploymentError as e:
            logger.error(f"Upgrade of {attempt.proxy_address} aborted: {e}")
            record_upgrade_attempt("failed")
            raise

        record_upgrade_attempt(attempt.outcome.value, collisions=report.collisions)
        return attempt

    def _fast_path(self, attempt: UpgradeAttempt, report: CollisionReport,
                   sender: str, admin: Optional[str], previous: Optional[DeploymentRecord]):
        attempt.state = UpgradeState.FAST_PATH

        if not report.compatible:
            logger.warning(
                f"Storage layout collision in {attempt.contract_name}; proceeding on operator override"
            )
            for line in report.diff_lines:
                logger.warning(line)

        admin = self._resolve_admin(attempt.proxy_address, admin, previous)

        predicted = self.predictor.predict_next(self.env, sender)
        attempt.predicted_address = predicted

        implementation = self.orchestrator.deploy_raw(attempt.contract_name, [], attempt.network_id, sender)
        attempt.implementation_address = implementation

        if not same_address(predicted, implementation):
            record_address_mismatch()
            raise AddressMismatch(predicted, implementation)

        if attempt.init_data is not None:
            self.env.upgrade_and_call(attempt.proxy_address, implementation, attempt.init_data,
                                      sender, admin=admin)
        else:
            self.env.upgrade(attempt.proxy_address, implementation, sender, admin=admin)

        # A call to a non-admin account succeeds without changing the proxy
        current = self.env.implementation_of(attempt.proxy_address)
        if current is None or not same_address(current, implementation):
            raise UpgradeNotApplied(attempt.proxy_address, implementation, current)

        attempt.state = UpgradeState.UPGRADED
        attempt.outcome = (UpgradeOutcome.PASSED if report.compatible
                           else UpgradeOutcome.COLLISION_OVERRIDDEN)

        self.orchestrator.deployments.append(DeploymentRecord(
            contract_name=attempt.contract_name,
            network_id=attempt.network_id,
            implementation_address=implementation,
            proxy_address=attempt.proxy_address,
            proxy_kind=previous.proxy_kind if previous else None,
            admin_address=admin,
            action=DeploymentAction.UPGRADE,
        ))
        self.layout_store.write_baseline(attempt.contract_name, attempt.network_id, attempt.candidate)

        self.events.emit(UPGRADE_COMPLETED, attempt=attempt)
        logger.info(
            f"Upgraded {attempt.proxy_address} to {implementation} ({attempt.outcome.value})"
        )

    def _resolve_admin(self, proxy_address: str, admin: Optional[str],
                       previous: Optional[DeploymentRecord]) -> Optional[str]:
        """
        ProxyAdmin to send the upgrade through: the explicit one, else the one
        recorded when the proxy was deployed.

        Raises:
            MissingAdmin: Transparent proxy with no known ProxyAdmin
            NotAContract: The admin address holds no code (e.g. the owner EOA)
        """
        if not admin and previous is not None:
            admin = previous.admin_address
        if not admin:
            if previous is not None and previous.proxy_kind is ProxyKind.TRANSPARENT:
                raise MissingAdmin(f"No ProxyAdmin known for transparent proxy {proxy_address}")
            return None

        admin = normalize_address(admin)
        if not self.env.has_code(admin):
            raise NotAContract(
                f"Admin {admin} has no code; pass the ProxyAdmin contract, not its owner"
            )
        return admin

    def _diff_path(self, attempt: UpgradeAttempt, report: CollisionReport):
        attempt.state = UpgradeState.DIFF_PATH

        if report.compatible:
            attempt.outcome = UpgradeOutcome.PASSED
            logger.info(
                f"Storage layout of {attempt.contract_name} is compatible with the baseline; "
                f"re-run with override to upgrade"
            )
            for line in report.diff_lines:
                logger.info(line)
        else:
            attempt.outcome = UpgradeOutcome.COLLISION_BLOCKED
            logger.warning(
                f"Storage layout collision in {attempt.contract_name} "
                f"({report.collisions} position(s)); proxy left untouched"
            )
            for line in report.diff_lines:
                logger.warning(line)

        attempt.state = UpgradeState.BLOCKED
        self.events.emit(UPGRADE_BLOCKED, attempt=attempt)

    def _proxy_record(self, proxy_address: str, network_id: str) -> Optional[DeploymentRecord]:
        """Latest record for the proxy on this network, if any."""
        records = [r for r in self.orchestrator.deployments.for_proxy(proxy_address)
                   if r.network_id == network_id]
        return records[-1] if records else None

    def _load_baseline(self, contract_name: str, network_id: str,
                       previous: Optional[DeploymentRecord] = None) -> StorageLayoutSnapshot:
        # The live implementation may have been deployed under another name (Token -> TokenV2)
        live_name = previous.contract_name if previous is not None else contract_name
        baseline = self.layout_store.read_baseline(live_name, network_id)
        if baseline is None and live_name != contract_name:
            baseline = self.layout_store.read_baseline(contract_name, network_id)
        elif live_name != contract_name:
            logger.info(f"Comparing {contract_name} against the baseline of {live_name}")

        if baseline is None:
            logger.warning(
                f"No baseline layout recorded for {live_name} on {network_id}; "
                f"comparing against an empty layout"
            )
            return StorageLayoutSnapshot(contract_name=contract_name, entries=())
        return baseline
