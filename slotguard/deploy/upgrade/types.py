# MIT License
# Copyright (c) 2025 Hashborn

"""
Upgrade Workflow Types
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ...protocol.types.layout import StorageLayoutSnapshot


class UpgradeState(str, Enum):
    """
    Workflow states.

    start -> baseline_captured -> (fast_path | diff_path) -> (upgraded | blocked)
    """
    START = "start"
    BASELINE_CAPTURED = "baseline_captured"
    FAST_PATH = "fast_path"
    DIFF_PATH = "diff_path"
    UPGRADED = "upgraded"
    BLOCKED = "blocked"


class UpgradeOutcome(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    COLLISION_OVERRIDDEN = "collision_overridden"
    COLLISION_BLOCKED = "collision_blocked"


@dataclass
class UpgradeAttempt:
    """
    One run of the upgrade workflow.

    Attributes:
        contract_name: Implementation contract being upgraded to
        network_id: Target network
        proxy_address: Proxy being upgraded
        override_requested: Operator authorised the upgrade regardless of collisions
        init_data: Calldata for upgrade-with-call (None for plain upgrade)
        baseline: Layout backing the live implementation
        candidate: Layout of the new implementation
        diff_lines: Comparison output shown to the operator
        predicted_address: Expected implementation address (fast path only)
        implementation_address: Deployed implementation (fast path only)
    """
    contract_name: str
    network_id: str
    proxy_address: str
    override_requested: bool = False
    init_data: Optional[bytes] = None
    state: UpgradeState = UpgradeState.START
    outcome: UpgradeOutcome = UpgradeOutcome.PENDING
    baseline: Optional[StorageLayoutSnapshot] = None
    candidate: Optional[StorageLayoutSnapshot] = None
    compatible: Optional[bool] = None
    diff_lines: List[str] = field(default_factory=list)
    predicted_address: Optional[str] = None
    implementation_address: Optional[str] = None

    @property
    def upgraded(self) -> bool:
        return self.state == UpgradeState.UPGRADED

    @property
    def blocked(self) -> bool:
        return self.state == UpgradeState.BLOCKED

    @property
    def collision_found(self) -> bool:
        return self.compatible is False

    def to_dict(self) -> dict:
        """Summary for CLI/JSON output."""
        return {
            "contract_name": self.contract_name,
            "network_id": self.network_id,
            "proxy_address": self.proxy_address,
            "override_requested": self.override_requested,
            "state": self.state.value,
            "outcome": self.outcome.value,
            "compatible": self.compatible,
            "diff": self.diff_lines,
            "predicted_address": self.predicted_address,
            "implementation_address": self.implementation_address,
        }
