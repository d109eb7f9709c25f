# MIT License
# Copyright (c) 2025 Hashborn

"""
Upgrade Workflow

Layout-gated proxy upgrades with operator override.
"""

from .types import UpgradeAttempt, UpgradeOutcome, UpgradeState
from .controller import UpgradeController

__all__ = [
    "UpgradeAttempt",
    "UpgradeOutcome",
    "UpgradeState",
    "UpgradeController",
]
