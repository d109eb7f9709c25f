# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum
from typing import Any, List, Optional


class ProxyKind(str, Enum):
    UUPS = "uups"
    TRANSPARENT = "transparent"

    @classmethod
    def parse(cls, value: Any) -> "ProxyKind":
        """Resolve a user-supplied kind, raising UnsupportedProxyKind for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedProxyKind(
                f"Unsupported proxy kind '{value}' (expected one of: "
                f"{', '.join(k.value for k in cls)})"
            )

    @property
    def artifact_name(self) -> str:
        """Compiled proxy contract deployed for this kind."""
        if self is ProxyKind.TRANSPARENT:
            return "TransparentUpgradeableProxy"
        return "ERC1967Proxy"

    @property
    def requires_admin(self) -> bool:
        return self is ProxyKind.TRANSPARENT

    def constructor_args(self, implementation: str, init_data: bytes,
                         admin: Optional[str] = None) -> List[Any]:
        """
        Constructor arguments for the proxy artifact.

        ERC1967Proxy(implementation, data)
        TransparentUpgradeableProxy(implementation, initialOwner, data)
        """
        if self is ProxyKind.TRANSPARENT:
            if not admin:
                raise MissingAdmin("Transparent proxy requires an admin address")
            return [implementation, admin, init_data]
        return [implementation, init_data]


class DeploymentAction(str, Enum):
    DEPLOY = "deploy"
    DEPLOY_PROXY = "deploy_proxy"
    UPGRADE = "upgrade"


class SlotGuardError(Exception):
    pass

class LayoutError(SlotGuardError):
    """Invalid, unparsable or corrupted storage layout."""
    pass

class CompilerError(SlotGuardError):
    """Build artifacts or layout could not be obtained from the toolchain."""
    pass

class DeploymentError(SlotGuardError):
    """Fatal error that aborts a deployment or upgrade workflow."""
    pass

class UnsupportedProxyKind(DeploymentError):
    pass

class MissingAdmin(DeploymentError):
    pass

class AddressMismatch(DeploymentError):
    """Deployed address differs from the one predicted from the sender nonce."""

    def __init__(self, predicted: str, actual: str):
        super().__init__(
            f"Deployed implementation landed at {actual}, expected {predicted}. "
            f"Another transaction likely consumed the sender nonce; proxy left untouched."
        )
        self.predicted = predicted
        self.actual = actual

class TransactionReverted(DeploymentError):
    """A submitted transaction was mined with a failure status."""
    pass

class NotAContract(DeploymentError):
    """An address that must hold a contract (e.g. a ProxyAdmin) has no code."""
    pass

class UpgradeNotApplied(DeploymentError):
    """The upgrade transaction succeeded but the proxy still points elsewhere."""

    def __init__(self, proxy: str, expected: str, actual: Optional[str]):
        super().__init__(
            f"Proxy {proxy} points to {actual} after the upgrade, expected {expected}"
        )
        self.proxy = proxy
        self.expected = expected
        self.actual = actual
