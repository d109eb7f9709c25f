"""
Collaborator interfaces.

The upgrade workflow only talks to the toolchain and the chain through these
protocols, so tests can substitute spies.
"""
from typing import Any, Optional, Protocol, Sequence

from ...protocol.types.deployment import ContractArtifact
from ...protocol.types.layout import StorageLayoutSnapshot


class LayoutProvider(Protocol):
    def storage_layout(self, contract_name: str) -> StorageLayoutSnapshot:
        """Storage layout of the currently compiled version of a contract."""
        ...


class ArtifactProvider(Protocol):
    def load_artifact(self, contract_name: str) -> ContractArtifact:
        ...


class ExecutionEnvironment(Protocol):
    def get_transaction_count(self, address: str) -> int:
        """Next nonce of `address`."""
        ...

    def deploy(self, artifact: ContractArtifact, args: Sequence[Any], sender: str) -> str:
        """Create a contract and return its address."""
        ...

    def upgrade(self, proxy: str, implementation: str, sender: str,
                admin: Optional[str] = None) -> None:
        ...

    def upgrade_and_call(self, proxy: str, implementation: str, data: bytes, sender: str,
                         admin: Optional[str] = None) -> None:
        ...

    def has_code(self, address: str) -> bool:
        ...

    def implementation_of(self, proxy: str) -> Optional[str]:
        """Address in the ERC-1967 implementation slot of `proxy`."""
        ...

    def proxy_admin(self, proxy: str) -> Optional[str]:
        """Address in the ERC-1967 admin slot of `proxy` (None when unset)."""
        ...

    def label(self, address: str, name: str) -> None:
        """Attach a human readable name to an address (diagnostics only)."""
        ...
