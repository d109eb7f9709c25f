# MIT License
# Copyright (c) 2025 Hashborn

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import DeploymentAction, ProxyKind


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class DeploymentRecord(BaseModel):
    """Append-only log entry for one deployment or upgrade."""
    model_config = ConfigDict(frozen=True)

    contract_name: str
    network_id: str
    implementation_address: str
    proxy_address: Optional[str] = None     # None for non-proxied deployments
    proxy_kind: Optional[ProxyKind] = None
    # ProxyAdmin contract created by a transparent proxy
    admin_address: Optional[str] = None
    action: DeploymentAction = DeploymentAction.DEPLOY
    timestamp: str = Field(default_factory=utc_timestamp)

    @property
    def is_proxy(self) -> bool:
        return self.proxy_address is not None


class ContractArtifact(BaseModel):
    """Compiled contract as produced by the toolchain."""
    name: str
    abi: List[Any] = Field(default_factory=list)
    bytecode: str = Field(..., description="0x-prefixed creation bytecode")

    @property
    def has_bytecode(self) -> bool:
        return len(self.bytecode) > 2
