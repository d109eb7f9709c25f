# MIT License
# Copyright (c) 2025 Hashborn

"""
Foundry toolchain adapter.

Reads compiled artifacts from `out/` and storage layouts via
`forge inspect <Contract> storageLayout --json`.
"""

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional

from ...protocol.config.params import FORGE_BINARY, FORGE_OUT_DIR
from ...protocol.types.common import CompilerError, LayoutError
from ...protocol.types.deployment import ContractArtifact
from ...protocol.types.layout import StorageLayoutSnapshot

logger = logging.getLogger(__name__)


class ForgeCompiler:
    """
    Layout and artifact provider for a Foundry project.

    Layouts are taken from the artifact's `storageLayout` field when the
    project compiles with `extra_output = ["storageLayout"]`; otherwise
    `forge inspect` is invoked.
    """

    def __init__(self, project_dir: str = ".", out_dir: str = FORGE_OUT_DIR,
                 forge_binary: str = FORGE_BINARY):
        self.project_dir = Path(project_dir)
        self.out_dir = self.project_dir / out_dir
        self.forge_binary = forge_binary

    def load_artifact(self, contract_name: str) -> ContractArtifact:
        """
        Load the compiled artifact for a contract.

        Raises:
            CompilerError: If the artifact is missing or has no creation bytecode
        """
        data = self._read_artifact_json(contract_name)

        bytecode = data.get("bytecode", "")
        if isinstance(bytecode, dict):
            bytecode = bytecode.get("object", "")
        if not bytecode:
            raise CompilerError(f"Artifact for {contract_name} has no bytecode")
        if not bytecode.startswith("0x"):
            bytecode = "0x" + bytecode

        artifact = ContractArtifact(name=contract_name, abi=data.get("abi", []), bytecode=bytecode)
        if not artifact.has_bytecode:
            raise CompilerError(f"{contract_name} is abstract or an interface (empty bytecode)")
        return artifact

    def storage_layout(self, contract_name: str) -> StorageLayoutSnapshot:
        """
        Storage layout of the currently compiled contract.

        Raises:
            CompilerError: If forge fails
            LayoutError: If the layout cannot be parsed
        """
        data = None
        try:
            data = self._read_artifact_json(contract_name).get("storageLayout")
        except CompilerError:
            logger.debug(f"No artifact for {contract_name}, falling back to forge inspect")

        if not data:
            raw = self._run(["inspect", contract_name, "storageLayout", "--json"])
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                raise LayoutError(f"forge inspect returned invalid JSON for {contract_name}: {e}")

        snapshot = StorageLayoutSnapshot.from_forge_layout(data, contract_name=contract_name)
        logger.debug(f"Loaded layout for {contract_name}: {len(snapshot)} entries")
        return snapshot

    def _artifact_path(self, contract_name: str, source_file: Optional[str] = None) -> Path:
        source_file = source_file or f"{contract_name}.sol"
        return self.out_dir / source_file / f"{contract_name}.json"

    def _read_artifact_json(self, contract_name: str) -> Dict[str, Any]:
        path = self._artifact_path(contract_name)
        if not path.exists():
            # Contract declared in a file with a different name
            matches = sorted(self.out_dir.glob(f"*/{contract_name}.json"))
            if not matches:
                raise CompilerError(f"No compiled artifact for {contract_name} under {self.out_dir}")
            path = matches[0]

        try:
            return json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise CompilerError(f"Artifact {path} is not valid JSON: {e}")

    def _run(self, args) -> str:
        cmd = [self.forge_binary, *args]
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            res = subprocess.run(cmd, cwd=self.project_dir, capture_output=True, text=True)
        except FileNotFoundError:
            raise CompilerError(f"'{self.forge_binary}' not found; is Foundry installed?")

        if res.returncode != 0:
            raise CompilerError(f"{' '.join(cmd)} failed: {res.stderr.strip()}")
        return res.stdout.strip()
