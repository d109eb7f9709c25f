"""
Toolchain and chain adapters.
"""

from .interfaces import ArtifactProvider, ExecutionEnvironment, LayoutProvider
from .forge import ForgeCompiler

__all__ = ["ArtifactProvider", "ExecutionEnvironment", "LayoutProvider", "ForgeCompiler"]
