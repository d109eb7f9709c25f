# MIT License
# Copyright (c) 2025 Hashborn

"""
Storage Layout Types
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .common import LayoutError

LAYOUT_FORMAT_VERSION = "1.0.0"

# Foundry embeds AST ids after named types, e.g. t_struct(Config)42_storage.
# Fixed array lengths (t_array(t_uint256)10_storage) are kept.
_AST_ID_RE = re.compile(r"(t_(?:struct|enum|contract|userDefinedValueType)\([^()]*\))\d+")


def normalize_type_identifier(type_id: str) -> str:
    """Strip compiler AST ids so recompilation does not change the type string."""
    return _AST_ID_RE.sub(r"\1", type_id.strip())


class StorageSlotEntry(BaseModel):
    """One persistent-storage variable."""
    model_config = ConfigDict(frozen=True)

    slot: int = Field(..., ge=0, description="Storage slot index")
    offset: int = Field(default=0, ge=0, le=31, description="Byte offset within the slot")
    type: str = Field(..., min_length=1, description="Opaque type identifier")
    label: str = Field(default="", description="Declared variable name")

    @field_validator("type")
    @classmethod
    def _normalize_type(cls, v: str) -> str:
        return normalize_type_identifier(v)

    @property
    def position(self) -> Tuple[int, int]:
        return (self.slot, self.offset)

    def describe(self) -> str:
        return f"slot {self.slot} offset {self.offset} {self.type} {self.label}".rstrip()


class StorageLayoutSnapshot(BaseModel):
    """
    Ordered storage layout of one contract version.

    Entries are sorted by (slot, offset) ascending and no two entries
    share a position.
    """
    model_config = ConfigDict(frozen=True)

    contract_name: Optional[str] = Field(default=None, description="Contract the layout belongs to")
    entries: Tuple[StorageSlotEntry, ...] = Field(default_factory=tuple)

    @model_validator(mode="after")
    def _check_ordering(self) -> "StorageLayoutSnapshot":
        previous = None
        for entry in self.entries:
            if previous is not None:
                if entry.position == previous.position:
                    raise LayoutError(
                        f"Duplicate storage position slot {entry.slot} offset {entry.offset} "
                        f"({previous.label} / {entry.label})"
                    )
                if entry.position < previous.position:
                    raise LayoutError(
                        f"Storage entries out of order: {entry.describe()} after {previous.describe()}"
                    )
            previous = entry
        return self

    @classmethod
    def from_entries(cls, entries: Iterable[Any], contract_name: Optional[str] = None) -> "StorageLayoutSnapshot":
        """
        Build a snapshot from entries in any order.

        Accepts StorageSlotEntry objects, dicts, or (slot, offset, type, label) tuples.
        """
        parsed: List[StorageSlotEntry] = []
        for raw in entries:
            if isinstance(raw, StorageSlotEntry):
                parsed.append(raw)
            elif isinstance(raw, dict):
                parsed.append(StorageSlotEntry(**raw))
            else:
                slot, offset, type_id, *rest = raw
                parsed.append(StorageSlotEntry(
                    slot=slot, offset=offset, type=type_id, label=rest[0] if rest else ""
                ))
        parsed.sort(key=lambda e: e.position)
        return cls(contract_name=contract_name, entries=tuple(parsed))

    @classmethod
    def from_forge_layout(cls, data: Any, contract_name: Optional[str] = None) -> "StorageLayoutSnapshot":
        """
        Parse `forge inspect <C> storageLayout --json` output (or solc's storageLayout).

        Args:
            data: Decoded JSON, either {"storage": [...], "types": {...}} or the bare list
            contract_name: Name recorded on the snapshot
        """
        items = data.get("storage") if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise LayoutError("Storage layout must contain a 'storage' list")

        entries = []
        for item in items:
            try:
                slot_raw = item["slot"]
                slot = int(slot_raw, 0) if isinstance(slot_raw, str) else int(slot_raw)
                entries.append(StorageSlotEntry(
                    slot=slot,
                    offset=int(item.get("offset", 0)),
                    type=item["type"],
                    label=item.get("label", ""),
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise LayoutError(f"Malformed storage layout item {item!r}: {e}")
        return cls.from_entries(entries, contract_name=contract_name)

    def __len__(self) -> int:
        return len(self.entries)

    def positions(self) -> List[Tuple[int, int]]:
        return [e.position for e in self.entries]

    def max_position(self) -> Optional[Tuple[int, int]]:
        """Highest (slot, offset) in the layout, or None when empty."""
        if not self.entries:
            return None
        return self.entries[-1].position


class LayoutRecord(BaseModel):
    """
    Persisted baseline/scratch file (one per contract and network).
    """
    version: str = Field(default=LAYOUT_FORMAT_VERSION, description="Layout file format version")
    contract_name: str = Field(..., description="Contract name")
    network_id: str = Field(..., description="Network the layout is deployed on")
    captured_at: str = Field(..., description="ISO 8601 timestamp")
    snapshot: StorageLayoutSnapshot = Field(..., description="Storage layout")
    hash: Optional[str] = Field(default=None, description="SHA256 of the record (excluding this field)")

    def calculate_hash(self) -> str:
        """
        Calculate SHA256 hash of the record (excluding hash field).
        """
        from ..crypto.hash import sha256_hex

        data: Dict[str, Any] = self.model_dump(mode="json", exclude={"hash"})
        canonical_json = json.dumps(data, sort_keys=True, separators=(',', ':'))
        return sha256_hex(canonical_json.encode())

    def verify_hash(self) -> bool:
        if not self.hash:
            return False
        return self.calculate_hash() == self.hash
