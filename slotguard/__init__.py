# MIT License
# Copyright (c) 2025 Hashborn

"""
SlotGuard

Deploys proxied contracts and gates upgrades on storage-layout compatibility.
"""

__version__ = "0.1.0"
