# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from models.py, registry.py, or any storage module; this prevents circular imports.
"""Typed shapes of the JSON documents procside reads and writes."""

from __future__ import annotations

from procside.types.core import (
    DecisionDict,
    EvidenceDict,
    HistoryEntryDict,
    ISOTimestamp,
    ProcessDict,
    ProcessMetaDict,
    ProcessVersionDict,
    RegistryDict,
    RiskDict,
    StepDict,
    TemplateMetaDict,
)

__all__ = [
    "DecisionDict",
    "EvidenceDict",
    "HistoryEntryDict",
    "ISOTimestamp",
    "ProcessDict",
    "ProcessMetaDict",
    "ProcessVersionDict",
    "RegistryDict",
    "RiskDict",
    "StepDict",
    "TemplateMetaDict",
]
