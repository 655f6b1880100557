"""
naslock vault — read-only access to a KeePass database.

Public API:
    open_vault(path, password)     → list of VaultEntry
    parse_selector(raw)            → TitleSelector | UuidSelector
    resolve_entry(entries, sel)    → exactly one VaultEntry
    SecretBytes                    → wipeable secret buffer
"""

from __future__ import annotations

from naslock.vault.models import VaultEntry
from naslock.vault.resolver import find_matches, resolve_entry
from naslock.vault.secret import SecretBytes
from naslock.vault.selector import Selector, TitleSelector, UuidSelector, parse_selector
from naslock.vault.store import open_vault

__all__ = [
    "SecretBytes",
    "Selector",
    "TitleSelector",
    "UuidSelector",
    "VaultEntry",
    "find_matches",
    "open_vault",
    "parse_selector",
    "resolve_entry",
]
