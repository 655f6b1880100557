"""
Entry resolution — maps a selector to exactly one vault entry.

Titles are not unique in KeePass. When a title matches more than one entry
the resolver refuses to pick one and reports every candidate UUID instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from naslock.errors import AmbiguousSelector, EntryNotFound, VaultIntegrityError
from naslock.vault.models import VaultEntry
from naslock.vault.selector import Selector, TitleSelector, UuidSelector

logger = logging.getLogger(__name__)


def find_matches(entries: Iterable[VaultEntry], selector: Selector) -> list[VaultEntry]:
    """Return every entry the selector matches, sorted by UUID."""
    if isinstance(selector, UuidSelector):
        matches = [e for e in entries if e.uuid == selector.uuid]
    elif isinstance(selector, TitleSelector):
        matches = [e for e in entries if e.title is not None and e.title == selector.title]
    else:
        raise TypeError(f"Unsupported selector type: {type(selector).__name__}")
    return sorted(matches, key=lambda e: e.uuid.int)


def resolve_entry(entries: Iterable[VaultEntry], selector: Selector) -> VaultEntry:
    """Resolve a selector to a single entry.

    Raises:
        EntryNotFound: nothing matches.
        AmbiguousSelector: a title matches several entries.
        VaultIntegrityError: a UUID matches several entries.
    """
    matches = find_matches(entries, selector)

    if not matches:
        raise EntryNotFound(str(selector))

    if len(matches) > 1:
        if isinstance(selector, UuidSelector):
            raise VaultIntegrityError(selector.uuid, len(matches))
        raise AmbiguousSelector(str(selector), [e.uuid for e in matches])

    entry = matches[0]
    logger.debug("Resolved %s to entry %s", selector, entry.uuid)
    return entry
