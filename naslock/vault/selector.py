"""
Entry selectors — how configuration names a KeePass entry.

    uuid:3d6f0b0c-6f7a-4c72-9d1b-badbeefcafe0   match by entry UUID
    title:TrueNAS admin                          match by exact title
    TrueNAS admin                                same, title is the default

Strings that merely look like a UUID are still treated as titles unless they
carry the ``uuid:`` prefix.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from naslock.errors import InvalidSelector

UUID_PREFIX = "uuid:"
TITLE_PREFIX = "title:"


@dataclass(frozen=True)
class TitleSelector:
    title: str
    explicit: bool = False  # written with the title: prefix

    def __str__(self) -> str:
        return f"{TITLE_PREFIX}{self.title}" if self.explicit else self.title


@dataclass(frozen=True)
class UuidSelector:
    uuid: UUID

    def __str__(self) -> str:
        return f"{UUID_PREFIX}{self.uuid}"


Selector = TitleSelector | UuidSelector


def parse_selector(raw: str) -> Selector:
    """Parse a selector string from config or the command line."""
    text = raw.strip()
    lowered = text.lower()

    if lowered.startswith(UUID_PREFIX):
        token = text[len(UUID_PREFIX):].strip()
        if not token:
            raise InvalidSelector(raw, "no UUID after 'uuid:'")
        try:
            return UuidSelector(UUID(token))
        except ValueError:
            raise InvalidSelector(raw, f"{token!r} is not a valid UUID") from None

    if lowered.startswith(TITLE_PREFIX):
        title = text[len(TITLE_PREFIX):].strip()
        if not title:
            raise InvalidSelector(raw, "no title after 'title:'")
        return TitleSelector(title, explicit=True)

    if not text:
        raise InvalidSelector(raw, "selector is empty")
    return TitleSelector(text)
