"""Vault data models."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# Standard KeePass string fields and the spellings accepted for them
STANDARD_FIELDS = {
    "title": "Title",
    "username": "UserName",
    "user_name": "UserName",
    "user-name": "UserName",
    "user": "UserName",
    "password": "Password",
    "pass": "Password",
    "url": "URL",
    "notes": "Notes",
}


class VaultEntry(BaseModel):
    """Read-only view of one KeePass entry.

    ``string_fields`` holds the standard fields (Title, UserName, Password, URL, Notes)
    next to the entry's custom string fields. ``protected`` names the fields
    KeePass marks as in-memory protected.
    """

    model_config = ConfigDict(frozen=True)

    uuid: UUID
    title: str | None = None
    string_fields: dict[str, str] = Field(default_factory=dict)
    protected: frozenset[str] = frozenset()
    attachments: dict[str, bytes] = Field(default_factory=dict)

    def field(self, name: str) -> str | None:
        """Look up a string field, accepting the usual aliases for standard fields."""
        name = name.strip()
        if name in self.string_fields:
            return self.string_fields[name]
        canonical = STANDARD_FIELDS.get(name.lower())
        if canonical is not None:
            return self.string_fields.get(canonical)
        return None

    def attachment(self, name: str) -> bytes | None:
        return self.attachments.get(name.strip())

    @property
    def label(self) -> str:
        """Human-readable handle for log and error messages (never a field value)."""
        if self.title:
            return f"{self.title!r} ({self.uuid})"
        return str(self.uuid)
