"""
Root-level shared test fixtures.

Inherited by tests/ and by the vault package tests.
"""

from __future__ import annotations

import uuid

import pytest

from naslock.vault.models import VaultEntry


def make_entry(
    title: str | None = "entry",
    entry_uuid: uuid.UUID | str | None = None,
    attachments: dict[str, bytes] | None = None,
    **fields: str,
) -> VaultEntry:
    """Build a VaultEntry with the standard KeePass fields filled in.

    Keyword arguments become string fields; ``UserName`` and ``Password``
    default to empty, as in a fresh KeePass entry.
    """
    string_fields = {"Title": title or "", "UserName": "", "Password": "", "URL": "", "Notes": ""}
    string_fields.update(fields)
    return VaultEntry(
        uuid=uuid.UUID(str(entry_uuid)) if entry_uuid else uuid.uuid4(),
        title=title,
        string_fields=string_fields,
        protected=frozenset({"Password"}),
        attachments=attachments or {},
    )


@pytest.fixture
def entry_factory():
    return make_entry


@pytest.fixture
def clean_env(monkeypatch):
    """Remove env vars that leak between tests."""
    for key in ["NASLOCK_CONFIG", "XDG_CONFIG_HOME"]:
        monkeypatch.delenv(key, raising=False)
