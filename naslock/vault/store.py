"""
KeePass access — opens a .kdbx database with pykeepass and flattens it into
read-only VaultEntry views.

Decryption lives entirely in pykeepass. This module only maps its failures
onto VaultOpenError and copies the entry data naslock needs.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pykeepass import PyKeePass
from pykeepass.exceptions import CredentialsError, HeaderChecksumError, PayloadChecksumError

from naslock.errors import VaultOpenError
from naslock.vault.models import VaultEntry
from naslock.vault.secret import SecretBytes

logger = logging.getLogger(__name__)


def open_vault(
    path: Path,
    password: SecretBytes,
    key_file: Path | None = None,
) -> list[VaultEntry]:
    """Open a KeePass database and return all of its entries.

    Entries in the recycle bin are left out. Group structure is flattened;
    the returned order is the database's own order.

    Raises:
        VaultOpenError: wrong password/key file, corrupt file, or missing file.
    """
    if not path.is_file():
        raise VaultOpenError(f"KeePass database not found: {path}", reason="missing")
    if key_file is not None and not key_file.is_file():
        raise VaultOpenError(f"KeePass key file not found: {key_file}", reason="missing")

    try:
        kp = PyKeePass(
            str(path),
            password=password.text() if len(password) else None,
            keyfile=str(key_file) if key_file else None,
        )
    except CredentialsError as e:
        raise VaultOpenError(
            f"Failed to open KeePass database {path}: wrong password or key file",
            reason="credentials",
        ) from e
    except (HeaderChecksumError, PayloadChecksumError) as e:
        raise VaultOpenError(
            f"Failed to open KeePass database {path}: file is corrupt",
            reason="corrupt",
        ) from e
    except OSError as e:
        raise VaultOpenError(
            f"Failed to read KeePass database {path}: {e.strerror or e}",
            reason="missing",
        ) from e
    except Exception as e:
        raise VaultOpenError(
            f"Failed to open KeePass database {path}: unsupported or damaged file",
            reason="corrupt",
            context=str(e) or type(e).__name__,
        ) from e

    trash = kp.recyclebin_group
    entries = [_entry_view(entry) for entry in kp.entries if not _in_group(entry, trash)]
    logger.debug("Opened %s: %d entries", path, len(entries))
    return entries


def _in_group(entry, group) -> bool:
    """True if the entry sits anywhere below ``group``."""
    if group is None:
        return False
    parent = entry.group
    while parent is not None:
        if parent.uuid == group.uuid:
            return True
        parent = parent.parentgroup
    return False


def _entry_view(entry) -> VaultEntry:
    """Copy a pykeepass Entry into a VaultEntry."""
    standard = {
        "Title": entry.title,
        "UserName": entry.username,
        "Password": entry.password,
        "URL": entry.url,
        "Notes": entry.notes,
    }
    # Standard fields always exist in KeePass, empty or not
    string_fields = {k: v or "" for k, v in standard.items()}
    protected = {"Password"}

    for key, value in entry.custom_properties.items():
        string_fields[key] = value or ""
        if entry.is_custom_property_protected(key):
            protected.add(key)

    attachments = {a.filename: a.data for a in entry.attachments if a.filename}

    return VaultEntry(
        uuid=entry.uuid,
        title=entry.title,
        string_fields=string_fields,
        protected=frozenset(protected),
        attachments=attachments,
    )
