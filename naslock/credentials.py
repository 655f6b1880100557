"""
Credential extraction — turns a resolved vault entry into typed secrets.

Each credential shape has an ordered tuple of candidate field names. The first
candidate present on the entry wins; a candidate that exists but is blank is
reported as EmptyField rather than silently skipped.

    NAS login      UsernamePassword (preferred) or ApiKey
    Dataset secret Passphrase (preferred) or KeyMaterial

Field values are never logged or put into error messages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum

from naslock.errors import EmptyField, MissingField
from naslock.vault.models import VaultEntry
from naslock.vault.secret import SecretBytes

logger = logging.getLogger(__name__)

USERNAME_FIELDS = ("UserName",)
PASSWORD_FIELDS = ("Password",)
API_KEY_FIELDS = ("api_key", "API Key", "apikey", "token")
PASSPHRASE_FIELDS = ("passphrase", "Passphrase", "Password")
KEY_FIELDS = ("key", "Key", "encryption_key")


class AuthMethod(StrEnum):
    AUTO = "auto"
    BASIC = "basic"
    API_KEY = "api_key"


class UnlockMode(StrEnum):
    AUTO = "auto"
    PASSPHRASE = "passphrase"
    KEY = "key"


@dataclass(frozen=True)
class FieldNames:
    """Candidate field names for every credential shape, in lookup order."""

    username: tuple[str, ...] = USERNAME_FIELDS
    password: tuple[str, ...] = PASSWORD_FIELDS
    api_key: tuple[str, ...] = API_KEY_FIELDS
    passphrase: tuple[str, ...] = PASSPHRASE_FIELDS
    key: tuple[str, ...] = KEY_FIELDS


# ─── Credential shapes ───────────────────────────────────────────────────


@dataclass(frozen=True)
class UsernamePassword:
    username: SecretBytes
    password: SecretBytes

    def wipe(self) -> None:
        self.username.wipe()
        self.password.wipe()


@dataclass(frozen=True)
class ApiKey:
    key: SecretBytes

    def wipe(self) -> None:
        self.key.wipe()


NasCredential = UsernamePassword | ApiKey


@dataclass(frozen=True)
class Passphrase:
    value: SecretBytes

    def wipe(self) -> None:
        self.value.wipe()


@dataclass(frozen=True)
class KeyMaterial:
    value: SecretBytes

    def wipe(self) -> None:
        self.value.wipe()


UnlockSecret = Passphrase | KeyMaterial


# ─── Field lookup ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldLookup:
    """Result of searching an entry for one of several candidate names."""

    candidates: tuple[str, ...]
    name: str | None = None  # first candidate present on the entry
    value: bytes | None = field(default=None, repr=False)

    @property
    def present(self) -> bool:
        return self.name is not None

    @property
    def usable(self) -> bool:
        return self.value is not None and bool(self.value.strip())


def lookup_field(
    entry: VaultEntry, candidates: tuple[str, ...], attachments: bool = False
) -> FieldLookup:
    """Find the first candidate field present on ``entry``.

    With ``attachments=True`` binary attachments of the same name count too;
    string fields take precedence.
    """
    for name in candidates:
        text = entry.field(name)
        if text is not None:
            return FieldLookup(candidates, name, text.encode("utf-8"))
        if attachments:
            data = entry.attachment(name)
            if data is not None:
                return FieldLookup(candidates, name, data)
    return FieldLookup(candidates)


def _describe(lookup: FieldLookup) -> str:
    return lookup.name or "/".join(lookup.candidates)


# ─── Extraction ──────────────────────────────────────────────────────────


def extract_nas_credential(
    entry: VaultEntry,
    fields: FieldNames = FieldNames(),
    method: AuthMethod = AuthMethod.AUTO,
    label: str | None = None,
) -> NasCredential:
    """Extract the appliance login from ``entry``.

    AUTO prefers username/password and falls back to an API key. BASIC and
    API_KEY restrict extraction to that one shape; in API_KEY mode the
    password fields are accepted as a place to keep the key.
    """
    label = label or entry.label
    attempted: list[str] = []
    missing: list[str] = []
    blank: FieldLookup | None = None

    if method in (AuthMethod.AUTO, AuthMethod.BASIC):
        user = lookup_field(entry, fields.username)
        pw = lookup_field(entry, fields.password)
        if user.usable and pw.usable:
            logger.debug("Using username/password from %s", label)
            return UsernamePassword(SecretBytes(user.value), SecretBytes(pw.value))
        attempted.append("username/password")
        blank = next((f for f in (user, pw) if f.present and not f.usable), None)
        missing.extend(_describe(f) for f in (user, pw) if not f.present)

    if method in (AuthMethod.AUTO, AuthMethod.API_KEY):
        candidates = fields.api_key
        if method is AuthMethod.API_KEY:
            candidates += tuple(n for n in fields.password if n not in candidates)
        key = lookup_field(entry, candidates)
        if key.usable:
            logger.debug("Using API key from %s", label)
            return ApiKey(SecretBytes(key.value))
        attempted.append("api key")
        if key.present:
            blank = blank or key
        else:
            missing.append(_describe(key))

    if blank is not None:
        raise EmptyField(label, blank.name)
    raise MissingField(label, missing, attempted)


def extract_unlock_secret(
    entry: VaultEntry,
    fields: FieldNames = FieldNames(),
    mode: UnlockMode = UnlockMode.AUTO,
    label: str | None = None,
) -> UnlockSecret:
    """Extract the dataset passphrase or key from ``entry``.

    AUTO prefers a passphrase and falls back to key material, which may live
    in a string field or in an attachment. In KEY mode the password fields
    are accepted as a place to keep the key.
    """
    label = label or entry.label
    attempted: list[str] = []
    missing: list[str] = []
    blank: FieldLookup | None = None

    if mode in (UnlockMode.AUTO, UnlockMode.PASSPHRASE):
        phrase = lookup_field(entry, fields.passphrase)
        if phrase.usable:
            logger.debug("Using passphrase from %s", label)
            return Passphrase(SecretBytes(phrase.value))
        attempted.append("passphrase")
        if phrase.present:
            blank = phrase
        else:
            missing.append(_describe(phrase))

    if mode in (UnlockMode.AUTO, UnlockMode.KEY):
        candidates = fields.key
        if mode is UnlockMode.KEY:
            candidates += tuple(n for n in fields.password if n not in candidates)
        key = lookup_field(entry, candidates, attachments=True)
        if key.usable:
            logger.debug("Using key material from %s", label)
            return KeyMaterial(SecretBytes(key.value))
        attempted.append("key")
        if key.present:
            blank = blank or key
        else:
            missing.append(_describe(key))

    if blank is not None:
        raise EmptyField(label, blank.name)
    raise MissingField(label, missing, attempted)
