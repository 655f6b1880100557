"""
naslock error hierarchy.

Every fatal condition is a NaslockError subclass carrying the process exit
code of its category. The CLI catches NaslockError at the top level, prints a
single message and exits with ``exit_code``.

    3  configuration
    4  vault could not be opened
    5  entry resolution
    6  field extraction
    7  appliance rejected the request
    8  appliance unreachable
"""

from __future__ import annotations

from uuid import UUID

EXIT_UNEXPECTED = 1
EXIT_USAGE = 2
EXIT_CONFIG = 3
EXIT_VAULT = 4
EXIT_RESOLUTION = 5
EXIT_EXTRACTION = 6
EXIT_API = 7
EXIT_UNREACHABLE = 8
EXIT_INTERRUPTED = 130


class NaslockError(Exception):
    """Base exception for all naslock errors."""

    exit_code = EXIT_UNEXPECTED

    def __init__(self, message: str, context: str | None = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message}\n{self.context}"
        return self.message


class ConfigError(NaslockError):
    """Configuration file missing, unreadable or invalid."""

    exit_code = EXIT_CONFIG


class VaultOpenError(NaslockError):
    """The KeePass database could not be opened.

    ``reason`` is one of ``credentials`` (wrong password or key file),
    ``corrupt`` (bad checksum / unsupported format) or ``missing``.
    """

    exit_code = EXIT_VAULT

    def __init__(self, message: str, reason: str, context: str | None = None):
        self.reason = reason
        super().__init__(message, context)


# ─── Resolution ──────────────────────────────────────────────────────────


class ResolutionError(NaslockError):
    exit_code = EXIT_RESOLUTION


class InvalidSelector(ResolutionError):
    def __init__(self, selector: str, problem: str):
        self.selector = selector
        super().__init__(f"Invalid entry selector {selector!r}: {problem}")


class EntryNotFound(ResolutionError):
    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(f"KeePass entry not found: {selector}")


class AmbiguousSelector(ResolutionError):
    """More than one entry carries the requested title."""

    def __init__(self, selector: str, uuids: list[UUID]):
        self.selector = selector
        self.uuids = uuids
        super().__init__(
            f"KeePass selector {selector!r} matches {len(uuids)} entries",
            "Use one of: " + ", ".join(f"uuid:{u}" for u in uuids),
        )


class VaultIntegrityError(ResolutionError):
    """The vault library reported the same UUID for more than one entry."""

    def __init__(self, uuid: UUID, count: int):
        self.uuid = uuid
        self.count = count
        super().__init__(f"KeePass database lists UUID {uuid} on {count} entries")


# ─── Extraction ──────────────────────────────────────────────────────────


class ExtractionError(NaslockError):
    exit_code = EXIT_EXTRACTION


class MissingField(ExtractionError):
    """None of the candidate fields for a credential shape exist on the entry."""

    def __init__(self, entry: str, missing: list[str], attempted: list[str]):
        self.entry = entry
        self.missing = missing
        self.attempted = attempted
        super().__init__(
            f"Missing field {' / '.join(repr(m) for m in missing)} in KeePass entry {entry}",
            f"Tried: {', '.join(attempted)}",
        )


class EmptyField(ExtractionError):
    """A field is present on the entry but holds no value."""

    def __init__(self, entry: str, field: str):
        self.entry = entry
        self.field = field
        super().__init__(f"Field {field!r} is empty in KeePass entry {entry}")


# ─── Appliance API ───────────────────────────────────────────────────────


class ApiError(NaslockError):
    exit_code = EXIT_API


class AuthenticationRejected(ApiError):
    pass


class SecretRejected(ApiError):
    pass


class UnexpectedResponse(ApiError):
    def __init__(self, message: str, status: int | None = None, excerpt: str = ""):
        self.status = status
        self.excerpt = excerpt
        super().__init__(message, excerpt or None)


class Unreachable(ApiError):
    """Network-level failure; transient, retried before surfacing."""

    exit_code = EXIT_UNREACHABLE
