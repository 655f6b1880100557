"""
Wipeable secret buffers.

Secrets read from the vault are copied into a bytearray owned by SecretBytes
and zeroed when the owner is done with them. Use as a context manager so the
wipe also happens on error paths:

    with SecretBytes.from_text(getpass.getpass()) as password:
        store = open_vault(path, password)
"""

from __future__ import annotations


class SecretBytes:
    """A mutable byte buffer that can be zeroed in place."""

    __slots__ = ("_buf",)

    def __init__(self, value: bytes | bytearray = b"") -> None:
        self._buf = bytearray(value)

    @classmethod
    def from_text(cls, value: str) -> SecretBytes:
        return cls(value.encode("utf-8"))

    def reveal(self) -> bytes:
        """Return an immutable copy of the secret."""
        return bytes(self._buf)

    def text(self) -> str:
        return self._buf.decode("utf-8")

    def is_blank(self) -> bool:
        return not self._buf.strip()

    @property
    def wiped(self) -> bool:
        return len(self._buf) == 0

    def wipe(self) -> None:
        """Overwrite the buffer with zeros, then release it."""
        for i in range(len(self._buf)):
            self._buf[i] = 0
        self._buf.clear()

    def __len__(self) -> int:
        return len(self._buf)

    def __enter__(self) -> SecretBytes:
        return self

    def __exit__(self, *exc) -> None:
        self.wipe()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretBytes):
            return self._buf == other._buf
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return "SecretBytes(<wiped>)" if self.wiped else "SecretBytes(<redacted>)"
