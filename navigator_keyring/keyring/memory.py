"""
Secret memory — zero-and-drop holders for key material.

Security Note:
    Python gives no guarantee about copies made by the interpreter or by
    third-party libraries. ``SecretBuffer`` keeps its own copy in a mutable
    ``bytearray`` so at least that copy is overwritten when released.
"""
from contextlib import contextmanager
from typing import Union
from collections.abc import Iterator

from ..exceptions import StateError


def zero(buffer: bytearray) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    for i in range(len(buffer)):
        buffer[i] = 0


class SecretBuffer:
    """Mutable holder for secret bytes that can be zeroed on release.

    Usable as a context manager: the buffer is wiped on exit, on every
    exit path.
    """

    __slots__ = ("_buffer", "_wiped")

    def __init__(self, data: Union[bytes, bytearray, str]) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._buffer = bytearray(data)
        self._wiped = False

    @classmethod
    def take(cls, buffer: Union[bytes, bytearray]) -> "SecretBuffer":
        """Copy ``buffer`` into a new SecretBuffer.

        A ``bytearray`` source is zeroed; immutable ``bytes`` cannot be.
        """
        secret = cls(buffer)
        if isinstance(buffer, bytearray):
            zero(buffer)
        return secret

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else "redacted"
        return f"<SecretBuffer [{state}]>"

    def __len__(self) -> int:
        return len(self._buffer)

    def __enter__(self) -> "SecretBuffer":
        return self

    def __exit__(self, *exc) -> None:
        self.wipe()

    @property
    def wiped(self) -> bool:
        return self._wiped

    def reveal(self) -> bytes:
        """Return the secret bytes.

        Raises:
            StateError: If the buffer has already been wiped.
        """
        if self._wiped:
            raise StateError("Secret material has been released")
        return bytes(self._buffer)

    def reveal_str(self) -> str:
        return self.reveal().decode("utf-8")

    def wipe(self) -> None:
        """Overwrite the buffer with zeros and drop it."""
        zero(self._buffer)
        del self._buffer[:]
        self._wiped = True


@contextmanager
def wipe_on_error(*holders) -> Iterator[None]:
    """Wipe the given holders if the block raises; leave them alone otherwise.

    Holders are anything with a ``wipe()`` method (buffers, keyrings).
    """
    try:
        yield
    except BaseException:
        for holder in holders:
            holder.wipe()
        raise
