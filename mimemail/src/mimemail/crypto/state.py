"""State machine shared by every layer of a cipher writer.

What:
  Define :class:`WriterState` and :class:`LayeredWriter`, the base class of the
  armor and OpenPGP layers.

Why:
  A cipher writer is only correct if its layers are written and closed in a
  strict order. Making the states explicit turns misuse (writing after close,
  closing the outer layer first) into immediate exceptions instead of silently
  truncated ciphertext.

How:
  ``OPEN`` becomes ``WRITING`` on the first write. :meth:`LayeredWriter.close`
  runs a pre-close check (which may refuse without changing state), then the
  layer's finishing step, then enters ``CLOSED``. A failure while finishing, or
  an explicit :meth:`LayeredWriter.abort`, enters ``ABORTED``. Both terminal
  states reject writes.

Interfaces:
  :class:`WriterState`, :class:`LayeredWriter`.

Invariants & Safety:
  - ``CLOSED`` is only reached through a successful explicit close.
  - Closing twice is a no-op; writing after ``CLOSED``/``ABORTED`` raises
    :class:`~mimemail.errors.WriterClosedError`.
"""
from __future__ import annotations

from enum import Enum

from ..errors import WriterClosedError


class WriterState(Enum):
    OPEN = "open"
    WRITING = "writing"
    CLOSED = "closed"
    ABORTED = "aborted"


_TERMINAL = (WriterState.CLOSED, WriterState.ABORTED)


class LayeredWriter:
    """Base class enforcing the ``OPEN -> WRITING -> CLOSED`` lifecycle.

    Subclasses implement ``_write`` and ``_finish`` and may override
    ``_check_close`` and ``_release``.
    """

    layer_name = "writer"

    def __init__(self) -> None:
        self._state = WriterState.OPEN

    @property
    def state(self) -> WriterState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state in _TERMINAL

    def write(self, data: bytes) -> int:
        if self._state in _TERMINAL:
            raise WriterClosedError(f"write to {self._state.value} {self.layer_name} layer")
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"{self.layer_name} layer accepts bytes, not {type(data).__name__}")
        payload = bytes(data)
        self._state = WriterState.WRITING
        try:
            self._write(payload)
        except Exception:
            self.abort()
            raise
        return len(payload)

    def close(self) -> None:
        if self._state is WriterState.CLOSED:
            return
        if self._state is WriterState.ABORTED:
            raise WriterClosedError(f"{self.layer_name} layer was aborted")
        self._check_close()
        try:
            self._finish()
        except Exception:
            self.abort()
            raise
        self._release()
        self._state = WriterState.CLOSED

    def abort(self) -> None:
        """Enter ``ABORTED`` without writing any trailer."""

        if self._state is WriterState.CLOSED:
            return
        self._state = WriterState.ABORTED
        self._release()

    def writable(self) -> bool:
        return not self.closed

    def _write(self, data: bytes) -> None:
        raise NotImplementedError

    def _finish(self) -> None:
        raise NotImplementedError

    def _check_close(self) -> None:
        """Raise to refuse closing; the state is left untouched."""

    def _release(self) -> None:
        """Free resources held by the layer."""
