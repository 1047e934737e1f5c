"""OpenPGP ASCII armor (RFC 4880 section 6) as a streaming writer layer.

What:
  Implement :class:`ArmorLayer`, the outer layer of every cipher writer, and
  :func:`decode_armor`, its inverse used when opening envelopes.

Why:
  The armor trailer (CRC-24 checksum and ``END`` line) may only be written
  once the inner OpenPGP layer has emitted its last packet. Owning the armor
  layer here, instead of letting the OpenPGP backend armor its own output,
  lets the pipeline enforce that ordering itself: the layer knows the inner
  layer bound to it and refuses to close while that layer is still open.

How:
  Incoming binary data is base64 encoded in 48-byte groups (64-character
  lines) while a table-driven CRC-24 runs over the raw bytes. The ``BEGIN``
  line and armor headers are written lazily on the first write, or on close
  for an empty stream.

Interfaces:
  :class:`ArmorLayer`, :func:`decode_armor`, :func:`crc24`.

Invariants & Safety:
  - The checksum line and ``END`` line are written exactly once, on a
    successful close.
  - Closing before the bound inner layer has closed raises
    :class:`~mimemail.errors.CloseOrderError` and leaves the layer writable.
"""
from __future__ import annotations

import base64
import binascii
from typing import BinaryIO, Dict, Mapping, Optional, Tuple

from ..errors import CloseOrderError
from ..multipart import CRLF, emit
from .state import LayeredWriter, WriterState

CRC24_INIT = 0xB704CE
CRC24_POLY = 0x1864CFB
LINE_BYTES = 48  # 64 base64 characters per armored line


def _crc24_table() -> Tuple[int, ...]:
    table = []
    for index in range(256):
        crc = index << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= CRC24_POLY
        table.append(crc & 0xFFFFFF)
    return tuple(table)


_CRC24_TABLE = _crc24_table()


def crc24(data: bytes, crc: int = CRC24_INIT) -> int:
    """Return the OpenPGP CRC-24 of ``data``, continuing from ``crc``."""

    for byte in data:
        crc = ((crc << 8) & 0xFFFFFF) ^ _CRC24_TABLE[((crc >> 16) ^ byte) & 0xFF]
    return crc


class ArmorLayer(LayeredWriter):
    """ASCII armor encoder writing to ``destination``.

    What:
      Turns binary OpenPGP packets into an armored text block.

    How:
      Buffers at most 47 bytes between writes so every emitted line is full;
      the remainder and the checksum are flushed on :meth:`close`.
    """

    layer_name = "armor"

    def __init__(
        self,
        destination: BinaryIO,
        block_type: str = "PGP MESSAGE",
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__()
        self._destination = destination
        self._block_type = block_type
        self._headers: Dict[str, str] = dict(headers or {})
        self._pending = b""
        self._crc = CRC24_INIT
        self._started = False
        self._inner: Optional[LayeredWriter] = None

    def bind_inner(self, inner: LayeredWriter) -> None:
        """Register the layer whose output this layer armors."""

        self._inner = inner

    def _start(self) -> None:
        if self._started:
            return
        lines = [f"-----BEGIN {self._block_type}-----".encode("ascii")]
        lines.extend(f"{name}: {value}".encode("utf-8") for name, value in self._headers.items())
        emit(self._destination, CRLF.join(lines) + CRLF + CRLF)
        self._started = True

    def _write(self, data: bytes) -> None:
        self._start()
        self._crc = crc24(data, self._crc)
        pending = self._pending + data
        usable = len(pending) - len(pending) % LINE_BYTES
        if usable:
            lines = [
                base64.b64encode(pending[offset:offset + LINE_BYTES])
                for offset in range(0, usable, LINE_BYTES)
            ]
            emit(self._destination, CRLF.join(lines) + CRLF)
        self._pending = pending[usable:]

    def _check_close(self) -> None:
        if self._inner is not None and self._inner.state is not WriterState.CLOSED:
            raise CloseOrderError(
                f"armor layer closed before its {self._inner.layer_name} layer finished"
            )

    def _finish(self) -> None:
        self._start()
        tail = b""
        if self._pending:
            tail = base64.b64encode(self._pending) + CRLF
            self._pending = b""
        checksum = b"=" + base64.b64encode(self._crc.to_bytes(3, "big")) + CRLF
        end = f"-----END {self._block_type}-----".encode("ascii") + CRLF
        emit(self._destination, tail + checksum + end)


def decode_armor(text: bytes) -> Tuple[str, Dict[str, str], bytes]:
    """Decode one armored block.

    Returns:
      ``(block_type, headers, data)``.

    Raises:
      ValueError: When the block is malformed, truncated or its CRC-24 does not
        match.
    """

    lines = [line.strip() for line in text.splitlines()]
    try:
        start = next(index for index, line in enumerate(lines) if line.startswith(b"-----BEGIN "))
    except StopIteration:
        raise ValueError("no armor BEGIN line") from None
    header_line = lines[start]
    if not header_line.endswith(b"-----"):
        raise ValueError("malformed armor BEGIN line")
    block_type = header_line[len(b"-----BEGIN "):-len(b"-----")].decode("ascii")
    end_line = f"-----END {block_type}-----".encode("ascii")
    try:
        end = lines.index(end_line, start + 1)
    except ValueError:
        raise ValueError("armor END line missing (truncated block)") from None

    headers: Dict[str, str] = {}
    cursor = start + 1
    while cursor < end and lines[cursor]:
        name, sep, value = lines[cursor].decode("utf-8").partition(": ")
        if not sep:
            raise ValueError("malformed armor header")
        headers[name] = value
        cursor += 1

    body = [line for line in lines[cursor:end] if line]
    if not body or not body[-1].startswith(b"="):
        raise ValueError("armor checksum missing")
    try:
        data = base64.b64decode(b"".join(body[:-1]), validate=True)
        expected = int.from_bytes(base64.b64decode(body[-1][1:], validate=True), "big")
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 in armor: {exc}") from exc
    if crc24(data) != expected:
        raise ValueError("armor checksum mismatch")
    return block_type, headers, data
