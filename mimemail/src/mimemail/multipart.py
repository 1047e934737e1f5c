"""Streaming multipart framing over any binary writer.

What:
  Provide :class:`MultipartWriter`, which writes delimiter lines, sub-part
  header blocks and the closing delimiter straight to a destination, and
  :func:`emit`, the single choke point through which every byte of a message
  reaches its destination.

Why:
  Messages may be written into a socket, a file or the plaintext side of a
  cipher writer. Building the whole document in memory first would defeat the
  streaming cipher layers, and a single write helper is what turns the many
  ways a destination can fail into one :class:`SerializationError`.

How:
  Framing follows ``mime/multipart`` conventions: the first delimiter is
  ``--B`` + CRLF, later ones are preceded by CRLF, sub-part headers are sorted
  by name and end with an empty line, and :meth:`MultipartWriter.close` writes
  CRLF ``--B--`` CRLF.

Interfaces:
  :class:`MultipartWriter`, :func:`emit`, :data:`CRLF`.

Invariants & Safety:
  - Boundaries are validated against RFC 2046 before anything is written.
  - Writing a part after :meth:`MultipartWriter.close` raises
    :class:`~mimemail.errors.WriterClosedError`.
"""
from __future__ import annotations

from typing import BinaryIO, Iterable, Optional, Tuple

from .errors import MimeMailError, SerializationError, WriterClosedError
from .part import Part
from .utils.ids import boundary_param, is_valid_boundary, new_boundary

CRLF = b"\r\n"


def emit(destination: BinaryIO, data: bytes) -> None:
    """Write ``data`` to ``destination``, normalising failures.

    Errors raised by our own layered writers pass through unchanged; OS level
    failures and writes to closed files become :class:`SerializationError`.
    """

    try:
        destination.write(data)
    except MimeMailError:
        raise
    except (OSError, ValueError) as exc:
        raise SerializationError(f"write to destination failed: {exc}") from exc


class MultipartWriter:
    """Write one multipart body with a fixed boundary."""

    def __init__(self, destination: BinaryIO, boundary: Optional[str] = None) -> None:
        token = boundary if boundary is not None else new_boundary()
        if not is_valid_boundary(token):
            raise ValueError(f"invalid multipart boundary: {token!r}")
        self._destination = destination
        self._boundary = token
        self._parts = 0
        self._closed = False

    @property
    def boundary(self) -> str:
        return self._boundary

    def content_type(self, subtype: str, **params: str) -> str:
        """Return the ``Content-Type`` value announcing this body.

        Extra parameters come first and are quoted; the boundary is last and
        stays bare unless it holds tspecials or spaces.
        """

        rendered = "".join(f'; {name}="{value}"' for name, value in params.items())
        return f"multipart/{subtype}{rendered}; boundary={boundary_param(self._boundary)}"

    def create_part(self, headers: Iterable[Tuple[str, str]]) -> BinaryIO:
        """Open a new sub-part and return the destination for its body."""

        if self._closed:
            raise WriterClosedError("multipart writer already closed")
        delimiter = b"--" + self._boundary.encode("ascii") + CRLF
        if self._parts:
            delimiter = CRLF + delimiter
        block = b"".join(f"{name}: {value}".encode("utf-8") + CRLF for name, value in headers)
        emit(self._destination, delimiter + block + CRLF)
        self._parts += 1
        return self._destination

    def write_part(self, part: Part) -> None:
        """Write ``part`` (headers and body) as the next sub-part."""

        body_writer = self.create_part(part.iter_headers())
        body = part.body
        if body:
            emit(body_writer, body)

    def close(self) -> None:
        """Write the closing delimiter; further parts are rejected."""

        if self._closed:
            return
        trailer = b"--" + self._boundary.encode("ascii") + b"--" + CRLF
        if self._parts:
            trailer = CRLF + trailer
        emit(self._destination, trailer)
        self._closed = True
