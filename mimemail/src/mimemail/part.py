"""MIME leaf parts: header fields plus an opaque byte body.

What:
  Implement :class:`Part`, the unit the assembler writes between multipart
  boundaries, together with constructors for the part kinds the package emits
  (text bodies, base64 attachments and the two PGP/MIME envelope children).

Why:
  Parts are filled incrementally (callers render templates into them) but must
  be frozen once a message owns them, otherwise two serialisations of the same
  message could disagree.

How:
  Header names are normalised to their canonical ``Word-Word`` spelling and
  stored as lists of values. The body accumulates in a :class:`io.BytesIO`
  until :meth:`Part.finalize` snapshots it to ``bytes``; after that every
  mutator raises :class:`~mimemail.errors.PartFinalizedError`.

Interfaces:
  :class:`Part`, :func:`canonical_header`.

Invariants & Safety:
  - Exactly one ``Content-Type`` value per part.
  - Attachment bodies are base64 with 76-character CRLF-separated lines, so
    they never contain a boundary delimiter line.
  - File handles opened by :meth:`Part.from_file` are closed on every path.
"""
from __future__ import annotations

import base64
import email.utils
import io
import os
import re
from typing import BinaryIO, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from .errors import PartFinalizedError

CONTENT_TYPE = "Content-Type"
CONTENT_TRANSFER_ENCODING = "Content-Transfer-Encoding"
CONTENT_DISPOSITION = "Content-Disposition"
CONTENT_DESCRIPTION = "Content-Description"

MIME_TEXT = "text/plain"
MIME_HTML = "text/html"
MIME_UTF8 = "utf-8"
MIME_OCTET_STREAM = "application/octet-stream"
MIME_PGP_ENCRYPTED = "application/pgp-encrypted"

_B64_LINE_BYTES = 57  # 57 raw bytes encode to one 76 character line
_READ_CHUNK = _B64_LINE_BYTES * 1024

_TOKEN_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

HeaderValue = Union[str, Iterable[str]]


def canonical_header(name: str) -> str:
    """Return ``name`` in canonical MIME form (``content-type`` -> ``Content-Type``)."""

    cleaned = name.strip()
    if not cleaned or any(ch in cleaned for ch in " :\r\n"):
        raise ValueError(f"invalid header name: {name!r}")
    return "-".join(segment[:1].upper() + segment[1:].lower() for segment in cleaned.split("-"))


class Part:
    """A header block plus body, writable until finalised.

    What:
      Holds the header fields and body bytes of one MIME sub-part.

    Why:
      The assembler needs a value it can emit repeatedly with identical bytes;
      callers need something file-like to render content into first.

    How:
      ``write`` appends to an in-memory buffer. :meth:`finalize` freezes the body
      and headers; it is called by :meth:`mimemail.message.Message.add_part`.
    """

    def __init__(
        self,
        content_type: str,
        body: bytes = b"",
        headers: Optional[Mapping[str, HeaderValue]] = None,
    ) -> None:
        if not content_type:
            raise ValueError("a part requires a Content-Type")
        self._headers: Dict[str, List[str]] = {CONTENT_TYPE: [content_type]}
        self._buffer: Optional[io.BytesIO] = io.BytesIO()
        self._body: bytes = b""
        for name, value in (headers or {}).items():
            values = [value] if isinstance(value, str) else list(value)
            for item in values:
                self.add_header(name, item)
        if body:
            self.write(body)

    # -- constructors -----------------------------------------------------

    @classmethod
    def text(cls, content_type: str, charset: str = MIME_UTF8, body: bytes = b"") -> "Part":
        return cls(f"{content_type}; charset={charset}", body)

    @classmethod
    def plain_text(cls, body: bytes = b"") -> "Part":
        """Create a ``text/plain; charset=utf-8`` part."""

        return cls.text(MIME_TEXT, MIME_UTF8, body)

    @classmethod
    def html(cls, body: bytes = b"") -> "Part":
        """Create a ``text/html; charset=utf-8`` part."""

        return cls.text(MIME_HTML, MIME_UTF8, body)

    @classmethod
    def attachment(cls, name: str, stream: BinaryIO) -> "Part":
        """Create a base64 attachment part from everything readable in ``stream``.

        What:
          Reads ``stream`` to exhaustion and stores its base64 encoding under
          ``application/octet-stream`` headers with an attachment disposition.

        Why:
          Attachments are arbitrary binary data; base64 keeps them 7-bit clean and
          guarantees the body cannot collide with a boundary line.

        How:
          Reads in chunks, encodes every complete 57-byte group into one
          76-character line and encodes the remainder at the end. The caller keeps
          ownership of ``stream``.

        Args:
          name: File name announced in ``Content-Disposition``; bare when it is
            a MIME token, quoted otherwise and RFC 2231 encoded when non-ASCII.
          stream: Binary file-like object.

        Returns:
          An unfinalised :class:`Part`.
        """

        part = cls(
            MIME_OCTET_STREAM,
            headers={
                CONTENT_TRANSFER_ENCODING: "base64",
                CONTENT_DISPOSITION: f"attachment; {_filename_param(name)}",
            },
        )
        part.write(b"\r\n".join(_base64_lines(stream)))
        return part

    @classmethod
    def from_file(cls, path: Union[str, "os.PathLike[str]"], name: Optional[str] = None) -> "Part":
        """Create an attachment part from the file at ``path``.

        ``name`` defaults to the file's basename.
        """

        attachment_name = name or os.path.basename(os.fspath(path))
        with open(path, "rb") as handle:
            return cls.attachment(attachment_name, handle)

    @classmethod
    def pgp_version(cls) -> "Part":
        """The PGP/MIME control part carrying ``Version: 1``."""

        return cls(
            MIME_PGP_ENCRYPTED,
            b"Version: 1\r\n",
            headers={CONTENT_DESCRIPTION: "PGP/MIME version identification"},
        )

    @classmethod
    def pgp_body(cls) -> "Part":
        """Headers of the PGP/MIME ciphertext part; its body is streamed separately."""

        return cls(
            MIME_OCTET_STREAM,
            headers={
                CONTENT_DESCRIPTION: "OpenPGP encrypted message",
                CONTENT_DISPOSITION: 'inline; filename="encrypted.asc"',
            },
        )

    # -- headers ----------------------------------------------------------

    @property
    def content_type(self) -> str:
        return self._headers[CONTENT_TYPE][0]

    @property
    def headers(self) -> Dict[str, Tuple[str, ...]]:
        """Return a copy of the header mapping."""

        return {name: tuple(values) for name, values in self._headers.items()}

    def get_header(self, name: str) -> Optional[str]:
        values = self._headers.get(canonical_header(name))
        return values[0] if values else None

    def set_header(self, name: str, value: str) -> None:
        """Replace every value of ``name`` with ``value``."""

        self._ensure_mutable()
        _check_value(value)
        self._headers[canonical_header(name)] = [value]

    def add_header(self, name: str, value: str) -> None:
        """Append ``value`` to ``name``; a second ``Content-Type`` is rejected."""

        self._ensure_mutable()
        _check_value(value)
        key = canonical_header(name)
        if key == CONTENT_TYPE and self._headers.get(CONTENT_TYPE):
            raise ValueError("a part carries exactly one Content-Type")
        self._headers.setdefault(key, []).append(value)

    def iter_headers(self) -> Iterator[Tuple[str, str]]:
        """Yield ``(name, value)`` pairs sorted by header name."""

        for name in sorted(self._headers):
            for value in self._headers[name]:
                yield name, value

    # -- body -------------------------------------------------------------

    def write(self, data: bytes) -> int:
        self._ensure_mutable()
        assert self._buffer is not None
        return self._buffer.write(data)

    @property
    def body(self) -> bytes:
        if self._buffer is not None:
            return self._buffer.getvalue()
        return self._body

    @property
    def finalized(self) -> bool:
        return self._buffer is None

    def finalize(self) -> "Part":
        """Freeze headers and body; repeated calls are no-ops."""

        if self._buffer is not None:
            if len(self._headers.get(CONTENT_TYPE, ())) != 1:
                raise ValueError("a part carries exactly one Content-Type")
            self._body = self._buffer.getvalue()
            self._buffer.close()
            self._buffer = None
        return self

    def _ensure_mutable(self) -> None:
        if self._buffer is None:
            raise PartFinalizedError("part has been added to a message and can no longer change")

    def __repr__(self) -> str:
        return f"Part(content_type={self.content_type!r}, size={len(self.body)}, finalized={self.finalized})"


def _check_value(value: str) -> None:
    if "\r" in value or "\n" in value:
        raise ValueError("header values must not contain line breaks")


def _filename_param(name: str) -> str:
    _check_value(name)
    if _TOKEN_RE.fullmatch(name):
        return f"filename={name}"
    try:
        name.encode("ascii")
    except UnicodeEncodeError:
        return f"filename*={email.utils.encode_rfc2231(name, 'utf-8')}"
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'filename="{escaped}"'


def _base64_lines(stream: BinaryIO) -> Iterator[bytes]:
    pending = b""
    while True:
        chunk = stream.read(_READ_CHUNK)
        if not chunk:
            break
        pending += chunk
        usable = len(pending) - len(pending) % _B64_LINE_BYTES
        for offset in range(0, usable, _B64_LINE_BYTES):
            yield base64.b64encode(pending[offset:offset + _B64_LINE_BYTES])
        pending = pending[usable:]
    if pending:
        yield base64.b64encode(pending)


__all__ = [
    "Part",
    "canonical_header",
    "CONTENT_TYPE",
    "CONTENT_TRANSFER_ENCODING",
    "CONTENT_DISPOSITION",
    "CONTENT_DESCRIPTION",
    "MIME_OCTET_STREAM",
    "MIME_PGP_ENCRYPTED",
]
