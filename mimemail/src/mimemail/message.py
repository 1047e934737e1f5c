"""Message assembler: canonical header block plus ``multipart/mixed`` body.

What:
  Implement :class:`Message`, which owns an address map, a subject and an
  ordered list of finalised :class:`~mimemail.part.Part` objects and writes
  their canonical serialisation to any binary writer.

Why:
  Transports and the cipher pipeline both need the exact same bytes for the
  same message. Header order is therefore fixed in code rather than derived
  from mapping iteration, and the boundary can be pinned so serialisation is
  reproducible.

How:
  :meth:`Message.write_header` walks :data:`~mimemail.addresses.ROLE_ORDER`,
  then emits ``Subject`` and ``MIME-Version``. :meth:`Message.write_body`
  announces the ``multipart/mixed`` content type and streams every part
  through :class:`~mimemail.multipart.MultipartWriter`. All writes go through
  :func:`~mimemail.multipart.emit`, so any destination failure surfaces as
  :class:`~mimemail.errors.SerializationError`.

Interfaces:
  :class:`Message`.

Invariants & Safety:
  - Header order: Sender, From, To, Cc, Bcc, Reply-To, Followup-To, Subject,
    MIME-Version, Content-Type. Empty roles and an empty subject are skipped.
  - Serialisation never mutates the message; with a pinned boundary repeated
    calls are byte-identical.
  - There is no rollback: a failed serialisation may have written a prefix to
    the destination, which the caller must discard.
"""
from __future__ import annotations

import contextlib
import io
import os
from email.header import Header
from typing import BinaryIO, Iterator, List, Optional, Tuple, Union

from .addresses import MAX_LINE, Address, AddressRole, Addresses
from .errors import NoSenderError
from .multipart import CRLF, MultipartWriter, emit
from .part import Part
from .utils.ids import is_valid_boundary

MIME_VERSION = "1.0"


class Message:
    """A mutable email message with a deterministic serialisation.

    What:
      Collects addresses, a subject and parts; renders them on demand.

    Why:
      Callers mutate a message any number of times and may serialise it
      repeatedly (plain for one recipient, encrypted for another), so nothing
      derived from the inputs is cached.

    How:
      Parts are finalised as they are added. :meth:`serialize` writes the
      header block and the multipart body; :meth:`to_bytes` does the same into
      memory.
    """

    def __init__(self, subject: str = "", *, boundary: Optional[str] = None) -> None:
        self.addresses = Addresses()
        self._subject = ""
        self._parts: List[Part] = []
        self._boundary: Optional[str] = None
        self.subject = subject
        self.pin_boundary(boundary)

    # -- content ------------------------------------------------------------

    @property
    def subject(self) -> str:
        return self._subject

    @subject.setter
    def subject(self, value: str) -> None:
        if "\r" in value or "\n" in value:
            raise ValueError("subject must not contain line breaks")
        self._subject = value

    @property
    def parts(self) -> Tuple[Part, ...]:
        return tuple(self._parts)

    def add_address(self, role: Union[AddressRole, str], address: str, name: str = "") -> Address:
        """Add ``address`` under ``role``; unknown roles raise ``InvalidFieldError``."""

        return self.addresses.add(role, address, name)

    def add_part(self, part: Part) -> Part:
        """Finalise ``part`` and append it to the body."""

        self._parts.append(part.finalize())
        return part

    def add_text(self, text: Union[str, bytes], subtype: str = "plain") -> Part:
        """Append a UTF-8 ``text/<subtype>`` part holding ``text``."""

        body = text.encode("utf-8") if isinstance(text, str) else text
        return self.add_part(Part.text(f"text/{subtype}", body=body))

    @contextlib.contextmanager
    def body_writer(self, subtype: str = "plain") -> Iterator[Part]:
        """Yield a writable ``text/<subtype>`` part, appended when the block exits cleanly.

        Intended for rendering templates straight into the body::

            with message.body_writer("html") as body:
                template.stream(context).dump(body)
        """

        part = Part.text(f"text/{subtype}")
        yield part
        self.add_part(part)

    def add_file(self, path: Union[str, "os.PathLike[str]"], name: Optional[str] = None) -> Part:
        """Attach the file at ``path``, optionally under a different ``name``."""

        return self.add_part(Part.from_file(path, name))

    def add_reader(self, name: str, stream: BinaryIO) -> Part:
        """Attach everything readable from ``stream`` as ``name``."""

        return self.add_part(Part.attachment(name, stream))

    # -- boundary -------------------------------------------------------------

    @property
    def boundary(self) -> Optional[str]:
        """The pinned boundary, or ``None`` when each serialisation draws a new one."""

        return self._boundary

    def pin_boundary(self, boundary: Optional[str]) -> None:
        """Pin the ``multipart/mixed`` boundary; ``None`` restores random boundaries."""

        if boundary is not None and not is_valid_boundary(boundary):
            raise ValueError(f"invalid multipart boundary: {boundary!r}")
        self._boundary = boundary

    # -- derived views ----------------------------------------------------------

    def effective_sender(self) -> str:
        """Return the transport envelope sender.

        What:
          The first ``Sender`` address when that role is populated, otherwise
          the first ``From`` address.

        Why:
          Servers generally require the envelope sender to match the
          authenticated account; RFC 5322 designates ``Sender`` as the actual
          submitter when it differs from ``From``.

        Raises:
          NoSenderError: When both roles are empty.
        """

        for role in (AddressRole.SENDER, AddressRole.FROM):
            entry = self.addresses.first(role)
            if entry is not None:
                return entry.address
        raise NoSenderError()

    def recipients(self) -> List[str]:
        """Every To, Cc and Bcc address, in that order."""

        return self.addresses.recipients()

    # -- serialisation ------------------------------------------------------------

    def header_lines(self) -> List[Tuple[str, str]]:
        """Return the canonical header block as ``(field, value)`` pairs."""

        lines = list(self.addresses.header_lines())
        if self._subject:
            lines.append(("Subject", _encode_subject(self._subject)))
        lines.append(("MIME-Version", MIME_VERSION))
        return lines

    def write_header(self, destination: BinaryIO) -> None:
        """Write the canonical header block (without ``Content-Type``)."""

        block = b"".join(f"{field}: {value}".encode("utf-8") + CRLF for field, value in self.header_lines())
        emit(destination, block)

    def write_body(self, destination: BinaryIO, boundary: Optional[str] = None) -> str:
        """Write ``Content-Type`` and the ``multipart/mixed`` body.

        Returns:
          The boundary that was used.
        """

        writer = MultipartWriter(destination, boundary or self._boundary)
        emit(destination, f"Content-Type: {writer.content_type('mixed')}".encode("ascii") + CRLF + CRLF)
        for part in self._parts:
            writer.write_part(part)
        writer.close()
        return writer.boundary

    def serialize(self, destination: BinaryIO) -> str:
        """Write the complete message to ``destination``.

        Raises:
          SerializationError: On any write failure; output already written to
            ``destination`` must be discarded by the caller.

        Returns:
          The boundary that was used.
        """

        self.write_header(destination)
        return self.write_body(destination)

    write_to = serialize

    def to_bytes(self) -> bytes:
        """Serialise into memory and return the bytes."""

        buffer = io.BytesIO()
        self.serialize(buffer)
        return buffer.getvalue()

    def write_encrypted(self, destination: BinaryIO, recipient, signer=None, config=None) -> None:
        """Write this message as a PGP/MIME envelope; see :func:`mimemail.crypto.write_envelope`."""

        from .crypto.envelope import write_envelope

        write_envelope(destination, self, recipient, signer, config=config)

    def encrypt(self, recipient, signer=None, config=None) -> bytes:
        """Return this message as PGP/MIME envelope bytes."""

        from .crypto.envelope import encrypt_message

        return encrypt_message(self, recipient, signer, config=config)

    def __repr__(self) -> str:
        return f"Message(subject={self._subject!r}, addresses={len(self.addresses)}, parts={len(self._parts)})"


def _encode_subject(subject: str) -> str:
    try:
        subject.encode("ascii")
    except UnicodeEncodeError:
        return Header(subject, "utf-8", header_name="Subject").encode(linesep="\r\n")
    if len(subject) + len("Subject: ") <= MAX_LINE:
        return subject
    return Header(subject, header_name="Subject").encode(splitchars=" ", maxlinelen=MAX_LINE, linesep="\r\n")
