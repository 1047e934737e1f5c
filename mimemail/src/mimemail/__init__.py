"""
Module: mimemail.__init__

What:
  Aggregate the public surface of mimemail: the message assembler, parts,
  address roles, the PGP/MIME cipher pipeline and the error taxonomy.

Why:
  Callers compose, encrypt and send messages through a handful of names.
  Re-exporting them here keeps call sites independent of the internal module
  layout.

How:
  Import the vetted classes and functions from their modules and enumerate
  them in ``__all__``. Transport and configuration stay in their subpackages
  (:mod:`mimemail.transport`, :mod:`mimemail.config`).

Interfaces:
  - Message, Part, AddressRole, Address, Addresses
  - GnuPGKeyring, open_cipher_writer, open_signing_writer, write_envelope,
    encrypt_message, open_envelope
  - MimeMailError and its subclasses
"""

from .addresses import Address, AddressRole, Addresses
from .crypto import (
    GnuPGKeyring,
    encrypt_message,
    open_cipher_writer,
    open_envelope,
    open_signing_writer,
    write_envelope,
)
from .errors import (
    CloseOrderError,
    InvalidFieldError,
    KeyDecryptError,
    KeyParseError,
    MimeMailError,
    NoSenderError,
    PartFinalizedError,
    SerializationError,
    TransportError,
    WriterClosedError,
)
from .message import Message
from .part import Part

__version__ = "0.1.0"

__all__ = [
    "Message",
    "Part",
    "Address",
    "AddressRole",
    "Addresses",
    "GnuPGKeyring",
    "open_cipher_writer",
    "open_signing_writer",
    "write_envelope",
    "encrypt_message",
    "open_envelope",
    "MimeMailError",
    "NoSenderError",
    "InvalidFieldError",
    "KeyParseError",
    "KeyDecryptError",
    "SerializationError",
    "TransportError",
    "WriterClosedError",
    "CloseOrderError",
    "PartFinalizedError",
]
