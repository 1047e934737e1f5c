"""Exception taxonomy shared by the assembler, the cipher pipeline and transports.

What:
  Define one exception type per failure family so callers can tell user input
  mistakes (unknown address roles, missing sender), key material problems,
  destination write failures and delivery failures apart.

Why:
  Every operation in the package propagates the first error it meets to the
  immediate caller and never retries. A precise hierarchy is the only contract a
  caller has to decide whether to fix input, ask for a new passphrase or discard
  a partially written destination.

How:
  Root everything at :class:`MimeMailError`. Programmer errors (writing to a
  closed writer, closing layers out of order, mutating a finalised part) also
  derive from the matching builtin so generic ``ValueError``/``RuntimeError``
  handlers keep working.

Interfaces:
  :class:`MimeMailError`, :class:`NoSenderError`, :class:`InvalidFieldError`,
  :class:`KeyParseError`, :class:`KeyDecryptError`,
  :class:`SerializationError`, :class:`TransportError`,
  :class:`WriterClosedError`, :class:`CloseOrderError`,
  :class:`PartFinalizedError`.

Invariants & Safety:
  - Messages never embed key material, passphrases or body content.
"""
from __future__ import annotations


class MimeMailError(Exception):
    """Base class for every error raised by :mod:`mimemail`."""


class NoSenderError(MimeMailError):
    """Raised when neither ``Sender`` nor ``From`` is populated."""

    def __init__(self) -> None:
        super().__init__("message has neither From nor Sender set")


class InvalidFieldError(MimeMailError, ValueError):
    """Raised when an address is added under an unrecognised role.

    What:
      Carries the rejected role so callers can report it verbatim.

    Why:
      The address map only accepts the seven roles of
      :class:`~mimemail.addresses.AddressRole`; anything else is a caller bug
      that must not leak into the header block.
    """

    def __init__(self, field: object) -> None:
        self.field = field
        super().__init__(
            f"{field!s} is not a valid field "
            "(use: Sender, From, To, Cc, Bcc, ReplyTo or FollowupTo)"
        )


class KeyParseError(MimeMailError):
    """Raised when key material is malformed or of the wrong type."""


class KeyDecryptError(MimeMailError):
    """Raised when a private key cannot be unlocked with the given passphrase."""


class SerializationError(MimeMailError):
    """Raised when writing to a destination fails at any layer.

    A partial write may already be visible to the destination. Callers must
    discard it and start over on a fresh destination.
    """


class TransportError(MimeMailError):
    """Raised for connection, TLS, authentication or delivery failures."""


class WriterClosedError(MimeMailError, ValueError):
    """Raised when a layered writer is used after it reached ``CLOSED``."""


class CloseOrderError(MimeMailError, RuntimeError):
    """Raised when an outer writer layer is closed before its inner layer."""


class PartFinalizedError(MimeMailError, ValueError):
    """Raised when a part is mutated after being handed to a message."""


__all__ = [
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
