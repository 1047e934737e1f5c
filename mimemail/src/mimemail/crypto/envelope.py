"""PGP/MIME (RFC 3156) envelopes around serialised messages.

What:
  Wrap the complete serialisation of a :class:`~mimemail.message.Message`
  in a ``multipart/encrypted`` envelope, and open such envelopes again.

Why:
  The plain message and its encrypted form must never drift apart. The
  envelope therefore encrypts exactly what :meth:`Message.serialize` writes,
  header block included, so a recipient who decrypts the payload recovers the
  byte-identical plain message.

How:
  The outer header block is the message's own, followed by the
  ``multipart/encrypted`` content type. The first part is the version control
  part; the second part's body is a cipher writer the message serialises
  itself into. Closing the cipher writer (inner layer, then armor) happens
  before the multipart trailer is written.

Interfaces:
  :func:`write_envelope`, :func:`encrypt_message`,
  :func:`encrypt_for_accounts`, :func:`open_envelope`.

Invariants & Safety:
  - On any failure the cipher writer is aborted, so the destination never
    ends with a well-formed armor trailer for a truncated payload.
  - Key preparation errors are raised before anything is written.
"""
from __future__ import annotations

import io
from typing import TYPE_CHECKING, BinaryIO, Optional

from ..config.schema import Account, CipherConfig
from ..errors import KeyParseError, SerializationError
from ..multipart import CRLF, MultipartWriter, emit
from ..part import MIME_PGP_ENCRYPTED, Part
from ..utils.logging import get_logger
from ..utils.mime import find_pgp_payload, parse_message
from .keyring import DecryptResult, GnuPGKeyring, Keyring, RecipientHandle, SignerHandle
from .writers import open_cipher_writer

if TYPE_CHECKING:
    from ..message import Message

_LOGGER = get_logger("mimemail.envelope")


def write_envelope(
    destination: BinaryIO,
    message: "Message",
    recipient: RecipientHandle,
    signer: Optional[SignerHandle] = None,
    *,
    config: Optional[CipherConfig] = None,
    boundary: Optional[str] = None,
) -> str:
    """Write ``message`` to ``destination`` as a PGP/MIME envelope.

    Args:
      destination: Binary writer receiving the envelope.
      message: The message to encrypt; it is serialised unchanged.
      recipient: Encryption target.
      signer: Optional signing key from the same keyring as ``recipient``.
      config: Cipher parameters; defaults apply when omitted.
      boundary: Pin the outer boundary (the inner one is the message's own).

    Returns:
      The outer boundary.

    Raises:
      SerializationError: When any layer fails to write.
      ValueError: When ``signer`` and ``recipient`` come from different
        keyrings.
    """

    writer = MultipartWriter(destination, boundary)
    # Armor output starts on the first ciphertext write, after the part headers.
    cipher = open_cipher_writer(destination, recipient, signer, config)
    try:
        message.write_header(destination)
        content_type = writer.content_type("encrypted", protocol=MIME_PGP_ENCRYPTED)
        emit(destination, f"Content-Type: {content_type}".encode("ascii") + CRLF + CRLF)
        writer.write_part(Part.pgp_version())
        writer.create_part(Part.pgp_body().iter_headers())
        message.serialize(cipher)
        cipher.close()
    except Exception:
        cipher.abort()
        raise
    writer.close()
    _LOGGER.info(
        "envelope_written",
        recipient=recipient.fingerprint,
        signer=signer.fingerprint if signer else None,
    )
    return writer.boundary


def encrypt_message(
    message: "Message",
    recipient: RecipientHandle,
    signer: Optional[SignerHandle] = None,
    *,
    config: Optional[CipherConfig] = None,
    boundary: Optional[str] = None,
) -> bytes:
    """Return the PGP/MIME envelope of ``message`` as bytes."""

    buffer = io.BytesIO()
    write_envelope(buffer, message, recipient, signer, config=config, boundary=boundary)
    return buffer.getvalue()


def encrypt_for_accounts(
    message: "Message",
    keyring: GnuPGKeyring,
    recipient: Account,
    signer: Optional[Account] = None,
) -> bytes:
    """Encrypt ``message`` to ``recipient``'s key, signed by ``signer`` when given.

    Keys come from the accounts' ``key`` references and cipher settings from
    the signing account, else from the recipient.

    Raises:
      KeyParseError: When an account has no key configured or its key file
        cannot be read.
      KeyDecryptError: When the signer's passphrase is wrong.
    """

    recipient_material = _key_material(recipient)
    signer_material = _key_material(signer) if signer is not None else None
    recipient_handle = keyring.prepare_recipient(recipient_material, expected_address=recipient.address)
    signer_handle = None
    if signer is not None:
        signer_handle = keyring.prepare_signer(
            signer_material,
            signer.key.passphrase if signer.key else None,
            expected_address=signer.address,
        )
    config = (signer or recipient).cipher
    return encrypt_message(message, recipient_handle, signer_handle, config=config)


def open_envelope(raw: bytes, keyring: Keyring, passphrase: Optional[str] = None) -> DecryptResult:
    """Decrypt a PGP/MIME envelope produced by :func:`write_envelope`.

    Returns:
      The decrypted payload (the plain message bytes) with signature status.

    Raises:
      SerializationError: When ``raw`` is not a PGP/MIME envelope.
      KeyDecryptError: When the keyring cannot decrypt the payload.
    """

    message, _, _ = parse_message(raw)
    try:
        payload = find_pgp_payload(message)
    except ValueError as exc:
        raise SerializationError(f"not a PGP/MIME envelope: {exc}") from exc
    return keyring.decrypt(payload, passphrase)


def _key_material(account: Account) -> bytes:
    if account.key is None:
        raise KeyParseError(f"account {account.name} has no key configured")
    try:
        return account.key.read()
    except OSError as exc:
        raise KeyParseError(f"unable to read key of account {account.name}: {exc.strerror}") from exc
