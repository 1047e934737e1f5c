"""Layered cipher writers: an OpenPGP layer stacked on an ASCII armor layer.

What:
  Build the writer a caller streams plaintext into and get back an armored
  ``PGP MESSAGE`` on the destination once the writer is closed.

Why:
  Armor and encryption are two layers with two trailers. Exposing them as one
  object whose :meth:`CipherWriter.close` closes them inner-first keeps callers
  from ever producing a block whose checksum was written before the last
  packet.

How:
  :class:`OpenPGPLayer` spools plaintext into a ``SpooledTemporaryFile`` and
  hands it to a keyring primitive on close; the binary packets it gets back are
  written into the bound :class:`~mimemail.crypto.armor.ArmorLayer`, which only
  then may close. Nothing reaches the destination before the inner layer
  finishes except the armor ``BEGIN`` line.

Interfaces:
  :func:`open_cipher_writer`, :func:`open_signing_writer`,
  :class:`CipherWriter`, :class:`OpenPGPLayer`.

Invariants & Safety:
  - Signer and recipient handles must come from the same keyring.
  - Backend failures surface as :class:`~mimemail.errors.SerializationError`
    and leave both layers ``ABORTED``.
"""
from __future__ import annotations

import tempfile
from functools import partial
from typing import BinaryIO, Callable, Optional

from ..config.schema import CipherConfig
from ..errors import MimeMailError, SerializationError
from .armor import ArmorLayer
from .keyring import RecipientHandle, SignerHandle
from .state import LayeredWriter, WriterState

SPOOL_MAX_BYTES = 1 << 20

Operation = Callable[[BinaryIO], bytes]


class OpenPGPLayer(LayeredWriter):
    """Inner layer turning plaintext into binary OpenPGP packets."""

    layer_name = "openpgp"

    def __init__(self, armor: ArmorLayer, operation: Operation, kind: str = "encrypt") -> None:
        super().__init__()
        self._armor = armor
        self._operation = operation
        self.kind = kind
        self._spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES)

    def _write(self, data: bytes) -> None:
        self._spool.write(data)

    def _finish(self) -> None:
        self._spool.seek(0)
        try:
            packets = self._operation(self._spool)
        except MimeMailError:
            raise
        except (OSError, ValueError) as exc:
            raise SerializationError(f"{self.kind} layer failed: {exc}") from exc
        self._armor.write(packets)

    def _release(self) -> None:
        self._spool.close()


class CipherWriter:
    """Write-side handle over an :class:`OpenPGPLayer` and its armor.

    Use as a context manager: a clean exit closes both layers in order, an
    exception aborts them so no trailer is written.
    """

    def __init__(self, inner: OpenPGPLayer, armor: ArmorLayer) -> None:
        self._inner = inner
        self._armor = armor

    @property
    def inner(self) -> OpenPGPLayer:
        return self._inner

    @property
    def armor(self) -> ArmorLayer:
        return self._armor

    @property
    def state(self) -> WriterState:
        states = (self._inner.state, self._armor.state)
        if WriterState.ABORTED in states:
            return WriterState.ABORTED
        if all(state is WriterState.CLOSED for state in states):
            return WriterState.CLOSED
        return self._inner.state

    @property
    def closed(self) -> bool:
        return self.state in (WriterState.CLOSED, WriterState.ABORTED)

    def write(self, data: bytes) -> int:
        return self._inner.write(data)

    def close(self) -> None:
        """Close the OpenPGP layer, then the armor layer."""

        try:
            self._inner.close()
        except Exception:
            self._armor.abort()
            raise
        self._armor.close()

    def abort(self) -> None:
        self._inner.abort()
        self._armor.abort()

    def __enter__(self) -> "CipherWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()
            return
        self.close()


def _assemble(destination: BinaryIO, operation: Operation, kind: str, config: CipherConfig) -> CipherWriter:
    armor = ArmorLayer(destination, "PGP MESSAGE", config.armor_headers)
    inner = OpenPGPLayer(armor, operation, kind)
    armor.bind_inner(inner)
    return CipherWriter(inner, armor)


def open_cipher_writer(
    destination: BinaryIO,
    recipient: RecipientHandle,
    signer: Optional[SignerHandle] = None,
    config: Optional[CipherConfig] = None,
) -> CipherWriter:
    """Return a writer encrypting to ``recipient`` (and signing with ``signer``).

    Raises:
      ValueError: When ``signer`` belongs to a different keyring.
    """

    config = config or CipherConfig()
    keyring = recipient.keyring
    if signer is not None and signer.keyring is not keyring:
        raise ValueError("signer and recipient must be prepared by the same keyring")
    operation = partial(keyring.encrypt, recipient=recipient, signer=signer, config=config)
    return _assemble(destination, operation, "encrypt", config)


def open_signing_writer(
    destination: BinaryIO,
    signer: SignerHandle,
    config: Optional[CipherConfig] = None,
) -> CipherWriter:
    """Return a writer producing an armored, signed (not encrypted) message."""

    config = config or CipherConfig()
    operation = partial(signer.keyring.sign, signer=signer, config=config)
    return _assemble(destination, operation, "sign", config)
