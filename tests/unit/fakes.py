"""Test doubles for the cipher backend, the SMTP client and failing destinations.

What:
  Provide :class:`FakeKeyring`, a deterministic stand-in for
  :class:`mimemail.crypto.GnuPGKeyring`; :class:`FakeSMTP`, a drop-in for
  :class:`smtplib.SMTP`; and :class:`FailingWriter`, a destination that breaks
  after a byte budget.

Why:
  Most pipeline properties (framing, close order, abort behaviour, envelope
  shape) do not depend on real OpenPGP packets. A reversible fake backend
  keeps those tests fast and runnable without a ``gpg`` binary, and the SMTP
  fake keeps transport tests off the network.

How:
  :class:`FakeKeyring` "encrypts" by prefixing a marker line naming the
  recipient and signer, then XOR-ing the plaintext with a fixed byte;
  :meth:`FakeKeyring.decrypt` undoes it (accepting armored input like GnuPG
  does). :class:`FakeSMTP` records every call on the instance and raises
  errors configured per method name.

Interfaces:
  :class:`FakeKeyring`, :class:`FakeSMTP`, :class:`FailingWriter`.
"""

from __future__ import annotations

import io
from typing import BinaryIO, Dict, List, Optional, Tuple

from mimemail.config.schema import CipherConfig
from mimemail.crypto.armor import decode_armor
from mimemail.crypto.keyring import DecryptResult, RecipientHandle, SignerHandle
from mimemail.errors import KeyDecryptError

_MASK = 0x5A
_ENC_MARKER = b"FAKE-PGP-ENCRYPTED"
_SIG_MARKER = b"FAKE-PGP-SIGNED"


def _mask(data: bytes) -> bytes:
    return bytes(byte ^ _MASK for byte in data)


class FakeKeyring:
    """Reversible, deterministic replacement for the GnuPG backend."""

    def __init__(self, *, fail: Optional[Exception] = None) -> None:
        self.fail = fail
        self.calls: List[Tuple[str, str, Optional[str], CipherConfig]] = []

    def recipient(self, fingerprint: str = "A" * 40) -> RecipientHandle:
        return RecipientHandle(fingerprint=fingerprint, keyring=self, uids=("Recipient <rcpt@example.com>",))

    def signer(self, fingerprint: str = "B" * 40, passphrase: Optional[str] = None) -> SignerHandle:
        return SignerHandle(fingerprint=fingerprint, keyring=self, passphrase=passphrase)

    def encrypt(
        self,
        plaintext: BinaryIO,
        recipient: RecipientHandle,
        signer: Optional[SignerHandle],
        config: CipherConfig,
    ) -> bytes:
        signed_by = signer.fingerprint if signer else None
        self.calls.append(("encrypt", recipient.fingerprint, signed_by, config))
        if self.fail is not None:
            raise self.fail
        header = b" ".join([_ENC_MARKER, recipient.fingerprint.encode(), (signed_by or "-").encode()])
        return header + b"\n" + _mask(plaintext.read())

    def sign(self, plaintext: BinaryIO, signer: SignerHandle, config: CipherConfig) -> bytes:
        self.calls.append(("sign", "", signer.fingerprint, config))
        if self.fail is not None:
            raise self.fail
        return b" ".join([_SIG_MARKER, signer.fingerprint.encode()]) + b"\n" + plaintext.read()

    def decrypt(self, data: bytes, passphrase: Optional[str] = None) -> DecryptResult:
        if data.lstrip().startswith(b"-----BEGIN "):
            _, _, data = decode_armor(data)
        header, _, body = data.partition(b"\n")
        fields = header.split(b" ")
        if len(fields) != 3 or fields[0] != _ENC_MARKER:
            raise KeyDecryptError("not a fake ciphertext")
        signer = None if fields[2] == b"-" else fields[2].decode()
        return DecryptResult(data=_mask(body), signer_fingerprint=signer, signature_valid=signer is not None)


class FakeSMTP:
    """In-memory SMTP client recording the session.

    Subclass per test (see the ``fake_smtp`` fixture) so ``instances`` and
    ``failures`` are never shared.
    """

    instances: List["FakeSMTP"] = []
    failures: Dict[str, Exception] = {}
    refused: Dict[str, Tuple[int, bytes]] = {}

    def __init__(self, host: str, port: int, timeout: float = 30.0, context=None) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.context = context
        self.calls: List[str] = []
        self.sent: List[Tuple[str, List[str], bytes]] = []
        self.login_args: Optional[Tuple[str, str]] = None
        self.closed = False
        self._maybe_fail("connect")
        type(self).instances.append(self)

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        error = type(self).failures.get(name)
        if error is not None:
            raise error

    def ehlo(self) -> None:
        self._maybe_fail("ehlo")

    def starttls(self, context=None) -> None:
        self.context = context
        self._maybe_fail("starttls")

    def login(self, user: str, password: str) -> None:
        self.login_args = (user, password)
        self._maybe_fail("login")

    def sendmail(self, sender: str, recipients: List[str], data: bytes) -> Dict[str, Tuple[int, bytes]]:
        self._maybe_fail("sendmail")
        self.sent.append((sender, list(recipients), data))
        return dict(type(self).refused)

    def quit(self) -> None:
        self._maybe_fail("quit")
        self.closed = True

    def close(self) -> None:
        self.calls.append("close")
        self.closed = True


class FailingWriter(io.RawIOBase):
    """Binary destination raising ``OSError`` once ``limit`` bytes were written."""

    def __init__(self, limit: int = 0) -> None:
        super().__init__()
        self.limit = limit
        self.data = bytearray()

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        chunk = bytes(data)
        if len(self.data) + len(chunk) > self.limit:
            raise OSError(28, "No space left on device")
        self.data.extend(chunk)
        return len(chunk)
