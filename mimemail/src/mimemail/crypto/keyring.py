"""OpenPGP key handling backed by GnuPG through ``python-gnupg``.

What:
  Parse ASCII-armored public and private keys into opaque
  :class:`RecipientHandle` / :class:`SignerHandle` values and expose the binary
  encrypt, sign and decrypt primitives the writer layers build on.

Why:
  The cipher pipeline must not care where keys live or how OpenPGP packets are
  produced. A keyring object owns one private GnuPG home for its whole lifetime,
  so imported keys never touch the user's own keyring and are removed with it.

How:
  :class:`GnuPGKeyring` creates a temporary ``GNUPGHOME`` (mode 0700) unless one
  is supplied, imports key material with ``import_keys`` and inspects the
  import counters to tell public from secret keys. Private keys are unlocked
  eagerly with a throw-away detached signature so a wrong passphrase fails at
  preparation time. Primitives return unarmored binary output; ASCII armor is
  the job of :class:`~mimemail.crypto.armor.ArmorLayer`.

Interfaces:
  :class:`Keyring` (protocol), :class:`GnuPGKeyring`, :class:`RecipientHandle`,
  :class:`SignerHandle`, :class:`DecryptResult`.

Invariants & Safety:
  - Secret-key material is rejected as an encryption target, public-only
    material is rejected as a signer (:class:`~mimemail.errors.KeyParseError`).
  - The agent of an owned home caches nothing, so every operation needs the
    right passphrase.
  - Handles are bound to the keyring that produced them.
"""
from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import Any, BinaryIO, List, Optional, Protocol, Tuple, Union

import gnupg

from ..config.schema import CipherConfig
from ..errors import KeyDecryptError, KeyParseError, MimeMailError, SerializationError
from ..utils.logging import JsonLogger, get_logger

KeyMaterial = Union[bytes, str]

_AGENT_CONF = "default-cache-ttl 0\nmax-cache-ttl 0\nallow-loopback-pinentry\n"
_PROBE = b"mimemail passphrase probe"


@dataclass(frozen=True)
class RecipientHandle:
    """An imported public key usable as an encryption target."""

    fingerprint: str
    keyring: "Keyring" = field(repr=False, compare=False)
    uids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SignerHandle:
    """An imported, unlocked private key usable for signing."""

    fingerprint: str
    keyring: "Keyring" = field(repr=False, compare=False)
    passphrase: Optional[str] = field(default=None, repr=False)
    uids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DecryptResult:
    """Plaintext recovered from an OpenPGP message plus signature status."""

    data: bytes
    signer_fingerprint: Optional[str] = None
    signature_valid: bool = False


class Keyring(Protocol):
    """Backend contract consumed by the writer layers."""

    def encrypt(
        self,
        plaintext: BinaryIO,
        recipient: RecipientHandle,
        signer: Optional[SignerHandle],
        config: CipherConfig,
    ) -> bytes: ...

    def sign(self, plaintext: BinaryIO, signer: SignerHandle, config: CipherConfig) -> bytes: ...

    def decrypt(self, data: bytes, passphrase: Optional[str] = None) -> DecryptResult: ...


class GnuPGKeyring:
    """A private GnuPG home holding the keys of one send operation.

    What:
      Imports keys, produces handles and performs OpenPGP operations.

    Why:
      Key material arrives as armored text per call; a scoped home avoids
      state leaking between accounts or into ``~/.gnupg``.

    How:
      Use as a context manager (or call :meth:`close`) so an owned home is
      deleted on every exit path.
    """

    def __init__(
        self,
        home: Optional[str] = None,
        *,
        gpg_binary: str = "gpg",
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._owned = home is None
        self._home = home or tempfile.mkdtemp(prefix="mimemail-gpg-")
        self._logger = logger or get_logger("mimemail.keyring")
        if self._owned:
            with open(os.path.join(self._home, "gpg-agent.conf"), "w", encoding="ascii") as handle:
                handle.write(_AGENT_CONF)
        try:
            self._gpg = gnupg.GPG(gnupghome=self._home, gpgbinary=gpg_binary)
        except (OSError, ValueError) as exc:
            self.close()
            raise MimeMailError(f"GnuPG is not available: {exc}") from exc
        self._gpg.encoding = "utf-8"

    @property
    def home(self) -> str:
        return self._home

    def __enter__(self) -> "GnuPGKeyring":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Delete the GnuPG home when this keyring created it."""

        if self._owned and os.path.isdir(self._home):
            shutil.rmtree(self._home, ignore_errors=True)

    # -- key preparation -----------------------------------------------------

    def prepare_recipient(
        self,
        key_material: KeyMaterial,
        expected_address: Optional[str] = None,
    ) -> RecipientHandle:
        """Import an armored public key and return an encryption target.

        What:
          Validates that ``key_material`` is exactly a public key able to
          encrypt, then binds it to this keyring.

        Why:
          Encrypting to an unusable key only fails later, deep inside the
          envelope write; failing here keeps the destination untouched.

        Args:
          key_material: ASCII-armored public key.
          expected_address: Account address the key should carry as a user id.

        Returns:
          A :class:`RecipientHandle`.

        Raises:
          KeyParseError: When the material is unparsable, holds a secret key,
            or the key has no encryption capability.
        """

        result = self._import(key_material)
        if getattr(result, "sec_read", 0):
            raise KeyParseError("expected a public key, got secret key material")
        fingerprint = result.fingerprints[0]
        info = self._key_info(fingerprint, secret=False)
        capabilities = info.get("cap", "")
        if capabilities and "E" not in capabilities:
            raise KeyParseError(f"key {fingerprint} has no encryption capability")
        uids = tuple(info.get("uids", ()))
        self._check_identity(fingerprint, uids, expected_address)
        self._logger.info("recipient_key_imported", fingerprint=fingerprint)
        return RecipientHandle(fingerprint=fingerprint, keyring=self, uids=uids)

    def prepare_signer(
        self,
        key_material: KeyMaterial,
        passphrase: Optional[str] = None,
        expected_address: Optional[str] = None,
    ) -> SignerHandle:
        """Import an armored private key and unlock it eagerly.

        Raises:
          KeyParseError: When the material is unparsable or carries no secret
            key.
          KeyDecryptError: When the key cannot be unlocked with ``passphrase``.
        """

        result = self._import(key_material, passphrase)
        if not getattr(result, "sec_read", 0):
            raise KeyParseError("expected a private key, got public key material only")
        fingerprint = result.fingerprints[0]
        probe = self._gpg.sign(_PROBE, keyid=fingerprint, passphrase=passphrase, detach=True, binary=True)
        if not probe:
            raise KeyDecryptError(f"unable to unlock private key {fingerprint}: {probe.status}")
        uids = tuple(self._key_info(fingerprint, secret=True).get("uids", ()))
        self._check_identity(fingerprint, uids, expected_address)
        self._logger.info("signer_key_unlocked", fingerprint=fingerprint)
        return SignerHandle(fingerprint=fingerprint, keyring=self, passphrase=passphrase, uids=uids)

    # -- primitives ------------------------------------------------------------

    def encrypt(
        self,
        plaintext: BinaryIO,
        recipient: RecipientHandle,
        signer: Optional[SignerHandle],
        config: CipherConfig,
    ) -> bytes:
        """Return binary OpenPGP ciphertext of ``plaintext`` (signed when ``signer`` is set)."""

        result = self._gpg.encrypt_file(
            plaintext,
            [recipient.fingerprint],
            sign=signer.fingerprint if signer else None,
            passphrase=signer.passphrase if signer else None,
            armor=False,
            extra_args=_extra_args(config),
        )
        if not result.ok:
            raise SerializationError(f"encryption layer failed: {result.status}")
        return result.data

    def sign(self, plaintext: BinaryIO, signer: SignerHandle, config: CipherConfig) -> bytes:
        """Return a binary OpenPGP signed message wrapping ``plaintext``."""

        result = self._gpg.sign_file(
            plaintext,
            keyid=signer.fingerprint,
            passphrase=signer.passphrase,
            clearsign=False,
            detach=False,
            binary=True,
            extra_args=_extra_args(config, trust=False),
        )
        if not result:
            raise SerializationError(f"signing layer failed: {result.status}")
        return result.data

    def decrypt(self, data: bytes, passphrase: Optional[str] = None) -> DecryptResult:
        """Open ``data`` (armored or binary): decrypt it, or unwrap a signed-only message.

        Raises:
          KeyDecryptError: When no usable secret key or passphrase is available.
        """

        result = self._gpg.decrypt(data, passphrase=passphrase)
        if not (result.ok or result.valid):
            raise KeyDecryptError(f"decryption failed: {result.status}")
        return DecryptResult(
            data=result.data,
            signer_fingerprint=result.fingerprint,
            signature_valid=bool(result.valid),
        )

    # -- helpers -----------------------------------------------------------------

    def _import(self, key_material: KeyMaterial, passphrase: Optional[str] = None) -> Any:
        data = key_material.encode("utf-8") if isinstance(key_material, str) else bytes(key_material)
        if b"-----BEGIN PGP " not in data:
            raise KeyParseError("key material is not ASCII armored")
        if passphrase is None:
            result = self._gpg.import_keys(data)
        else:
            result = self._gpg.import_keys(data, passphrase=passphrase)
        if not result.fingerprints:
            raise KeyParseError(f"no usable key found in key material: {_import_problem(result)}")
        return result

    def _key_info(self, fingerprint: str, *, secret: bool) -> dict:
        keys = self._gpg.list_keys(secret=secret, keys=[fingerprint])
        if not keys:
            raise KeyParseError(f"key {fingerprint} missing after import")
        return keys[0]

    def _check_identity(self, fingerprint: str, uids: Tuple[str, ...], expected: Optional[str]) -> None:
        if not expected:
            return
        wanted = expected.lower()
        if not any(wanted in uid.lower() for uid in uids):
            self._logger.warning("key_identity_mismatch", fingerprint=fingerprint, expected=expected)


def _extra_args(config: CipherConfig, *, trust: bool = True) -> List[str]:
    args = ["--digest-algo", config.digest_algo]
    if trust and config.always_trust:
        args.extend(["--trust-model", "always"])
    if not config.compress:
        args.extend(["--compress-algo", "none"])
    return args


def _import_problem(result: Any) -> str:
    problems = getattr(result, "problem_reason", None)
    for entry in getattr(result, "results", ()) or ():
        text = entry.get("text") if isinstance(entry, dict) else None
        if text:
            return str(text).strip()
    return str(problems or getattr(result, "stderr", "") or "unparsable key material").strip()[:200]
