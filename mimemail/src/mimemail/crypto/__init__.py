"""OpenPGP cipher pipeline: keys, layered writers, armor and PGP/MIME envelopes.

Interfaces:
  - GnuPGKeyring / RecipientHandle / SignerHandle / DecryptResult
  - open_cipher_writer / open_signing_writer / CipherWriter
  - ArmorLayer / decode_armor / WriterState
  - write_envelope / encrypt_message / encrypt_for_accounts / open_envelope
"""

from .armor import ArmorLayer, crc24, decode_armor
from .envelope import encrypt_for_accounts, encrypt_message, open_envelope, write_envelope
from .keyring import DecryptResult, GnuPGKeyring, Keyring, RecipientHandle, SignerHandle
from .state import LayeredWriter, WriterState
from .writers import CipherWriter, OpenPGPLayer, open_cipher_writer, open_signing_writer

__all__ = [
    "ArmorLayer",
    "crc24",
    "decode_armor",
    "write_envelope",
    "encrypt_message",
    "encrypt_for_accounts",
    "open_envelope",
    "DecryptResult",
    "GnuPGKeyring",
    "Keyring",
    "RecipientHandle",
    "SignerHandle",
    "LayeredWriter",
    "WriterState",
    "CipherWriter",
    "OpenPGPLayer",
    "open_cipher_writer",
    "open_signing_writer",
]
