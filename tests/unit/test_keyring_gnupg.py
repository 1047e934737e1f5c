"""
Module: tests/unit/test_keyring_gnupg.py

What:
    Run the key preparation checks and the full envelope round trip against a
    real GnuPG installation through ``python-gnupg``.

Why:
    The fake backend proves framing and ordering; only real OpenPGP packets
    prove that the armor layer, the binary ``gpg`` output and the decrypting
    side agree.

How:
    Use the session-scoped ``pgp_keys`` fixture (skipped without a ``gpg``
    binary), import keys into fresh :class:`GnuPGKeyring` homes and assert on
    handles, errors and decrypted bytes.
"""

import io
import json
import os

import pytest

from mimemail.config.schema import Account
from mimemail.crypto.envelope import encrypt_for_accounts, encrypt_message, open_envelope
from mimemail.crypto.keyring import GnuPGKeyring
from mimemail.crypto.writers import open_signing_writer
from mimemail.errors import KeyDecryptError, KeyParseError
from mimemail.message import Message
from mimemail.utils.logging import JsonLogger


def _message() -> Message:
    message = Message("Encrypted hello", boundary="inner")
    message.add_address("From", "alice@example.com")
    message.add_address("To", "rcpt@example.com")
    message.add_text("top secret")
    message.add_reader("blob.bin", io.BytesIO(os.urandom(4096)))
    return message


def test_prepare_recipient_returns_fingerprint(pgp_keys):
    with GnuPGKeyring() as keyring:
        handle = keyring.prepare_recipient(pgp_keys["recipient"].public, expected_address="rcpt@example.com")

    assert handle.fingerprint == pgp_keys["recipient"].fingerprint
    assert any("rcpt@example.com" in uid for uid in handle.uids)


def test_keyring_home_removed_on_close(pgp_keys):
    keyring = GnuPGKeyring()
    home = keyring.home
    keyring.prepare_recipient(pgp_keys["recipient"].public)

    keyring.close()

    assert not os.path.exists(home)


@pytest.mark.parametrize("material", [b"", b"not a key", "-----BEGIN PGP PUBLIC KEY BLOCK-----\n\ngarbage\n"])
def test_unparsable_material_raises_key_parse_error(pgp_keys, material):
    with GnuPGKeyring() as keyring:
        with pytest.raises(KeyParseError):
            keyring.prepare_recipient(material)


def test_secret_key_rejected_as_recipient(pgp_keys):
    keys = pgp_keys["recipient"]

    with GnuPGKeyring() as keyring:
        with pytest.raises(KeyParseError, match="secret"):
            keyring.prepare_recipient(keys.secret)


def test_public_key_rejected_as_signer(pgp_keys):
    with GnuPGKeyring() as keyring:
        with pytest.raises(KeyParseError, match="private key"):
            keyring.prepare_signer(pgp_keys["signer"].public, "whatever")


def test_wrong_passphrase_fails_eagerly(pgp_keys):
    keys = pgp_keys["signer"]

    with GnuPGKeyring() as keyring:
        with pytest.raises(KeyDecryptError):
            keyring.prepare_signer(keys.secret, "wrong passphrase")


def test_identity_mismatch_is_logged(pgp_keys):
    stream = io.StringIO()
    with GnuPGKeyring(logger=JsonLogger(stream=stream, component="test")) as keyring:
        keyring.prepare_recipient(pgp_keys["recipient"].public, expected_address="someone@else.example")

    entries = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert any(entry["msg"] == "key_identity_mismatch" and entry["lvl"] == "WARN" for entry in entries)


def test_signed_envelope_round_trip(pgp_keys):
    """
    What:
        Encrypt and sign with real keys, then decrypt with the recipient's
        private key in a separate keyring.

    Why:
        This is the end-to-end guarantee of the pipeline: the recipient
        recovers the exact plain serialisation and a valid signature.
    """
    recipient, signer = pgp_keys["recipient"], pgp_keys["signer"]
    message = _message()

    with GnuPGKeyring() as sending:
        to = sending.prepare_recipient(recipient.public, expected_address=recipient.address)
        by = sending.prepare_signer(signer.secret, signer.passphrase, expected_address=signer.address)
        raw = encrypt_message(message, to, by)

    with GnuPGKeyring() as receiving:
        receiving.prepare_signer(recipient.secret, recipient.passphrase)
        receiving.prepare_recipient(signer.public)
        result = open_envelope(raw, receiving, recipient.passphrase)

    assert result.data == message.to_bytes()
    assert result.signer_fingerprint is not None
    assert result.signature_valid


def test_encrypt_for_accounts_uses_account_keys(pgp_keys):
    recipient, signer = pgp_keys["recipient"], pgp_keys["signer"]
    to = Account(name="rcpt", address=recipient.address, key={"key": recipient.public})
    by = Account(
        name="alice",
        address=signer.address,
        key={"key": signer.secret, "passphrase": signer.passphrase},
        cipher={"digest_algo": "SHA512"},
    )
    message = _message()

    with GnuPGKeyring() as sending:
        raw = encrypt_for_accounts(message, sending, to, by)

    with GnuPGKeyring() as receiving:
        receiving.prepare_signer(recipient.secret, recipient.passphrase)
        result = open_envelope(raw, receiving, recipient.passphrase)

    assert result.data == message.to_bytes()


def test_signing_writer_produces_verifiable_message(pgp_keys):
    signer = pgp_keys["signer"]
    buffer = io.BytesIO()

    with GnuPGKeyring() as keyring:
        handle = keyring.prepare_signer(signer.secret, signer.passphrase)
        with open_signing_writer(buffer, handle) as writer:
            writer.write(b"I approve this message")
        result = keyring.decrypt(buffer.getvalue())

    assert result.data == b"I approve this message"
    assert result.signature_valid
