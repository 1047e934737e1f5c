"""Pytest fixtures for unit tests needing backend fakes or real OpenPGP keys.

What:
  Make ``tests/unit`` importable (for :mod:`fakes`) and expose fixtures for
  the fake keyring, the fake SMTP client and a session-wide set of GnuPG
  generated keys.

Why:
  Envelope and transport tests should not depend on network access, and only
  a handful of tests need real OpenPGP packets. Generating keys once per
  session keeps those tests affordable.

How:
  :func:`fake_smtp` swaps :class:`FakeSMTP` subclasses into
  :class:`~mimemail.transport.smtp.SmtpTransport`. :func:`pgp_keys` generates
  RSA keys in a scratch GnuPG home with ``python-gnupg`` and skips when no
  ``gpg`` binary is installed.

Interfaces:
  :func:`fake_keyring`, :func:`fake_smtp`, :func:`pgp_keys`.
"""

import os
import shutil
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from mimemail.transport.smtp import SmtpTransport

UNIT_DIR = Path(__file__).resolve().parent
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import FakeKeyring, FakeSMTP

KEY_SPECS = (
    ("recipient", "Rachel Recipient", "rcpt@example.com", "rcpt-passphrase"),
    ("signer", "Alice Example", "alice@example.com", "alice-passphrase"),
)


@pytest.fixture
def fake_keyring() -> FakeKeyring:
    return FakeKeyring()


@pytest.fixture
def fake_smtp(monkeypatch: pytest.MonkeyPatch):
    """Install a fresh :class:`FakeSMTP` subclass for plain and implicit-TLS sessions."""

    smtp = type("SessionSMTP", (FakeSMTP,), {"instances": [], "failures": {}, "refused": {}})
    monkeypatch.setattr(SmtpTransport, "smtp_class", smtp)
    monkeypatch.setattr(SmtpTransport, "smtp_ssl_class", smtp)
    return smtp


@pytest.fixture(scope="session")
def pgp_keys(tmp_path_factory: pytest.TempPathFactory):
    """Generate one recipient and one signer key pair, exported as armored text.

    Yields:
      Mapping ``label -> SimpleNamespace(fingerprint, address, passphrase,
      public, secret)``.
    """

    if shutil.which("gpg") is None:
        pytest.skip("gpg binary not available")
    import gnupg

    home = tmp_path_factory.mktemp("gpg-keygen")
    os.chmod(home, 0o700)
    gpg = gnupg.GPG(gnupghome=str(home))
    keys = {}
    for label, name, address, passphrase in KEY_SPECS:
        request = gpg.gen_key_input(
            key_type="RSA",
            key_length=2048,
            subkey_type="RSA",
            subkey_length=2048,
            name_real=name,
            name_email=address,
            passphrase=passphrase,
            expire_date=0,
        )
        generated = gpg.gen_key(request)
        assert generated.fingerprint, generated.stderr
        fingerprint = str(generated.fingerprint)
        keys[label] = SimpleNamespace(
            fingerprint=fingerprint,
            address=address,
            passphrase=passphrase,
            public=gpg.export_keys(fingerprint),
            secret=gpg.export_keys(fingerprint, secret=True, passphrase=passphrase),
        )
    yield keys
    shutil.rmtree(home, ignore_errors=True)
