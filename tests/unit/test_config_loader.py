"""
Module: tests/unit/test_config_loader.py

What:
    Validate the accounts loader: path precedence, caching, strict schema
    validation and the typed models it returns.

Why:
    Transport and cipher code trust these models blindly. A malformed
    ``accounts.yaml`` must fail at load time with ``ConfigLoadError`` rather
    than deep inside an SMTP session or an encryption call.

How:
    Write YAML documents into the per-test directory prepared by the root
    ``conftest`` and exercise :func:`load_accounts`, :func:`get_account` and
    :func:`parse_accounts`.

Interfaces:
    test_load_accounts_from_env_path, test_explicit_path_wins,
    test_cache_and_reload, test_unknown_account, test_schema_violations, ...
"""

import pytest

from mimemail.config import (
    ConfigLoadError,
    KeyReference,
    Security,
    UnknownAccountError,
    get_account,
    load_accounts,
    parse_accounts,
)


def test_load_accounts_from_env_path(write_accounts):
    """
    What:
        The document at ``MIMEMAIL_ACCOUNTS_PATH`` is loaded and typed.

    Why:
        Deployments point the environment variable at a secrets mount; this is
        the primary production path.
    """
    write_accounts()

    document = load_accounts()
    work = document.get("work")

    assert [account.name for account in document.accounts] == ["work", "plain"]
    assert work.address == "alice@example.com"
    assert work.login == "alice@example.com"
    assert work.server.security is Security.STARTTLS
    assert work.server.address == "smtp.example.com:587"
    assert work.cipher.digest_algo == "SHA256"


def test_explicit_path_wins(tmp_path, write_accounts):
    write_accounts()
    other = tmp_path / "other.yaml"
    other.write_text("accounts:\n  - name: solo\n    address: solo@example.net\n", encoding="utf-8")

    document = load_accounts(other)

    assert [account.name for account in document.accounts] == ["solo"]


def test_cache_and_reload(write_accounts):
    path = write_accounts()
    first = load_accounts()
    path.write_text("accounts: []\n", encoding="utf-8")

    assert load_accounts() is first
    assert load_accounts(reload=True).accounts == []


def test_missing_file_raises(monkeypatch, tmp_path):
    monkeypatch.setenv("MIMEMAIL_ACCOUNTS_PATH", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("HOME", str(tmp_path))

    with pytest.raises(ConfigLoadError, match="Unable to locate"):
        load_accounts(reload=True)


def test_unknown_account(write_accounts):
    write_accounts()

    with pytest.raises(UnknownAccountError):
        get_account("nope")
    assert get_account("plain").server.security is Security.NONE


@pytest.mark.parametrize(
    "text, fragment",
    [
        ("accounts: [", "Invalid YAML"),
        ("- just\n- a list\n", "mapping"),
        ("accounts:\n  - name: x\n    address: not-an-address\n", "Invalid accounts"),
        ("accounts:\n  - name: x\n    address: x@example.com\n    colour: blue\n", "Invalid accounts"),
        (
            "accounts:\n  - name: x\n    address: x@example.com\n  - name: x\n    address: y@example.com\n",
            "Invalid accounts",
        ),
        (
            "accounts:\n  - name: x\n    address: x@example.com\n    server:\n      host: h\n      port: 70000\n",
            "Invalid accounts",
        ),
        ("accounts:\n  - name: x\n    address: x@example.com\n    key: {}\n", "Invalid accounts"),
    ],
)
def test_schema_violations(text, fragment):
    with pytest.raises(ConfigLoadError, match=fragment):
        parse_accounts(text)


def test_key_reference_prefers_inline_material(tmp_path):
    key_file = tmp_path / "key.asc"
    key_file.write_bytes(b"from-file")

    assert KeyReference(file=str(key_file)).read() == b"from-file"
    assert KeyReference(file=str(key_file), key="inline").read() == b"inline"


def test_password_file_is_read_without_newline(tmp_path):
    secret = tmp_path / "password"
    secret.write_text("hunter2\n", encoding="utf-8")
    document = parse_accounts(
        f"accounts:\n  - name: x\n    address: x@example.com\n    username: xuser\n    password_file: {secret}\n"
    )

    account = document.get("x")
    assert account.login == "xuser"
    assert account.read_password() == "hunter2"


def test_armor_headers_must_be_single_line():
    with pytest.raises(ConfigLoadError):
        parse_accounts(
            "accounts:\n  - name: x\n    address: x@example.com\n"
            "    cipher:\n      armor_headers:\n        Comment: \"a\\nb\"\n"
        )
