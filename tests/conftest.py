"""Pytest configuration shared by the unit and end-to-end suites.

What:
  Establish project import paths and isolate the accounts configuration for
  every test.

Why:
  Tests import the in-repo ``mimemail`` package rather than an installed wheel,
  so the ``mimemail/src`` directory is prepended to ``sys.path``. The accounts
  loader caches its document globally; without a reset, one test's
  ``accounts.yaml`` would leak into the next.

How:
  Compute the project root relative to this file, inject the source directory
  into ``sys.path`` when present, and define an autouse fixture that points
  ``MIMEMAIL_ACCOUNTS_PATH`` at a per-test location and clears the cache
  before and after each test.

Interfaces:
  :func:`isolated_accounts` (autouse fixture), :func:`write_accounts`.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "mimemail" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

import pytest

from mimemail.config.loader import reset_accounts_cache

ACCOUNTS_YAML = """
accounts:
  - name: work
    address: alice@example.com
    display_name: Alice Example
    server:
      host: smtp.example.com
      port: 587
      security: starttls
  - name: plain
    address: bob@example.org
    server:
      host: localhost
      port: 2525
      security: none
"""


@pytest.fixture(autouse=True)
def isolated_accounts(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point the accounts loader at a per-test path and reset its cache."""

    monkeypatch.setenv("MIMEMAIL_ACCOUNTS_PATH", str(tmp_path / "accounts.yaml"))
    monkeypatch.chdir(tmp_path)
    reset_accounts_cache()
    try:
        yield
    finally:
        reset_accounts_cache()


@pytest.fixture
def write_accounts(tmp_path: Path):
    """Return a helper writing ``accounts.yaml`` into the test directory."""

    def _write(text: str = ACCOUNTS_YAML) -> Path:
        path = tmp_path / "accounts.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write
