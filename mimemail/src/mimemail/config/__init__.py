"""mimemail configuration package.

What:
  Provide a cohesive import surface for the accounts loader and the pydantic
  models describing identities, key references, servers and cipher settings.

Why:
  Transports and the cipher pipeline receive these values explicitly at call
  sites; exposing only the audited models keeps callers from inventing their
  own ad-hoc dictionaries.

Interfaces:
  - load_accounts / get_account / reset_accounts_cache / parse_accounts
  - Account / AccountsDocument / CipherConfig / KeyReference / Security /
    ServerSettings / TLSSettings
  - ConfigLoadError / UnknownAccountError
"""

from .loader import (
    ConfigLoadError,
    UnknownAccountError,
    get_account,
    load_accounts,
    parse_accounts,
    reset_accounts_cache,
)
from .schema import (
    Account,
    AccountsDocument,
    CipherConfig,
    KeyReference,
    Security,
    ServerSettings,
    TLSSettings,
)

__all__ = [
    "load_accounts",
    "get_account",
    "reset_accounts_cache",
    "parse_accounts",
    "ConfigLoadError",
    "UnknownAccountError",
    "Account",
    "AccountsDocument",
    "CipherConfig",
    "KeyReference",
    "Security",
    "ServerSettings",
    "TLSSettings",
]
