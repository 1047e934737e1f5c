"""Strict loader for the ``accounts.yaml`` configuration document.

What:
  Locate, parse, validate and cache the accounts document describing sending
  identities, key references and submission servers.

Why:
  Configuration lives outside the package and can be malformed. Centralising
  the parsing enforces consistent validation so the transport and the cipher
  pipeline only ever see typed, checked values, and nothing falls back to
  implicit package-level defaults.

How:
  Resolve candidate file locations from an explicit argument, the
  ``MIMEMAIL_ACCOUNTS_PATH`` environment variable and well-known defaults.
  Parse YAML with ``yaml.safe_load`` and validate through the pydantic models
  in :mod:`mimemail.config.schema`.

Interfaces:
  :func:`load_accounts`, :func:`get_account`, :func:`reset_accounts_cache`,
  :func:`parse_accounts`, :class:`ConfigLoadError`.

Invariants:
  - Every payload passes strict pydantic validation before it is returned.
  - The cache respects explicit reload requests and the precedence order of
    candidate paths.

Safety:
  - File operations convert OS errors into :class:`ConfigLoadError` with the
    offending path; secrets are never included in messages.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

import yaml
from pydantic import ValidationError as _PydanticValidationError

from .schema import Account, AccountsDocument


class ConfigLoadError(Exception):
    """Raised when ``accounts.yaml`` cannot be located, parsed or validated."""


class UnknownAccountError(ConfigLoadError, KeyError):
    """Raised when a requested account name is not configured."""


_ACCOUNTS_ENV = "MIMEMAIL_ACCOUNTS_PATH"
_DEFAULT_LOCATIONS: Tuple[Path, ...] = (
    Path("accounts.yaml"),
    Path("~/.config/mimemail/accounts.yaml"),
)
_ACCOUNTS_CACHE: Optional[Tuple[Path, AccountsDocument]] = None


def _candidate_paths(path: Optional[Path]) -> Iterable[Path]:
    """Yield accounts file locations in priority order.

    What:
      Produce the ordered, de-duplicated list of paths inspected for
      ``accounts.yaml``.

    How:
      Check the explicit argument, the ``MIMEMAIL_ACCOUNTS_PATH`` environment
      variable and the default locations, expanding ``~``.

    Args:
      path: Explicit path requested by the caller, or ``None``.

    Yields:
      Candidate paths ordered from most specific to least specific.
    """

    seen: set[Path] = set()
    env_path = os.environ.get(_ACCOUNTS_ENV)
    explicit = [path] if path is not None else []
    from_env = [Path(env_path)] if env_path else []
    for candidate in (*explicit, *from_env, *_DEFAULT_LOCATIONS):
        expanded = candidate.expanduser()
        if expanded not in seen:
            seen.add(expanded)
            yield expanded


def parse_accounts(text: str, source: str = "<string>") -> AccountsDocument:
    """Parse and validate ``accounts.yaml`` text.

    Raises:
      ConfigLoadError: If the YAML is invalid, is not a mapping, or violates
        the schema.
    """

    try:
        payload: Any = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigLoadError(f"{source} must contain a mapping at the top-level")
    try:
        return AccountsDocument.model_validate(payload)
    except _PydanticValidationError as exc:
        raise ConfigLoadError(f"Invalid accounts document {source}: {exc}") from exc


def _load_from_path(path: Path) -> AccountsDocument:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigLoadError(f"Accounts file missing: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem surface
        raise ConfigLoadError(f"Unable to read accounts file {path}: {exc}") from exc
    return parse_accounts(text, str(path))


def load_accounts(path: Optional[Path | str] = None, *, reload: bool = False) -> AccountsDocument:
    """Resolve, parse, and cache the accounts document.

    What:
      Locate ``accounts.yaml`` using the precedence chain, parse it, and return
      a validated :class:`AccountsDocument`.

    Why:
      The CLI and long-running callers resolve accounts repeatedly; caching
      avoids re-reading the file while ``reload`` forces a refresh.

    Args:
      path: Optional explicit location of ``accounts.yaml``.
      reload: When ``True`` bypass the cache.

    Returns:
      The validated accounts document.

    Raises:
      ConfigLoadError: If no candidate exists or the file is invalid.
    """

    global _ACCOUNTS_CACHE

    requested = Path(path).expanduser() if isinstance(path, (str, Path)) else None
    if not reload and _ACCOUNTS_CACHE is not None:
        cached_path, cached = _ACCOUNTS_CACHE
        if requested is None or cached_path == requested:
            return cached

    searched: list[str] = []
    for candidate in _candidate_paths(requested):
        if not candidate.exists():
            searched.append(str(candidate))
            continue
        document = _load_from_path(candidate)
        _ACCOUNTS_CACHE = (candidate, document)
        return document

    raise ConfigLoadError(f"Unable to locate accounts.yaml (searched: {', '.join(searched) or '<none>'})")


def get_account(name: str, path: Optional[Path | str] = None) -> Account:
    """Return the account called ``name``.

    Raises:
      UnknownAccountError: If no such account is configured.
    """

    account = load_accounts(path).get(name)
    if account is None:
        raise UnknownAccountError(f"Unknown account: {name}")
    return account


def reset_accounts_cache() -> None:
    """Clear the cached accounts document."""

    global _ACCOUNTS_CACHE
    _ACCOUNTS_CACHE = None
