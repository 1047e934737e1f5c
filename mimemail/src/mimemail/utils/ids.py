"""Generate multipart boundaries and stable payload checksums.

What:
  Provide the random boundary generator used by every multipart body and a
  SHA-256 checksum helper used to identify payloads in logs.

Why:
  A boundary must never occur inside the parts it separates. Rather than
  scanning content, the generator makes collisions practically impossible by
  drawing enough randomness. Checksums let logs correlate payloads without
  writing message content.

How:
  ``secrets.token_hex`` supplies 30 random bytes (60 hex characters, well under
  the RFC 2046 limit of 70). Checksums wrap :mod:`hashlib` with a ``sha256:``
  prefix.

Interfaces:
  :func:`new_boundary`, :func:`is_valid_boundary`, :func:`boundary_param`,
  :func:`checksum`.

Invariants & Safety:
  - Generated boundaries only use ``[0-9a-f]`` and never need quoting; pinned
    tokens holding tspecials or spaces are quoted by :func:`boundary_param`.
  - Checksums are namespaced with ``sha256:`` so other algorithms can coexist.
"""
from __future__ import annotations

import hashlib
import re
import secrets

BOUNDARY_BYTES = 30

_BOUNDARY_RE = re.compile(r"[0-9A-Za-z'()+_,\-./:=? ]{0,69}[0-9A-Za-z'()+_,\-./:=?]\Z")
_TSPECIALS = frozenset("()<>@,;:\\\"/[]?= ")


def new_boundary() -> str:
    """Return a fresh random boundary token.

    What:
      Emits 60 lowercase hex characters.

    Why:
      Boundaries are chosen per serialisation unless pinned, so two calls must
      not share one, and message content cannot be allowed to contain it.

    How:
      Draws :data:`BOUNDARY_BYTES` bytes from :func:`secrets.token_hex`.
    """

    return secrets.token_hex(BOUNDARY_BYTES)


def is_valid_boundary(token: str) -> bool:
    """Return whether ``token`` satisfies the RFC 2046 ``boundary`` grammar."""

    return _BOUNDARY_RE.fullmatch(token) is not None


def boundary_param(token: str) -> str:
    """Render ``token`` as a ``boundary`` parameter value, quoted when it is not an RFC 2045 token."""

    if any(char in _TSPECIALS for char in token):
        return f'"{token}"'
    return token


def checksum(data: bytes) -> str:
    """Compute a namespaced SHA-256 digest for ``data``."""

    return f"sha256:{hashlib.sha256(data).hexdigest()}"
