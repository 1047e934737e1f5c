"""Expose the public utility surface for mimemail.

What:
  Re-export logging, boundary/checksum and MIME parsing helpers that other
  packages may import without knowing the underlying module layout.

Interfaces:
  ``get_logger``, ``JsonLogger``, ``new_boundary``, ``is_valid_boundary``,
  ``checksum``, ``parse_message`` and ``find_pgp_payload``.
"""

from .ids import checksum, is_valid_boundary, new_boundary
from .logging import JsonLogger, get_logger
from .mime import find_pgp_payload, parse_message

__all__ = [
    "JsonLogger",
    "get_logger",
    "new_boundary",
    "is_valid_boundary",
    "checksum",
    "parse_message",
    "find_pgp_payload",
]
