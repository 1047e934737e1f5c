"""MIME parsing helpers used to inspect assembled messages and envelopes.

What:
  Turn raw RFC 5322 bytes produced by the assembler or the cipher pipeline back
  into :class:`email.message.EmailMessage` objects, lowercase header
  dictionaries, and the payload of a PGP/MIME ciphertext part.

Why:
  The consumer side of the envelope (``open_envelope``) and the test-suite need
  an independent reading of what the writers produced. Using the standard
  ``email`` parser rather than our own framing code keeps that check honest.

How:
  Use :class:`~email.parser.BytesParser` with the default policy, then walk the
  MIME tree for the parts of interest.

Interfaces:
  :func:`parse_message`, :func:`find_pgp_payload`.

Invariants & Safety:
  - Parsing never mutates the input bytes.
  - :func:`find_pgp_payload` only accepts a ``multipart/encrypted`` root whose
    protocol is ``application/pgp-encrypted`` with the RFC 3156 two-part shape.
"""
from __future__ import annotations

from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Dict, Tuple


def parse_message(raw: bytes) -> Tuple[EmailMessage, Dict[str, str], str]:
    """Parse raw message bytes into canonical structures.

    What:
      Returns a :class:`EmailMessage`, a lower-cased header mapping, and the
      first ``text/*`` body (empty when there is none).

    How:
      Leverages :class:`BytesParser` with the default policy and walks
      multipart messages depth-first for the first textual leaf.

    Args:
      raw: Complete message bytes.

    Returns:
      Tuple of the parsed message, its headers keyed by lowercase names, and
      the decoded text body.
    """

    parser = BytesParser(policy=policy.default)
    message = parser.parsebytes(raw)
    headers = {k.lower(): str(v) for k, v in message.items()}
    return message, headers, _extract_body_text(message)


def find_pgp_payload(message: EmailMessage) -> bytes:
    """Return the armored ciphertext carried by a PGP/MIME envelope.

    Raises:
      ValueError: If ``message`` is not a well-formed PGP/MIME envelope.
    """

    if message.get_content_type() != "multipart/encrypted":
        raise ValueError("not a multipart/encrypted message")
    if message.get_param("protocol") != "application/pgp-encrypted":
        raise ValueError("unsupported multipart/encrypted protocol")
    children = list(message.iter_parts())
    if len(children) != 2:
        raise ValueError("PGP/MIME envelope must have exactly two parts")
    control, body = children
    if control.get_content_type() != "application/pgp-encrypted":
        raise ValueError("first PGP/MIME part must be application/pgp-encrypted")
    payload = body.get_payload(decode=True)
    if not isinstance(payload, bytes):
        raise ValueError("PGP/MIME ciphertext part is empty")
    return payload


def _extract_body_text(message: EmailMessage) -> str:
    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_type().startswith("text/"):
            payload = part.get_payload(decode=True) or b""
            return payload.decode(part.get_content_charset("utf-8"), errors="ignore")
    return ""
