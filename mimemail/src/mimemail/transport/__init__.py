"""Facade for the mail transport layer.

What:
  Surface :class:`~mimemail.transport.smtp.SmtpTransport` and
  :func:`~mimemail.transport.smtp.deliver`.

Invariants & Safety:
  - Every delivery failure surfaces as
    :class:`~mimemail.errors.TransportError`.
"""

from .smtp import SmtpTransport, deliver

__all__ = ["SmtpTransport", "deliver"]
