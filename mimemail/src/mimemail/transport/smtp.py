"""SMTP submission of assembled or encrypted messages.

What:
  Wrap :mod:`smtplib` with the connection policy of an
  :class:`~mimemail.config.schema.Account` (plain, STARTTLS or implicit TLS,
  optional AUTH) and hand it finished byte streams.

Why:
  Assembly and encryption end at a byte stream; delivering it is a thin but
  failure-prone step. Mapping every socket, TLS and protocol failure to
  :class:`~mimemail.errors.TransportError` gives callers a single exception to
  handle, and logging only checksums keeps message content out of the logs.

How:
  :class:`SmtpTransport` connects in :meth:`SmtpTransport.connect` (or
  ``__enter__``), builds an ``ssl`` context from the account's
  :class:`~mimemail.config.schema.TLSSettings` and quits on exit.
  :func:`deliver` serialises (or encrypts) a message and sends it from the
  effective sender to every To/Cc/Bcc address.

Interfaces:
  :class:`SmtpTransport`, :func:`deliver`.

Invariants & Safety:
  - Nothing is retried; the first failure propagates.
  - Passwords are read from ``password_file`` at connect time and never
    logged.
"""
from __future__ import annotations

import smtplib
import ssl
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from ..config.schema import Account, CipherConfig, Security, TLSSettings
from ..errors import TransportError
from ..utils.ids import checksum
from ..utils.logging import get_logger

if TYPE_CHECKING:
    from ..crypto.keyring import RecipientHandle, SignerHandle
    from ..message import Message

_LOGGER = get_logger("mimemail.transport")

Refused = Dict[str, Tuple[int, bytes]]


class SmtpTransport:
    """Context manager owning one SMTP session for an account.

    What:
      Opens the connection described by ``account.server`` and submits
      messages over it.

    Why:
      A single session per ``with`` block lets callers send several messages
      while guaranteeing ``QUIT`` on every exit path.

    How:
      ``smtp_class`` and ``smtp_ssl_class`` are class attributes so an
      alternative client (for example a test double) can be substituted.
    """

    smtp_class = smtplib.SMTP
    smtp_ssl_class = smtplib.SMTP_SSL

    def __init__(self, account: Account, *, password: Optional[str] = None) -> None:
        if account.server is None:
            raise TransportError(f"account {account.name} has no server configured")
        self._account = account
        self._server = account.server
        self._password = password
        self._client: Optional[smtplib.SMTP] = None
        self._logger = _LOGGER.bind(account=account.name)

    @property
    def connected(self) -> bool:
        return self._client is not None

    def __enter__(self) -> "SmtpTransport":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.quit()

    def connect(self) -> None:
        """Open the session, upgrade it to TLS when configured and authenticate.

        Raises:
          TransportError: On connection, TLS or authentication failure.
        """

        if self._client is not None:
            return
        password = self._resolve_password()
        server = self._server
        context = _tls_context(server.tls) if server.security is not Security.NONE else None
        client: Optional[smtplib.SMTP] = None
        try:
            if server.security is Security.SSL:
                client = self.smtp_ssl_class(server.host, server.port, timeout=server.timeout, context=context)
            else:
                client = self.smtp_class(server.host, server.port, timeout=server.timeout)
            client.ehlo()
            if server.security is Security.STARTTLS:
                client.starttls(context=context)
                client.ehlo()
            if password:
                client.login(self._account.login, password)
        except smtplib.SMTPAuthenticationError as exc:
            _close(client)
            raise TransportError(f"authentication failed for {self._account.login} at {server.address}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            _close(client)
            raise TransportError(f"unable to connect to {server.address}: {exc}") from exc
        self._client = client
        self._logger.info("smtp_connected", server=server.address, security=server.security.value)

    def send(self, sender: str, recipients: Iterable[str], data: bytes) -> Refused:
        """Submit ``data`` from ``sender`` to ``recipients``.

        Returns:
          Recipients the server refused while accepting others.

        Raises:
          TransportError: When not connected or the server rejects the message.
        """

        if self._client is None:
            raise TransportError("transport is not connected")
        targets: List[str] = list(recipients)
        if not targets:
            raise TransportError("message has no recipients")
        try:
            refused = self._client.sendmail(sender, targets, data)
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(f"delivery via {self._server.address} failed: {exc}") from exc
        if refused:
            self._logger.warning("smtp_recipients_refused", refused=sorted(refused))
        self._logger.info(
            "message_sent",
            checksum=checksum(data),
            size=len(data),
            recipients=len(targets) - len(refused),
        )
        return refused

    def quit(self) -> None:
        """End the session; a server that already hung up is closed locally."""

        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.quit()
        except (smtplib.SMTPException, OSError):
            client.close()

    def _resolve_password(self) -> Optional[str]:
        if self._password is not None:
            return self._password
        try:
            return self._account.read_password()
        except OSError as exc:
            raise TransportError(f"unable to read password file of account {self._account.name}") from exc


def deliver(
    message: "Message",
    account: Account,
    encrypt_to: Optional["RecipientHandle"] = None,
    signer: Optional["SignerHandle"] = None,
    *,
    config: Optional[CipherConfig] = None,
) -> Refused:
    """Serialise ``message`` (encrypted when ``encrypt_to`` is set) and send it via ``account``.

    Raises:
      NoSenderError: When the message has neither Sender nor From.
      ValueError: When ``signer`` is given without ``encrypt_to``.
      TransportError: On any delivery failure.
    """

    if signer is not None and encrypt_to is None:
        raise ValueError("signing is only supported together with encryption")
    sender = message.effective_sender()
    recipients = message.recipients()
    if encrypt_to is not None:
        data = message.encrypt(encrypt_to, signer, config=config or account.cipher)
    else:
        data = message.to_bytes()
    with SmtpTransport(account) as transport:
        return transport.send(sender, recipients, data)


def _tls_context(settings: TLSSettings) -> ssl.SSLContext:
    context = ssl.create_default_context(cafile=settings.ca_file)
    if not settings.verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _close(client: Optional[smtplib.SMTP]) -> None:
    if client is not None:
        client.close()
