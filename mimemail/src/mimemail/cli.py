"""mimemail command-line interface.

What:
  Provide a Typer entry point that composes a message for a configured
  account, optionally wraps it in a PGP/MIME envelope, and submits it over
  SMTP or prints it.

Why:
  Operators and scripts need the full pipeline (accounts, assembly, keys,
  transport) without writing Python. Wiring the commands straight to the
  library keeps the CLI output byte-identical to what the API produces.

How:
  Resolve the account through :func:`mimemail.config.get_account`, build a
  :class:`~mimemail.message.Message` from the options, encrypt it inside a
  scoped :class:`~mimemail.crypto.GnuPGKeyring` when ``--encrypt-to`` is given,
  then either write the bytes to stdout (``--dry-run``) or hand the message to
  :func:`mimemail.transport.deliver`.

Interfaces:
  ``app`` (Typer application), ``send``, ``show_account``, ``main``.

Invariants & Safety:
  - Exit codes follow shell expectations (``0`` success, ``1`` failure).
  - ``show-account`` never prints passphrases or inline key material.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import typer

from .addresses import AddressRole
from .config import Account, ConfigLoadError, get_account
from .crypto import GnuPGKeyring, RecipientHandle, SignerHandle
from .errors import MimeMailError
from .message import Message
from .transport import deliver

app = typer.Typer(help="Compose, encrypt and send MIME mail")

LOGGER = logging.getLogger("mimemail.cli")


def _load_account(name: str, config: Optional[Path]) -> Account:
    try:
        return get_account(name, config)
    except ConfigLoadError as exc:
        LOGGER.error("account_load_failed: %s", exc)
        raise typer.Exit(code=1) from exc


def _compose(
    account: Account,
    *,
    to: List[str],
    cc: List[str],
    bcc: List[str],
    subject: str,
    body: Optional[Path],
    html: Optional[Path],
    attach: List[Path],
) -> Message:
    message = Message(subject)
    message.add_address(AddressRole.FROM, account.address, account.display_name)
    for role, addresses in ((AddressRole.TO, to), (AddressRole.CC, cc), (AddressRole.BCC, bcc)):
        for address in addresses:
            message.add_address(role, address)
    if body is not None:
        message.add_text(body.read_bytes())
    if html is not None:
        message.add_text(html.read_bytes(), subtype="html")
    for path in attach:
        message.add_file(path)
    return message


def _prepare_keys(
    keyring: GnuPGKeyring, account: Account, key_file: Path, recipient_address: str, sign: bool
) -> Tuple[RecipientHandle, Optional[SignerHandle]]:
    recipient = keyring.prepare_recipient(key_file.read_bytes(), expected_address=recipient_address)
    if not sign:
        return recipient, None
    if account.key is None:
        raise MimeMailError(f"account {account.name} has no signing key configured")
    signer = keyring.prepare_signer(account.key.read(), account.key.passphrase, expected_address=account.address)
    return recipient, signer


@app.command("send")
def send(
    account: str = typer.Argument(..., help="Name of the sending account in accounts.yaml"),
    *,
    to: List[str] = typer.Option(..., "--to", help="Recipient address (repeatable)"),
    cc: Optional[List[str]] = typer.Option(None, "--cc", help="Carbon-copy address (repeatable)"),
    bcc: Optional[List[str]] = typer.Option(None, "--bcc", help="Blind carbon-copy address (repeatable)"),
    subject: str = typer.Option("", "--subject", help="Subject line"),
    body: Optional[Path] = typer.Option(None, "--body", exists=True, dir_okay=False, help="Plain-text body file"),
    html: Optional[Path] = typer.Option(None, "--html", exists=True, dir_okay=False, help="HTML body file"),
    attach: Optional[List[Path]] = typer.Option(
        None, "--attach", exists=True, dir_okay=False, help="File to attach (repeatable)"
    ),
    encrypt_to: Optional[Path] = typer.Option(
        None,
        "--encrypt-to",
        exists=True,
        dir_okay=False,
        help="ASCII-armored public key to encrypt the message to",
    ),
    sign: bool = typer.Option(False, "--sign", help="Sign with the account key (requires --encrypt-to)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the message instead of sending it"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to accounts.yaml"),
) -> None:
    """Compose a message from ACCOUNT and deliver it.

    What:
      Build the message, encrypt it when a recipient key is given, then send
      it through the account's SMTP server.

    How:
      Any library error is logged and turned into exit code ``1``; with
      ``--dry-run`` the exact bytes that would be submitted go to stdout.
    """

    if sign and encrypt_to is None:
        LOGGER.error("send_failed: --sign requires --encrypt-to")
        raise typer.Exit(code=1)

    settings = _load_account(account, config)
    try:
        message = _compose(
            settings,
            to=to,
            cc=cc or [],
            bcc=bcc or [],
            subject=subject,
            body=body,
            html=html,
            attach=attach or [],
        )
        if encrypt_to is None:
            if dry_run:
                typer.echo(message.to_bytes(), nl=False)
                return
            refused = deliver(message, settings)
        else:
            with GnuPGKeyring() as keyring:
                recipient, signer = _prepare_keys(keyring, settings, encrypt_to, to[0], sign)
                if dry_run:
                    typer.echo(message.encrypt(recipient, signer, config=settings.cipher), nl=False)
                    return
                refused = deliver(message, settings, recipient, signer)
    except (MimeMailError, OSError, ValueError) as exc:
        LOGGER.error("send_failed account=%s: %s", account, exc)
        raise typer.Exit(code=1) from exc

    LOGGER.info("send_completed account=%s refused=%s", account, sorted(refused))


@app.command("show-account")
def show_account(
    account: str = typer.Argument(..., help="Name of the account in accounts.yaml"),
    *,
    config: Optional[Path] = typer.Option(None, "--config", help="Path to accounts.yaml"),
) -> None:
    """Print ACCOUNT as JSON without passphrases or inline keys."""

    settings = _load_account(account, config)
    payload = settings.model_dump(mode="json", exclude={"key": {"passphrase", "key"}})
    if settings.key is not None:
        payload["key"]["has_passphrase"] = settings.key.passphrase is not None
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))


def main() -> None:
    """Execute the Typer application entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
