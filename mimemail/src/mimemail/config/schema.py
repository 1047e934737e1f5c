"""Pydantic models describing accounts, key references and server settings."""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import field_validator, model_validator


class Security(str, Enum):
    """How the SMTP connection is secured."""

    NONE = "none"
    STARTTLS = "starttls"
    SSL = "ssl"


class TLSSettings(BaseModel):
    """TLS parameters for one server; passed explicitly to the transport."""

    model_config = ConfigDict(extra="forbid")

    verify: bool = True
    ca_file: Optional[str] = None


class ServerSettings(BaseModel):
    """Connection details for a mail submission server."""

    model_config = ConfigDict(extra="forbid")

    host: str
    port: int = Field(default=587, ge=1, le=65535)
    security: Security = Security.STARTTLS
    tls: TLSSettings = Field(default_factory=TLSSettings)
    timeout: float = Field(default=30.0, gt=0)

    @property
    def address(self) -> str:
        """``host:port`` with IPv6 hosts bracketed."""

        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"


class KeyReference(BaseModel):
    """Where an ASCII-armored OpenPGP key lives.

    What:
      Either a filesystem path or the inline armored key, plus an optional
      passphrase for private keys.

    Why:
      Deployments keep keys in files; tests and secrets managers hand them over
      inline. Inline material wins when both are present.
    """

    model_config = ConfigDict(extra="forbid")

    file: Optional[str] = None
    key: Optional[str] = None
    passphrase: Optional[str] = None

    @model_validator(mode="after")
    def _require_source(self) -> "KeyReference":
        if not self.file and not self.key:
            raise ValueError("key reference needs either 'file' or 'key'")
        return self

    def read(self) -> bytes:
        """Return the armored key bytes.

        Raises:
          OSError: When the key file cannot be read.
        """

        if self.key:
            return self.key.encode("utf-8")
        assert self.file is not None
        with open(Path(self.file).expanduser(), "rb") as handle:
            return handle.read()


class CipherConfig(BaseModel):
    """OpenPGP parameters for one encryption or signing call."""

    model_config = ConfigDict(extra="forbid")

    digest_algo: str = "SHA256"
    always_trust: bool = True
    compress: bool = True
    armor_headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("armor_headers")
    @classmethod
    def _single_line_headers(cls, value: Dict[str, str]) -> Dict[str, str]:
        for name, item in value.items():
            if any(ch in name + item for ch in "\r\n") or ":" in name:
                raise ValueError("armor headers must be single-line 'Name: value' pairs")
        return value


class Account(BaseModel):
    """Identity, credentials, key material and server of one sending account."""

    model_config = ConfigDict(extra="forbid")

    name: str
    address: str
    display_name: str = ""
    username: Optional[str] = None
    password_file: Optional[str] = None
    key: Optional[KeyReference] = None
    server: Optional[ServerSettings] = None
    cipher: CipherConfig = Field(default_factory=CipherConfig)

    @field_validator("address")
    @classmethod
    def _looks_like_mailbox(cls, value: str) -> str:
        if "@" not in value or any(ch.isspace() for ch in value):
            raise ValueError("address must look like local@domain")
        return value

    @property
    def login(self) -> str:
        return self.username or self.address

    def read_password(self) -> Optional[str]:
        """Return the password stored in ``password_file`` (trailing newline stripped)."""

        if not self.password_file:
            return None
        with open(Path(self.password_file).expanduser(), "r", encoding="utf-8") as handle:
            return handle.read().rstrip("\r\n")


class AccountsDocument(BaseModel):
    """Top-level ``accounts.yaml`` document."""

    model_config = ConfigDict(extra="forbid")

    accounts: List[Account] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_names(self) -> "AccountsDocument":
        seen = set()
        for account in self.accounts:
            if account.name in seen:
                raise ValueError(f"duplicate account name: {account.name}")
            seen.add(account.name)
        return self

    def get(self, name: str) -> Optional[Account]:
        return next((account for account in self.accounts if account.name == name), None)


__all__ = [
    "Account",
    "AccountsDocument",
    "CipherConfig",
    "KeyReference",
    "Security",
    "ServerSettings",
    "TLSSettings",
]
