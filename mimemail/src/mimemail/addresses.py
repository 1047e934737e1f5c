"""Address roles and the per-message address map.

What:
  Provide the closed :class:`AddressRole` enumeration, the :class:`Address`
  value type and the :class:`Addresses` container that keeps name/address pairs
  per role in insertion order.

Why:
  Header emission order and transport recipients are both derived from this
  map. Restricting keys to a tagged enumeration (instead of an open string
  keyed dict) makes an unknown role impossible to store and therefore
  impossible to serialise.

How:
  ``AddressRole.parse`` converts caller input to a member or raises
  :class:`~mimemail.errors.InvalidFieldError` before anything is mutated.
  Addresses render through :func:`email.utils.formataddr`, which applies RFC
  2047 encoding to non-ASCII display names.

Interfaces:
  :class:`AddressRole`, :data:`ROLE_ORDER`, :class:`Address`,
  :class:`Addresses`.

Invariants & Safety:
  - Only the seven roles of :class:`AddressRole` can ever be keys.
  - A rejected insertion leaves the map unchanged.
  - :meth:`Addresses.recipients` never mutates state.
"""
from __future__ import annotations

import email.utils
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Tuple, Union

from .errors import InvalidFieldError


class AddressRole(str, Enum):
    """The recognised address header roles."""

    SENDER = "Sender"
    FROM = "From"
    TO = "To"
    CC = "Cc"
    BCC = "Bcc"
    REPLY_TO = "ReplyTo"
    FOLLOWUP_TO = "FollowupTo"

    @property
    def header(self) -> str:
        """RFC 5322 field name used on the wire."""

        return _WIRE_NAMES[self]

    @classmethod
    def parse(cls, value: Union["AddressRole", str]) -> "AddressRole":
        """Return the member for ``value`` or raise :class:`InvalidFieldError`.

        Accepts members, role names (``"ReplyTo"``) and wire names
        (``"Reply-To"``), compared case-insensitively.
        """

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            member = _LOOKUP.get(value.strip().lower())
            if member is not None:
                return member
        raise InvalidFieldError(value)


_WIRE_NAMES: Dict[AddressRole, str] = {
    AddressRole.SENDER: "Sender",
    AddressRole.FROM: "From",
    AddressRole.TO: "To",
    AddressRole.CC: "Cc",
    AddressRole.BCC: "Bcc",
    AddressRole.REPLY_TO: "Reply-To",
    AddressRole.FOLLOWUP_TO: "Followup-To",
}

_LOOKUP: Dict[str, AddressRole] = {}
for _role in AddressRole:
    _LOOKUP[_role.value.lower()] = _role
    _LOOKUP[_WIRE_NAMES[_role].lower()] = _role

ROLE_ORDER: Tuple[AddressRole, ...] = (
    AddressRole.SENDER,
    AddressRole.FROM,
    AddressRole.TO,
    AddressRole.CC,
    AddressRole.BCC,
    AddressRole.REPLY_TO,
    AddressRole.FOLLOWUP_TO,
)
"""Fixed emission order of the address headers."""

RECIPIENT_ROLES: Tuple[AddressRole, ...] = (AddressRole.TO, AddressRole.CC, AddressRole.BCC)

MAX_LINE = 78
"""Folding width for address headers (RFC 5322 section 2.1.1)."""


@dataclass(frozen=True)
class Address:
    """A display name / mailbox pair."""

    address: str
    name: str = ""

    def __post_init__(self) -> None:
        if any(char in value for value in (self.address, self.name) for char in "\r\n"):
            raise ValueError("addresses and display names must not contain line breaks")

    def __str__(self) -> str:
        return email.utils.formataddr((self.name, self.address), charset="utf-8")


class Addresses:
    """Ordered name/address lists keyed by :class:`AddressRole`.

    What:
      Stores every address added to a message, preserving insertion order within
      each role.

    Why:
      The assembler and transport need stable, repeatable views of the same data
      (header lines, effective sender, recipient list) without caching anything
      that could go stale after a mutation.

    How:
      Keeps a plain ``dict`` of lists; all reads walk :data:`ROLE_ORDER` so the
      dict's own iteration order never influences output.
    """

    def __init__(self) -> None:
        self._entries: Dict[AddressRole, List[Address]] = {}

    def add(self, role: Union[AddressRole, str], address: str, name: str = "") -> Address:
        """Append ``address`` under ``role`` and return the stored value."""

        member = AddressRole.parse(role)
        entry = Address(address=address, name=name)
        self._entries.setdefault(member, []).append(entry)
        return entry

    def add_address(self, role: Union[AddressRole, str], address: Address) -> Address:
        member = AddressRole.parse(role)
        self._entries.setdefault(member, []).append(address)
        return address

    def sender(self, address: str, name: str = "") -> Address:
        return self.add(AddressRole.SENDER, address, name)

    def from_(self, address: str, name: str = "") -> Address:
        return self.add(AddressRole.FROM, address, name)

    def to(self, address: str, name: str = "") -> Address:
        return self.add(AddressRole.TO, address, name)

    def cc(self, address: str, name: str = "") -> Address:
        return self.add(AddressRole.CC, address, name)

    def bcc(self, address: str, name: str = "") -> Address:
        return self.add(AddressRole.BCC, address, name)

    def reply_to(self, address: str, name: str = "") -> Address:
        return self.add(AddressRole.REPLY_TO, address, name)

    def followup_to(self, address: str, name: str = "") -> Address:
        return self.add(AddressRole.FOLLOWUP_TO, address, name)

    def get(self, role: Union[AddressRole, str]) -> List[Address]:
        """Return a copy of the addresses stored under ``role``."""

        return list(self._entries.get(AddressRole.parse(role), ()))

    def first(self, role: AddressRole) -> Address | None:
        entries = self._entries.get(role)
        return entries[0] if entries else None

    def recipients(self) -> List[str]:
        """Return every To, Cc and Bcc mailbox, in that order."""

        return [entry.address for role in RECIPIENT_ROLES for entry in self._entries.get(role, ())]

    def header_lines(self) -> Iterator[Tuple[str, str]]:
        """Yield ``(field, value)`` pairs for populated roles in canonical order."""

        for role in ROLE_ORDER:
            entries = self._entries.get(role)
            if entries:
                yield role.header, _fold_list(role.header, [str(entry) for entry in entries])

    def as_dict(self) -> Dict[str, List[Tuple[str, str]]]:
        return {
            role.value: [(entry.name, entry.address) for entry in self._entries[role]]
            for role in ROLE_ORDER
            if self._entries.get(role)
        }

    def __bool__(self) -> bool:
        return any(self._entries.values())

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())


def _fold_list(field: str, items: List[str]) -> str:
    """Join ``items`` with ``", "``, folding onto CRLF + space lines past :data:`MAX_LINE`."""

    folded = items[0]
    width = len(field) + 2 + len(folded)
    for item in items[1:]:
        if width + 2 + len(item) > MAX_LINE:
            folded += ",\r\n " + item
            width = 1 + len(item)
        else:
            folded += ", " + item
            width += 2 + len(item)
    return folded


__all__ = ["AddressRole", "ROLE_ORDER", "RECIPIENT_ROLES", "Address", "Addresses"]
