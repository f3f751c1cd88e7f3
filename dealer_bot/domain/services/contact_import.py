"""
Contact Import - CSV and CRM contact lists for bulk campaigns

Rows that fail validation are reported individually; valid rows are kept.
"""
import csv
import io
from dataclasses import dataclass, field
from typing import Any

from dealer_bot.core.config import settings
from dealer_bot.core.validation import PhoneNumberValidator


@dataclass
class RowError:
    row: int
    error: str
    name: str | None = None
    phone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "name": self.name, "phone": self.phone, "error": self.error}


@dataclass
class ContactList:
    contacts: list[dict[str, Any]] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contacts": self.contacts,
            "errors": [e.to_dict() for e in self.errors],
            "total": len(self.contacts),
            "error_count": len(self.errors),
        }


def is_blacklisted(phone: str | None) -> bool:
    digits = "".join(ch for ch in str(phone or "") if ch.isdigit())
    return any(fragment in digits for fragment in settings.blacklist_fragments)


def _clean(value: str) -> str:
    return value.strip().strip("\"'").strip()


def parse_csv(csv_text: str, reject_blacklisted: bool = True) -> ContactList:
    """
    Parse "name,phone" lines.

    A first line containing "name" is treated as a header. Row numbers are
    1-based line numbers of the input.
    """
    result = ContactList()
    seen: set[str] = set()
    lines = csv_text.splitlines()
    start = 1 if lines and "name" in lines[0].lower() else 0

    for index, fields in enumerate(csv.reader(io.StringIO("\n".join(lines[start:]))), start=start + 1):
        if not any(f.strip() for f in fields):
            continue
        if len(fields) < 2:
            result.errors.append(RowError(row=index, error="Missing name or phone"))
            continue

        name, raw_phone = _clean(fields[0]), _clean(fields[1])
        phone = PhoneNumberValidator.normalize(raw_phone)
        if phone is None:
            result.errors.append(RowError(row=index, name=name, phone=raw_phone, error="Invalid phone"))
            continue
        if reject_blacklisted and is_blacklisted(phone):
            result.errors.append(RowError(row=index, name=name, phone=raw_phone, error="Blacklisted number"))
            continue
        if phone in seen:
            result.errors.append(RowError(row=index, name=name, phone=raw_phone, error="Duplicate phone number"))
            continue

        seen.add(phone)
        result.contacts.append({"name": name, "phone": phone, "row": index})

    return result


def normalize_contacts(contacts: list[Any]) -> ContactList:
    """
    Validate a ``[{name, phone}, ...]`` list (CRM export or parsed CSV).

    Blacklisted numbers are kept; the drain marks them blocked.
    """
    result = ContactList()
    seen: set[str] = set()

    for index, contact in enumerate(contacts, start=1):
        if not isinstance(contact, dict):
            result.errors.append(RowError(row=index, error="Contact must be an object"))
            continue

        name = str(contact.get("name") or "").strip()
        raw_phone = str(contact.get("phone") or "").strip()
        if not raw_phone:
            result.errors.append(RowError(row=index, name=name or None, error="Missing phone"))
            continue

        phone = PhoneNumberValidator.normalize(raw_phone)
        if phone is None:
            result.errors.append(RowError(row=index, name=name or None, phone=raw_phone, error="Invalid phone"))
            continue
        if phone in seen:
            result.errors.append(
                RowError(row=index, name=name or None, phone=raw_phone, error="Duplicate phone number")
            )
            continue

        seen.add(phone)
        result.contacts.append({"name": name or None, "phone": phone})

    return result
