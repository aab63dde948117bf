from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

UPDATABLE_FIELDS = ("first_name", "last_name", "email", "phone", "account_id")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^[0-9+\-(). ]+$")


# helpers ---------------------------------------------------------------

def iso_now() -> str:
    # return an iso8601 timestamp with seconds precision
    return datetime.now().isoformat(timespec="seconds")


def new_id() -> str:
    return uuid.uuid4().hex


# validation ------------------------------------------------------------

def validate_name(value: Optional[str], label: str) -> str:
    # required, trimmed length 1-50
    if value is None:
        raise ValueError(f"{label} is required")
    cleaned = str(value).strip()
    if not (1 <= len(cleaned) <= 50):
        raise ValueError(f"{label} must be 1-50 characters")
    return cleaned


def validate_email(email: Optional[str]) -> str:
    if email is None:
        raise ValueError("email is required")
    cleaned = str(email).strip().lower()
    if not _EMAIL_RE.match(cleaned):
        raise ValueError("email must look like name@domain.tld")
    return cleaned


def validate_phone(phone: Optional[str]) -> str:
    if phone is None:
        raise ValueError("phone is required")
    cleaned = str(phone).strip()
    if not (7 <= len(cleaned) <= 20) or not _PHONE_RE.match(cleaned):
        raise ValueError("phone must be 7-20 characters of digits, spaces or + - ( ) .")
    if sum(ch.isdigit() for ch in cleaned) < 7:
        raise ValueError("phone must contain at least 7 digits")
    return cleaned


def validate_account_id(account_id: Optional[str]) -> Optional[str]:
    if account_id is None:
        return None
    cleaned = str(account_id).strip()
    if not cleaned:
        raise ValueError("account_id must not be blank")
    return cleaned


@dataclass
class Contact:
    """contact data model with basic validation and (de)serialization"""

    first_name: str
    last_name: str
    email: str
    phone: str
    account_id: Optional[str] = None

    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=iso_now)
    updated_at: str = field(default_factory=iso_now)

    # normalize + validate on init
    def __post_init__(self):
        self._validate()

    def _validate(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("id must be a non-empty string")
        self.first_name = validate_name(self.first_name, "first_name")
        self.last_name = validate_name(self.last_name, "last_name")
        self.email = validate_email(self.email)
        self.phone = validate_phone(self.phone)
        self.account_id = validate_account_id(self.account_id)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    # update utility used by service layer
    def apply_updates(self, updates: Dict[str, Any]) -> None:
        # apply only known fields; none means "leave as is"
        for key in UPDATABLE_FIELDS:
            if key in updates and updates[key] is not None:
                setattr(self, key, updates[key])
        self._validate()
        self.updated_at = iso_now()

    # serialization helpers -------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "account_id": self.account_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contact":
        # construct from persisted dict (id/timestamps may already exist)
        try:
            c = cls(
                first_name=data["first_name"],
                last_name=data["last_name"],
                email=data["email"],
                phone=data["phone"],
                account_id=data.get("account_id"),
            )
        except KeyError as e:
            raise ValueError(f"{e.args[0]} is required") from e
        if "id" in data:
            c.id = data["id"]
            if not isinstance(c.id, str) or not c.id.strip():
                raise ValueError("id must be a non-empty string")
        if "created_at" in data:
            c.created_at = data["created_at"]
        if "updated_at" in data:
            c.updated_at = data["updated_at"]
        return c
