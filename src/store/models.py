"""Typed entities for the record-store collections.

The store speaks generic dict records; these dataclasses are the only
shape the rest of the service sees. ``from_record`` / ``to_record`` are
the mapping boundary.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any

USERS = "users"
PROJECTS = "projects"
PROPOSALS = "proposals"
PAYMENTS = "payments"
CONVERSATIONS = "conversations"


class Role(str, Enum):
    CLIENT = "client"
    FREELANCER = "freelancer"


class PaymentStatus(str, Enum):
    """Payment lifecycle: created -> paid | failed."""
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProposalStatus(str, Enum):
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class _Entity:
    """Mapping helpers shared by all entities."""

    @classmethod
    def from_record(cls, record: dict[str, Any]):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in record.items() if k in known and v is not None})

    def to_record(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data


@dataclass
class User(_Entity):
    id: str = ""
    name: str = ""
    email: str = ""
    role: str = ""
    is_deleted: bool = False
    didit_session_id: str = ""
    verification_status: str = ""  # "" = never started
    verification_reason: str = ""

    def has_role(self, role: Role) -> bool:
        return self.role == role.value


@dataclass
class Project(_Entity):
    id: str = ""
    title: str = ""
    description: str = ""
    type: str = ""
    client_id: str = ""
    status: str = "open"
    is_deleted: bool = False


@dataclass
class Proposal(_Entity):
    id: str = ""
    project_id: str = ""
    freelancer_id: str = ""
    client_id: str = ""
    message: str = ""
    status: str = ProposalStatus.SENT.value
    is_deleted: bool = False
    created: str = ""


@dataclass
class Payment(_Entity):
    id: str = ""
    client_id: str = ""
    freelancer_id: str = ""
    project_id: str = ""
    amount: int = 0  # minor currency units
    currency: str = "usd"
    status: str = PaymentStatus.CREATED.value
    stripe_checkout_session_id: str = ""
    stripe_payment_intent_id: str = ""
    is_deleted: bool = False
    created_at: str = ""

    @staticmethod
    def now() -> str:
        return datetime.now(timezone.utc).isoformat()


@dataclass
class Conversation(_Entity):
    id: str = ""
    project_id: str = ""
    proposal_id: str = ""
    stream_channel_id: str = ""
    is_deleted: bool = False
