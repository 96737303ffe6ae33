"""Domain models for scholiums and their members."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional


@dataclass(slots=True)
class Scholium:
    """Persisted representation of a scholium (class group)."""

    id: str
    name: str
    host_user_id: str
    encrypted_access_id: str
    access_id_digest: str
    created_at: datetime
    updated_at: datetime
    # Raw stored value; read through the time slot scheduler.
    time_slots: Optional[List[dict]] = field(default=None)
    members_count: int = 0

    def to_summary(self, *, is_host: bool) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "host_user_id": self.host_user_id,
            "is_host": is_host,
            "members_count": self.members_count,
            "updated_at": self.updated_at,
        }


@dataclass(slots=True)
class ScholiumMember:
    id: str
    scholium_id: str
    user_id: str
    is_host: bool
    is_cohost: bool
    can_add_homework: bool
    can_create_subject: bool
    joined_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scholium_id": self.scholium_id,
            "user_id": self.user_id,
            "is_host": self.is_host,
            "is_cohost": self.is_cohost,
            "can_add_homework": self.can_add_homework,
            "can_create_subject": self.can_create_subject,
            "joined_at": self.joined_at,
        }


@dataclass(frozen=True, slots=True)
class RoleCapability:
    """What one user may do in one scholium."""

    is_member: bool = False
    is_host: bool = False
    is_cohost: bool = False
    can_add_homework: bool = False
    can_create_subject: bool = False

    @classmethod
    def for_member(cls, member: Optional[ScholiumMember]) -> "RoleCapability":
        if member is None:
            return cls()
        if member.is_host:
            return cls(is_member=True, is_host=True, can_add_homework=True, can_create_subject=True)
        return cls(
            is_member=True,
            is_cohost=member.is_cohost,
            can_add_homework=member.can_add_homework,
            can_create_subject=member.can_create_subject,
        )

    @property
    def can_manage_cohosts(self) -> bool:
        return self.is_host or self.is_cohost

    def to_dict(self) -> dict[str, bool]:
        return {
            "is_member": self.is_member,
            "is_host": self.is_host,
            "is_cohost": self.is_cohost,
            "can_add_homework": self.can_add_homework,
            "can_create_subject": self.can_create_subject,
        }
