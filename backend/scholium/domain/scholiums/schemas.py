"""Pydantic schemas for the scholiums API."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from scholium.domain.scholiums.policy import NAME_MAX_LENGTH


class ScholiumCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)


class JoinByAccessIdRequest(BaseModel):
    access_id: str = Field(..., min_length=1, max_length=32)


class ScholiumSummary(BaseModel):
    id: str
    name: str
    host_user_id: str
    is_host: bool
    members_count: int
    updated_at: datetime


class ScholiumCreated(ScholiumSummary):
    access_id: str


class ScholiumDetail(BaseModel):
    id: str
    name: str
    access_id: str
    is_host: bool
    member_count: int


class MemberSummary(BaseModel):
    id: str
    scholium_id: str
    user_id: str
    is_host: bool
    is_cohost: bool
    can_add_homework: bool
    can_create_subject: bool
    joined_at: datetime


class MembersResponse(BaseModel):
    items: List[MemberSummary]


class PermissionsUpdateRequest(BaseModel):
    can_add_homework: bool
    can_create_subject: bool


class CohostUpdateRequest(BaseModel):
    is_cohost: bool


class TransferHostRequest(BaseModel):
    new_host_user_id: str = Field(..., min_length=1)


class AccessIdResponse(BaseModel):
    access_id: str


class MembershipResponse(BaseModel):
    scholium_id: str
    user_id: str
    is_member: bool


class CapabilityResponse(BaseModel):
    is_member: bool
    is_host: bool
    is_cohost: bool
    can_add_homework: bool
    can_create_subject: bool
