"""Caller identity and owned-entity resolution.

The transport layer authenticates the user; everything below only
trusts ``(user id, role)`` and re-derives the hospital or facility the
caller owns before authorizing anything.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from workflow.exceptions import Forbidden
from workflow.models import Facility, Hospital, User


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: str
    hospital_id: Optional[int] = None
    facility_id: Optional[int] = None

    @property
    def entity_id(self) -> Optional[int]:
        if self.role == User.ROLE_HOSPITAL:
            return self.hospital_id
        if self.role == User.ROLE_FACILITY:
            return self.facility_id
        return None

    def owns_hospital(self, hospital_id: int) -> bool:
        return self.role == User.ROLE_HOSPITAL and self.hospital_id is not None and self.hospital_id == hospital_id

    def owns_facility(self, facility_id: int) -> bool:
        return self.role == User.ROLE_FACILITY and self.facility_id is not None and self.facility_id == facility_id

    def is_participant(self, hospital_id: int, facility_id: int) -> bool:
        return self.owns_hospital(hospital_id) or self.owns_facility(facility_id)


def resolve_caller(user_id: int, role: str) -> Caller:
    """Build a :class:`Caller`, looking up the entity owned for ``role``."""
    if role == User.ROLE_HOSPITAL:
        hospital_id = Hospital.objects.filter(user_id=user_id).values_list('id', flat=True).first()
        return Caller(user_id=user_id, role=role, hospital_id=hospital_id)
    if role == User.ROLE_FACILITY:
        facility_id = Facility.objects.filter(user_id=user_id).values_list('id', flat=True).first()
        return Caller(user_id=user_id, role=role, facility_id=facility_id)
    return Caller(user_id=user_id, role=role)


def caller_for_user(user: User) -> Caller:
    return resolve_caller(user.id, getattr(user, 'role', ''))


def require_hospital(caller: Caller) -> int:
    if caller.role != User.ROLE_HOSPITAL:
        raise Forbidden('only hospital users can perform this action')
    if caller.hospital_id is None:
        raise Forbidden('no hospital is registered for this user')
    return caller.hospital_id


def require_facility(caller: Caller) -> int:
    if caller.role != User.ROLE_FACILITY:
        raise Forbidden('only facility users can perform this action')
    if caller.facility_id is None:
        raise Forbidden('no facility is registered for this user')
    return caller.facility_id
