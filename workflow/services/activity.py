"""Activity tracker: unread counts derived from read watermarks.

Nothing here keeps counters.  A room is unread for a user when it holds
a message or file from somebody else created strictly after that user's
watermark for the room; a missing watermark means the room was never
read.  Requests are unread when their ``updated_at`` passed the
watermark and their status is one the viewer cares about: pending
requests for a facility, decided requests for a hospital.
"""
from __future__ import annotations

import datetime
import logging
from typing import Dict

from django.db.models import DateTimeField, Exists, F, OuterRef, Q, Subquery, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from workflow.exceptions import Forbidden, NotFound, translate_storage_errors
from workflow.models import (
    Message,
    MessageRoom,
    PlacementRequest,
    RequestReadStatus,
    RequestStatus,
    RoomFile,
    RoomReadStatus,
    User,
)
from workflow.services.identity import Caller

logger = logging.getLogger(__name__)

# Watermark used when a user never opened the subject: everything is newer.
NEVER_READ = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


def _read_until(watermarks):
    return Coalesce(Subquery(watermarks.values('last_read_at')[:1]), Value(NEVER_READ, output_field=DateTimeField()))


def with_unread_flags(rooms, user_id: int):
    """Annotate a room queryset with ``has_unread_messages`` and ``has_unread_files``."""
    rooms = rooms.annotate(
        read_until=_read_until(RoomReadStatus.objects.filter(room=OuterRef('pk'), user_id=user_id)),
    )
    return rooms.annotate(
        has_unread_messages=Exists(
            Message.objects.filter(room=OuterRef('pk'), created_at__gt=OuterRef('read_until')).exclude(sender_id=user_id)
        ),
        has_unread_files=Exists(
            RoomFile.objects.filter(room=OuterRef('pk'), created_at__gt=OuterRef('read_until')).exclude(sender_id=user_id)
        ),
    )


def _owned_rooms(role: str, entity_id: int):
    if role == User.ROLE_HOSPITAL:
        return MessageRoom.objects.filter(hospital_id=entity_id)
    if role == User.ROLE_FACILITY:
        return MessageRoom.objects.filter(facility_id=entity_id)
    return MessageRoom.objects.none()


def _owned_requests(role: str, entity_id: int):
    if role == User.ROLE_HOSPITAL:
        return PlacementRequest.objects.filter(hospital_id=entity_id)
    if role == User.ROLE_FACILITY:
        return PlacementRequest.objects.filter(facility_id=entity_id)
    return PlacementRequest.objects.none()


def unread_message_room_count(user_id: int, role: str, entity_id) -> int:
    if entity_id is None or role not in (User.ROLE_HOSPITAL, User.ROLE_FACILITY):
        return 0
    rooms = with_unread_flags(_owned_rooms(role, entity_id), user_id)
    return rooms.filter(Q(has_unread_messages=True) | Q(has_unread_files=True)).count()


def unread_request_count(user_id: int, role: str, entity_id) -> int:
    if entity_id is None:
        return 0
    if role == User.ROLE_FACILITY:
        statuses = [RequestStatus.PENDING]
    elif role == User.ROLE_HOSPITAL:
        statuses = [RequestStatus.ACCEPTED, RequestStatus.REJECTED]
    else:
        return 0
    return (
        _owned_requests(role, entity_id)
        .filter(status__in=statuses)
        .annotate(read_until=_read_until(RequestReadStatus.objects.filter(request=OuterRef('pk'), user_id=user_id)))
        .filter(updated_at__gt=F('read_until'))
        .count()
    )


@translate_storage_errors
def unread_counts(caller: Caller) -> Dict[str, int]:
    """Return ``{'messages': rooms with unread activity, 'requests': unread requests}``."""
    entity_id = caller.entity_id
    return {
        'messages': unread_message_room_count(caller.user_id, caller.role, entity_id),
        'requests': unread_request_count(caller.user_id, caller.role, entity_id),
    }


def _upsert_room_watermark(room_id: str, user_id: int) -> None:
    RoomReadStatus.objects.update_or_create(room_id=room_id, user_id=user_id, defaults={'last_read_at': timezone.now()})


@translate_storage_errors
def mark_room_read(caller: Caller, room_id: str) -> None:
    room = MessageRoom.objects.filter(id=room_id).only('id', 'hospital_id', 'facility_id').first()
    if room is None:
        raise NotFound('room not found')
    if not caller.is_participant(room.hospital_id, room.facility_id):
        raise Forbidden()
    _upsert_room_watermark(room.id, caller.user_id)


@translate_storage_errors
def mark_request_read(caller: Caller, request_id: int) -> None:
    req = PlacementRequest.objects.filter(id=request_id).only('id', 'hospital_id', 'facility_id').first()
    if req is None:
        raise NotFound('request not found')
    if not caller.is_participant(req.hospital_id, req.facility_id):
        raise Forbidden()
    RequestReadStatus.objects.update_or_create(
        request_id=req.id, user_id=caller.user_id, defaults={'last_read_at': timezone.now()}
    )


@translate_storage_errors
def mark_all_requests_read(caller: Caller) -> int:
    """Bump the caller's watermark to now for every request of its entity."""
    entity_id = caller.entity_id
    if entity_id is None:
        return 0
    now = timezone.now()
    request_ids = list(_owned_requests(caller.role, entity_id).values_list('id', flat=True))
    RequestReadStatus.objects.bulk_create(
        [RequestReadStatus(request_id=rid, user_id=caller.user_id, last_read_at=now) for rid in request_ids],
        update_conflicts=True,
        unique_fields=['request', 'user'],
        update_fields=['last_read_at'],
    )
    logger.debug('user %s marked %d requests read', caller.user_id, len(request_ids))
    return len(request_ids)
