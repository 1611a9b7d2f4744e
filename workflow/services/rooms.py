"""Negotiation rooms and the dual-completion protocol.

Room states::

    negotiating -> accepted -> completed
    negotiating -> rejected

The facility moves a room out of ``negotiating``.  Once ``accepted``
each side sets its own completion flag and the room closes to
``completed`` in the same transaction that sets the second flag.  Every
read-modify-write below runs under a row lock on the room and writes
through a conditional update on the expected status.
"""
from __future__ import annotations

import logging
from typing import List

from django.db import transaction
from django.db.models import OuterRef, Subquery
from django.db.models.functions import Coalesce
from django.utils import timezone

from workflow.exceptions import Conflict, Forbidden, InvalidState, NotFound, translate_storage_errors
from workflow.models import Message, MessageRoom, RoomStatus, User
from workflow.services.activity import with_unread_flags
from workflow.services.audit import log_action
from workflow.services.identity import Caller, require_facility, require_hospital

logger = logging.getLogger(__name__)

SIDE_HOSPITAL = 'hospital'
SIDE_FACILITY = 'facility'


def _can_transition(current: str, new: str) -> bool:
    """Return True if a room may move from ``current`` to ``new``."""
    transitions = {
        RoomStatus.NEGOTIATING: [RoomStatus.ACCEPTED, RoomStatus.REJECTED],
        RoomStatus.ACCEPTED: [RoomStatus.COMPLETED],
        RoomStatus.REJECTED: [],
        RoomStatus.COMPLETED: [],
    }
    return new in transitions.get(current, [])


def _base_queryset():
    return MessageRoom.objects.select_related('hospital', 'facility', 'request')


def _locked(room_id: str) -> MessageRoom:
    room = MessageRoom.objects.select_for_update().filter(id=room_id).first()
    if room is None:
        raise NotFound('room not found')
    return room


def _side(caller: Caller, room: MessageRoom) -> str:
    if caller.owns_hospital(room.hospital_id):
        return SIDE_HOSPITAL
    if caller.owns_facility(room.facility_id):
        return SIDE_FACILITY
    raise Forbidden()


@translate_storage_errors
def get_room(caller: Caller, room_id: str) -> MessageRoom:
    room = _base_queryset().filter(id=room_id).first()
    if room is None:
        raise NotFound('room not found')
    if not caller.is_participant(room.hospital_id, room.facility_id):
        raise Forbidden()
    return room


@translate_storage_errors
def _decide(caller: Caller, room_id: str, new_status: str, action: str) -> MessageRoom:
    facility_id = require_facility(caller)
    with transaction.atomic():
        room = _locked(room_id)
        if room.facility_id != facility_id:
            raise Forbidden()
        if room.status == new_status == RoomStatus.ACCEPTED:
            return _base_queryset().get(id=room.id)
        if room.status != RoomStatus.NEGOTIATING or not _can_transition(room.status, new_status):
            raise InvalidState('room is not in negotiating status')
        updated = MessageRoom.objects.filter(id=room.id, status=RoomStatus.NEGOTIATING).update(
            status=new_status, updated_at=timezone.now()
        )
        if updated != 1:
            raise Conflict()
        log_action(user_id=caller.user_id, action=action, object_type='room', object_id=room.id)
    logger.info('room %s moved to %s by facility %s', room_id, new_status, facility_id)
    return _base_queryset().get(id=room_id)


def accept_room(caller: Caller, room_id: str) -> MessageRoom:
    """Facility accepts the placement; accepting an accepted room is a no-op."""
    return _decide(caller, room_id, RoomStatus.ACCEPTED, 'room_accept')


def reject_room(caller: Caller, room_id: str) -> MessageRoom:
    return _decide(caller, room_id, RoomStatus.REJECTED, 'room_reject')


@translate_storage_errors
def mark_complete(caller: Caller, room_id: str) -> MessageRoom:
    """Set the caller's completion flag and close the room once both are set."""
    with transaction.atomic():
        room = _locked(room_id)
        side = _side(caller, room)
        if room.status != RoomStatus.ACCEPTED:
            raise InvalidState('room must be accepted before completion')
        now = timezone.now()
        updated = MessageRoom.objects.filter(id=room.id, status=RoomStatus.ACCEPTED).update(
            **{f'{side}_completed': True, 'updated_at': now}
        )
        if updated != 1:
            raise Conflict()
        closed = MessageRoom.objects.filter(
            id=room.id, status=RoomStatus.ACCEPTED, hospital_completed=True, facility_completed=True
        ).update(status=RoomStatus.COMPLETED, updated_at=now)
        log_action(user_id=caller.user_id, action='room_complete', object_type='room', object_id=room.id,
                   detail={'side': side, 'closed': bool(closed)})
    if closed:
        logger.info('room %s completed by both sides', room_id)
    return _base_queryset().get(id=room_id)


@translate_storage_errors
def cancel_completion(caller: Caller, room_id: str) -> MessageRoom:
    with transaction.atomic():
        room = _locked(room_id)
        side = _side(caller, room)
        if room.status != RoomStatus.ACCEPTED:
            raise InvalidState('cannot cancel completion for this room')
        updated = MessageRoom.objects.filter(id=room.id, status=RoomStatus.ACCEPTED).update(
            **{f'{side}_completed': False, 'updated_at': timezone.now()}
        )
        if updated != 1:
            raise Conflict()
        log_action(user_id=caller.user_id, action='room_cancel_completion', object_type='room', object_id=room.id,
                   detail={'side': side})
    return _base_queryset().get(id=room_id)


def _listing(rooms, viewer_user_id: int) -> List[MessageRoom]:
    latest = Message.objects.filter(room=OuterRef('pk')).order_by('-created_at', '-id')
    rooms = with_unread_flags(_base_queryset(), viewer_user_id).filter(pk__in=rooms.values('pk'))
    rooms = rooms.annotate(
        latest_message=Subquery(latest.values('text')[:1]),
        latest_message_at=Subquery(latest.values('created_at')[:1]),
    ).annotate(last_activity_at=Coalesce('latest_message_at', 'created_at'))
    items = list(rooms.order_by('-last_activity_at', '-created_at'))
    for room in items:
        room.has_unread = room.has_unread_messages or room.has_unread_files
    return items


def list_for_hospital(hospital_id: int, viewer_user_id: int) -> List[MessageRoom]:
    return _listing(MessageRoom.objects.filter(hospital_id=hospital_id), viewer_user_id)


def list_for_facility(facility_id: int, viewer_user_id: int) -> List[MessageRoom]:
    return _listing(MessageRoom.objects.filter(facility_id=facility_id), viewer_user_id)


@translate_storage_errors
def list_rooms(caller: Caller) -> List[MessageRoom]:
    if caller.role == User.ROLE_HOSPITAL:
        return list_for_hospital(require_hospital(caller), caller.user_id)
    if caller.role == User.ROLE_FACILITY:
        return list_for_facility(require_facility(caller), caller.user_id)
    raise Forbidden('only hospital and facility users have rooms')
