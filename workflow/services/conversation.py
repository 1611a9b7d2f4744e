"""Conversation log: messages and file attachments inside a room.

Writes are gated by the room status, read under a row lock so a post
never lands after a concurrent rejection has committed:

* messages are refused only in ``rejected`` rooms, follow-up notes are
  still allowed once a room is ``completed``;
* files are refused in ``rejected`` and ``completed`` rooms.
"""
from __future__ import annotations

import logging
import os
from typing import List

from django.db import transaction

from workflow.exceptions import Forbidden, InvalidState, NotFound, Unavailable, translate_storage_errors
from workflow.models import Message, MessageRoom, RoomFile, RoomStatus
from workflow.services.audit import log_action
from workflow.services.identity import Caller

logger = logging.getLogger(__name__)

MESSAGE_BLOCKED = (RoomStatus.REJECTED,)
FILE_BLOCKED = (RoomStatus.REJECTED, RoomStatus.COMPLETED)


def _participant_room(caller: Caller, room_id: str, lock: bool = False) -> MessageRoom:
    qs = MessageRoom.objects.select_for_update() if lock else MessageRoom.objects
    room = qs.filter(id=room_id).first()
    if room is None:
        raise NotFound('room not found')
    if not caller.is_participant(room.hospital_id, room.facility_id):
        raise Forbidden()
    return room


@translate_storage_errors
def post_message(caller: Caller, room_id: str, text: str) -> Message:
    with transaction.atomic():
        room = _participant_room(caller, room_id, lock=True)
        if room.status in MESSAGE_BLOCKED:
            raise InvalidState('messages cannot be posted to a rejected room')
        msg = Message.objects.create(room=room, sender_id=caller.user_id, text=text)
    logger.debug('message %s posted to room %s by user %s', msg.id, room_id, caller.user_id)
    return msg


@translate_storage_errors
def post_file(caller: Caller, room_id: str, upload, file_type: str = '') -> RoomFile:
    """Store ``upload`` and record it in the room.

    The bytes are written by the model's storage before the record is
    saved; if anything in the transaction fails afterwards the stored
    bytes are removed again.
    """
    record = None
    try:
        with transaction.atomic():
            room = _participant_room(caller, room_id, lock=True)
            if room.status in FILE_BLOCKED:
                raise InvalidState('files cannot be added to a closed room')
            record = RoomFile(
                room=room,
                sender_id=caller.user_id,
                file_name=getattr(upload, 'name', '') or 'upload',
                file_type=file_type or os.path.splitext(getattr(upload, 'name', '') or '')[1].lstrip('.').lower(),
                file_size=getattr(upload, 'size', 0) or 0,
            )
            record.file.save(record.file_name, upload, save=False)
            record.save()
            log_action(user_id=caller.user_id, action='file_upload', object_type='room', object_id=room.id,
                       detail={'fileId': record.id, 'size': record.file_size})
    except Exception:
        if record is not None and record.file.name:
            logger.warning('removing stored bytes %s after failed upload to room %s', record.file.name, room_id)
            record.file.storage.delete(record.file.name)
        raise
    logger.info('file %s (%d bytes) added to room %s', record.id, record.file_size, room_id)
    return record


def _file_in_room(room_id: str, file_id: int) -> RoomFile:
    record = RoomFile.objects.filter(id=file_id, room_id=room_id).first()
    if record is None:
        raise NotFound('file not found')
    return record


@translate_storage_errors
def delete_file(caller: Caller, room_id: str, file_id: int) -> None:
    """Remove a file's bytes and its record; only the sender may do this.

    Bytes that are already gone are logged and skipped; any other
    storage failure aborts before the record is touched.
    """
    _participant_room(caller, room_id)
    record = _file_in_room(room_id, file_id)
    if record.sender_id != caller.user_id:
        raise Forbidden('only the sender can delete this file')

    name = record.file.name
    storage = record.file.storage
    try:
        if name and storage.exists(name):
            storage.delete(name)
        else:
            logger.info('stored bytes for file %s already absent (%s)', file_id, name)
    except OSError as exc:
        logger.error('failed to delete stored bytes for file %s: %s', file_id, exc)
        raise Unavailable('file storage unavailable') from exc

    RoomFile.objects.filter(id=record.id).delete()
    log_action(user_id=caller.user_id, action='file_delete', object_type='room', object_id=room_id,
               detail={'fileId': file_id})
    logger.info('file %s deleted from room %s by user %s', file_id, room_id, caller.user_id)


@translate_storage_errors
def open_file(caller: Caller, room_id: str, file_id: int):
    """Return ``(record, handle)`` for reading a file's bytes."""
    _participant_room(caller, room_id)
    record = _file_in_room(room_id, file_id)
    try:
        handle = record.file.storage.open(record.file.name, 'rb')
    except FileNotFoundError as exc:
        raise NotFound('file content is missing') from exc
    except OSError as exc:
        raise Unavailable('file storage unavailable') from exc
    return record, handle


def list_messages(room_id: str) -> List[Message]:
    return list(Message.objects.filter(room_id=room_id).select_related('sender').order_by('created_at', 'id'))


def list_files(room_id: str) -> List[RoomFile]:
    return list(RoomFile.objects.filter(room_id=room_id).select_related('sender').order_by('created_at', 'id'))
