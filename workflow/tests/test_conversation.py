from datetime import timedelta

import pytest
from django.core.files.storage import FileSystemStorage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.utils import timezone

from workflow.exceptions import Forbidden, InvalidState, NotFound, Unavailable
from workflow.models import Message, RoomFile
from workflow.services import conversation, rooms
from workflow.services.identity import caller_for_user

pytestmark = pytest.mark.django_db


def _upload(name='referral.pdf', content=b'%PDF-1.4 test', ctype='application/pdf'):
    return SimpleUploadedFile(name, content, content_type=ctype)


def _to_status(room, status, h_caller, f_caller):
    if status == 'rejected':
        rooms.reject_room(f_caller, room.id)
    elif status in ('accepted', 'completed'):
        rooms.accept_room(f_caller, room.id)
        if status == 'completed':
            rooms.mark_complete(h_caller, room.id)
            rooms.mark_complete(f_caller, room.id)


@pytest.mark.parametrize('status', ['negotiating', 'accepted', 'completed'])
def test_messages_allowed_unless_rejected(room, h_caller, f_caller, status):
    _to_status(room, status, h_caller, f_caller)
    msg = conversation.post_message(h_caller, room.id, 'follow-up')
    assert msg.sender_id == h_caller.user_id
    assert msg.text == 'follow-up'


def test_message_to_rejected_room_invalid(room, h_caller, f_caller):
    _to_status(room, 'rejected', h_caller, f_caller)
    with pytest.raises(InvalidState):
        conversation.post_message(h_caller, room.id, 'hi')
    assert not Message.objects.filter(room_id=room.id).exists()


def test_message_from_outsider_forbidden(room, other_facility):
    with pytest.raises(Forbidden):
        conversation.post_message(caller_for_user(other_facility.user), room.id, 'hi')


def test_message_to_missing_room(h_caller):
    with pytest.raises(NotFound):
        conversation.post_message(h_caller, 'missing', 'hi')


def test_messages_listed_oldest_first(room, h_caller, f_caller):
    first = conversation.post_message(h_caller, room.id, 'one')
    second = conversation.post_message(f_caller, room.id, 'two')
    Message.objects.filter(id=first.id).update(created_at=timezone.now() - timedelta(minutes=5))
    assert [m.id for m in conversation.list_messages(room.id)] == [first.id, second.id]


@pytest.mark.parametrize('status', ['negotiating', 'accepted'])
def test_files_allowed_while_open(room, h_caller, f_caller, media_root, status):
    _to_status(room, status, h_caller, f_caller)
    record = conversation.post_file(f_caller, room.id, _upload())
    assert record.file_name == 'referral.pdf'
    assert record.file_type == 'pdf'
    assert record.file_size == len(b'%PDF-1.4 test')
    assert (media_root / record.file.name).exists()


@pytest.mark.parametrize('status', ['rejected', 'completed'])
def test_files_refused_once_closed(room, h_caller, f_caller, media_root, status):
    _to_status(room, status, h_caller, f_caller)
    with pytest.raises(InvalidState):
        conversation.post_file(h_caller, room.id, _upload())
    assert not RoomFile.objects.filter(room_id=room.id).exists()


def test_failed_insert_removes_stored_bytes(room, h_caller, media_root, monkeypatch):
    def fail_save(self, *args, **kwargs):
        raise DatabaseError('insert failed')

    monkeypatch.setattr(RoomFile, 'save', fail_save)
    with pytest.raises(DatabaseError):
        conversation.post_file(h_caller, room.id, _upload())
    assert [p for p in media_root.rglob('*') if p.is_file()] == []


def test_failed_audit_after_insert_removes_stored_bytes(room, h_caller, media_root, monkeypatch):
    def fail_log(**kwargs):
        raise RuntimeError('audit write failed')

    monkeypatch.setattr(conversation, 'log_action', fail_log)
    with pytest.raises(RuntimeError):
        conversation.post_file(h_caller, room.id, _upload())
    assert not RoomFile.objects.filter(room_id=room.id).exists()
    assert [p for p in media_root.rglob('*') if p.is_file()] == []


def test_files_listed_oldest_first(room, h_caller, f_caller, media_root):
    a = conversation.post_file(h_caller, room.id, _upload('a.pdf'))
    b = conversation.post_file(f_caller, room.id, _upload('b.png', b'\x89PNG', 'image/png'))
    RoomFile.objects.filter(id=b.id).update(created_at=timezone.now() + timedelta(minutes=1))
    assert [f.id for f in conversation.list_files(room.id)] == [a.id, b.id]


def test_delete_file_by_sender(room, h_caller, media_root):
    record = conversation.post_file(h_caller, room.id, _upload())
    path = media_root / record.file.name
    conversation.delete_file(h_caller, room.id, record.id)
    assert not path.exists()
    assert not RoomFile.objects.filter(id=record.id).exists()


def test_delete_file_by_other_participant_forbidden(room, h_caller, f_caller, media_root):
    record = conversation.post_file(h_caller, room.id, _upload())
    with pytest.raises(Forbidden):
        conversation.delete_file(f_caller, room.id, record.id)
    assert RoomFile.objects.filter(id=record.id).exists()


def test_delete_file_with_missing_bytes_still_removes_record(room, h_caller, media_root):
    record = conversation.post_file(h_caller, room.id, _upload())
    (media_root / record.file.name).unlink()
    conversation.delete_file(h_caller, room.id, record.id)
    assert not RoomFile.objects.filter(id=record.id).exists()


def test_delete_file_storage_failure_keeps_record(room, h_caller, media_root, monkeypatch):
    record = conversation.post_file(h_caller, room.id, _upload())

    def broken_delete(self, name):
        raise PermissionError('read-only volume')

    monkeypatch.setattr(FileSystemStorage, 'delete', broken_delete)
    with pytest.raises(Unavailable):
        conversation.delete_file(h_caller, room.id, record.id)
    assert RoomFile.objects.filter(id=record.id).exists()


def test_delete_unknown_file(room, h_caller):
    with pytest.raises(NotFound):
        conversation.delete_file(h_caller, room.id, 99999)


def test_open_file_returns_bytes(room, h_caller, f_caller, media_root):
    record = conversation.post_file(h_caller, room.id, _upload(content=b'hello bytes', ctype='text/plain'))
    found, handle = conversation.open_file(f_caller, room.id, record.id)
    with handle:
        assert handle.read() == b'hello bytes'
    assert found.id == record.id


def test_open_file_with_missing_bytes(room, h_caller, media_root):
    record = conversation.post_file(h_caller, room.id, _upload())
    (media_root / record.file.name).unlink()
    with pytest.raises(NotFound):
        conversation.open_file(h_caller, room.id, record.id)
