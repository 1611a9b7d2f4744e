"""
Negotiation room endpoints.

Rooms are listed with a preview of the latest message and an unread
flag for the caller.  The detail endpoint returns the room together
with its messages and files in chronological order.  Facilities
accept or reject a room while it is negotiating; either side can then
mark its part complete and the room closes once both have done so.
"""
from __future__ import annotations

from django.http import FileResponse
from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsParticipantRole
from ..serializers.rooms import (
    FileUploadSerializer,
    MessagePostSerializer,
    file_payload,
    message_payload,
    room_payload,
)
from ..services import activity, conversation, rooms
from ..services.identity import caller_for_user


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def room_list(request):
    items = rooms.list_rooms(caller_for_user(request.user))
    return Response({'ok': True, 'items': [room_payload(r) for r in items], 'total': len(items)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def room_detail(request, room_id: str):
    room = rooms.get_room(caller_for_user(request.user), room_id)
    return Response({
        'ok': True,
        'room': room_payload(room),
        'messages': [message_payload(m) for m in conversation.list_messages(room.id)],
        'files': [file_payload(f) for f in conversation.list_files(room.id)],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def room_post_message(request, room_id: str):
    s = MessagePostSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    msg = conversation.post_message(caller_for_user(request.user), room_id, s.validated_data['text'])
    return Response({'ok': True, 'message': message_payload(msg)}, status=status.HTTP_201_CREATED)

room_post_message.cls.throttle_scope = 'room_write'


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsParticipantRole])
@parser_classes([MultiPartParser, FormParser])
def room_upload_file(request, room_id: str):
    s = FileUploadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    record = conversation.post_file(caller_for_user(request.user), room_id, s.validated_data['file'])
    return Response({'ok': True, 'file': file_payload(record)}, status=status.HTTP_201_CREATED)

room_upload_file.cls.throttle_scope = 'room_write'


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def room_file_detail(request, room_id: str, file_id: int):
    """Download a file (GET) or delete it (DELETE, sender only)."""
    caller = caller_for_user(request.user)
    if request.method == 'DELETE':
        conversation.delete_file(caller, room_id, file_id)
        return Response({'ok': True})
    record, handle = conversation.open_file(caller, room_id, file_id)
    return FileResponse(handle, as_attachment=True, filename=record.file_name)


def _transition(func):
    @api_view(['POST'])
    @permission_classes([IsAuthenticated, IsParticipantRole])
    def view(request, room_id: str):
        room = func(caller_for_user(request.user), room_id)
        return Response({'ok': True, 'room': room_payload(room)})
    view.cls.throttle_scope = 'room_write'
    return view


room_accept = _transition(rooms.accept_room)
room_reject = _transition(rooms.reject_room)
room_complete = _transition(rooms.mark_complete)
room_cancel_completion = _transition(rooms.cancel_completion)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def room_mark_read(request, room_id: str):
    activity.mark_room_read(caller_for_user(request.user), room_id)
    return Response({'ok': True})
