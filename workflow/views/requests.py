"""
Placement request endpoints.

Hospitals create, edit and cancel their own pending requests;
facilities accept or reject the requests addressed to them.  Accepting
a request opens its negotiation room and the response carries the new
room id.  Authorization and state checks live in
``workflow.services.placement_requests``; errors raised there are
rendered by the project exception handler.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsParticipantRole
from ..serializers.requests import (
    RequestCreateSerializer,
    RequestUpdateSerializer,
    patient_fields,
    request_payload,
)
from ..services import activity, placement_requests
from ..services.identity import caller_for_user


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def requests_collection(request):
    """List the caller's requests, or create one (hospital users)."""
    caller = caller_for_user(request.user)
    if request.method == 'GET':
        items = placement_requests.list_requests(caller)
        return Response({'ok': True, 'items': [request_payload(r) for r in items], 'total': len(items)})

    s = RequestCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = placement_requests.create_request(
        caller, s.validated_data['facilityId'], **patient_fields(s.validated_data)
    )
    return Response({'ok': True, 'request': request_payload(req)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def request_detail(request, pk: int):
    caller = caller_for_user(request.user)
    if request.method == 'GET':
        return Response({'ok': True, 'request': request_payload(placement_requests.get_request(caller, pk))})
    if request.method == 'PUT':
        s = RequestUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        req = placement_requests.update_request(caller, pk, **patient_fields(s.validated_data))
        return Response({'ok': True, 'request': request_payload(req)})
    placement_requests.cancel_request(caller, pk)
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def request_accept(request, pk: int):
    req, room = placement_requests.accept_request(caller_for_user(request.user), pk)
    return Response({'ok': True, 'request': request_payload(req), 'roomId': room.id})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def request_reject(request, pk: int):
    req = placement_requests.reject_request(caller_for_user(request.user), pk)
    return Response({'ok': True, 'request': request_payload(req)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def request_mark_read(request, pk: int):
    activity.mark_request_read(caller_for_user(request.user), pk)
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def requests_mark_all_read(request):
    count = activity.mark_all_requests_read(caller_for_user(request.user))
    return Response({'ok': True, 'count': count})
