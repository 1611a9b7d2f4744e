"""
Facility directory endpoints.

Hospitals list and inspect facilities to choose where to send a
placement request.  A facility reads and edits its own profile.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsParticipantRole
from ..serializers.facilities import FacilityUpdateSerializer, facility_fields, facility_payload
from ..services import facilities
from ..services.identity import caller_for_user

TRUTHY = {'1', 'true', 'yes', 'on'}


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def facility_list(request):
    """Hospital users: list facilities, filtered by ``name`` and ``hasAvailableBeds``."""
    items = facilities.list_facilities(
        caller_for_user(request.user),
        name=(request.query_params.get('name') or '').strip() or None,
        has_available_beds=(request.query_params.get('hasAvailableBeds') or '').lower() in TRUTHY,
    )
    return Response({'ok': True, 'items': [facility_payload(f) for f in items], 'total': len(items)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def facility_me(request):
    facility = facilities.get_own_facility(caller_for_user(request.user))
    return Response({'ok': True, 'facility': facility_payload(facility)})


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsParticipantRole])
def facility_detail(request, pk: int):
    caller = caller_for_user(request.user)
    if request.method == 'GET':
        return Response({'ok': True, 'facility': facility_payload(facilities.get_facility(caller, pk))})
    s = FacilityUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    facility = facilities.update_facility(caller, pk, **facility_fields(s.validated_data))
    return Response({'ok': True, 'facility': facility_payload(facility)})
