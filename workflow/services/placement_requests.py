"""Request ledger: placement requests and their single status transition.

A request is created ``pending`` by a hospital and decided once by the
target facility.  Acceptance and the creation of the negotiation room
happen in one transaction so a request is never visible as accepted
without its room.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from django.db import IntegrityError, transaction
from django.utils import timezone

from workflow.exceptions import Conflict, Forbidden, InvalidState, NotFound, translate_storage_errors
from workflow.models import Facility, MessageRoom, PlacementRequest, RequestStatus, User
from workflow.services.audit import log_action
from workflow.services.identity import Caller, require_facility, require_hospital

logger = logging.getLogger(__name__)

PATIENT_FIELDS = ('patient_age', 'patient_gender', 'medical_condition')


def _can_transition(current: str, new: str) -> bool:
    """Return True if a request may move from ``current`` to ``new``."""
    transitions = {
        RequestStatus.PENDING: [RequestStatus.ACCEPTED, RequestStatus.REJECTED],
        RequestStatus.ACCEPTED: [],
        RequestStatus.REJECTED: [],
    }
    return new in transitions.get(current, [])


def _base_queryset():
    return PlacementRequest.objects.select_related('hospital', 'facility', 'room')


def _locked(request_id: int) -> PlacementRequest:
    req = PlacementRequest.objects.select_for_update().filter(id=request_id).first()
    if req is None:
        raise NotFound('request not found')
    return req


def _patient_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if k in PATIENT_FIELDS}


@translate_storage_errors
def create_request(caller: Caller, facility_id: int, **patient) -> PlacementRequest:
    hospital_id = require_hospital(caller)
    if not Facility.objects.filter(id=facility_id).exists():
        raise NotFound('facility not found')
    req = PlacementRequest.objects.create(
        hospital_id=hospital_id,
        facility_id=facility_id,
        status=RequestStatus.PENDING,
        **_patient_fields(patient),
    )
    log_action(user_id=caller.user_id, action='request_create', object_type='request', object_id=req.id,
               detail={'facilityId': facility_id})
    logger.info('request %s created by hospital %s for facility %s', req.id, hospital_id, facility_id)
    return _base_queryset().get(id=req.id)


@translate_storage_errors
def get_request(caller: Caller, request_id: int) -> PlacementRequest:
    req = _base_queryset().filter(id=request_id).first()
    if req is None:
        raise NotFound('request not found')
    if not caller.is_participant(req.hospital_id, req.facility_id):
        raise Forbidden()
    return req


@translate_storage_errors
def update_request(caller: Caller, request_id: int, **patient) -> PlacementRequest:
    """Edit the patient fields of a request that is still pending."""
    hospital_id = require_hospital(caller)
    changes = _patient_fields(patient)
    with transaction.atomic():
        req = _locked(request_id)
        if req.hospital_id != hospital_id:
            raise Forbidden()
        if req.status != RequestStatus.PENDING:
            raise InvalidState('only pending requests can be updated')
        if changes:
            updated = PlacementRequest.objects.filter(id=req.id, status=RequestStatus.PENDING).update(
                updated_at=timezone.now(), **changes
            )
            if updated != 1:
                raise Conflict()
            log_action(user_id=caller.user_id, action='request_update', object_type='request', object_id=req.id,
                       detail={'fields': sorted(changes)})
    return _base_queryset().get(id=request_id)


@translate_storage_errors
def cancel_request(caller: Caller, request_id: int) -> None:
    hospital_id = require_hospital(caller)
    with transaction.atomic():
        req = _locked(request_id)
        if req.hospital_id != hospital_id:
            raise Forbidden()
        if req.status != RequestStatus.PENDING:
            raise InvalidState('only pending requests can be cancelled')
        deleted, _ = PlacementRequest.objects.filter(id=req.id, status=RequestStatus.PENDING).delete()
        if not deleted:
            raise Conflict()
        log_action(user_id=caller.user_id, action='request_cancel', object_type='request', object_id=request_id)
    logger.info('request %s cancelled by hospital %s', request_id, hospital_id)


@translate_storage_errors
def accept_request(caller: Caller, request_id: int) -> Tuple[PlacementRequest, MessageRoom]:
    """Accept a pending request and open its negotiation room.

    Accepting a request that is already accepted returns the existing
    room, so a retried call never creates a second one.
    """
    facility_id = require_facility(caller)
    with transaction.atomic():
        req = _locked(request_id)
        if req.facility_id != facility_id:
            raise Forbidden()
        if req.status == RequestStatus.ACCEPTED:
            room = MessageRoom.objects.filter(request_id=req.id).first()
            if room is None:
                raise Conflict()
            return _base_queryset().get(id=req.id), room
        if not _can_transition(req.status, RequestStatus.ACCEPTED):
            raise InvalidState('request is not pending')
        updated = PlacementRequest.objects.filter(id=req.id, status=RequestStatus.PENDING).update(
            status=RequestStatus.ACCEPTED, updated_at=timezone.now()
        )
        if updated != 1:
            raise Conflict()
        try:
            with transaction.atomic():
                room = MessageRoom.objects.create(
                    request_id=req.id, hospital_id=req.hospital_id, facility_id=req.facility_id
                )
        except IntegrityError as exc:
            raise Conflict('a room already exists for this request') from exc
        log_action(user_id=caller.user_id, action='request_accept', object_type='request', object_id=req.id,
                   detail={'roomId': room.id})
    logger.info('request %s accepted by facility %s, room %s opened', request_id, facility_id, room.id)
    return _base_queryset().get(id=request_id), room


@translate_storage_errors
def reject_request(caller: Caller, request_id: int) -> PlacementRequest:
    facility_id = require_facility(caller)
    with transaction.atomic():
        req = _locked(request_id)
        if req.facility_id != facility_id:
            raise Forbidden()
        if not _can_transition(req.status, RequestStatus.REJECTED):
            raise InvalidState('request is not pending')
        updated = PlacementRequest.objects.filter(id=req.id, status=RequestStatus.PENDING).update(
            status=RequestStatus.REJECTED, updated_at=timezone.now()
        )
        if updated != 1:
            raise Conflict()
        log_action(user_id=caller.user_id, action='request_reject', object_type='request', object_id=req.id)
    logger.info('request %s rejected by facility %s', request_id, facility_id)
    return _base_queryset().get(id=request_id)


def list_for_hospital(hospital_id: int) -> List[PlacementRequest]:
    return list(_base_queryset().filter(hospital_id=hospital_id).order_by('-created_at', '-id'))


def list_for_facility(facility_id: int) -> List[PlacementRequest]:
    return list(_base_queryset().filter(facility_id=facility_id).order_by('-created_at', '-id'))


@translate_storage_errors
def list_requests(caller: Caller) -> List[PlacementRequest]:
    """List the requests of the caller's own hospital or facility."""
    if caller.role == User.ROLE_HOSPITAL:
        return list_for_hospital(require_hospital(caller))
    if caller.role == User.ROLE_FACILITY:
        return list_for_facility(require_facility(caller))
    raise Forbidden('only hospital and facility users have requests')
