import threading
from unittest import mock

import pytest
from django.db import OperationalError, connection
from django.db.models import QuerySet

from workflow.exceptions import Conflict, Forbidden, InvalidState, NotFound, Unavailable
from workflow.models import AuditEvent, MessageRoom, PlacementRequest, RequestStatus, RoomStatus
from workflow.services import placement_requests
from workflow.services.identity import caller_for_user, resolve_caller

PATIENT = {'patient_age': 70, 'patient_gender': 'F', 'medical_condition': 'dementia'}

pytestmark = pytest.mark.django_db


def test_create_request_starts_pending(h_caller, facility, hospital):
    req = placement_requests.create_request(h_caller, facility.id, **PATIENT)
    assert req.status == RequestStatus.PENDING
    assert req.hospital_id == hospital.id
    assert req.facility_id == facility.id
    assert (req.patient_age, req.patient_gender, req.medical_condition) == (70, 'F', 'dementia')
    assert not MessageRoom.objects.filter(request_id=req.id).exists()


def test_create_request_unknown_facility(h_caller):
    with pytest.raises(NotFound):
        placement_requests.create_request(h_caller, 999999, **PATIENT)


def test_create_request_requires_hospital_role(f_caller, facility):
    with pytest.raises(Forbidden):
        placement_requests.create_request(f_caller, facility.id, **PATIENT)


def test_hospital_user_without_hospital_is_forbidden(db, facility):
    from workflow.models import User
    orphan = User.objects.create_user(username='orphan', password='x', role=User.ROLE_HOSPITAL)
    with pytest.raises(Forbidden):
        placement_requests.create_request(resolve_caller(orphan.id, orphan.role), facility.id, **PATIENT)


def test_update_request_while_pending(h_caller, pending_request):
    req = placement_requests.update_request(h_caller, pending_request.id, patient_age=71, medical_condition='stroke')
    assert req.patient_age == 71
    assert req.medical_condition == 'stroke'
    assert req.patient_gender == 'F'


def test_update_request_by_other_hospital_forbidden(other_hospital, pending_request):
    with pytest.raises(Forbidden):
        placement_requests.update_request(caller_for_user(other_hospital.user), pending_request.id, patient_age=50)


def test_update_request_after_decision_invalid(h_caller, f_caller, pending_request):
    placement_requests.reject_request(f_caller, pending_request.id)
    with pytest.raises(InvalidState):
        placement_requests.update_request(h_caller, pending_request.id, patient_age=50)


def test_cancel_request_deletes_pending(h_caller, pending_request):
    placement_requests.cancel_request(h_caller, pending_request.id)
    assert not PlacementRequest.objects.filter(id=pending_request.id).exists()


def test_cancel_request_after_accept_invalid(h_caller, room, pending_request):
    with pytest.raises(InvalidState):
        placement_requests.cancel_request(h_caller, pending_request.id)
    assert PlacementRequest.objects.filter(id=pending_request.id).exists()


def test_cancel_missing_request(h_caller):
    with pytest.raises(NotFound):
        placement_requests.cancel_request(h_caller, 424242)


def test_accept_request_opens_negotiating_room(f_caller, pending_request):
    req, room = placement_requests.accept_request(f_caller, pending_request.id)
    assert req.status == RequestStatus.ACCEPTED
    assert room.status == RoomStatus.NEGOTIATING
    assert room.request_id == req.id
    assert room.hospital_id == req.hospital_id
    assert room.facility_id == req.facility_id
    assert not room.hospital_completed and not room.facility_completed


def test_repeated_accept_keeps_single_room(f_caller, pending_request):
    rooms = {placement_requests.accept_request(f_caller, pending_request.id)[1].id for _ in range(3)}
    assert len(rooms) == 1
    assert MessageRoom.objects.filter(request_id=pending_request.id).count() == 1


def test_accept_by_other_facility_forbidden(other_facility, pending_request):
    with pytest.raises(Forbidden):
        placement_requests.accept_request(caller_for_user(other_facility.user), pending_request.id)
    pending_request.refresh_from_db()
    assert pending_request.status == RequestStatus.PENDING


def test_hospital_cannot_accept(h_caller, pending_request):
    with pytest.raises(Forbidden):
        placement_requests.accept_request(h_caller, pending_request.id)


def test_reject_request(f_caller, pending_request):
    req = placement_requests.reject_request(f_caller, pending_request.id)
    assert req.status == RequestStatus.REJECTED
    assert not MessageRoom.objects.filter(request_id=req.id).exists()


@pytest.mark.parametrize('first', ['accept', 'reject'])
def test_decided_request_is_terminal(f_caller, pending_request, first):
    getattr(placement_requests, f'{first}_request')(f_caller, pending_request.id)
    with pytest.raises(InvalidState):
        placement_requests.reject_request(f_caller, pending_request.id)


def test_accept_after_reject_invalid(f_caller, pending_request):
    placement_requests.reject_request(f_caller, pending_request.id)
    with pytest.raises(InvalidState):
        placement_requests.accept_request(f_caller, pending_request.id)


def test_get_request_participants_only(h_caller, f_caller, other_hospital, pending_request):
    assert placement_requests.get_request(h_caller, pending_request.id).id == pending_request.id
    assert placement_requests.get_request(f_caller, pending_request.id).id == pending_request.id
    with pytest.raises(Forbidden):
        placement_requests.get_request(caller_for_user(other_hospital.user), pending_request.id)
    with pytest.raises(NotFound):
        placement_requests.get_request(h_caller, 31337)


def test_list_newest_first(h_caller, f_caller, facility, other_facility, hospital):
    first = placement_requests.create_request(h_caller, facility.id, **PATIENT)
    second = placement_requests.create_request(h_caller, other_facility.id, **PATIENT)
    third = placement_requests.create_request(h_caller, facility.id, **PATIENT)

    assert [r.id for r in placement_requests.list_for_hospital(hospital.id)] == [third.id, second.id, first.id]
    assert [r.id for r in placement_requests.list_requests(f_caller)] == [third.id, first.id]


def test_admin_has_no_request_list(admin_user):
    with pytest.raises(Forbidden):
        placement_requests.list_requests(caller_for_user(admin_user))


def test_transitions_are_audited(h_caller, f_caller, pending_request):
    placement_requests.accept_request(f_caller, pending_request.id)
    actions = list(
        AuditEvent.objects.filter(object_type='request', object_id=str(pending_request.id))
        .order_by('id').values_list('action', flat=True)
    )
    assert actions == ['request_create', 'request_accept']


@pytest.mark.django_db(transaction=True)
def test_concurrent_accepts_open_one_room(f_caller, pending_request):
    workers = 4
    barrier = threading.Barrier(workers)
    results = []

    def accept():
        barrier.wait()
        try:
            _, room = placement_requests.accept_request(f_caller, pending_request.id)
            results.append(('ok', room.id))
        except Conflict:
            results.append(('conflict', None))
        except Unavailable:
            results.append(('unavailable', None))
        finally:
            connection.close()

    threads = [threading.Thread(target=accept) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == workers
    assert all(outcome in ('ok', 'conflict') for outcome, _ in results)
    room_ids = {room_id for outcome, room_id in results if outcome == 'ok'}
    assert len(room_ids) == 1
    assert MessageRoom.objects.filter(request_id=pending_request.id).count() == 1
    pending_request.refresh_from_db()
    assert pending_request.status == RequestStatus.ACCEPTED


def test_lost_update_race_is_conflict(f_caller, pending_request, monkeypatch):
    monkeypatch.setattr(QuerySet, 'update', lambda self, **kwargs: 0)
    with pytest.raises(Conflict):
        placement_requests.reject_request(f_caller, pending_request.id)


def test_lock_contention_is_conflict(f_caller, pending_request):
    with mock.patch.object(PlacementRequest.objects, 'select_for_update',
                           side_effect=OperationalError('database is locked')):
        with pytest.raises(Conflict):
            placement_requests.accept_request(f_caller, pending_request.id)


def test_store_outage_is_unavailable_not_not_found(h_caller, pending_request):
    with mock.patch.object(PlacementRequest.objects, 'select_related',
                           side_effect=OperationalError('server closed the connection unexpectedly')):
        with pytest.raises(Unavailable):
            placement_requests.get_request(h_caller, pending_request.id)
