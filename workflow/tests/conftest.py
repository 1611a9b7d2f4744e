import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from workflow.models import Facility, Hospital, User
from workflow.services import placement_requests
from workflow.services.identity import caller_for_user

PATIENT = {'patient_age': 70, 'patient_gender': 'F', 'medical_condition': 'dementia'}


@pytest.fixture(autouse=True)
def _clear_throttle_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def media_root(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path
    return tmp_path


@pytest.fixture
def hospital(db):
    user = User.objects.create_user(username='hosp1', password='P@ssw0rd1', role=User.ROLE_HOSPITAL)
    return Hospital.objects.create(user=user, name='Central General')


@pytest.fixture
def other_hospital(db):
    user = User.objects.create_user(username='hosp2', password='P@ssw0rd1', role=User.ROLE_HOSPITAL)
    return Hospital.objects.create(user=user, name='Riverside Hospital')


@pytest.fixture
def facility(db):
    user = User.objects.create_user(username='fac1', password='P@ssw0rd1', role=User.ROLE_FACILITY)
    return Facility.objects.create(user=user, name='Green Hill', bed_capacity=40, available_beds=3)


@pytest.fixture
def other_facility(db):
    user = User.objects.create_user(username='fac2', password='P@ssw0rd1', role=User.ROLE_FACILITY)
    return Facility.objects.create(user=user, name='Lakeside Care')


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(username='admin1', password='P@ssw0rd1', role=User.ROLE_ADMIN)


@pytest.fixture
def h_caller(hospital):
    return caller_for_user(hospital.user)


@pytest.fixture
def f_caller(facility):
    return caller_for_user(facility.user)


@pytest.fixture
def pending_request(h_caller, facility):
    return placement_requests.create_request(h_caller, facility.id, **PATIENT)


@pytest.fixture
def room(pending_request, f_caller):
    _, room = placement_requests.accept_request(f_caller, pending_request.id)
    return room


@pytest.fixture
def api_client():
    return APIClient()


def client_for(user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def hospital_client(hospital):
    return client_for(hospital.user)


@pytest.fixture
def facility_client(facility):
    return client_for(facility.user)
