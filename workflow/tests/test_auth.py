import pytest
from django.core.management import call_command
from django.urls import reverse
from rest_framework.test import APIClient
from rest_framework.throttling import ScopedRateThrottle

from workflow.models import AuditEvent, Facility, Hospital, User

pytestmark = pytest.mark.django_db


def login(client, username, password):
    return client.post(reverse('login_view'), {'username': username, 'password': password}, format='json')


def test_no_role_bypass_in_login(hospital):
    client = APIClient()
    r = client.post(reverse('login_view'), {'username': 'hosp1', 'password': 'P@ssw0rd1', 'role': 'admin'}, format='json')
    assert r.status_code == 200
    hospital.user.refresh_from_db()
    assert hospital.user.role == User.ROLE_HOSPITAL
    assert r.data['role'] == User.ROLE_HOSPITAL


def test_login_returns_jwt_legacy_token_and_entity(hospital):
    r = login(APIClient(), 'hosp1', 'P@ssw0rd1')
    assert r.status_code == 200
    assert r.data['jwt_access'] and r.data['jwt_refresh'] and r.data['token']
    assert r.data['user']['entity'] == {'type': 'hospital', 'id': hospital.id, 'name': hospital.name}


def test_bad_password_is_audited(hospital):
    r = login(APIClient(), 'hosp1', 'wrong')
    assert r.status_code == 401
    assert r.data['ok'] is False
    assert AuditEvent.objects.filter(action='login', detail__result='fail').exists()


def test_token_and_jwt_both_authenticate(facility):
    client = APIClient()
    data = login(client, 'fac1', 'P@ssw0rd1').data

    client.credentials(HTTP_AUTHORIZATION=f"Token {data['token']}")
    assert client.get(reverse('me_view')).data['user']['entity']['id'] == facility.id

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['jwt_access']}")
    assert client.get(reverse('me_view')).data['user']['role'] == User.ROLE_FACILITY


def test_anonymous_requests_are_refused():
    r = APIClient().get('/api/rooms')
    assert r.status_code in (401, 403)
    assert r.data['ok'] is False
    assert r.data['error']['code'] == 'unauthenticated'


def test_refresh_and_logout_blacklists(hospital):
    client = APIClient()
    data = login(client, 'hosp1', 'P@ssw0rd1').data

    r = client.post(reverse('jwt_refresh_view'), {'refresh': data['jwt_refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['jwt_access']

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['jwt_access']}")
    r = client.post(reverse('jwt_logout_view'), {}, format='json')
    assert r.status_code == 200
    assert r.data['ok'] is True

    r = client.post(reverse('jwt_logout_view'), {'refresh': 'garbage'}, format='json')
    assert r.status_code == 400


def test_login_is_throttled(monkeypatch, hospital):
    monkeypatch.setattr(ScopedRateThrottle, 'THROTTLE_RATES', {**ScopedRateThrottle.THROTTLE_RATES, 'login': '2/min'})
    client = APIClient()
    responses = [login(client, 'hosp1', 'wrong') for _ in range(3)]
    assert responses[-1].status_code == 429
    assert responses[-1].data['error']['code'] == 'throttled'


def test_ensure_demo_accounts_is_idempotent():
    call_command('ensure_demo_accounts')
    call_command('ensure_demo_accounts')
    assert Hospital.objects.filter(user__username='hospital1').count() == 1
    assert Facility.objects.filter(user__username='facility1').count() == 1
    assert User.objects.get(username='admin1').role == User.ROLE_ADMIN
    assert login(APIClient(), 'facility1', 'demo-pass-123').status_code == 200
