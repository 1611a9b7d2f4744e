"""
URL mappings for the placement workflow API.

Trailing slashes are omitted to match the paths used by the front-end
clients.  Room ids are opaque tokens, request and file ids are integers.
"""
from django.urls import path, include

from .auth_views import login_view, me_view, jwt_refresh_view, jwt_logout_view
from .views import health
from .views.facilities import facility_list, facility_me, facility_detail
from .views.requests import (
    requests_collection,
    requests_mark_all_read,
    request_detail,
    request_accept,
    request_reject,
    request_mark_read,
)
from .views.rooms import (
    room_list,
    room_detail,
    room_post_message,
    room_upload_file,
    room_file_detail,
    room_accept,
    room_reject,
    room_complete,
    room_cancel_completion,
    room_mark_read,
)
from .views.unread import unread_summary


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh_view'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout_view'),
    path('api/auth/me', me_view, name='me_view'),
    # Unread badges
    path('api/unread', unread_summary),
    # Facility directory
    path('api/facilities', facility_list),
    path('api/facilities/me', facility_me),
    path('api/facilities/<int:pk>', facility_detail),
    # Placement requests
    path('api/requests', requests_collection),
    path('api/requests/read-all', requests_mark_all_read),
    path('api/requests/<int:pk>', request_detail),
    path('api/requests/<int:pk>/accept', request_accept),
    path('api/requests/<int:pk>/reject', request_reject),
    path('api/requests/<int:pk>/read', request_mark_read),
    # Rooms
    path('api/rooms', room_list),
    path('api/rooms/<str:room_id>', room_detail),
    path('api/rooms/<str:room_id>/messages', room_post_message),
    path('api/rooms/<str:room_id>/files', room_upload_file),
    path('api/rooms/<str:room_id>/files/<int:file_id>', room_file_detail),
    path('api/rooms/<str:room_id>/accept', room_accept),
    path('api/rooms/<str:room_id>/reject', room_reject),
    path('api/rooms/<str:room_id>/complete', room_complete),
    path('api/rooms/<str:room_id>/cancel-completion', room_cancel_completion),
    path('api/rooms/<str:room_id>/read', room_mark_read),
]
