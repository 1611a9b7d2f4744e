"""
Django admin registrations for the workflow models.

Superusers can inspect requests, rooms and their conversation via the
``/admin/`` URL.  Status changes should go through the API so that the
transition rules and audit trail apply; room status fields are
therefore read-only here.
"""

from django.contrib import admin

from .models import (
    AuditEvent,
    Facility,
    Hospital,
    Message,
    MessageRoom,
    PlacementRequest,
    RequestReadStatus,
    RoomFile,
    RoomReadStatus,
    User,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'is_staff', 'is_superuser')
    list_filter = ('role',)
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'user', 'phone', 'created_at')
    search_fields = ('name', 'user__username')


@admin.register(Facility)
class FacilityAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'user', 'bed_capacity', 'available_beds')
    search_fields = ('name', 'user__username', 'address')


@admin.register(PlacementRequest)
class PlacementRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'hospital', 'facility', 'patient_age', 'patient_gender', 'status', 'created_at')
    list_filter = ('status',)
    search_fields = ('id', 'hospital__name', 'facility__name')


class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    readonly_fields = ('sender', 'text', 'created_at')


@admin.register(MessageRoom)
class MessageRoomAdmin(admin.ModelAdmin):
    list_display = ('id', 'request', 'hospital', 'facility', 'status', 'hospital_completed', 'facility_completed')
    list_filter = ('status',)
    search_fields = ('id', 'hospital__name', 'facility__name')
    readonly_fields = ('status', 'hospital_completed', 'facility_completed')
    inlines = [MessageInline]


@admin.register(RoomFile)
class RoomFileAdmin(admin.ModelAdmin):
    list_display = ('id', 'room', 'sender', 'file_name', 'file_type', 'file_size', 'created_at')
    search_fields = ('file_name', 'room__id')


@admin.register(RoomReadStatus)
class RoomReadStatusAdmin(admin.ModelAdmin):
    list_display = ('room', 'user', 'last_read_at')


@admin.register(RequestReadStatus)
class RequestReadStatusAdmin(admin.ModelAdmin):
    list_display = ('request', 'user', 'last_read_at')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'action', 'object_type', 'object_id', 'created_at')
    list_filter = ('action', 'object_type')
    search_fields = ('object_id', 'user__username')
