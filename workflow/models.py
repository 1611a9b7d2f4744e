"""
Database models for the placement negotiation backend.

These models capture the concepts of the negotiation workflow: the
hospital and facility accounts, placement requests, the message room
opened once a facility accepts a request, the messages and files
exchanged inside a room and the read watermarks used to derive unread
activity.  Status fields are closed enumerations so that the services
layer can check transitions exhaustively.
"""
from __future__ import annotations

import datetime
import os
import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Custom user model carrying the caller role.

    A hospital user owns exactly one :class:`Hospital`, a facility user
    owns exactly one :class:`Facility`.  Administrators own neither and
    therefore never take part in a negotiation.
    """
    ROLE_HOSPITAL = 'hospital'
    ROLE_FACILITY = 'facility'
    ROLE_ADMIN = 'admin'
    ROLE_CHOICES = [
        (ROLE_HOSPITAL, 'Hospital'),
        (ROLE_FACILITY, 'Facility'),
        (ROLE_ADMIN, 'Administrator'),
    ]
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_HOSPITAL)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Hospital(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='hospital')
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} (#{self.id})"


class Facility(models.Model):
    """A care facility offering beds to hospitals."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='facility')
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    bed_capacity = models.PositiveIntegerField(default=0)
    available_beds = models.PositiveIntegerField(default=0)
    acceptance_conditions = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'facilities'

    def __str__(self) -> str:
        return f"{self.name} (#{self.id})"


class RequestStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'


class PlacementRequest(models.Model):
    """A hospital's ask to place a patient at a facility.

    The request starts ``pending`` and moves exactly once, to either
    ``accepted`` or ``rejected``.  Accepting it opens the single
    :class:`MessageRoom` attached to it.
    """
    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name='placement_requests')
    facility = models.ForeignKey(Facility, on_delete=models.CASCADE, related_name='placement_requests')
    patient_age = models.PositiveIntegerField()
    patient_gender = models.CharField(max_length=16)
    medical_condition = models.TextField()
    status = models.CharField(
        max_length=16, choices=RequestStatus.choices, default=RequestStatus.PENDING, db_index=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['hospital', 'created_at'], name='request_hospital_created_idx'),
            models.Index(fields=['facility', 'status'], name='request_facility_status_idx'),
        ]

    def __str__(self) -> str:
        return f"request #{self.id} h={self.hospital_id} f={self.facility_id} ({self.status})"


class RoomStatus(models.TextChoices):
    NEGOTIATING = 'negotiating', 'Negotiating'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'
    COMPLETED = 'completed', 'Completed'


def _room_token() -> str:
    return uuid.uuid4().hex


class MessageRoom(models.Model):
    """The bilateral workspace opened for one accepted request.

    The one-to-one link to the request makes a second room for the same
    request impossible at the database level.
    """
    id = models.CharField(max_length=32, primary_key=True, default=_room_token, editable=False)
    request = models.OneToOneField(PlacementRequest, on_delete=models.CASCADE, related_name='room')
    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name='rooms')
    facility = models.ForeignKey(Facility, on_delete=models.CASCADE, related_name='rooms')
    status = models.CharField(
        max_length=16, choices=RoomStatus.choices, default=RoomStatus.NEGOTIATING, db_index=True
    )
    hospital_completed = models.BooleanField(default=False)
    facility_completed = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"room {self.id} request={self.request_id} ({self.status})"


class Message(models.Model):
    room = models.ForeignKey(MessageRoom, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(User, on_delete=models.CASCADE, related_name='room_messages')
    text = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['room', 'created_at'], name='message_room_created_idx')]

    def __str__(self) -> str:
        return f"msg {self.id} room={self.room_id}"


def _room_file_upload(instance, filename: str) -> str:
    ext = os.path.splitext(filename)[1]
    return f"rooms/{datetime.date.today().strftime('%Y/%m')}/{uuid.uuid4().hex}{ext}"


class RoomFile(models.Model):
    """A document attached to a room.  ``file.name`` is the storage path."""
    room = models.ForeignKey(MessageRoom, on_delete=models.CASCADE, related_name='files')
    sender = models.ForeignKey(User, on_delete=models.CASCADE, related_name='room_files')
    file = models.FileField(upload_to=_room_file_upload, max_length=512)
    file_name = models.CharField(max_length=255)
    file_type = models.CharField(max_length=32, blank=True)
    file_size = models.PositiveBigIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['room', 'created_at'], name='roomfile_room_created_idx')]

    def __str__(self) -> str:
        return f"file {self.id} room={self.room_id} ({self.file_name})"


class RoomReadStatus(models.Model):
    """Read watermark of one user inside one room."""
    room = models.ForeignKey(MessageRoom, on_delete=models.CASCADE, related_name='read_statuses')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='room_read_statuses')
    last_read_at = models.DateTimeField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['room', 'user'], name='unique_room_read_status'),
        ]

    def __str__(self) -> str:
        return f"read room={self.room_id} user={self.user_id} @ {self.last_read_at:%F %T}"


class RequestReadStatus(models.Model):
    """Read watermark of one user for one placement request."""
    request = models.ForeignKey(PlacementRequest, on_delete=models.CASCADE, related_name='read_statuses')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='request_read_statuses')
    last_read_at = models.DateTimeField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['request', 'user'], name='unique_request_read_status'),
        ]

    def __str__(self) -> str:
        return f"read request={self.request_id} user={self.user_id} @ {self.last_read_at:%F %T}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.object_type}:{self.object_id}@{self.created_at:%F %T}"
