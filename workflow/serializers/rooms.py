import os

import bleach
from django.conf import settings
from rest_framework import serializers


class MessagePostSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=4000, trim_whitespace=True)

    def validate_text(self, v):
        v = bleach.clean((v or '').strip(), tags=set(), strip=True)
        if not v:
            raise serializers.ValidationError('message cannot be empty')
        return v


class FileUploadSerializer(serializers.Serializer):
    file = serializers.FileField(allow_empty_file=False)

    def validate_file(self, f):
        size_mb = (f.size or 0) / (1024 * 1024)
        if size_mb > settings.UPLOAD_MAX_MB:
            raise serializers.ValidationError('file too large')
        ctype = getattr(f, 'content_type', '') or ''
        if not any(ctype.startswith(prefix) for prefix in settings.ALLOWED_UPLOAD_TYPES):
            raise serializers.ValidationError('unsupported file type')
        if len(os.path.basename(f.name or '')) > 255:
            raise serializers.ValidationError('file name too long')
        return f


def room_payload(room) -> dict:
    data = {
        'id': room.id,
        'requestId': room.request_id,
        'hospitalId': room.hospital_id,
        'hospitalName': room.hospital.name,
        'facilityId': room.facility_id,
        'facilityName': room.facility.name,
        'status': room.status,
        'hospitalCompleted': room.hospital_completed,
        'facilityCompleted': room.facility_completed,
        'createdAt': room.created_at.isoformat(),
        'updatedAt': room.updated_at.isoformat(),
    }
    req = room.request
    data['patient'] = {
        'age': req.patient_age,
        'gender': req.patient_gender,
        'medicalCondition': req.medical_condition,
    }
    # listing annotations
    if hasattr(room, 'last_activity_at'):
        data['latestMessage'] = room.latest_message
        data['lastActivityAt'] = room.last_activity_at.isoformat() if room.last_activity_at else None
        data['hasUnread'] = room.has_unread
    return data


def message_payload(msg) -> dict:
    return {
        'id': msg.id,
        'roomId': msg.room_id,
        'senderId': msg.sender_id,
        'text': msg.text,
        'createdAt': msg.created_at.isoformat(),
    }


def file_payload(record) -> dict:
    return {
        'id': record.id,
        'roomId': record.room_id,
        'senderId': record.sender_id,
        'fileName': record.file_name,
        'fileType': record.file_type,
        'fileSize': record.file_size,
        'createdAt': record.created_at.isoformat(),
    }
