from rest_framework import serializers


class RequestCreateSerializer(serializers.Serializer):
    facilityId = serializers.IntegerField(min_value=1)
    patientAge = serializers.IntegerField(min_value=0, max_value=150)
    patientGender = serializers.CharField(max_length=16)
    medicalCondition = serializers.CharField(max_length=2000)

    def validate_medicalCondition(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('medical condition is required')
        return v


class RequestUpdateSerializer(serializers.Serializer):
    patientAge = serializers.IntegerField(min_value=0, max_value=150, required=False)
    patientGender = serializers.CharField(max_length=16, required=False)
    medicalCondition = serializers.CharField(max_length=2000, required=False)

    def validate_medicalCondition(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('medical condition cannot be blank')
        return v

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('no fields to update')
        return attrs


def patient_fields(validated: dict) -> dict:
    """Map validated camelCase input onto the model's patient fields."""
    mapping = {
        'patientAge': 'patient_age',
        'patientGender': 'patient_gender',
        'medicalCondition': 'medical_condition',
    }
    return {mapping[k]: v for k, v in validated.items() if k in mapping}


def request_payload(req) -> dict:
    room = req.room if hasattr(req, 'room') else None
    return {
        'id': req.id,
        'hospitalId': req.hospital_id,
        'hospitalName': req.hospital.name,
        'facilityId': req.facility_id,
        'facilityName': req.facility.name,
        'patientAge': req.patient_age,
        'patientGender': req.patient_gender,
        'medicalCondition': req.medical_condition,
        'status': req.status,
        'roomId': room.id if room else None,
        'createdAt': req.created_at.isoformat(),
        'updatedAt': req.updated_at.isoformat(),
    }
