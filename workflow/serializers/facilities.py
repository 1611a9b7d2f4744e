from rest_framework import serializers


class FacilityUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    bedCapacity = serializers.IntegerField(min_value=0, required=False)
    availableBeds = serializers.IntegerField(min_value=0, required=False)
    acceptanceConditions = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('no fields to update')
        return attrs


def facility_fields(validated: dict) -> dict:
    mapping = {
        'name': 'name',
        'address': 'address',
        'phone': 'phone',
        'bedCapacity': 'bed_capacity',
        'availableBeds': 'available_beds',
        'acceptanceConditions': 'acceptance_conditions',
    }
    return {mapping[k]: v for k, v in validated.items() if k in mapping}


def facility_payload(facility) -> dict:
    return {
        'id': facility.id,
        'userId': facility.user_id,
        'name': facility.name,
        'address': facility.address,
        'phone': facility.phone,
        'bedCapacity': facility.bed_capacity,
        'availableBeds': facility.available_beds,
        'acceptanceConditions': facility.acceptance_conditions,
        'createdAt': facility.created_at.isoformat(),
        'updatedAt': facility.updated_at.isoformat(),
    }
