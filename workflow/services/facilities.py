"""Facility directory.

Hospitals browse facilities to pick the target of a placement request;
each facility maintains its own profile (beds, acceptance conditions).
"""
from __future__ import annotations

import logging
from typing import List, Optional

from django.db import transaction

from workflow.exceptions import Forbidden, NotFound, translate_storage_errors
from workflow.models import Facility
from workflow.services.audit import log_action
from workflow.services.identity import Caller, require_facility, require_hospital

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('name', 'address', 'phone', 'bed_capacity', 'available_beds', 'acceptance_conditions')


@translate_storage_errors
def list_facilities(caller: Caller, name: Optional[str] = None, has_available_beds: bool = False) -> List[Facility]:
    require_hospital(caller)
    qs = Facility.objects.all()
    if name:
        qs = qs.filter(name__icontains=name)
    if has_available_beds:
        qs = qs.filter(available_beds__gt=0)
    return list(qs.order_by('name', 'id'))


@translate_storage_errors
def get_facility(caller: Caller, facility_id: int) -> Facility:
    require_hospital(caller)
    facility = Facility.objects.filter(id=facility_id).first()
    if facility is None:
        raise NotFound('facility not found')
    return facility


@translate_storage_errors
def get_own_facility(caller: Caller) -> Facility:
    return Facility.objects.get(id=require_facility(caller))


@translate_storage_errors
def update_facility(caller: Caller, facility_id: int, **changes) -> Facility:
    """Update the caller's own facility profile with the given fields."""
    own_id = require_facility(caller)
    fields = {k: v for k, v in changes.items() if k in PROFILE_FIELDS}
    with transaction.atomic():
        facility = Facility.objects.select_for_update().filter(id=facility_id).first()
        if facility is None:
            raise NotFound('facility not found')
        if facility.id != own_id:
            raise Forbidden('only the facility itself can edit its profile')
        for key, value in fields.items():
            setattr(facility, key, value)
        if fields:
            facility.save(update_fields=[*fields, 'updated_at'])
            log_action(user_id=caller.user_id, action='facility_update', object_type='facility',
                       object_id=facility.id, detail={'fields': sorted(fields)})
    logger.info('facility %s profile updated (%s)', facility_id, ', '.join(sorted(fields)) or 'no changes')
    return facility
