"""
Follow-up queue.

A follow-up is a live CallSession with followup_at set. Nothing here deletes
calls; clearing a follow-up only nulls its three follow-up fields.
"""

import logging
from typing import Dict, List

from django.db import transaction

from telemarketing import constants
from .exceptions import AuthorizationError, NotFoundError, ValidationError
from .models import CallSession
from .utils import serialize_followup

logger = logging.getLogger(__name__)

FOLLOWUP_CLEARED_FIELDS = {
    'followup_at': None,
    'followup_priority': None,
    'followup_notes': None,
}


def resolve_scope(worker, scope=None):
    if scope in (None, ''):
        return constants.SCOPE_ALL if worker.is_admin else constants.SCOPE_OWN
    if scope not in (constants.SCOPE_OWN, constants.SCOPE_ALL):
        raise ValidationError("Invalid scope")
    if scope == constants.SCOPE_ALL and not worker.is_admin:
        raise AuthorizationError("Admin access required")
    return scope


def _followups_in_scope(worker, scope):
    queryset = CallSession.objects.alive().filter(followup_at__isnull=False)
    if scope == constants.SCOPE_OWN:
        queryset = queryset.filter(user=worker)
    return queryset


def list_followups(worker, scope=None) -> List[Dict]:
    scope = resolve_scope(worker, scope)
    calls = (
        _followups_in_scope(worker, scope)
        .select_related('lead', 'user__user')
        .order_by('followup_at', 'id')
    )
    return [serialize_followup(call) for call in calls]


def delete_followup(worker, call_id) -> Dict:
    with transaction.atomic():
        try:
            call = CallSession.objects.alive().select_for_update().get(id=call_id)
        except (CallSession.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Call not found")

        if call.user_id != worker.id and not worker.is_admin:
            raise AuthorizationError("You can only clear your own follow-ups")

        for field, value in FOLLOWUP_CLEARED_FIELDS.items():
            setattr(call, field, value)
        call.save(update_fields=list(FOLLOWUP_CLEARED_FIELDS))

    logger.info(f"Follow-up cleared on call {call.id} by worker {worker.id}")
    return {'success': True}


def clear_all_followups(worker, scope=None) -> Dict:
    scope = resolve_scope(worker, scope)
    with transaction.atomic():
        count = _followups_in_scope(worker, scope).update(**FOLLOWUP_CLEARED_FIELDS)

    logger.info(f"Worker {worker.id} cleared {count} follow-ups (scope={scope})")
    return {'success': True, 'count': count}
