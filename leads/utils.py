from telemarketing.redis import conn, REQUEST_NEXT_THROTTLE_REDIS_KEY
import redis
import orjson as json
import logging
from datetime import datetime
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from kombu.exceptions import OperationalError
from typing import Dict, Optional
from telemarketing import constants
from .exceptions import AuthenticationError, AuthorizationError, RateLimitedError, ValidationError
from .models import Worker

logger = logging.getLogger(__name__)


def _isoformat(value):
    return value.isoformat() if value else None


def acquire_request_next_slot(worker_id):
    """
    Claim the worker's request-next slot for REQUEST_NEXT_COOLDOWN seconds.

    Raises RateLimitedError while a previous claim is still live. Redis being
    unreachable lets the request through.
    """
    cooldown = settings.REQUEST_NEXT_COOLDOWN
    if not cooldown or cooldown <= 0:
        return True

    key = f"{REQUEST_NEXT_THROTTLE_REDIS_KEY}{worker_id}"
    try:
        acquired = conn.set(key, '1', ex=cooldown, nx=True)
    except redis.RedisError as e:
        logger.error(f"Request throttle unavailable for worker {worker_id}: {e}")
        return True

    if not acquired:
        logger.warning(f"Worker {worker_id} throttled on request-next")
        raise RateLimitedError(f"Please wait {cooldown} seconds between lead requests")

    return True


def resolve_worker(request) -> Worker:
    """Map the session user onto an active Worker profile."""
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        raise AuthenticationError("Authorization required")

    try:
        worker = Worker.objects.select_related('user').get(user=user)
    except Worker.DoesNotExist:
        raise AuthorizationError("No worker profile for this account")

    if not worker.is_active:
        raise AuthorizationError(worker.suspension_reason or "Account suspended")

    return worker


def require_admin(worker):
    if not worker.is_admin:
        raise AuthorizationError("Admin access required")
    return worker


def record_admin_action_on_commit(worker, action, entity_type='', entity_id=None, details: Optional[Dict] = None):
    """Queue an audit row that is only written if the surrounding transaction commits."""
    from .tasks import record_admin_action

    admin_id = worker.id if worker else None
    payload = details or {}

    def dispatch():
        # runs after commit, so a lost audit entry is logged and never raised
        try:
            record_admin_action.delay(admin_id, action, entity_type, entity_id, payload)
        except OperationalError as e:
            logger.error(f"Could not queue audit entry {action} by admin {admin_id}: {e}")

    transaction.on_commit(dispatch)


# ============================================================================
# SERIALIZERS
# ============================================================================

def serialize_lead_for_worker(lead) -> Dict:
    """Public view of a lead. Never exposes the lease fields."""
    return {
        'id': lead.id,
        'name': lead.name or constants.EMPTY_NAME_PLACEHOLDER,
        'phone': lead.phone,
        'email': lead.email,
        'website': lead.website,
        'attempt_count': lead.attempt_count,
        'category': lead.category,
    }


def serialize_lead_for_admin(lead) -> Dict:
    return {
        'id': lead.id,
        'name': lead.name,
        'phone': lead.phone,
        'email': lead.email,
        'website': lead.website,
        'category': lead.category,
        'status': lead.status,
        'assigned_to': lead.assigned_to_id,
        'assigned_at': _isoformat(lead.assigned_at),
        'locked_until': _isoformat(lead.locked_until),
        'attempt_count': lead.attempt_count,
        'max_attempts': lead.max_attempts,
        'upload_id': lead.upload_id,
        'created_at': _isoformat(lead.created_at),
        'updated_at': _isoformat(lead.updated_at),
        'deleted_at': _isoformat(lead.deleted_at),
    }


def serialize_call(call) -> Dict:
    return {
        'id': call.id,
        'lead_id': call.lead_id,
        'user_id': call.user_id,
        'caller_name': call.user.display_name if call.user else None,
        'to_number': call.to_number,
        'start_time': _isoformat(call.start_time),
        'duration_seconds': call.duration_seconds,
        'outcome': call.outcome,
        'notes': call.notes,
        'followup_at': _isoformat(call.followup_at),
        'followup_priority': call.followup_priority,
        'followup_notes': call.followup_notes,
        'appointment_created': call.appointment_created,
        'deleted_at': _isoformat(call.deleted_at),
    }


def serialize_followup(call) -> Dict:
    lead = call.lead
    return {
        'id': call.id,
        'lead_id': call.lead_id,
        'lead_name': (lead.name or constants.EMPTY_NAME_PLACEHOLDER) if lead else None,
        'lead_phone': lead.phone if lead else call.to_number,
        'caller_name': call.user.display_name if call.user else None,
        'user_id': call.user_id,
        'outcome': call.outcome,
        'notes': call.notes,
        'followup_at': _isoformat(call.followup_at),
        'followup_priority': call.followup_priority,
        'followup_notes': call.followup_notes,
        'start_time': _isoformat(call.start_time),
    }


def parse_timestamp(value, error_message):
    """ISO-8601 string (or datetime) to an aware datetime. Empty values give None."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parse_datetime(str(value))
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError(error_message)
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def load_json_body(request) -> Dict:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except json.JSONDecodeError:
        raise ValidationError("Invalid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON")
    return data


def parse_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')
