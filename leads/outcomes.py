"""
Call outcome processing.

complete_call records the CallSession and moves the lead to its next status in
the same transaction, with the lead row locked:

    dnc                              -> DNC
    interested                       -> COMPLETED
    followup                         -> NEW (follow-up fields stored on the call)
    no_answer / voicemail /
    not_interested / wrong_number    -> NEW, or COMPLETED once the lead has used
                                        its attempts (Lead.max_attempts, falling
                                        back to LEAD_MAX_ATTEMPTS)

The lease is always released.
"""

import logging
from datetime import timedelta
from typing import Dict

from django.db import transaction
from django.utils import timezone

from telemarketing import constants
from .exceptions import AuthorizationError, NotFoundError, ValidationError
from .models import CallSession, Lead
from .utils import parse_timestamp

logger = logging.getLogger(__name__)


def parse_duration(value):
    if value in (None, ''):
        return 0
    if isinstance(value, bool):
        raise ValidationError("Invalid session duration")
    try:
        duration = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("Invalid session duration")
    if duration < 0 or duration > constants.MAX_CALL_DURATION_SECONDS or duration != float(value):
        raise ValidationError("Invalid session duration")
    return duration


def next_status(lead, outcome):
    """Status the lead moves to once this outcome is recorded (attempt already counted)."""
    if outcome == constants.OUTCOME_DNC:
        return constants.LEAD_STATUS_DNC
    if outcome == constants.OUTCOME_INTERESTED:
        return constants.LEAD_STATUS_COMPLETED
    if outcome == constants.OUTCOME_FOLLOWUP:
        return constants.LEAD_STATUS_NEW
    if outcome in constants.RETRYABLE_OUTCOMES:
        if lead.attempt_count >= lead.effective_max_attempts:
            return constants.LEAD_STATUS_COMPLETED
        return constants.LEAD_STATUS_NEW
    raise ValidationError("Invalid outcome")


def complete_call(
    lead_id,
    worker,
    outcome,
    notes=None,
    followup_at=None,
    followup_priority=None,
    followup_notes=None,
    duration_seconds=0,
) -> Dict:
    if outcome not in constants.CALL_OUTCOMES:
        raise ValidationError("Invalid outcome")

    followup_at = parse_timestamp(followup_at, "Invalid follow-up date")
    now = timezone.now()

    if outcome == constants.OUTCOME_FOLLOWUP:
        if followup_at is None:
            raise ValidationError("Select Follow-up Date")
        if followup_at <= now:
            raise ValidationError("Follow-up date must be in the future")

    if followup_priority in ('', None):
        followup_priority = None
    elif followup_priority not in constants.FOLLOWUP_PRIORITIES:
        raise ValidationError("Invalid follow-up priority")

    duration = parse_duration(duration_seconds)

    with transaction.atomic():
        try:
            lead = Lead.objects.alive().select_for_update().get(id=lead_id)
        except (Lead.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Lead not found")

        if lead.assigned_to_id != worker.id:
            raise AuthorizationError("Lead not found or not assigned to you")

        is_followup = outcome == constants.OUTCOME_FOLLOWUP
        call = CallSession.objects.create(
            lead=lead,
            user=worker,
            to_number=lead.phone,
            start_time=now - timedelta(seconds=duration),
            duration_seconds=duration,
            outcome=outcome,
            notes=notes or None,
            followup_at=followup_at if is_followup else None,
            followup_priority=followup_priority if is_followup else None,
            followup_notes=(followup_notes or None) if is_followup else None,
            created_at=now,
        )

        lead.attempt_count += 1
        lead.status = next_status(lead, outcome)
        lead.assigned_to = None
        lead.locked_until = None
        lead.save(update_fields=['attempt_count', 'status', 'assigned_to', 'locked_until', 'updated_at'])

    logger.info(
        f"Call {call.id} on lead {lead.id} by worker {worker.id}: {outcome} "
        f"(attempt {lead.attempt_count}) -> {lead.status}"
    )

    return {'success': True, 'newStatus': lead.status}
