"""
Appointment lifecycle.

Appointments are created by any active worker, usually right after an
interested or followup call. Only admins list and move them; scheduled is the
only status that can change, completed and cancelled are final.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List

from django.db import transaction

from leads.exceptions import NotFoundError, ValidationError
from leads.models import CallSession, Lead
from leads.utils import parse_timestamp, record_admin_action_on_commit, require_admin
from .models import Appointment

logger = logging.getLogger(__name__)

VALID_OUTCOMES = [choice for choice, _ in Appointment.OUTCOME_CHOICES]

# negotiated_price is DecimalField(max_digits=10, decimal_places=2)
MAX_NEGOTIATED_PRICE = Decimal('99999999.99')


def _parse_price(value):
    if value in (None, ''):
        return None
    try:
        price = Decimal(str(value))
        if not price.is_finite() or price < 0 or price > MAX_NEGOTIATED_PRICE:
            raise ValidationError("Invalid negotiated price")
        return price.quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid negotiated price")


def serialize_appointment(appointment) -> Dict:
    return {
        'id': appointment.id,
        'lead_id': appointment.lead_id,
        'lead_name': appointment.lead_name,
        'lead_phone': appointment.lead_phone,
        'scheduled_at': appointment.scheduled_at.isoformat(),
        'status': appointment.status,
        'outcome': appointment.outcome,
        'created_by': appointment.created_by_id,
        'created_by_name': appointment.created_by_name,
        'selected_plan': appointment.selected_plan,
        'negotiated_price': str(appointment.negotiated_price) if appointment.negotiated_price is not None else None,
        'notes': appointment.notes,
        'created_at': appointment.created_at.isoformat(),
        'updated_at': appointment.updated_at.isoformat(),
        'deleted_at': appointment.deleted_at.isoformat() if appointment.deleted_at else None,
    }


def create_appointment(
    worker,
    lead_id=None,
    lead_name=None,
    lead_phone=None,
    scheduled_at=None,
    notes=None,
    outcome=None,
    selected_plan=None,
    negotiated_price=None,
) -> Dict:
    outcome = outcome or Appointment.OUTCOME_MANUAL
    if outcome not in VALID_OUTCOMES:
        raise ValidationError("Invalid appointment outcome")

    scheduled_at = parse_timestamp(scheduled_at, "Invalid appointment date")
    if scheduled_at is None:
        raise ValidationError("Appointment date is required")

    price = _parse_price(negotiated_price)

    lead = None
    if lead_id not in (None, ''):
        try:
            lead = Lead.objects.alive().get(id=lead_id)
        except (Lead.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Lead not found")
        lead_phone = lead_phone or lead.phone
        lead_name = lead_name or lead.name

    if not lead_phone:
        raise ValidationError("Lead phone is required")

    with transaction.atomic():
        appointment = Appointment.objects.create(
            lead=lead,
            lead_name=lead_name or '',
            lead_phone=lead_phone,
            scheduled_at=scheduled_at,
            outcome=outcome,
            created_by=worker,
            created_by_name=worker.display_name,
            selected_plan=selected_plan or None,
            negotiated_price=price,
            notes=notes or None,
        )

        if lead is not None:
            latest_call = (
                CallSession.objects.alive()
                .filter(lead=lead, user=worker)
                .order_by('-start_time', '-id')
                .first()
            )
            if latest_call is not None:
                latest_call.appointment_created = True
                latest_call.save(update_fields=['appointment_created'])

    logger.info(f"Appointment {appointment.id} created by worker {worker.id} for {appointment.lead_phone}")
    return {'success': True, 'id': appointment.id}


def list_appointments(worker, show_trashed=False) -> List[Dict]:
    require_admin(worker)

    queryset = Appointment.objects.trashed() if show_trashed else Appointment.objects.alive()
    return [serialize_appointment(a) for a in queryset.order_by('-scheduled_at', '-id')]


def update_appointment(worker, appointment_id, status) -> Dict:
    require_admin(worker)

    if status not in Appointment.TERMINAL_STATUSES:
        raise ValidationError("Invalid appointment status")

    with transaction.atomic():
        try:
            appointment = Appointment.objects.alive().select_for_update().get(id=appointment_id)
        except (Appointment.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Appointment not found")

        if appointment.is_terminal:
            raise ValidationError(f"Appointment is already {appointment.status}")

        previous = appointment.status
        appointment.status = status
        appointment.save(update_fields=['status', 'updated_at'])

        record_admin_action_on_commit(
            worker, 'update_appointment', 'appointments', appointment.id,
            {'from': previous, 'to': status},
        )

    logger.info(f"Appointment {appointment.id} moved {previous} -> {status} by admin {worker.id}")
    return {'success': True}
