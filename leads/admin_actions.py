"""
Admin-only lead operations: browsing, per-lead call history, deletion,
master clear and queue statistics.

Call sessions and appointments outlive the leads they reference; every delete
here unlinks them first.
"""

import logging
from typing import Dict, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q

from appointments.models import Appointment
from telemarketing import constants
from .exceptions import ConfirmationMismatchError, NotFoundError, ValidationError
from .models import CallSession, Lead, LeadUpload, WorkerLeadHistory
from .utils import (
    record_admin_action_on_commit,
    require_admin,
    serialize_call,
    serialize_lead_for_admin,
)

logger = logging.getLogger(__name__)


def _parse_positive_int(value, default, field):
    if value in (None, ''):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}")
    if parsed < 1:
        raise ValidationError(f"Invalid {field}")
    return parsed


def all_leads(worker, page=None, page_size=None, search: Optional[str] = None, status=None) -> Dict:
    require_admin(worker)

    page = _parse_positive_int(page, 1, 'page')
    page_size = _parse_positive_int(page_size, settings.LEADS_PAGE_SIZE_DEFAULT, 'pageSize')
    page_size = min(page_size, settings.LEADS_PAGE_SIZE_MAX)

    queryset = Lead.objects.alive()
    if search:
        search = search.strip()
        queryset = queryset.filter(
            Q(name__icontains=search)
            | Q(phone__icontains=search)
            | Q(email__icontains=search)
            | Q(category__icontains=search)
        )
    if status:
        queryset = queryset.filter(status=status)

    total = queryset.count()
    offset = (page - 1) * page_size
    leads = queryset.order_by('-created_at', '-id')[offset:offset + page_size]

    return {
        'leads': [serialize_lead_for_admin(lead) for lead in leads],
        'total': total,
        'page': page,
    }


def lead_calls(worker, lead_id) -> Dict:
    require_admin(worker)

    try:
        exists = Lead.objects.filter(id=lead_id).exists()
    except (ValueError, TypeError):
        exists = False
    if not exists:
        raise NotFoundError("Lead not found")

    calls = (
        CallSession.objects.alive()
        .filter(lead_id=lead_id)
        .select_related('user__user')
        .order_by('-start_time', '-id')
    )
    return {'calls': [serialize_call(call) for call in calls]}


def delete_lead(worker, lead_id) -> Dict:
    require_admin(worker)

    with transaction.atomic():
        try:
            lead = Lead.objects.select_for_update().get(id=lead_id)
        except (Lead.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Lead not found")

        calls_unlinked = CallSession.objects.filter(lead=lead).update(lead=None)
        Appointment.objects.filter(lead=lead).update(lead=None)
        phone = lead.phone
        lead.delete()

        record_admin_action_on_commit(
            worker, 'delete_lead', 'leads', lead_id,
            {'phone': phone, 'callsUnlinked': calls_unlinked},
        )

    logger.info(f"Lead {lead_id} deleted by admin {worker.id} ({calls_unlinked} calls kept)")
    return {'success': True}


def master_clear_leads(worker, confirmation, clear_history=False) -> Dict:
    """
    Delete every lead. Calls and appointments are kept, unlinked.

    Requires the exact MASTER_CLEAR_CONFIRMATION phrase; anything else changes nothing.
    """
    require_admin(worker)

    if confirmation != constants.MASTER_CLEAR_CONFIRMATION:
        raise ConfirmationMismatchError(
            f'Type "{constants.MASTER_CLEAR_CONFIRMATION}" to confirm'
        )

    with transaction.atomic():
        CallSession.objects.filter(lead__isnull=False).update(lead=None)
        Appointment.objects.filter(lead__isnull=False).update(lead=None)
        WorkerLeadHistory.objects.all().delete()
        _, deleted = Lead.objects.all().delete()
        leads_deleted = deleted.get(Lead._meta.label, 0)
        uploads_deleted = 0
        if clear_history:
            uploads_deleted, _ = LeadUpload.objects.all().delete()

        record_admin_action_on_commit(
            worker, 'master_clear_leads', 'leads', None,
            {'leadsDeleted': leads_deleted, 'clearHistory': bool(clear_history), 'uploadsDeleted': uploads_deleted},
        )

    logger.warning(f"Master clear by admin {worker.id}: {leads_deleted} leads deleted (clear_history={clear_history})")
    return {'leadsDeleted': leads_deleted}


def lead_stats(worker) -> Dict:
    require_admin(worker)

    counts = Lead.objects.alive().aggregate(
        total=Count('id'),
        new=Count('id', filter=Q(status=constants.LEAD_STATUS_NEW)),
        assigned=Count('id', filter=Q(status=constants.LEAD_STATUS_ASSIGNED)),
        completed=Count('id', filter=Q(status=constants.LEAD_STATUS_COMPLETED)),
        dnc=Count('id', filter=Q(status=constants.LEAD_STATUS_DNC)),
    )
    return {'stats': counts}
