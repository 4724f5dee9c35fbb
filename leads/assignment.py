"""
Assignment engine.

Hands out one lead at a time. Selection and marking happen inside a single
transaction with the candidate row locked (SKIP LOCKED where the backend
supports it, BEGIN IMMEDIATE on SQLite), so concurrent callers never receive
the same lead.

Leases are reclaimed lazily: an ASSIGNED lead whose locked_until has passed is
eligible again on the next request. There is no sweeper.
"""

import logging
from datetime import timedelta
from typing import Dict, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from telemarketing import constants
from .exceptions import AuthorizationError
from .models import Lead, WorkerLeadHistory
from .utils import serialize_lead_for_worker

logger = logging.getLogger(__name__)


def _ensure_can_work(worker):
    if not worker.is_active:
        raise AuthorizationError(worker.suspension_reason or "Account suspended")


def eligible_leads(worker, now=None, category=None):
    """Leads this worker could be handed right now, FIFO."""
    now = now or timezone.now()

    seen = WorkerLeadHistory.objects.filter(worker=worker).values('lead_id')

    queryset = (
        Lead.objects.alive()
        .filter(
            Q(status=constants.LEAD_STATUS_NEW)
            | Q(status=constants.LEAD_STATUS_ASSIGNED, locked_until__lt=now)
            | Q(status=constants.LEAD_STATUS_ASSIGNED, locked_until__isnull=True)
        )
        .exclude(id__in=seen)
    )
    if category:
        queryset = queryset.filter(category=category)

    return queryset.order_by('created_at', 'id')


def request_next(worker, category=None) -> Optional[Dict]:
    """
    Assign the oldest eligible lead to the worker.

    Returns the public lead dict, or None when nothing is available.
    """
    _ensure_can_work(worker)

    with transaction.atomic():
        now = timezone.now()
        lead = (
            eligible_leads(worker, now=now, category=category)
            .select_for_update(skip_locked=True)
            .first()
        )
        if lead is None:
            logger.info(f"No eligible lead for worker {worker.id} (category={category})")
            return None

        reclaimed_from = lead.assigned_to_id if lead.status == constants.LEAD_STATUS_ASSIGNED else None

        lead.status = constants.LEAD_STATUS_ASSIGNED
        lead.assigned_to = worker
        lead.assigned_at = now
        lead.locked_until = now + timedelta(seconds=settings.LEAD_LEASE_TTL)
        lead.save(update_fields=['status', 'assigned_to', 'assigned_at', 'locked_until', 'updated_at'])

        WorkerLeadHistory.objects.create(worker=worker, lead=lead)

    if reclaimed_from:
        logger.info(f"Lead {lead.id} reclaimed from worker {reclaimed_from} after lease expiry")
    logger.info(f"Lead {lead.id} assigned to worker {worker.id} until {lead.locked_until.isoformat()}")

    return serialize_lead_for_worker(lead)


def current_lead(worker) -> Optional[Dict]:
    """The lead the worker is actively holding, if any."""
    lead = (
        Lead.objects.alive()
        .filter(
            status=constants.LEAD_STATUS_ASSIGNED,
            assigned_to=worker,
            locked_until__gt=timezone.now(),
        )
        .order_by('-assigned_at', '-id')
        .first()
    )
    if lead is None:
        return None
    return serialize_lead_for_worker(lead)
