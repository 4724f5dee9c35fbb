"""
Soft delete for leads, appointments and calls.

One TrashManager per entity type. Trashing stamps deleted_at, restoring clears
it, and hard deletes only ever touch rows that are already in the trash and
only when the caller typed the confirmation phrase.
"""

import logging
from datetime import timedelta
from typing import Dict, Iterable, List

from django.db import transaction
from django.utils import timezone

from leads.exceptions import ConfirmationMismatchError, ValidationError
from leads.models import CallSession, Lead
from leads.utils import record_admin_action_on_commit, require_admin
from telemarketing import constants
from .models import Appointment

logger = logging.getLogger(__name__)

TRASHABLE_MODELS = {
    'leads': Lead,
    'appointments': Appointment,
    'calls': CallSession,
}


def _clean_ids(ids) -> List[int]:
    if not isinstance(ids, (list, tuple)) or not ids:
        raise ValidationError("No items selected")
    try:
        return [int(i) for i in ids]
    except (TypeError, ValueError):
        raise ValidationError("Invalid item ids")


def _check_confirmation(confirmation):
    if confirmation != constants.PERMANENT_DELETE_CONFIRMATION:
        raise ConfirmationMismatchError(
            f'Type "{constants.PERMANENT_DELETE_CONFIRMATION}" to confirm'
        )


class TrashManager:

    def __init__(self, entity_type, worker):
        require_admin(worker)
        if entity_type not in constants.TRASHABLE_ENTITY_TYPES:
            raise ValidationError("Invalid entity type")
        self.entity_type = entity_type
        self.worker = worker
        self.model = TRASHABLE_MODELS[entity_type]

    def _audit(self, action, details):
        record_admin_action_on_commit(self.worker, action, self.entity_type, None, details)

    def trash(self, ids: Iterable) -> Dict:
        ids = _clean_ids(ids)
        with transaction.atomic():
            count = self.model.objects.alive().filter(id__in=ids).update(deleted_at=timezone.now())
            self._audit('trash', {'ids': ids, 'count': count})

        logger.info(f"{count} {self.entity_type} moved to trash by admin {self.worker.id}")
        return {'success': True, 'count': count}

    def restore(self, ids: Iterable) -> Dict:
        ids = _clean_ids(ids)
        with transaction.atomic():
            count = self.model.objects.trashed().filter(id__in=ids).update(deleted_at=None)
            self._audit('restore', {'ids': ids, 'count': count})

        logger.info(f"{count} {self.entity_type} restored by admin {self.worker.id}")
        return {'success': True, 'count': count}

    def permanent_delete(self, ids: Iterable, confirmation) -> Dict:
        _check_confirmation(confirmation)
        ids = _clean_ids(ids)

        with transaction.atomic():
            count = self._purge(self.model.objects.trashed().filter(id__in=ids))
            self._audit('permanent_delete', {'ids': ids, 'count': count})

        logger.warning(f"{count} {self.entity_type} permanently deleted by admin {self.worker.id}")
        return {'success': True, 'count': count}

    def bulk_action(self, scope, confirmation, operation=constants.BULK_OPERATION_DELETE) -> Dict:
        """
        Apply to every row older than the scope's cutoff (or every row for 'all').

        'delete' purges trashed rows by deleted_at; 'trash' soft deletes live
        rows by created_at.
        """
        if scope not in constants.BULK_SCOPES:
            raise ValidationError("Invalid bulk action")
        if operation not in (constants.BULK_OPERATION_DELETE, constants.BULK_OPERATION_TRASH):
            raise ValidationError("Invalid bulk operation")
        _check_confirmation(confirmation)

        now = timezone.now()
        days = constants.BULK_SCOPES[scope]
        cutoff = now - timedelta(days=days) if days is not None else None

        with transaction.atomic():
            if operation == constants.BULK_OPERATION_DELETE:
                queryset = self.model.objects.trashed()
                if cutoff is not None:
                    queryset = queryset.filter(deleted_at__lt=cutoff)
                count = self._purge(queryset)
            else:
                queryset = self.model.objects.alive()
                if cutoff is not None:
                    queryset = queryset.filter(created_at__lt=cutoff)
                count = queryset.update(deleted_at=now)

            self._audit('bulk_' + operation, {'scope': scope, 'count': count})

        logger.warning(f"Bulk {operation} ({scope}) on {self.entity_type} by admin {self.worker.id}: {count} rows")
        return {'success': True, 'count': count}

    def trashed_count(self) -> int:
        return self.model.objects.trashed().count()

    def _purge(self, queryset):
        _, deleted = queryset.delete()
        return deleted.get(self.model._meta.label, 0)
