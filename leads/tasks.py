import logging
from telemarketing.celery import app
from .models import AdminAuditLog

logger = logging.getLogger(__name__)


@app.task(bind=True)
def record_admin_action(self, admin_id, action, entity_type='', entity_id=None, details=None):
    entry = AdminAuditLog.objects.create(
        admin_id=admin_id,
        action=action,
        entity_type=entity_type or '',
        entity_id=entity_id,
        details=details or {},
    )
    logger.info(f"Audit: admin {admin_id} {action} {entity_type} {entity_id or ''}".rstrip())
    return entry.id
