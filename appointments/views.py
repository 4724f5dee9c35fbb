"""
Appointment and trash actions served through /api/leads/?action=...

Handlers take (request, worker) and return a JSON-ready dict; the dispatcher in
leads.views owns method checks and error mapping.
"""

from leads.utils import load_json_body, parse_bool
from . import services
from .trash import TrashManager


def handle_create_appointment(request, worker):
    data = load_json_body(request)
    return services.create_appointment(
        worker,
        lead_id=data.get('leadId'),
        lead_name=data.get('leadName'),
        lead_phone=data.get('leadPhone'),
        scheduled_at=data.get('scheduledAt'),
        notes=data.get('notes'),
        outcome=data.get('outcome'),
        selected_plan=data.get('selectedPlan'),
        negotiated_price=data.get('negotiatedPrice'),
    )


def handle_list_appointments(request, worker):
    show_trashed = parse_bool(request.GET.get('showTrashed'))
    return {'appointments': services.list_appointments(worker, show_trashed=show_trashed)}


def handle_update_appointment(request, worker):
    data = load_json_body(request)
    return services.update_appointment(worker, data.get('appointmentId'), data.get('status'))


def handle_trash_items(request, worker):
    data = load_json_body(request)
    return TrashManager(data.get('entityType'), worker).trash(data.get('ids'))


def handle_restore_items(request, worker):
    data = load_json_body(request)
    return TrashManager(data.get('entityType'), worker).restore(data.get('ids'))


def handle_permanent_delete(request, worker):
    data = load_json_body(request)
    return TrashManager(data.get('entityType'), worker).permanent_delete(
        data.get('ids'), data.get('confirmation')
    )


def handle_bulk_delete(request, worker):
    data = load_json_body(request)
    return TrashManager(data.get('entityType'), worker).bulk_action(
        data.get('bulkAction'),
        data.get('confirmation'),
        operation=data.get('operation') or 'delete',
    )


def handle_trashed_count(request, worker):
    return {'count': TrashManager(request.GET.get('entityType'), worker).trashed_count()}


APPOINTMENT_ACTIONS = {
    'create-appointment': ('POST', handle_create_appointment),
    'appointments': ('GET', handle_list_appointments),
    'update-appointment': ('POST', handle_update_appointment),
    'trash-items': ('POST', handle_trash_items),
    'restore-items': ('POST', handle_restore_items),
    'permanent-delete': ('POST', handle_permanent_delete),
    'bulk-delete': ('POST', handle_bulk_delete),
    'trashed-count': ('GET', handle_trashed_count),
}
