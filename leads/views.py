"""
API Views for the lead queue.

Everything a caller's screen needs goes through one endpoint,
/api/leads/?action=<action>, dispatched on the action name. Identity is the
Django session.
"""

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt
from django.contrib.auth import authenticate, login
import orjson as json
import logging

from appointments.views import APPOINTMENT_ACTIONS
from telemarketing import constants
from . import admin_actions, assignment, followups, outcomes
from .exceptions import DialerError, ValidationError
from .models import Worker
from .utils import acquire_request_next_slot, load_json_body, parse_bool, resolve_worker

logger = logging.getLogger(__name__)


def _required(data, field):
    value = data.get(field)
    if value in (None, ''):
        raise ValidationError(f"{field} is required")
    return value


# ============================================================================
# WORKER ACTIONS
# ============================================================================

def handle_current(request, worker):
    return {'lead': assignment.current_lead(worker)}


def handle_request_next(request, worker):
    data = load_json_body(request)
    category = request.GET.get('category') or data.get('category') or None

    acquire_request_next_slot(worker.id)

    lead = assignment.request_next(worker, category=category)
    if lead is None:
        return {'lead': None, 'message': constants.NO_LEADS_MESSAGE}
    return {'lead': lead}


def handle_complete(request, worker):
    data = load_json_body(request)
    return outcomes.complete_call(
        _required(data, 'leadId'),
        worker,
        data.get('outcome'),
        notes=data.get('notes'),
        followup_at=data.get('followupAt'),
        followup_priority=data.get('followupPriority'),
        followup_notes=data.get('followupNotes'),
        duration_seconds=data.get('sessionDurationSeconds', 0),
    )


def handle_followups(request, worker):
    return {'followups': followups.list_followups(worker, request.GET.get('scope'))}


def handle_delete_followup(request, worker):
    data = load_json_body(request)
    return followups.delete_followup(worker, _required(data, 'callId'))


def handle_clear_all_followups(request, worker):
    data = load_json_body(request)
    return followups.clear_all_followups(worker, data.get('scope'))


# ============================================================================
# ADMIN ACTIONS
# ============================================================================

def handle_all_leads(request, worker):
    return admin_actions.all_leads(
        worker,
        page=request.GET.get('page'),
        page_size=request.GET.get('pageSize'),
        search=request.GET.get('search'),
        status=request.GET.get('status'),
    )


def handle_lead_calls(request, worker):
    lead_id = request.GET.get('leadId')
    if not lead_id:
        raise ValidationError("leadId is required")
    return admin_actions.lead_calls(worker, lead_id)


def handle_delete_lead(request, worker):
    data = load_json_body(request)
    return admin_actions.delete_lead(worker, _required(data, 'leadId'))


def handle_master_clear_leads(request, worker):
    data = load_json_body(request)
    return admin_actions.master_clear_leads(
        worker,
        data.get('confirmation'),
        clear_history=parse_bool(data.get('clearHistory')),
    )


def handle_stats(request, worker):
    return admin_actions.lead_stats(worker)


ACTIONS = {
    'current': ('GET', handle_current),
    'request-next': ('POST', handle_request_next),
    'complete': ('POST', handle_complete),
    'followups': ('GET', handle_followups),
    'delete-followup': ('POST', handle_delete_followup),
    'clear-all-followups': ('POST', handle_clear_all_followups),
    'all-leads': ('GET', handle_all_leads),
    'lead-calls': ('GET', handle_lead_calls),
    'delete-lead': ('POST', handle_delete_lead),
    'master-clear-leads': ('POST', handle_master_clear_leads),
    'stats': ('GET', handle_stats),
}
ACTIONS.update(APPOINTMENT_ACTIONS)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def leads_api(request):
    """
    GET|POST /api/leads/?action=<action>

    Errors come back as {"error": "..."} with the status carried by the
    raised DialerError.
    """
    action = request.GET.get('action')
    entry = ACTIONS.get(action)
    if entry is None:
        return JsonResponse({'error': 'Invalid action'}, status=400)

    method, handler = entry
    if request.method != method:
        return JsonResponse({'error': 'Method not allowed'}, status=405)

    try:
        worker = resolve_worker(request)
        return JsonResponse(handler(request, worker))
    except DialerError as e:
        if e.status_code >= 500:
            logger.error(f"Action {action} failed: {e.message}")
        return JsonResponse({'error': e.message}, status=e.status_code)
    except Exception as e:
        logger.exception(f"Unhandled error in action {action}: {e}")
        return JsonResponse({'error': 'Internal server error'}, status=500)


@csrf_exempt
def worker_login(request):
    if request.method == 'POST':
        try:
            data = json.loads(request.body)
            username = data.get('username')
            password = data.get('password')
        except (json.JSONDecodeError, AttributeError):
            return JsonResponse({'error': 'Invalid JSON'}, status=400)

        user = authenticate(request, username=username, password=password)
        if user is not None:
            try:
                worker = Worker.objects.get(user=user)
            except Worker.DoesNotExist:
                return JsonResponse({'error': 'Worker not found'}, status=404)

            if not worker.is_active:
                logger.warning(f"Suspended worker {worker.id} tried to sign in")
                return JsonResponse(
                    {'error': 'Account suspended', 'suspension_reason': worker.suspension_reason},
                    status=403,
                )

            login(request, user)
            logger.info(f"Worker {worker.id} signed in")
            return JsonResponse({'id': worker.id, 'name': worker.display_name, 'role': worker.role})
        else:
            return JsonResponse({'error': 'Invalid credentials'}, status=401)

    return JsonResponse({'error': 'Method not allowed'}, status=405)
