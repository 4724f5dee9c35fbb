"""
Tests for appointments and the trash manager

Tests cover:
- Appointment creation and the scheduled -> completed/cancelled lifecycle
- Trash, restore and confirmation-gated permanent delete per entity type
- Bulk purge / bulk trash by age
- Action endpoint wiring
"""

import pytest
import orjson as json
from datetime import timedelta
from decimal import Decimal
from django.utils import timezone

from telemarketing import constants
from leads.assignment import request_next
from leads.exceptions import (
    AuthorizationError,
    ConfirmationMismatchError,
    NotFoundError,
    ValidationError,
)
from leads.models import AdminAuditLog, CallSession, Lead
from appointments.models import Appointment
from appointments.services import create_appointment, list_appointments, update_appointment
from appointments.trash import TrashManager


API = '/api/leads/'


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def tomorrow():
    return (timezone.now() + timedelta(days=1)).isoformat()


@pytest.fixture
def make_appointment(worker):
    def _make_appointment(**kwargs):
        kwargs.setdefault('lead_phone', '+15550009999')
        kwargs.setdefault('lead_name', 'Acme Roofing')
        kwargs.setdefault('scheduled_at', timezone.now() + timedelta(days=2))
        kwargs.setdefault('created_by', worker)
        return Appointment.objects.create(**kwargs)
    return _make_appointment


def _post(client, action, payload):
    return client.post(f'{API}?action={action}', payload, content_type='application/json')


def _age(model, obj, **fields):
    """Backdate auto_now_add / deleted_at columns"""
    model.objects.filter(id=obj.id).update(**fields)


# ============================================================================
# TEST: create_appointment
# ============================================================================

@pytest.mark.django_db
class TestCreateAppointment:

    def test_manual_appointment(self, worker, tomorrow):
        result = create_appointment(
            worker, lead_name='Best Plumbing', lead_phone='+15551230000', scheduled_at=tomorrow,
            selected_plan='pro', negotiated_price='199.5', notes='owner only after 5pm',
        )

        appointment = Appointment.objects.get(id=result['id'])
        assert result['success'] is True
        assert appointment.status == Appointment.STATUS_SCHEDULED
        assert appointment.outcome == Appointment.OUTCOME_MANUAL
        assert appointment.created_by == worker
        assert appointment.created_by_name == 'Alice'
        assert appointment.negotiated_price == Decimal('199.50')
        assert appointment.lead is None

    def test_from_lead_flags_latest_call(self, worker, make_lead, tomorrow):
        lead = make_lead(name='Acme Roofing')
        older = CallSession.objects.create(
            lead=lead, user=worker, outcome=constants.OUTCOME_NO_ANSWER,
            start_time=timezone.now() - timedelta(days=1),
        )
        latest = CallSession.objects.create(lead=lead, user=worker, outcome=constants.OUTCOME_INTERESTED)

        result = create_appointment(worker, lead_id=lead.id, scheduled_at=tomorrow, outcome='interested')

        appointment = Appointment.objects.get(id=result['id'])
        assert appointment.lead == lead
        assert appointment.lead_phone == lead.phone
        assert appointment.lead_name == 'Acme Roofing'
        latest.refresh_from_db()
        older.refresh_from_db()
        assert latest.appointment_created is True
        assert older.appointment_created is False

    def test_phone_required(self, worker, tomorrow):
        with pytest.raises(ValidationError):
            create_appointment(worker, lead_name='No Phone', scheduled_at=tomorrow)

    def test_date_required(self, worker):
        with pytest.raises(ValidationError):
            create_appointment(worker, lead_phone='+15551230000')

    def test_invalid_outcome(self, worker, tomorrow):
        with pytest.raises(ValidationError):
            create_appointment(worker, lead_phone='+15551230000', scheduled_at=tomorrow, outcome='dnc')

    def test_invalid_price(self, worker, tomorrow):
        with pytest.raises(ValidationError):
            create_appointment(worker, lead_phone='+15551230000', scheduled_at=tomorrow, negotiated_price='cheap')

    @pytest.mark.parametrize('price', ['1e30', 'NaN', 'Infinity', '-5'])
    def test_out_of_range_price(self, worker, tomorrow, price):
        """Test prices the column cannot store are rejected before the insert"""
        with pytest.raises(ValidationError):
            create_appointment(worker, lead_phone='+15551230000', scheduled_at=tomorrow, negotiated_price=price)

        assert not Appointment.objects.exists()

    def test_unknown_lead(self, worker, tomorrow):
        with pytest.raises(NotFoundError):
            create_appointment(worker, lead_id=31337, scheduled_at=tomorrow)


# ============================================================================
# TEST: appointment lifecycle
# ============================================================================

@pytest.mark.django_db
class TestAppointmentLifecycle:

    @pytest.mark.parametrize('status', ['completed', 'cancelled'])
    def test_scheduled_can_move(self, admin_worker, make_appointment, status):
        appointment = make_appointment()

        assert update_appointment(admin_worker, appointment.id, status) == {'success': True}

        appointment.refresh_from_db()
        assert appointment.status == status

    @pytest.mark.parametrize('start', ['completed', 'cancelled'])
    def test_terminal_statuses_are_final(self, admin_worker, make_appointment, start):
        appointment = make_appointment(status=start)

        with pytest.raises(ValidationError):
            update_appointment(admin_worker, appointment.id, 'completed' if start == 'cancelled' else 'cancelled')

        appointment.refresh_from_db()
        assert appointment.status == start

    def test_cannot_move_back_to_scheduled(self, admin_worker, make_appointment):
        appointment = make_appointment()

        with pytest.raises(ValidationError):
            update_appointment(admin_worker, appointment.id, 'scheduled')

    def test_worker_cannot_update(self, worker, make_appointment):
        appointment = make_appointment()

        with pytest.raises(AuthorizationError):
            update_appointment(worker, appointment.id, 'completed')

    def test_unknown_appointment(self, admin_worker):
        with pytest.raises(NotFoundError):
            update_appointment(admin_worker, 5555, 'completed')

    def test_list_newest_schedule_first(self, admin_worker, make_appointment):
        soon = make_appointment(scheduled_at=timezone.now() + timedelta(days=1))
        later = make_appointment(scheduled_at=timezone.now() + timedelta(days=9))
        make_appointment(deleted_at=timezone.now())

        result = list_appointments(admin_worker)

        assert [a['id'] for a in result] == [later.id, soon.id]

    def test_list_trashed(self, admin_worker, make_appointment):
        make_appointment()
        trashed = make_appointment(deleted_at=timezone.now())

        result = list_appointments(admin_worker, show_trashed=True)

        assert [a['id'] for a in result] == [trashed.id]

    def test_worker_cannot_list(self, worker):
        with pytest.raises(AuthorizationError):
            list_appointments(worker)

    def test_status_update_audited(self, admin_worker, make_appointment, django_capture_on_commit_callbacks):
        appointment = make_appointment()

        with django_capture_on_commit_callbacks(execute=True):
            update_appointment(admin_worker, appointment.id, 'completed')

        entry = AdminAuditLog.objects.get()
        assert entry.action == 'update_appointment'
        assert entry.details == {'from': 'scheduled', 'to': 'completed'}


# ============================================================================
# TEST: TrashManager
# ============================================================================

@pytest.mark.django_db
class TestTrashManager:

    def test_admin_only(self, worker):
        with pytest.raises(AuthorizationError):
            TrashManager('leads', worker)

    def test_worker_with_unknown_entity_type_is_forbidden(self, worker):
        """Test the admin check runs before the entity type is looked at"""
        with pytest.raises(AuthorizationError):
            TrashManager('workers', worker)

    def test_invalid_entity_type(self, admin_worker):
        with pytest.raises(ValidationError):
            TrashManager('users', admin_worker)

    def test_trash_and_restore_lead(self, admin_worker, worker, make_lead):
        lead = make_lead()
        manager = TrashManager('leads', admin_worker)

        assert manager.trash([lead.id]) == {'success': True, 'count': 1}
        assert manager.trashed_count() == 1
        assert request_next(worker) is None

        assert manager.restore([lead.id]) == {'success': True, 'count': 1}
        assert manager.trashed_count() == 0
        assert request_next(worker)['id'] == lead.id

    def test_trash_skips_already_trashed(self, admin_worker, make_appointment):
        appointment = make_appointment(deleted_at=timezone.now())

        assert TrashManager('appointments', admin_worker).trash([appointment.id])['count'] == 0

    def test_empty_selection(self, admin_worker):
        with pytest.raises(ValidationError):
            TrashManager('calls', admin_worker).trash([])

    @pytest.mark.parametrize('phrase', [None, '', 'delete', 'DELETE ALL LEADS'])
    def test_permanent_delete_needs_phrase(self, admin_worker, make_appointment, phrase):
        appointment = make_appointment(deleted_at=timezone.now())

        with pytest.raises(ConfirmationMismatchError):
            TrashManager('appointments', admin_worker).permanent_delete([appointment.id], phrase)

        assert Appointment.objects.filter(id=appointment.id).exists()

    def test_permanent_delete_only_trashed_rows(self, admin_worker, make_appointment):
        live = make_appointment()
        trashed = make_appointment(deleted_at=timezone.now())

        result = TrashManager('appointments', admin_worker).permanent_delete(
            [live.id, trashed.id], constants.PERMANENT_DELETE_CONFIRMATION
        )

        assert result == {'success': True, 'count': 1}
        assert list(Appointment.objects.values_list('id', flat=True)) == [live.id]

    def test_permanent_delete_lead_keeps_calls(self, admin_worker, worker, make_lead):
        lead = make_lead(deleted_at=timezone.now())
        call = CallSession.objects.create(lead=lead, user=worker, outcome=constants.OUTCOME_NO_ANSWER)

        TrashManager('leads', admin_worker).permanent_delete([lead.id], constants.PERMANENT_DELETE_CONFIRMATION)

        assert not Lead.objects.filter(id=lead.id).exists()
        call.refresh_from_db()
        assert call.lead is None

    def test_bulk_delete_by_age(self, admin_worker, worker, make_lead):
        now = timezone.now()
        old = CallSession.objects.create(user=worker, outcome=constants.OUTCOME_NO_ANSWER)
        recent = CallSession.objects.create(user=worker, outcome=constants.OUTCOME_NO_ANSWER)
        live = CallSession.objects.create(user=worker, outcome=constants.OUTCOME_NO_ANSWER)
        _age(CallSession, old, deleted_at=now - timedelta(days=40))
        _age(CallSession, recent, deleted_at=now - timedelta(days=2))

        result = TrashManager('calls', admin_worker).bulk_action('older-30', constants.PERMANENT_DELETE_CONFIRMATION)

        assert result == {'success': True, 'count': 1}
        assert set(CallSession.objects.values_list('id', flat=True)) == {recent.id, live.id}

    def test_bulk_delete_all(self, admin_worker, make_appointment):
        make_appointment(deleted_at=timezone.now())
        make_appointment(deleted_at=timezone.now())
        live = make_appointment()

        result = TrashManager('appointments', admin_worker).bulk_action('all', constants.PERMANENT_DELETE_CONFIRMATION)

        assert result['count'] == 2
        assert list(Appointment.objects.values_list('id', flat=True)) == [live.id]

    def test_bulk_trash_by_age(self, admin_worker, make_lead):
        now = timezone.now()
        stale = make_lead(created_at=now - timedelta(days=100))
        fresh = make_lead(created_at=now - timedelta(days=3))

        result = TrashManager('leads', admin_worker).bulk_action(
            'older-90', constants.PERMANENT_DELETE_CONFIRMATION, operation='trash'
        )

        assert result['count'] == 1
        stale.refresh_from_db()
        fresh.refresh_from_db()
        assert stale.deleted_at is not None
        assert fresh.deleted_at is None
        assert Lead.objects.count() == 2

    def test_bulk_wrong_phrase(self, admin_worker, make_appointment):
        make_appointment(deleted_at=timezone.now())

        with pytest.raises(ConfirmationMismatchError):
            TrashManager('appointments', admin_worker).bulk_action('all', 'yes')

        assert Appointment.objects.count() == 1

    def test_bulk_invalid_scope(self, admin_worker):
        with pytest.raises(ValidationError):
            TrashManager('leads', admin_worker).bulk_action('older-1000', constants.PERMANENT_DELETE_CONFIRMATION)

    def test_bulk_invalid_operation(self, admin_worker):
        with pytest.raises(ValidationError):
            TrashManager('leads', admin_worker).bulk_action('all', constants.PERMANENT_DELETE_CONFIRMATION, operation='archive')

    def test_trash_audited(self, admin_worker, make_lead, django_capture_on_commit_callbacks):
        lead = make_lead()

        with django_capture_on_commit_callbacks(execute=True):
            TrashManager('leads', admin_worker).trash([lead.id])

        entry = AdminAuditLog.objects.get()
        assert entry.action == 'trash'
        assert entry.entity_type == 'leads'
        assert entry.details == {'ids': [lead.id], 'count': 1}


# ============================================================================
# TEST: action endpoint
# ============================================================================

@pytest.mark.django_db
class TestAppointmentsApi:

    def test_worker_creates_appointment(self, worker_client, tomorrow):
        response = _post(worker_client, 'create-appointment', {
            'leadName': 'Acme Roofing',
            'leadPhone': '+15550001111',
            'scheduledAt': tomorrow,
            'outcome': 'followup',
            'negotiatedPrice': 250,
        })

        assert response.status_code == 200
        body = json.loads(response.content)
        assert body['success'] is True
        assert Appointment.objects.get(id=body['id']).outcome == 'followup'

    def test_worker_cannot_list(self, worker_client):
        response = worker_client.get(API, {'action': 'appointments'})

        assert response.status_code == 403

    def test_admin_lists_and_updates(self, admin_api_client, make_appointment):
        appointment = make_appointment()

        response = admin_api_client.get(API, {'action': 'appointments'})
        assert [a['id'] for a in json.loads(response.content)['appointments']] == [appointment.id]

        response = _post(admin_api_client, 'update-appointment', {'appointmentId': appointment.id, 'status': 'cancelled'})
        assert json.loads(response.content) == {'success': True}

        response = _post(admin_api_client, 'update-appointment', {'appointmentId': appointment.id, 'status': 'completed'})
        assert response.status_code == 400

    def test_trash_flow(self, admin_api_client, make_appointment):
        appointment = make_appointment()

        response = _post(admin_api_client, 'trash-items', {'entityType': 'appointments', 'ids': [appointment.id]})
        assert json.loads(response.content) == {'success': True, 'count': 1}

        response = admin_api_client.get(API, {'action': 'trashed-count', 'entityType': 'appointments'})
        assert json.loads(response.content) == {'count': 1}

        response = admin_api_client.get(API, {'action': 'appointments', 'showTrashed': 'true'})
        assert len(json.loads(response.content)['appointments']) == 1

        response = _post(admin_api_client, 'restore-items', {'entityType': 'appointments', 'ids': [appointment.id]})
        assert json.loads(response.content)['count'] == 1

        _post(admin_api_client, 'trash-items', {'entityType': 'appointments', 'ids': [appointment.id]})
        response = _post(admin_api_client, 'permanent-delete', {
            'entityType': 'appointments', 'ids': [appointment.id], 'confirmation': 'nope',
        })
        assert response.status_code == 400
        assert Appointment.objects.count() == 1

        response = _post(admin_api_client, 'permanent-delete', {
            'entityType': 'appointments', 'ids': [appointment.id], 'confirmation': 'DELETE',
        })
        assert json.loads(response.content) == {'success': True, 'count': 1}
        assert Appointment.objects.count() == 0

    def test_bulk_delete_endpoint(self, admin_api_client, make_lead):
        make_lead(deleted_at=timezone.now())

        response = _post(admin_api_client, 'bulk-delete', {
            'entityType': 'leads', 'bulkAction': 'all', 'confirmation': 'DELETE',
        })

        assert json.loads(response.content) == {'success': True, 'count': 1}
        assert Lead.objects.count() == 0

    def test_trash_invalid_entity(self, admin_api_client):
        response = _post(admin_api_client, 'trash-items', {'entityType': 'workers', 'ids': [1]})

        assert response.status_code == 400

    def test_worker_with_unknown_entity_type_gets_403(self, worker_client):
        response = _post(worker_client, 'trash-items', {'entityType': 'workers', 'ids': [1]})

        assert response.status_code == 403
        assert json.loads(response.content) == {'error': 'Admin access required'}

    def test_worker_cannot_trash(self, worker_client, make_lead):
        lead = make_lead()

        response = _post(worker_client, 'trash-items', {'entityType': 'leads', 'ids': [lead.id]})

        assert response.status_code == 403
        lead.refresh_from_db()
        assert lead.deleted_at is None


# ============================================================================
# TEST: django admin
# ============================================================================

@pytest.mark.django_db
def test_appointment_changelist_renders(admin_client, make_appointment):
    make_appointment()

    response = admin_client.get('/admin/appointments/appointment/')

    assert response.status_code == 200
