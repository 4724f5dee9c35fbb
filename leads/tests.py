"""
Tests for the lead queue

Tests cover:
- Atomic assignment, FIFO order and history exclusion
- Lazy lease reclaim
- Outcome transitions and attempt counting
- Follow-up queue
- Admin lead operations and master clear
- Request throttle (Redis mocked)
- Action endpoint and session login
- Audit logging
"""

import threading
import pytest
import orjson as json
import redis
from datetime import timedelta
from unittest.mock import patch
from kombu.exceptions import OperationalError
from django.db import connection
from django.utils import timezone

from telemarketing import constants
from leads.models import AdminAuditLog, CallSession, Lead, LeadUpload, WorkerLeadHistory
from leads.exceptions import (
    AuthorizationError,
    ConfirmationMismatchError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)
from leads.assignment import current_lead, request_next
from leads.outcomes import complete_call, next_status
from leads.followups import clear_all_followups, delete_followup, list_followups
from leads.admin_actions import all_leads, delete_lead, lead_calls, lead_stats, master_clear_leads
from leads.utils import acquire_request_next_slot


API = '/api/leads/'


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def held_lead(make_lead, worker):
    """Lead currently leased to `worker`"""
    now = timezone.now()
    return make_lead(
        status=constants.LEAD_STATUS_ASSIGNED,
        assigned_to=worker,
        assigned_at=now,
        locked_until=now + timedelta(minutes=30),
    )


@pytest.fixture
def mock_logger():
    """Mock logger"""
    with patch('leads.utils.logger') as mock:
        yield mock


def _post(client, action, payload):
    return client.post(f'{API}?action={action}', payload, content_type='application/json')


# ============================================================================
# TEST: request_next
# ============================================================================

@pytest.mark.django_db
class TestRequestNext:

    def test_assigns_oldest_new_lead(self, worker, make_lead):
        """Test leads are handed out oldest first"""
        first = make_lead()
        make_lead()

        result = request_next(worker)

        assert result['id'] == first.id
        first.refresh_from_db()
        assert first.status == constants.LEAD_STATUS_ASSIGNED
        assert first.assigned_to == worker
        assert first.assigned_at is not None
        assert WorkerLeadHistory.objects.filter(worker=worker, lead=first).exists()

    def test_lease_uses_configured_ttl(self, worker, make_lead, settings):
        """Test locked_until is now + LEAD_LEASE_TTL"""
        settings.LEAD_LEASE_TTL = 600
        lead = make_lead()

        request_next(worker)

        lead.refresh_from_db()
        assert lead.locked_until - lead.assigned_at == timedelta(seconds=600)

    def test_public_fields_only(self, worker, make_lead):
        """Test the lease fields are never returned to a worker"""
        make_lead(email='owner@example.com', website='example.com', category='roofing')

        result = request_next(worker)

        assert set(result) == {'id', 'name', 'phone', 'email', 'website', 'attempt_count', 'category'}
        assert result['category'] == 'roofing'

    def test_missing_name_gets_placeholder(self, worker, make_lead):
        make_lead(name=None)

        result = request_next(worker)

        assert result['name'] == constants.EMPTY_NAME_PLACEHOLDER

    def test_empty_queue_returns_none(self, worker):
        """Test an empty pool is not an error"""
        assert request_next(worker) is None

    def test_category_filter(self, worker, make_lead):
        make_lead(category='hvac')
        roofing = make_lead(category='roofing')

        result = request_next(worker, category='roofing')

        assert result['id'] == roofing.id

    def test_category_with_no_match(self, worker, make_lead):
        make_lead(category='hvac')

        assert request_next(worker, category='plumbing') is None

    def test_history_excluded(self, worker, make_lead):
        """Test a worker never gets a lead already in their history"""
        seen = make_lead()
        fresh = make_lead()
        WorkerLeadHistory.objects.create(worker=worker, lead=seen)

        result = request_next(worker)

        assert result['id'] == fresh.id

    def test_history_excluded_even_when_only_lead_left(self, worker, make_lead):
        seen = make_lead()
        WorkerLeadHistory.objects.create(worker=worker, lead=seen)

        assert request_next(worker) is None

    def test_requeued_lead_not_served_back_to_same_worker(self, worker, other_worker, make_lead):
        """Test a lead requeued to NEW by a call outcome skips the worker who called it"""
        lead = make_lead()
        assert request_next(worker)['id'] == lead.id

        result = complete_call(lead.id, worker, constants.OUTCOME_NO_ANSWER)
        assert result['newStatus'] == constants.LEAD_STATUS_NEW

        assert request_next(worker) is None
        assert request_next(other_worker)['id'] == lead.id

    def test_terminal_leads_skipped(self, worker, make_lead):
        make_lead(status=constants.LEAD_STATUS_DNC)
        make_lead(status=constants.LEAD_STATUS_COMPLETED)

        assert request_next(worker) is None

    def test_trashed_leads_skipped(self, worker, make_lead):
        make_lead(deleted_at=timezone.now())

        assert request_next(worker) is None

    def test_actively_held_lead_not_reassigned(self, other_worker, held_lead):
        assert request_next(other_worker) is None

        held_lead.refresh_from_db()
        assert held_lead.status == constants.LEAD_STATUS_ASSIGNED

    def test_expired_lease_reclaimed(self, worker, other_worker, make_lead):
        """Test an ASSIGNED lead past locked_until goes to the next requester"""
        now = timezone.now()
        stale = make_lead(
            status=constants.LEAD_STATUS_ASSIGNED,
            assigned_to=other_worker,
            assigned_at=now - timedelta(hours=2),
            locked_until=now - timedelta(minutes=1),
        )

        result = request_next(worker)

        assert result['id'] == stale.id
        stale.refresh_from_db()
        assert stale.assigned_to == worker
        assert stale.locked_until > now

    def test_suspended_worker_rejected(self, make_worker, make_lead):
        suspended = make_worker('dave', status='suspended', suspension_reason='Too many complaints')
        make_lead()

        with pytest.raises(AuthorizationError) as exc:
            request_next(suspended)

        assert exc.value.message == 'Too many complaints'
        assert not WorkerLeadHistory.objects.exists()


# ============================================================================
# TEST: concurrent assignment
# ============================================================================

@pytest.mark.django_db(transaction=True)
class TestConcurrentAssignment:

    def test_single_lead_goes_to_exactly_one_worker(self, make_worker, make_lead):
        """Test N simultaneous requests for one lead produce one winner"""
        workers = [make_worker(f'caller{i}') for i in range(4)]
        lead = make_lead()
        barrier = threading.Barrier(len(workers))
        results = []
        errors = []

        def claim(w):
            try:
                barrier.wait()
                results.append(request_next(w))
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=claim, args=(w,)) for w in workers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        winners = [r for r in results if r is not None]
        assert len(results) == len(workers)
        assert len(winners) == 1
        assert winners[0]['id'] == lead.id
        assert WorkerLeadHistory.objects.filter(lead=lead).count() == 1

    def test_two_leads_two_workers_no_overlap(self, make_worker, make_lead):
        workers = [make_worker(f'caller{i}') for i in range(2)]
        make_lead()
        make_lead()
        barrier = threading.Barrier(len(workers))
        results = []

        def claim(w):
            try:
                barrier.wait()
                results.append(request_next(w))
            finally:
                connection.close()

        threads = [threading.Thread(target=claim, args=(w,)) for w in workers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        ids = [r['id'] for r in results if r is not None]
        assert len(ids) == 2
        assert len(set(ids)) == 2


# ============================================================================
# TEST: current_lead
# ============================================================================

@pytest.mark.django_db
class TestCurrentLead:

    def test_returns_held_lead(self, worker, held_lead):
        assert current_lead(worker)['id'] == held_lead.id

    def test_none_when_nothing_held(self, worker, make_lead):
        make_lead()
        assert current_lead(worker) is None

    def test_expired_lease_not_current(self, worker, held_lead):
        held_lead.locked_until = timezone.now() - timedelta(seconds=1)
        held_lead.save()

        assert current_lead(worker) is None

    def test_other_workers_lead_not_current(self, other_worker, held_lead):
        assert current_lead(other_worker) is None


# ============================================================================
# TEST: complete_call
# ============================================================================

@pytest.mark.django_db
class TestCompleteCall:

    def test_records_call_and_releases_lease(self, worker, held_lead):
        result = complete_call(held_lead.id, worker, constants.OUTCOME_NO_ANSWER, notes='rang out', duration_seconds=90)

        assert result == {'success': True, 'newStatus': constants.LEAD_STATUS_NEW}
        held_lead.refresh_from_db()
        assert held_lead.assigned_to is None
        assert held_lead.locked_until is None
        assert held_lead.attempt_count == 1

        call = CallSession.objects.get(lead=held_lead)
        assert call.user == worker
        assert call.outcome == constants.OUTCOME_NO_ANSWER
        assert call.notes == 'rang out'
        assert call.duration_seconds == 90
        assert call.to_number == held_lead.phone
        assert call.followup_at is None
        elapsed = (timezone.now() - call.start_time).total_seconds()
        assert 89 <= elapsed < 100

    def test_attempts_increase_by_one_each_time(self, worker, other_worker, make_lead):
        """Test attempt_count goes up by exactly one per completion"""
        lead = make_lead()

        request_next(worker)
        complete_call(lead.id, worker, constants.OUTCOME_VOICEMAIL)
        lead.refresh_from_db()
        assert lead.attempt_count == 1

        request_next(other_worker)
        complete_call(lead.id, other_worker, constants.OUTCOME_VOICEMAIL)
        lead.refresh_from_db()
        assert lead.attempt_count == 2

    def test_dnc_is_terminal(self, worker, other_worker, held_lead):
        result = complete_call(held_lead.id, worker, constants.OUTCOME_DNC)

        assert result['newStatus'] == constants.LEAD_STATUS_DNC
        assert request_next(other_worker) is None

    def test_interested_completes_lead(self, worker, held_lead):
        result = complete_call(held_lead.id, worker, constants.OUTCOME_INTERESTED)

        assert result['newStatus'] == constants.LEAD_STATUS_COMPLETED

    def test_followup_stores_schedule(self, worker, held_lead):
        when = timezone.now() + timedelta(days=1)

        result = complete_call(
            held_lead.id, worker, constants.OUTCOME_FOLLOWUP,
            followup_at=when.isoformat(), followup_priority='high', followup_notes='call after lunch',
        )

        assert result['newStatus'] == constants.LEAD_STATUS_NEW
        call = CallSession.objects.get(lead=held_lead)
        assert abs((call.followup_at - when).total_seconds()) < 1
        assert call.followup_priority == 'high'
        assert call.followup_notes == 'call after lunch'

    def test_followup_fields_ignored_for_other_outcomes(self, worker, held_lead):
        complete_call(
            held_lead.id, worker, constants.OUTCOME_NO_ANSWER,
            followup_at=(timezone.now() + timedelta(days=1)).isoformat(), followup_priority='low',
        )

        call = CallSession.objects.get(lead=held_lead)
        assert call.followup_at is None
        assert call.followup_priority is None

    def test_followup_requires_date(self, worker, held_lead):
        with pytest.raises(ValidationError) as exc:
            complete_call(held_lead.id, worker, constants.OUTCOME_FOLLOWUP)

        assert exc.value.message == 'Select Follow-up Date'
        assert not CallSession.objects.exists()

    def test_followup_date_must_be_future(self, worker, held_lead):
        with pytest.raises(ValidationError) as exc:
            complete_call(
                held_lead.id, worker, constants.OUTCOME_FOLLOWUP,
                followup_at=(timezone.now() - timedelta(hours=1)).isoformat(),
            )

        assert exc.value.message == 'Follow-up date must be in the future'

    def test_unparseable_followup_date(self, worker, held_lead):
        with pytest.raises(ValidationError):
            complete_call(held_lead.id, worker, constants.OUTCOME_FOLLOWUP, followup_at='next tuesday')

    def test_invalid_outcome(self, worker, held_lead):
        with pytest.raises(ValidationError) as exc:
            complete_call(held_lead.id, worker, 'hung_up')

        assert exc.value.message == 'Invalid outcome'

    def test_invalid_priority(self, worker, held_lead):
        with pytest.raises(ValidationError):
            complete_call(
                held_lead.id, worker, constants.OUTCOME_FOLLOWUP,
                followup_at=(timezone.now() + timedelta(days=1)).isoformat(), followup_priority='urgent',
            )

    @pytest.mark.parametrize('duration', [-1, 'abc', 2.5, True, 10 ** 12, float('inf')])
    def test_invalid_duration(self, worker, held_lead, duration):
        with pytest.raises(ValidationError):
            complete_call(held_lead.id, worker, constants.OUTCOME_NO_ANSWER, duration_seconds=duration)

    def test_unknown_lead(self, worker):
        with pytest.raises(NotFoundError):
            complete_call(999999, worker, constants.OUTCOME_NO_ANSWER)

    def test_lead_held_by_someone_else(self, other_worker, held_lead):
        with pytest.raises(AuthorizationError):
            complete_call(held_lead.id, other_worker, constants.OUTCOME_NO_ANSWER)

        held_lead.refresh_from_db()
        assert held_lead.attempt_count == 0
        assert not CallSession.objects.exists()

    def test_retryable_outcome_requeues_below_threshold(self, worker, held_lead, settings):
        settings.LEAD_MAX_ATTEMPTS = 3
        held_lead.attempt_count = 1
        held_lead.save()

        result = complete_call(held_lead.id, worker, constants.OUTCOME_WRONG_NUMBER)

        assert result['newStatus'] == constants.LEAD_STATUS_NEW

    def test_retryable_outcome_completes_at_threshold(self, worker, held_lead, settings):
        settings.LEAD_MAX_ATTEMPTS = 3
        held_lead.attempt_count = 2
        held_lead.save()

        result = complete_call(held_lead.id, worker, constants.OUTCOME_NOT_INTERESTED)

        assert result['newStatus'] == constants.LEAD_STATUS_COMPLETED

    def test_per_lead_max_attempts_override(self, worker, held_lead, settings):
        settings.LEAD_MAX_ATTEMPTS = 5
        held_lead.max_attempts = 1
        held_lead.save()

        result = complete_call(held_lead.id, worker, constants.OUTCOME_VOICEMAIL)

        assert result['newStatus'] == constants.LEAD_STATUS_COMPLETED

    @pytest.mark.parametrize('outcome', list(constants.RETRYABLE_OUTCOMES))
    def test_every_retryable_outcome_requeues(self, worker, held_lead, outcome):
        result = complete_call(held_lead.id, worker, outcome)

        assert result['newStatus'] == constants.LEAD_STATUS_NEW

    def test_next_status_rejects_unknown_outcome(self, held_lead):
        with pytest.raises(ValidationError):
            next_status(held_lead, 'hung_up')

    def test_followup_ignores_threshold(self, worker, held_lead, settings):
        settings.LEAD_MAX_ATTEMPTS = 1

        result = complete_call(
            held_lead.id, worker, constants.OUTCOME_FOLLOWUP,
            followup_at=(timezone.now() + timedelta(days=2)).isoformat(),
        )

        assert result['newStatus'] == constants.LEAD_STATUS_NEW


# ============================================================================
# TEST: worker A / worker B walkthrough
# ============================================================================

@pytest.mark.django_db
class TestTwoWorkerScenario:

    def test_followup_then_dnc(self, worker, other_worker, make_lead):
        lead = make_lead()

        # A takes the only lead, B finds nothing
        assert request_next(worker)['id'] == lead.id
        assert request_next(other_worker) is None

        followup_at = timezone.now() + timedelta(days=1)
        result = complete_call(lead.id, worker, constants.OUTCOME_FOLLOWUP, followup_at=followup_at)
        assert result == {'success': True, 'newStatus': constants.LEAD_STATUS_NEW}

        queue = list_followups(worker)
        assert len(queue) == 1
        assert queue[0]['lead_id'] == lead.id
        assert queue[0]['followup_at'] == followup_at.isoformat()

        # the lease was released so B gets it now
        assert request_next(other_worker)['id'] == lead.id
        assert complete_call(lead.id, other_worker, constants.OUTCOME_DNC)['newStatus'] == constants.LEAD_STATUS_DNC

        assert request_next(worker) is None
        assert request_next(other_worker) is None


# ============================================================================
# TEST: follow-up queue
# ============================================================================

@pytest.mark.django_db
class TestFollowups:

    @pytest.fixture
    def followup_call(self, make_lead):
        def _followup_call(user, days=1, **kwargs):
            lead = make_lead()
            return CallSession.objects.create(
                lead=lead,
                user=user,
                to_number=lead.phone,
                outcome=constants.OUTCOME_FOLLOWUP,
                followup_at=timezone.now() + timedelta(days=days),
                followup_priority='medium',
                **kwargs,
            )
        return _followup_call

    def test_own_scope_default_for_workers(self, worker, other_worker, followup_call):
        mine = followup_call(worker)
        followup_call(other_worker)

        result = list_followups(worker)

        assert [f['id'] for f in result] == [mine.id]

    def test_all_scope_default_for_admins(self, worker, other_worker, admin_worker, followup_call):
        followup_call(worker)
        followup_call(other_worker)

        assert len(list_followups(admin_worker)) == 2

    def test_worker_cannot_see_all(self, worker):
        with pytest.raises(AuthorizationError):
            list_followups(worker, constants.SCOPE_ALL)

    def test_invalid_scope(self, worker):
        with pytest.raises(ValidationError):
            list_followups(worker, 'team')

    def test_ordered_soonest_first(self, worker, followup_call):
        later = followup_call(worker, days=5)
        sooner = followup_call(worker, days=1)

        result = list_followups(worker)

        assert [f['id'] for f in result] == [sooner.id, later.id]

    def test_joined_display_fields(self, worker, followup_call):
        call = followup_call(worker)

        entry = list_followups(worker)[0]

        assert entry['lead_name'] == call.lead.name
        assert entry['lead_phone'] == call.lead.phone
        assert entry['caller_name'] == 'Alice'
        assert entry['followup_priority'] == 'medium'

    def test_trashed_calls_hidden(self, worker, followup_call):
        followup_call(worker, deleted_at=timezone.now())

        assert list_followups(worker) == []

    def test_delete_keeps_call(self, worker, admin_worker, followup_call):
        """Test clearing a follow-up leaves the call in the lead's history"""
        call = followup_call(worker)

        assert delete_followup(worker, call.id) == {'success': True}

        call.refresh_from_db()
        assert call.followup_at is None
        assert call.followup_priority is None
        assert call.followup_notes is None
        assert list_followups(worker) == []
        calls = lead_calls(admin_worker, call.lead_id)['calls']
        assert [c['id'] for c in calls] == [call.id]

    def test_delete_other_workers_followup_forbidden(self, worker, other_worker, followup_call):
        call = followup_call(other_worker)

        with pytest.raises(AuthorizationError):
            delete_followup(worker, call.id)

        call.refresh_from_db()
        assert call.followup_at is not None

    def test_admin_can_delete_any(self, worker, admin_worker, followup_call):
        call = followup_call(worker)

        delete_followup(admin_worker, call.id)

        call.refresh_from_db()
        assert call.followup_at is None

    def test_delete_unknown(self, worker):
        with pytest.raises(NotFoundError):
            delete_followup(worker, 424242)

    def test_clear_all_own(self, worker, other_worker, followup_call):
        followup_call(worker)
        followup_call(worker)
        theirs = followup_call(other_worker)

        result = clear_all_followups(worker)

        assert result == {'success': True, 'count': 2}
        theirs.refresh_from_db()
        assert theirs.followup_at is not None
        assert CallSession.objects.count() == 3


# ============================================================================
# TEST: admin lead operations
# ============================================================================

@pytest.mark.django_db
class TestAdminActions:

    def test_non_admin_rejected(self, worker):
        with pytest.raises(AuthorizationError):
            lead_stats(worker)
        with pytest.raises(AuthorizationError):
            all_leads(worker)

    def test_all_leads_paginates(self, admin_worker, make_lead):
        for _ in range(5):
            make_lead()

        result = all_leads(admin_worker, page='2', page_size='2')

        assert result['total'] == 5
        assert result['page'] == 2
        assert len(result['leads']) == 2

    def test_all_leads_page_size_clamped(self, admin_worker, make_lead, settings):
        settings.LEADS_PAGE_SIZE_MAX = 3
        for _ in range(5):
            make_lead()

        result = all_leads(admin_worker, page_size=1000)

        assert len(result['leads']) == 3

    def test_all_leads_search(self, admin_worker, make_lead):
        make_lead(name='Acme Roofing')
        make_lead(name='Best Plumbing')

        result = all_leads(admin_worker, search='roof')

        assert result['total'] == 1
        assert result['leads'][0]['name'] == 'Acme Roofing'

    def test_all_leads_bad_page(self, admin_worker):
        with pytest.raises(ValidationError):
            all_leads(admin_worker, page='zero')

    def test_lead_calls_excludes_trashed(self, admin_worker, worker, held_lead):
        kept = CallSession.objects.create(lead=held_lead, user=worker, outcome=constants.OUTCOME_NO_ANSWER)
        CallSession.objects.create(
            lead=held_lead, user=worker, outcome=constants.OUTCOME_VOICEMAIL, deleted_at=timezone.now()
        )

        calls = lead_calls(admin_worker, held_lead.id)['calls']

        assert [c['id'] for c in calls] == [kept.id]

    def test_lead_calls_unknown_lead(self, admin_worker):
        with pytest.raises(NotFoundError):
            lead_calls(admin_worker, 123456)

    @pytest.mark.parametrize('lead_id', ['abc', '1.5', None])
    def test_lead_calls_malformed_id(self, admin_worker, lead_id):
        with pytest.raises(NotFoundError):
            lead_calls(admin_worker, lead_id)

    def test_delete_lead_keeps_calls(self, admin_worker, worker, held_lead):
        call = CallSession.objects.create(lead=held_lead, user=worker, outcome=constants.OUTCOME_NO_ANSWER)

        assert delete_lead(admin_worker, held_lead.id) == {'success': True}

        assert not Lead.objects.filter(id=held_lead.id).exists()
        call.refresh_from_db()
        assert call.lead is None

    def test_stats(self, admin_worker, make_lead):
        make_lead()
        make_lead()
        make_lead(status=constants.LEAD_STATUS_DNC)
        make_lead(status=constants.LEAD_STATUS_COMPLETED)
        make_lead(deleted_at=timezone.now())

        stats = lead_stats(admin_worker)['stats']

        assert stats == {'total': 4, 'new': 2, 'assigned': 0, 'completed': 1, 'dnc': 1}


@pytest.mark.django_db
class TestMasterClear:

    @pytest.fixture
    def populated(self, worker, make_lead):
        upload = LeadUpload.objects.create(filename='roofers.csv', imported_count=2)
        leads = [make_lead(upload=upload), make_lead(upload=upload)]
        request_next(worker)
        call = CallSession.objects.create(lead=leads[0], user=worker, outcome=constants.OUTCOME_NO_ANSWER)
        return leads, call

    @pytest.mark.parametrize('phrase', [None, '', 'delete all leads', 'DELETE', 'DELETE ALL LEADS '])
    def test_wrong_phrase_changes_nothing(self, admin_worker, populated, phrase):
        with pytest.raises(ConfirmationMismatchError):
            master_clear_leads(admin_worker, phrase, clear_history=True)

        assert Lead.objects.count() == 2
        assert WorkerLeadHistory.objects.count() == 1
        assert LeadUpload.objects.count() == 1
        assert CallSession.objects.filter(lead__isnull=False).count() == 1

    def test_clears_leads_and_keeps_calls(self, admin_worker, populated):
        _, call = populated

        result = master_clear_leads(admin_worker, constants.MASTER_CLEAR_CONFIRMATION)

        assert result == {'leadsDeleted': 2}
        assert Lead.objects.count() == 0
        assert WorkerLeadHistory.objects.count() == 0
        assert LeadUpload.objects.count() == 1
        call.refresh_from_db()
        assert call.lead is None

    def test_clear_history_removes_uploads(self, admin_worker, populated):
        master_clear_leads(admin_worker, constants.MASTER_CLEAR_CONFIRMATION, clear_history=True)

        assert LeadUpload.objects.count() == 0

    def test_worker_cannot_clear(self, worker, populated):
        with pytest.raises(AuthorizationError):
            master_clear_leads(worker, constants.MASTER_CLEAR_CONFIRMATION)

        assert Lead.objects.count() == 2


# ============================================================================
# TEST: audit log
# ============================================================================

@pytest.mark.django_db
class TestAuditLog:

    def test_delete_lead_audited_on_commit(self, admin_worker, make_lead, django_capture_on_commit_callbacks):
        lead = make_lead()

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            delete_lead(admin_worker, lead.id)

        assert len(callbacks) == 1
        entry = AdminAuditLog.objects.get()
        assert entry.admin == admin_worker
        assert entry.action == 'delete_lead'
        assert entry.entity_type == 'leads'
        assert entry.entity_id == lead.id
        assert entry.details['phone'] == lead.phone

    def test_rejected_master_clear_not_audited(self, admin_worker, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(ConfirmationMismatchError):
                master_clear_leads(admin_worker, 'nope')

        assert callbacks == []
        assert not AdminAuditLog.objects.exists()

    def test_broker_outage_after_commit_still_succeeds(self, admin_api_client, make_lead, django_capture_on_commit_callbacks):
        """Test a committed delete is reported as success when the audit task cannot be queued"""
        lead = make_lead()

        with patch('leads.tasks.record_admin_action.delay', side_effect=OperationalError('broker down')), \
                patch('leads.utils.logger') as mock_logger:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                response = _post(admin_api_client, 'delete-lead', {'leadId': lead.id})

        assert response.status_code == 200
        assert json.loads(response.content) == {'success': True}
        assert len(callbacks) == 1
        assert not Lead.objects.filter(id=lead.id).exists()
        assert not AdminAuditLog.objects.exists()
        mock_logger.error.assert_called_once()


# ============================================================================
# TEST: request throttle
# ============================================================================

class TestRequestNextThrottle:

    def test_first_request_claims_slot(self, mock_conn, settings):
        settings.REQUEST_NEXT_COOLDOWN = 5
        mock_conn.set.return_value = True

        assert acquire_request_next_slot(7) is True

        mock_conn.set.assert_called_once_with('REQUEST_NEXT_THROTTLE:7', '1', ex=5, nx=True)

    def test_second_request_in_window_rejected(self, mock_conn, settings):
        settings.REQUEST_NEXT_COOLDOWN = 5
        mock_conn.set.return_value = None

        with pytest.raises(RateLimitedError) as exc:
            acquire_request_next_slot(7)

        assert exc.value.status_code == 429
        assert '5 seconds' in exc.value.message

    def test_disabled_when_cooldown_zero(self, mock_conn, settings):
        settings.REQUEST_NEXT_COOLDOWN = 0

        assert acquire_request_next_slot(7) is True
        mock_conn.set.assert_not_called()

    def test_redis_down_allows_request(self, mock_conn, mock_logger, settings):
        settings.REQUEST_NEXT_COOLDOWN = 5
        mock_conn.set.side_effect = redis.ConnectionError("refused")

        assert acquire_request_next_slot(7) is True
        mock_logger.error.assert_called_once()


# ============================================================================
# TEST: action endpoint
# ============================================================================

@pytest.mark.django_db
class TestLeadsApi:

    def test_unauthenticated(self, client):
        response = client.get(API, {'action': 'current'})

        assert response.status_code == 401
        assert json.loads(response.content) == {'error': 'Authorization required'}

    def test_unknown_action(self, worker_client):
        response = worker_client.get(API, {'action': 'explode'})

        assert response.status_code == 400
        assert json.loads(response.content) == {'error': 'Invalid action'}

    def test_wrong_method(self, worker_client):
        response = worker_client.get(API, {'action': 'request-next'})

        assert response.status_code == 405

    def test_suspended_session_rejected(self, client, make_worker):
        suspended = make_worker('erin', status='suspended')
        client.force_login(suspended.user)

        response = client.get(API, {'action': 'current'})

        assert response.status_code == 403

    def test_request_next_and_current(self, worker_client, make_lead):
        lead = make_lead(category='roofing')

        response = _post(worker_client, 'request-next', {'category': 'roofing'})
        assert response.status_code == 200
        body = json.loads(response.content)
        assert body['lead']['id'] == lead.id
        assert 'locked_until' not in body['lead']
        assert 'assigned_to' not in body['lead']

        response = worker_client.get(API, {'action': 'current'})
        assert json.loads(response.content)['lead']['id'] == lead.id

    def test_request_next_category_from_query(self, worker_client, make_lead):
        make_lead(category='hvac')
        roofing = make_lead(category='roofing')

        response = worker_client.post(f'{API}?action=request-next&category=roofing', content_type='application/json')

        assert json.loads(response.content)['lead']['id'] == roofing.id

    def test_request_next_empty(self, worker_client):
        response = _post(worker_client, 'request-next', {})

        assert response.status_code == 200
        assert json.loads(response.content) == {'lead': None, 'message': constants.NO_LEADS_MESSAGE}

    def test_request_next_throttled(self, worker_client, mock_conn, make_lead):
        make_lead()
        mock_conn.set.return_value = None

        response = _post(worker_client, 'request-next', {})

        assert response.status_code == 429
        assert Lead.objects.get().status == constants.LEAD_STATUS_NEW

    def test_complete(self, worker_client, held_lead):
        response = _post(worker_client, 'complete', {
            'leadId': held_lead.id,
            'outcome': 'interested',
            'notes': 'wants a quote',
            'sessionDurationSeconds': 42,
        })

        assert response.status_code == 200
        assert json.loads(response.content) == {'success': True, 'newStatus': 'COMPLETED'}
        assert CallSession.objects.get().duration_seconds == 42

    def test_complete_validation_error(self, worker_client, held_lead):
        response = _post(worker_client, 'complete', {'leadId': held_lead.id, 'outcome': 'followup'})

        assert response.status_code == 400
        assert json.loads(response.content) == {'error': 'Select Follow-up Date'}

    def test_complete_missing_lead_id(self, worker_client):
        response = _post(worker_client, 'complete', {'outcome': 'dnc'})

        assert response.status_code == 400

    def test_invalid_json(self, worker_client):
        response = worker_client.post(f'{API}?action=complete', b'{not json', content_type='application/json')

        assert response.status_code == 400
        assert json.loads(response.content) == {'error': 'Invalid JSON'}

    def test_followup_endpoints(self, worker_client, worker, held_lead):
        _post(worker_client, 'complete', {
            'leadId': held_lead.id,
            'outcome': 'followup',
            'followupAt': (timezone.now() + timedelta(days=1)).isoformat(),
            'followupPriority': 'low',
        })

        response = worker_client.get(API, {'action': 'followups'})
        followups = json.loads(response.content)['followups']
        assert len(followups) == 1

        response = _post(worker_client, 'delete-followup', {'callId': followups[0]['id']})
        assert json.loads(response.content) == {'success': True}

        response = _post(worker_client, 'clear-all-followups', {'scope': 'own'})
        assert json.loads(response.content) == {'success': True, 'count': 0}

    def test_worker_scope_all_forbidden(self, worker_client):
        response = worker_client.get(API, {'action': 'followups', 'scope': 'all'})

        assert response.status_code == 403

    def test_admin_only_actions(self, worker_client):
        for action in ('stats', 'all-leads'):
            response = worker_client.get(API, {'action': action})
            assert response.status_code == 403

    def test_stats(self, admin_api_client, make_lead):
        make_lead()

        response = admin_api_client.get(API, {'action': 'stats'})

        assert json.loads(response.content)['stats']['total'] == 1

    def test_all_leads_and_lead_calls(self, admin_api_client, worker, held_lead):
        CallSession.objects.create(lead=held_lead, user=worker, outcome=constants.OUTCOME_VOICEMAIL)

        response = admin_api_client.get(API, {'action': 'all-leads', 'page': 1, 'pageSize': 10})
        body = json.loads(response.content)
        assert body['total'] == 1
        assert body['leads'][0]['assigned_to'] == worker.id

        response = admin_api_client.get(API, {'action': 'lead-calls', 'leadId': held_lead.id})
        assert len(json.loads(response.content)['calls']) == 1

    def test_lead_calls_unknown(self, admin_api_client):
        response = admin_api_client.get(API, {'action': 'lead-calls', 'leadId': 98765})

        assert response.status_code == 404

    def test_lead_calls_non_numeric_id(self, admin_api_client):
        response = admin_api_client.get(API, {'action': 'lead-calls', 'leadId': 'abc'})

        assert response.status_code == 404
        assert json.loads(response.content) == {'error': 'Lead not found'}

    def test_complete_absurd_duration(self, worker_client, held_lead):
        response = _post(worker_client, 'complete', {
            'leadId': held_lead.id,
            'outcome': 'no_answer',
            'sessionDurationSeconds': 10 ** 12,
        })

        assert response.status_code == 400
        assert json.loads(response.content) == {'error': 'Invalid session duration'}
        held_lead.refresh_from_db()
        assert held_lead.attempt_count == 0

    def test_delete_lead(self, admin_api_client, make_lead):
        lead = make_lead()

        response = _post(admin_api_client, 'delete-lead', {'leadId': lead.id})

        assert response.status_code == 200
        assert not Lead.objects.exists()

    def test_master_clear_wrong_phrase(self, admin_api_client, make_lead):
        make_lead()

        response = _post(admin_api_client, 'master-clear-leads', {'confirmation': 'DELETE', 'clearHistory': True})

        assert response.status_code == 400
        assert Lead.objects.count() == 1

    def test_master_clear(self, admin_api_client, make_lead):
        make_lead()
        make_lead()

        response = _post(admin_api_client, 'master-clear-leads', {
            'confirmation': 'DELETE ALL LEADS',
            'clearHistory': False,
        })

        assert json.loads(response.content) == {'leadsDeleted': 2}

    def test_unexpected_error_is_500(self, worker_client):
        with patch('leads.views.assignment.current_lead', side_effect=RuntimeError('boom')), \
                patch('leads.views.logger') as mock_logger:
            response = worker_client.get(API, {'action': 'current'})

        assert response.status_code == 500
        assert json.loads(response.content) == {'error': 'Internal server error'}
        mock_logger.exception.assert_called_once()


# ============================================================================
# TEST: login
# ============================================================================

@pytest.mark.django_db
class TestWorkerLogin:

    URL = '/api/auth/login/'

    def test_login_sets_session(self, client, worker, make_lead):
        response = client.post(self.URL, {'username': 'alice', 'password': 'secret-pass-123'}, content_type='application/json')

        assert response.status_code == 200
        assert json.loads(response.content) == {'id': worker.id, 'name': 'Alice', 'role': 'worker'}

        response = client.get(API, {'action': 'current'})
        assert response.status_code == 200

    def test_bad_credentials(self, client, worker):
        response = client.post(self.URL, {'username': 'alice', 'password': 'wrong'}, content_type='application/json')

        assert response.status_code == 401

    def test_suspended_worker(self, client, make_worker):
        make_worker('frank', status='suspended', suspension_reason='Quality review')

        response = client.post(self.URL, {'username': 'frank', 'password': 'secret-pass-123'}, content_type='application/json')

        assert response.status_code == 403
        assert json.loads(response.content)['suspension_reason'] == 'Quality review'

    def test_user_without_worker_profile(self, client, django_user_model):
        django_user_model.objects.create_user(username='ghost', password='secret-pass-123')

        response = client.post(self.URL, {'username': 'ghost', 'password': 'secret-pass-123'}, content_type='application/json')

        assert response.status_code == 404

    def test_get_not_allowed(self, client):
        assert client.get(self.URL).status_code == 405

    def test_invalid_json(self, client):
        response = client.post(self.URL, b'nope', content_type='application/json')

        assert response.status_code == 400


# ============================================================================
# TEST: django admin
# ============================================================================

@pytest.mark.django_db
class TestDjangoAdmin:

    @pytest.mark.parametrize('model', ['worker', 'lead', 'callsession', 'leadupload', 'workerleadhistory', 'adminauditlog'])
    def test_changelist_renders(self, admin_client, worker, held_lead, model):
        response = admin_client.get(f'/admin/leads/{model}/')

        assert response.status_code == 200

    def test_worker_change_page_with_calls(self, admin_client, worker, held_lead):
        CallSession.objects.create(lead=held_lead, user=worker, outcome=constants.OUTCOME_NO_ANSWER)

        response = admin_client.get(f'/admin/leads/worker/{worker.id}/change/')

        assert response.status_code == 200
