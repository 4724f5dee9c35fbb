"""
Shared fixtures: workers, leads, logged-in API clients, a mocked Redis
connection and eager Celery.
"""

import pytest
from datetime import timedelta
from unittest.mock import patch
from django.utils import timezone

from telemarketing.celery import app as celery_app


# ============================================================================
# INFRASTRUCTURE
# ============================================================================

@pytest.fixture(autouse=True)
def mock_conn():
    """Mock Redis connection used by the request throttle"""
    with patch('leads.utils.conn') as mock:
        mock.set.return_value = True
        yield mock


@pytest.fixture(autouse=True)
def celery_eager():
    """Run Celery tasks inline with an in-memory result backend"""
    # the app reads Django settings under the CELERY namespace, so the
    # prefixed keys take precedence over the plain ones
    keys = ('CELERY_TASK_ALWAYS_EAGER', 'CELERY_TASK_EAGER_PROPAGATES', 'CELERY_TASK_STORE_EAGER_RESULT', 'CELERY_RESULT_BACKEND')
    previous = {key: celery_app.conf.get(key) for key in keys}
    celery_app.conf.update(
        CELERY_TASK_ALWAYS_EAGER=True,
        CELERY_TASK_EAGER_PROPAGATES=True,
        CELERY_TASK_STORE_EAGER_RESULT=False,
        CELERY_RESULT_BACKEND='cache+memory://',
    )
    yield
    celery_app.conf.update(previous)


# ============================================================================
# WORKERS
# ============================================================================

@pytest.fixture
def make_worker(django_user_model):
    def _make_worker(username, role='worker', status='active', **kwargs):
        from leads.models import Worker

        user = django_user_model.objects.create_user(
            username=username,
            password='secret-pass-123',
            first_name=kwargs.pop('first_name', username.title()),
        )
        return Worker.objects.create(user=user, role=role, status=status, **kwargs)
    return _make_worker


@pytest.fixture
def worker(make_worker):
    return make_worker('alice')


@pytest.fixture
def other_worker(make_worker):
    return make_worker('bob')


@pytest.fixture
def admin_worker(make_worker):
    return make_worker('carol', role='admin')


# ============================================================================
# LEADS
# ============================================================================

@pytest.fixture
def make_lead():
    counter = {'n': 0}

    def _make_lead(**kwargs):
        from leads.models import Lead

        counter['n'] += 1
        n = counter['n']
        kwargs.setdefault('phone', f'+1555000{n:04d}')
        kwargs.setdefault('name', f'Business {n}')
        # strictly increasing so FIFO order is deterministic
        kwargs.setdefault('created_at', timezone.now() - timedelta(hours=1) + timedelta(seconds=n))
        return Lead.objects.create(**kwargs)
    return _make_lead


# ============================================================================
# API CLIENTS
# ============================================================================

@pytest.fixture
def worker_client(client, worker):
    client.force_login(worker.user)
    return client


@pytest.fixture
def admin_api_client(client, admin_worker):
    client.force_login(admin_worker.user)
    return client
